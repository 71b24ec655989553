import logging
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.suggestion import ContestantSuggestion, SuggestionVote
from app.models.tournament import Contestant, Matchup, MatchupStatus, Round, Tournament
from app.models.user import User
from app.models.vote import Vote
from app.services.advancement import recount_matchup
from app.services.errors import ConflictError, NotFoundError
from app.services.tournaments import get_tournament

logger = logging.getLogger(__name__)


async def get_dashboard(db: AsyncSession) -> dict:
    # Сводные счетчики для админ-панели.
    by_status = dict(
        (await db.execute(select(Tournament.status, func.count(Tournament.id)).group_by(Tournament.status))).all()
    )
    recent = (await db.scalars(select(Tournament).order_by(Tournament.created_at.desc()).limit(5))).all()
    return {
        "tournaments": sum(by_status.values()),
        "tournaments_by_status": by_status,
        "users": await db.scalar(select(func.count(User.id)).where(User.is_system.is_(False))) or 0,
        "contestants": await db.scalar(select(func.count(Contestant.id))) or 0,
        "votes": await db.scalar(select(func.count(Vote.id))) or 0,
        "pending_suggestions": await db.scalar(
            select(func.count(ContestantSuggestion.id)).where(ContestantSuggestion.status == "pending")
        )
        or 0,
        "recent_tournaments": [
            {"id": t.id, "name": t.name, "slug": t.slug, "status": t.status} for t in recent
        ],
    }


async def list_users(db: AsyncSession, search: str | None = None) -> list[User]:
    query = select(User).where(User.is_system.is_(False)).order_by(User.created_at.desc(), User.id.desc())
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.where(func.lower(User.username).like(pattern) | func.lower(User.email).like(pattern))
    return list((await db.scalars(query)).all())


async def set_user_admin(db: AsyncSession, user_id: int, is_admin: bool) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if user.is_system:
        raise ConflictError("System accounts cannot be changed")
    user.is_admin = is_admin
    await db.commit()
    logger.info("User %s admin flag set to %s", user.username, is_admin)
    return user


async def delete_user(db: AsyncSession, user_id: int) -> None:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if user.is_system:
        raise ConflictError("System accounts cannot be deleted")
    # Голоса пользователя снимаются, а счетчики открытых матчей и предложений пересчитываются.
    voted_matchups = (
        await db.scalars(
            select(Matchup).where(
                Matchup.id.in_(select(Vote.matchup_id).where(Vote.user_id == user_id)),
                Matchup.status != MatchupStatus.COMPLETED.value,
            )
        )
    ).all()
    voted_suggestion_ids = set(
        (await db.scalars(select(SuggestionVote.suggestion_id).where(SuggestionVote.user_id == user_id))).all()
    )
    own_suggestion_ids = select(ContestantSuggestion.id).where(ContestantSuggestion.suggested_by == user_id)

    await db.execute(delete(Vote).where(Vote.user_id == user_id))
    await db.execute(delete(SuggestionVote).where(SuggestionVote.user_id == user_id))
    await db.execute(delete(SuggestionVote).where(SuggestionVote.suggestion_id.in_(own_suggestion_ids)))
    await db.execute(delete(ContestantSuggestion).where(ContestantSuggestion.suggested_by == user_id))
    await db.execute(update(Tournament).where(Tournament.created_by == user_id).values(created_by=None))

    for matchup in voted_matchups:
        await recount_matchup(db, matchup)
    remaining = (
        await db.scalars(select(ContestantSuggestion).where(ContestantSuggestion.id.in_(voted_suggestion_ids)))
    ).all()
    for suggestion in remaining:
        suggestion.vote_count = (
            await db.scalar(select(func.count(SuggestionVote.id)).where(SuggestionVote.suggestion_id == suggestion.id))
            or 0
        )
    await db.delete(user)
    await db.commit()
    logger.info("User %s deleted", user.username)


def _row(obj, fields: tuple[str, ...]) -> dict:
    data = {}
    for field in fields:
        value = getattr(obj, field)
        data[field] = value.isoformat() if isinstance(value, datetime) else value
    return data


async def export_tournament(db: AsyncSession, tournament_id: int) -> dict:
    """Полная выгрузка турнира: участники, раунды, матчи, голоса и предложения."""
    tournament = await get_tournament(db, tournament_id)
    contestants = (
        await db.scalars(select(Contestant).where(Contestant.tournament_id == tournament.id).order_by(Contestant.position))
    ).all()
    rounds = (
        await db.scalars(select(Round).where(Round.tournament_id == tournament.id).order_by(Round.round_number))
    ).all()
    matchups = (
        await db.scalars(
            select(Matchup).where(Matchup.tournament_id == tournament.id).order_by(Matchup.round_id, Matchup.position)
        )
    ).all()
    votes = (
        await db.scalars(
            select(Vote)
            .where(Vote.matchup_id.in_(select(Matchup.id).where(Matchup.tournament_id == tournament.id)))
            .order_by(Vote.id)
        )
    ).all()
    suggestions = (
        await db.scalars(
            select(ContestantSuggestion)
            .where(ContestantSuggestion.tournament_id == tournament.id)
            .order_by(ContestantSuggestion.id)
        )
    ).all()
    return {
        "tournament": _row(
            tournament,
            (
                "id",
                "name",
                "slug",
                "description",
                "image_url",
                "status",
                "bracket_type",
                "size",
                "max_contestants",
                "quadrant_names",
                "voting_duration_hours",
                "is_public",
                "allow_ties",
                "created_by",
                "created_at",
            ),
        ),
        "contestants": [
            _row(
                c,
                (
                    "id",
                    "name",
                    "description",
                    "image_url",
                    "position",
                    "seed",
                    "quadrant",
                    "eliminated_round",
                    "is_active",
                    "votes_received",
                    "wins",
                    "losses",
                ),
            )
            for c in contestants
        ],
        "rounds": [
            _row(r, ("id", "round_number", "name", "status", "total_matchups", "completed_matchups", "start_date", "end_date"))
            for r in rounds
        ],
        "matchups": [
            _row(
                m,
                (
                    "id",
                    "round_id",
                    "position",
                    "contestant1_id",
                    "contestant2_id",
                    "winner_id",
                    "status",
                    "contestant1_votes",
                    "contestant2_votes",
                    "total_votes",
                    "is_tie",
                    "notes",
                    "completed_at",
                ),
            )
            for m in matchups
        ],
        "votes": [
            _row(v, ("id", "user_id", "matchup_id", "selected_contestant_id", "is_admin_vote", "weight", "created_at"))
            for v in votes
        ],
        "suggestions": [
            _row(s, ("id", "suggested_by", "name", "description", "vote_count", "status", "admin_notes", "created_at"))
            for s in suggestions
        ],
        "exported_at": datetime.utcnow().isoformat(),
    }
