"""Голосование пользователей в матчах и голоса администратора для разрешения ничьих."""

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.tournament import Contestant, Matchup, MatchupStatus, Round, Tournament, TournamentStatus
from app.models.user import User
from app.models.vote import Vote
from app.services.advancement import recount_matchup
from app.services.errors import ConflictError, NotFoundError, PermissionDeniedError, ServiceError
from app.services.users import get_or_create_tie_breaker_user

logger = logging.getLogger(__name__)


async def _get_open_matchup(db: AsyncSession, matchup_id: int) -> tuple[Matchup, Tournament]:
    matchup = await db.get(Matchup, matchup_id)
    if not matchup:
        raise NotFoundError("Matchup not found")
    if matchup.status != MatchupStatus.ACTIVE.value:
        raise ConflictError("Matchup is not currently active")
    round_ = await db.get(Round, matchup.round_id)
    if round_ and round_.locked_at is not None:
        raise ConflictError("Voting for this round is locked")
    tournament = await db.get(Tournament, matchup.tournament_id)
    if not tournament or tournament.status != TournamentStatus.ACTIVE.value:
        raise ConflictError("Tournament is not active")
    return matchup, tournament


def _check_contestant(matchup: Matchup, contestant_id: int) -> None:
    if contestant_id not in (matchup.contestant1_id, matchup.contestant2_id):
        raise ServiceError("Selected contestant is not part of this matchup")


async def cast_vote(db: AsyncSession, user_id: int, matchup_id: int, contestant_id: int) -> Vote:
    """Записывает голос пользователя; повторный голос в том же матче меняет выбор."""
    matchup, tournament = await _get_open_matchup(db, matchup_id)
    if not tournament.is_public:
        raise PermissionDeniedError("Voting is only open in public tournaments")
    _check_contestant(matchup, contestant_id)

    vote = await db.scalar(select(Vote).where(Vote.user_id == user_id, Vote.matchup_id == matchup_id))
    if vote:
        vote.selected_contestant_id = contestant_id
    else:
        vote = Vote(user_id=user_id, matchup_id=matchup_id, selected_contestant_id=contestant_id)
        db.add(vote)
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError("Vote already recorded for this matchup") from exc

    await recount_matchup(db, matchup)
    await db.commit()
    return vote


async def delete_vote(db: AsyncSession, user_id: int, matchup_id: int) -> None:
    matchup, _ = await _get_open_matchup(db, matchup_id)
    vote = await db.scalar(select(Vote).where(Vote.user_id == user_id, Vote.matchup_id == matchup_id))
    if not vote:
        raise NotFoundError("Vote not found")
    await db.delete(vote)
    await db.flush()
    await recount_matchup(db, matchup)
    await db.commit()


async def get_user_vote(db: AsyncSession, user_id: int, matchup_id: int) -> Vote | None:
    return await db.scalar(select(Vote).where(Vote.user_id == user_id, Vote.matchup_id == matchup_id))


async def get_user_votes_for_tournament(db: AsyncSession, user_id: int, tournament_id: int) -> list[Vote]:
    return list(
        (
            await db.scalars(
                select(Vote)
                .join(Matchup, Matchup.id == Vote.matchup_id)
                .where(Vote.user_id == user_id, Matchup.tournament_id == tournament_id)
                .order_by(Vote.created_at)
            )
        ).all()
    )


def _vote_result(matchup: Matchup, selected_contestant_id: int) -> str:
    if matchup.status != MatchupStatus.COMPLETED.value or matchup.winner_id is None:
        return "PENDING"
    return "WON" if matchup.winner_id == selected_contestant_id else "LOST"


async def get_vote_history(db: AsyncSession, user_id: int, page: int = 1, page_size: int = 20) -> dict:
    page = max(page, 1)
    page_size = min(max(page_size, 1), 100)
    total = await db.scalar(select(func.count(Vote.id)).where(Vote.user_id == user_id)) or 0
    rows = (
        await db.execute(
            select(Vote, Matchup, Round, Tournament, Contestant)
            .join(Matchup, Matchup.id == Vote.matchup_id)
            .join(Round, Round.id == Matchup.round_id)
            .join(Tournament, Tournament.id == Matchup.tournament_id)
            .join(Contestant, Contestant.id == Vote.selected_contestant_id)
            .where(Vote.user_id == user_id)
            .order_by(Vote.created_at.desc(), Vote.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).all()

    items = []
    for vote, matchup, round_, tournament, contestant in rows:
        items.append(
            {
                "matchup_id": matchup.id,
                "tournament_id": tournament.id,
                "tournament_name": tournament.name,
                "tournament_slug": tournament.slug,
                "round_number": round_.round_number,
                "round_name": round_.name,
                "contestant_id": contestant.id,
                "contestant_name": contestant.name,
                "result": _vote_result(matchup, vote.selected_contestant_id),
                "voted_at": vote.created_at.isoformat(),
            }
        )
    return {"items": items, "page": page, "page_size": page_size, "total": total}


async def get_voting_status(db: AsyncSession, user_id: int, tournament_id: int) -> dict:
    """Сколько активных матчей турнира пользователь уже проголосовал."""
    active_ids = select(Matchup.id).where(
        Matchup.tournament_id == tournament_id,
        Matchup.status == MatchupStatus.ACTIVE.value,
    )
    total = await db.scalar(select(func.count()).select_from(active_ids.subquery())) or 0
    voted = (
        await db.scalar(
            select(func.count(Vote.id)).where(Vote.user_id == user_id, Vote.matchup_id.in_(active_ids))
        )
        or 0
    )
    return {
        "active_matchups": total,
        "voted_matchups": voted,
        "available_votes": total - voted,
        "completion_percentage": round(voted / total * 100, 2) if total else 0.0,
    }


async def get_matchup(db: AsyncSession, matchup_id: int) -> Matchup:
    matchup = await db.get(Matchup, matchup_id)
    if not matchup:
        raise NotFoundError("Matchup not found")
    return matchup


async def get_matchup_results(db: AsyncSession, matchup_id: int) -> dict:
    matchup = await get_matchup(db, matchup_id)
    tally = await recount_matchup(db, matchup)
    await db.commit()
    winner_id = matchup.winner_id if matchup.status == MatchupStatus.COMPLETED.value else tally.winner_id
    return {
        "matchup_id": matchup.id,
        "status": matchup.status,
        "contestant1_id": matchup.contestant1_id,
        "contestant2_id": matchup.contestant2_id,
        "contestant1_votes": tally.contestant1_votes,
        "contestant2_votes": tally.contestant2_votes,
        "total_votes": tally.total_votes,
        "winner_id": winner_id,
        "is_tie": tally.is_tie,
    }


async def cast_tie_breaker_vote(db: AsyncSession, matchup_id: int, contestant_id: int, weight: int = 1) -> Vote:
    """Голос администратора с весом; хранится под служебной учетной записью, один на матч."""
    if weight < 1 or weight > settings.max_admin_vote_weight:
        raise ServiceError(f"Weight must be between 1 and {settings.max_admin_vote_weight}")
    matchup, _ = await _get_open_matchup(db, matchup_id)
    _check_contestant(matchup, contestant_id)

    system_user = await get_or_create_tie_breaker_user(db)
    vote = await db.scalar(select(Vote).where(Vote.user_id == system_user.id, Vote.matchup_id == matchup_id))
    if vote:
        vote.selected_contestant_id = contestant_id
        vote.weight = weight
        vote.is_admin_vote = True
    else:
        vote = Vote(
            user_id=system_user.id,
            matchup_id=matchup_id,
            selected_contestant_id=contestant_id,
            is_admin_vote=True,
            weight=weight,
        )
        db.add(vote)
    await db.flush()
    await recount_matchup(db, matchup)
    await db.commit()
    logger.info("Tie-breaker vote on matchup %s for contestant %s (weight %s)", matchup_id, contestant_id, weight)
    return vote


async def remove_tie_breaker_vote(db: AsyncSession, matchup_id: int) -> int:
    matchup, _ = await _get_open_matchup(db, matchup_id)
    result = await db.execute(delete(Vote).where(Vote.matchup_id == matchup_id, Vote.is_admin_vote.is_(True)))
    await db.flush()
    await recount_matchup(db, matchup)
    await db.commit()
    logger.info("Removed %s tie-breaker vote(s) from matchup %s", result.rowcount, matchup_id)
    return result.rowcount


def _contestant_payload(contestant: Contestant | None) -> dict | None:
    if not contestant:
        return None
    return {"id": contestant.id, "name": contestant.name, "image_url": contestant.image_url}


async def get_tie_breaking_opportunities(db: AsyncSession, tournament_id: int) -> list[dict]:
    """Активные матчи турнира с равным счетом (включая 0:0)."""
    matchups = (
        await db.scalars(
            select(Matchup)
            .where(
                Matchup.tournament_id == tournament_id,
                Matchup.status == MatchupStatus.ACTIVE.value,
                Matchup.contestant1_id.is_not(None),
                Matchup.contestant2_id.is_not(None),
            )
            .order_by(Matchup.round_id, Matchup.position)
        )
    ).all()

    opportunities = []
    for matchup in matchups:
        tally = await recount_matchup(db, matchup)
        if tally.contestant1_votes != tally.contestant2_votes:
            continue
        has_admin_vote = await db.scalar(
            select(func.count(Vote.id)).where(Vote.matchup_id == matchup.id, Vote.is_admin_vote.is_(True))
        )
        opportunities.append(
            {
                "matchup_id": matchup.id,
                "round_id": matchup.round_id,
                "position": matchup.position,
                "contestant1": _contestant_payload(await db.get(Contestant, matchup.contestant1_id)),
                "contestant2": _contestant_payload(await db.get(Contestant, matchup.contestant2_id)),
                "contestant1_votes": tally.contestant1_votes,
                "contestant2_votes": tally.contestant2_votes,
                "total_votes": tally.total_votes,
                "has_admin_vote": bool(has_admin_vote),
            }
        )
    await db.commit()
    return opportunities


async def get_matchup_vote_analysis(db: AsyncSession, matchup_id: int) -> dict:
    matchup = await db.get(Matchup, matchup_id)
    if not matchup:
        raise NotFoundError("Matchup not found")
    rows = (
        await db.execute(
            select(Vote, User.username)
            .join(User, User.id == Vote.user_id)
            .where(Vote.matchup_id == matchup_id)
            .order_by(Vote.created_at.desc(), Vote.id.desc())
        )
    ).all()
    votes = [
        {
            "user_id": vote.user_id,
            "username": username,
            "contestant_id": vote.selected_contestant_id,
            "is_admin_vote": vote.is_admin_vote,
            "weight": vote.weight,
            "voted_at": vote.created_at.isoformat(),
        }
        for vote, username in rows
    ]
    timestamps = [vote.created_at for vote, _ in rows]
    return {
        "matchup_id": matchup_id,
        "votes": votes,
        "regular_votes": sum(1 for vote, _ in rows if not vote.is_admin_vote),
        "admin_votes": sum(1 for vote, _ in rows if vote.is_admin_vote),
        "first_vote_at": min(timestamps).isoformat() if timestamps else None,
        "last_vote_at": max(timestamps).isoformat() if timestamps else None,
    }
