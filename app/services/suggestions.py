"""Предложения участников от пользователей, голосование за них и модерация."""

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.session import SessionData
from app.models.suggestion import ContestantSuggestion, SuggestionStatus, SuggestionVote
from app.models.tournament import Tournament, TournamentStatus
from app.services.errors import ConflictError, NotFoundError, ServiceError
from app.services.tournaments import ensure_can_manage

logger = logging.getLogger(__name__)

BULK_ACTIONS = ("approve", "reject", "delete")
SUGGESTION_STATUSES = {status.value for status in SuggestionStatus}


async def submit_suggestion(
    db: AsyncSession,
    tournament_id: int,
    user_id: int,
    name: str,
    description: str | None = None,
    image_url: str | None = None,
) -> ContestantSuggestion:
    tournament = await db.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError("Tournament not found")
    if tournament.status != TournamentStatus.DRAFT.value:
        raise ConflictError("Suggestions are only accepted while the tournament is in draft")

    name = name.strip()
    if not name or len(name) > 255:
        raise ServiceError("Suggestion name must be 1-255 characters")
    duplicate = await db.scalar(
        select(ContestantSuggestion.id).where(
            ContestantSuggestion.tournament_id == tournament_id,
            func.lower(ContestantSuggestion.name) == name.lower(),
        )
    )
    if duplicate:
        raise ConflictError(f"{name} has already been suggested")

    suggestion = ContestantSuggestion(
        tournament_id=tournament_id,
        suggested_by=user_id,
        name=name,
        description=description or None,
        image_url=image_url or None,
    )
    db.add(suggestion)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError(f"{name} has already been suggested") from exc
    await db.refresh(suggestion)
    return suggestion


async def list_suggestions(
    db: AsyncSession,
    tournament_id: int,
    status: str | None = None,
    user_id: int | None = None,
) -> list[dict]:
    query = (
        select(ContestantSuggestion)
        .where(ContestantSuggestion.tournament_id == tournament_id)
        .order_by(ContestantSuggestion.vote_count.desc(), ContestantSuggestion.created_at)
    )
    if status:
        query = query.where(ContestantSuggestion.status == status)
    suggestions = (await db.scalars(query)).all()

    voted: set[int] = set()
    if user_id is not None and suggestions:
        voted = set(
            (
                await db.scalars(
                    select(SuggestionVote.suggestion_id).where(
                        SuggestionVote.user_id == user_id,
                        SuggestionVote.suggestion_id.in_([s.id for s in suggestions]),
                    )
                )
            ).all()
        )
    return [{"suggestion": suggestion, "user_has_voted": suggestion.id in voted} for suggestion in suggestions]


async def _get_suggestion(db: AsyncSession, suggestion_id: int) -> ContestantSuggestion:
    suggestion = await db.get(ContestantSuggestion, suggestion_id)
    if not suggestion:
        raise NotFoundError("Suggestion not found")
    return suggestion


async def _refresh_vote_count(db: AsyncSession, suggestion: ContestantSuggestion) -> None:
    suggestion.vote_count = (
        await db.scalar(select(func.count(SuggestionVote.id)).where(SuggestionVote.suggestion_id == suggestion.id))
        or 0
    )


async def vote_for_suggestion(db: AsyncSession, suggestion_id: int, user_id: int) -> ContestantSuggestion:
    suggestion = await _get_suggestion(db, suggestion_id)
    exists = await db.scalar(
        select(SuggestionVote.id).where(SuggestionVote.suggestion_id == suggestion_id, SuggestionVote.user_id == user_id)
    )
    if exists:
        raise ConflictError("You have already voted for this suggestion")
    db.add(SuggestionVote(suggestion_id=suggestion_id, user_id=user_id))
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError("You have already voted for this suggestion") from exc
    await _refresh_vote_count(db, suggestion)
    await db.commit()
    return suggestion


async def remove_suggestion_vote(db: AsyncSession, suggestion_id: int, user_id: int) -> ContestantSuggestion:
    suggestion = await _get_suggestion(db, suggestion_id)
    result = await db.execute(
        delete(SuggestionVote).where(SuggestionVote.suggestion_id == suggestion_id, SuggestionVote.user_id == user_id)
    )
    if not result.rowcount:
        raise NotFoundError("Vote not found")
    await _refresh_vote_count(db, suggestion)
    await db.commit()
    return suggestion


async def moderate_suggestion(
    db: AsyncSession,
    suggestion_id: int,
    status: str,
    session: SessionData | None,
    admin_notes: str | None = None,
) -> ContestantSuggestion:
    if status not in SUGGESTION_STATUSES:
        raise ServiceError(f"Unknown suggestion status {status}")
    suggestion = await _get_suggestion(db, suggestion_id)
    tournament = await db.get(Tournament, suggestion.tournament_id)
    ensure_can_manage(tournament, session)
    suggestion.status = status
    if admin_notes is not None:
        suggestion.admin_notes = admin_notes or None
    await db.commit()
    logger.info("Suggestion %s moderated: %s", suggestion_id, status)
    return suggestion


async def bulk_moderate(
    db: AsyncSession,
    suggestion_ids: list[int],
    action: str,
    session: SessionData | None,
    admin_notes: str | None = None,
) -> dict:
    """Применяет действие к каждому предложению отдельно и считает успешные и неудачные."""
    if action not in BULK_ACTIONS:
        raise ServiceError(f"Unknown bulk action {action}")

    result = {"success": 0, "failed": 0, "errors": []}
    for suggestion_id in suggestion_ids:
        try:
            if action == "delete":
                suggestion = await _get_suggestion(db, suggestion_id)
                tournament = await db.get(Tournament, suggestion.tournament_id)
                ensure_can_manage(tournament, session)
                await db.execute(delete(SuggestionVote).where(SuggestionVote.suggestion_id == suggestion_id))
                await db.delete(suggestion)
                await db.commit()
            else:
                status = SuggestionStatus.APPROVED.value if action == "approve" else SuggestionStatus.REJECTED.value
                await moderate_suggestion(db, suggestion_id, status, session, admin_notes)
        except ServiceError as exc:
            result["failed"] += 1
            result["errors"].append(f"Suggestion {suggestion_id}: {exc}")
            continue
        result["success"] += 1
    logger.info("Bulk %s on %s suggestions: %s ok, %s failed", action, len(suggestion_ids), result["success"], result["failed"])
    return result


async def get_suggestion_analytics(db: AsyncSession, tournament_id: int) -> dict:
    rows = (
        await db.execute(
            select(ContestantSuggestion.status, func.count(ContestantSuggestion.id), func.sum(ContestantSuggestion.vote_count))
            .where(ContestantSuggestion.tournament_id == tournament_id)
            .group_by(ContestantSuggestion.status)
        )
    ).all()
    by_status = {status: 0 for status in SUGGESTION_STATUSES}
    total_votes = 0
    for status, count, votes in rows:
        by_status[status] = count
        total_votes += votes or 0
    return {
        "tournament_id": tournament_id,
        "total": sum(by_status.values()),
        "by_status": by_status,
        "total_votes": total_votes,
    }
