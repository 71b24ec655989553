"""CRUD турниров, переходы статусов, статистика и данные сетки."""

import logging
import re

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.session import SessionData
from app.models.tournament import (
    DEFAULT_QUADRANT_NAMES,
    BracketType,
    Contestant,
    Matchup,
    MatchupStatus,
    Round,
    Tournament,
    TournamentStatus,
)
from app.models.vote import Vote
from app.services.bracket import clear_bracket, generate_single_elimination_bracket
from app.services.errors import ConflictError, NotFoundError, PermissionDeniedError, ServiceError

logger = logging.getLogger(__name__)

MIN_SIZE = 4
MAX_SIZE = 256
MAX_VOTING_HOURS = 24 * 7
MAX_DESCRIPTION_LENGTH = 1000
ALLOWED_STATUS_TRANSITIONS: dict[str, set[str]] = {
    TournamentStatus.DRAFT.value: {TournamentStatus.REGISTRATION.value, TournamentStatus.CANCELLED.value},
    TournamentStatus.REGISTRATION.value: {TournamentStatus.ACTIVE.value, TournamentStatus.CANCELLED.value},
    TournamentStatus.ACTIVE.value: {TournamentStatus.COMPLETED.value, TournamentStatus.CANCELLED.value},
    TournamentStatus.COMPLETED.value: set(),
    TournamentStatus.CANCELLED.value: set(),
}
EDITABLE_FIELDS = {
    "name",
    "description",
    "image_url",
    "size",
    "quadrant_names",
    "voting_duration_hours",
    "is_public",
    "allow_ties",
}


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9\s-]", "", name.strip().lower())
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug or "tournament"


async def unique_slug(db: AsyncSession, name: str, exclude_id: int | None = None) -> str:
    base = slugify(name)
    candidate = base
    counter = 2
    while True:
        query = select(Tournament.id).where(Tournament.slug == candidate)
        if exclude_id is not None:
            query = query.where(Tournament.id != exclude_id)
        if not await db.scalar(query):
            return candidate
        candidate = f"{base}-{counter}"
        counter += 1


def is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


def validate_description(description: str | None) -> None:
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ServiceError(f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters")


def validate_size(size: int) -> None:
    if not is_power_of_two(size) or size < MIN_SIZE or size > MAX_SIZE:
        raise ServiceError(f"Tournament size must be a power of two between {MIN_SIZE} and {MAX_SIZE}")


def normalize_quadrant_names(names: list[str] | None) -> list[str]:
    if not names:
        return list(DEFAULT_QUADRANT_NAMES)
    cleaned = [name.strip() for name in names]
    if len(cleaned) != 4 or any(not name for name in cleaned):
        raise ServiceError("Exactly four non-empty quadrant names are required")
    return cleaned


def validate_status_transition(current: str, new: str) -> None:
    if current == new:
        return
    if new not in ALLOWED_STATUS_TRANSITIONS.get(current, set()):
        raise ConflictError(f"Invalid status transition from {current} to {new}")


def ensure_can_manage(tournament: Tournament, session: SessionData | None) -> None:
    # Управлять турниром может администратор или его создатель.
    if session and (session.is_admin or (session.user_id is not None and session.user_id == tournament.created_by)):
        return
    raise PermissionDeniedError("Only the tournament creator or an admin can manage this tournament")


def ensure_can_view(tournament: Tournament, session: SessionData | None) -> None:
    if tournament.is_public:
        return
    ensure_can_manage(tournament, session)


async def create_tournament(
    db: AsyncSession,
    creator_id: int | None,
    name: str,
    size: int,
    description: str | None = None,
    image_url: str | None = None,
    quadrant_names: list[str] | None = None,
    voting_duration_hours: int = 24,
    is_public: bool = True,
    allow_ties: bool = False,
) -> Tournament:
    name = name.strip()
    if len(name) < 3 or len(name) > 100:
        raise ServiceError("Tournament name must be 3-100 characters")
    validate_size(size)
    validate_description(description)
    if voting_duration_hours < 1 or voting_duration_hours > MAX_VOTING_HOURS:
        raise ServiceError(f"Voting duration must be between 1 and {MAX_VOTING_HOURS} hours")

    tournament = Tournament(
        name=name,
        slug=await unique_slug(db, name),
        description=description or None,
        image_url=image_url or None,
        status=TournamentStatus.DRAFT.value,
        bracket_type=BracketType.SINGLE_ELIMINATION.value,
        size=size,
        max_contestants=size,
        quadrant_names=normalize_quadrant_names(quadrant_names),
        voting_duration_hours=voting_duration_hours,
        is_public=is_public,
        allow_ties=allow_ties,
        created_by=creator_id,
    )
    db.add(tournament)
    await db.commit()
    await db.refresh(tournament)
    logger.info("Tournament %s created (%s, size %s)", tournament.id, tournament.slug, size)
    return tournament


async def get_tournament(db: AsyncSession, identifier: int | str) -> Tournament:
    tournament = None
    if isinstance(identifier, int) or str(identifier).isdigit():
        tournament = await db.get(Tournament, int(identifier))
    # Слаг может состоять из одних цифр, например "2024".
    if not tournament and not isinstance(identifier, int):
        tournament = await db.scalar(select(Tournament).where(Tournament.slug == identifier))
    if not tournament:
        raise NotFoundError("Tournament not found")
    return tournament


async def list_tournaments(
    db: AsyncSession,
    status: str | None = None,
    viewer: SessionData | None = None,
) -> list[Tournament]:
    query = select(Tournament).order_by(Tournament.created_at.desc(), Tournament.id.desc())
    if status:
        query = query.where(Tournament.status == status)
    if not (viewer and viewer.is_admin):
        if viewer and viewer.user_id is not None:
            query = query.where(or_(Tournament.is_public.is_(True), Tournament.created_by == viewer.user_id))
        else:
            query = query.where(Tournament.is_public.is_(True))
    return list((await db.scalars(query)).all())


async def update_tournament(db: AsyncSession, tournament: Tournament, **changes) -> Tournament:
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ServiceError(f"Unknown fields: {', '.join(sorted(unknown))}")

    if "name" in changes and changes["name"] is not None:
        name = changes["name"].strip()
        if len(name) < 3 or len(name) > 100:
            raise ServiceError("Tournament name must be 3-100 characters")
        if name != tournament.name:
            tournament.name = name
            tournament.slug = await unique_slug(db, name, exclude_id=tournament.id)

    if "size" in changes and changes["size"] is not None and changes["size"] != tournament.size:
        size = changes["size"]
        validate_size(size)
        if tournament.status not in (TournamentStatus.DRAFT.value, TournamentStatus.REGISTRATION.value):
            raise ConflictError("Size can only change before the tournament starts")
        count = await db.scalar(select(func.count(Contestant.id)).where(Contestant.tournament_id == tournament.id))
        if (count or 0) > size:
            raise ConflictError(f"Tournament already has {count} contestants")
        tournament.size = size
        tournament.max_contestants = size

    if "quadrant_names" in changes and changes["quadrant_names"] is not None:
        tournament.quadrant_names = normalize_quadrant_names(changes["quadrant_names"])
    if "voting_duration_hours" in changes and changes["voting_duration_hours"] is not None:
        hours = changes["voting_duration_hours"]
        if hours < 1 or hours > MAX_VOTING_HOURS:
            raise ServiceError(f"Voting duration must be between 1 and {MAX_VOTING_HOURS} hours")
        tournament.voting_duration_hours = hours
    validate_description(changes.get("description"))
    for field in ("description", "image_url"):
        if field in changes and changes[field] is not None:
            setattr(tournament, field, changes[field] or None)
    for field in ("is_public", "allow_ties"):
        if field in changes and changes[field] is not None:
            setattr(tournament, field, bool(changes[field]))

    await db.commit()
    return tournament


async def change_status(db: AsyncSession, tournament: Tournament, new_status: str) -> Tournament:
    if new_status not in ALLOWED_STATUS_TRANSITIONS:
        raise ServiceError(f"Unknown tournament status {new_status}")
    validate_status_transition(tournament.status, new_status)
    if new_status == TournamentStatus.ACTIVE.value and tournament.status != new_status:
        # Активация турнира проходит через построение сетки.
        await generate_single_elimination_bracket(db, tournament.id)
        await db.refresh(tournament)
        return tournament
    previous = tournament.status
    tournament.status = new_status
    await db.commit()
    logger.info("Tournament %s status %s -> %s", tournament.id, previous, new_status)
    return tournament


async def start_tournament(db: AsyncSession, tournament: Tournament) -> list[Round]:
    rounds = await generate_single_elimination_bracket(db, tournament.id)
    await db.refresh(tournament)
    return rounds


async def delete_tournament(db: AsyncSession, tournament: Tournament) -> None:
    if tournament.status == TournamentStatus.ACTIVE.value:
        raise ConflictError("Cannot delete an active tournament")
    await clear_bracket(db, tournament.id)
    await db.delete(tournament)
    await db.commit()
    logger.info("Tournament %s deleted", tournament.id)


async def get_tournament_stats(db: AsyncSession, tournament_id: int) -> dict:
    tournament = await get_tournament(db, tournament_id)
    contestant_count = (
        await db.scalar(select(func.count(Contestant.id)).where(Contestant.tournament_id == tournament_id)) or 0
    )
    round_count = await db.scalar(select(func.count(Round.id)).where(Round.tournament_id == tournament_id)) or 0
    matchup_count = await db.scalar(select(func.count(Matchup.id)).where(Matchup.tournament_id == tournament_id)) or 0
    completed_matchups = (
        await db.scalar(
            select(func.count(Matchup.id)).where(
                Matchup.tournament_id == tournament_id,
                Matchup.status == MatchupStatus.COMPLETED.value,
            )
        )
        or 0
    )
    vote_filter = Vote.matchup_id.in_(select(Matchup.id).where(Matchup.tournament_id == tournament_id))
    total_votes = await db.scalar(select(func.count(Vote.id)).where(vote_filter)) or 0
    unique_voters = await db.scalar(select(func.count(func.distinct(Vote.user_id))).where(vote_filter)) or 0
    return {
        "tournament_id": tournament.id,
        "status": tournament.status,
        "contestants": contestant_count,
        "rounds": round_count,
        "matchups": matchup_count,
        "completed_matchups": completed_matchups,
        "total_votes": total_votes,
        "unique_voters": unique_voters,
    }


async def get_bracket_data(db: AsyncSession, tournament_id: int) -> dict:
    """Раунды турнира с матчами по позициям и именами участников."""
    tournament = await get_tournament(db, tournament_id)
    contestants = {
        contestant.id: contestant
        for contestant in (await db.scalars(select(Contestant).where(Contestant.tournament_id == tournament_id))).all()
    }
    rounds = (
        await db.scalars(select(Round).where(Round.tournament_id == tournament_id).order_by(Round.round_number))
    ).all()
    matchups = (
        await db.scalars(select(Matchup).where(Matchup.tournament_id == tournament_id).order_by(Matchup.position))
    ).all()

    by_round: dict[int, list[dict]] = {round_.id: [] for round_ in rounds}
    for matchup in matchups:
        first = contestants.get(matchup.contestant1_id) if matchup.contestant1_id is not None else None
        second = contestants.get(matchup.contestant2_id) if matchup.contestant2_id is not None else None
        by_round.setdefault(matchup.round_id, []).append(
            {
                "id": matchup.id,
                "position": matchup.position,
                "status": matchup.status,
                "contestant1_id": matchup.contestant1_id,
                "contestant1_name": first.name if first else None,
                "contestant2_id": matchup.contestant2_id,
                "contestant2_name": second.name if second else None,
                "contestant1_votes": matchup.contestant1_votes,
                "contestant2_votes": matchup.contestant2_votes,
                "total_votes": matchup.total_votes,
                "winner_id": matchup.winner_id,
                "is_tie": matchup.is_tie,
            }
        )
    return {
        "tournament_id": tournament.id,
        "name": tournament.name,
        "status": tournament.status,
        "quadrant_names": tournament.quadrant_names,
        "rounds": [
            {
                "id": round_.id,
                "round_number": round_.round_number,
                "name": round_.name,
                "status": round_.status,
                "locked": round_.locked_at is not None,
                "matchups": by_round[round_.id],
            }
            for round_ in rounds
        ],
    }
