import logging
import random

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.tournament import DEFAULT_QUADRANT_NAMES, Contestant, Tournament, TournamentStatus
from app.services.errors import ConflictError, NotFoundError, ServiceError

logger = logging.getLogger(__name__)

SEED_METHODS = ("random", "alphabetical", "reverse-alphabetical")
LOCKED_STATUSES = (TournamentStatus.ACTIVE.value, TournamentStatus.COMPLETED.value)


def ensure_roster_editable(tournament: Tournament) -> None:
    # После старта сетки состав участников менять нельзя.
    if tournament.status in LOCKED_STATUSES:
        raise ConflictError(f"Contestants cannot change while tournament is {tournament.status}")


def validate_contestant_name(name: str) -> str:
    name = name.strip()
    if not name or len(name) > 100:
        raise ServiceError("Contestant name must be 1-100 characters")
    return name


def validate_quadrant(quadrant: int | None) -> None:
    if quadrant is not None and quadrant not in (1, 2, 3, 4):
        raise ServiceError("Quadrant must be between 1 and 4")


async def list_contestants(db: AsyncSession, tournament_id: int) -> list[Contestant]:
    return list(
        (
            await db.scalars(
                select(Contestant).where(Contestant.tournament_id == tournament_id).order_by(Contestant.position)
            )
        ).all()
    )


async def get_contestant(db: AsyncSession, contestant_id: int) -> Contestant:
    contestant = await db.get(Contestant, contestant_id)
    if not contestant:
        raise NotFoundError("Contestant not found")
    return contestant


async def add_contestant(
    db: AsyncSession,
    tournament: Tournament,
    name: str,
    description: str | None = None,
    image_url: str | None = None,
    seed: int | None = None,
    quadrant: int | None = None,
) -> Contestant:
    ensure_roster_editable(tournament)
    name = validate_contestant_name(name)
    validate_quadrant(quadrant)
    if seed is not None and seed < 1:
        raise ServiceError("Seed must be a positive number")

    count = await db.scalar(select(func.count(Contestant.id)).where(Contestant.tournament_id == tournament.id)) or 0
    if count >= tournament.max_contestants:
        raise ConflictError(f"Tournament already has maximum number of contestants ({tournament.max_contestants})")
    duplicate = await db.scalar(
        select(Contestant.id).where(
            Contestant.tournament_id == tournament.id,
            func.lower(Contestant.name) == name.lower(),
        )
    )
    if duplicate:
        raise ConflictError(f"Contestant {name} already exists in this tournament")

    max_position = await db.scalar(
        select(func.max(Contestant.position)).where(Contestant.tournament_id == tournament.id)
    )
    contestant = Contestant(
        tournament_id=tournament.id,
        name=name,
        description=description or None,
        image_url=image_url or None,
        position=(max_position or 0) + 1,
        seed=seed,
        quadrant=quadrant,
    )
    db.add(contestant)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError("Contestant name or seed is already taken") from exc
    await db.refresh(contestant)
    return contestant


async def update_contestant(
    db: AsyncSession,
    contestant: Contestant,
    name: str | None = None,
    description: str | None = None,
    image_url: str | None = None,
    seed: int | None = None,
    quadrant: int | None = None,
) -> Contestant:
    if name is not None:
        contestant.name = validate_contestant_name(name)
    if description is not None:
        contestant.description = description or None
    if image_url is not None:
        contestant.image_url = image_url or None
    if seed is not None or quadrant is not None:
        tournament = await db.get(Tournament, contestant.tournament_id)
        ensure_roster_editable(tournament)
        if seed is not None:
            if seed < 1:
                raise ServiceError("Seed must be a positive number")
            contestant.seed = seed
        if quadrant is not None:
            validate_quadrant(quadrant)
            contestant.quadrant = quadrant
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError("Contestant name or seed is already taken") from exc
    return contestant


async def delete_contestant(db: AsyncSession, contestant: Contestant) -> None:
    tournament = await db.get(Tournament, contestant.tournament_id)
    if tournament.status == TournamentStatus.ACTIVE.value:
        raise ConflictError("Cannot delete contestants while tournament is active")
    await db.delete(contestant)
    await db.commit()


async def set_seeds(db: AsyncSession, tournament: Tournament, seeds: dict[int, int]) -> list[Contestant]:
    """Назначает посев по словарю {contestant_id: seed}; остальные участники сохраняют свой."""
    ensure_roster_editable(tournament)
    if len(set(seeds.values())) != len(seeds) or any(seed < 1 for seed in seeds.values()):
        raise ServiceError("Seeds must be unique positive numbers")

    contestants = {contestant.id: contestant for contestant in await list_contestants(db, tournament.id)}
    missing = set(seeds) - set(contestants)
    if missing:
        raise ServiceError("Contestant is not part of this tournament")
    taken = {c.seed for cid, c in contestants.items() if cid not in seeds and c.seed is not None}
    if taken & set(seeds.values()):
        raise ConflictError("Seed is already used by another contestant")

    # Сначала сбрасываем, чтобы перестановка не нарушила уникальность посева.
    for contestant_id in seeds:
        contestants[contestant_id].seed = None
    await db.flush()
    for contestant_id, seed in seeds.items():
        contestants[contestant_id].seed = seed
    await db.commit()
    return sorted(contestants.values(), key=lambda c: c.position)


async def auto_seed(db: AsyncSession, tournament: Tournament, method: str = "random") -> list[Contestant]:
    if method not in SEED_METHODS:
        raise ServiceError(f"Unknown seeding method {method}")
    ensure_roster_editable(tournament)
    contestants = await list_contestants(db, tournament.id)
    if method == "random":
        random.shuffle(contestants)
    else:
        contestants.sort(key=lambda c: c.name.lower(), reverse=method == "reverse-alphabetical")

    for contestant in contestants:
        contestant.seed = None
    await db.flush()
    for seed, contestant in enumerate(contestants, start=1):
        contestant.seed = seed
    await db.commit()
    logger.info("Tournament %s auto-seeded (%s)", tournament.id, method)
    return contestants


def quadrant_letter(quadrant_name: str) -> str:
    # "Region A" -> "A", "East" -> "E"
    words = quadrant_name.split()
    return words[-1][0].upper() if words else "?"


async def generate_placeholder_contestants(db: AsyncSession, tournament: Tournament) -> list[Contestant]:
    """Заполняет пустой турнир участниками-заглушками вида A1, A2, B1 ..."""
    ensure_roster_editable(tournament)
    existing = await db.scalar(select(func.count(Contestant.id)).where(Contestant.tournament_id == tournament.id))
    if existing:
        raise ConflictError("Tournament already has contestants")

    names = tournament.quadrant_names or DEFAULT_QUADRANT_NAMES
    per_quadrant = -(-tournament.max_contestants // 4)
    contestants: list[Contestant] = []
    for index in range(tournament.max_contestants):
        quadrant = min(index // per_quadrant, 3) + 1
        seed = index + 1
        # Номер в имени считается внутри четверти: A1, A2, B1, B2.
        contestant = Contestant(
            tournament_id=tournament.id,
            name=f"{quadrant_letter(names[quadrant - 1])}{index % per_quadrant + 1}",
            position=seed,
            seed=seed,
            quadrant=quadrant,
        )
        db.add(contestant)
        contestants.append(contestant)
    await db.commit()
    logger.info("Generated %s placeholder contestants for tournament %s", len(contestants), tournament.id)
    return contestants
