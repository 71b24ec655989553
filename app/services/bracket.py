"""Строит сетку single elimination: раунды, посев внутри квадрантов и пары первого раунда."""

import logging
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.tournament import (
    BracketType,
    Contestant,
    Matchup,
    MatchupStatus,
    Round,
    RoundStatus,
    Tournament,
    TournamentStatus,
)
from app.models.vote import Vote
from app.services.errors import ConflictError, NotFoundError, ServiceError

logger = logging.getLogger(__name__)

QUADRANTS = (1, 2, 3, 4)
STARTABLE_STATUSES = {TournamentStatus.DRAFT.value, TournamentStatus.REGISTRATION.value}
MIN_CONTESTANTS = 2
UNSEEDED = 999


def seeding_pairs(bracket_size: int) -> list[tuple[int, int]]:
    # Классический посев: 1 против N, 2 против N-1 и так далее.
    return [(i, bracket_size + 1 - i) for i in range(1, bracket_size // 2 + 1)]


def count_rounds(tournament_size: int) -> int:
    return max((tournament_size - 1).bit_length(), 1)


def generate_round_name(tournament_size: int, round_number: int) -> str:
    total_rounds = count_rounds(tournament_size)
    if round_number == total_rounds:
        return "Final"
    if round_number == total_rounds - 1:
        return "Semifinals"
    if round_number == total_rounds - 2:
        return "Quarterfinals"
    return f"Round {round_number}"


def seed_sort_key(contestant: Contestant) -> tuple[int, int]:
    seed = contestant.seed if contestant.seed is not None else UNSEEDED
    return seed, contestant.position


def assign_quadrants(contestants: Sequence[Contestant], tournament_size: int) -> dict[int, list[Contestant]]:
    """Раскладывает участников по квадрантам, заполняя пустые квадранты в порядке посева."""
    capacity = tournament_size // 4
    by_quadrant: dict[int, list[Contestant]] = {quadrant: [] for quadrant in QUADRANTS}
    unplaced: list[Contestant] = []
    for contestant in sorted(contestants, key=seed_sort_key):
        if contestant.quadrant in by_quadrant:
            by_quadrant[contestant.quadrant].append(contestant)
        else:
            unplaced.append(contestant)

    for contestant in unplaced:
        quadrant = next((q for q in QUADRANTS if len(by_quadrant[q]) < capacity), None)
        if quadrant is None:
            raise ConflictError("All quadrants are full")
        contestant.quadrant = quadrant
        by_quadrant[quadrant].append(contestant)

    for quadrant in QUADRANTS:
        if len(by_quadrant[quadrant]) != capacity:
            raise ConflictError(
                f"Quadrant {quadrant} has {len(by_quadrant[quadrant])} contestants, expected {capacity}"
            )
        by_quadrant[quadrant].sort(key=seed_sort_key)
    return by_quadrant


def plan_first_round(quadrants: dict[int, list[int]]) -> list[tuple[int, int]]:
    """Возвращает пары первого раунда в порядке позиций матчей.

    Если в квадранте больше одного участника, пары строятся внутри квадранта по посеву.
    При одном участнике на квадрант играют перекрестно: Q1 против Q4, Q2 против Q3.
    """
    sizes = {len(quadrants.get(quadrant, [])) for quadrant in QUADRANTS}
    if len(sizes) != 1 or 0 in sizes:
        raise ServiceError("Every quadrant must hold the same non-zero number of contestants")

    per_quadrant = sizes.pop()
    if per_quadrant == 1:
        return [(quadrants[1][0], quadrants[4][0]), (quadrants[2][0], quadrants[3][0])]
    if per_quadrant % 2:
        raise ServiceError("Quadrant size must be even")

    pairs: list[tuple[int, int]] = []
    for quadrant in QUADRANTS:
        members = quadrants[quadrant]
        for first_seed, second_seed in seeding_pairs(per_quadrant):
            pairs.append((members[first_seed - 1], members[second_seed - 1]))
    return pairs


async def count_active_contestants(db: AsyncSession, tournament_id: int) -> int:
    count = await db.scalar(
        select(func.count(Contestant.id)).where(Contestant.tournament_id == tournament_id, Contestant.is_active.is_(True))
    )
    return count or 0


async def can_start_tournament(db: AsyncSession, tournament_id: int) -> bool:
    tournament = await db.get(Tournament, tournament_id)
    if not tournament or tournament.status not in STARTABLE_STATUSES:
        return False
    active_count = await count_active_contestants(db, tournament_id)
    return active_count >= MIN_CONTESTANTS and active_count == tournament.size


async def clear_bracket(db: AsyncSession, tournament_id: int) -> None:
    matchup_ids = select(Matchup.id).where(Matchup.tournament_id == tournament_id)
    await db.execute(delete(Vote).where(Vote.matchup_id.in_(matchup_ids)))
    await db.execute(delete(Matchup).where(Matchup.tournament_id == tournament_id))
    await db.execute(delete(Round).where(Round.tournament_id == tournament_id))


async def generate_single_elimination_bracket(db: AsyncSession, tournament_id: int) -> list[Round]:
    """Создает все раунды турнира, заполняет первый раунд и переводит турнир в active."""
    tournament = await db.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError("Tournament not found")
    if tournament.bracket_type != BracketType.SINGLE_ELIMINATION.value:
        raise ServiceError(f"Bracket type {tournament.bracket_type} is not supported")
    if tournament.status not in STARTABLE_STATUSES:
        raise ConflictError(f"Tournament in status {tournament.status} cannot be started")

    contestants = list(
        (
            await db.scalars(
                select(Contestant).where(Contestant.tournament_id == tournament_id, Contestant.is_active.is_(True))
            )
        ).all()
    )
    if not contestants:
        raise ConflictError("No active contestants found for tournament")
    if len(contestants) < MIN_CONTESTANTS or len(contestants) != tournament.size:
        raise ConflictError(f"Tournament needs exactly {tournament.size} active contestants, found {len(contestants)}")

    by_quadrant = assign_quadrants(contestants, tournament.size)
    first_round_pairs = plan_first_round(
        {quadrant: [contestant.id for contestant in members] for quadrant, members in by_quadrant.items()}
    )

    await clear_bracket(db, tournament_id)

    now = datetime.utcnow()
    rounds: list[Round] = []
    for round_number in range(1, count_rounds(tournament.size) + 1):
        matchup_count = tournament.size // 2**round_number
        is_first = round_number == 1
        round_ = Round(
            tournament_id=tournament_id,
            round_number=round_number,
            name=generate_round_name(tournament.size, round_number),
            status=RoundStatus.ACTIVE.value if is_first else RoundStatus.UPCOMING.value,
            total_matchups=matchup_count,
            completed_matchups=0,
            start_date=now if is_first else None,
        )
        db.add(round_)
        rounds.append(round_)
    await db.flush()

    for position, (contestant1_id, contestant2_id) in enumerate(first_round_pairs, start=1):
        db.add(
            Matchup(
                round_id=rounds[0].id,
                tournament_id=tournament_id,
                position=position,
                contestant1_id=contestant1_id,
                contestant2_id=contestant2_id,
                status=MatchupStatus.ACTIVE.value,
            )
        )
    for round_ in rounds[1:]:
        for position in range(1, round_.total_matchups + 1):
            db.add(
                Matchup(
                    round_id=round_.id,
                    tournament_id=tournament_id,
                    position=position,
                    status=MatchupStatus.UPCOMING.value,
                )
            )

    tournament.status = TournamentStatus.ACTIVE.value
    await db.commit()
    logger.info("Bracket generated for tournament %s: %s rounds", tournament_id, len(rounds))
    return rounds
