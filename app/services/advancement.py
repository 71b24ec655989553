"""Подсчет голосов, определение победителей и продвижение турнира по раундам."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.tournament import (
    Contestant,
    Matchup,
    MatchupStatus,
    Round,
    RoundStatus,
    Tournament,
    TournamentStatus,
)
from app.models.vote import Vote
from app.services.bracket import clear_bracket
from app.services.errors import ConflictError, NotFoundError, ServiceError

logger = logging.getLogger(__name__)

FORCE_ADVANCE_NOTE = "Winner declared by admin force advance"
TIE_BROKEN_NOTE = "Winner declared by admin force advance (tie broken)"
FINALIZED_NOTE = "Winner declared by vote count"
FINALIZED_TIE_NOTE = "Tie resolved in favour of contestant 1"
OVERRIDE_NOTE = "Winner set by admin override"
OPEN_MATCHUP_STATUSES = (MatchupStatus.ACTIVE.value, MatchupStatus.UPCOMING.value)


@dataclass(frozen=True)
class VoteTally:
    contestant1_votes: int
    contestant2_votes: int
    total_votes: int
    winner_id: int | None
    is_tie: bool


def tally_votes(votes: Iterable[tuple[int, int]], contestant1_id: int | None, contestant2_id: int | None) -> VoteTally:
    """Суммирует веса голосов (selected_contestant_id, weight) за каждого участника пары."""
    first = 0
    second = 0
    for selected_id, weight in votes:
        if contestant1_id is not None and selected_id == contestant1_id:
            first += weight
        elif contestant2_id is not None and selected_id == contestant2_id:
            second += weight

    total = first + second
    winner_id = None
    if first > second:
        winner_id = contestant1_id
    elif second > first:
        winner_id = contestant2_id
    return VoteTally(
        contestant1_votes=first,
        contestant2_votes=second,
        total_votes=total,
        winner_id=winner_id,
        is_tie=total > 0 and first == second,
    )


def resolve_winner(tally: VoteTally, contestant1_id: int, contestant2_id: int) -> tuple[int, bool]:
    # При равенстве (в том числе 0:0) побеждает первый участник пары.
    if tally.winner_id in (contestant1_id, contestant2_id):
        return tally.winner_id, False
    return contestant1_id, True


async def recount_matchup(db: AsyncSession, matchup: Matchup) -> VoteTally:
    rows = (
        await db.execute(select(Vote.selected_contestant_id, Vote.weight).where(Vote.matchup_id == matchup.id))
    ).all()
    tally = tally_votes(((row[0], row[1]) for row in rows), matchup.contestant1_id, matchup.contestant2_id)
    matchup.contestant1_votes = tally.contestant1_votes
    matchup.contestant2_votes = tally.contestant2_votes
    matchup.total_votes = tally.total_votes
    matchup.is_tie = tally.is_tie
    return tally


async def get_active_round(db: AsyncSession, tournament_id: int) -> Round | None:
    return await db.scalar(
        select(Round)
        .where(Round.tournament_id == tournament_id, Round.status == RoundStatus.ACTIVE.value)
        .order_by(Round.round_number.desc())
        .limit(1)
    )


async def _load_contestants(db: AsyncSession, tournament_id: int) -> dict[int, Contestant]:
    contestants = (await db.scalars(select(Contestant).where(Contestant.tournament_id == tournament_id))).all()
    return {contestant.id: contestant for contestant in contestants}


def _complete_matchup(
    matchup: Matchup,
    winner_id: int,
    tally: VoteTally,
    round_number: int,
    contestants: dict[int, Contestant],
    note: str,
) -> None:
    loser_id = matchup.contestant2_id if winner_id == matchup.contestant1_id else matchup.contestant1_id
    matchup.winner_id = winner_id
    matchup.status = MatchupStatus.COMPLETED.value
    matchup.completed_at = datetime.utcnow()
    matchup.notes = note

    winner = contestants.get(winner_id)
    loser = contestants.get(loser_id) if loser_id is not None else None
    if winner:
        winner.wins += 1
    if loser:
        loser.losses += 1
        loser.eliminated_round = round_number

    first = contestants.get(matchup.contestant1_id) if matchup.contestant1_id is not None else None
    second = contestants.get(matchup.contestant2_id) if matchup.contestant2_id is not None else None
    if first:
        first.votes_received += tally.contestant1_votes
    if second:
        second.votes_received += tally.contestant2_votes


async def _promote_winners(db: AsyncSession, tournament: Tournament, completed_round: Round) -> Round | None:
    """Закрывает раунд и раскладывает победителей по матчам следующего раунда.

    k-й победитель (по позиции матча) попадает в матч ceil(k/2): нечетный k в первый слот,
    четный во второй. Если следующего раунда нет, турнир завершается.
    """
    winners = list(
        (
            await db.scalars(
                select(Matchup)
                .where(
                    Matchup.round_id == completed_round.id,
                    Matchup.status == MatchupStatus.COMPLETED.value,
                    Matchup.winner_id.is_not(None),
                )
                .order_by(Matchup.position)
            )
        ).all()
    )
    now = datetime.utcnow()
    completed_round.status = RoundStatus.COMPLETED.value
    completed_round.completed_matchups = len(winners)
    completed_round.end_date = now

    next_round = await db.scalar(
        select(Round).where(
            Round.tournament_id == tournament.id,
            Round.round_number == completed_round.round_number + 1,
        )
    )
    if not next_round:
        tournament.status = TournamentStatus.COMPLETED.value
        logger.info("Tournament %s completed", tournament.id)
        return None

    slots = {
        matchup.position: matchup
        for matchup in (await db.scalars(select(Matchup).where(Matchup.round_id == next_round.id))).all()
    }
    for index, source in enumerate(winners, start=1):
        target = slots.get((index + 1) // 2)
        if not target:
            raise ServiceError(f"Round {next_round.round_number} has no matchup at position {(index + 1) // 2}")
        if index % 2:
            target.contestant1_id = source.winner_id
        else:
            target.contestant2_id = source.winner_id

    next_round.status = RoundStatus.ACTIVE.value
    next_round.start_date = now
    for matchup in slots.values():
        if matchup.contestant1_id is not None and matchup.contestant2_id is not None:
            matchup.status = MatchupStatus.ACTIVE.value
    return next_round


async def force_advance_round(db: AsyncSession, tournament_id: int) -> dict:
    """Объявляет победителей во всех открытых матчах активного раунда и запускает следующий."""
    tournament = await db.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError("Tournament not found")
    current_round = await get_active_round(db, tournament_id)
    if not current_round:
        raise ConflictError("No active round found for tournament")

    matchups = (
        await db.scalars(
            select(Matchup)
            .where(
                Matchup.round_id == current_round.id,
                Matchup.status.in_(OPEN_MATCHUP_STATUSES),
                Matchup.contestant1_id.is_not(None),
                Matchup.contestant2_id.is_not(None),
            )
            .order_by(Matchup.position)
        )
    ).all()
    contestants = await _load_contestants(db, tournament_id)

    winners_declared = 0
    ties_resolved = 0
    for matchup in matchups:
        tally = await recount_matchup(db, matchup)
        winner_id, tie_broken = resolve_winner(tally, matchup.contestant1_id, matchup.contestant2_id)
        if tie_broken:
            ties_resolved += 1
        _complete_matchup(
            matchup,
            winner_id,
            tally,
            current_round.round_number,
            contestants,
            TIE_BROKEN_NOTE if tie_broken else FORCE_ADVANCE_NOTE,
        )
        winners_declared += 1
    await db.flush()

    next_round = await _promote_winners(db, tournament, current_round)
    await db.commit()

    if next_round:
        message = f"Advanced from {current_round.name} to {next_round.name}"
    else:
        message = f"{current_round.name} completed, tournament finished"
    logger.info(
        "Force advance tournament %s round %s: winners=%s ties=%s",
        tournament_id,
        current_round.round_number,
        winners_declared,
        ties_resolved,
    )
    return {
        "success": True,
        "winners_declared": winners_declared,
        "ties_resolved": ties_resolved,
        "round_advanced": True,
        "tournament_completed": next_round is None,
        "message": message,
    }


async def advance_to_next_round(db: AsyncSession, tournament_id: int) -> dict:
    """Штатный переход: разрешен только когда все матчи активного раунда завершены."""
    tournament = await db.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError("Tournament not found")
    current_round = await get_active_round(db, tournament_id)
    if not current_round:
        raise ConflictError("No active round found for tournament")

    total = await db.scalar(select(func.count(Matchup.id)).where(Matchup.round_id == current_round.id)) or 0
    completed = (
        await db.scalar(
            select(func.count(Matchup.id)).where(
                Matchup.round_id == current_round.id,
                Matchup.status == MatchupStatus.COMPLETED.value,
            )
        )
        or 0
    )
    if completed < total:
        raise ConflictError(
            f"Not all matchups in current round are completed. Completed: {completed}, Total: {total}"
        )

    next_round = await _promote_winners(db, tournament, current_round)
    await db.commit()
    logger.info("Tournament %s advanced past round %s", tournament_id, current_round.round_number)
    return {
        "success": True,
        "tournament_completed": next_round is None,
        "next_round_number": next_round.round_number if next_round else None,
    }


async def _finish_round_if_done(db: AsyncSession, tournament_id: int, round_id: int) -> Round | None:
    open_count = (
        await db.scalar(
            select(func.count(Matchup.id)).where(
                Matchup.round_id == round_id,
                Matchup.status != MatchupStatus.COMPLETED.value,
            )
        )
        or 0
    )
    if open_count:
        return None
    tournament = await db.get(Tournament, tournament_id)
    round_ = await db.get(Round, round_id)
    if not tournament or not round_ or round_.status != RoundStatus.ACTIVE.value:
        return None
    return await _promote_winners(db, tournament, round_)


async def finalize_matchup(db: AsyncSession, matchup_id: int) -> Matchup:
    """Завершает активный матч по текущему счету; последний матч раунда запускает следующий раунд."""
    matchup = await db.get(Matchup, matchup_id)
    if not matchup:
        raise NotFoundError("Matchup not found")
    if matchup.status != MatchupStatus.ACTIVE.value:
        raise ConflictError(f"Matchup in status {matchup.status} cannot be completed")
    if matchup.contestant1_id is None or matchup.contestant2_id is None:
        raise ConflictError("Cannot complete matchup without both contestants")

    tournament = await db.get(Tournament, matchup.tournament_id)
    round_ = await db.get(Round, matchup.round_id)
    tally = await recount_matchup(db, matchup)
    if tally.total_votes == 0:
        raise ConflictError("Cannot complete matchup without votes or declared winner")
    if tally.is_tie and not tournament.allow_ties:
        raise ConflictError("Matchup is tied, cast a tie-breaker vote first")

    winner_id, tie_broken = resolve_winner(tally, matchup.contestant1_id, matchup.contestant2_id)
    contestants = await _load_contestants(db, matchup.tournament_id)
    _complete_matchup(
        matchup,
        winner_id,
        tally,
        round_.round_number,
        contestants,
        FINALIZED_TIE_NOTE if tie_broken else FINALIZED_NOTE,
    )
    await db.flush()
    await _finish_round_if_done(db, matchup.tournament_id, matchup.round_id)
    await db.commit()
    logger.info("Matchup %s finalized, winner %s", matchup_id, winner_id)
    return matchup


async def override_matchup_winner(db: AsyncSession, matchup_id: int, winner_id: int) -> Matchup:
    matchup = await db.get(Matchup, matchup_id)
    if not matchup:
        raise NotFoundError("Matchup not found")
    if matchup.status not in OPEN_MATCHUP_STATUSES:
        raise ConflictError(f"Matchup in status {matchup.status} cannot be overridden")
    if matchup.contestant1_id is None or matchup.contestant2_id is None:
        raise ConflictError("Cannot complete matchup without both contestants")
    if winner_id not in (matchup.contestant1_id, matchup.contestant2_id):
        raise ServiceError("Winner must be one of the matchup contestants")

    round_ = await db.get(Round, matchup.round_id)
    tally = await recount_matchup(db, matchup)
    contestants = await _load_contestants(db, matchup.tournament_id)
    _complete_matchup(matchup, winner_id, tally, round_.round_number, contestants, OVERRIDE_NOTE)
    await db.flush()
    await _finish_round_if_done(db, matchup.tournament_id, matchup.round_id)
    await db.commit()
    logger.info("Matchup %s winner overridden to %s", matchup_id, winner_id)
    return matchup


async def lock_round(db: AsyncSession, round_id: int, locked: bool = True) -> Round:
    # Заблокированный раунд не принимает новые голоса.
    round_ = await db.get(Round, round_id)
    if not round_:
        raise NotFoundError("Round not found")
    round_.locked_at = datetime.utcnow() if locked else None
    await db.commit()
    logger.info("Round %s %s", round_id, "locked" if locked else "unlocked")
    return round_


async def reset_tournament_bracket(db: AsyncSession, tournament_id: int) -> Tournament:
    """Удаляет голоса, матчи и раунды, возвращает турнир в registration и обнуляет статистику."""
    tournament = await db.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError("Tournament not found")
    if tournament.status == TournamentStatus.DRAFT.value:
        raise ConflictError("Cannot reset a tournament that has not started")

    await clear_bracket(db, tournament_id)
    for contestant in (await _load_contestants(db, tournament_id)).values():
        contestant.votes_received = 0
        contestant.wins = 0
        contestant.losses = 0
        contestant.eliminated_round = None
        contestant.is_active = True
    tournament.status = TournamentStatus.REGISTRATION.value
    await db.commit()
    logger.info("Bracket reset for tournament %s", tournament_id)
    return tournament
