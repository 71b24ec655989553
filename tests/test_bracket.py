import unittest

from sqlalchemy import select

from app.models.tournament import Matchup, MatchupStatus, Round, RoundStatus, Tournament, TournamentStatus
from app.services.bracket import (
    can_start_tournament,
    count_rounds,
    generate_round_name,
    generate_single_elimination_bracket,
    plan_first_round,
    seeding_pairs,
)
from app.services.errors import ConflictError, ServiceError
from contest_factory import create_test_engine, create_tournament_with_contestants, make_sessionmaker


class BracketMathTests(unittest.TestCase):
    def test_seeding_pairs_match_top_with_bottom(self) -> None:
        self.assertEqual(seeding_pairs(8), [(1, 8), (2, 7), (3, 6), (4, 5)])
        self.assertEqual(seeding_pairs(2), [(1, 2)])

    def test_count_rounds(self) -> None:
        self.assertEqual(count_rounds(4), 2)
        self.assertEqual(count_rounds(8), 3)
        self.assertEqual(count_rounds(64), 6)

    def test_round_names_count_back_from_final(self) -> None:
        self.assertEqual(generate_round_name(8, 3), "Final")
        self.assertEqual(generate_round_name(8, 2), "Semifinals")
        self.assertEqual(generate_round_name(8, 1), "Quarterfinals")
        self.assertEqual(generate_round_name(4, 1), "Semifinals")
        self.assertEqual(generate_round_name(64, 1), "Round 1")
        self.assertEqual(generate_round_name(64, 3), "Round 3")

    def test_single_contestant_quadrants_play_across(self) -> None:
        pairs = plan_first_round({1: [10], 2: [20], 3: [30], 4: [40]})
        self.assertEqual(pairs, [(10, 40), (20, 30)])

    def test_pairs_stay_inside_quadrant(self) -> None:
        pairs = plan_first_round({1: [1, 2, 3, 4], 2: [5, 6, 7, 8], 3: [9, 10, 11, 12], 4: [13, 14, 15, 16]})
        self.assertEqual(pairs[:2], [(1, 4), (2, 3)])
        self.assertEqual(pairs[-2:], [(13, 16), (14, 15)])
        self.assertEqual(len(pairs), 8)

    def test_unbalanced_quadrants_are_rejected(self) -> None:
        with self.assertRaises(ServiceError):
            plan_first_round({1: [1, 2], 2: [3], 3: [4, 5], 4: [6, 7]})
        with self.assertRaises(ServiceError):
            plan_first_round({1: [1, 2, 3], 2: [4, 5, 6], 3: [7, 8, 9], 4: [10, 11, 12]})


class BracketGenerationTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.engine = await create_test_engine()
        self.sessionmaker = make_sessionmaker(self.engine)

    async def asyncTearDown(self) -> None:
        await self.engine.dispose()

    async def test_generates_all_rounds_for_eight_contestants(self) -> None:
        async with self.sessionmaker() as db:
            tournament, contestants = await create_tournament_with_contestants(db, size=8)

            rounds = await generate_single_elimination_bracket(db, tournament.id)

            self.assertEqual([r.name for r in rounds], ["Quarterfinals", "Semifinals", "Final"])
            self.assertEqual([r.status for r in rounds], ["active", "upcoming", "upcoming"])
            self.assertEqual([r.total_matchups for r in rounds], [4, 2, 1])

            first_round = list(
                (await db.scalars(select(Matchup).where(Matchup.round_id == rounds[0].id).order_by(Matchup.position))).all()
            )
            by_id = {c.id: c.name for c in contestants}
            self.assertEqual(
                [(by_id[m.contestant1_id], by_id[m.contestant2_id]) for m in first_round],
                [("C1", "C2"), ("C3", "C4"), ("C5", "C6"), ("C7", "C8")],
            )
            self.assertTrue(all(m.status == MatchupStatus.ACTIVE.value for m in first_round))
            self.assertEqual([c.quadrant for c in contestants], [1, 1, 2, 2, 3, 3, 4, 4])

            later = (await db.scalars(select(Matchup).where(Matchup.round_id != rounds[0].id))).all()
            self.assertEqual(len(later), 3)
            self.assertTrue(all(m.contestant1_id is None and m.contestant2_id is None for m in later))

            refreshed = await db.get(Tournament, tournament.id)
            self.assertEqual(refreshed.status, TournamentStatus.ACTIVE.value)

    async def test_sixteen_contestants_pair_inside_quadrants(self) -> None:
        async with self.sessionmaker() as db:
            tournament, contestants = await create_tournament_with_contestants(db, size=16)

            rounds = await generate_single_elimination_bracket(db, tournament.id)

            self.assertEqual([r.name for r in rounds], ["Round 1", "Quarterfinals", "Semifinals", "Final"])
            self.assertEqual([r.total_matchups for r in rounds], [8, 4, 2, 1])
            first_round = list(
                (await db.scalars(select(Matchup).where(Matchup.round_id == rounds[0].id).order_by(Matchup.position))).all()
            )
            by_id = {c.id: c.name for c in contestants}
            self.assertEqual(
                [(by_id[m.contestant1_id], by_id[m.contestant2_id]) for m in first_round],
                [
                    ("C1", "C4"),
                    ("C2", "C3"),
                    ("C5", "C8"),
                    ("C6", "C7"),
                    ("C9", "C12"),
                    ("C10", "C11"),
                    ("C13", "C16"),
                    ("C14", "C15"),
                ],
            )
            self.assertEqual([m.position for m in first_round], list(range(1, 9)))
            self.assertEqual([c.quadrant for c in contestants], [1] * 4 + [2] * 4 + [3] * 4 + [4] * 4)

    async def test_four_contestants_cross_quadrants(self) -> None:
        async with self.sessionmaker() as db:
            tournament, contestants = await create_tournament_with_contestants(db, size=4)

            rounds = await generate_single_elimination_bracket(db, tournament.id)

            matchups = list(
                (await db.scalars(select(Matchup).where(Matchup.round_id == rounds[0].id).order_by(Matchup.position))).all()
            )
            by_id = {c.id: c.name for c in contestants}
            self.assertEqual(
                [(by_id[m.contestant1_id], by_id[m.contestant2_id]) for m in matchups],
                [("C1", "C4"), ("C2", "C3")],
            )
            self.assertEqual(rounds[-1].name, "Final")

    async def test_regenerating_replaces_previous_bracket(self) -> None:
        async with self.sessionmaker() as db:
            tournament, _ = await create_tournament_with_contestants(db, size=4)
            await generate_single_elimination_bracket(db, tournament.id)
            tournament.status = TournamentStatus.REGISTRATION.value
            await db.commit()

            await generate_single_elimination_bracket(db, tournament.id)

            round_count = len((await db.scalars(select(Round).where(Round.tournament_id == tournament.id))).all())
            self.assertEqual(round_count, 2)

    async def test_requires_full_roster(self) -> None:
        async with self.sessionmaker() as db:
            tournament, _ = await create_tournament_with_contestants(db, size=8, contestant_count=6)

            self.assertFalse(await can_start_tournament(db, tournament.id))
            with self.assertRaises(ConflictError):
                await generate_single_elimination_bracket(db, tournament.id)

    async def test_active_tournament_cannot_restart(self) -> None:
        async with self.sessionmaker() as db:
            tournament, _ = await create_tournament_with_contestants(db, size=4)
            self.assertTrue(await can_start_tournament(db, tournament.id))
            await generate_single_elimination_bracket(db, tournament.id)

            self.assertFalse(await can_start_tournament(db, tournament.id))
            with self.assertRaises(ConflictError):
                await generate_single_elimination_bracket(db, tournament.id)
            active_round = await db.scalar(select(Round).where(Round.status == RoundStatus.ACTIVE.value))
            self.assertEqual(active_round.round_number, 1)
