import unittest

from sqlalchemy import select

from app.models.tournament import Matchup
from app.models.user import User
from app.services.advancement import force_advance_round, lock_round
from app.services.bracket import generate_single_elimination_bracket
from app.services.errors import ConflictError, NotFoundError, PermissionDeniedError, ServiceError
from app.services.voting import (
    cast_tie_breaker_vote,
    cast_vote,
    delete_vote,
    get_matchup_results,
    get_matchup_vote_analysis,
    get_tie_breaking_opportunities,
    get_user_vote,
    get_user_votes_for_tournament,
    get_vote_history,
    get_voting_status,
    remove_tie_breaker_vote,
)
from contest_factory import create_test_engine, create_tournament_with_contestants, create_user, make_sessionmaker


class VotingTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.engine = await create_test_engine()
        self.sessionmaker = make_sessionmaker(self.engine)

    async def asyncTearDown(self) -> None:
        await self.engine.dispose()

    async def _started(self, db, is_public: bool = True):
        tournament, contestants = await create_tournament_with_contestants(db, size=4, is_public=is_public)
        rounds = await generate_single_elimination_bracket(db, tournament.id)
        matchups = list(
            (await db.scalars(select(Matchup).where(Matchup.round_id == rounds[0].id).order_by(Matchup.position))).all()
        )
        return tournament, {c.name: c for c in contestants}, rounds, matchups

    async def test_second_vote_replaces_choice(self) -> None:
        async with self.sessionmaker() as db:
            _, by_name, _, (first, _) = await self._started(db)
            voter = await create_user(db, "voter")

            await cast_vote(db, voter.id, first.id, by_name["C1"].id)
            await cast_vote(db, voter.id, first.id, by_name["C4"].id)

            vote = await get_user_vote(db, voter.id, first.id)
            self.assertEqual(vote.selected_contestant_id, by_name["C4"].id)
            results = await get_matchup_results(db, first.id)
            self.assertEqual((results["contestant1_votes"], results["contestant2_votes"]), (0, 1))
            self.assertEqual(results["winner_id"], by_name["C4"].id)

    async def test_vote_must_pick_matchup_contestant(self) -> None:
        async with self.sessionmaker() as db:
            _, by_name, _, (first, _) = await self._started(db)
            voter = await create_user(db, "voter")

            with self.assertRaises(ServiceError):
                await cast_vote(db, voter.id, first.id, by_name["C2"].id)

    async def test_private_tournament_rejects_votes(self) -> None:
        async with self.sessionmaker() as db:
            _, by_name, _, (first, _) = await self._started(db, is_public=False)
            voter = await create_user(db, "voter")

            with self.assertRaises(PermissionDeniedError):
                await cast_vote(db, voter.id, first.id, by_name["C1"].id)

    async def test_locked_round_and_upcoming_matchups_reject_votes(self) -> None:
        async with self.sessionmaker() as db:
            _, by_name, rounds, (first, _) = await self._started(db)
            voter = await create_user(db, "voter")
            final = await db.scalar(select(Matchup).where(Matchup.round_id == rounds[1].id))

            with self.assertRaises(ConflictError):
                await cast_vote(db, voter.id, final.id, by_name["C1"].id)

            await lock_round(db, rounds[0].id)
            with self.assertRaises(ConflictError):
                await cast_vote(db, voter.id, first.id, by_name["C1"].id)

    async def test_delete_vote_recounts(self) -> None:
        async with self.sessionmaker() as db:
            _, by_name, _, (first, _) = await self._started(db)
            voter = await create_user(db, "voter")
            await cast_vote(db, voter.id, first.id, by_name["C1"].id)

            await delete_vote(db, voter.id, first.id)

            self.assertEqual(first.total_votes, 0)
            self.assertIsNone(await get_user_vote(db, voter.id, first.id))
            with self.assertRaises(NotFoundError):
                await delete_vote(db, voter.id, first.id)

    async def test_tie_breaker_vote_is_weighted(self) -> None:
        async with self.sessionmaker() as db:
            tournament, by_name, _, (first, second) = await self._started(db)
            alice = await create_user(db, "alice")
            bob = await create_user(db, "bob")
            await cast_vote(db, alice.id, first.id, by_name["C1"].id)
            await cast_vote(db, bob.id, first.id, by_name["C4"].id)

            opportunities = await get_tie_breaking_opportunities(db, tournament.id)
            self.assertEqual([o["matchup_id"] for o in opportunities], [first.id, second.id])
            self.assertFalse(opportunities[0]["has_admin_vote"])

            vote = await cast_tie_breaker_vote(db, first.id, by_name["C4"].id, weight=3)

            self.assertTrue(vote.is_admin_vote)
            system_user = await db.get(User, vote.user_id)
            self.assertEqual(system_user.username, "system-admin")
            self.assertTrue(system_user.is_system)
            results = await get_matchup_results(db, first.id)
            self.assertEqual((results["contestant1_votes"], results["contestant2_votes"]), (1, 4))
            self.assertFalse(results["is_tie"])
            opportunities = await get_tie_breaking_opportunities(db, tournament.id)
            self.assertEqual([o["matchup_id"] for o in opportunities], [second.id])

            self.assertEqual(await remove_tie_breaker_vote(db, first.id), 1)
            self.assertTrue((await get_matchup_results(db, first.id))["is_tie"])

    async def test_tie_breaker_weight_is_bounded(self) -> None:
        async with self.sessionmaker() as db:
            _, by_name, _, (first, _) = await self._started(db)

            with self.assertRaises(ServiceError):
                await cast_tie_breaker_vote(db, first.id, by_name["C1"].id, weight=0)
            with self.assertRaises(ServiceError):
                await cast_tie_breaker_vote(db, first.id, by_name["C1"].id, weight=11)

    async def test_voting_status_and_history(self) -> None:
        async with self.sessionmaker() as db:
            tournament, by_name, _, (first, _) = await self._started(db)
            voter = await create_user(db, "voter")
            await cast_vote(db, voter.id, first.id, by_name["C4"].id)

            status = await get_voting_status(db, voter.id, tournament.id)
            self.assertEqual(status["active_matchups"], 2)
            self.assertEqual(status["voted_matchups"], 1)
            self.assertEqual(status["available_votes"], 1)
            self.assertEqual(status["completion_percentage"], 50.0)
            self.assertEqual(len(await get_user_votes_for_tournament(db, voter.id, tournament.id)), 1)

            history = await get_vote_history(db, voter.id)
            self.assertEqual(history["total"], 1)
            self.assertEqual(history["items"][0]["result"], "PENDING")

            await force_advance_round(db, tournament.id)
            history = await get_vote_history(db, voter.id)
            self.assertEqual(history["items"][0]["result"], "WON")
            self.assertEqual(history["items"][0]["contestant_name"], "C4")

    async def test_vote_analysis_splits_regular_and_admin(self) -> None:
        async with self.sessionmaker() as db:
            _, by_name, _, (first, _) = await self._started(db)
            voter = await create_user(db, "voter")
            await cast_vote(db, voter.id, first.id, by_name["C1"].id)
            await cast_tie_breaker_vote(db, first.id, by_name["C4"].id, weight=2)

            analysis = await get_matchup_vote_analysis(db, first.id)

            self.assertEqual(analysis["regular_votes"], 1)
            self.assertEqual(analysis["admin_votes"], 1)
            self.assertEqual({v["username"] for v in analysis["votes"]}, {"voter", "system-admin"})
            self.assertIsNotNone(analysis["first_vote_at"])
