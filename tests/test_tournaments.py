import unittest

from app.core.session import SessionData
from app.models.tournament import TournamentStatus
from app.services.errors import ConflictError, NotFoundError, PermissionDeniedError, ServiceError
from app.services.tournaments import (
    change_status,
    create_tournament,
    delete_tournament,
    ensure_can_manage,
    get_bracket_data,
    get_tournament,
    get_tournament_stats,
    list_tournaments,
    slugify,
    update_tournament,
    validate_size,
    validate_status_transition,
)
from contest_factory import create_test_engine, create_tournament_with_contestants, create_user, make_sessionmaker


class TournamentRulesTests(unittest.TestCase):
    def test_slugify(self) -> None:
        self.assertEqual(slugify("Best Pizza Ever!!"), "best-pizza-ever")
        self.assertEqual(slugify("  Multi   Space -- Test "), "multi-space-test")
        self.assertEqual(slugify("!!!"), "tournament")

    def test_status_transitions(self) -> None:
        validate_status_transition("draft", "registration")
        validate_status_transition("registration", "active")
        validate_status_transition("active", "completed")
        validate_status_transition("active", "cancelled")
        for current, new in [("draft", "active"), ("completed", "active"), ("cancelled", "draft"), ("active", "draft")]:
            with self.assertRaises(ConflictError):
                validate_status_transition(current, new)

    def test_size_must_be_power_of_two(self) -> None:
        validate_size(4)
        validate_size(64)
        for size in (2, 6, 12, 512):
            with self.assertRaises(ServiceError):
                validate_size(size)


class TournamentServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.engine = await create_test_engine()
        self.sessionmaker = make_sessionmaker(self.engine)

    async def asyncTearDown(self) -> None:
        await self.engine.dispose()

    async def test_create_assigns_unique_slug(self) -> None:
        async with self.sessionmaker() as db:
            owner = await create_user(db, "owner")

            first = await create_tournament(db, owner.id, "Pizza Toppings", 8)
            second = await create_tournament(db, owner.id, "Pizza Toppings", 8)
            third = await create_tournament(db, owner.id, "Pizza Toppings", 8)

            self.assertEqual([first.slug, second.slug, third.slug], ["pizza-toppings", "pizza-toppings-2", "pizza-toppings-3"])
            self.assertEqual(first.status, TournamentStatus.DRAFT.value)
            self.assertEqual(first.max_contestants, 8)
            self.assertEqual(first.quadrant_names, ["Region A", "Region B", "Region C", "Region D"])
            self.assertEqual((await get_tournament(db, "pizza-toppings-2")).id, second.id)
            self.assertEqual((await get_tournament(db, str(third.id))).slug, "pizza-toppings-3")

    async def test_numeric_slug_is_found_when_id_misses(self) -> None:
        async with self.sessionmaker() as db:
            tournament = await create_tournament(db, None, "2024", 4)

            self.assertEqual(tournament.slug, "2024")
            self.assertEqual((await get_tournament(db, "2024")).id, tournament.id)
            self.assertEqual((await get_tournament(db, str(tournament.id))).id, tournament.id)
            with self.assertRaises(NotFoundError):
                await get_tournament(db, 2024)

    async def test_update_renames_and_resizes(self) -> None:
        async with self.sessionmaker() as db:
            tournament = await create_tournament(db, None, "Snacks", 8)

            await update_tournament(db, tournament, name="Late Night Snacks", size=16, allow_ties=True)

            self.assertEqual(tournament.slug, "late-night-snacks")
            self.assertEqual(tournament.max_contestants, 16)
            self.assertTrue(tournament.allow_ties)
            with self.assertRaises(ServiceError):
                await update_tournament(db, tournament, status="active")

    async def test_change_status_to_active_builds_bracket(self) -> None:
        async with self.sessionmaker() as db:
            tournament, _ = await create_tournament_with_contestants(db, size=4)

            await change_status(db, tournament, TournamentStatus.ACTIVE.value)

            self.assertEqual(tournament.status, TournamentStatus.ACTIVE.value)
            bracket = await get_bracket_data(db, tournament.id)
            self.assertEqual([r["name"] for r in bracket["rounds"]], ["Semifinals", "Final"])
            self.assertEqual(bracket["rounds"][0]["matchups"][0]["contestant1_name"], "C1")
            self.assertEqual(bracket["rounds"][0]["matchups"][0]["contestant2_name"], "C4")
            self.assertIsNone(bracket["rounds"][1]["matchups"][0]["contestant1_name"])

            stats = await get_tournament_stats(db, tournament.id)
            self.assertEqual((stats["contestants"], stats["rounds"], stats["matchups"]), (4, 2, 3))

            with self.assertRaises(ConflictError):
                await delete_tournament(db, tournament)

    async def test_list_hides_private_tournaments_from_strangers(self) -> None:
        async with self.sessionmaker() as db:
            owner = await create_user(db, "owner")
            await create_tournament(db, owner.id, "Public", 4)
            await create_tournament(db, owner.id, "Hidden", 4, is_public=False)

            anonymous = await list_tournaments(db)
            own = await list_tournaments(db, viewer=SessionData(user_id=owner.id, is_admin=False))
            admin = await list_tournaments(db, viewer=SessionData(user_id=None, is_admin=True))

            self.assertEqual([t.name for t in anonymous], ["Public"])
            self.assertEqual(len(own), 2)
            self.assertEqual(len(admin), 2)

    async def test_only_creator_or_admin_can_manage(self) -> None:
        async with self.sessionmaker() as db:
            owner = await create_user(db, "owner")
            tournament = await create_tournament(db, owner.id, "Owned", 4)

            ensure_can_manage(tournament, SessionData(user_id=owner.id, is_admin=False))
            ensure_can_manage(tournament, SessionData(user_id=None, is_admin=True))
            with self.assertRaises(PermissionDeniedError):
                ensure_can_manage(tournament, SessionData(user_id=owner.id + 1, is_admin=False))
            with self.assertRaises(PermissionDeniedError):
                ensure_can_manage(tournament, None)
