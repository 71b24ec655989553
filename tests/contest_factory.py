"""Вспомогательные функции для тестов: in-memory БД и готовые турниры."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.models.tournament import Contestant, Tournament, TournamentStatus
from app.models.user import User


async def create_test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    return engine


def make_sessionmaker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_user(db: AsyncSession, username: str, is_admin: bool = False) -> User:
    user = User(username=username, email=f"{username}@example.com", display_name=username, is_admin=is_admin)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_tournament_with_contestants(
    db: AsyncSession,
    size: int = 4,
    contestant_count: int | None = None,
    status: str = TournamentStatus.REGISTRATION.value,
    creator: User | None = None,
    is_public: bool = True,
    allow_ties: bool = False,
    slug: str = "test-cup",
) -> tuple[Tournament, list[Contestant]]:
    tournament = Tournament(
        name="Test Cup",
        slug=slug,
        status=status,
        size=size,
        max_contestants=size,
        is_public=is_public,
        allow_ties=allow_ties,
        created_by=creator.id if creator else None,
    )
    db.add(tournament)
    await db.flush()

    contestants = []
    for number in range(1, (contestant_count if contestant_count is not None else size) + 1):
        contestant = Contestant(tournament_id=tournament.id, name=f"C{number}", position=number, seed=number)
        db.add(contestant)
        contestants.append(contestant)
    await db.commit()
    return tournament, contestants
