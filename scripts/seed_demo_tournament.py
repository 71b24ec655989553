import argparse
import asyncio
import random
import string

from app.core.logging import configure_logging
from app.db.session import SessionLocal
from app.models.user import User
from app.services.bracket import generate_single_elimination_bracket
from app.services.contestants import generate_placeholder_contestants
from app.services.tournaments import create_tournament


def _random_username(prefix: str) -> str:
    # Генерируем короткое имя тестового пользователя.
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"{prefix}_{suffix}"


async def main(size: int, voters: int) -> None:
    """Создает демо-турнир с участниками-заглушками, запускает сетку и добавляет голосующих."""
    async with SessionLocal() as db:
        owner_name = _random_username("owner")
        owner = User(username=owner_name, email=f"{owner_name}@example.com", display_name=owner_name, is_admin=True)
        db.add(owner)
        await db.commit()

        tournament = await create_tournament(db, owner.id, f"Demo Cup {random.randint(100, 999)}", size)
        await generate_placeholder_contestants(db, tournament)
        await generate_single_elimination_bracket(db, tournament.id)

        for index in range(voters):
            username = _random_username(f"voter{index + 1}")
            db.add(User(username=username, email=f"{username}@example.com", display_name=username))
        await db.commit()

        print(f"Создан турнир {tournament.slug} (id={tournament.id}) на {size} участников и {voters} голосующих")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--size", type=int, default=16)
    parser.add_argument("--voters", type=int, default=20)
    args = parser.parse_args()
    configure_logging()
    asyncio.run(main(args.size, args.voters))
