"""Seed script — populates the database with sample users for testing."""

import asyncio

from user_registry.database.engine import async_session_factory, init_db
from user_registry.database.repository import UserRepository
from user_registry.models.user import User

SAMPLE_USERS = [
    {"name": "Alice Johnson", "email": "alice@example.com", "mobile": "+15551234567"},
    {"name": "Bob Smith", "email": "bob@example.com", "mobile": "+15559876543"},
    {"name": "Carol Davis", "email": "carol@example.com", "mobile": "+442071234567"},
    {"name": "Dan Wilson", "email": "dan@example.com", "mobile": "+919876543210"},
]


async def seed() -> None:
    """Insert sample users, leaving any that already exist alone."""
    await init_db()
    async with async_session_factory() as session:
        repo = UserRepository(session)
        outcome = await repo.insert_many([User(**data) for data in SAMPLE_USERS])
    print(
        f"✅ Seeded {len(outcome.inserted)} users into the database "
        f"({len(outcome.violations)} already present)."
    )


if __name__ == "__main__":
    asyncio.run(seed())
