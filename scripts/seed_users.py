"""
Seed users (and admins) from a JSON file into the database.

Usage:
    python -m scripts.seed_users data/users.example.json
"""
import asyncio
import json
import sys
from pathlib import Path
from sqlalchemy import select
from shared.database import async_session
from agents.sdca.models.db import Admin, User

DEFAULT_PATH = Path(__file__).parent.parent / "data" / "users.example.json"


async def seed(path: Path):
    with open(path) as f:
        users = json.load(f)

    print(f"Seeding {len(users)} users...")
    async with async_session() as db:
        for u in users:
            existing = (await db.execute(select(User).where(User.email == u["email"]))).scalar_one_or_none()
            if existing is None:
                existing = User(name=u["name"], email=u["email"], address=u.get("address"))
                db.add(existing)
                await db.flush()
            if u.get("admin"):
                admin = (await db.execute(select(Admin).where(Admin.user_id == existing.id))).scalar_one_or_none()
                if admin is None:
                    db.add(Admin(user_id=existing.id, email=existing.email))
        await db.commit()
    print("Users seeded successfully.")


if __name__ == "__main__":
    asyncio.run(seed(Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_PATH))
