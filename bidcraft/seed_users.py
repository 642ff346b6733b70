"""
Seed one account per role into the users collection.

Run with ``python -m bidcraft.seed_users``. Safe to run repeatedly: existing
accounts get their role, status and password reset.
"""
import sys
import uuid

from pymongo import MongoClient

from bidcraft.clock import utcnow
from bidcraft.config import settings
from bidcraft.models import Role, UserStatus
from bidcraft.routers.auth import hash_password

SEED_USERS = [
    {"email": "admin@bidcraft.app", "password": "Admin#12345", "role": Role.ADMIN},
    {"email": "buyer@bidcraft.app", "password": "Buyer#12345", "role": Role.BUYER},
    {"email": "provider@bidcraft.app", "password": "Provider#12345", "role": Role.PROVIDER},
]


def seed_users(db, users=SEED_USERS):
    created_count = 0
    for data in users:
        now = utcnow()
        result = db.users.update_one(
            {"email": data["email"]},
            {
                "$set": {
                    "role": data["role"].value,
                    "status": UserStatus.ACTIVE.value,
                    "hashed_password": hash_password(data["password"]),
                    "updated_at": now,
                },
                "$setOnInsert": {"id": str(uuid.uuid4()), "created_at": now},
            },
            upsert=True,
        )
        if result.upserted_id is not None:
            created_count += 1
            print(f"Created: {data['email']} -> {data['role'].value}")
        else:
            print(f"Updated: {data['email']} -> {data['role'].value}")
    return created_count


def main():
    client = MongoClient(settings.MONGO_URI)
    try:
        created = seed_users(client[settings.MONGO_DB])
    finally:
        client.close()
    print(f"\nSeeding completed. Created {created} new users.")


if __name__ == '__main__':
    try:
        main()
    except Exception as e:
        print(f"Seed failed: {e}", file=sys.stderr)
        sys.exit(1)
