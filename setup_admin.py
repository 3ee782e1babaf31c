"""Seed the first super-admin account. Run once against a fresh database."""

import logging
import os

from pymongo.errors import DuplicateKeyError

from auth.auth_utils import hash_password
from database import ensure_indexes, get_database
from logging_config import setup_logging

logger = logging.getLogger("setup_admin")


def main():
    setup_logging()
    db = get_database()
    ensure_indexes(db)
    users_collection = db["users"]

    users = list(users_collection.find({}, {"_id": 0, "password": 0}))
    logger.info(f"{len(users)} existing users")
    for user in users:
        logger.info(f"  {user['username']} ({user['role']})")

    username = os.getenv("ADMIN_USERNAME", "superadmin")
    password = os.getenv("ADMIN_PASSWORD")
    if not password:
        raise SystemExit("ADMIN_PASSWORD is not set")

    try:
        users_collection.insert_one({
            "username": username,
            "password": hash_password(password),
            "role": "superadmin"
        })
    except DuplicateKeyError:
        logger.info(f"User {username} already exists, nothing to do")
        return

    logger.info(f"Super admin {username} created")


if __name__ == "__main__":
    main()
