import logging
from functools import lru_cache

from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import MONGO_DB_NAME, MONGO_TIMEOUT_MS, MONGO_URL

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "student_records"


@lru_cache(maxsize=1)
def get_client() -> MongoClient:
    if not MONGO_URL:
        raise RuntimeError("MONGO_URL is not set")

    # timeoutMS bounds every operation, not only server selection
    return MongoClient(
        MONGO_URL,
        timeoutMS=MONGO_TIMEOUT_MS,
        serverSelectionTimeoutMS=MONGO_TIMEOUT_MS,
        tz_aware=True,
    )


def get_database() -> Database:
    client = get_client()
    if MONGO_DB_NAME:
        return client[MONGO_DB_NAME]
    return client.get_default_database(default=DEFAULT_DB_NAME)


def get_users_collection():
    return get_database()["users"]


def ensure_indexes(db: Database) -> None:
    """Create the indexes the services rely on for uniqueness."""
    requests = db["institute_requests"]
    requests.create_index([("status", ASCENDING)])
    requests.create_index([("createdAt", ASCENDING)])
    # active* fields only exist while a request is Pending or Approved,
    # so sparse unique indexes reserve the natural keys of active requests only
    requests.create_index(
        [("activeAisheCode", ASCENDING)], name="active_aishe_code", unique=True, sparse=True
    )
    requests.create_index(
        [("activeEmail", ASCENDING)], name="active_email", unique=True, sparse=True
    )

    institutes = db["institutes"]
    institutes.create_index([("code", ASCENDING)], unique=True)
    institutes.create_index([("aisheCode", ASCENDING)], unique=True)

    db["users"].create_index([("username", ASCENDING)], unique=True)

    logger.info("MongoDB indexes ensured")
