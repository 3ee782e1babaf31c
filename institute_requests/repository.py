import logging
from typing import List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends
from pymongo import ASCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import get_database
from errors import DuplicateError, ServerError
from institute_requests.models import RequestStatus

logger = logging.getLogger(__name__)

# unique index / field -> public field name and message
NATURAL_KEYS = {
    "activeAisheCode": ("aisheCode", "Institute with this AISHE code already exists"),
    "activeEmail": ("email", "Institute with this email already exists"),
    "aisheCode": ("aisheCode", "Institute is already registered in the system"),
    "code": ("code", "Institute code already in use"),
    "username": ("username", "User already exists"),
}


def _to_object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _duplicate_from(exc: DuplicateKeyError, doc: dict) -> DuplicateError:
    """Translate a unique index violation into the natural key that collided."""
    details = exc.details or {}
    fields = list((details.get("keyPattern") or {}).keys())
    if not fields:
        fields = [f for f in NATURAL_KEYS if f in str(exc)]

    for field in fields:
        if field in NATURAL_KEYS:
            public, message = NATURAL_KEYS[field]
            return DuplicateError(message, key=public, value=doc.get(field))

    return DuplicateError("Record already exists")


class InstituteRequestRepository:
    """
    MongoDB persistence for registration requests and the records an
    approval provisions (institutes and institute login users).

    Every pymongo failure other than a unique key violation is raised as
    ServerError; client operation timeouts come from the MongoClient
    ``timeoutMS`` setting.
    """

    def __init__(self, db: Database):
        self.requests = db["institute_requests"]
        self.institutes = db["institutes"]
        self.users = db["users"]

    # ----------------------------
    # REQUESTS
    # ----------------------------
    def insert_request(self, doc: dict) -> str:
        try:
            result = self.requests.insert_one(doc)
        except DuplicateKeyError as e:
            raise _duplicate_from(e, doc)
        except PyMongoError as e:
            logger.error(f"Insert of institute request failed: {e}")
            raise ServerError()
        return str(result.inserted_id)

    def list_requests(
        self,
        status: Optional[str] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[dict], int]:
        query = {}
        if status:
            query["status"] = status

        try:
            cursor = self.requests.find(query).sort(
                [("createdAt", ASCENDING), ("_id", ASCENDING)]
            ).skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            docs = list(cursor)
            total = self.requests.count_documents(query)
        except PyMongoError as e:
            logger.error(f"Listing institute requests failed: {e}")
            raise ServerError()

        return docs, total

    def get_request(self, request_id: str) -> Optional[dict]:
        oid = _to_object_id(request_id)
        if oid is None:
            return None
        try:
            return self.requests.find_one({"_id": oid})
        except PyMongoError as e:
            logger.error(f"Fetching institute request {request_id} failed: {e}")
            raise ServerError()

    def transition(
        self,
        request_id: str,
        from_status: RequestStatus,
        changes: dict,
        unset: Tuple[str, ...] = (),
    ) -> Optional[dict]:
        """
        Compare-and-set on ``status``: apply ``changes`` only while the
        request is still in ``from_status``. Returns the updated document,
        or None when the id is unknown or the status already moved on.
        """
        oid = _to_object_id(request_id)
        if oid is None:
            return None

        update = {"$set": changes}
        if unset:
            update["$unset"] = {field: "" for field in unset}

        try:
            return self.requests.find_one_and_update(
                {"_id": oid, "status": from_status.value},
                update,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error(f"Status change of institute request {request_id} failed: {e}")
            raise ServerError()

    # ----------------------------
    # PROVISIONING
    # ----------------------------
    def insert_institute(self, doc: dict) -> str:
        try:
            result = self.institutes.insert_one(doc)
        except DuplicateKeyError as e:
            raise _duplicate_from(e, doc)
        except PyMongoError as e:
            logger.error(f"Insert of institute failed: {e}")
            raise ServerError()
        return str(result.inserted_id)

    def insert_user(self, doc: dict) -> str:
        try:
            result = self.users.insert_one(doc)
        except DuplicateKeyError as e:
            raise _duplicate_from(e, doc)
        except PyMongoError as e:
            logger.error(f"Insert of user {doc.get('username')} failed: {e}")
            raise ServerError()
        return str(result.inserted_id)

    def delete_provisioned(self, institute_id: str, username: Optional[str]) -> None:
        """Undo a provisioning whose approval lost the status race."""
        try:
            self.institutes.delete_one({"_id": _to_object_id(institute_id)})
            if username:
                self.users.delete_one({"username": username})
        except PyMongoError as e:
            logger.error(f"Cleanup of institute {institute_id} failed: {e}")
            raise ServerError()


def get_repository(db: Database = Depends(get_database)) -> InstituteRequestRepository:
    return InstituteRequestRepository(db)
