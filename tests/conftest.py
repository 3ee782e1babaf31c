"""
Test configuration and fixtures.

MongoDB is replaced by in-memory doubles wired in through FastAPI's
dependency overrides, so no database server is needed.
"""
import copy
import os

os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-testing")
os.environ.pop("MONGO_URL", None)

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from auth.auth_utils import create_access_token, hash_password
from database import get_users_collection
from errors import DuplicateError
from institute_requests.models import RequestStatus
from institute_requests.repository import get_repository
from main import app

VALID_PAYLOAD = {
    "aisheCode": "U-0001",
    "instituteType": "Government",
    "state": "Maharashtra",
    "district": "Mumbai",
    "universityName": "Test University of Technology",
    "address": "123 University Road, Mumbai, Maharashtra, India",
    "email": "admin@testuniversity.edu.in",
    "headOfInstitute": {
        "name": "Dr. Rajesh Kumar",
        "email": "rajesh.kumar@testuniversity.edu.in",
        "contact": "9876543210",
        "alternateContact": "9876543211",
    },
    "modalOfficer": {
        "name": "Prof. Priya Sharma",
        "email": "priya.sharma@testuniversity.edu.in",
        "contact": "9876543212",
        "alternateContact": "9876543213",
    },
    "naacGrading": True,
    "naacGrade": "A+",
}


class FakeUsersCollection:
    """The slice of a pymongo collection the auth code touches."""

    def __init__(self):
        self.docs = []

    def find_one(self, query, projection=None):
        for doc in self.docs:
            if all(doc.get(k) == v for k, v in query.items()):
                found = dict(doc)
                for field, include in (projection or {}).items():
                    if not include:
                        found.pop(field, None)
                return found
        return None

    def insert_one(self, doc):
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)

    def delete_one(self, query):
        self.docs = [d for d in self.docs if not all(d.get(k) == v for k, v in query.items())]


class InMemoryInstituteRequestRepository:
    """Mirrors InstituteRequestRepository, unique indexes included."""

    def __init__(self, users: FakeUsersCollection):
        self.requests = {}
        self.institutes = {}
        self.users = users

    def insert_request(self, doc):
        for existing in self.requests.values():
            for field, public in (("activeAisheCode", "aisheCode"), ("activeEmail", "email")):
                if field in existing and existing[field] == doc.get(field):
                    raise DuplicateError(
                        f"Institute with this {public} already exists", key=public, value=doc[field]
                    )
        oid = ObjectId()
        self.requests[oid] = {"_id": oid, **copy.deepcopy(doc)}
        return str(oid)

    def list_requests(self, status=None, skip=0, limit=None):
        docs = [d for d in self.requests.values() if not status or d["status"] == status]
        docs.sort(key=lambda d: (d["createdAt"], d["_id"]))
        total = len(docs)
        docs = docs[skip:]
        if limit:
            docs = docs[:limit]
        return [copy.deepcopy(d) for d in docs], total

    def get_request(self, request_id):
        if not ObjectId.is_valid(request_id):
            return None
        doc = self.requests.get(ObjectId(request_id))
        return copy.deepcopy(doc) if doc else None

    def transition(self, request_id, from_status, changes, unset=()):
        if not ObjectId.is_valid(request_id):
            return None
        doc = self.requests.get(ObjectId(request_id))
        if not doc or doc["status"] != from_status.value:
            return None
        doc.update(changes)
        for field in unset:
            doc.pop(field, None)
        return copy.deepcopy(doc)

    def insert_institute(self, doc):
        for existing in self.institutes.values():
            if existing["code"] == doc["code"]:
                raise DuplicateError("Institute code already in use", key="code", value=doc["code"])
        oid = ObjectId()
        self.institutes[oid] = {"_id": oid, **doc}
        return str(oid)

    def insert_user(self, doc):
        if self.users.find_one({"username": doc["username"]}):
            raise DuplicateError("User already exists", key="username", value=doc["username"])
        self.users.insert_one(doc)
        return str(doc["_id"])

    def delete_provisioned(self, institute_id, username):
        self.institutes.pop(ObjectId(institute_id), None)
        if username:
            self.users.delete_one({"username": username})


@pytest.fixture
def users_collection():
    users = FakeUsersCollection()
    users.insert_one({"username": "reviewer", "password": hash_password("reviewer-pass"), "role": "admin"})
    users.insert_one({"username": "root", "password": hash_password("root-pass"), "role": "superadmin"})
    users.insert_one({"username": "student1", "password": hash_password("student-pass"), "role": "student"})
    return users


@pytest.fixture
def repository(users_collection):
    return InMemoryInstituteRequestRepository(users_collection)


@pytest.fixture
def client(repository, users_collection):
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_users_collection] = lambda: users_collection
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_header(username):
    return {"Authorization": f"Bearer {create_access_token(data={'sub': username})}"}


@pytest.fixture
def reviewer_headers():
    return auth_header("reviewer")


@pytest.fixture
def superadmin_headers():
    return auth_header("root")


@pytest.fixture
def student_headers():
    return auth_header("student1")


@pytest.fixture
def payload():
    return copy.deepcopy(VALID_PAYLOAD)


@pytest.fixture
def all_statuses():
    return {s.value for s in RequestStatus}
