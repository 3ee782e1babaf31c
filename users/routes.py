import logging
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

from auth.auth_utils import get_current_user, hash_password, require_roles
from database import get_users_collection
from errors import DuplicateError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


class UserCreate(BaseModel):
    username: str = Field(min_length=3)
    password: str = Field(min_length=8)
    role: Literal["admin", "superadmin"] = "admin"  # reviewers only; institute users come from approvals


@router.get("/me")
def get_me(current_user=Depends(get_current_user)):
    return {
        "username": current_user["username"],
        "role": current_user["role"]
    }


@router.post("/add", status_code=201)
def add_user(
    user: UserCreate,
    current_user=Depends(require_roles("superadmin")),
    users_collection=Depends(get_users_collection),
):
    if users_collection.find_one({"username": user.username}):
        raise DuplicateError("User already exists", key="username", value=user.username)

    try:
        users_collection.insert_one({
            "username": user.username,
            "password": hash_password(user.password),
            "role": user.role
        })
    except DuplicateKeyError:
        # lost the race against a concurrent add
        raise DuplicateError("User already exists", key="username", value=user.username)

    logger.info(f"{current_user['username']} created {user.role} user {user.username}")
    return {"message": "User created successfully"}
