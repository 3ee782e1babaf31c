import logging

from fastapi import APIRouter, Depends, Request

from auth.auth_utils import create_access_token, verify_password
from database import get_users_collection
from errors import AuthenticationError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


async def read_credentials(request: Request):
    # Accept JSON as well as form posts
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}
    else:
        body = await request.form()

    username = body.get("username")
    password = body.get("password")

    if not username or not password:
        raise ValidationError("Username and password required", field="username")

    return username, password


@router.post("/login")
def login(
    credentials=Depends(read_credentials),
    users_collection=Depends(get_users_collection),
):
    username, password = credentials
    user = users_collection.find_one({"username": username})

    if not user or not verify_password(password, user["password"]):
        logger.warning(f"Failed login for {username}")
        raise AuthenticationError("Invalid credentials")

    access_token = create_access_token(data={"sub": username, "role": user.get("role")})
    logger.info(f"User {username} logged in")

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "username": username,
        "role": user.get("role"),
    }
