"""Authentication and session route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import raise_http_error
from courtside.database.db import get_db_session
from courtside.services import auth_service, user_service
from courtside.api.auth_dependencies import get_current_user
from courtside.models.schemas import LoginRequest, TokenResponse, UserResponse, MessageResponse

logger = logging.getLogger(__name__)
router = APIRouter()

INVALID_CREDENTIALS_RESPONSE = HTTPException(
    status_code=401, detail="Username or password is incorrect"
)


@router.post("/api/auth/login", response_model=TokenResponse)
async def login(payload: LoginRequest, session: AsyncSession = Depends(get_db_session)):
    """Exchange a username and password for a bearer token."""
    try:
        user = await user_service.authenticate(session, payload.username, payload.password)
        if user is None:
            raise INVALID_CREDENTIALS_RESPONSE
        logger.info(f"User {user.id} logged in")
        return TokenResponse(access_token=auth_service.create_access_token(user.id))
    except Exception as e:
        raise_http_error(e, "logging in")


@router.get("/api/session", response_model=UserResponse)
async def get_session_user(
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The user the bearer token belongs to."""
    try:
        user = await user_service.get_user_by_username(session, current_user["username"])
        return user_service.format_user(user)
    except Exception as e:
        raise_http_error(e, "fetching session user")


@router.post("/api/auth/logout", response_model=MessageResponse)
async def logout(current_user: dict = Depends(get_current_user)):
    """
    End the current session.

    Access tokens are stateless and stay valid until they expire; the client
    drops its copy.
    """
    logger.info(f"User {current_user['id']} logged out")
    return {"msg": "Logged out!"}
