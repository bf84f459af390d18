"""User directory route handlers: registration, profiles, preferences, matching."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import raise_http_error
from courtside.database.db import get_db_session
from courtside.services import user_service
from courtside.api.auth_dependencies import get_current_user
from courtside.models.schemas import (
    UserCreate,
    UserUpdate,
    PreferenceFields,
    UserResponse,
    MessageResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/users", response_model=UserResponse)
async def create_user(payload: UserCreate, session: AsyncSession = Depends(get_db_session)):
    """Register a new user. Their skill score starts at zero."""
    try:
        user = await user_service.register_user(
            session,
            payload.username,
            payload.password,
            profile=payload.profile.model_dump(),
            preferences=payload.preferences.model_dump(),
        )
        return user_service.format_user(user)
    except Exception as e:
        raise_http_error(e, "creating user")


@router.get("/api/users", response_model=List[UserResponse])
async def get_users(session: AsyncSession = Depends(get_db_session)):
    """List all users."""
    try:
        return [user_service.format_user(u) for u in await user_service.get_users(session)]
    except Exception as e:
        raise_http_error(e, "fetching users")


@router.get("/api/users/matches", response_model=List[UserResponse])
async def get_users_matching_preferences(
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Users whose gender, skill and sports fit the current user's preferences."""
    try:
        users = await user_service.filter_users_by_preferences(session, current_user["id"])
        return [user_service.format_user(u) for u in users]
    except Exception as e:
        raise_http_error(e, "filtering users")


@router.get("/api/users/{username}", response_model=UserResponse)
async def get_user(username: str, session: AsyncSession = Depends(get_db_session)):
    """Look up one user by username."""
    try:
        user = await user_service.get_user_by_username(session, username)
        return user_service.format_user(user)
    except Exception as e:
        raise_http_error(e, "fetching user")


@router.patch("/api/users", response_model=UserResponse)
async def update_user(
    payload: UserUpdate,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update the current user's username, password or profile."""
    try:
        user = await user_service.update_profile(
            session, current_user["id"], payload.model_dump(exclude_none=True)
        )
        return user_service.format_user(user)
    except Exception as e:
        raise_http_error(e, "updating user")


@router.patch("/api/users/preferences", response_model=UserResponse)
async def update_preferences(
    payload: PreferenceFields,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update the current user's matching preferences."""
    try:
        user = await user_service.update_preferences(
            session, current_user["id"], payload.model_dump(exclude_none=True)
        )
        return user_service.format_user(user)
    except Exception as e:
        raise_http_error(e, "updating preferences")


@router.delete("/api/users", response_model=MessageResponse)
async def delete_user(
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete the current user's account, friendships, requests, posts and stats."""
    try:
        await user_service.delete_user(session, current_user["id"])
        return {"msg": "Account deleted"}
    except Exception as e:
        raise_http_error(e, "deleting user")
