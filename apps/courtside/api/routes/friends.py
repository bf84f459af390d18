"""Friend system route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import raise_http_error
from courtside.database.db import get_db_session
from courtside.services import friend_service, user_service
from courtside.api.auth_dependencies import get_current_user
from courtside.models.schemas import (
    FriendRequestResponse,
    FriendshipResponse,
    MessageResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/friends", response_model=List[str])
async def get_friends(
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Usernames of the current user's friends."""
    try:
        friend_ids = await friend_service.get_friend_ids(session, current_user["id"])
        usernames = await user_service.ids_to_usernames(session, friend_ids)
        return sorted(usernames.values())
    except Exception as e:
        raise_http_error(e, "fetching friends")


@router.delete("/api/friends/{friend}", response_model=MessageResponse)
async def remove_friend(
    friend: str,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove a friend (unfriend)."""
    try:
        friend_id = await user_service.resolve_username(session, friend)
        await friend_service.remove_friend(session, current_user["id"], friend_id)
        return {"msg": "Unfriended!"}
    except Exception as e:
        raise_http_error(e, "removing friend")


@router.get("/api/friends/requests", response_model=List[FriendRequestResponse])
async def get_friend_requests(
    direction: str = Query("incoming", pattern="^(incoming|outgoing|both)$"),
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Pending friend requests; by default those addressed to the current user."""
    try:
        requests = await friend_service.get_friend_requests(
            session, current_user["id"], direction=direction
        )
        ids = {r["sender_id"] for r in requests} | {r["receiver_id"] for r in requests}
        usernames = await user_service.ids_to_usernames(session, ids)
        return [
            {
                **r,
                "sender": usernames.get(r["sender_id"]),
                "receiver": usernames.get(r["receiver_id"]),
            }
            for r in requests
        ]
    except Exception as e:
        raise_http_error(e, "fetching friend requests")


@router.post("/api/friends/requests/{to}", response_model=FriendRequestResponse)
async def send_friend_request(
    to: str,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Send a friend request to another user."""
    try:
        to_id = await user_service.resolve_username(session, to)
        result = await friend_service.send_friend_request(session, current_user["id"], to_id)
        return {**result, "sender": current_user["username"], "receiver": to}
    except Exception as e:
        raise_http_error(e, "sending friend request")


@router.delete("/api/friends/requests/{to}", response_model=MessageResponse)
async def remove_friend_request(
    to: str,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel an outgoing friend request."""
    try:
        to_id = await user_service.resolve_username(session, to)
        await friend_service.remove_friend_request(session, current_user["id"], to_id)
        return {"msg": "Removed request!"}
    except Exception as e:
        raise_http_error(e, "cancelling friend request")


@router.put("/api/friends/accept/{sender}", response_model=FriendshipResponse)
async def accept_friend_request(
    sender: str,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept a pending friend request from ``sender``."""
    try:
        sender_id = await user_service.resolve_username(session, sender)
        return await friend_service.accept_friend_request(session, sender_id, current_user["id"])
    except Exception as e:
        raise_http_error(e, "accepting friend request")


@router.put("/api/friends/reject/{sender}", response_model=MessageResponse)
async def reject_friend_request(
    sender: str,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Reject a pending friend request from ``sender``."""
    try:
        sender_id = await user_service.resolve_username(session, sender)
        await friend_service.reject_friend_request(session, sender_id, current_user["id"])
        return {"msg": "Rejected request!"}
    except Exception as e:
        raise_http_error(e, "rejecting friend request")
