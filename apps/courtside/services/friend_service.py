"""
Friend service for managing friend requests and friendships.

Handles sending/cancelling/accepting/rejecting requests and listing or
removing friends.

Every mutation on a pair of users runs under that pair's lock, and the
tables back it up with unique constraints on the normalized pair, so two
concurrent accepts can never both create an edge.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import List, Dict, Set, Optional, Tuple, AsyncIterator
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, and_, or_, case
from sqlalchemy.exc import IntegrityError
from courtside.database.models import Friend, FriendRequest
from courtside.utils.datetime_utils import isoformat_or_none
from courtside.utils.errors import NotFoundError, InvalidRequestError, ConflictError
import logging

logger = logging.getLogger(__name__)


def normalize_pair(user_id: int, other_user_id: int) -> Tuple[int, int]:
    """Order a pair so (a, b) and (b, a) share one key."""
    return (user_id, other_user_id) if user_id < other_user_id else (other_user_id, user_id)


class PairLockArena:
    """
    Hands out one asyncio.Lock per unordered user pair.

    Locks are held weakly: once no coroutine holds or waits on a pair's lock
    it is dropped, so the arena does not grow with the number of pairs ever
    touched.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[Tuple[int, int], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def get(self, user_id: int, other_user_id: int) -> asyncio.Lock:
        key = normalize_pair(user_id, other_user_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, user_id: int, other_user_id: int) -> AsyncIterator[None]:
        lock = self.get(user_id, other_user_id)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


pair_locks = PairLockArena()


async def get_friend_ids(session: AsyncSession, user_id: int) -> Set[int]:
    """
    Get the set of all friend user_ids for a given user.

    Args:
        session: Database session
        user_id: User to look up friends for

    Returns:
        Set of friend user IDs
    """
    result = await session.execute(
        select(
            case(
                (Friend.user1_id == user_id, Friend.user2_id),
                else_=Friend.user1_id,
            )
        ).where(or_(Friend.user1_id == user_id, Friend.user2_id == user_id))
    )
    return set(result.scalars().all())


async def are_friends(session: AsyncSession, user_id: int, other_user_id: int) -> bool:
    """
    Check if two users are friends. Symmetric in its arguments.

    Args:
        session: Database session
        user_id: First user ID
        other_user_id: Second user ID

    Returns:
        True if the users are friends
    """
    u1, u2 = normalize_pair(user_id, other_user_id)
    result = await session.execute(
        select(Friend.id).where(and_(Friend.user1_id == u1, Friend.user2_id == u2))
    )
    return result.scalar_one_or_none() is not None


async def are_not_friends(session: AsyncSession, user_id: int, other_user_id: int) -> bool:
    """Complement of are_friends."""
    return not await are_friends(session, user_id, other_user_id)


async def get_pending_request(
    session: AsyncSession, sender_id: int, receiver_id: int
) -> Optional[FriendRequest]:
    """
    Get a pending friend request between two users (in either direction).

    Args:
        session: Database session
        sender_id: Sender user ID
        receiver_id: Receiver user ID

    Returns:
        FriendRequest or None
    """
    low, high = normalize_pair(sender_id, receiver_id)
    result = await session.execute(
        select(FriendRequest).where(
            and_(FriendRequest.pair_low_id == low, FriendRequest.pair_high_id == high)
        )
    )
    return result.scalar_one_or_none()


async def send_friend_request(session: AsyncSession, sender_id: int, receiver_id: int) -> Dict:
    """
    Send a friend request from one user to another.

    Validates that users aren't already friends and no request exists in
    either direction.

    Args:
        session: Database session
        sender_id: User sending the request
        receiver_id: User receiving the request

    Returns:
        Dict with friend request data

    Raises:
        InvalidRequestError: Self-request, already friends, or pending request exists
        ConflictError: A concurrent request for the same pair was written first
    """
    if sender_id == receiver_id:
        raise InvalidRequestError("Cannot send a friend request to yourself")

    async with pair_locks.hold(sender_id, receiver_id):
        if await are_friends(session, sender_id, receiver_id):
            raise InvalidRequestError("Already friends with this user")

        existing = await get_pending_request(session, sender_id, receiver_id)
        if existing:
            if existing.sender_id == sender_id:
                raise InvalidRequestError("Friend request already sent")
            raise InvalidRequestError(
                "This user already sent you a friend request. Accept it instead."
            )

        low, high = normalize_pair(sender_id, receiver_id)
        friend_request = FriendRequest(
            sender_id=sender_id,
            receiver_id=receiver_id,
            pair_low_id=low,
            pair_high_id=high,
        )
        session.add(friend_request)
        try:
            await session.flush()
        except IntegrityError:
            raise ConflictError("A friend request between these users already exists")
        await session.refresh(friend_request)

    logger.info(f"Friend request {friend_request.id}: {sender_id} -> {receiver_id}")
    return format_friend_request(friend_request)


async def _delete_request(session: AsyncSession, sender_id: int, receiver_id: int) -> bool:
    """Conditionally delete the (sender -> receiver) request. True if a row was removed."""
    result = await session.execute(
        delete(FriendRequest)
        .where(
            and_(
                FriendRequest.sender_id == sender_id,
                FriendRequest.receiver_id == receiver_id,
            )
        )
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount > 0


async def remove_friend_request(session: AsyncSession, sender_id: int, receiver_id: int) -> None:
    """
    Cancel an outgoing friend request (delete it).

    Raises:
        NotFoundError: If there is no pending sender -> receiver request
    """
    async with pair_locks.hold(sender_id, receiver_id):
        if not await _delete_request(session, sender_id, receiver_id):
            raise NotFoundError("Friend request not found")
        await session.flush()


async def accept_friend_request(session: AsyncSession, sender_id: int, receiver_id: int) -> Dict:
    """
    Accept a pending friend request.

    Deletes the request and inserts the normalized friendship edge in the
    same transaction. The delete is conditional, so of two concurrent
    accepts only one removes the row; the other gets NotFoundError.

    Args:
        session: Database session
        sender_id: User who sent the request
        receiver_id: User accepting it (current user)

    Returns:
        Dict with the new friendship

    Raises:
        NotFoundError: If there is no pending sender -> receiver request
        ConflictError: If the edge was created concurrently
    """
    async with pair_locks.hold(sender_id, receiver_id):
        if not await _delete_request(session, sender_id, receiver_id):
            raise NotFoundError("Friend request not found")

        u1, u2 = normalize_pair(sender_id, receiver_id)
        friendship = Friend(user1_id=u1, user2_id=u2, created_by=receiver_id)
        session.add(friendship)
        try:
            await session.flush()
        except IntegrityError:
            raise ConflictError("Already friends with this user")
        await session.refresh(friendship)

    logger.info(f"Friendship {friendship.id} created: {u1} <-> {u2}")
    return format_friendship(friendship)


async def reject_friend_request(session: AsyncSession, sender_id: int, receiver_id: int) -> None:
    """
    Reject a pending friend request by deleting it, so the sender can re-send later.

    Raises:
        NotFoundError: If there is no pending sender -> receiver request
    """
    async with pair_locks.hold(sender_id, receiver_id):
        if not await _delete_request(session, sender_id, receiver_id):
            raise NotFoundError("Friend request not found")
        await session.flush()


async def remove_friend(session: AsyncSession, user_id: int, friend_id: int) -> None:
    """
    Remove a friendship between two users.

    Raises:
        NotFoundError: If not currently friends
    """
    u1, u2 = normalize_pair(user_id, friend_id)
    async with pair_locks.hold(user_id, friend_id):
        result = await session.execute(
            delete(Friend)
            .where(and_(Friend.user1_id == u1, Friend.user2_id == u2))
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise NotFoundError("Not friends with this user")
        await session.flush()
    logger.info(f"Friendship removed: {u1} <-> {u2}")


async def get_friend_requests(
    session: AsyncSession, user_id: int, direction: str = "incoming"
) -> List[Dict]:
    """
    Get pending friend requests for a user, newest first.

    Args:
        session: Database session
        user_id: User to get requests for
        direction: "incoming" (addressed to the user), "outgoing", or "both"

    Returns:
        List of friend request dicts
    """
    query = select(FriendRequest)

    if direction == "incoming":
        query = query.where(FriendRequest.receiver_id == user_id)
    elif direction == "outgoing":
        query = query.where(FriendRequest.sender_id == user_id)
    elif direction == "both":
        query = query.where(
            or_(FriendRequest.sender_id == user_id, FriendRequest.receiver_id == user_id)
        )
    else:
        raise InvalidRequestError(f"Unknown direction: {direction}")

    query = query.order_by(FriendRequest.created_at.desc(), FriendRequest.id.desc())
    result = await session.execute(query)
    return [format_friend_request(req) for req in result.scalars().all()]


def format_friend_request(friend_request: FriendRequest) -> Dict:
    """Serialize a FriendRequest for API responses."""
    return {
        "id": friend_request.id,
        "sender_id": friend_request.sender_id,
        "receiver_id": friend_request.receiver_id,
        "status": "pending",
        "created_at": isoformat_or_none(friend_request.created_at),
    }


def format_friendship(friendship: Friend) -> Dict:
    """Serialize a Friend edge for API responses."""
    return {
        "id": friendship.id,
        "user1_id": friendship.user1_id,
        "user2_id": friendship.user2_id,
        "created_by": friendship.created_by,
        "created_at": isoformat_or_none(friendship.created_at),
    }
