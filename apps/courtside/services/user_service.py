"""
User service: the identity directory.

Resolves usernames to user ids, owns profile and preference attributes,
registers and deletes accounts, and filters candidate partners by the
caller's preferences.
"""

from typing import Optional, Dict, List, Iterable, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, update, or_
from sqlalchemy.exc import IntegrityError
from courtside.database.models import User, Friend, FriendRequest, Post, Stat, SkillScore
from courtside.services import auth_service, skill_score_service
from courtside.utils.datetime_utils import isoformat_or_none
from courtside.utils.errors import NotFoundError, InvalidRequestError, ConflictError
import logging

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("gender", "sports", "skill", "location")
PREFERENCE_FIELDS = ("gender_pref", "sports_pref", "skill_pref_min", "skill_pref_max", "location_range")

# gender_pref values that match every gender
ANY_GENDER = {None, "", "any"}

# Literal path segments under /api/users and /api/skill-scores
RESERVED_USERNAMES = frozenset({"matches", "preferences", "stats"})


async def create_user(
    session: AsyncSession,
    username: str,
    password: str,
    profile: Optional[Dict[str, Any]] = None,
    preferences: Optional[Dict[str, Any]] = None,
) -> User:
    """
    Create a new user account with profile and preference attributes.

    Args:
        session: Database session
        username: Unique username
        password: Plaintext password (hashed before storage)
        profile: Optional dict of PROFILE_FIELDS
        preferences: Optional dict of PREFERENCE_FIELDS

    Returns:
        The created User

    Raises:
        InvalidRequestError: If the username is blank, reserved or taken
        ConflictError: If a concurrent registration claimed the username first
    """
    username = _check_username(username)

    existing = await session.execute(select(User.id).where(User.username == username))
    if existing.scalar_one_or_none() is not None:
        raise InvalidRequestError(f"Username {username} is already taken")

    user = User(username=username, password_hash=auth_service.hash_password(password))
    _apply_fields(user, profile or {}, PROFILE_FIELDS)
    _apply_fields(user, preferences or {}, PREFERENCE_FIELDS)
    _check_skill_range(user)

    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        raise ConflictError(f"Username {username} is already taken")
    await session.refresh(user)
    return user


async def register_user(
    session: AsyncSession,
    username: str,
    password: str,
    profile: Optional[Dict[str, Any]] = None,
    preferences: Optional[Dict[str, Any]] = None,
) -> User:
    """Create the account and its zero skill score in one transaction."""
    user = await create_user(session, username, password, profile, preferences)
    await skill_score_service.create_score(session, user.id)
    logger.info(f"Registered user {user.id} ({user.username})")
    return user


async def authenticate(session: AsyncSession, username: str, password: str) -> Optional[User]:
    """
    Verify a username/password pair.

    Returns:
        The User on success, None if the user is unknown or the password is wrong
    """
    result = await session.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None or not auth_service.verify_password(password, user.password_hash):
        return None
    return user


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[User]:
    """Get a user by ID, or None."""
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_username(session: AsyncSession, username: str) -> User:
    """
    Get a user by username.

    Raises:
        NotFoundError: If no user has this username
    """
    result = await session.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"User {username} not found")
    return user


async def resolve_username(session: AsyncSession, username: str) -> int:
    """
    Resolve a username to its stable user id.

    Raises:
        NotFoundError: If no user has this username
    """
    result = await session.execute(select(User.id).where(User.username == username))
    user_id = result.scalar_one_or_none()
    if user_id is None:
        raise NotFoundError(f"User {username} not found")
    return user_id


async def ids_to_usernames(session: AsyncSession, user_ids: Iterable[int]) -> Dict[int, str]:
    """Map user ids to usernames. Unknown ids are omitted."""
    ids = list(user_ids)
    if not ids:
        return {}
    result = await session.execute(select(User.id, User.username).where(User.id.in_(ids)))
    return {row.id: row.username for row in result.all()}


async def get_users(session: AsyncSession) -> List[User]:
    """All users ordered by username."""
    result = await session.execute(select(User).order_by(User.username))
    return list(result.scalars().all())


async def update_profile(session: AsyncSession, user_id: int, changes: Dict[str, Any]) -> User:
    """
    Update username, password and/or profile attributes.

    Unknown keys are ignored. Username changes keep the uniqueness rule.

    Raises:
        NotFoundError: If the user does not exist
        InvalidRequestError: If the new username is blank, reserved or taken
    """
    user = await _require_user(session, user_id)

    new_username = changes.get("username")
    if new_username is not None:
        new_username = _check_username(new_username)
    if new_username is not None and new_username != user.username:
        taken = await session.execute(select(User.id).where(User.username == new_username))
        if taken.scalar_one_or_none() is not None:
            raise InvalidRequestError(f"Username {new_username} is already taken")
        user.username = new_username

    if changes.get("password"):
        user.password_hash = auth_service.hash_password(changes["password"])

    _apply_fields(user, changes, PROFILE_FIELDS)
    try:
        await session.flush()
    except IntegrityError:
        raise ConflictError(f"Username {new_username} is already taken")
    await session.refresh(user)
    return user


async def update_preferences(session: AsyncSession, user_id: int, changes: Dict[str, Any]) -> User:
    """
    Update matching preferences.

    Raises:
        NotFoundError: If the user does not exist
        InvalidRequestError: If the skill range is inverted
    """
    user = await _require_user(session, user_id)
    _apply_fields(user, changes, PREFERENCE_FIELDS)
    _check_skill_range(user)
    await session.flush()
    await session.refresh(user)
    return user


async def delete_user(session: AsyncSession, user_id: int) -> None:
    """
    Delete an account and everything it owns.

    Removes friend edges and requests in both directions, the user's posts,
    every stat naming the user, and the score row. Other users keep their
    current scores: deleting a stat never changes a score.

    Raises:
        NotFoundError: If the user does not exist
    """
    user = await _require_user(session, user_id)

    await session.execute(
        delete(Friend).where(or_(Friend.user1_id == user_id, Friend.user2_id == user_id))
    )
    await session.execute(
        delete(FriendRequest).where(
            or_(FriendRequest.sender_id == user_id, FriendRequest.receiver_id == user_id)
        )
    )
    await session.execute(
        delete(Stat).where(or_(Stat.user1_id == user_id, Stat.user2_id == user_id))
    )
    await session.execute(delete(Post).where(Post.author_id == user_id))
    await session.execute(
        update(Post).where(Post.collaborator_id == user_id).values(collaborator_id=None)
    )
    await session.execute(delete(SkillScore).where(SkillScore.user_id == user_id))
    await session.delete(user)
    await session.flush()
    logger.info(f"Deleted user {user_id} and owned records")


async def filter_users_by_preferences(session: AsyncSession, user_id: int) -> List[User]:
    """
    Find other users matching the caller's gender, skill and sport preferences.

    Rules:
        - gender_pref None/""/"any" matches all genders, otherwise exact match
        - skill must fall inside [skill_pref_min, skill_pref_max] (open ends allowed)
        - if sports_pref is non-empty, the candidate must practice at least one of them

    Location range is stored but not applied.
    """
    me = await _require_user(session, user_id)

    query = select(User).where(User.id != user_id)
    if me.gender_pref not in ANY_GENDER:
        query = query.where(User.gender == me.gender_pref)
    if me.skill_pref_min is not None:
        query = query.where(User.skill >= me.skill_pref_min)
    if me.skill_pref_max is not None:
        query = query.where(User.skill <= me.skill_pref_max)

    result = await session.execute(query.order_by(User.username))
    candidates = list(result.scalars().all())

    # JSON list overlap is done here to stay portable across Postgres and SQLite
    wanted = set(me.sports_pref or [])
    if wanted:
        candidates = [u for u in candidates if wanted & set(u.sports or [])]
    return candidates


def format_user(user: User) -> Dict:
    """Public view of a user (no password hash)."""
    return {
        "id": user.id,
        "username": user.username,
        "profile": {
            "gender": user.gender,
            "sports": list(user.sports or []),
            "skill": user.skill,
            "location": user.location,
        },
        "preferences": {
            "gender_pref": user.gender_pref,
            "sports_pref": list(user.sports_pref or []),
            "skill_pref_min": user.skill_pref_min,
            "skill_pref_max": user.skill_pref_max,
            "location_range": user.location_range,
        },
        "created_at": isoformat_or_none(user.created_at),
    }


async def _require_user(session: AsyncSession, user_id: int) -> User:
    user = await get_user_by_id(session, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def _apply_fields(user: User, values: Dict[str, Any], fields: Iterable[str]) -> None:
    for field in fields:
        if field in values and values[field] is not None:
            value = values[field]
            if field in ("sports", "sports_pref"):
                value = sorted(set(value))
            setattr(user, field, value)


def _check_username(username: str) -> str:
    """Strip surrounding whitespace; reject blank and reserved names."""
    username = username.strip()
    if not username:
        raise InvalidRequestError("Username must not be empty")
    if username.lower() in RESERVED_USERNAMES:
        raise InvalidRequestError(f"Username {username} is reserved")
    return username


def _check_skill_range(user: User) -> None:
    if (
        user.skill_pref_min is not None
        and user.skill_pref_max is not None
        and user.skill_pref_min > user.skill_pref_max
    ):
        raise InvalidRequestError("skill_pref_min must not exceed skill_pref_max")
