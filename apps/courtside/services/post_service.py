"""
Post service layer for post database operations.
"""

from typing import Optional, Dict, List, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from courtside.database.models import Post, PostVisibility
from courtside.utils.datetime_utils import isoformat_or_none
from courtside.utils.errors import NotFoundError, ForbiddenError, InvalidRequestError
import logging

logger = logging.getLogger(__name__)

# Fields an author may change after posting. The collaborator is fixed once a
# match has been reported against them.
UPDATABLE_FIELDS = ("content", "image", "visibility")


def _check_visibility(visibility: str) -> str:
    try:
        return PostVisibility(visibility).value
    except ValueError:
        raise InvalidRequestError(f"Invalid visibility: {visibility}")


async def create_post(
    session: AsyncSession,
    author_id: int,
    content: str,
    image: Optional[str] = None,
    visibility: str = PostVisibility.PUBLIC.value,
    collaborator_id: Optional[int] = None,
) -> Post:
    """
    Create a post.

    Args:
        session: Database session
        author_id: Posting user
        content: Free text ("win" reports a won match when a collaborator is set)
        image: Optional image reference
        visibility: "public" or "friends"
        collaborator_id: Optional opponent user id

    Returns:
        The created Post
    """
    post = Post(
        author_id=author_id,
        content=content,
        image=image,
        visibility=_check_visibility(visibility),
        collaborator_id=collaborator_id,
    )
    session.add(post)
    await session.flush()
    await session.refresh(post)
    return post


async def get_post_by_id(session: AsyncSession, post_id: int) -> Post:
    """
    Get a post by ID.

    Raises:
        NotFoundError: If the post does not exist
    """
    result = await session.execute(select(Post).where(Post.id == post_id))
    post = result.scalar_one_or_none()
    if post is None:
        raise NotFoundError(f"Post {post_id} not found")
    return post


async def get_posts_by_author(session: AsyncSession, author_id: int) -> List[Post]:
    """An author's posts, most recent first (ties broken by id, newest first)."""
    result = await session.execute(
        select(Post)
        .where(Post.author_id == author_id)
        .order_by(Post.created_at.desc(), Post.id.desc())
    )
    return list(result.scalars().all())


async def get_posts(session: AsyncSession) -> List[Post]:
    """Every public post, most recent first."""
    result = await session.execute(
        select(Post)
        .where(Post.visibility == PostVisibility.PUBLIC.value)
        .order_by(Post.created_at.desc(), Post.id.desc())
    )
    return list(result.scalars().all())


async def is_author(session: AsyncSession, user_id: int, post_id: int) -> Post:
    """
    Ownership guard for post mutations.

    Returns:
        The post, if the user wrote it

    Raises:
        NotFoundError: If the post does not exist
        ForbiddenError: If the user is not the author
    """
    post = await get_post_by_id(session, post_id)
    if post.author_id != user_id:
        raise ForbiddenError(f"User {user_id} is not the author of post {post_id}")
    return post


async def update_post(session: AsyncSession, post: Post, changes: Dict[str, Any]) -> Post:
    """
    Apply author edits to a post. Only UPDATABLE_FIELDS are considered; None
    values are ignored.
    """
    for field in UPDATABLE_FIELDS:
        value = changes.get(field)
        if value is None:
            continue
        if field == "visibility":
            value = _check_visibility(value)
        setattr(post, field, value)
    await session.flush()
    await session.refresh(post)
    return post


async def delete_post(session: AsyncSession, post: Post) -> None:
    """Delete a post. Stats it created outlive it and can still be expired."""
    await session.delete(post)
    await session.flush()
    logger.info(f"Post {post.id} deleted")


def format_post(post: Post, usernames: Optional[Dict[int, str]] = None) -> Dict:
    """Serialize a post; usernames maps author/collaborator ids to names when known."""
    usernames = usernames or {}
    return {
        "id": post.id,
        "author_id": post.author_id,
        "author": usernames.get(post.author_id),
        "content": post.content,
        "image": post.image,
        "visibility": post.visibility,
        "collaborator_id": post.collaborator_id,
        "collaborator": usernames.get(post.collaborator_id) if post.collaborator_id else None,
        "created_at": isoformat_or_none(post.created_at),
        "updated_at": isoformat_or_none(post.updated_at),
    }
