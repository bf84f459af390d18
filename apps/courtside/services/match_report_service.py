"""
Match reporting: keeps posts and the skill score ledger in step.

A post that names a collaborator reports a match against them. The post is
written first; the ledger follows in the same transaction:

- creating such a post records a stat and moves points between the two users
- editing its content re-applies the outcome (previous delta reversed first)
- deleting it leaves the stat alone; the reporter expires stats explicitly
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from courtside.services import post_service, skill_score_service, user_service
from courtside.utils.errors import InvalidStatError
import logging

logger = logging.getLogger(__name__)


async def create_post(
    session: AsyncSession,
    author_id: int,
    content: str,
    image: Optional[str] = None,
    visibility: str = "public",
    collaborator: Optional[str] = None,
) -> Dict:
    """
    Create a post and, when it names a collaborator, report the match.

    Args:
        session: Database session
        author_id: Posting user
        content: Post content; exactly "win" means the author won
        image: Optional image reference
        visibility: "public" or "friends"
        collaborator: Optional opponent username

    Returns:
        Dict with "post", "stat" (or None) and "score" (author's score, or None)

    Raises:
        NotFoundError: If the collaborator username is unknown
        InvalidStatError: If the author names themselves as collaborator
    """
    collaborator_id = None
    if collaborator:
        collaborator_id = await user_service.resolve_username(session, collaborator)
        if collaborator_id == author_id:
            raise InvalidStatError("Cannot report a match against yourself")

    post = await post_service.create_post(
        session, author_id, content, image, visibility, collaborator_id
    )

    stat = None
    score = None
    if collaborator_id is not None:
        stat, score = await skill_score_service.record_stat(
            session, author_id, content, collaborator_id, post_id=post.id
        )

    return {"post": post, "stat": stat, "score": score}


async def update_post(
    session: AsyncSession, author_id: int, post_id: int, changes: Dict[str, Any]
) -> Dict:
    """
    Apply an author's edit and bring the ledger in line with the new content.

    The ledger is only touched when the content actually changed, the post
    names a collaborator, and its stat is still live. An expired stat is
    final: editing its post afterwards moves no points.

    Raises:
        NotFoundError: If the post does not exist
        ForbiddenError: If the caller is not the author
    """
    post = await post_service.is_author(session, author_id, post_id)
    original_content = post.content

    post = await post_service.update_post(session, post, changes)

    stat = None
    score = None
    if post.content != original_content and post.collaborator_id is not None:
        stat = await skill_score_service.get_stat_for_post(session, post.id)
        if stat is not None:
            score = await skill_score_service.apply_outcome(session, stat, post.content)
        else:
            logger.info(f"Post {post.id} edited after its stat expired; scores unchanged")

    return {"post": post, "stat": stat, "score": score}


async def delete_post(session: AsyncSession, author_id: int, post_id: int) -> None:
    """
    Delete a post the caller wrote.

    Raises:
        NotFoundError: If the post does not exist
        ForbiddenError: If the caller is not the author
    """
    post = await post_service.is_author(session, author_id, post_id)
    stat = await skill_score_service.get_stat_for_post(session, post.id)
    if stat is not None:
        # Detach explicitly; SQLite does not enforce ON DELETE SET NULL
        stat.post_id = None
    await post_service.delete_post(session, post)
