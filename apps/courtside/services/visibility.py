"""
Visibility filter for post listings.

An author always sees their whole history. Friends of the author see
``friends`` and ``public`` posts; everyone else sees ``public`` posts only.
"""

from typing import List, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from courtside.database.models import Post, PostVisibility
from courtside.services import friend_service, post_service

FRIEND_VISIBLE = frozenset({PostVisibility.PUBLIC.value, PostVisibility.FRIENDS.value})
PUBLIC_VISIBLE = frozenset({PostVisibility.PUBLIC.value})


def filter_visible_posts(
    viewer_id: int, author_id: int, are_friends: bool, posts: Sequence[Post]
) -> List[Post]:
    """
    Pure filter: which of the author's posts the viewer may see.

    Keeps the relative order of ``posts``; never mutates them.
    """
    if viewer_id == author_id:
        return list(posts)
    allowed = FRIEND_VISIBLE if are_friends else PUBLIC_VISIBLE
    return [post for post in posts if post.visibility in allowed]


async def list_visible_posts(session: AsyncSession, viewer_id: int, author_id: int) -> List[Post]:
    """The author's posts the viewer may see, most recent first."""
    posts = await post_service.get_posts_by_author(session, author_id)
    if viewer_id == author_id:
        return posts
    friends = await friend_service.are_friends(session, author_id, viewer_id)
    return filter_visible_posts(viewer_id, author_id, friends, posts)
