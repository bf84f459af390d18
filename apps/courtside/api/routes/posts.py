"""Post route handlers. Match-reporting posts also update skill scores."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import raise_http_error
from courtside.database.db import get_db_session
from courtside.services import (
    match_report_service,
    post_service,
    skill_score_service,
    user_service,
    visibility,
)
from courtside.api.auth_dependencies import get_current_user
from courtside.models.schemas import (
    PostCreate,
    PostUpdate,
    PostResponse,
    PostMutationResponse,
    MessageResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


async def _format_posts(session: AsyncSession, posts) -> List[dict]:
    """Serialize posts with author and collaborator usernames in one lookup."""
    ids = set()
    for post in posts:
        ids.add(post.author_id)
        if post.collaborator_id:
            ids.add(post.collaborator_id)
    usernames = await user_service.ids_to_usernames(session, ids)
    return [post_service.format_post(post, usernames) for post in posts]


async def _format_mutation(session: AsyncSession, msg: str, result: dict) -> dict:
    stat = result["stat"]
    return {
        "msg": msg,
        "post": (await _format_posts(session, [result["post"]]))[0],
        "stat": skill_score_service.format_stat(stat) if stat is not None else None,
        "score": result["score"],
    }


@router.get("/api/posts", response_model=List[PostResponse])
async def get_posts(
    author: Optional[str] = Query(None),
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    List posts.

    With ``author``: that author's posts the current user may see, most
    recent first. Without: every public post.
    """
    try:
        if author:
            author_id = await user_service.resolve_username(session, author)
            posts = await visibility.list_visible_posts(session, current_user["id"], author_id)
        else:
            posts = await post_service.get_posts(session)
        return await _format_posts(session, posts)
    except Exception as e:
        raise_http_error(e, "fetching posts")


@router.post("/api/posts", response_model=PostMutationResponse)
async def create_post(
    payload: PostCreate,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a post. Naming a collaborator reports a match and moves skill points."""
    try:
        result = await match_report_service.create_post(
            session,
            current_user["id"],
            payload.content,
            image=payload.image,
            visibility=payload.visibility,
            collaborator=payload.collaborator,
        )
        return await _format_mutation(session, "Post successfully created!", result)
    except Exception as e:
        raise_http_error(e, "creating post")


@router.patch("/api/posts/{post_id}", response_model=PostMutationResponse)
async def update_post(
    post_id: int,
    payload: PostUpdate,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Edit a post. Changing a match report's content re-applies its outcome."""
    try:
        result = await match_report_service.update_post(
            session, current_user["id"], post_id, payload.model_dump(exclude_none=True)
        )
        return await _format_mutation(session, "Post successfully updated!", result)
    except Exception as e:
        raise_http_error(e, "updating post")


@router.delete("/api/posts/{post_id}", response_model=MessageResponse)
async def delete_post(
    post_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a post. Its stat, if any, stays until expired."""
    try:
        await match_report_service.delete_post(session, current_user["id"], post_id)
        return {"msg": "Post deleted successfully!"}
    except Exception as e:
        raise_http_error(e, "deleting post")
