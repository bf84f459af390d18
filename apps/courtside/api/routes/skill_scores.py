"""Skill score and stat route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import raise_http_error
from courtside.database.db import get_db_session
from courtside.services import skill_score_service, user_service
from courtside.api.auth_dependencies import get_current_user
from courtside.models.schemas import SkillScoreResponse, StatResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/skill-scores/stats", response_model=List[StatResponse])
async def get_my_stats(
    expired: bool = Query(False),
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Stats naming the current user; ``expired=true`` lists only those due for expiration."""
    try:
        stats = await skill_score_service.list_stats(
            session, current_user["id"], expired_only=expired
        )
        return [skill_score_service.format_stat(s) for s in stats]
    except Exception as e:
        raise_http_error(e, "fetching stats")


@router.get("/api/skill-scores/stats/{stat_id}", response_model=StatResponse)
async def get_stat(
    stat_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """One stat by id."""
    try:
        stat = await skill_score_service.get_stats(session, stat_id)
        return skill_score_service.format_stat(stat)
    except Exception as e:
        raise_http_error(e, "fetching stat")


@router.delete("/api/skill-scores/stats/{stat_id}", response_model=StatResponse)
async def expire_stat(
    stat_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Expire a stat the current user reported.

    The stat record is removed; both users keep the scores it produced.
    """
    try:
        return await skill_score_service.expire_stat(session, current_user["id"], stat_id)
    except Exception as e:
        raise_http_error(e, "expiring stat")


@router.get("/api/skill-scores/{username}", response_model=SkillScoreResponse)
async def get_skill_score(username: str, session: AsyncSession = Depends(get_db_session)):
    """A user's current skill score."""
    try:
        user_id = await user_service.resolve_username(session, username)
        score = await skill_score_service.get_score(session, user_id)
        return {"username": username, "score": score}
    except Exception as e:
        raise_http_error(e, "fetching skill score")
