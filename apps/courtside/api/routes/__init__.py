"""
API routes - combined router from all domain modules.

Shared helpers live here; every sub-router imports what it needs from this
package.
"""

import logging

from fastapi import APIRouter, HTTPException

from courtside.utils.errors import CourtsideError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shared error translation
# ---------------------------------------------------------------------------
def raise_http_error(error: Exception, action: str) -> None:
    """
    Translate a service failure into an HTTPException.

    Domain errors keep their message and map to their status code; anything
    else is logged and reported as a 500 without internal details.
    """
    if isinstance(error, HTTPException):
        raise error
    if isinstance(error, CourtsideError):
        raise HTTPException(status_code=error.status_code, detail=str(error))
    if isinstance(error, ValueError):
        raise HTTPException(status_code=400, detail=str(error))
    logger.error(f"Error {action}: {error}", exc_info=True)
    raise HTTPException(status_code=500, detail=f"Error {action}")


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from courtside.api.routes.auth import router as auth_router  # noqa: E402
from courtside.api.routes.users import router as users_router  # noqa: E402
from courtside.api.routes.posts import router as posts_router  # noqa: E402
from courtside.api.routes.skill_scores import router as skill_scores_router  # noqa: E402
from courtside.api.routes.friends import router as friends_router  # noqa: E402

router = APIRouter()
router.include_router(auth_router)
router.include_router(users_router)
router.include_router(posts_router)
router.include_router(skill_scores_router)
router.include_router(friends_router)
