"""
Skill score service: the reputation ledger.

Every user has one SkillScore row, created at zero on registration. Reported
matches become Stat rows; each stat moves a fixed number of points from the
loser to the winner (zero-sum). The points a stat moved are kept on the stat
(``applied_delta``) so an edit can take them back before applying the new
outcome, and repeated edits never drift.

Stat lifecycle::

    created --edit--> edited --edit--> edited ... --expire--> (row deleted)

Expiration is triggered by the stat's reporter, never by a background job.
It removes the record and leaves scores where the last delta put them.
"""

from typing import Optional, List, Dict, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, or_
from courtside.database.models import SkillScore, Stat, StatOutcome, StatState
from courtside.utils.constants import (
    INITIAL_SKILL_SCORE,
    SKILL_SCORE_DELTA,
    STAT_EXPIRATION,
    WIN_TOKEN,
)
from courtside.utils.datetime_utils import utcnow, ensure_utc, isoformat_or_none
from courtside.utils.errors import (
    NotFoundError,
    InvalidStatError,
    ForbiddenError,
    ConflictError,
)
import logging

logger = logging.getLogger(__name__)


def parse_outcome(content: Optional[str]) -> StatOutcome:
    """Decide once whether post content reports a win. Only the exact token counts."""
    return StatOutcome.WIN if content == WIN_TOKEN else StatOutcome.OTHER


def score_delta(won: bool) -> float:
    """Points the reporter gains (negative: loses) for one reported match."""
    return SKILL_SCORE_DELTA if won else -SKILL_SCORE_DELTA


async def create_score(
    session: AsyncSession, user_id: int, initial: float = INITIAL_SKILL_SCORE
) -> SkillScore:
    """
    Create the score row for a newly registered user.

    Raises:
        ConflictError: If the user already has a score
    """
    existing = await session.execute(select(SkillScore.user_id).where(SkillScore.user_id == user_id))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(f"User {user_id} already has a skill score")
    score = SkillScore(user_id=user_id, score=initial)
    session.add(score)
    await session.flush()
    return score


async def get_score(session: AsyncSession, user_id: int) -> float:
    """
    Read a user's current score straight from the database.

    Raises:
        NotFoundError: If the user has no score row
    """
    result = await session.execute(select(SkillScore.score).where(SkillScore.user_id == user_id))
    score = result.scalar_one_or_none()
    if score is None:
        raise NotFoundError(f"Skill score for user {user_id} not found")
    return score


async def _add_to_score(session: AsyncSession, user_id: int, delta: float) -> None:
    """Atomic ``score = score + delta``; concurrent deltas compose instead of overwriting."""
    result = await session.execute(
        update(SkillScore)
        .where(SkillScore.user_id == user_id)
        .values(score=SkillScore.score + delta, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount == 0:
        raise NotFoundError(f"Skill score for user {user_id} not found")


async def _transfer(session: AsyncSession, reporter_id: int, opponent_id: int, delta: float) -> None:
    """Move ``delta`` points to the reporter from the opponent."""
    if delta == 0:
        return
    await _add_to_score(session, reporter_id, delta)
    await _add_to_score(session, opponent_id, -delta)


async def update_score(session: AsyncSession, reporter_id: int, won: bool, opponent_id: int) -> float:
    """
    Apply one reported match: the winner gains SKILL_SCORE_DELTA, the loser
    loses the same amount, so the pair's combined score is unchanged.

    Args:
        session: Database session
        reporter_id: User who reported the match
        won: Whether the reporter won
        opponent_id: The other participant

    Returns:
        The reporter's new score

    Raises:
        InvalidStatError: If reporter and opponent are the same user
        NotFoundError: If either user has no score row
    """
    if reporter_id == opponent_id:
        raise InvalidStatError("Cannot report a match against yourself")
    await _transfer(session, reporter_id, opponent_id, score_delta(won))
    return await get_score(session, reporter_id)


async def create_stat(
    session: AsyncSession,
    reporter_id: int,
    content: str,
    opponent_id: int,
    post_id: Optional[int] = None,
) -> Stat:
    """
    Record a reported match with a fixed expiration one STAT_EXPIRATION from now.

    The stat starts with no applied delta; record_stat applies it.

    Raises:
        InvalidStatError: If the opponent is the reporter
    """
    if reporter_id == opponent_id:
        raise InvalidStatError("Cannot report a match against yourself")

    now = utcnow()
    stat = Stat(
        user1_id=reporter_id,
        user2_id=opponent_id,
        post_id=post_id,
        outcome=parse_outcome(content).value,
        stat=content,
        applied_delta=0.0,
        state=StatState.CREATED.value,
        created_at=now,
        expires_at=now + STAT_EXPIRATION,
    )
    session.add(stat)
    await session.flush()
    await session.refresh(stat)
    return stat


async def record_stat(
    session: AsyncSession,
    reporter_id: int,
    content: str,
    opponent_id: int,
    post_id: Optional[int] = None,
) -> Tuple[Stat, float]:
    """
    Create a stat and apply its delta to both participants.

    Returns:
        (stat, reporter's new score)
    """
    stat = await create_stat(session, reporter_id, content, opponent_id, post_id)
    won = stat.outcome == StatOutcome.WIN.value
    new_score = await update_score(session, reporter_id, won, opponent_id)
    stat.applied_delta = score_delta(won)
    await session.flush()
    logger.info(
        f"Stat {stat.id} created: user {reporter_id} vs {opponent_id}, outcome={stat.outcome}"
    )
    return stat, new_score


async def apply_outcome(session: AsyncSession, stat: Stat, content: str) -> float:
    """
    Edit transition: the reported content changed.

    Takes back the delta the stat last applied, then applies the delta for the
    new content, so the scores always equal one application of the latest
    outcome. The stat row is updated with a compare-and-set on applied_delta;
    a concurrent edit or expiration makes it fail with ConflictError.

    Returns:
        The reporter's new score
    """
    old_delta = stat.applied_delta
    outcome = parse_outcome(content)
    new_delta = score_delta(outcome == StatOutcome.WIN)

    result = await session.execute(
        update(Stat)
        .where(Stat.id == stat.id, Stat.applied_delta == old_delta)
        .values(
            applied_delta=new_delta,
            outcome=outcome.value,
            stat=content,
            state=StatState.EDITED.value,
        )
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount == 0:
        raise ConflictError(f"Stat {stat.id} was changed or expired concurrently")

    # Reverse, then apply
    await _transfer(session, stat.user1_id, stat.user2_id, -old_delta)
    await _transfer(session, stat.user1_id, stat.user2_id, new_delta)
    await session.refresh(stat)

    logger.info(f"Stat {stat.id} edited: outcome={outcome.value}")
    return await get_score(session, stat.user1_id)


async def get_stats(session: AsyncSession, stat_id: int) -> Stat:
    """
    Get a stat by ID.

    Raises:
        NotFoundError: If the stat does not exist (or was already expired)
    """
    result = await session.execute(select(Stat).where(Stat.id == stat_id))
    stat = result.scalar_one_or_none()
    if stat is None:
        raise NotFoundError(f"Stat {stat_id} not found")
    return stat


async def get_stat_for_post(session: AsyncSession, post_id: int) -> Optional[Stat]:
    """The live stat created by a post, or None if it never had one or it expired."""
    result = await session.execute(select(Stat).where(Stat.post_id == post_id))
    return result.scalar_one_or_none()


def is_user(user_id: int, stat_owner_id: int) -> None:
    """
    Ownership guard before mutating or expiring a stat.

    Raises:
        ForbiddenError: If the caller is not the stat's reporter
    """
    if user_id != stat_owner_id:
        raise ForbiddenError("Only the reporting user can modify this stat")


async def delete_old_score(
    session: AsyncSession, stat_id: int, user_id: int, won: bool, opponent_id: int
) -> None:
    """
    Finalize and remove an expired stat.

    Its delta already sits in both scores, so no score is touched. The delete
    is conditional on the stat's participants and outcome.

    Raises:
        NotFoundError: If no matching stat exists (e.g. already expired)
    """
    outcome = StatOutcome.WIN if won else StatOutcome.OTHER
    result = await session.execute(
        delete(Stat)
        .where(
            Stat.id == stat_id,
            Stat.user1_id == user_id,
            Stat.user2_id == opponent_id,
            Stat.outcome == outcome.value,
        )
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount == 0:
        raise NotFoundError(f"Stat {stat_id} not found")
    logger.info(f"Stat {stat_id} expired and removed by user {user_id}")


async def expire_stat(session: AsyncSession, caller_id: int, stat_id: int) -> Dict:
    """
    Caller-triggered expiration of one stat.

    Raises:
        NotFoundError: If the stat does not exist
        ForbiddenError: If the caller did not report it
    """
    stat = await get_stats(session, stat_id)
    is_user(caller_id, stat.user1_id)
    snapshot = format_stat(stat)
    await delete_old_score(
        session, stat.id, stat.user1_id, stat.outcome == StatOutcome.WIN.value, stat.user2_id
    )
    return snapshot


def is_expired(stat: Stat, now=None) -> bool:
    """Whether the stat's fixed lifetime has passed."""
    now = now or utcnow()
    return ensure_utc(stat.expires_at) <= now


async def list_stats(session: AsyncSession, user_id: int, expired_only: bool = False) -> List[Stat]:
    """
    Stats naming the user as reporter or opponent, newest first.

    Args:
        expired_only: Only return stats past their expiration, i.e. the ones
            the reporter is expected to expire next
    """
    result = await session.execute(
        select(Stat)
        .where(or_(Stat.user1_id == user_id, Stat.user2_id == user_id))
        .order_by(Stat.created_at.desc(), Stat.id.desc())
    )
    stats = list(result.scalars().all())
    if expired_only:
        now = utcnow()
        stats = [s for s in stats if is_expired(s, now)]
    return stats


def format_stat(stat: Stat) -> Dict:
    """Serialize a stat for API responses."""
    return {
        "id": stat.id,
        "user1_id": stat.user1_id,
        "user2_id": stat.user2_id,
        "post_id": stat.post_id,
        "stat": stat.stat,
        "outcome": stat.outcome,
        "state": stat.state,
        "applied_delta": stat.applied_delta,
        "created_at": isoformat_or_none(stat.created_at),
        "expires_at": isoformat_or_none(stat.expires_at),
        "is_expired": is_expired(stat),
    }
