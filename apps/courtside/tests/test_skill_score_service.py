"""
Unit tests for the skill score ledger.

Covers zero-sum score updates, stat edits (reverse then apply), and
reporter-triggered expiration.
"""

import asyncio
from datetime import timedelta

import pytest
from courtside.database.models import StatOutcome, StatState
from courtside.services import skill_score_service
from courtside.utils.constants import SKILL_SCORE_DELTA
from courtside.utils.datetime_utils import utcnow
from courtside.utils.errors import (
    NotFoundError,
    InvalidStatError,
    ForbiddenError,
    ConflictError,
)

D = SKILL_SCORE_DELTA


async def _scores(session, *user_ids):
    return [await skill_score_service.get_score(session, uid) for uid in user_ids]


# ──────────────────────────────────────────────────────────────
# Outcome parsing
# ──────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "content,expected",
    [
        ("win", StatOutcome.WIN),
        ("loss", StatOutcome.OTHER),
        ("Win", StatOutcome.OTHER),
        ("win!", StatOutcome.OTHER),
        ("", StatOutcome.OTHER),
        (None, StatOutcome.OTHER),
    ],
)
def test_parse_outcome(content, expected):
    """Only the exact token reports a win."""
    assert skill_score_service.parse_outcome(content) == expected


def test_score_delta_is_symmetric():
    assert skill_score_service.score_delta(True) == D
    assert skill_score_service.score_delta(False) == -D


# ──────────────────────────────────────────────────────────────
# Scores
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_new_users_start_at_zero(db_session, users):
    for user_id in users.values():
        assert await skill_score_service.get_score(db_session, user_id) == 0


@pytest.mark.asyncio
async def test_create_score_twice_conflicts(db_session, users):
    with pytest.raises(ConflictError):
        await skill_score_service.create_score(db_session, users["alice"])


@pytest.mark.asyncio
async def test_get_score_unknown_user(db_session, users):
    with pytest.raises(NotFoundError):
        await skill_score_service.get_score(db_session, 99999)


@pytest.mark.asyncio
async def test_update_score_is_zero_sum(db_session, users):
    alice, bob = users["alice"], users["bob"]

    new_score = await skill_score_service.update_score(db_session, alice, True, bob)
    assert new_score == D
    assert await _scores(db_session, alice, bob) == [D, -D]

    await skill_score_service.update_score(db_session, alice, False, bob)
    await skill_score_service.update_score(db_session, bob, False, alice)
    a, b = await _scores(db_session, alice, bob)
    assert a + b == 0
    assert (a, b) == (D, -D)


@pytest.mark.asyncio
async def test_update_score_against_self(db_session, users):
    with pytest.raises(InvalidStatError):
        await skill_score_service.update_score(db_session, users["alice"], True, users["alice"])
    assert await skill_score_service.get_score(db_session, users["alice"]) == 0


@pytest.mark.asyncio
async def test_update_score_unknown_opponent(db_session, users):
    with pytest.raises(NotFoundError):
        await skill_score_service.update_score(db_session, users["alice"], True, 99999)


# ──────────────────────────────────────────────────────────────
# Stats
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_stat_against_self(db_session, users):
    with pytest.raises(InvalidStatError):
        await skill_score_service.create_stat(db_session, users["alice"], "win", users["alice"])


@pytest.mark.asyncio
async def test_record_stat(db_session, users):
    alice, bob = users["alice"], users["bob"]
    stat, score = await skill_score_service.record_stat(db_session, alice, "win", bob)

    assert score == D
    assert stat.user1_id == alice
    assert stat.user2_id == bob
    assert stat.outcome == StatOutcome.WIN.value
    assert stat.state == StatState.CREATED.value
    assert stat.applied_delta == D
    assert not skill_score_service.is_expired(stat)
    assert skill_score_service.is_expired(stat, now=utcnow() + timedelta(days=366))


@pytest.mark.asyncio
async def test_apply_outcome_reverses_previous_delta(db_session, users):
    alice, bob = users["alice"], users["bob"]
    stat, _ = await skill_score_service.record_stat(db_session, alice, "win", bob)

    score = await skill_score_service.apply_outcome(db_session, stat, "loss")
    assert score == -D
    assert await _scores(db_session, alice, bob) == [-D, D]
    assert stat.state == StatState.EDITED.value
    assert stat.outcome == StatOutcome.OTHER.value
    assert stat.stat == "loss"


@pytest.mark.asyncio
async def test_repeated_edits_do_not_drift(db_session, users):
    """Scores always equal one application of the latest outcome."""
    alice, bob = users["alice"], users["bob"]
    stat, _ = await skill_score_service.record_stat(db_session, alice, "loss", bob)

    for content in ["win", "win", "loss", "draw", "win"]:
        await skill_score_service.apply_outcome(db_session, stat, content)

    assert await _scores(db_session, alice, bob) == [D, -D]
    assert stat.applied_delta == D


@pytest.mark.asyncio
async def test_apply_outcome_on_expired_stat_conflicts(db_session, users):
    alice, bob = users["alice"], users["bob"]
    stat, _ = await skill_score_service.record_stat(db_session, alice, "win", bob)
    await skill_score_service.expire_stat(db_session, alice, stat.id)

    with pytest.raises(ConflictError):
        await skill_score_service.apply_outcome(db_session, stat, "loss")
    assert await _scores(db_session, alice, bob) == [D, -D]


@pytest.mark.asyncio
async def test_get_stats_and_stat_for_post(db_session, users):
    stat, _ = await skill_score_service.record_stat(db_session, users["alice"], "win", users["bob"])
    assert (await skill_score_service.get_stats(db_session, stat.id)).id == stat.id
    assert await skill_score_service.get_stat_for_post(db_session, 12345) is None

    with pytest.raises(NotFoundError):
        await skill_score_service.get_stats(db_session, 99999)


# ──────────────────────────────────────────────────────────────
# Expiration
# ──────────────────────────────────────────────────────────────


def test_is_user_guard():
    skill_score_service.is_user(1, 1)
    with pytest.raises(ForbiddenError):
        skill_score_service.is_user(2, 1)


@pytest.mark.asyncio
async def test_expire_stat_keeps_scores(db_session, users):
    alice, bob = users["alice"], users["bob"]
    stat, _ = await skill_score_service.record_stat(db_session, alice, "win", bob)

    snapshot = await skill_score_service.expire_stat(db_session, alice, stat.id)
    assert snapshot["id"] == stat.id
    assert snapshot["outcome"] == "win"
    assert await _scores(db_session, alice, bob) == [D, -D]

    with pytest.raises(NotFoundError):
        await skill_score_service.get_stats(db_session, stat.id)


@pytest.mark.asyncio
async def test_second_expire_fails(db_session, users):
    alice, bob = users["alice"], users["bob"]
    stat, _ = await skill_score_service.record_stat(db_session, alice, "win", bob)
    await skill_score_service.expire_stat(db_session, alice, stat.id)

    with pytest.raises(NotFoundError):
        await skill_score_service.expire_stat(db_session, alice, stat.id)
    assert await _scores(db_session, alice, bob) == [D, -D]


@pytest.mark.asyncio
async def test_only_reporter_can_expire(db_session, users):
    alice, bob = users["alice"], users["bob"]
    stat, _ = await skill_score_service.record_stat(db_session, alice, "win", bob)

    with pytest.raises(ForbiddenError):
        await skill_score_service.expire_stat(db_session, bob, stat.id)
    assert (await skill_score_service.get_stats(db_session, stat.id)).id == stat.id


@pytest.mark.asyncio
async def test_delete_old_score_requires_matching_stat(db_session, users):
    alice, bob = users["alice"], users["bob"]
    stat, _ = await skill_score_service.record_stat(db_session, alice, "win", bob)

    # Wrong outcome: nothing matches
    with pytest.raises(NotFoundError):
        await skill_score_service.delete_old_score(db_session, stat.id, alice, False, bob)

    await skill_score_service.delete_old_score(db_session, stat.id, alice, True, bob)
    with pytest.raises(NotFoundError):
        await skill_score_service.get_stats(db_session, stat.id)


@pytest.mark.asyncio
async def test_list_stats(db_session, users):
    alice, bob, carol = users["alice"], users["bob"], users["carol"]
    old, _ = await skill_score_service.record_stat(db_session, alice, "win", bob)
    fresh, _ = await skill_score_service.record_stat(db_session, carol, "win", alice)
    await skill_score_service.record_stat(db_session, bob, "win", carol)

    old.expires_at = utcnow() - timedelta(days=1)
    await db_session.flush()

    listed = await skill_score_service.list_stats(db_session, alice)
    assert {s.id for s in listed} == {old.id, fresh.id}

    due = await skill_score_service.list_stats(db_session, alice, expired_only=True)
    assert [s.id for s in due] == [old.id]

    formatted = skill_score_service.format_stat(due[0])
    assert formatted["is_expired"] is True


# ──────────────────────────────────────────────────────────────
# Concurrency
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_concurrent_score_updates_are_not_lost(race_users):
    """Deltas committed from separate transactions at once all land."""
    session_maker, ids = race_users
    rounds = 5

    async def report_win():
        async with session_maker() as session:
            await skill_score_service.update_score(session, ids["alice"], True, ids["bob"])
            await session.commit()

    await asyncio.gather(*(report_win() for _ in range(rounds)))

    async with session_maker() as session:
        assert await _scores(session, ids["alice"], ids["bob"]) == [rounds * D, -rounds * D]
