"""Tests for the claim tracker and its unclaim timer."""

import asyncio

import pytest

from ticketdesk.claims import ClaimTracker

TIMEOUT = 0.1


@pytest.fixture
def expired():
    return []


@pytest.fixture
def claims(expired):
    async def on_expire(channel_id, claimer_id):
        expired.append((channel_id, claimer_id))

    return ClaimTracker(TIMEOUT, on_expire)


@pytest.mark.asyncio
async def test_track_starts_unarmed(claims, expired):
    claims.track(1, 201)
    assert claims.claimer_of(1) == 201
    assert not claims.is_armed(1)
    await asyncio.sleep(TIMEOUT * 2)
    assert expired == []


@pytest.mark.asyncio
async def test_armed_timer_fires_once(claims, expired):
    claims.track(1, 201)
    claims.arm(1)
    await asyncio.sleep(TIMEOUT * 3)
    assert expired == [(1, 201)]
    assert claims.claimer_of(1) is None


@pytest.mark.asyncio
async def test_rearm_replaces_previous_timer(claims, expired):
    claims.track(1, 201)
    claims.arm(1)
    await asyncio.sleep(TIMEOUT / 2)
    claims.arm(1)
    assert claims.pending_timer_count(1) == 1

    # the first timer's deadline passes without effect
    await asyncio.sleep(TIMEOUT * 0.7)
    assert expired == []

    await asyncio.sleep(TIMEOUT * 2)
    assert expired == [(1, 201)]


@pytest.mark.asyncio
async def test_disarm_cancels_timer(claims, expired):
    claims.track(1, 201)
    claims.arm(1)
    assert claims.disarm(1) is True
    assert claims.claimer_of(1) == 201
    await asyncio.sleep(TIMEOUT * 2)
    assert expired == []


@pytest.mark.asyncio
async def test_release_cancels_timer(claims, expired):
    claims.track(1, 201)
    claims.arm(1)
    claims.release(1)
    await asyncio.sleep(TIMEOUT * 2)
    assert expired == []
    assert claims.pending_timer_count() == 0


@pytest.mark.asyncio
async def test_new_claim_on_same_channel_is_not_unclaimed_by_old_timer(claims, expired):
    claims.track(1, 201)
    claims.arm(1)
    claims.track(1, 202)
    await asyncio.sleep(TIMEOUT * 2)
    assert expired == []
    assert claims.claimer_of(1) == 202


@pytest.mark.asyncio
async def test_arm_without_claim_is_noop(claims):
    assert claims.arm(5) is False
    assert claims.pending_timer_count() == 0


@pytest.mark.asyncio
async def test_channels_are_independent(claims, expired):
    claims.track(1, 201)
    claims.track(2, 202)
    claims.arm(1)
    claims.arm(2)
    claims.disarm(2)
    await asyncio.sleep(TIMEOUT * 3)
    assert expired == [(1, 201)]
    assert claims.claimer_of(2) == 202


@pytest.mark.asyncio
async def test_errors_in_expiry_are_logged_not_raised(caplog):
    async def boom(channel_id, claimer_id):
        raise RuntimeError("gateway exploded")

    claims = ClaimTracker(TIMEOUT, boom)
    claims.track(1, 201)
    claims.arm(1)
    await asyncio.sleep(TIMEOUT * 3)
    assert "Error in unclaim timeout for channel 1" in caplog.text


@pytest.mark.asyncio
async def test_release_all_cancels_everything(claims, expired):
    for channel_id in (1, 2, 3):
        claims.track(channel_id, 200 + channel_id)
        claims.arm(channel_id)
    claims.release_all()
    assert claims.pending_timer_count() == 0
    await asyncio.sleep(TIMEOUT * 2)
    assert expired == []
    assert claims.claimer_of(2) is None
