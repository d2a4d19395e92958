"""Tests for the ticket registry state rules."""

import pytest

from ticketdesk.config import Category
from ticketdesk.errors import (
    AlreadyClaimed,
    AlreadySoftClosed,
    DuplicateOpenTicket,
    NotClaimer,
    NotFound,
    NotSoftClosed,
)

GENERAL = Category.GENERAL_SUPPORT


@pytest.fixture
def ticket(registry):
    return registry.open(1, 100, GENERAL)


class TestOpen:
    def test_open_creates_active_ticket(self, registry, ticket):
        assert registry.get_active(1) is ticket
        assert ticket.end_time is None
        assert not ticket.is_claimed and not ticket.is_soft_closed

    def test_second_open_for_same_creator_fails(self, registry, ticket):
        with pytest.raises(DuplicateOpenTicket) as exc:
            registry.open(2, 100, Category.REPORT_EXPLOITERS)
        assert exc.value.channel_id == 1
        assert registry.get_active(2) is None

    def test_other_creators_unaffected(self, registry, ticket):
        registry.open(2, 101, GENERAL)
        assert registry.get_active(2).creator_id == 101

    def test_can_open_again_after_finalize(self, registry, ticket):
        registry.finalize(1, force=True)
        registry.open(2, 100, GENERAL)
        assert registry.open_ticket_for(100).channel_id == 2


class TestClaim:
    def test_claim_sets_claimer(self, registry, ticket):
        registry.claim(1, 201)
        assert ticket.is_claimed and ticket.claimer_id == 201

    def test_double_claim_fails_and_leaves_state(self, registry, ticket):
        registry.claim(1, 201)
        with pytest.raises(AlreadyClaimed):
            registry.claim(1, 202)
        assert ticket.claimer_id == 201

    def test_claim_on_soft_closed_fails(self, registry, ticket):
        registry.soft_close(1, 201)
        with pytest.raises(AlreadyClaimed):
            registry.claim(1, 201)
        assert not ticket.is_claimed

    def test_unclaim_is_idempotent(self, registry, ticket):
        registry.claim(1, 201)
        registry.unclaim(1)
        registry.unclaim(1)
        assert not ticket.is_claimed and ticket.claimer_id is None

    def test_unclaim_on_soft_closed_fails(self, registry, ticket):
        registry.claim(1, 201)
        registry.soft_close(1, 201)
        with pytest.raises(AlreadySoftClosed):
            registry.unclaim(1)
        assert ticket.claimer_id == 201

    def test_claim_unknown_channel(self, registry):
        with pytest.raises(NotFound):
            registry.claim(99, 201)


class TestSoftClose:
    def test_unclaimed_ticket_closable_by_any_staff(self, registry, ticket):
        registry.soft_close(1, 202)
        assert ticket.is_soft_closed and ticket.beneficiary_id == 202

    def test_claimer_can_soft_close(self, registry, ticket):
        registry.claim(1, 201)
        registry.soft_close(1, 201)
        assert ticket.beneficiary_id == 201

    def test_non_claimer_cannot_soft_close(self, registry, ticket):
        registry.claim(1, 201)
        with pytest.raises(NotClaimer):
            registry.soft_close(1, 202)
        assert not ticket.is_soft_closed

    def test_admin_override_rewards_claimer(self, registry, ticket):
        registry.claim(1, 201)
        registry.soft_close(1, 900, admin_override=True)
        assert ticket.is_soft_closed and ticket.beneficiary_id == 201

    def test_second_soft_close_fails(self, registry, ticket):
        registry.soft_close(1, 201)
        with pytest.raises(AlreadySoftClosed):
            registry.soft_close(1, 201)

    def test_reopen_undoes_soft_close(self, registry, ticket):
        registry.soft_close(1, 201)
        registry.reopen(1)
        assert not ticket.is_soft_closed and ticket.beneficiary_id is None


class TestFinalize:
    def test_finalize_requires_soft_close(self, registry, ticket):
        with pytest.raises(NotSoftClosed):
            registry.finalize(1)
        assert ticket.end_time is None

    def test_force_finalize_skips_soft_close(self, registry, ticket):
        registry.finalize(1, force=True)
        assert ticket.end_time is not None

    def test_finalized_ticket_is_not_active(self, registry, ticket):
        registry.soft_close(1, 201)
        registry.finalize(1)
        assert registry.get_active(1) is None
        with pytest.raises(NotFound):
            registry.finalize(1)
        with pytest.raises(NotFound):
            registry.claim(1, 201)

    def test_end_time_set_once(self, registry, ticket):
        registry.soft_close(1, 201)
        registry.finalize(1)
        end = ticket.end_time
        with pytest.raises(NotFound):
            registry.finalize(1, force=True)
        assert ticket.end_time == end

    def test_purge_happens_once(self, registry, ticket):
        registry.finalize(1, force=True)
        assert registry.purge(1) is True
        assert registry.purge(1) is False

    def test_transcript_recorded_once(self, registry, ticket):
        registry.finalize(1, force=True)
        registry.set_transcript(1, "first")
        registry.set_transcript(1, "second")
        assert ticket.transcript_ref == "first"


def test_active_tickets_is_a_snapshot(registry, ticket):
    active = registry.active_tickets()
    registry.open(2, 101, GENERAL)
    registry.finalize(1, force=True)
    registry.purge(1)
    assert active == [ticket]
    assert [t.channel_id for t in registry.active_tickets()] == [2]
