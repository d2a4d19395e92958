"""Live ticket records, one per ticket channel."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ticketdesk.config import Category
from ticketdesk.errors import (
    AlreadyClaimed,
    AlreadySoftClosed,
    DuplicateOpenTicket,
    NotClaimer,
    NotFound,
    NotSoftClosed,
)

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Ticket:
    channel_id: int
    creator_id: int
    category: Category
    start_time: datetime = field(default_factory=_now_utc)
    end_time: datetime | None = None
    claimer_id: int | None = None
    is_claimed: bool = False
    is_soft_closed: bool = False
    transcript_ref: str | None = None
    beneficiary_id: int | None = None
    details: str = ""

    @property
    def is_active(self) -> bool:
        return self.end_time is None


class TicketRegistry:
    def __init__(self):
        self._tickets: dict[int, Ticket] = {}

    def open_ticket_for(self, creator_id: int) -> Ticket | None:
        for ticket in self._tickets.values():
            if ticket.creator_id == creator_id and ticket.end_time is None:
                return ticket
        return None

    def ensure_can_open(self, creator_id: int) -> None:
        existing = self.open_ticket_for(creator_id)
        if existing is not None:
            raise DuplicateOpenTicket(existing.channel_id)

    def open(self, channel_id: int, creator_id: int, category: Category, details: str = "") -> Ticket:
        self.ensure_can_open(creator_id)
        ticket = Ticket(channel_id=channel_id, creator_id=creator_id, category=category, details=details)
        self._tickets[channel_id] = ticket
        logger.info("Opened %s ticket %s for %s", category.value, channel_id, creator_id)
        return ticket

    def get_active(self, channel_id: int) -> Ticket | None:
        ticket = self._tickets.get(channel_id)
        if ticket is None or ticket.end_time is not None:
            return None
        return ticket

    def active_tickets(self) -> list[Ticket]:
        # the keep-alive thread calls this while the loop may be opening tickets
        tickets = list(self._tickets.values())
        return [t for t in tickets if t.end_time is None]

    def _require_active(self, channel_id: int) -> Ticket:
        ticket = self.get_active(channel_id)
        if ticket is None:
            raise NotFound()
        return ticket

    def claim(self, channel_id: int, staff_id: int) -> Ticket:
        ticket = self._require_active(channel_id)
        if ticket.is_soft_closed:
            raise AlreadyClaimed("Cannot change claim status on a soft-closed ticket.")
        if ticket.is_claimed:
            raise AlreadyClaimed(f"This ticket is already claimed by <@{ticket.claimer_id}>.")
        ticket.is_claimed = True
        ticket.claimer_id = staff_id
        logger.info("Ticket %s claimed by %s", channel_id, staff_id)
        return ticket

    def unclaim(self, channel_id: int) -> Ticket:
        ticket = self._require_active(channel_id)
        if ticket.is_soft_closed:
            raise AlreadySoftClosed("Cannot change claim status on a soft-closed ticket.")
        if ticket.is_claimed:
            logger.info("Ticket %s unclaimed (was %s)", channel_id, ticket.claimer_id)
        ticket.is_claimed = False
        ticket.claimer_id = None
        return ticket

    def soft_close(self, channel_id: int, closing_staff_id: int, admin_override: bool = False) -> Ticket:
        """Mark the ticket closed for conversation and pick the reward beneficiary.

        A claimed ticket can only be soft-closed by its claimer unless an admin
        overrides; on override the claimer still receives the reward.
        """
        ticket = self._require_active(channel_id)
        if ticket.is_soft_closed:
            raise AlreadySoftClosed()
        if ticket.is_claimed and ticket.claimer_id != closing_staff_id:
            if not admin_override:
                raise NotClaimer(ticket.claimer_id, "soft-close it (or unclaim it first)")
            logger.warning("Admin %s overrode claim of %s to soft-close ticket %s",
                           closing_staff_id, ticket.claimer_id, channel_id)
            ticket.beneficiary_id = ticket.claimer_id
        else:
            ticket.beneficiary_id = closing_staff_id
        ticket.is_soft_closed = True
        logger.info("Ticket %s soft-closed by %s", channel_id, closing_staff_id)
        return ticket

    def reopen(self, channel_id: int) -> Ticket:
        ticket = self._require_active(channel_id)
        ticket.is_soft_closed = False
        ticket.beneficiary_id = None
        logger.info("Ticket %s soft-close rolled back", channel_id)
        return ticket

    def finalize(self, channel_id: int, force: bool = False) -> Ticket:
        ticket = self._require_active(channel_id)
        if not ticket.is_soft_closed and not force:
            raise NotSoftClosed()
        ticket.end_time = _now_utc()
        logger.info("Ticket %s finalized%s", channel_id, " (forced)" if force else "")
        return ticket

    def set_transcript(self, channel_id: int, ref: str) -> None:
        ticket = self._tickets.get(channel_id)
        if ticket is not None and ticket.transcript_ref is None:
            ticket.transcript_ref = ref

    def purge(self, channel_id: int) -> bool:
        ticket = self._tickets.pop(channel_id, None)
        if ticket is None:
            return False
        logger.debug("Ticket %s purged from registry", channel_id)
        return True
