"""Ticket lifecycle: open, claim/unclaim, soft-close, finalize.

State checks and writes go through the registry synchronously; only after the
in-memory state is settled does the engine await the gateway. When the
gateway reports a missing permission during claim or soft-close the state
change is undone before the error reaches the actor.
"""

from __future__ import annotations

import asyncio
import logging

from ticketdesk.errors import (
    AlreadyClaimed,
    DuplicateOpenTicket,
    GatewayError,
    GatewayPermissionDenied,
    NotClaimer,
    NotFound,
)

logger = logging.getLogger(__name__)


def describe_duration(seconds: float) -> str:
    if seconds >= 60:
        minutes = int(round(seconds / 60))
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{seconds:g} seconds"


class TicketLifecycle:
    def __init__(self, registry, tracker, rewards, gateway, config):
        self.registry = registry
        self.tracker = tracker
        self.rewards = rewards
        self.gateway = gateway
        self.config = config
        self.tracker.on_expire = self._on_claim_expired
        self._purge_tasks: dict[int, asyncio.Task] = {}

    def _active(self, channel_id: int):
        ticket = self.registry.get_active(channel_id)
        if ticket is None:
            raise NotFound()
        return ticket

    async def _announce(self, channel_id: int, content: str) -> None:
        try:
            await self.gateway.send_message(channel_id, content)
        except GatewayError as e:
            logger.warning("Could not post to channel %s: %s", channel_id, e)

    # Opening

    async def open_ticket(self, requester_id: int, category, details: str = ""):
        self.registry.ensure_can_open(requester_id)
        channel_id = await self.gateway.create_ticket_channel(requester_id, category)
        try:
            # checked again, another open may have finished while the channel was created
            ticket = self.registry.open(channel_id, requester_id, category, details)
        except DuplicateOpenTicket:
            try:
                await self.gateway.delete_channel(channel_id, "Duplicate ticket")
            except GatewayError as e:
                logger.warning("Could not delete duplicate ticket channel %s: %s", channel_id, e)
            raise

        try:
            await self.gateway.post_ticket_controls(ticket)
        except GatewayError as e:
            logger.warning("Could not post controls in ticket %s: %s", channel_id, e)
        return ticket

    # Claiming

    async def toggle_claim(self, channel_id: int, staff_id: int) -> str:
        ticket = self._active(channel_id)
        if ticket.is_soft_closed:
            raise AlreadyClaimed("Cannot change claim status on a soft-closed ticket.")
        if ticket.is_claimed:
            if ticket.claimer_id != staff_id:
                raise NotClaimer(ticket.claimer_id, "unclaim it")
            return await self.unclaim(channel_id, staff_id)
        return await self.claim(channel_id, staff_id)

    async def claim(self, channel_id: int, staff_id: int) -> str:
        ticket = self.registry.claim(channel_id, staff_id)
        self.tracker.track(channel_id, staff_id)
        try:
            await self.gateway.apply_claim(ticket)
            await self.gateway.update_ticket_controls(ticket)
        except GatewayPermissionDenied as e:
            logger.error("Claim of %s by %s failed, rolling back: %s", channel_id, staff_id, e)
            if self.tracker.claimer_of(channel_id) == staff_id:
                self.tracker.release(channel_id)
            if ticket.is_active and ticket.claimer_id == staff_id and not ticket.is_soft_closed:
                self.registry.unclaim(channel_id)
            e.action = "claim this ticket"
            raise

        await self._announce(channel_id, f"🔒 <@{staff_id}> has **claimed** this ticket and is taking over.")
        return "✅ You have **claimed** this ticket. Other staff members cannot type here until you unclaim it."

    async def unclaim(self, channel_id: int, staff_id: int) -> str:
        ticket = self.registry.unclaim(channel_id)
        self.tracker.release(channel_id)
        await self._refresh_unclaimed(ticket)
        await self._announce(channel_id, f"🔓 <@{staff_id}> has **unclaimed** this ticket. It is now available for any staff member.")
        return "✅ You have **unclaimed** this ticket. All staff can now respond."

    async def _refresh_unclaimed(self, ticket) -> None:
        # the unclaim stands even if the permission reset fails
        try:
            await self.gateway.release_claim(ticket)
            await self.gateway.update_ticket_controls(ticket)
        except GatewayError as e:
            logger.warning("Error during unclaim/permission reset for %s: %s", ticket.channel_id, e)

    async def _on_claim_expired(self, channel_id: int, claimer_id: int) -> None:
        ticket = self.registry.get_active(channel_id)
        if ticket is None or ticket.is_soft_closed or ticket.claimer_id != claimer_id:
            logger.info("Unclaim timeout for %s is stale, nothing to do", channel_id)
            return
        self.registry.unclaim(channel_id)
        await self._refresh_unclaimed(ticket)
        await self._announce(
            channel_id,
            f"⚠️ <@{claimer_id}> did not reply within {describe_duration(self.tracker.timeout_seconds)} "
            f"of the user's message. The ticket has been **automatically unclaimed**. All staff can now respond.",
        )

    def handle_chat_message(self, channel_id: int, author_id: int) -> None:
        claimer_id = self.tracker.claimer_of(channel_id)
        if claimer_id is None:
            return
        ticket = self.registry.get_active(channel_id)
        if ticket is None or ticket.is_soft_closed:
            self.tracker.release(channel_id)
            return
        if author_id == ticket.creator_id:
            self.tracker.arm(channel_id)
        # a claimer who also opened the ticket answers their own message
        if author_id == claimer_id:
            self.tracker.disarm(channel_id)

    # Closing

    async def soft_close(self, channel_id: int, staff_id: int, admin_override: bool = False) -> str:
        ticket = self.registry.soft_close(channel_id, staff_id, admin_override=admin_override)
        self.tracker.release(channel_id)
        try:
            await self.gateway.lock_ticket(ticket)
            await self.gateway.update_ticket_controls(
                ticket, note=f"**Ticket Soft-Closed by <@{staff_id}>** | Ready for final deletion."
            )
        except GatewayPermissionDenied as e:
            logger.error("Soft close of %s failed, rolling back: %s", channel_id, e)
            if self.registry.get_active(channel_id) is ticket and ticket.is_soft_closed:
                self.registry.reopen(channel_id)
                if ticket.is_claimed:
                    self.tracker.track(channel_id, ticket.claimer_id)
            e.action = "soft-close this ticket"
            raise

        reward_line = await self._request_reward(ticket)
        await self._announce(channel_id, f"💾 <@{staff_id}> has **soft-closed** this ticket. It is now locked and awaiting final deletion.")
        return f"✅ Ticket soft-closed. {reward_line} The channel is now locked. Use **Finalize & Delete** to remove the channel."

    async def _request_reward(self, ticket) -> str:
        try:
            request = await self.rewards.request_ticket_reward(ticket)
        except GatewayError as e:
            logger.error("Could not post reward request for ticket %s: %s", ticket.channel_id, e)
            return "⚠️ The reward request could not be posted, please contact an admin."
        if request is None:
            return "No reward is configured for this ticket category."
        return (
            f"A reward of **{request.amount} {self.config.currency}** for <@{request.staff_id}> "
            f"has been sent for admin approval."
        )

    async def finalize(self, channel_id: int, staff_id: int, via_admin_force: bool = False) -> str:
        ticket = self.registry.get_active(channel_id)
        if ticket is None:
            if via_admin_force:
                return self.force_delete_without_log(channel_id, staff_id)
            raise NotFound()

        # end_time is set here, before any await; a second finalize gets NotFound
        self.registry.finalize(channel_id, force=via_admin_force)
        self.tracker.release(channel_id)

        try:
            transcript_line = await self._archive(ticket, staff_id)
        finally:
            self._schedule_purge(channel_id, f"Ticket finalized and deleted by {staff_id}.")
        return (
            f"✅ Ticket finalized and deleted. {transcript_line} "
            f"Channel will be deleted in {describe_duration(self.config.delete_grace_seconds)}."
        )

    def force_delete_without_log(self, channel_id: int, staff_id: int) -> str:
        """Delete a channel that has no live ticket record, skipping the transcript."""
        if channel_id in self._purge_tasks:
            raise NotFound("This channel is already being deleted.")
        logger.warning("Admin %s force-deleting channel %s without a ticket record", staff_id, channel_id)
        self._schedule_purge(channel_id, f"Force deleted by admin {staff_id}.")
        return f"✅ Channel will be deleted in {describe_duration(self.config.delete_grace_seconds)}. No ticket record existed, so no transcript was saved."

    async def _archive(self, ticket, staff_id: int) -> str:
        try:
            html = await self.gateway.export_transcript(ticket.channel_id)
            if not html:
                return "Transcript could not be generated."
            ref = await self.gateway.archive_transcript(ticket, html, staff_id)
        except GatewayError as e:
            logger.error("Transcript for ticket %s not saved: %s", ticket.channel_id, e)
            return "Transcript could not be saved."
        except Exception:
            logger.exception("Error generating transcript for ticket %s", ticket.channel_id)
            return "Transcript could not be saved."
        if not ref:
            return "Transcript could not be saved (no transcript log channel)."
        self.registry.set_transcript(ticket.channel_id, ref)
        return "Transcript saved to logs."

    def _schedule_purge(self, channel_id: int, reason: str) -> None:
        if channel_id in self._purge_tasks:
            return
        self._purge_tasks[channel_id] = asyncio.create_task(self._purge_after_grace(channel_id, reason))

    async def _purge_after_grace(self, channel_id: int, reason: str) -> None:
        try:
            await asyncio.sleep(self.config.delete_grace_seconds)
            await self.gateway.delete_channel(channel_id, reason)
        except GatewayError as e:
            logger.error("Error deleting channel %s (requires Manage Channels permission): %s", channel_id, e)
        except Exception:
            logger.exception("Unexpected error deleting channel %s", channel_id)
        finally:
            self.registry.purge(channel_id)
            self._purge_tasks.pop(channel_id, None)

    async def wait_for_purges(self) -> None:
        tasks = list(self._purge_tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
