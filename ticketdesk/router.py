"""Dispatch of inbound interactions into the lifecycle engine and reward workflow.

Component ids are decoded once here into tagged values. Every actor-initiated
handler replies exactly once through the ``ack`` callback it is given, with
either the success text or the failure text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from ticketdesk.config import Category
from ticketdesk.errors import (
    GatewayPermissionDenied,
    InvalidAmount,
    NotAuthorized,
    TicketDeskError,
    UnknownAction,
)
from ticketdesk.lifecycle import describe_duration
from ticketdesk.rewards import ApprovalKind

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "An unexpected internal error occurred. Check the bot logs for details."


class TicketAction(str, Enum):
    CLAIM_TOGGLE = "claim_toggle"
    SOFT_CLOSE = "soft_close"
    FINALIZE = "finalize"
    ADMIN_DELETE = "admin_delete"


@dataclass(frozen=True)
class Actor:
    user_id: int
    is_staff: bool = False
    is_admin: bool = False


@dataclass(frozen=True)
class TicketComponent:
    action: TicketAction


@dataclass(frozen=True)
class ApprovalComponent:
    kind: ApprovalKind
    approve: bool
    request_id: str


def ticket_custom_id(action: TicketAction) -> str:
    return f"ticket:{action.value}"


def approval_custom_id(kind: ApprovalKind, approve: bool, request_id: str) -> str:
    return f"approval:{kind.value}:{'approve' if approve else 'deny'}:{request_id}"


def decode_custom_id(custom_id: str):
    """Turn a button custom id into a TicketComponent or ApprovalComponent."""
    parts = str(custom_id or "").split(":")
    try:
        if parts[0] == "ticket" and len(parts) == 2:
            return TicketComponent(TicketAction(parts[1]))
        if parts[0] == "approval" and len(parts) == 4 and parts[2] in ("approve", "deny") and parts[3]:
            return ApprovalComponent(ApprovalKind(parts[1]), parts[2] == "approve", parts[3])
    except ValueError:
        pass
    raise UnknownAction(str(custom_id))


def parse_amount(raw) -> int:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        raise InvalidAmount(f"❌ `{raw}` is not a whole number.") from None


class EventRouter:
    def __init__(self, lifecycle, rewards, ledger, config):
        self.lifecycle = lifecycle
        self.rewards = rewards
        self.ledger = ledger
        self.config = config

    async def _run(self, ack, name: str, handler, *args, **kwargs) -> bool:
        """Run a handler and send exactly one acknowledgment. Returns True on success."""
        ok = False
        try:
            text = await handler(*args, **kwargs)
            ok = True
        except TicketDeskError as e:
            logger.info("%s rejected: %s", name, e)
            text = e.user_message
        except GatewayPermissionDenied as e:
            logger.warning("%s failed on missing permission: %s", name, e.missing)
            text = e.user_message
        except Exception:
            logger.exception("Unexpected error in %s", name)
            text = GENERIC_FAILURE
        try:
            await ack(text)
        except Exception:
            logger.exception("Failed to acknowledge %s", name)
        return ok

    @staticmethod
    async def _reject(error: Exception):
        raise error

    @staticmethod
    def _require_staff(actor: Actor, message: str = "You must be a staff member to perform ticket actions.") -> None:
        if not (actor.is_staff or actor.is_admin):
            raise NotAuthorized(message)

    @staticmethod
    def _require_admin(actor: Actor, message: str = "Only Administrators can do that.") -> None:
        if not actor.is_admin:
            raise NotAuthorized(message)

    # Ticket events

    async def on_ticket_open_requested(self, actor: Actor, category, ack, form_details=None) -> bool:
        async def handle():
            try:
                cat = category if isinstance(category, Category) else Category.parse(category)
            except ValueError:
                raise UnknownAction(str(category)) from None
            ticket = await self.lifecycle.open_ticket(actor.user_id, cat, details=form_details or "")
            return f"✅ Your **{cat.value}** ticket has been created! Go to <#{ticket.channel_id}>"

        return await self._run(ack, "ticket open", handle)

    async def on_claim_toggle(self, actor: Actor, channel_id: int, ack) -> bool:
        async def handle():
            self._require_staff(actor)
            return await self.lifecycle.toggle_claim(channel_id, actor.user_id)

        return await self._run(ack, "claim toggle", handle)

    async def on_soft_close_requested(self, actor: Actor, channel_id: int, ack, admin_override: bool = False) -> bool:
        async def handle():
            self._require_staff(actor)
            if admin_override:
                self._require_admin(actor, "Only Administrators can close a ticket claimed by someone else.")
            return await self.lifecycle.soft_close(channel_id, actor.user_id, admin_override=admin_override)

        return await self._run(ack, "soft close", handle)

    async def on_finalize_requested(self, actor: Actor, channel_id: int, ack, via_admin_force: bool = False) -> bool:
        async def handle():
            if via_admin_force:
                self._require_admin(actor, "Only Administrators can force delete tickets.")
            else:
                self._require_staff(actor, "You must be a staff member to finalize and delete tickets.")
            return await self.lifecycle.finalize(channel_id, actor.user_id, via_admin_force=via_admin_force)

        return await self._run(ack, "finalize", handle)

    async def on_chat_message(self, channel_id: int, author_id: int) -> None:
        try:
            self.lifecycle.handle_chat_message(channel_id, author_id)
        except Exception:
            logger.exception("Error tracking message in %s", channel_id)

    # Reward / payout events

    async def on_payout_requested(self, actor: Actor, amount, external_ref: str, ack) -> bool:
        async def handle():
            self._require_staff(actor, "Only staff members can request payouts.")
            value = parse_amount(amount)
            await self.rewards.request_payout(actor.user_id, value, external_ref)
            return f"✅ Your payout request for **{value} {self.config.currency}** has been sent for admin approval!"

        return await self._run(ack, "payout request", handle)

    async def on_manual_credit(self, actor: Actor, target_staff_id: int, amount, ack) -> bool:
        async def handle():
            self._require_admin(actor, "Only Administrators can add balance.")
            value = parse_amount(amount)
            new_balance = await self.rewards.credit(actor.user_id, target_staff_id, value)
            cur = self.config.currency
            return f"✅ Added **{value} {cur}** to <@{target_staff_id}>. New balance: **{new_balance} {cur}**."

        return await self._run(ack, "manual credit", handle)

    async def on_approval_decision(self, actor: Actor, kind: ApprovalKind, approve: bool, payload: str, ack) -> bool:
        async def handle():
            self._require_admin(actor, "Only Administrators can approve or deny requests.")
            return await self.rewards.decide(kind, payload, approve, actor.user_id)

        return await self._run(ack, f"{kind.value} decision", handle)

    async def on_component(self, actor: Actor, channel_id: int, custom_id: str, ack) -> bool:
        try:
            component = decode_custom_id(custom_id)
        except UnknownAction as e:
            logger.warning("Unrecognized component id %r from %s", custom_id, actor.user_id)
            return await self._run(ack, "component", self._reject, e)

        if isinstance(component, ApprovalComponent):
            return await self.on_approval_decision(actor, component.kind, component.approve, component.request_id, ack)
        if component.action is TicketAction.CLAIM_TOGGLE:
            return await self.on_claim_toggle(actor, channel_id, ack)
        if component.action is TicketAction.SOFT_CLOSE:
            return await self.on_soft_close_requested(actor, channel_id, ack)
        if component.action is TicketAction.FINALIZE:
            return await self.on_finalize_requested(actor, channel_id, ack)
        return await self.on_finalize_requested(actor, channel_id, ack, via_admin_force=True)

    # Read-only commands

    def balance_summary(self, staff_id: int) -> str:
        cur = self.config.currency
        return (
            f"Your current earned balance is **{self.ledger.balance(staff_id)} {cur}**.\n\n"
            f"**Payout Rules:**\n"
            f"- **Min Request:** {self.config.payout_min} {cur}\n"
            f"- **Max Request:** {self.config.payout_max} {cur}\n"
            f"- Use `/payout` when you are ready to request a payment.\n"
            f"- Claimed tickets are released after {describe_duration(self.config.unclaim_timeout_seconds)} without a reply."
        )

    def statistics_summary(self) -> str:
        stats = self.ledger.statistics(top=5, recent=5)
        cur = self.config.currency
        lines = [
            f"**Transactions:** {stats.total_transactions} ({stats.total_paid} {cur} paid)",
            f"**Staff with a balance:** {stats.active_account_count}",
            f"**Outstanding balance:** {stats.total_outstanding_balance} {cur}",
            f"**Pending approvals:** {len(self.rewards.pending())}",
        ]
        if stats.top_balances:
            lines.append("\n**Top balances**")
            lines += [f"{i}. <@{sid}>: {bal} {cur}" for i, (sid, bal) in enumerate(stats.top_balances, 1)]
        if stats.recent_transactions:
            lines.append("\n**Recent payouts**")
            lines += [
                f"#{t.id} <@{t.staff_id}>: {t.amount_paid} {cur} (approved by <@{t.approver_id}>)"
                for t in stats.recent_transactions
            ]
        return "\n".join(lines)
