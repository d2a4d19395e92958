"""Admin-approved ticket rewards and staff payouts.

Both flows go request -> pending approval -> admin decision -> notification.
A request is taken out of the pending table before anything is awaited, so
only the first decision on it ever does any work.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from ticketdesk.errors import (
    BalanceChanged,
    GatewayError,
    InsufficientBalance,
    InvalidAmount,
    NotFound,
)

logger = logging.getLogger(__name__)


class ApprovalKind(str, Enum):
    PAYOUT = "payout"
    TICKET_REWARD = "reward"


@dataclass
class PendingApproval:
    kind: ApprovalKind
    staff_id: int
    amount: int
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    external_ref: str = ""
    channel_id: int | None = None
    category: object = None
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    message: object = None
    approved: bool | None = None
    decided_by: int | None = None
    decided_at: datetime | None = None


class RewardWorkflow:
    def __init__(self, ledger, gateway, config):
        self.ledger = ledger
        self.gateway = gateway
        self.config = config
        self._pending: dict[str, PendingApproval] = {}
        self._decided: list[PendingApproval] = []

    @property
    def currency(self) -> str:
        return self.config.currency

    def pending(self) -> list[PendingApproval]:
        return list(self._pending.values())

    def get_pending(self, request_id: str) -> PendingApproval | None:
        return self._pending.get(request_id)

    def history(self, kind: ApprovalKind | None = None) -> list[PendingApproval]:
        """Decided requests, oldest first."""
        return [r for r in self._decided if kind is None or r.kind is kind]

    def validate_payout(self, staff_id: int, amount: int) -> None:
        lo, hi = self.config.payout_min, self.config.payout_max
        if not isinstance(amount, int) or amount < lo or amount > hi:
            raise InvalidAmount(f"❌ Invalid amount. You must request between {lo} {self.currency} and {hi} {self.currency}.")
        balance = self.ledger.balance(staff_id)
        if amount > balance:
            raise InsufficientBalance(balance, amount, self.currency)

    async def _post(self, request: PendingApproval) -> PendingApproval:
        self._pending[request.id] = request
        try:
            request.message = await self.gateway.send_approval_request(request)
        except GatewayError:
            self._pending.pop(request.id, None)
            raise
        logger.info("Posted %s request %s for %s (%d)", request.kind.value, request.id, request.staff_id, request.amount)
        return request

    async def request_payout(self, staff_id: int, amount: int, external_ref: str) -> PendingApproval:
        self.validate_payout(staff_id, amount)
        request = PendingApproval(ApprovalKind.PAYOUT, staff_id, amount, external_ref=str(external_ref or "").strip())
        return await self._post(request)

    async def request_ticket_reward(self, ticket) -> PendingApproval | None:
        amount = self.config.reward_for(ticket.category)
        if amount <= 0:
            logger.info("No reward configured for %s; ticket %s closes without a request", ticket.category, ticket.channel_id)
            return None
        request = PendingApproval(
            ApprovalKind.TICKET_REWARD,
            ticket.beneficiary_id,
            amount,
            channel_id=ticket.channel_id,
            category=ticket.category,
        )
        return await self._post(request)

    async def _notify(self, staff_id: int, content: str) -> bool:
        try:
            await self.gateway.send_direct_message(staff_id, content)
        except GatewayError as e:
            logger.warning("Could not DM %s: %s", staff_id, e)
            return False
        return True

    async def credit(self, admin_id: int, staff_id: int, amount: int) -> int:
        if not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount("❌ The amount to add must be a positive whole number.")
        new_balance = self.ledger.adjust_balance(staff_id, amount)
        logger.info("Admin %s manually credited %d to %s", admin_id, amount, staff_id)
        await self._notify(
            staff_id,
            f"💰 <@{admin_id}> added **{amount} {self.currency}** to your balance. New balance: **{new_balance} {self.currency}**.",
        )
        return new_balance

    async def decide(self, kind: ApprovalKind, request_id: str, approve: bool, approver_id: int) -> str:
        request = self._pending.get(request_id)
        if request is None or request.kind is not kind:
            raise NotFound("This request was already decided or no longer exists.")
        del self._pending[request_id]
        request.approved = approve
        request.decided_by = approver_id
        request.decided_at = datetime.now(timezone.utc)
        self._decided.append(request)
        logger.info("%s request %s %s by %s", kind.value, request_id, "approved" if approve else "denied", approver_id)

        try:
            await self.gateway.close_approval_request(request, approve)
        except GatewayError as e:
            logger.warning("Could not disable buttons of request %s: %s", request_id, e)

        if kind is ApprovalKind.PAYOUT:
            return await self._decide_payout(request, approve, approver_id)
        return await self._decide_reward(request, approve, approver_id)

    async def _decide_payout(self, request: PendingApproval, approve: bool, approver_id: int) -> str:
        staff_id, amount, cur = request.staff_id, request.amount, self.currency
        if not approve:
            sent = await self._notify(
                staff_id,
                f"❌ Your payout request for **{amount} {cur}** has been **denied** by <@{approver_id}>. Please contact them for details.",
            )
            if not sent:
                return f"❌ Denied, but could not DM staff member <@{staff_id}>."
            return f"❌ Successfully denied payout request for <@{staff_id}>."

        balance = self.ledger.balance(staff_id)
        if balance < amount:
            request.approved = False
            await self._notify(
                staff_id,
                f"⚠️ Your payout request for **{amount} {cur}** could not be approved: your balance is now **{balance} {cur}**.",
            )
            raise BalanceChanged(balance, amount, cur)

        new_balance = self.ledger.adjust_balance(staff_id, -amount)
        try:
            tx = self.ledger.record_transaction(staff_id, amount, request.external_ref, approver_id)
        except Exception:
            # debit without a transaction record would lose funds
            self.ledger.adjust_balance(staff_id, amount)
            logger.exception("Payout %s for %s failed after debit; balance restored", request.id, staff_id)
            raise

        sent = await self._notify(
            staff_id,
            f"✅ Your payout request for **{amount} {cur}** has been **approved** by <@{approver_id}>! "
            f"Your balance is now **{new_balance} {cur}**.\n\n"
            f"Please make sure your payout link is set up correctly to receive the payment shortly.",
        )
        reply = f"✅ Payout of **{amount} {cur}** to <@{staff_id}> approved and logged as transaction #{tx.id}."
        return reply + (" Staff notified." if sent else " Could not DM the staff member.")

    async def _decide_reward(self, request: PendingApproval, approve: bool, approver_id: int) -> str:
        staff_id, amount, cur = request.staff_id, request.amount, self.currency
        if not approve:
            await self._notify(
                staff_id,
                f"❌ Your ticket reward of **{amount} {cur}** for <#{request.channel_id}> was **denied** by <@{approver_id}>.",
            )
            return f"❌ Denied ticket reward for <@{staff_id}>."

        new_balance = self.ledger.adjust_balance(staff_id, amount)
        await self._notify(
            staff_id,
            f"✅ Your ticket reward of **{amount} {cur}** was approved by <@{approver_id}>. New balance: **{new_balance} {cur}**.",
        )
        return f"✅ Ticket reward of **{amount} {cur}** credited to <@{staff_id}> (new balance: {new_balance} {cur})."
