"""In-memory staff balances and the payout transaction log.

Nothing here survives a restart. All methods are synchronous so a caller can
check a balance and write it back without another event running in between.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ticketdesk.errors import InvalidAmount

logger = logging.getLogger(__name__)


@dataclass
class StaffAccount:
    staff_id: int
    balance: int = 0


@dataclass(frozen=True)
class Transaction:
    id: int
    staff_id: int
    amount_paid: int
    timestamp: datetime
    external_ref: str
    approver_id: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "staff_id": self.staff_id,
            "amount_paid": self.amount_paid,
            "timestamp": self.timestamp.isoformat(),
            "external_ref": self.external_ref,
            "approver_id": self.approver_id,
        }


@dataclass(frozen=True)
class LedgerStatistics:
    total_transactions: int
    total_paid: int
    active_account_count: int
    total_outstanding_balance: int
    top_balances: list = field(default_factory=list)
    recent_transactions: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_transactions": self.total_transactions,
            "total_paid": self.total_paid,
            "active_account_count": self.active_account_count,
            "total_outstanding_balance": self.total_outstanding_balance,
            "top_balances": [{"staff_id": s, "balance": b} for s, b in self.top_balances],
            "recent_transactions": [t.to_dict() for t in self.recent_transactions],
        }


class Ledger:
    def __init__(self):
        self._accounts: dict[int, StaffAccount] = {}
        self._transactions: list[Transaction] = []
        self._next_id = 1

    def balance(self, staff_id: int) -> int:
        account = self._accounts.get(staff_id)
        return account.balance if account else 0

    def adjust_balance(self, staff_id: int, delta: int) -> int:
        """Add delta (may be negative) to the account, creating it at 0 if needed.

        No lower bound is enforced here; callers check sufficiency first.
        """
        account = self._accounts.get(staff_id)
        if account is None:
            account = StaffAccount(staff_id)
            self._accounts[staff_id] = account
        account.balance += int(delta)
        logger.info("Balance of %s adjusted by %+d -> %d", staff_id, delta, account.balance)
        return account.balance

    def record_transaction(self, staff_id: int, amount_paid: int, external_ref: str, approver_id: int) -> Transaction:
        if amount_paid <= 0:
            raise InvalidAmount(f"Transaction amount must be positive, got {amount_paid}.")
        tx = Transaction(
            id=self._next_id,
            staff_id=staff_id,
            amount_paid=int(amount_paid),
            timestamp=datetime.now(timezone.utc),
            external_ref=str(external_ref or "N/A"),
            approver_id=approver_id,
        )
        self._next_id += 1
        self._transactions.append(tx)
        logger.info("Recorded transaction #%d: %d paid to %s (approved by %s)", tx.id, tx.amount_paid, staff_id, approver_id)
        return tx

    def transactions_for(self, staff_id: int) -> list[Transaction]:
        return [t for t in self._transactions if t.staff_id == staff_id]

    def statistics(self, top: int = 10, recent: int = 10) -> LedgerStatistics:
        # Snapshot first; the keep-alive thread reads this too.
        accounts = list(self._accounts.values())
        transactions = list(self._transactions)

        # nlargest is stable, so equal balances keep account creation order
        ranked = heapq.nlargest(top, accounts, key=lambda a: a.balance)
        return LedgerStatistics(
            total_transactions=len(transactions),
            total_paid=sum(t.amount_paid for t in transactions),
            active_account_count=sum(1 for a in accounts if a.balance > 0),
            total_outstanding_balance=sum(a.balance for a in accounts),
            top_balances=[(a.staff_id, a.balance) for a in ranked],
            recent_transactions=transactions[::-1][:recent],
        )
