"""Errors raised by the ticket and payout core.

Every error carries the text shown to the member who triggered it.
"""


class TicketDeskError(Exception):
    """Base class for errors reported straight back to the actor."""

    default_message = "Something went wrong."

    def __init__(self, message=None):
        super().__init__(message or self.default_message)

    @property
    def user_message(self) -> str:
        return str(self)


class DuplicateOpenTicket(TicketDeskError):
    def __init__(self, channel_id: int):
        self.channel_id = channel_id
        super().__init__(f"You already have an open ticket: <#{channel_id}>.")


class AlreadyClaimed(TicketDeskError):
    default_message = "This ticket is already claimed."


class NotClaimer(TicketDeskError):
    def __init__(self, claimer_id: int, action: str = "do that"):
        self.claimer_id = claimer_id
        super().__init__(f"❌ This ticket is claimed by <@{claimer_id}>. Only they can {action}.")


class AlreadySoftClosed(TicketDeskError):
    default_message = "This ticket is already soft-closed. Use the **Finalize & Delete** button to complete the process."


class NotSoftClosed(TicketDeskError):
    default_message = "This ticket must be soft-closed first before finalizing the delete process."


class InvalidAmount(TicketDeskError):
    pass


class InsufficientBalance(TicketDeskError):
    def __init__(self, balance: int, amount: int, currency: str = "R$"):
        self.balance = balance
        self.amount = amount
        super().__init__(
            f"❌ Your current balance is only **{balance} {currency}**. You cannot request **{amount} {currency}**."
        )


class BalanceChanged(TicketDeskError):
    def __init__(self, balance: int, amount: int, currency: str = "R$"):
        self.balance = balance
        self.amount = amount
        super().__init__(
            f"⚠️ Cannot approve. Staff member's balance (**{balance} {currency}**) is now less than "
            f"the requested amount (**{amount} {currency}**). Request rejected."
        )


class NotFound(TicketDeskError):
    default_message = "This channel is not an active ticket (or already finalized)."


class UnknownAction(NotFound):
    def __init__(self, tag: str):
        self.tag = tag
        super().__init__(f"Unrecognized action `{tag}`.")


class NotAuthorized(TicketDeskError):
    default_message = "You don't have permission to do that."


class GatewayError(Exception):
    """The messaging transport failed to deliver a side effect."""


class GatewayPermissionDenied(GatewayError):
    """The bot lacks a platform permission for the attempted side effect."""

    def __init__(self, missing: str, action: str = "complete that action"):
        self.missing = missing
        self.action = action
        super().__init__(f"missing permission: {missing}")

    @property
    def user_message(self) -> str:
        return f"❌ Failed to {self.action}: the bot is missing permissions to **{self.missing}**."
