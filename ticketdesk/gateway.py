"""The messaging side effects the core needs from the chat platform.

Every method may suspend; callers never hold a check-then-write across one.
Implementations raise ``GatewayPermissionDenied`` when the bot lacks rights
and ``GatewayError`` for any other delivery failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class MessagingGateway(ABC):

    @abstractmethod
    async def create_ticket_channel(self, creator_id: int, category) -> int:
        """Create a private channel visible to the creator and staff; returns its id."""

    @abstractmethod
    async def post_ticket_controls(self, ticket) -> None:
        """Post the welcome message with claim/close buttons in a new ticket."""

    @abstractmethod
    async def update_ticket_controls(self, ticket, note: str | None = None) -> None:
        """Redraw the ticket buttons to match the ticket's claim/close state."""

    @abstractmethod
    async def apply_claim(self, ticket) -> None:
        """Give the claimer exclusive send rights among staff."""

    @abstractmethod
    async def release_claim(self, ticket) -> None:
        """Give all staff send rights back."""

    @abstractmethod
    async def lock_ticket(self, ticket) -> None:
        """Stop the creator and staff from sending in a soft-closed ticket."""

    @abstractmethod
    async def send_message(self, channel_id: int, content: str) -> None:
        ...

    @abstractmethod
    async def send_direct_message(self, user_id: int, content: str) -> None:
        ...

    @abstractmethod
    async def send_approval_request(self, request) -> object:
        """Post an approval request with approve/deny buttons; returns a message handle."""

    @abstractmethod
    async def close_approval_request(self, request, approved: bool) -> None:
        """Disable the approve/deny buttons of a posted request."""

    @abstractmethod
    async def export_transcript(self, channel_id: int) -> str | None:
        """Render the channel's recent messages as an HTML document."""

    @abstractmethod
    async def archive_transcript(self, ticket, html: str, finalizer_id: int) -> str | None:
        """Upload a transcript to the log channel; returns its link if one exists."""

    @abstractmethod
    async def delete_channel(self, channel_id: int, reason: str) -> None:
        ...
