"""
Shared pytest fixtures: an in-memory gateway and a fully wired core.
"""

import asyncio
import itertools

import pytest

from ticketdesk.claims import ClaimTracker
from ticketdesk.config import TicketConfig
from ticketdesk.gateway import MessagingGateway
from ticketdesk.ledger import Ledger
from ticketdesk.lifecycle import TicketLifecycle
from ticketdesk.registry import TicketRegistry
from ticketdesk.rewards import RewardWorkflow
from ticketdesk.router import Actor, EventRouter

CREATOR = 100
STAFF_A = 201
STAFF_B = 202
ADMIN = 900


class FakeGateway(MessagingGateway):
    """Records every call; ``fail[method] = exc`` makes that method raise."""

    def __init__(self):
        self.calls = []
        self.fail = {}
        self._ids = itertools.count(5000)

    async def _record(self, name, *args):
        self.calls.append((name, *args))
        # a suspension point, like a real network call
        await asyncio.sleep(0)
        if name in self.fail:
            raise self.fail[name]

    def called(self, name):
        return [c[1:] for c in self.calls if c[0] == name]

    def channel_messages(self, channel_id):
        return [content for cid, content in self.called("send_message") if cid == channel_id]

    async def create_ticket_channel(self, creator_id, category):
        await self._record("create_ticket_channel", creator_id, category)
        return next(self._ids)

    async def post_ticket_controls(self, ticket):
        await self._record("post_ticket_controls", ticket.channel_id)

    async def update_ticket_controls(self, ticket, note=None):
        await self._record("update_ticket_controls", ticket.channel_id, note)

    async def apply_claim(self, ticket):
        await self._record("apply_claim", ticket.channel_id, ticket.claimer_id)

    async def release_claim(self, ticket):
        await self._record("release_claim", ticket.channel_id)

    async def lock_ticket(self, ticket):
        await self._record("lock_ticket", ticket.channel_id)

    async def send_message(self, channel_id, content):
        await self._record("send_message", channel_id, content)

    async def send_direct_message(self, user_id, content):
        await self._record("send_direct_message", user_id, content)

    async def send_approval_request(self, request):
        await self._record("send_approval_request", request.id)
        return f"message-{request.id}"

    async def close_approval_request(self, request, approved):
        await self._record("close_approval_request", request.id, approved)

    async def export_transcript(self, channel_id):
        await self._record("export_transcript", channel_id)
        return f"<html>transcript {channel_id}</html>"

    async def archive_transcript(self, ticket, html, finalizer_id):
        await self._record("archive_transcript", ticket.channel_id, finalizer_id)
        return f"https://cdn.example/transcript-{ticket.channel_id}.html"

    async def delete_channel(self, channel_id, reason):
        await self._record("delete_channel", channel_id, reason)


@pytest.fixture
def config():
    return TicketConfig(
        guild_id=1,
        staff_role_id=10,
        admin_role_id=11,
        approval_channel_id=20,
        transcript_channel_id=21,
        unclaim_timeout_seconds=0.1,
        delete_grace_seconds=0.01,
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def ledger():
    return Ledger()


@pytest.fixture
def registry():
    return TicketRegistry()


@pytest.fixture
def tracker(config):
    return ClaimTracker(config.unclaim_timeout_seconds)


@pytest.fixture
def rewards(ledger, gateway, config):
    return RewardWorkflow(ledger, gateway, config)


@pytest.fixture
def lifecycle(registry, tracker, rewards, gateway, config):
    return TicketLifecycle(registry, tracker, rewards, gateway, config)


@pytest.fixture
def router(lifecycle, rewards, ledger, config):
    return EventRouter(lifecycle, rewards, ledger, config)


@pytest.fixture
def staff_a():
    return Actor(STAFF_A, is_staff=True)


@pytest.fixture
def staff_b():
    return Actor(STAFF_B, is_staff=True)


@pytest.fixture
def admin():
    return Actor(ADMIN, is_staff=True, is_admin=True)


@pytest.fixture
def member():
    return Actor(CREATOR)


class AckRecorder:
    def __init__(self):
        self.messages = []

    async def __call__(self, text):
        self.messages.append(text)


@pytest.fixture
def ack():
    return AckRecorder()
