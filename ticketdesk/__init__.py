"""Support tickets with staff rewards and admin-approved payouts."""

from ticketdesk.claims import ClaimTracker
from ticketdesk.config import Category, TicketConfig, load_config
from ticketdesk.ledger import Ledger
from ticketdesk.lifecycle import TicketLifecycle
from ticketdesk.registry import TicketRegistry
from ticketdesk.rewards import ApprovalKind, RewardWorkflow
from ticketdesk.router import Actor, EventRouter

__version__ = "1.0.0"


def build_core(config, gateway):
    """Wire the ledger, registry, tracker, workflow and engine behind a router."""
    ledger = Ledger()
    registry = TicketRegistry()
    tracker = ClaimTracker(config.unclaim_timeout_seconds)
    rewards = RewardWorkflow(ledger, gateway, config)
    lifecycle = TicketLifecycle(registry, tracker, rewards, gateway, config)
    return EventRouter(lifecycle, rewards, ledger, config)


__all__ = [
    "Actor",
    "ApprovalKind",
    "Category",
    "ClaimTracker",
    "EventRouter",
    "Ledger",
    "RewardWorkflow",
    "TicketConfig",
    "TicketLifecycle",
    "TicketRegistry",
    "build_core",
    "load_config",
]
