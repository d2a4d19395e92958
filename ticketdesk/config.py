from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum

from dotenv import load_dotenv


class Category(str, Enum):
    """Ticket categories offered on the panel."""

    GENERAL_SUPPORT = "General Support"
    REPORT_EXPLOITERS = "Report Exploiters"
    APPLY_FOR_MEDIA = "Apply for Media"

    @classmethod
    def parse(cls, value: str) -> "Category":
        for category in cls:
            if category.value.lower() == str(value).strip().lower():
                return category
        raise ValueError(f"unknown ticket category: {value!r}")


DEFAULT_REWARDS = {
    Category.GENERAL_SUPPORT: 15,
    Category.REPORT_EXPLOITERS: 20,
    Category.APPLY_FOR_MEDIA: 25,
}

CATEGORY_DESCRIPTIONS = {
    Category.GENERAL_SUPPORT: "Questions, bugs, or general help.",
    Category.REPORT_EXPLOITERS: "Report a player who is exploiting.",
    Category.APPLY_FOR_MEDIA: "Apply for the media/content creator role.",
}


@dataclass(frozen=True)
class TicketConfig:
    token: str = ""
    guild_id: int = 0
    staff_role_id: int = 0
    admin_role_id: int = 0
    panel_channel_id: int = 0
    transcript_channel_id: int = 0
    approval_channel_id: int = 0
    category_groups: dict = field(default_factory=dict)
    rewards: dict = field(default_factory=lambda: dict(DEFAULT_REWARDS))
    payout_min: int = 300
    payout_max: int = 700
    unclaim_timeout_seconds: float = 20 * 60
    delete_grace_seconds: float = 5
    keepalive_port: int = 4000
    currency: str = "R$"

    def reward_for(self, category) -> int:
        return int(self.rewards.get(category, 0))

    def group_for(self, category) -> int:
        return int(self.category_groups.get(category, 0))


def _as_int(v: object, default: int = 0) -> int:
    try:
        return int(str(v).strip())
    except (TypeError, ValueError):
        return default


def _as_float(v: object, default: float) -> float:
    try:
        return float(str(v).strip())
    except (TypeError, ValueError):
        return default


def load_config(env=None, dotenv_path=None) -> TicketConfig:
    """Build the config from environment variables (and a .env file when present)."""
    if env is None:
        load_dotenv(dotenv_path)
        env = os.environ

    payout_min = _as_int(env.get("PAYOUT_MIN"), 300)
    payout_max = _as_int(env.get("PAYOUT_MAX"), 700)
    if payout_min > payout_max:
        raise ValueError(f"PAYOUT_MIN ({payout_min}) is greater than PAYOUT_MAX ({payout_max})")

    return TicketConfig(
        token=str(env.get("DISCORD_TOKEN") or "").strip(),
        guild_id=_as_int(env.get("GUILD_ID")),
        staff_role_id=_as_int(env.get("STAFF_ROLE_ID")),
        admin_role_id=_as_int(env.get("ADMIN_ROLE_ID")),
        panel_channel_id=_as_int(env.get("TICKET_PANEL_CHANNEL_ID")),
        transcript_channel_id=_as_int(env.get("TRANSCRIPT_LOG_CHANNEL_ID")),
        approval_channel_id=_as_int(env.get("ADMIN_APPROVAL_CHANNEL_ID")),
        category_groups={
            Category.GENERAL_SUPPORT: _as_int(env.get("SUPPORT_CATEGORY_ID")),
            Category.REPORT_EXPLOITERS: _as_int(env.get("REPORT_CATEGORY_ID")),
            Category.APPLY_FOR_MEDIA: _as_int(env.get("MEDIA_CATEGORY_ID")),
        },
        payout_min=payout_min,
        payout_max=payout_max,
        unclaim_timeout_seconds=_as_float(env.get("UNCLAIM_TIMEOUT_SECONDS"), 20 * 60),
        delete_grace_seconds=_as_float(env.get("DELETE_GRACE_SECONDS"), 5),
        keepalive_port=_as_int(env.get("KEEPALIVE_PORT"), 4000),
        currency=str(env.get("CURRENCY") or "R$").strip(),
    )
