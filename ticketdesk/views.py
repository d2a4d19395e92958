"""Discord UI pieces: the ticket panel, ticket buttons, forms and approval buttons.

Every button is a RoutedButton; its custom id is handed to the event router,
which decodes it and answers through the interaction's followup.
"""

from __future__ import annotations

import discord

from ticketdesk.config import CATEGORY_DESCRIPTIONS, Category
from ticketdesk.rewards import ApprovalKind
from ticketdesk.router import Actor, TicketAction, approval_custom_id, ticket_custom_id

PANEL_SELECT_ID = "panel:select_ticket_type"


def actor_from(interaction: discord.Interaction) -> Actor:
    config = interaction.client.config
    user = interaction.user
    roles = getattr(user, "roles", [])
    perms = getattr(user, "guild_permissions", None)
    is_admin = bool(perms and perms.administrator) or any(role.id == config.admin_role_id for role in roles)
    return Actor(
        user_id=user.id,
        is_staff=any(role.id == config.staff_role_id for role in roles),
        is_admin=is_admin,
    )


def followup_ack(interaction: discord.Interaction):
    async def ack(text: str) -> None:
        await interaction.followup.send(text, ephemeral=True)

    return ack


class RoutedButton(discord.ui.Button):
    async def callback(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await interaction.client.router.on_component(
            actor_from(interaction), interaction.channel_id, self.custom_id, followup_ack(interaction)
        )


class TicketControlView(discord.ui.View):
    def __init__(self, is_claimed: bool = False, is_soft_closed: bool = False, persistent: bool = False):
        super().__init__(timeout=None)

        self.add_item(RoutedButton(
            label="Unclaim" if is_claimed else "Claim",
            emoji="🔓" if is_claimed else "🔒",
            style=discord.ButtonStyle.secondary if is_claimed else discord.ButtonStyle.primary,
            custom_id=ticket_custom_id(TicketAction.CLAIM_TOGGLE),
            disabled=is_soft_closed,
        ))
        if is_soft_closed or persistent:
            self.add_item(RoutedButton(
                label="Finalize & Delete",
                emoji="🗑️",
                style=discord.ButtonStyle.danger,
                custom_id=ticket_custom_id(TicketAction.FINALIZE),
            ))
        if not is_soft_closed or persistent:
            self.add_item(RoutedButton(
                label="Close",
                emoji="💾",
                style=discord.ButtonStyle.success,
                custom_id=ticket_custom_id(TicketAction.SOFT_CLOSE),
            ))
        self.add_item(RoutedButton(
            label="Admin Delete",
            emoji="⛔",
            style=discord.ButtonStyle.danger,
            custom_id=ticket_custom_id(TicketAction.ADMIN_DELETE),
        ))

    @classmethod
    def persistent(cls) -> "TicketControlView":
        """A view holding every ticket button id, registered once at startup."""
        return cls(persistent=True)


class ApprovalView(discord.ui.View):
    def __init__(self, kind: ApprovalKind, request_id: str):
        super().__init__(timeout=None)
        label = "Payout" if kind is ApprovalKind.PAYOUT else "Reward"
        self.add_item(RoutedButton(
            label=f"✅ Approve {label}",
            style=discord.ButtonStyle.success,
            custom_id=approval_custom_id(kind, True, request_id),
        ))
        self.add_item(RoutedButton(
            label=f"❌ Deny {label}",
            style=discord.ButtonStyle.danger,
            custom_id=approval_custom_id(kind, False, request_id),
        ))

    @staticmethod
    def decided(approved: bool) -> discord.ui.View:
        view = discord.ui.View(timeout=None)
        view.add_item(discord.ui.Button(
            label="✅ Approved" if approved else "❌ Denied",
            style=discord.ButtonStyle.success if approved else discord.ButtonStyle.danger,
            custom_id="approval:decided",
            disabled=True,
        ))
        return view


class TranscriptLinkView(discord.ui.View):
    def __init__(self, url: str):
        super().__init__(timeout=None)
        self.add_item(discord.ui.Button(label="Direct Link", style=discord.ButtonStyle.link, url=url))


class MediaApplicationModal(discord.ui.Modal, title="Media Application Form"):
    platform_link = discord.ui.TextInput(
        label="Link to Content Platform (YouTube, TikTok)",
        placeholder="e.g., youtube.com/@YourChannel",
        style=discord.TextStyle.short,
        required=True,
    )
    follower_count = discord.ui.TextInput(
        label="Follower/Subscriber Count (Number Only)",
        placeholder="e.g., 5000",
        style=discord.TextStyle.short,
        required=True,
    )
    content_plan = discord.ui.TextInput(
        label="Content plan for the server",
        style=discord.TextStyle.paragraph,
        required=True,
        max_length=1000,
    )

    async def on_submit(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True, thinking=True)
        details = (
            f"**Platform Link:** {self.platform_link.value}\n"
            f"**Follower/Subscriber Count:** {self.follower_count.value}\n"
            f"**Content Plan:**\n{self.content_plan.value}"
        )
        await interaction.client.router.on_ticket_open_requested(
            actor_from(interaction), Category.APPLY_FOR_MEDIA, followup_ack(interaction), form_details=details
        )


class PayoutModal(discord.ui.Modal, title="Payout Request"):
    amount = discord.ui.TextInput(label="Amount", style=discord.TextStyle.short, required=True, max_length=10)
    payout_link = discord.ui.TextInput(
        label="Gamepass / Claim Link",
        placeholder="Link the payment should be sent through",
        style=discord.TextStyle.short,
        required=True,
    )

    def __init__(self, payout_min: int, payout_max: int):
        super().__init__()
        self.amount.placeholder = f"Between {payout_min} and {payout_max}"

    async def on_submit(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await interaction.client.router.on_payout_requested(
            actor_from(interaction), self.amount.value, self.payout_link.value, followup_ack(interaction)
        )


class TicketPanelView(discord.ui.View):
    def __init__(self):
        super().__init__(timeout=None)

    @discord.ui.select(
        custom_id=PANEL_SELECT_ID,
        placeholder="Select a Ticket Category...",
        options=[
            discord.SelectOption(label=c.value, value=c.value, description=CATEGORY_DESCRIPTIONS[c])
            for c in Category
        ],
    )
    async def select_ticket_type(self, interaction: discord.Interaction, select: discord.ui.Select):
        category = Category.parse(select.values[0])
        if category is Category.APPLY_FOR_MEDIA:
            await interaction.response.send_modal(MediaApplicationModal())
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        await interaction.client.router.on_ticket_open_requested(
            actor_from(interaction), category, followup_ack(interaction)
        )


def build_panel_embed() -> discord.Embed:
    embed = discord.Embed(
        title="🎫 Official Support Ticket System",
        description="Select a category below to open a private ticket with our staff team.\n\n"
        + "\n".join(f"**{c.value}**: {CATEGORY_DESCRIPTIONS[c]}" for c in Category)
        + "\n\n**Note:** You can only have one open ticket at a time.",
        color=discord.Color.green(),
    )
    return embed
