"""MessagingGateway implemented on discord.py, with chat_exporter transcripts."""

from __future__ import annotations

import io
import logging
from contextlib import contextmanager
from datetime import datetime, timezone

import chat_exporter
import discord

from ticketdesk.errors import GatewayError, GatewayPermissionDenied
from ticketdesk.gateway import MessagingGateway
from ticketdesk.rewards import ApprovalKind
from ticketdesk.views import ApprovalView, TicketControlView, TranscriptLinkView

logger = logging.getLogger(__name__)

TRANSCRIPT_MESSAGE_LIMIT = 100


@contextmanager
def discord_errors(missing: str, action: str):
    try:
        yield
    except discord.Forbidden as e:
        raise GatewayPermissionDenied(missing, action) from e
    except discord.HTTPException as e:
        raise GatewayError(f"{action}: {e}") from e


class DiscordGateway(MessagingGateway):
    def __init__(self, bot: discord.Client, config):
        self.bot = bot
        self.config = config
        self._control_messages: dict[int, int] = {}

    def _guild(self) -> discord.Guild:
        guild = self.bot.get_guild(self.config.guild_id)
        if guild is None:
            raise GatewayError(f"guild {self.config.guild_id} not available")
        return guild

    async def _channel(self, channel_id: int):
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            with discord_errors("view channels", "find the channel"):
                channel = await self.bot.fetch_channel(channel_id)
        return channel

    async def _member(self, guild: discord.Guild, user_id: int):
        member = guild.get_member(user_id)
        if member is None:
            with discord_errors("view server members", "fetch a member"):
                member = await guild.fetch_member(user_id)
        return member

    async def _control_message(self, channel) -> discord.Message | None:
        message_id = self._control_messages.get(channel.id)
        with discord_errors("read message history", "find the ticket controls"):
            if message_id:
                return await channel.fetch_message(message_id)
            pinned = await channel.pins()
        return pinned[0] if pinned else None

    async def create_ticket_channel(self, creator_id: int, category) -> int:
        guild = self._guild()
        member = await self._member(guild, creator_id)

        overwrites = {
            guild.default_role: discord.PermissionOverwrite(view_channel=False),
            member: discord.PermissionOverwrite(view_channel=True, send_messages=True),
        }
        staff_role = guild.get_role(self.config.staff_role_id)
        if staff_role:
            overwrites[staff_role] = discord.PermissionOverwrite(view_channel=True, send_messages=True)
        admin_role = guild.get_role(self.config.admin_role_id)
        if admin_role:
            overwrites[admin_role] = discord.PermissionOverwrite(
                view_channel=True, send_messages=True, manage_channels=True)

        parent = guild.get_channel(self.config.group_for(category))
        if not isinstance(parent, discord.CategoryChannel):
            logger.warning("Category channel for %s not configured; creating at top level", category.value)
            parent = None

        name = f"{category.value}-{member.name}".lower().replace(" ", "-")
        with discord_errors("create channels (Manage Channels)", "create the ticket channel"):
            channel = await guild.create_text_channel(
                name=name, category=parent, topic=f"UserID: {creator_id}", overwrites=overwrites)
        logger.info("Created ticket channel %s (%s)", channel.name, channel.id)
        return channel.id

    async def post_ticket_controls(self, ticket) -> None:
        channel = await self._channel(ticket.channel_id)
        embed = discord.Embed(
            title=f"New Ticket: {ticket.category.value}",
            description=f"Hello <@{ticket.creator_id}>,\nThank you for reaching out! A staff member will be with you shortly.",
            color=discord.Color.green(),
            timestamp=ticket.start_time,
        )
        if ticket.details:
            embed.add_field(name="Details", value=ticket.details[:1024], inline=False)
        embed.set_footer(text=f"Ticket ID: {ticket.channel_id}")

        ping = f"<@{ticket.creator_id}>"
        if self.config.staff_role_id:
            ping += f" <@&{self.config.staff_role_id}>"
        with discord_errors("send messages", "post the ticket controls"):
            message = await channel.send(content=ping, embed=embed, view=TicketControlView())
        self._control_messages[ticket.channel_id] = message.id
        try:
            await message.pin()
        except discord.HTTPException as e:
            logger.warning("Could not pin controls in %s: %s", ticket.channel_id, e)

    async def update_ticket_controls(self, ticket, note: str | None = None) -> None:
        channel = await self._channel(ticket.channel_id)
        message = await self._control_message(channel)
        if message is None:
            logger.warning("No control message found in ticket %s", ticket.channel_id)
            return
        view = TicketControlView(ticket.is_claimed, ticket.is_soft_closed)
        with discord_errors("edit the initial ticket message", "update the ticket buttons"):
            if note is None:
                await message.edit(view=view)
            else:
                await message.edit(content=note, view=view)

    async def apply_claim(self, ticket) -> None:
        channel = await self._channel(ticket.channel_id)
        guild = channel.guild
        claimer = await self._member(guild, ticket.claimer_id)
        staff_role = guild.get_role(self.config.staff_role_id)
        with discord_errors("edit channel permissions (Manage Roles)", "claim this ticket"):
            await channel.edit(topic=f"🔒 Claimed by: {claimer} ({claimer.id}) | UserID: {ticket.creator_id}")
            if staff_role:
                await channel.set_permissions(staff_role, view_channel=True, send_messages=False)
            await channel.set_permissions(claimer, view_channel=True, send_messages=True)

    async def release_claim(self, ticket) -> None:
        channel = await self._channel(ticket.channel_id)
        staff_role = channel.guild.get_role(self.config.staff_role_id)
        with discord_errors("edit channel permissions (Manage Roles)", "unclaim this ticket"):
            await channel.edit(topic=f"UserID: {ticket.creator_id}")
            if staff_role:
                await channel.set_permissions(staff_role, view_channel=True, send_messages=True)
            # drop every per-member overwrite except the creator's
            for target in list(channel.overwrites):
                if isinstance(target, discord.Member) and target.id != ticket.creator_id and not target.bot:
                    await channel.set_permissions(target, overwrite=None)

    async def lock_ticket(self, ticket) -> None:
        channel = await self._channel(ticket.channel_id)
        guild = channel.guild
        staff_role = guild.get_role(self.config.staff_role_id)
        with discord_errors("edit channel permissions (Manage Roles)", "lock this ticket"):
            creator = guild.get_member(ticket.creator_id) or discord.Object(id=ticket.creator_id)
            await channel.set_permissions(creator, view_channel=True, send_messages=False)
            if staff_role:
                await channel.set_permissions(staff_role, view_channel=True, send_messages=False)
            else:
                logger.warning("STAFF_ROLE_ID is missing. Cannot lock general staff sending messages.")

    async def send_message(self, channel_id: int, content: str) -> None:
        channel = await self._channel(channel_id)
        with discord_errors("send messages", "post in the channel"):
            await channel.send(content)

    async def send_direct_message(self, user_id: int, content: str) -> None:
        user = self.bot.get_user(user_id)
        with discord_errors("DM this user", "send a direct message"):
            if user is None:
                user = await self.bot.fetch_user(user_id)
            await user.send(content)

    async def send_approval_request(self, request) -> object:
        channel = await self._channel(self.config.approval_channel_id)
        cur = self.config.currency
        if request.kind is ApprovalKind.PAYOUT:
            embed = discord.Embed(title="💵 NEW PAYOUT REQUEST", color=discord.Color.orange(), timestamp=request.requested_at)
            embed.add_field(name="Staff Member", value=f"<@{request.staff_id}>", inline=True)
            embed.add_field(name="Requested Amount", value=f"**{request.amount} {cur}**", inline=True)
            embed.add_field(name="Payout Link", value=request.external_ref or "N/A", inline=False)
            content = "New payout request to review!"
        else:
            embed = discord.Embed(title="🎫 TICKET REWARD REQUEST", color=discord.Color.blurple(), timestamp=request.requested_at)
            embed.add_field(name="Staff Member", value=f"<@{request.staff_id}>", inline=True)
            embed.add_field(name="Reward", value=f"**{request.amount} {cur}**", inline=True)
            embed.add_field(name="Ticket", value=f"<#{request.channel_id}> ({request.category.value})", inline=False)
            content = "New ticket reward to review!"
        embed.add_field(name="Staff ID", value=str(request.staff_id), inline=True)
        embed.add_field(name="Request ID", value=request.id, inline=True)
        if self.config.admin_role_id:
            content = f"<@&{self.config.admin_role_id}> {content}"

        with discord_errors("send messages in the approval channel", "post the approval request"):
            return await channel.send(content=content, embed=embed, view=ApprovalView(request.kind, request.id))

    async def close_approval_request(self, request, approved: bool) -> None:
        if request.message is None:
            return
        with discord_errors("edit messages in the approval channel", "disable the approval buttons"):
            await request.message.edit(view=ApprovalView.decided(approved))

    async def export_transcript(self, channel_id: int) -> str | None:
        channel = await self._channel(channel_id)
        with discord_errors("read message history", "generate the transcript"):
            transcript = await chat_exporter.export(
                channel,
                limit=TRANSCRIPT_MESSAGE_LIMIT,
                tz_info="UTC",
                guild=channel.guild,
                bot=self.bot,
            )
        if not transcript:
            logger.warning("Failed to generate transcript for %s", channel_id)
            return None
        return transcript

    async def archive_transcript(self, ticket, html: str, finalizer_id: int) -> str | None:
        log_channel = self.bot.get_channel(self.config.transcript_channel_id)
        if log_channel is None:
            logger.error("TRANSCRIPT_LOG_CHANNEL_ID: %s not found. Deleting ticket without logging.",
                         self.config.transcript_channel_id)
            return None

        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        file = discord.File(io.BytesIO(html.encode("utf-8")), filename=f"transcript-{ticket.channel_id}-{stamp}.html")
        with discord_errors("send messages in the Transcript Log Channel", "save the transcript"):
            message = await log_channel.send(
                content=(
                    f"**TICKET DELETED & LOGGED**\nCreator: <@{ticket.creator_id}>\n"
                    f"Type: {ticket.category.value}\nStaff Finalizer: <@{finalizer_id}>"
                ),
                file=file,
            )
            url = message.attachments[0].url if message.attachments else None
            if url:
                await message.edit(view=TranscriptLinkView(url))
        return url

    async def delete_channel(self, channel_id: int, reason: str) -> None:
        try:
            channel = await self._channel(channel_id)
        except GatewayError:
            logger.info("Channel %s already gone", channel_id)
            return
        with discord_errors("delete the channel (Manage Channels)", "delete the channel"):
            await channel.delete(reason=reason)
        self._control_messages.pop(channel_id, None)
        logger.info("Channel %s deleted", channel_id)
