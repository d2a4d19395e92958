import logging

import discord
from discord import app_commands
from discord.ext import commands

from ticketdesk import build_core, load_config
from ticketdesk.discord_gateway import DiscordGateway
from ticketdesk.keepalive import keep_alive
from ticketdesk.views import (
    PayoutModal,
    TicketControlView,
    TicketPanelView,
    actor_from,
    build_panel_embed,
    followup_ack,
)

logger = logging.getLogger("tickets")

# Bot setup with intents
intents = discord.Intents.default()
intents.message_content = True
intents.members = True
intents.guilds = True


class TicketBot(commands.Bot):
    def __init__(self, config):
        super().__init__(command_prefix="/", intents=intents)
        self.config = config
        self.gateway = DiscordGateway(self, config)
        self.router = build_core(config, self.gateway)

    async def setup_hook(self):
        # Add persistent views
        self.add_view(TicketPanelView())
        self.add_view(TicketControlView.persistent())
        register_commands(self)

        guild = discord.Object(id=self.config.guild_id)
        self.tree.copy_global_to(guild=guild)
        try:
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d command(s) to guild %s", len(synced), self.config.guild_id)
        except discord.HTTPException as e:
            logger.error("Failed to sync commands: %s", e)

    async def on_ready(self):
        logger.info("Bot has logged in as %s", self.user)

    async def close(self):
        self.router.lifecycle.tracker.release_all()
        await super().close()

    async def on_message(self, message: discord.Message):
        if message.author.bot or message.guild is None:
            return
        await self.router.on_chat_message(message.channel.id, message.author.id)


def register_commands(bot: TicketBot):
    router = bot.router
    config = bot.config

    @bot.tree.command(name="panel", description="ADMIN ONLY: Deploys the persistent ticket panel.")
    async def panel(interaction: discord.Interaction):
        if not actor_from(interaction).is_admin:
            await interaction.response.send_message("You need Administrator permissions to set up the panel.", ephemeral=True)
            return
        channel = bot.get_channel(config.panel_channel_id) or interaction.channel
        await channel.send(embed=build_panel_embed(), view=TicketPanelView())
        await interaction.response.send_message("Ticket panel deployed successfully.", ephemeral=True)

    @bot.tree.command(name="balance", description="Check your current payout balance.")
    async def balance(interaction: discord.Interaction):
        embed = discord.Embed(
            title="💰 Payout Balance",
            description=router.balance_summary(interaction.user.id),
            color=discord.Color.gold(),
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @bot.tree.command(name="payout", description="Initiate a payout request.")
    async def payout(interaction: discord.Interaction):
        if not actor_from(interaction).is_staff:
            await interaction.response.send_message("Only staff members can request payouts.", ephemeral=True)
            return
        await interaction.response.send_modal(PayoutModal(config.payout_min, config.payout_max))

    @bot.tree.command(name="close-ticket", description="STAFF ONLY: Soft-close the current ticket and request its reward.")
    @app_commands.describe(override="ADMIN ONLY: close even if another staff member claimed it")
    async def close_ticket(interaction: discord.Interaction, override: bool = False):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await router.on_soft_close_requested(
            actor_from(interaction), interaction.channel_id, followup_ack(interaction), admin_override=override)

    @bot.tree.command(name="delete-ticket", description="ADMIN ONLY: Generate transcript and finalize/delete the ticket.")
    async def delete_ticket(interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await router.on_finalize_requested(
            actor_from(interaction), interaction.channel_id, followup_ack(interaction), via_admin_force=True)

    @bot.tree.command(name="add-balance", description="ADMIN ONLY: Credit a staff member's balance.")
    @app_commands.describe(member="Staff member to credit", amount="Amount to add")
    async def add_balance(interaction: discord.Interaction, member: discord.Member, amount: int):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await router.on_manual_credit(actor_from(interaction), member.id, amount, followup_ack(interaction))

    @bot.tree.command(name="payout-stats", description="ADMIN ONLY: Show payout ledger statistics.")
    async def payout_stats(interaction: discord.Interaction):
        if not actor_from(interaction).is_admin:
            await interaction.response.send_message("Only Administrators can view payout statistics.", ephemeral=True)
            return
        embed = discord.Embed(title="📊 Payout Statistics", description=router.statistics_summary(), color=discord.Color.blurple())
        await interaction.response.send_message(embed=embed, ephemeral=True)


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    logging.getLogger("discord.http").setLevel(logging.WARNING)

    config = load_config()
    if not config.token:
        raise SystemExit("DISCORD_TOKEN is not set")

    bot = TicketBot(config)
    keep_alive(bot.router.ledger, bot.router.lifecycle.registry, port=config.keepalive_port)
    bot.run(config.token, log_handler=None)


# Start the bot
if __name__ == "__main__":
    main()
