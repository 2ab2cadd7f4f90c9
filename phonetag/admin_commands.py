"""Admin commands for game management."""

import os
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from .commands import CURRENT_GAME_KEY
from .config import PRODUCT_QUANTITIES
from .enforcer import DeadlineEnforcer
from .errors import PhoneTagError
from .logic import GameLogic
from .models import ArsenalItem
from .notifications import DiscordNotificationRelay, GameNotifier
from .storage import GameStorage
from .view import GameView


class AdminCommands(commands.Cog):
    """Admin-only commands for testing and management."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.storage = GameStorage()
        self.notifier = GameNotifier(self.storage, DiscordNotificationRelay(bot))
        self.logic = GameLogic(self.storage, self.notifier)
        self.view = GameView(self.storage)

        # Get owner ID from environment
        self.owner_id = int(os.getenv('BOT_OWNER_ID', '0'))

    def is_owner(self, user_id: int) -> bool:
        """Check if user is the bot owner."""
        if user_id == self.owner_id:
            return True
        application = getattr(self.bot, 'application', None)
        owner = getattr(application, 'owner', None)
        return owner is not None and user_id == owner.id

    async def _deny(self, interaction: discord.Interaction) -> bool:
        if self.is_owner(interaction.user.id):
            return False
        await interaction.response.send_message("❌ This command is restricted to bot owners.", ephemeral=True)
        return True

    @staticmethod
    def _guild(interaction: discord.Interaction) -> str:
        return str(interaction.guild_id) if interaction.guild_id else "DM"

    @app_commands.command(name="admin_create_game", description="[ADMIN] Start a new game in this server")
    @app_commands.describe(title="Short game title")
    async def create_game(self, interaction: discord.Interaction, title: str):
        if await self._deny(interaction):
            return
        user_id = str(interaction.user.id)
        try:
            await self.storage.upsert_user(user_id, interaction.user.display_name, user_id)
            game = await self.logic.create_game(user_id, title)
        except PhoneTagError as e:
            await interaction.response.send_message(embed=self.view.format_error(str(e)), ephemeral=True)
            return
        await self.storage.set_state(CURRENT_GAME_KEY, game.id, self._guild(interaction))

        embed = discord.Embed(
            title=f"📍 New game: {game.title}",
            description=f"Join with `/join {game.registration_code}`, then set your home base with `/homebase`.",
            color=0xE61A6E,
        )
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name="admin_start_check", description="[ADMIN] Start the game if every home base is set")
    async def start_check(self, interaction: discord.Interaction):
        if await self._deny(interaction):
            return
        game_id = await self.storage.get_state(CURRENT_GAME_KEY, self._guild(interaction))
        try:
            if not game_id:
                raise PhoneTagError("No game in this server.")
            game = await self.logic.start_if_ready(game_id)
        except PhoneTagError as e:
            await interaction.response.send_message(embed=self.view.format_error(str(e)), ephemeral=True)
            return

        waiting = [pid for pid, state in game.players.items() if state.home_base is None]
        if waiting:
            names = ", ".join(f"<@{pid}>" for pid in waiting)
            message = f"Still waiting on home bases from: {names}"
        else:
            message = f"**{game.title}** is {game.status.value}."
        await interaction.response.send_message(message, ephemeral=True)

    @app_commands.command(name="admin_grant", description="[ADMIN] Give a player arsenal items")
    @app_commands.describe(player="Who receives the items", item="Which item",
                           quantity="How many (defaults to one store pack)")
    @app_commands.choices(item=[app_commands.Choice(name=i.display_name, value=i.value) for i in ArsenalItem])
    async def grant(self, interaction: discord.Interaction, player: discord.Member,
                    item: app_commands.Choice[str], quantity: Optional[int] = None):
        if await self._deny(interaction):
            return
        try:
            credited = await self.logic.grant_items(str(player.id), ArsenalItem(item.value), quantity)
        except PhoneTagError as e:
            await interaction.response.send_message(embed=self.view.format_error(str(e)), ephemeral=True)
            return
        amount = quantity if quantity is not None else PRODUCT_QUANTITIES[item.value]
        await interaction.response.send_message(
            f"Granted {amount} {item.name} to {player.mention} in {credited} game(s).", ephemeral=True
        )

    @app_commands.command(name="admin_enforce_now", description="[ADMIN] Run nudge enforcement immediately")
    async def enforce_now(self, interaction: discord.Interaction):
        if await self._deny(interaction):
            return
        await interaction.response.defer(ephemeral=True)
        report = await DeadlineEnforcer(self.storage, self.notifier).run_cycle()
        await interaction.followup.send(
            f"Processed {report.games_processed} game(s): {report.penalties} penalties, "
            f"{report.exempt} exempt, {report.skipped} skipped, {report.failures} failures.",
            ephemeral=True,
        )

    @app_commands.command(name="admin_delete_game", description="[ADMIN] Delete this server's game")
    async def delete_game(self, interaction: discord.Interaction):
        if await self._deny(interaction):
            return
        guild_id = self._guild(interaction)
        game_id = await self.storage.get_state(CURRENT_GAME_KEY, guild_id)
        if not game_id:
            await interaction.response.send_message(embed=self.view.format_error("No game to delete."),
                                                    ephemeral=True)
            return
        await self.logic.delete_game(game_id)
        await self.storage.set_state(CURRENT_GAME_KEY, "", guild_id)
        await interaction.response.send_message(embed=self.view.format_success("Game deleted."))


async def setup(bot: commands.Bot):
    """Setup function to add the admin cog to the bot."""
    await bot.add_cog(AdminCommands(bot))
