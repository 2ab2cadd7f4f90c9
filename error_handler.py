"""Error handling and owner notifications for the PhoneTag bot."""

import logging
import traceback
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import discord
from discord import app_commands
from discord.ext import commands


logger = logging.getLogger(__name__)


class ErrorHandler:
    """Centralized error handling and notification system."""

    def __init__(self, bot: commands.Bot, owner_id: int, notification_cooldown: int = 300):
        self.bot = bot
        self.owner_id = owner_id
        self.error_counts: Dict[str, int] = {}
        self.last_notification: Dict[str, datetime] = {}
        self.notification_cooldown = notification_cooldown  # seconds between same error types

    async def _owner(self) -> Optional[discord.User]:
        if not self.owner_id:
            return None
        return self.bot.get_user(self.owner_id) or await self.bot.fetch_user(self.owner_id)

    async def notify_owner(self, title: str, description: str, error: Exception = None):
        """Send a DM notification to the bot owner."""
        embed = discord.Embed(
            title=f"🚨 {title}",
            description=description,
            color=0xff0000,
            timestamp=datetime.now(timezone.utc)
        )

        if error:
            embed.add_field(name="Error Details", value=f"```{str(error)[:1000]}```", inline=False)
            tb = ''.join(traceback.format_exception(type(error), error, error.__traceback__))
            embed.add_field(name="Traceback", value=f"```{tb[-1000:]}```", inline=False)

        embed.set_footer(text="PhoneTag Bot Error Handler")

        try:
            owner = await self._owner()
            if owner is None:
                logger.warning(f"No owner configured; dropping notification: {title}")
                return
            await owner.send(embed=embed)
            logger.info(f"Sent error notification to owner: {title}")
        except discord.HTTPException as e:
            logger.error(f"Failed to send error notification: {e}")

    def should_notify(self, error_type: str, now: Optional[datetime] = None) -> bool:
        """Count the error and report whether its cooldown has elapsed."""
        now = now or datetime.now(timezone.utc)
        self.error_counts[error_type] = self.error_counts.get(error_type, 0) + 1
        last = self.last_notification.get(error_type)
        if last is not None and now - last <= timedelta(seconds=self.notification_cooldown):
            return False
        self.last_notification[error_type] = now
        return True

    async def handle_interaction_error(self, interaction: discord.Interaction, error: Exception):
        """Handle slash command interaction errors."""
        original = getattr(error, 'original', error)
        error_type = type(original).__name__
        command_name = interaction.command.name if interaction.command else "unknown"

        if self.should_notify(error_type):
            user = f"{interaction.user.display_name} ({interaction.user.id})"
            guild = f"{interaction.guild.name} ({interaction.guild.id})" if interaction.guild else "DM"
            description = (
                f"**Command:** /{command_name}\n"
                f"**User:** {user}\n"
                f"**Guild:** {guild}\n"
                f"**Error Count:** {self.error_counts[error_type]} (since restart)"
            )
            await self.notify_owner(f"Slash Command Error: {error_type}", description, original)

        logger.error(f"Interaction error in {command_name}: {original}")

        error_embed = discord.Embed(
            title="❌ Command Error",
            description="An error occurred while processing your command. The bot owner has been notified.",
            color=0xff0000
        )
        if isinstance(original, discord.NotFound) and original.code == 10062:
            error_embed.description = "⏱️ The command took too long to process. Please try again."
        elif isinstance(error, app_commands.CommandOnCooldown):
            error_embed.description = f"🕒 Command is on cooldown. Try again in {error.retry_after:.1f} seconds."
        elif isinstance(error, app_commands.MissingPermissions):
            error_embed.description = "🔒 You don't have permission to use this command."

        try:
            if not interaction.response.is_done():
                await interaction.response.send_message(embed=error_embed, ephemeral=True)
            else:
                await interaction.followup.send(embed=error_embed, ephemeral=True)
        except discord.HTTPException as followup_error:
            logger.error(f"Failed to send error message to user: {followup_error}")

    async def send_startup_notification(self):
        """Send notification when bot starts successfully."""
        embed = discord.Embed(
            title="✅ PhoneTag Bot Started",
            description=f"Bot is online and ready in {len(self.bot.guilds)} guild(s)",
            color=0x00ff00,
            timestamp=datetime.now(timezone.utc)
        )
        try:
            owner = await self._owner()
            if owner is None:
                return
            await owner.send(embed=embed)
            logger.info("Sent startup notification to owner")
        except discord.HTTPException as e:
            logger.error(f"Failed to send startup notification: {e}")
