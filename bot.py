"""Main entry point for the PhoneTag Discord bot."""

import os
import sys
import asyncio
import logging

import discord
from discord.ext import commands
from dotenv import load_dotenv

from error_handler import ErrorHandler

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler('phonetag.log')
    ]
)
logger = logging.getLogger(__name__)

EXTENSIONS = (
    ('phonetag.commands', True),
    ('phonetag.admin_commands', False),
    ('phonetag.scheduler', False),
)


def load_env() -> str:
    """Load environment variables and return the bot token."""
    load_dotenv()

    token = os.getenv('DISCORD_TOKEN')
    if not token:
        logger.error("DISCORD_TOKEN is not set. Add it to your .env file.")
        sys.exit(1)
    return token


class PhoneTagBot(commands.Bot):
    """The main PhoneTag bot class."""

    def __init__(self):
        intents = discord.Intents.default()
        intents.message_content = False  # We only use slash commands

        super().__init__(
            command_prefix='!',  # Unused but required
            intents=intents,
            description="A Discord bot for playing PhoneTag - a location-based elimination game"
        )

        owner_id = int(os.getenv('BOT_OWNER_ID', '0'))
        self.error_handler = ErrorHandler(self, owner_id)

    async def setup_hook(self):
        """Load extensions and sync slash commands."""
        logger.info("Setting up PhoneTag bot...")

        for extension, required in EXTENSIONS:
            try:
                await self.load_extension(extension)
                logger.info(f"Loaded {extension}")
            except commands.ExtensionError as e:
                await self.error_handler.notify_owner(f"Failed to load {extension}", str(e), e)
                logger.error(f"Failed to load {extension}: {e}")
                if required:
                    raise

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} command(s)")
        except discord.HTTPException as e:
            await self.error_handler.notify_owner("Failed to sync commands", str(e), e)
            logger.error(f"Failed to sync commands: {e}")

    async def on_ready(self):
        """Called when the bot is ready."""
        logger.info(f"PhoneTag bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guild(s)")

        try:
            await self.change_presence(activity=discord.Game(name="PhoneTag | /status"))
        except discord.HTTPException as e:
            logger.error(f"Error setting presence: {e}")
        await self.error_handler.send_startup_notification()

    async def on_app_command_error(self, interaction, error):
        """Handle application command errors."""
        await self.error_handler.handle_interaction_error(interaction, error)

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors."""
        exc_value = sys.exc_info()[1]
        logger.error(f"Bot error in event {event}", exc_info=True)
        if exc_value:
            context = {"event": event, "args": str(args)[:500]}
            await self.error_handler.notify_owner(f"Bot Error in {event}", str(context), exc_value)

    async def close(self):
        """Clean shutdown."""
        logger.info("Shutting down PhoneTag bot...")
        await self.error_handler.notify_owner("Bot Shutdown", "PhoneTag bot is shutting down normally")
        await super().close()


async def main():
    """Main function to run the bot."""
    token = load_env()
    bot = PhoneTagBot()
    bot.tree.on_error = bot.on_app_command_error
    try:
        await bot.start(token)
    except Exception as e:
        logger.error(f"Bot crashed: {e}", exc_info=True)
        await bot.error_handler.notify_owner("Bot Crashed", "Fatal error during startup", e)
        raise
    finally:
        if not bot.is_closed():
            await bot.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
