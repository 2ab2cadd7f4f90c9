"""Periodic nudge enforcement for PhoneTag."""

import logging

from discord.ext import commands, tasks

from .config import ENFORCEMENT_INTERVAL_MINUTES
from .enforcer import DeadlineEnforcer
from .notifications import DiscordNotificationRelay, GameNotifier
from .storage import GameStorage


logger = logging.getLogger(__name__)


class EnforcementScheduler:
    """Runs the deadline enforcer on a fixed interval."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.storage = GameStorage()
        self.enforcer = DeadlineEnforcer(self.storage, GameNotifier(self.storage, DiscordNotificationRelay(bot)))

        self.enforce_deadlines.start()

    def cog_unload(self):
        """Clean shutdown of the scheduler."""
        self.enforce_deadlines.cancel()

    @tasks.loop(minutes=ENFORCEMENT_INTERVAL_MINUTES)
    async def enforce_deadlines(self):
        """Strike players who ignored an expired nudge."""
        report = await self.enforcer.run_cycle()
        if report.completed_games:
            logger.info(f"Games completed by enforcement: {', '.join(report.completed_games)}")

    @enforce_deadlines.error
    async def on_enforce_error(self, error: Exception):
        logger.error(f"Error in enforcement task: {error}", exc_info=error)

    @enforce_deadlines.before_loop
    async def before_enforce_deadlines(self):
        """Wait for bot and database to be ready before enforcing."""
        await self.bot.wait_until_ready()
        await self.storage.initialize()
        logger.info(f"Enforcement scheduler initialized ({ENFORCEMENT_INTERVAL_MINUTES} minute interval)")


async def setup(bot: commands.Bot):
    """Setup function to add the scheduler to the bot."""
    scheduler = EnforcementScheduler(bot)
    # Store reference so it doesn't get garbage collected
    bot.enforcement_scheduler = scheduler
