"""Discord slash commands for PhoneTag."""

import logging

import discord
from discord import app_commands
from discord.ext import commands

from .errors import PhoneTagError, ValidationError
from .logic import GameLogic
from .models import Coordinate, GameState, TagKind
from .notifications import DiscordNotificationRelay, GameNotifier
from .storage import GameStorage
from .view import GameView

logger = logging.getLogger(__name__)

CURRENT_GAME_KEY = "current_game"


class PhoneTagCommands(commands.Cog):
    """Cog containing all PhoneTag player commands."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.storage = GameStorage()
        self.notifier = GameNotifier(self.storage, DiscordNotificationRelay(bot))
        self.logic = GameLogic(self.storage, self.notifier)
        self.view = GameView(self.storage)

    async def cog_load(self):
        """Initialize the database when the cog loads."""
        await self.storage.initialize()

    async def _register(self, interaction: discord.Interaction) -> str:
        """Record the caller's display name; DMs reach them by user id."""
        user_id = str(interaction.user.id)
        await self.storage.upsert_user(user_id, interaction.user.display_name, user_id)
        return user_id

    async def _current_game(self, interaction: discord.Interaction) -> GameState:
        guild_id = str(interaction.guild_id) if interaction.guild_id else "DM"
        game_id = await self.storage.get_state(CURRENT_GAME_KEY, guild_id)
        game = await self.storage.get_game(game_id) if game_id else None
        if game is None:
            raise ValidationError("There is no game running here. Ask an admin to create one.")
        return game

    async def _fail(self, interaction: discord.Interaction, error: PhoneTagError):
        embed = self.view.format_error(str(error))
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=True)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="join", description="Join a PhoneTag game by code")
    @app_commands.describe(code="The game's registration code")
    async def join(self, interaction: discord.Interaction, code: str):
        """Join the game."""
        try:
            user_id = await self._register(interaction)
            game = await self.logic.join_game(code, user_id)
        except PhoneTagError as e:
            await self._fail(interaction, e)
            return
        await interaction.response.send_message(
            f"You joined **{game.title}**! Set your home base with `/homebase`.", ephemeral=True
        )

    @app_commands.command(name="homebase", description="Set your home base (once per game)")
    @app_commands.describe(latitude="Latitude of your home base", longitude="Longitude of your home base")
    async def homebase(self, interaction: discord.Interaction, latitude: float, longitude: float):
        try:
            user_id = await self._register(interaction)
            game = await self._current_game(interaction)
            game = await self.logic.set_home_base(game.id, user_id, Coordinate(latitude, longitude))
        except PhoneTagError as e:
            await self._fail(interaction, e)
            return
        embed = self.view.format_success("Home base set. Nobody can tag you there.")
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="checkin", description="Share your current location")
    @app_commands.describe(latitude="Your latitude", longitude="Your longitude")
    async def checkin(self, interaction: discord.Interaction, latitude: float, longitude: float):
        try:
            user_id = await self._register(interaction)
            hits = await self.logic.record_location(user_id, Coordinate(latitude, longitude))
        except PhoneTagError as e:
            await self._fail(interaction, e)
            return
        message = "📍 Checked in."
        if hits:
            message += f" You walked into {len(hits)} tripwire{'s' if len(hits) != 1 else ''}! -1 life each."
        await interaction.response.send_message(message, ephemeral=True)

    @app_commands.command(name="tag", description="Drop a tag where you think a player is")
    @app_commands.describe(
        target="The player to tag",
        latitude="Guessed latitude",
        longitude="Guessed longitude",
        wide="Use a wide-radius tag",
    )
    async def tag(self, interaction: discord.Interaction, target: discord.Member,
                  latitude: float, longitude: float, wide: bool = False):
        """Tag a player."""
        await interaction.response.defer(ephemeral=True)
        try:
            user_id = await self._register(interaction)
            await self.storage.upsert_user(str(target.id), target.display_name, str(target.id))
            game = await self._current_game(interaction)
            attempt = await self.logic.submit_tag(
                game.id, user_id, str(target.id), Coordinate(latitude, longitude),
                TagKind.WIDE_RADIUS if wide else TagKind.BASIC,
            )
        except PhoneTagError as e:
            await self._fail(interaction, e)
            return
        await interaction.followup.send(embed=self.view.format_tag_result(attempt), ephemeral=True)

    @app_commands.command(name="arsenal", description="See your remaining tags and items")
    async def arsenal(self, interaction: discord.Interaction):
        try:
            user_id = await self._register(interaction)
            game = await self._current_game(interaction)
            allowance = await self.logic.current_allowance(game.id, user_id)
        except PhoneTagError as e:
            await self._fail(interaction, e)
            return
        await interaction.response.send_message(embed=self.view.format_arsenal(allowance), ephemeral=True)

    @app_commands.command(name="status", description="View the current game")
    async def status(self, interaction: discord.Interaction):
        """Display the standings."""
        try:
            game = await self._current_game(interaction)
        except PhoneTagError as e:
            await self._fail(interaction, e)
            return
        await interaction.response.send_message(embed=await self.view.format_status(game))

    @app_commands.command(name="radar", description="Ping a player's area")
    @app_commands.describe(target="The player to locate")
    async def radar(self, interaction: discord.Interaction, target: discord.Member):
        try:
            user_id = await self._register(interaction)
            game = await self._current_game(interaction)
            result = await self.logic.use_radar(game.id, user_id, str(target.id))
        except PhoneTagError as e:
            await self._fail(interaction, e)
            return
        await interaction.response.send_message(embed=self.view.format_radar(result), ephemeral=True)

    @app_commands.command(name="tripwire", description="Place a tripwire")
    @app_commands.describe(latitude="Tripwire latitude", longitude="Tripwire longitude")
    async def tripwire(self, interaction: discord.Interaction, latitude: float, longitude: float):
        try:
            user_id = await self._register(interaction)
            game = await self._current_game(interaction)
            await self.logic.place_tripwire(game.id, user_id, Coordinate(latitude, longitude))
        except PhoneTagError as e:
            await self._fail(interaction, e)
            return
        await interaction.response.send_message(
            embed=self.view.format_success("Tripwire placed. Anyone who walks through it loses a life."),
            ephemeral=True,
        )

    @app_commands.command(name="nudge", description="Make everyone check in or lose a life")
    async def nudge(self, interaction: discord.Interaction):
        try:
            user_id = await self._register(interaction)
            game = await self._current_game(interaction)
            game = await self.logic.issue_nudge(game.id, user_id)
        except PhoneTagError as e:
            await self._fail(interaction, e)
            return
        await interaction.response.send_message(
            f"👋 <@{interaction.user.id}> nudged **{game.title}**. Everyone has until "
            f"<t:{int(game.nudge_deadline_at.timestamp())}:t> to check in."
        )


async def setup(bot: commands.Bot):
    """Setup function to add the cog to the bot."""
    await bot.add_cog(PhoneTagCommands(bot))
