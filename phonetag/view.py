"""View formatting for PhoneTag displays."""

from typing import Dict

import discord

from .config import STARTING_STRIKES
from .models import ArsenalItem, Blocked, BlockReason, GameState, GameStatus, Hit, Miss, RadarResult, TagAttempt
from .storage import GameStorage
from .timeutils import hours_until

BLOCK_MESSAGES = {
    BlockReason.PLAYER_ELIMINATED: "That player is already out of the game.",
    BlockReason.DUPLICATE_LOCATION: "You already missed at this spot today. Try somewhere new.",
    BlockReason.OUT_OF_TAGS: "You're out of tags for that weapon.",
    BlockReason.HOME_BASE: "Your target is safe at their home base. Your tag was used.",
    BlockReason.SAFE_BASE: "Your target is inside a safe zone. Your tag was used.",
}


class GameView:
    """Handles formatting of game displays."""

    def __init__(self, storage: GameStorage):
        self.storage = storage

    @staticmethod
    def _lives(strikes: int) -> str:
        return "❤️" * strikes + "🖤" * max(0, STARTING_STRIKES - strikes)

    async def format_status(self, game: GameState) -> discord.Embed:
        """Format the game standings."""
        embed = discord.Embed(title=f"📍 {game.title}", color=0xE61A6E)

        lines = []
        for player_id, state in sorted(game.players.items(), key=lambda item: -item[1].strikes):
            name = await self.storage.display_name(player_id)
            if not state.is_active:
                lines.append(f"~~{name}~~ ☠️")
                continue
            home = "" if state.home_base else " (no home base yet)"
            lines.append(f"**{name}** {self._lives(state.strikes)}{home}")
        embed.description = "\n".join(lines) or "No players yet."

        embed.add_field(name="Status", value=game.status.value.title(), inline=True)
        embed.add_field(name="Code", value=f"`{game.registration_code}`", inline=True)
        if game.nudge_deadline_at and game.status == GameStatus.ACTIVE:
            embed.add_field(name="⏰ Nudge deadline", value=f"{hours_until(game.nudge_deadline_at):.1f}h left",
                            inline=True)
        return embed

    def format_arsenal(self, allowance: Dict[ArsenalItem, int]) -> discord.Embed:
        embed = discord.Embed(title="🎒 Your arsenal", color=0xF5C418)
        for item, amount in allowance.items():
            embed.add_field(name=item.display_name, value=str(amount), inline=True)
        return embed

    def format_tag_result(self, attempt: TagAttempt) -> discord.Embed:
        result = attempt.result
        if isinstance(result, Hit):
            return discord.Embed(
                title="🎯 Hit!",
                description=f"You tagged **{result.target_name}** ({result.distance:.0f}m from your guess).",
                color=0x00ff00,
            )
        if isinstance(result, Miss):
            return discord.Embed(
                title="💨 Miss",
                description=f"Your guess was {result.distance:.0f}m off. That spot is closed to you until midnight.",
                color=0x999999,
            )
        if isinstance(result, Blocked):
            return discord.Embed(title="🛡️ Blocked", description=BLOCK_MESSAGES[result.reason], color=0xff9900)
        return self.format_error("Tag could not be resolved.")

    def format_radar(self, radar: RadarResult) -> discord.Embed:
        embed = discord.Embed(
            title=f"📡 Radar on {radar.target_name}",
            description=f"{radar.target_name} is inside one of these {radar.radius:.0f}m circles.",
            color=0x2E6EB5,
        )
        for index, location in enumerate(radar.locations, start=1):
            embed.add_field(name=f"Circle {index}", value=f"{location.latitude:.5f}, {location.longitude:.5f}",
                            inline=False)
        return embed

    def format_error(self, message: str) -> discord.Embed:
        """Format an error message."""
        embed = discord.Embed(
            title="❌ Error",
            description=message,
            color=0xff0000
        )
        return embed

    def format_success(self, message: str) -> discord.Embed:
        """Format a success message."""
        embed = discord.Embed(
            title="✅ Success",
            description=message,
            color=0x00ff00
        )
        return embed
