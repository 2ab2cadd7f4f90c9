"""Notification relay and game announcements for PhoneTag."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import discord

from .errors import TransientStoreFailure
from .models import GameState
from .storage import GameStorage

logger = logging.getLogger(__name__)


@dataclass
class MulticastResult:
    sent: int = 0
    failed: int = 0


class NotificationRelay(ABC):
    """Delivers a titled message to recipient tokens."""

    @abstractmethod
    async def send(self, token: str, title: str, body: str, data: Optional[Dict[str, str]] = None) -> bool:
        """Deliver one message. False when the recipient could not be reached."""

    async def send_multicast(self, tokens: Iterable[str], title: str, body: str,
                             data: Optional[Dict[str, str]] = None) -> MulticastResult:
        result = MulticastResult()
        for token in tokens:
            if await self.send(token, title, body, data):
                result.sent += 1
            else:
                result.failed += 1
        return result


class DiscordNotificationRelay(NotificationRelay):
    """Sends notifications as Discord DMs. Tokens are Discord user ids."""

    def __init__(self, bot):
        self.bot = bot

    async def send(self, token: str, title: str, body: str, data: Optional[Dict[str, str]] = None) -> bool:
        try:
            user = self.bot.get_user(int(token))
            if not user:
                # Try to fetch user if not in cache
                user = await self.bot.fetch_user(int(token))

            embed = discord.Embed(title=title, description=body, color=0xE61A6E)
            if data and data.get("gameTitle"):
                embed.set_footer(text=f"PhoneTag | {data['gameTitle']}")
            await user.send(embed=embed)
            logger.debug(f"Sent '{title}' to user {token}")
            return True

        except discord.Forbidden:
            logger.warning(f"Cannot send DM to user {token} - DMs disabled")
        except (discord.HTTPException, ValueError) as e:
            logger.error(f"Error sending '{title}' to user {token}: {e}")
        return False


class GameNotifier:
    """Composes game announcements and fans them out through a relay.

    Delivery is fire-and-forget: failures are logged and never raised, so
    they cannot undo the game change that triggered them.
    """

    def __init__(self, storage: GameStorage, relay: NotificationRelay):
        self.storage = storage
        self.relay = relay

    async def _tokens(self, player_ids: Iterable[str]) -> List[str]:
        tokens = await self.storage.notification_tokens(list(player_ids))
        return list(tokens.values())

    async def _multicast(self, game: GameState, recipients: Iterable[str], title: str, body: str, kind: str):
        try:
            tokens = await self._tokens(recipients)
            if not tokens:
                return
            result = await self.relay.send_multicast(tokens, title, body, {
                "type": kind, "gameId": game.id, "gameTitle": game.title,
            })
            if result.failed:
                logger.warning(f"{kind} multicast for game {game.id}: {result.sent} sent, {result.failed} failed")
            else:
                logger.info(f"{kind} multicast for game {game.id}: {result.sent} sent")
        except Exception as e:
            logger.error(f"Failed to send {kind} notifications for game {game.id}: {e}")

    async def _single(self, game: GameState, player_id: str, title: str, body: str, kind: str):
        try:
            tokens = await self._tokens([player_id])
            if not tokens:
                logger.info(f"No notification token for {player_id}, skipping {kind}")
                return
            if not await self.relay.send(tokens[0], title, body, {
                "type": kind, "gameId": game.id, "gameTitle": game.title,
            }):
                logger.warning(f"{kind} notification to {player_id} was not delivered")
        except Exception as e:
            logger.error(f"Failed to send {kind} notification to {player_id}: {e}")

    async def _name(self, player_id: str) -> str:
        try:
            return await self.storage.display_name(player_id)
        except TransientStoreFailure as e:
            logger.warning(f"Display name lookup for {player_id} failed: {e}")
            return "Player"

    def _others(self, game: GameState, player_id: str) -> List[str]:
        return [pid for pid in game.players if pid != player_id]

    async def offline_strike(self, game: GameState, player_id: str, eliminated: bool):
        """Announce a strike for missing a nudge deadline."""
        name = await self._name(player_id)
        if eliminated:
            await self._multicast(
                game, self._others(game, player_id),
                f"☠️ {name} eliminated!",
                f'{name} didn\'t log in after a nudge in "{game.title}" and has been eliminated.',
                "offline_strike",
            )
            return
        await self._multicast(
            game, self._others(game, player_id),
            f"💀 {name} lost a life!",
            f'{name} didn\'t log in before the nudge deadline in "{game.title}".',
            "offline_strike",
        )
        await self._single(
            game, player_id,
            "💥 You lost a life!",
            f'You didn\'t log in before the nudge deadline in "{game.title}". -1 life.',
            "offline_strike",
        )

    async def hit(self, game: GameState, target_id: str, tagger_name: str, eliminated: bool):
        target_name = await self._name(target_id)
        if eliminated:
            await self._multicast(
                game, self._others(game, target_id),
                f"☠️ {target_name} eliminated!",
                f'{tagger_name} tagged out {target_name} in "{game.title}".',
                "elimination",
            )
        else:
            await self._single(
                game, target_id,
                "🎯 You've been tagged!",
                f'{tagger_name} tagged you in "{game.title}". -1 life.',
                "hit",
            )

    async def tag_warning(self, game: GameState, target_id: str, tagger_name: str):
        await self._single(
            game, target_id,
            "⚠️ Tag nearby!",
            f'{tagger_name} just dropped a tag close to you in "{game.title}".',
            "tag_warning",
        )

    async def nudge(self, game: GameState, nudger_id: str, window_hours: int):
        nudger_name = await self._name(nudger_id)
        await self._multicast(
            game, self._others(game, nudger_id),
            "👋 You've been nudged!",
            f'{nudger_name} nudged everyone in "{game.title}". Check in within {window_hours} hours or lose a life.',
            "nudge",
        )

    async def game_started(self, game: GameState):
        await self._multicast(
            game, list(game.players),
            "🚀 Game on!",
            f'Every home base is set. "{game.title}" has started.',
            "game_started",
        )

    async def game_over(self, game: GameState, winner_id: Optional[str]):
        if winner_id:
            winner_name = await self._name(winner_id)
            body = f'{winner_name} is the last player standing in "{game.title}"!'
        else:
            body = f'"{game.title}" has ended with no survivors.'
        await self._multicast(game, list(game.players), "🏆 Game over", body, "game_over")
