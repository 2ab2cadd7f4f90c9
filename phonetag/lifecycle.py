"""Game-level status transitions."""

import datetime
from typing import Optional, Tuple

from .models import GameState, GameStatus


def active_player_count(game: GameState) -> int:
    return sum(1 for state in game.players.values() if state.is_active)


def all_players_ready(game: GameState) -> bool:
    """Every player has placed a home base."""
    return bool(game.players) and all(state.home_base is not None for state in game.players.values())


def reevaluate(game: GameState, now: datetime.datetime) -> Tuple[GameStatus, Optional[datetime.datetime]]:
    """Status the game should have now, and its end time.

    An active game with at most one player left completes. Completion is
    one-way; other statuses are returned unchanged.
    """
    if game.status == GameStatus.ACTIVE and active_player_count(game) <= 1:
        return GameStatus.COMPLETED, now
    return game.status, game.ended_at


def winner(game: GameState) -> Optional[str]:
    if game.status != GameStatus.COMPLETED:
        return None
    survivors = [pid for pid, state in game.players.items() if state.is_active]
    return survivors[0] if len(survivors) == 1 else None


def game_status(game: GameState) -> GameStatus:
    return game.status
