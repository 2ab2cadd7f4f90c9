"""Exceptions raised by the game engine."""


class PhoneTagError(Exception):
    """Base class for game engine errors."""


class ValidationError(PhoneTagError):
    """Malformed request: missing fields, unknown player or game."""


class GameNotFound(ValidationError):
    def __init__(self, game_id: str):
        super().__init__(f"Game {game_id} not found")
        self.game_id = game_id


class ConcurrencyConflict(PhoneTagError):
    """A compare-and-swap commit lost to a concurrent writer."""

    def __init__(self, game_id: str, player_id: str = None):
        target = f"{game_id}/{player_id}" if player_id else game_id
        super().__init__(f"Record {target} changed since it was read")
        self.game_id = game_id
        self.player_id = player_id


class TransientStoreFailure(PhoneTagError):
    """The store timed out or was unavailable. Nothing was committed."""


class InvariantViolation(PhoneTagError):
    """A player record is internally inconsistent; the mutation is rejected."""


class AlreadyEliminated(PhoneTagError):
    def __init__(self, player_id: str = None):
        super().__init__(f"Player {player_id} is already eliminated" if player_id else "Player is already eliminated")
        self.player_id = player_id


class OutOfTags(PhoneTagError):
    def __init__(self, item: str):
        super().__init__(f"No {item} remaining")
        self.item = item
