"""Tag resolution: decides hit, miss or blocked and the state changes that follow."""

import copy
import dataclasses
import datetime
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from . import ledger, lifecycle, safezones
from .config import BASIC_TAG_RADIUS, HOME_BASE_RADIUS, WIDE_RADIUS_TAG_RADIUS
from .errors import OutOfTags, ValidationError
from .geo import distance
from .models import (
    Blocked, BlockReason, Coordinate, GameState, GameStatus, Hit, Miss,
    PlayerState, TagAttempt, TagKind,
)
from .timeutils import local_date

logger = logging.getLogger(__name__)

SEARCH_RADII = {
    TagKind.BASIC: BASIC_TAG_RADIUS,
    TagKind.WIDE_RADIUS: WIDE_RADIUS_TAG_RADIUS,
}


def search_radius(kind: TagKind) -> float:
    return SEARCH_RADII[kind]


@dataclass
class TagOutcome:
    """A resolved attempt plus every record it changes.

    `updates` holds new copies of the changed player states; nothing in the
    input game is modified.
    """
    attempt: TagAttempt
    updates: Dict[str, PlayerState] = field(default_factory=dict)
    status: GameStatus = GameStatus.ACTIVE
    ended_at: Optional[datetime.datetime] = None
    distance: Optional[float] = None

    @property
    def result(self):
        return self.attempt.result

    @property
    def eliminated(self) -> bool:
        target = self.updates.get(self.attempt.target_player_id)
        return isinstance(self.result, Hit) and target is not None and not target.is_active

    @property
    def completed_game(self) -> bool:
        return self.status == GameStatus.COMPLETED


class TagResolver:
    """Evaluates tag attempts against a game snapshot.

    Reasons are checked in a fixed order and the first one that applies
    wins: eliminated target, duplicate location, out of tags, home base,
    safe base, then hit or miss by distance.
    """

    def validate(self, attempt: TagAttempt, game: GameState):
        if not attempt.game_id or attempt.game_id != game.id:
            raise ValidationError(f"Tag {attempt.id} does not belong to game {game.id}")
        if not attempt.from_player_id or not attempt.target_player_id:
            raise ValidationError("Tag is missing a player id")
        if attempt.from_player_id == attempt.target_player_id:
            raise ValidationError("Players cannot tag themselves")
        if attempt.result is not None:
            raise ValidationError(f"Tag {attempt.id} is already resolved")
        attempt.guessed_location.validate()
        attacker = game.player(attempt.from_player_id)
        game.player(attempt.target_player_id)
        if game.status != GameStatus.ACTIVE:
            raise ValidationError(f"Game {game.id} is {game.status.value}, not active")
        if not attacker.is_active:
            raise ValidationError("Eliminated players cannot tag")

    def resolve(self, attempt: TagAttempt, game: GameState, target_location: Optional[Coordinate],
                now: datetime.datetime, tagger_name: str = "Player", target_name: str = "Player") -> TagOutcome:
        """Resolve `attempt` given where the target actually is right now."""
        self.validate(attempt, game)
        if target_location is None:
            raise ValidationError(f"No known location for player {attempt.target_player_id}")
        target_location.validate()

        attacker = copy.deepcopy(game.players[attempt.from_player_id])
        target = copy.deepcopy(game.players[attempt.target_player_id])
        updates: Dict[str, PlayerState] = {}

        def finish(result, dist=None) -> TagOutcome:
            outcome = TagOutcome(attempt=attempt.with_result(result), updates=updates, distance=dist)
            after = dataclasses.replace(game, players={**game.players, **updates})
            outcome.status, outcome.ended_at = lifecycle.reevaluate(after, now)
            logger.info(
                f"Tag {attempt.id} in game {game.id}: {attempt.from_player_id} -> "
                f"{attempt.target_player_id} = {result.to_dict()}"
            )
            return outcome

        if not target.is_active:
            return finish(Blocked(BlockReason.PLAYER_ELIMINATED))

        if safezones.has_missed_here(game.all_safe_zones(), attempt.from_player_id, attempt.guessed_location, now):
            return finish(Blocked(BlockReason.DUPLICATE_LOCATION))

        # Records being rewritten anyway drop their expired zones
        attacker.safe_zones = safezones.sweep_expired(attacker.safe_zones, now)
        target.safe_zones = safezones.sweep_expired(target.safe_zones, now)

        if ledger.reset_daily_allowance_if_needed(attacker, local_date(now)):
            updates[attempt.from_player_id] = attacker
        try:
            ledger.consume_tag(attacker, attempt.kind)
        except OutOfTags:
            return finish(Blocked(BlockReason.OUT_OF_TAGS))
        updates[attempt.from_player_id] = attacker

        if target.home_base is not None and distance(target_location, target.home_base) <= HOME_BASE_RADIUS:
            return finish(Blocked(BlockReason.HOME_BASE))

        if safezones.is_protected(target_location, game.all_safe_zones(), now):
            return finish(Blocked(BlockReason.SAFE_BASE))

        dist = distance(attempt.guessed_location, target_location)
        if dist <= search_radius(attempt.kind):
            ledger.apply_strike(target, attempt.target_player_id)
            safezones.add(target.safe_zones, safezones.hit_zone(
                target_location, now, tagger_name, target_name, tagger_user_id=attempt.from_player_id,
            ))
            updates[attempt.target_player_id] = target
            return finish(Hit(actual_location=target_location, distance=dist, target_name=target_name), dist)

        safezones.add(target.safe_zones, safezones.missed_zone(
            attempt.guessed_location, now, attempt.from_player_id, tagger_name,
        ))
        updates[attempt.target_player_id] = target
        return finish(Miss(distance=dist), dist)
