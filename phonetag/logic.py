"""Core game operations for PhoneTag."""

import copy
import datetime
import logging
import random
import string
import uuid
from typing import Dict, Iterable, List, Optional

from . import ledger, lifecycle, safezones
from .config import (
    GAME_TITLE_MAX_LENGTH, MAX_PLAYERS_PER_GAME, NUDGE_RESPONSE_WINDOW_HOURS, PRODUCT_QUANTITIES, RADAR_DECOY_MAX_DISTANCE,
    RADAR_DECOY_MIN_DISTANCE, RADAR_JITTER, RADAR_RADIUS, REGISTRATION_CODE_LENGTH, TAG_CONFLICT_RETRIES,
    TAG_WARNING_RADIUS, TRIPWIRE_RADIUS,
)
from .errors import ConcurrencyConflict, GameNotFound, TransientStoreFailure, ValidationError
from .geo import distance, offset
from .models import (
    ArsenalItem, Coordinate, GameState, GameStatus, Hit, Miss, PlayerState, RadarResult, TagAttempt,
    TagKind, Tripwire,
)
from .notifications import GameNotifier
from .resolver import TagOutcome, TagResolver
from .storage import GameStorage
from .timeutils import local_date, now as current_time

logger = logging.getLogger(__name__)


class GameLogic:
    """Handles all game operations against the shared store."""

    def __init__(self, storage: GameStorage, notifier: GameNotifier, resolver: Optional[TagResolver] = None,
                 rng: Optional[random.Random] = None):
        self.storage = storage
        self.notifier = notifier
        self.resolver = resolver or TagResolver()
        self.rng = rng or random.Random()

    async def _game(self, game_id: str) -> GameState:
        game = await self.storage.get_game(game_id)
        if game is None:
            raise GameNotFound(game_id)
        return game

    async def _generate_code(self) -> str:
        """Generate a unique registration code."""
        alphabet = string.ascii_uppercase + string.digits
        while True:
            code = ''.join(self.rng.choices(alphabet, k=REGISTRATION_CODE_LENGTH))
            if not await self.storage.code_exists(code):
                return code

    # Setup

    async def create_game(self, created_by: str, title: str, player_ids: Iterable[str] = (),
                          now: Optional[datetime.datetime] = None) -> GameState:
        """Create a game waiting for home bases."""
        now = now or current_time()
        title = (title or "").strip()
        if not title or len(title) > GAME_TITLE_MAX_LENGTH:
            raise ValidationError(f"Title must be 1-{GAME_TITLE_MAX_LENGTH} characters")
        roster = list(dict.fromkeys([created_by, *player_ids]))
        if len(roster) > MAX_PLAYERS_PER_GAME:
            raise ValidationError(f"A game holds at most {MAX_PLAYERS_PER_GAME} players")

        today = local_date(now)
        game = GameState(
            id=uuid.uuid4().hex,
            title=title,
            registration_code=await self._generate_code(),
            created_by=created_by,
            created_at=now,
            players={pid: PlayerState.new(today) for pid in roster},
        )
        await self.storage.create_game(game)
        logger.info(f"Game {game.id} '{title}' created by {created_by} with {len(roster)} player(s)")
        return game

    async def join_game(self, code: str, player_id: str, now: Optional[datetime.datetime] = None) -> GameState:
        """Join a waiting game by registration code. Rejoining is a no-op."""
        now = now or current_time()
        game = await self.storage.find_game_by_code(code)
        if game is None:
            raise ValidationError(f"No game with code {code.strip().upper()}")
        if player_id in game.players:
            return game
        if game.status != GameStatus.WAITING:
            raise ValidationError("This game has already started")
        if len(game.players) >= MAX_PLAYERS_PER_GAME:
            raise ValidationError("This game is full")
        if not await self.storage.add_player(game.id, player_id, PlayerState.new(local_date(now))):
            game = await self._game(game.id)
            if player_id in game.players:
                return game
            if game.status != GameStatus.WAITING:
                raise ValidationError("This game has already started")
            raise ValidationError("This game is full")
        logger.info(f"{player_id} joined game {game.id}")
        return await self._game(game.id)

    async def leave_game(self, game_id: str, player_id: str) -> bool:
        """Leave a game that has not started yet."""
        left = await self.storage.remove_player(game_id, player_id)
        if left:
            logger.info(f"{player_id} left game {game_id}")
        return left

    async def delete_game(self, game_id: str):
        await self.storage.delete_game(game_id)
        logger.info(f"Game {game_id} deleted")

    async def set_home_base(self, game_id: str, player_id: str, location: Coordinate,
                            now: Optional[datetime.datetime] = None) -> GameState:
        """Place a player's home base; starts the game once everyone has one."""
        now = now or current_time()
        location.validate()

        def place(state: PlayerState) -> PlayerState:
            if state.home_base is not None:
                raise ValidationError("Your home base is already set")
            state.home_base = location
            safezones.add(state.safe_zones, safezones.home_base_zone(location, now))
            return state

        game = await self._game(game_id)
        if game.status != GameStatus.WAITING:
            raise ValidationError("Home bases can only be placed before the game starts")
        game.player(player_id)
        await self.storage.transact_player(game_id, player_id, place)
        return await self.start_if_ready(game_id, now)

    async def start_if_ready(self, game_id: str, now: Optional[datetime.datetime] = None) -> GameState:
        """Flip a waiting game to active once every player has a home base."""
        now = now or current_time()
        game = await self._game(game_id)
        if game.status != GameStatus.WAITING:
            return game
        if lifecycle.all_players_ready(game) and len(game.players) > 1:
            if await self.storage.activate_game(game_id, now):
                game.status, game.started_at = GameStatus.ACTIVE, now
                logger.info(f"Game {game_id} is now active")
                await self.notifier.game_started(game)
        return game

    # Presence

    async def record_location(self, player_id: str, location: Coordinate,
                              now: Optional[datetime.datetime] = None) -> List[Hit]:
        """Store a player's present location and spring any tripwire they walked into."""
        now = now or current_time()
        location.validate()
        await self.storage.record_location(player_id, location, now)

        hits = []
        for game in await self.storage.list_games_for_player(player_id):
            if game.status != GameStatus.ACTIVE or not game.players[player_id].is_active:
                continue
            for placer_id, state in game.players.items():
                if placer_id == player_id:
                    continue
                for tripwire in state.tripwires:
                    if distance(tripwire.location, location) <= TRIPWIRE_RADIUS:
                        try:
                            hit = await self.trigger_tripwire(game.id, tripwire.id, player_id, now)
                        except ConcurrencyConflict as e:
                            logger.warning(f"Tripwire {tripwire.id} not sprung: {e}")
                            continue
                        if hit:
                            hits.append(hit)
        return hits

    # Tags

    async def submit_tag(self, game_id: str, from_player_id: str, target_player_id: str,
                         guessed_location: Coordinate, kind: TagKind = TagKind.BASIC,
                         now: Optional[datetime.datetime] = None) -> TagAttempt:
        """Resolve a tag attempt and commit its result and side effects together.

        A lost compare-and-swap is retried from a fresh read a few times
        before ConcurrencyConflict reaches the caller.
        """
        now = now or current_time()
        attempt = TagAttempt(
            id=uuid.uuid4().hex,
            game_id=game_id,
            from_player_id=from_player_id,
            target_player_id=target_player_id,
            guessed_location=guessed_location,
            timestamp=now,
            kind=TagKind(kind),
        )
        if not game_id or not from_player_id or not target_player_id:
            raise ValidationError("Tag is missing a game or player id")
        if from_player_id == target_player_id:
            raise ValidationError("Players cannot tag themselves")
        guessed_location.validate()

        for attempt_number in range(TAG_CONFLICT_RETRIES + 1):
            game = await self._game(game_id)
            target_location = await self.storage.get_location(target_player_id)
            tagger_name = await self.storage.display_name(from_player_id)
            target_name = await self.storage.display_name(target_player_id)
            outcome = self.resolver.resolve(attempt, game, target_location, now, tagger_name, target_name)
            try:
                completed = await self.storage.commit_players(
                    game_id, outcome.updates, game.player_versions,
                    tag=outcome.attempt,
                    completed_at=outcome.ended_at if outcome.completed_game else None,
                )
            except ConcurrencyConflict:
                if attempt_number == TAG_CONFLICT_RETRIES:
                    raise
                logger.warning(f"Tag {attempt.id} lost a race, retrying with a fresh read")
                continue
            await self._announce_tag(game, outcome, tagger_name)
            if isinstance(outcome.result, Hit):
                await self._complete_if_over(game_id, now, completed)
            return outcome.attempt

    async def _announce_tag(self, game: GameState, outcome: TagOutcome, tagger_name: str):
        target_id = outcome.attempt.target_player_id
        if isinstance(outcome.result, Hit):
            await self.notifier.hit(game, target_id, tagger_name, outcome.eliminated)
        elif isinstance(outcome.result, Miss) and outcome.distance <= TAG_WARNING_RADIUS:
            await self.notifier.tag_warning(game, target_id, tagger_name)

    async def _complete_if_over(self, game_id: str, now: datetime.datetime, completed: bool = False) -> bool:
        """Settle the game from a fresh read after a strike has been committed.

        Another writer may have eliminated someone after our snapshot, so the
        committed state decides. Game over goes out only from the writer whose
        completion landed; `completed` says our own commit already did it.
        """
        try:
            game = await self._game(game_id)
            if not completed:
                status, ended_at = lifecycle.reevaluate(game, now)
                if status != GameStatus.COMPLETED or not await self.storage.complete_game(game_id, ended_at):
                    return False
                game.status, game.ended_at = status, ended_at
        except TransientStoreFailure as e:
            logger.error(f"Could not settle game {game_id} after a strike: {e}")
            return False
        logger.info(f"Game {game_id} completed")
        await self.notifier.game_over(game, lifecycle.winner(game))
        return True

    async def list_tags(self, game_id: str) -> List[TagAttempt]:
        return await self.storage.list_tags(game_id)

    # Queries

    async def current_allowance(self, game_id: str, player_id: str,
                                now: Optional[datetime.datetime] = None) -> Dict[ArsenalItem, int]:
        """Counts per arsenal item as the player would see them right now."""
        now = now or current_time()
        state = copy.deepcopy((await self._game(game_id)).player(player_id))
        ledger.reset_daily_allowance_if_needed(state, local_date(now))
        return ledger.current_allowance(state)

    async def game_status(self, game_id: str) -> GameStatus:
        return lifecycle.game_status(await self._game(game_id))

    # Nudges

    async def issue_nudge(self, game_id: str, issued_by: str,
                          now: Optional[datetime.datetime] = None) -> GameState:
        """Give everyone a deadline to check in or lose a life."""
        now = now or current_time()
        game = await self._game(game_id)
        game.player(issued_by)
        if game.status != GameStatus.ACTIVE:
            raise ValidationError("Nudges can only be sent in an active game")
        deadline = now + datetime.timedelta(hours=NUDGE_RESPONSE_WINDOW_HOURS)
        if not await self.storage.set_nudge(game_id, now, deadline):
            raise ValidationError("Nudges can only be sent in an active game")
        game.nudge_issued_at, game.nudge_deadline_at = now, deadline
        logger.info(f"{issued_by} nudged game {game_id}; deadline {deadline.isoformat()}")
        await self.notifier.nudge(game, issued_by, NUDGE_RESPONSE_WINDOW_HOURS)
        return game

    # Arsenal

    async def grant_items(self, player_id: str, item: ArsenalItem, quantity: Optional[int] = None) -> int:
        """Credit items in every unfinished game of a player. Returns games credited.

        Without a quantity the item's store pack size is credited.
        """
        if quantity is None:
            quantity = PRODUCT_QUANTITIES[item.value]
        credited = 0
        for game in await self.storage.list_games_for_player(player_id):
            await self.storage.transact_player(
                game.id, player_id, lambda state: ledger.credit(state, item, quantity)
            )
            credited += 1
        logger.info(f"Granted {quantity} {item.value} to {player_id} in {credited} game(s)")
        return credited

    async def use_radar(self, game_id: str, player_id: str, target_id: str,
                        now: Optional[datetime.datetime] = None) -> RadarResult:
        """Spend a radar to see two candidate areas for a target, one of them a decoy."""
        game = await self._game(game_id)
        game.player(target_id)
        if game.status != GameStatus.ACTIVE or player_id == target_id:
            raise ValidationError("Radar needs an active game and another player")
        target_location = await self.storage.get_location(target_id)
        if target_location is None:
            raise ValidationError("That player has no known location yet")

        def spend(state: PlayerState) -> PlayerState:
            if not state.is_active:
                raise ValidationError("Eliminated players cannot use radar")
            ledger.consume_item(state, ArsenalItem.RADAR)
            return state

        await self.storage.transact_player(game_id, player_id, spend)

        real = offset(target_location, self.rng.uniform(0, RADAR_JITTER), self.rng.uniform(0, 360))
        decoy = offset(real, self.rng.uniform(RADAR_DECOY_MIN_DISTANCE, RADAR_DECOY_MAX_DISTANCE),
                       self.rng.uniform(0, 360))
        locations = [real, decoy]
        self.rng.shuffle(locations)
        return RadarResult(
            locations=locations, radius=RADAR_RADIUS, target_name=await self.storage.display_name(target_id),
        )

    async def place_tripwire(self, game_id: str, player_id: str, location: Coordinate,
                             now: Optional[datetime.datetime] = None) -> Tripwire:
        now = now or current_time()
        location.validate()
        game = await self._game(game_id)
        if game.status != GameStatus.ACTIVE:
            raise ValidationError("Tripwires can only be placed in an active game")
        tripwire = Tripwire(id=uuid.uuid4().hex, placed_by=player_id, location=location, placed_at=now)

        def place(state: PlayerState) -> PlayerState:
            if not state.is_active:
                raise ValidationError("Eliminated players cannot place tripwires")
            ledger.consume_item(state, ArsenalItem.TRIPWIRE)
            state.tripwires.append(tripwire)
            return state

        await self.storage.transact_player(game_id, player_id, place)
        logger.info(f"{player_id} placed tripwire {tripwire.id} in game {game_id}")
        return tripwire

    async def trigger_tripwire(self, game_id: str, tripwire_id: str, triggered_by: str,
                               now: Optional[datetime.datetime] = None) -> Optional[Hit]:
        """Strike the player who walked into a tripwire and use the tripwire up.

        Returns None when nothing happens: unknown tripwire, own tripwire,
        inactive game or an already eliminated player.
        """
        now = now or current_time()
        game = await self._game(game_id)
        if game.status != GameStatus.ACTIVE:
            return None
        found = [(pid, t) for pid, state in game.players.items() for t in state.tripwires if t.id == tripwire_id]
        if not found or found[0][0] == triggered_by:
            return None
        placer_id, tripwire = found[0]
        triggered = copy.deepcopy(game.player(triggered_by))
        if not triggered.is_active:
            return None

        placer_name = await self.storage.display_name(placer_id)
        triggered_name = await self.storage.display_name(triggered_by)
        ledger.apply_strike(triggered, triggered_by)
        safezones.add(triggered.safe_zones, safezones.hit_zone(
            tripwire.location, now, placer_name, triggered_name, tagger_user_id=placer_id,
        ))
        placer = copy.deepcopy(game.players[placer_id])
        placer.tripwires = [t for t in placer.tripwires if t.id != tripwire_id]

        updates = {triggered_by: triggered, placer_id: placer}
        after = copy.copy(game)
        after.players = {**game.players, **updates}
        status, ended_at = lifecycle.reevaluate(after, now)
        completed = await self.storage.commit_players(
            game_id, updates, game.player_versions,
            completed_at=ended_at if status == GameStatus.COMPLETED else None,
        )
        logger.info(f"{triggered_by} tripped {placer_id}'s tripwire in game {game_id}")

        await self.notifier.hit(game, triggered_by, f"{placer_name}'s Tripwire", not triggered.is_active)
        await self._complete_if_over(game_id, now, completed)
        return Hit(actual_location=tripwire.location, distance=0.0, target_name=triggered_name)
