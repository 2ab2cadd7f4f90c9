"""Nudge deadline enforcement.

Each cycle looks for active games whose nudge deadline has passed and takes
one strike from every player who has not been seen since the nudge went out.

The nudge is cleared before any player is processed. A cycle that dies
halfway through therefore drops the remaining penalties for that nudge
rather than risking a second penalty on the next run; a fresh nudge is
needed to try again.
"""

import datetime
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from . import ledger, lifecycle
from .errors import AlreadyEliminated, ConcurrencyConflict, InvariantViolation, TransientStoreFailure
from .models import GameState, GameStatus, PlayerState
from .notifications import GameNotifier
from .storage import GameStorage
from .timeutils import now as current_time

logger = logging.getLogger(__name__)


@dataclass
class EnforcementReport:
    games_processed: int = 0
    penalties: int = 0
    exempt: int = 0
    skipped: int = 0  # lost races or already eliminated
    failures: int = 0
    eliminated: List[Tuple[str, str]] = field(default_factory=list)
    completed_games: List[str] = field(default_factory=list)


class DeadlineEnforcer:
    """Applies at-most-once strikes for missed nudge deadlines."""

    def __init__(self, storage: GameStorage, notifier: GameNotifier):
        self.storage = storage
        self.notifier = notifier

    async def run_cycle(self, now: Optional[datetime.datetime] = None) -> EnforcementReport:
        """Process every game with an expired nudge deadline."""
        now = now or current_time()
        report = EnforcementReport()
        try:
            games = await self.storage.list_due_nudges(now)
        except TransientStoreFailure as e:
            logger.error(f"Could not list games with due nudges: {e}")
            report.failures += 1
            return report

        logger.info(f"Enforcement cycle at {now.isoformat()}: {len(games)} game(s) due")
        for game in games:
            try:
                await self.enforce_game(game, now, report)
            except TransientStoreFailure as e:
                logger.error(f"Enforcement for game {game.id} aborted: {e}")
                report.failures += 1

        logger.info(
            f"Enforcement cycle complete: {report.games_processed} game(s), {report.penalties} penalt"
            f"{'y' if report.penalties == 1 else 'ies'}, {report.exempt} exempt, {report.skipped} skipped, "
            f"{report.failures} failure(s)"
        )
        return report

    async def enforce_game(self, game: GameState, now: datetime.datetime, report: EnforcementReport):
        issued_at = game.nudge_issued_at
        if not await self.storage.claim_nudge(game.id, game.nudge_deadline_at):
            logger.info(f"Nudge for game {game.id} already claimed by another cycle")
            return
        report.games_processed += 1
        logger.info(f"Processing expired nudge for game {game.id} (issued {issued_at})")

        if issued_at is None:
            logger.error(f"Game {game.id} had a nudge deadline without an issue time; nothing enforced")
            return

        for player_id, snapshot in game.players.items():
            if not snapshot.is_active or snapshot.strikes <= 0:
                continue
            try:
                last_seen = await self.storage.last_seen_at(player_id)
                if last_seen is not None and last_seen >= issued_at:
                    report.exempt += 1
                    continue
                state = await self.storage.transact_player(game.id, player_id, self._strike(player_id))
            except (ConcurrencyConflict, AlreadyEliminated) as e:
                logger.warning(f"Skipping offline strike for {player_id} in game {game.id}: {e}")
                report.skipped += 1
                continue
            except (TransientStoreFailure, InvariantViolation) as e:
                logger.error(f"Offline strike for {player_id} in game {game.id} failed: {e}")
                report.failures += 1
                continue

            report.penalties += 1
            eliminated = not state.is_active
            if eliminated:
                report.eliminated.append((game.id, player_id))
            logger.info(f"{player_id} penalised in game {game.id} (strikes now {state.strikes})")

            await self.notifier.offline_strike(game, player_id, eliminated)

            if await self._complete_if_over(game.id, now):
                report.completed_games.append(game.id)
                break

    @staticmethod
    def _strike(player_id: str):
        def mutate(state: PlayerState) -> PlayerState:
            if not state.is_active or state.strikes <= 0:
                raise AlreadyEliminated(player_id)
            return ledger.apply_strike(state, player_id)
        return mutate

    async def _complete_if_over(self, game_id: str, now: datetime.datetime) -> bool:
        game = await self.storage.get_game(game_id)
        if game is None or game.status == GameStatus.COMPLETED:
            return True
        status, ended_at = lifecycle.reevaluate(game, now)
        if status != GameStatus.COMPLETED:
            return False
        if await self.storage.complete_game(game_id, ended_at):
            game.status, game.ended_at = status, ended_at
            logger.info(f"Game {game_id} completed")
            await self.notifier.game_over(game, lifecycle.winner(game))
        return True
