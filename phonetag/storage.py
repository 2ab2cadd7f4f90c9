"""Database storage layer for PhoneTag.

Player records carry a version number. Every write to a player goes through
compare-and-swap on that version, so a commit only lands if the record is
unchanged since it was read.
"""

import asyncio
import datetime
import functools
import json
import logging
from typing import Callable, Dict, List, Optional, Tuple

import aiosqlite

from .config import DATABASE_PATH, MAX_PLAYERS_PER_GAME, STORE_TIMEOUT_SECONDS
from .errors import ConcurrencyConflict, TransientStoreFailure, ValidationError
from .models import Coordinate, GameState, GameStatus, PlayerState, TagAttempt
from .timeutils import from_timestamp, to_timestamp

logger = logging.getLogger(__name__)


def bounded(method):
    """Run a store call under the store timeout.

    Timeouts and SQLite operational errors (locked or unavailable database)
    surface as TransientStoreFailure.
    """
    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await asyncio.wait_for(method(self, *args, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TransientStoreFailure(f"{method.__name__} timed out after {self.timeout}s") from e
        except aiosqlite.OperationalError as e:
            raise TransientStoreFailure(f"{method.__name__} failed: {e}") from e
    return wrapper


class GameStorage:
    """Handles all database operations for the game."""

    def __init__(self, db_path: str = DATABASE_PATH, timeout: float = STORE_TIMEOUT_SECONDS):
        self.db_path = db_path
        self.timeout = timeout

    def _connect(self):
        return aiosqlite.connect(self.db_path, timeout=self.timeout)

    async def initialize(self):
        """Initialize the database with required tables."""
        async with self._connect() as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS games (
                    game_id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    registration_code TEXT NOT NULL UNIQUE,
                    created_by TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    status TEXT NOT NULL DEFAULT 'waiting'
                        CHECK(status IN ('waiting','active','completed')),
                    started_at INTEGER,
                    ended_at INTEGER,
                    nudge_issued_at INTEGER,
                    nudge_deadline_at INTEGER
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS players (
                    game_id TEXT NOT NULL,
                    player_id TEXT NOT NULL,
                    state TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 1,
                    PRIMARY KEY(game_id, player_id)
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS tags (
                    tag_id TEXT PRIMARY KEY,
                    game_id TEXT NOT NULL,
                    from_player_id TEXT NOT NULL,
                    target_player_id TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    data TEXT NOT NULL
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    display_name TEXT NOT NULL,
                    notification_token TEXT
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS locations (
                    user_id TEXT PRIMARY KEY,
                    latitude REAL NOT NULL,
                    longitude REAL NOT NULL,
                    last_seen_at INTEGER NOT NULL
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS state (
                    scope TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    PRIMARY KEY(scope, key)
                )
            """)

            await db.execute("CREATE INDEX IF NOT EXISTS ix_players_player ON players(player_id)")
            await db.execute("CREATE INDEX IF NOT EXISTS ix_tags_game ON tags(game_id)")
            await db.commit()

    # Games

    @staticmethod
    def _game_from_row(row, player_rows) -> GameState:
        game = GameState(
            id=row["game_id"],
            title=row["title"],
            registration_code=row["registration_code"],
            created_by=row["created_by"],
            created_at=from_timestamp(row["created_at"]),
            status=GameStatus(row["status"]),
            started_at=from_timestamp(row["started_at"]),
            ended_at=from_timestamp(row["ended_at"]),
            nudge_issued_at=from_timestamp(row["nudge_issued_at"]),
            nudge_deadline_at=from_timestamp(row["nudge_deadline_at"]),
        )
        for player_row in player_rows:
            game.players[player_row["player_id"]] = PlayerState.from_dict(json.loads(player_row["state"]))
            game.player_versions[player_row["player_id"]] = player_row["version"]
        return game

    async def _load_game(self, db, game_id: str) -> Optional[GameState]:
        async with db.execute("SELECT * FROM games WHERE game_id = ?", (game_id,)) as cursor:
            row = await cursor.fetchone()
        if not row:
            return None
        async with db.execute(
            "SELECT player_id, state, version FROM players WHERE game_id = ? ORDER BY rowid", (game_id,)
        ) as cursor:
            player_rows = await cursor.fetchall()
        return self._game_from_row(row, player_rows)

    @bounded
    async def get_game(self, game_id: str) -> Optional[GameState]:
        """Get a game with all of its player records."""
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            return await self._load_game(db, game_id)

    @bounded
    async def find_game_by_code(self, code: str) -> Optional[GameState]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT game_id FROM games WHERE registration_code = ?", (code.strip().upper(),)
            ) as cursor:
                row = await cursor.fetchone()
            return await self._load_game(db, row["game_id"]) if row else None

    @bounded
    async def code_exists(self, code: str) -> bool:
        async with self._connect() as db:
            async with db.execute("SELECT COUNT(*) FROM games WHERE registration_code = ?", (code,)) as cursor:
                count = await cursor.fetchone()
                return count[0] > 0

    @bounded
    async def list_games_for_player(self, player_id: str, include_completed: bool = False) -> List[GameState]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            query = """
                SELECT g.game_id FROM games g JOIN players p ON p.game_id = g.game_id
                WHERE p.player_id = ?
            """
            if not include_completed:
                query += " AND g.status != 'completed'"
            async with db.execute(query + " ORDER BY g.created_at", (player_id,)) as cursor:
                rows = await cursor.fetchall()
            return [await self._load_game(db, row["game_id"]) for row in rows]

    @bounded
    async def create_game(self, game: GameState):
        """Insert a new game and its initial player records."""
        async with self._connect() as db:
            await db.execute("""
                INSERT INTO games (game_id, title, registration_code, created_by, created_at, status,
                                   started_at, ended_at, nudge_issued_at, nudge_deadline_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                game.id, game.title, game.registration_code, game.created_by, to_timestamp(game.created_at),
                game.status.value, to_timestamp(game.started_at), to_timestamp(game.ended_at),
                to_timestamp(game.nudge_issued_at), to_timestamp(game.nudge_deadline_at),
            ))
            for player_id, state in game.players.items():
                state.check_invariants()
                await db.execute(
                    "INSERT INTO players (game_id, player_id, state, version) VALUES (?, ?, ?, 1)",
                    (game.id, player_id, json.dumps(state.to_dict())),
                )
                game.player_versions[player_id] = 1
            await db.commit()

    @bounded
    async def add_player(self, game_id: str, player_id: str, state: PlayerState,
                         max_players: int = MAX_PLAYERS_PER_GAME) -> bool:
        """Add a player to a waiting game that still has room. False if not added.

        The room check and the insert share one write transaction, so
        concurrent joins cannot overfill the roster.
        """
        state.check_invariants()
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            cursor = await db.execute("""
                INSERT OR IGNORE INTO players (game_id, player_id, state, version)
                SELECT ?, ?, ?, 1 FROM games WHERE game_id = ? AND status = 'waiting'
                AND (SELECT COUNT(*) FROM players WHERE game_id = ?) < ?
            """, (game_id, player_id, json.dumps(state.to_dict()), game_id, game_id, max_players))
            await db.commit()
            return cursor.rowcount == 1

    @bounded
    async def remove_player(self, game_id: str, player_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute("""
                DELETE FROM players WHERE game_id = ? AND player_id = ?
                AND EXISTS (SELECT 1 FROM games WHERE game_id = ? AND status = 'waiting')
            """, (game_id, player_id, game_id))
            await db.commit()
            return cursor.rowcount == 1

    @bounded
    async def delete_game(self, game_id: str):
        """Remove a game and every record that belongs to it."""
        async with self._connect() as db:
            await db.execute("DELETE FROM tags WHERE game_id = ?", (game_id,))
            await db.execute("DELETE FROM players WHERE game_id = ?", (game_id,))
            await db.execute("DELETE FROM games WHERE game_id = ?", (game_id,))
            await db.commit()

    @bounded
    async def activate_game(self, game_id: str, started_at: datetime.datetime) -> bool:
        """Move a waiting game to active. False if it was not waiting."""
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE games SET status = 'active', started_at = ? WHERE game_id = ? AND status = 'waiting'",
                (to_timestamp(started_at), game_id),
            )
            await db.commit()
            return cursor.rowcount == 1

    @bounded
    async def complete_game(self, game_id: str, ended_at: datetime.datetime) -> bool:
        """Move an active game to completed. A completed game never reopens."""
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE games SET status = 'completed', ended_at = ? WHERE game_id = ? AND status = 'active'",
                (to_timestamp(ended_at), game_id),
            )
            await db.commit()
            return cursor.rowcount == 1

    # Nudges

    @bounded
    async def set_nudge(self, game_id: str, issued_at: datetime.datetime, deadline_at: datetime.datetime) -> bool:
        async with self._connect() as db:
            cursor = await db.execute("""
                UPDATE games SET nudge_issued_at = ?, nudge_deadline_at = ?
                WHERE game_id = ? AND status = 'active'
            """, (to_timestamp(issued_at), to_timestamp(deadline_at), game_id))
            await db.commit()
            return cursor.rowcount == 1

    @bounded
    async def list_due_nudges(self, now: datetime.datetime) -> List[GameState]:
        """Active games whose nudge deadline has passed."""
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("""
                SELECT game_id FROM games
                WHERE status = 'active' AND nudge_deadline_at IS NOT NULL AND nudge_deadline_at <= ?
                ORDER BY nudge_deadline_at
            """, (to_timestamp(now),)) as cursor:
                rows = await cursor.fetchall()
            return [await self._load_game(db, row["game_id"]) for row in rows]

    @bounded
    async def claim_nudge(self, game_id: str, deadline_at: datetime.datetime) -> bool:
        """Clear both nudge fields in one write.

        Only the caller that observed this deadline gets True; anyone
        racing on the same nudge finds the fields already cleared.
        """
        async with self._connect() as db:
            cursor = await db.execute("""
                UPDATE games SET nudge_issued_at = NULL, nudge_deadline_at = NULL
                WHERE game_id = ? AND nudge_deadline_at = ?
            """, (game_id, to_timestamp(deadline_at)))
            await db.commit()
            return cursor.rowcount == 1

    # Players

    @bounded
    async def read_player(self, game_id: str, player_id: str) -> Tuple[PlayerState, int]:
        """Get a player record and its current version."""
        async with self._connect() as db:
            return await self._read_player(db, game_id, player_id)

    async def _read_player(self, db, game_id: str, player_id: str) -> Tuple[PlayerState, int]:
        async with db.execute(
            "SELECT state, version FROM players WHERE game_id = ? AND player_id = ?", (game_id, player_id)
        ) as cursor:
            row = await cursor.fetchone()
        if not row:
            raise ValidationError(f"Player {player_id} is not in game {game_id}")
        return PlayerState.from_dict(json.loads(row[0])), row[1]

    async def _swap(self, db, game_id: str, player_id: str, expected_version: int, state: PlayerState) -> int:
        state.check_invariants()
        cursor = await db.execute("""
            UPDATE players SET state = ?, version = version + 1
            WHERE game_id = ? AND player_id = ? AND version = ?
        """, (json.dumps(state.to_dict()), game_id, player_id, expected_version))
        if cursor.rowcount != 1:
            raise ConcurrencyConflict(game_id, player_id)
        return expected_version + 1

    @bounded
    async def compare_and_swap_player(self, game_id: str, player_id: str, expected_version: int,
                                      state: PlayerState) -> int:
        """Write `state` only if the record is still at `expected_version`.

        Returns the new version, or raises ConcurrencyConflict.
        """
        async with self._connect() as db:
            new_version = await self._swap(db, game_id, player_id, expected_version, state)
            await db.commit()
            return new_version

    @bounded
    async def transact_player(self, game_id: str, player_id: str,
                              mutator: Callable[[PlayerState], PlayerState]) -> PlayerState:
        """Read one player, apply `mutator`, commit by compare-and-swap.

        There is no retry: a lost race raises ConcurrencyConflict. Anything
        the mutator raises aborts the transaction with nothing written.
        """
        async with self._connect() as db:
            state, version = await self._read_player(db, game_id, player_id)
            state.check_invariants()
            updated = mutator(state)
            await self._swap(db, game_id, player_id, version, updated)
            await db.commit()
            return updated

    @bounded
    async def commit_players(self, game_id: str, updates: Dict[str, PlayerState], versions: Dict[str, int],
                             tag: Optional[TagAttempt] = None,
                             completed_at: Optional[datetime.datetime] = None) -> bool:
        """Commit several player records, a tag record and a completion together.

        Each player is compare-and-swapped against its read version. If any
        record moved, the whole batch rolls back with ConcurrencyConflict.
        Returns True only when this batch moved the game to completed.
        """
        completed = False
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                for player_id, state in updates.items():
                    await self._swap(db, game_id, player_id, versions[player_id], state)
                if tag is not None:
                    await db.execute("""
                        INSERT INTO tags (tag_id, game_id, from_player_id, target_player_id, created_at, data)
                        VALUES (?, ?, ?, ?, ?, ?)
                    """, (tag.id, tag.game_id, tag.from_player_id, tag.target_player_id,
                          to_timestamp(tag.timestamp), json.dumps(tag.to_dict())))
                if completed_at is not None:
                    cursor = await db.execute(
                        "UPDATE games SET status = 'completed', ended_at = ? WHERE game_id = ? AND status = 'active'",
                        (to_timestamp(completed_at), game_id),
                    )
                    completed = cursor.rowcount == 1
            except BaseException:
                await db.rollback()
                raise
            await db.commit()
        return completed

    # Tags

    @bounded
    async def get_tag(self, tag_id: str) -> Optional[TagAttempt]:
        async with self._connect() as db:
            async with db.execute("SELECT data FROM tags WHERE tag_id = ?", (tag_id,)) as cursor:
                row = await cursor.fetchone()
                return TagAttempt.from_dict(json.loads(row[0])) if row else None

    @bounded
    async def list_tags(self, game_id: str) -> List[TagAttempt]:
        async with self._connect() as db:
            async with db.execute(
                "SELECT data FROM tags WHERE game_id = ? ORDER BY created_at, rowid", (game_id,)
            ) as cursor:
                rows = await cursor.fetchall()
                return [TagAttempt.from_dict(json.loads(row[0])) for row in rows]

    # Presence

    @bounded
    async def record_location(self, user_id: str, location: Coordinate, seen_at: datetime.datetime):
        async with self._connect() as db:
            await db.execute("""
                INSERT OR REPLACE INTO locations (user_id, latitude, longitude, last_seen_at)
                VALUES (?, ?, ?, ?)
            """, (user_id, location.latitude, location.longitude, to_timestamp(seen_at)))
            await db.commit()

    @bounded
    async def get_location(self, user_id: str) -> Optional[Coordinate]:
        async with self._connect() as db:
            async with db.execute(
                "SELECT latitude, longitude FROM locations WHERE user_id = ?", (user_id,)
            ) as cursor:
                row = await cursor.fetchone()
                return Coordinate(latitude=row[0], longitude=row[1]) if row else None

    @bounded
    async def last_seen_at(self, user_id: str) -> Optional[datetime.datetime]:
        async with self._connect() as db:
            async with db.execute("SELECT last_seen_at FROM locations WHERE user_id = ?", (user_id,)) as cursor:
                row = await cursor.fetchone()
                return from_timestamp(row[0]) if row else None

    # Identity

    @bounded
    async def upsert_user(self, user_id: str, display_name: str, notification_token: Optional[str] = None):
        async with self._connect() as db:
            await db.execute("""
                INSERT INTO users (user_id, display_name, notification_token) VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    display_name = excluded.display_name,
                    notification_token = COALESCE(excluded.notification_token, users.notification_token)
            """, (user_id, display_name, notification_token))
            await db.commit()

    @bounded
    async def display_name(self, user_id: str) -> str:
        async with self._connect() as db:
            async with db.execute("SELECT display_name FROM users WHERE user_id = ?", (user_id,)) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else "Player"

    @bounded
    async def notification_tokens(self, user_ids: List[str]) -> Dict[str, str]:
        """Tokens for the given users; users without one are left out."""
        if not user_ids:
            return {}
        placeholders = ",".join("?" for _ in user_ids)
        async with self._connect() as db:
            async with db.execute(
                f"SELECT user_id, notification_token FROM users WHERE user_id IN ({placeholders})"
                " AND notification_token IS NOT NULL",
                list(user_ids),
            ) as cursor:
                rows = await cursor.fetchall()
                return {user_id: token for user_id, token in rows}

    # Settings

    @bounded
    async def get_state(self, key: str, scope: str) -> Optional[str]:
        """Get a state value for a scope (guild)."""
        async with self._connect() as db:
            async with db.execute("SELECT value FROM state WHERE key = ? AND scope = ?", (key, scope)) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else None

    @bounded
    async def set_state(self, key: str, value: str, scope: str):
        """Set a state value for a scope (guild)."""
        async with self._connect() as db:
            await db.execute(
                "INSERT OR REPLACE INTO state (scope, key, value) VALUES (?, ?, ?)",
                (scope, key, value)
            )
            await db.commit()
