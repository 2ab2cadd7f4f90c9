import datetime
import random
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio

from phonetag.config import TIMEZONE
from phonetag.geo import offset
from phonetag.logic import GameLogic
from phonetag.models import Coordinate, GameState, GameStatus, PlayerState
from phonetag.notifications import GameNotifier, NotificationRelay
from phonetag.storage import GameStorage
from phonetag.timeutils import local_date

TZ = ZoneInfo(TIMEZONE)
NOON = datetime.datetime(2024, 6, 1, 12, 0, tzinfo=TZ)
CITY_HALL = Coordinate(40.7128, -74.0060)


def moment(hour=12, minute=0, day=1):
    return datetime.datetime(2024, 6, day, hour, minute, tzinfo=TZ)


def away(meters, bearing=90.0, origin=CITY_HALL):
    return offset(origin, meters, bearing)


def player(strikes=3, tags=5, today=None, home_base=None):
    return PlayerState(
        strikes=strikes,
        tags_remaining_today=tags,
        last_tag_reset_date=today or NOON.date(),
        home_base=home_base,
        is_active=strikes > 0,
    )


def active_game(players, game_id="g1", created_at=NOON):
    return GameState(
        id=game_id,
        title="Tag",
        registration_code=f"CODE{game_id.upper()}",
        created_by=next(iter(players)),
        created_at=created_at,
        players=dict(players),
        status=GameStatus.ACTIVE,
        started_at=created_at,
    )


class RecordingRelay(NotificationRelay):
    """Keeps every message instead of delivering it."""

    def __init__(self, refuse=()):
        self.sent = []
        self.refuse = set(refuse)

    async def send(self, token, title, body, data=None):
        if token in self.refuse:
            return False
        self.sent.append({"token": token, "title": title, "body": body, "data": data or {}})
        return True

    def to(self, token):
        return [message for message in self.sent if message["token"] == token]

    def of_type(self, kind):
        return [message for message in self.sent if message["data"].get("type") == kind]


@pytest_asyncio.fixture
async def storage(tmp_path):
    store = GameStorage(db_path=str(tmp_path / "phonetag-test.db"), timeout=5)
    await store.initialize()
    return store


@pytest.fixture
def relay():
    return RecordingRelay()


@pytest.fixture
def notifier(storage, relay):
    return GameNotifier(storage, relay)


@pytest.fixture
def logic(storage, notifier):
    return GameLogic(storage, notifier, rng=random.Random(7))


async def seed_game(storage, player_ids=("alice", "bob", "carol"), at=NOON, game_id="g1", homes=None):
    """Store an active game with home bases away from the action and known users."""
    homes = homes or {}
    players = {}
    for index, pid in enumerate(player_ids):
        home = homes.get(pid, away(5000 + 1000 * index, bearing=0.0))
        players[pid] = player(today=local_date(at), home_base=home)
        await storage.upsert_user(pid, pid.title(), f"token-{pid}")
    game = active_game(players, game_id=game_id, created_at=at)
    await storage.create_game(game)
    return await storage.get_game(game_id)
