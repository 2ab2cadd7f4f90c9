"""Data models for the PhoneTag game."""

import datetime
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from .config import COORDINATE_PRECISION, SAFE_BASE_RADIUS, STARTING_STRIKES, DAILY_TAG_LIMIT
from .errors import InvariantViolation, ValidationError
from .timeutils import from_timestamp, parse_day_key, to_timestamp


class SafeZoneKind(str, enum.Enum):
    HOME_BASE = "homeBase"      # set at game start
    MISSED_TAG = "missedTag"    # expires at midnight
    HIT_TAG = "hitTag"          # permanent for game duration


class TagKind(str, enum.Enum):
    BASIC = "basic"
    WIDE_RADIUS = "wideRadius"


class BlockReason(str, enum.Enum):
    PLAYER_ELIMINATED = "playerEliminated"
    DUPLICATE_LOCATION = "duplicateLocation"
    OUT_OF_TAGS = "outOfTags"
    HOME_BASE = "homeBase"
    SAFE_BASE = "safeBase"


class GameStatus(str, enum.Enum):
    WAITING = "waiting"      # waiting for all players to set home bases
    ACTIVE = "active"
    COMPLETED = "completed"


class ArsenalItem(str, enum.Enum):
    """Items available in a player's arsenal."""
    BASIC_TAG = "basicTag"
    WIDE_RADIUS_TAG = "wideRadiusTag"
    RADAR = "radar"
    TRIPWIRE = "tripwire"

    @property
    def display_name(self) -> str:
        return {
            ArsenalItem.BASIC_TAG: "Tag",
            ArsenalItem.WIDE_RADIUS_TAG: "Big Tag",
            ArsenalItem.RADAR: "Radar",
            ArsenalItem.TRIPWIRE: "Tripwire",
        }[self]


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 point."""
    latitude: float
    longitude: float

    def rounded(self, places: int = COORDINATE_PRECISION) -> Tuple[float, float]:
        return (round(self.latitude, places), round(self.longitude, places))

    def validate(self):
        if not (-90.0 <= self.latitude <= 90.0) or not (-180.0 <= self.longitude <= 180.0):
            raise ValidationError(f"Coordinate out of range: {self.latitude}, {self.longitude}")

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Coordinate":
        return cls(latitude=float(data["latitude"]), longitude=float(data["longitude"]))


def _coordinate_or_none(data: Optional[Dict[str, Any]]) -> Optional[Coordinate]:
    return Coordinate.from_dict(data) if data else None


@dataclass
class SafeZone:
    """A protected area on the map."""
    id: str
    location: Coordinate
    created_at: datetime.datetime
    kind: SafeZoneKind
    expires_at: Optional[datetime.datetime] = None  # None = permanent
    radius: Optional[float] = None  # absent on older records
    tagger_name: Optional[str] = None
    target_name: Optional[str] = None
    tagger_user_id: Optional[str] = None

    @property
    def effective_radius(self) -> float:
        return self.radius if self.radius is not None else SAFE_BASE_RADIUS

    @property
    def is_temporary(self) -> bool:
        return self.kind == SafeZoneKind.MISSED_TAG and self.expires_at is not None

    def is_expired(self, moment: datetime.datetime) -> bool:
        return self.is_temporary and self.expires_at <= moment

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "location": self.location.to_dict(),
            "createdAt": to_timestamp(self.created_at),
            "kind": self.kind.value,
        }
        optional = {
            "expiresAt": to_timestamp(self.expires_at),
            "radius": self.radius,
            "taggerName": self.tagger_name,
            "targetName": self.target_name,
            "taggerUserId": self.tagger_user_id,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SafeZone":
        return cls(
            id=data["id"],
            location=Coordinate.from_dict(data["location"]),
            created_at=from_timestamp(data["createdAt"]),
            kind=SafeZoneKind(data["kind"]),
            expires_at=from_timestamp(data.get("expiresAt")),
            radius=data.get("radius"),
            tagger_name=data.get("taggerName"),
            target_name=data.get("targetName"),
            tagger_user_id=data.get("taggerUserId"),
        )


@dataclass
class PurchasedInventory:
    extra_basic_tags: int = 0
    wide_radius_tags: int = 0
    radars: int = 0
    tripwires: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "extraBasicTags": self.extra_basic_tags,
            "wideRadiusTags": self.wide_radius_tags,
            "radars": self.radars,
            "tripwires": self.tripwires,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PurchasedInventory":
        data = data or {}
        return cls(
            extra_basic_tags=int(data.get("extraBasicTags", 0)),
            wide_radius_tags=int(data.get("wideRadiusTags", 0)),
            radars=int(data.get("radars", 0)),
            tripwires=int(data.get("tripwires", 0)),
        )


@dataclass
class Tripwire:
    id: str
    placed_by: str
    location: Coordinate
    placed_at: datetime.datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "placedBy": self.placed_by,
            "location": self.location.to_dict(),
            "placedAt": to_timestamp(self.placed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tripwire":
        return cls(
            id=data["id"],
            placed_by=data["placedBy"],
            location=Coordinate.from_dict(data["location"]),
            placed_at=from_timestamp(data["placedAt"]),
        )


@dataclass
class PlayerState:
    """A player's state within one game."""
    strikes: int
    tags_remaining_today: int
    last_tag_reset_date: datetime.date
    home_base: Optional[Coordinate] = None
    safe_zones: List[SafeZone] = field(default_factory=list)
    is_active: bool = True
    purchased_inventory: PurchasedInventory = field(default_factory=PurchasedInventory)
    tripwires: List[Tripwire] = field(default_factory=list)

    @classmethod
    def new(cls, today: datetime.date, strikes: int = STARTING_STRIKES, daily_limit: int = DAILY_TAG_LIMIT) -> "PlayerState":
        return cls(strikes=strikes, tags_remaining_today=daily_limit, last_tag_reset_date=today)

    def check_invariants(self):
        """Raise InvariantViolation if the record is internally inconsistent."""
        if self.strikes < 0:
            raise InvariantViolation(f"strikes is negative ({self.strikes})")
        if self.is_active != (self.strikes > 0):
            raise InvariantViolation(f"isActive={self.is_active} disagrees with strikes={self.strikes}")
        if self.tags_remaining_today < 0:
            raise InvariantViolation(f"tagsRemainingToday is negative ({self.tags_remaining_today})")
        negative = {k: v for k, v in self.purchased_inventory.to_dict().items() if v < 0}
        if negative:
            raise InvariantViolation(f"negative inventory: {negative}")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "strikes": self.strikes,
            "tagsRemainingToday": self.tags_remaining_today,
            "lastTagResetDate": self.last_tag_reset_date.isoformat(),
            "safeZones": [zone.to_dict() for zone in self.safe_zones],
            "isActive": self.is_active,
            "purchasedInventory": self.purchased_inventory.to_dict(),
            "tripwires": [tripwire.to_dict() for tripwire in self.tripwires],
        }
        if self.home_base is not None:
            data["homeBase"] = self.home_base.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlayerState":
        # Older records may lack empty collections entirely
        return cls(
            strikes=int(data["strikes"]),
            tags_remaining_today=int(data["tagsRemainingToday"]),
            last_tag_reset_date=parse_day_key(data["lastTagResetDate"]),
            home_base=_coordinate_or_none(data.get("homeBase")),
            safe_zones=[SafeZone.from_dict(z) for z in data.get("safeZones") or []],
            is_active=bool(data["isActive"]),
            purchased_inventory=PurchasedInventory.from_dict(data.get("purchasedInventory")),
            tripwires=[Tripwire.from_dict(t) for t in data.get("tripwires") or []],
        )


@dataclass(frozen=True)
class TagResult(ABC):
    """Outcome of a tag attempt. Use the Hit, Miss and Blocked variants."""
    type: ClassVar[str] = ""

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        ...

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "TagResult":
        result_type = data.get("type")
        if result_type == Hit.type:
            return Hit(
                actual_location=Coordinate.from_dict(data["actualLocation"]),
                distance=float(data["distance"]),
                target_name=data.get("targetName") or "Unknown",
            )
        if result_type == Miss.type:
            return Miss(distance=float(data["distance"]))
        if result_type == Blocked.type:
            return Blocked(reason=BlockReason(data["reason"]))
        raise ValueError(f"Unknown tag result type: {result_type!r}")


@dataclass(frozen=True)
class Hit(TagResult):
    type: ClassVar[str] = "hit"
    actual_location: Coordinate
    distance: float
    target_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "actualLocation": self.actual_location.to_dict(),
            "distance": self.distance,
            "targetName": self.target_name,
        }


@dataclass(frozen=True)
class Miss(TagResult):
    type: ClassVar[str] = "miss"
    distance: float

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "distance": self.distance}


@dataclass(frozen=True)
class Blocked(TagResult):
    type: ClassVar[str] = "blocked"
    reason: BlockReason

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "reason": self.reason.value}


@dataclass(frozen=True)
class TagAttempt:
    """A single tag attempt. The result is assigned once and never edited."""
    id: str
    game_id: str
    from_player_id: str
    target_player_id: str
    guessed_location: Coordinate
    timestamp: datetime.datetime
    kind: TagKind = TagKind.BASIC
    result: Optional[TagResult] = None

    def with_result(self, result: TagResult) -> "TagAttempt":
        if self.result is not None:
            raise ValueError(f"Tag {self.id} is already resolved")
        return replace(self, result=result)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "gameId": self.game_id,
            "fromPlayerId": self.from_player_id,
            "targetPlayerId": self.target_player_id,
            "guessedLocation": self.guessed_location.to_dict(),
            "timestamp": to_timestamp(self.timestamp),
            "kind": self.kind.value,
        }
        if self.result is not None:
            data["result"] = self.result.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TagAttempt":
        return cls(
            id=data["id"],
            game_id=data["gameId"],
            from_player_id=data["fromPlayerId"],
            target_player_id=data["targetPlayerId"],
            guessed_location=Coordinate.from_dict(data["guessedLocation"]),
            timestamp=from_timestamp(data["timestamp"]),
            kind=TagKind(data.get("kind", TagKind.BASIC.value)),
            result=TagResult.from_dict(data["result"]) if data.get("result") else None,
        )


@dataclass
class GameState:
    id: str
    title: str
    registration_code: str
    created_by: str
    created_at: datetime.datetime
    players: Dict[str, PlayerState] = field(default_factory=dict)
    status: GameStatus = GameStatus.WAITING
    started_at: Optional[datetime.datetime] = None
    ended_at: Optional[datetime.datetime] = None
    nudge_issued_at: Optional[datetime.datetime] = None
    nudge_deadline_at: Optional[datetime.datetime] = None
    # Record versions as read from the store, used for compare-and-swap
    player_versions: Dict[str, int] = field(default_factory=dict, repr=False, compare=False)

    @property
    def nudge_pending(self) -> bool:
        return self.nudge_deadline_at is not None

    def player(self, player_id: str) -> PlayerState:
        try:
            return self.players[player_id]
        except KeyError:
            raise ValidationError(f"Player {player_id} is not in game {self.id}") from None

    def all_safe_zones(self) -> List[SafeZone]:
        return [zone for state in self.players.values() for zone in state.safe_zones]

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "registrationCode": self.registration_code,
            "createdBy": self.created_by,
            "createdAt": to_timestamp(self.created_at),
            "players": {pid: state.to_dict() for pid, state in self.players.items()},
            "status": self.status.value,
        }
        optional = {
            "startedAt": to_timestamp(self.started_at),
            "endedAt": to_timestamp(self.ended_at),
            "nudgeIssuedAt": to_timestamp(self.nudge_issued_at),
            "nudgeDeadlineAt": to_timestamp(self.nudge_deadline_at),
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GameState":
        return cls(
            id=data["id"],
            title=data["title"],
            registration_code=data["registrationCode"],
            created_by=data["createdBy"],
            created_at=from_timestamp(data["createdAt"]),
            players={pid: PlayerState.from_dict(p) for pid, p in (data.get("players") or {}).items()},
            status=GameStatus(data.get("status", GameStatus.WAITING.value)),
            started_at=from_timestamp(data.get("startedAt")),
            ended_at=from_timestamp(data.get("endedAt")),
            nudge_issued_at=from_timestamp(data.get("nudgeIssuedAt")),
            nudge_deadline_at=from_timestamp(data.get("nudgeDeadlineAt")),
        )


@dataclass
class RadarResult:
    """Two candidate areas for a target: one real (jittered), one decoy."""
    locations: List[Coordinate]
    radius: float
    target_name: str
