"""Safe zone registry: creation, collision queries and expiry."""

import datetime
import uuid
from typing import Iterable, List, Optional

from .config import HIT_ZONE_RADIUS, HOME_BASE_RADIUS, SAFE_BASE_RADIUS
from .geo import distance
from .models import Coordinate, SafeZone, SafeZoneKind
from .timeutils import next_midnight


def contains(zone: SafeZone, location: Coordinate) -> bool:
    return distance(zone.location, location) <= zone.effective_radius


def is_protected(location: Coordinate, zones: Iterable[SafeZone], now: datetime.datetime) -> bool:
    """True if `location` lies inside any zone that has not expired.

    Expired temporary zones are ignored here but stay stored until swept.
    """
    return any(contains(zone, location) for zone in zones if not zone.is_expired(now))


def add(zones: List[SafeZone], zone: SafeZone) -> List[SafeZone]:
    zones.append(zone)
    return zones


def sweep_expired(zones: Iterable[SafeZone], now: datetime.datetime) -> List[SafeZone]:
    """Zones left after dropping expired temporary ones."""
    return [zone for zone in zones if not zone.is_expired(now)]


def home_base_zone(location: Coordinate, now: datetime.datetime) -> SafeZone:
    return SafeZone(
        id=uuid.uuid4().hex,
        location=location,
        created_at=now,
        kind=SafeZoneKind.HOME_BASE,
        radius=HOME_BASE_RADIUS,
    )


def hit_zone(location: Coordinate, now: datetime.datetime, tagger_name: str, target_name: str,
             tagger_user_id: Optional[str] = None) -> SafeZone:
    """Permanent zone where a player was struck."""
    return SafeZone(
        id=uuid.uuid4().hex,
        location=location,
        created_at=now,
        kind=SafeZoneKind.HIT_TAG,
        radius=HIT_ZONE_RADIUS,
        tagger_name=tagger_name,
        target_name=target_name,
        tagger_user_id=tagger_user_id,
    )


def missed_zone(location: Coordinate, now: datetime.datetime, tagger_user_id: str,
                tagger_name: Optional[str] = None) -> SafeZone:
    """Temporary zone at a missed guess, gone at the next midnight."""
    return SafeZone(
        id=uuid.uuid4().hex,
        location=location,
        created_at=now,
        kind=SafeZoneKind.MISSED_TAG,
        expires_at=next_midnight(now),
        radius=SAFE_BASE_RADIUS,
        tagger_name=tagger_name,
        tagger_user_id=tagger_user_id,
    )


def has_missed_here(zones: Iterable[SafeZone], tagger_user_id: str, location: Coordinate,
                    now: datetime.datetime) -> bool:
    """Whether this tagger already missed at the same rounded coordinate today."""
    key = location.rounded()
    return any(
        zone.kind == SafeZoneKind.MISSED_TAG
        and zone.tagger_user_id == tagger_user_id
        and not zone.is_expired(now)
        and zone.location.rounded() == key
        for zone in zones
    )
