"""Tests for the safe zone registry."""

import datetime

from phonetag import safezones
from phonetag.config import HIT_ZONE_RADIUS, SAFE_BASE_RADIUS
from phonetag.models import SafeZone, SafeZoneKind

from conftest import CITY_HALL, NOON, TZ, away, moment


def test_missed_zone_expires_at_next_local_midnight():
    zone = safezones.missed_zone(CITY_HALL, moment(hour=23, minute=59), "alice")
    assert zone.expires_at == datetime.datetime(2024, 6, 2, 0, 0, tzinfo=TZ)
    assert not zone.is_expired(moment(hour=23, minute=59))
    assert zone.is_expired(zone.expires_at)


def test_hit_zone_is_permanent_and_basic_sized():
    zone = safezones.hit_zone(CITY_HALL, NOON, "Alice", "Bob", tagger_user_id="alice")
    assert zone.expires_at is None
    assert zone.radius == HIT_ZONE_RADIUS
    assert not zone.is_expired(NOON + datetime.timedelta(days=365))


def test_is_protected_ignores_expired_zones():
    zone = safezones.missed_zone(CITY_HALL, NOON, "alice")
    assert safezones.is_protected(away(10), [zone], NOON)
    assert not safezones.is_protected(away(10), [zone], moment(day=2, hour=1))


def test_is_protected_boundary_is_inclusive():
    zone = safezones.home_base_zone(CITY_HALL, NOON)
    assert safezones.is_protected(away(49.9), [zone], NOON)
    assert not safezones.is_protected(away(51), [zone], NOON)


def test_legacy_zone_without_radius_uses_default():
    zone = SafeZone(id="z", location=CITY_HALL, created_at=NOON, kind=SafeZoneKind.HIT_TAG)
    assert zone.effective_radius == SAFE_BASE_RADIUS


def test_sweep_keeps_permanent_and_live_zones():
    home = safezones.home_base_zone(CITY_HALL, NOON)
    hit = safezones.hit_zone(away(500), NOON, "A", "B")
    stale = safezones.missed_zone(away(900), moment(day=1), "alice")
    fresh = safezones.missed_zone(away(900), moment(day=2, hour=9), "alice")
    kept = safezones.sweep_expired([home, hit, stale, fresh], moment(day=2, hour=10))
    assert kept == [home, hit, fresh]


def test_has_missed_here_matches_rounded_coordinate_and_tagger():
    zone = safezones.missed_zone(CITY_HALL, NOON, "alice")
    nearby = away(1.0)  # same 4-decimal key
    assert nearby.rounded() == CITY_HALL.rounded()
    assert safezones.has_missed_here([zone], "alice", nearby, NOON)
    assert not safezones.has_missed_here([zone], "bob", CITY_HALL, NOON)
    assert not safezones.has_missed_here([zone], "alice", away(200), NOON)
    assert not safezones.has_missed_here([zone], "alice", CITY_HALL, moment(day=2))
