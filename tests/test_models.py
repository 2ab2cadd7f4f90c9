"""Tests for model serialization."""

import pytest

from phonetag.errors import InvariantViolation, ValidationError
from phonetag.models import (
    Blocked, BlockReason, Coordinate, Hit, Miss, PlayerState, SafeZone, TagAttempt, TagKind, TagResult,
)

from conftest import CITY_HALL, NOON, player


def test_result_carries_type_discriminant():
    assert Hit(CITY_HALL, 12.5, "Bob").to_dict()["type"] == "hit"
    assert Miss(400.0).to_dict() == {"type": "miss", "distance": 400.0}
    assert Blocked(BlockReason.SAFE_BASE).to_dict() == {"type": "blocked", "reason": "safeBase"}


def test_result_decodes_by_discriminant():
    decoded = TagResult.from_dict({"type": "blocked", "reason": "duplicateLocation"})
    assert decoded == Blocked(BlockReason.DUPLICATE_LOCATION)


def test_hit_without_target_name_decodes_as_unknown():
    decoded = TagResult.from_dict({"type": "hit", "actualLocation": CITY_HALL.to_dict(), "distance": 3})
    assert decoded == Hit(CITY_HALL, 3.0, "Unknown")


def test_result_base_cannot_be_built_directly():
    with pytest.raises(TypeError):
        TagResult()


def test_unknown_result_type_is_rejected():
    with pytest.raises(ValueError):
        TagResult.from_dict({"type": "bounce"})


def test_player_state_uses_camel_case_keys():
    data = player().to_dict()
    assert {"strikes", "tagsRemainingToday", "lastTagResetDate", "safeZones", "isActive",
            "purchasedInventory"} <= set(data)
    assert data["lastTagResetDate"] == "2024-06-01"


def test_legacy_player_record_gets_empty_defaults():
    state = PlayerState.from_dict({
        "strikes": 2, "tagsRemainingToday": 1, "lastTagResetDate": "2024-05-30", "isActive": True,
    })
    assert state.safe_zones == []
    assert state.tripwires == []
    assert state.purchased_inventory.extra_basic_tags == 0


def test_legacy_zone_without_radius():
    zone = SafeZone.from_dict({
        "id": "z1", "location": CITY_HALL.to_dict(), "createdAt": 1717257600, "kind": "hitTag",
    })
    assert zone.radius is None
    assert "radius" not in zone.to_dict()


def test_resolved_attempt_cannot_be_resolved_again():
    attempt = TagAttempt("t1", "g1", "alice", "bob", CITY_HALL, NOON, TagKind.BASIC)
    resolved = attempt.with_result(Miss(120.0))
    assert TagAttempt.from_dict(resolved.to_dict()).result == Miss(120.0)
    with pytest.raises(ValueError):
        resolved.with_result(Miss(1.0))


def test_check_invariants_flags_active_player_without_strikes():
    state = player(strikes=0)
    state.is_active = True
    with pytest.raises(InvariantViolation):
        state.check_invariants()


def test_coordinate_validation():
    Coordinate(90.0, -180.0).validate()
    with pytest.raises(ValidationError):
        Coordinate(91.0, 0.0).validate()
