"""Tests for tag resolution."""

import copy
import datetime

import pytest

from phonetag import ledger, safezones
from phonetag.errors import ValidationError
from phonetag.models import (
    ArsenalItem, Blocked, BlockReason, GameStatus, Hit, Miss, SafeZoneKind, TagAttempt, TagKind,
)
from phonetag.resolver import TagResolver

from conftest import CITY_HALL, NOON, TZ, active_game, away, player

TARGET_AT = CITY_HALL


def make_game(**overrides):
    players = {
        "alice": player(home_base=away(5000, bearing=0)),
        "bob": player(home_base=away(6000, bearing=0)),
        "carol": player(home_base=away(7000, bearing=0)),
    }
    players.update(overrides)
    return active_game(players)


def attempt(guess, kind=TagKind.BASIC, source="alice", target="bob"):
    return TagAttempt("t1", "g1", source, target, guess, NOON, kind)


def resolve(game, guess, kind=TagKind.BASIC, target_at=TARGET_AT, now=NOON):
    return TagResolver().resolve(attempt(guess, kind), game, target_at, now, "Alice", "Bob")


def test_hit_strikes_target_and_leaves_hit_zone():
    game = make_game()
    outcome = resolve(game, away(50))

    assert isinstance(outcome.result, Hit)
    assert outcome.result.target_name == "Bob"
    assert outcome.distance == pytest.approx(50, abs=0.5)
    bob = outcome.updates["bob"]
    assert bob.strikes == 2
    zone = bob.safe_zones[-1]
    assert zone.kind == SafeZoneKind.HIT_TAG
    assert zone.location == TARGET_AT
    assert zone.expires_at is None
    assert outcome.updates["alice"].tags_remaining_today == 4
    assert outcome.status == GameStatus.ACTIVE


def test_miss_leaves_temporary_zone_at_guess():
    game = make_game()
    guess = away(200)
    outcome = resolve(game, guess)

    assert isinstance(outcome.result, Miss)
    assert outcome.result.distance == pytest.approx(200, abs=0.5)
    zone = outcome.updates["bob"].safe_zones[-1]
    assert zone.kind == SafeZoneKind.MISSED_TAG
    assert zone.location == guess
    assert zone.tagger_user_id == "alice"
    assert zone.expires_at == datetime.datetime(2024, 6, 2, tzinfo=TZ)
    assert outcome.updates["bob"].strikes == 3
    assert outcome.updates["alice"].tags_remaining_today == 4


def test_input_game_is_not_modified():
    game = make_game()
    before = copy.deepcopy(game)
    resolve(game, away(50))
    assert game == before


def test_eliminated_target_blocks_without_consuming():
    game = make_game(bob=player(strikes=0, home_base=away(6000, bearing=0)))
    outcome = resolve(game, away(10))
    assert outcome.result == Blocked(BlockReason.PLAYER_ELIMINATED)
    assert outcome.updates == {}


def test_duplicate_location_blocks_before_out_of_tags():
    alice = player(tags=0, home_base=away(5000, bearing=0))
    game = make_game(alice=alice)
    guess = away(300)
    game.players["bob"].safe_zones.append(safezones.missed_zone(guess, NOON, "alice"))

    outcome = resolve(game, guess)
    assert outcome.result == Blocked(BlockReason.DUPLICATE_LOCATION)
    assert outcome.updates == {}


def test_out_of_tags_blocks_without_changes():
    game = make_game(alice=player(tags=0, home_base=away(5000, bearing=0)))
    outcome = resolve(game, away(10))
    assert outcome.result == Blocked(BlockReason.OUT_OF_TAGS)
    assert "bob" not in outcome.updates


def test_new_day_resets_allowance_before_consuming():
    stale = player(tags=0, today=NOON.date() - datetime.timedelta(days=1), home_base=away(5000, bearing=0))
    game = make_game(alice=stale)
    outcome = resolve(game, away(10))
    assert isinstance(outcome.result, Hit)
    assert outcome.updates["alice"].tags_remaining_today == 4
    assert outcome.updates["alice"].last_tag_reset_date == NOON.date()


def test_home_base_blocks_and_still_consumes_tag():
    game = make_game()
    home = game.players["bob"].home_base
    outcome = resolve(game, home, target_at=away(20, origin=home))
    assert outcome.result == Blocked(BlockReason.HOME_BASE)
    assert outcome.updates["alice"].tags_remaining_today == 4
    assert "bob" not in outcome.updates


def test_zone_on_any_record_protects_target():
    game = make_game()
    game.players["carol"].safe_zones.append(safezones.hit_zone(TARGET_AT, NOON, "Dave", "Carol"))
    outcome = resolve(game, away(10))
    assert outcome.result == Blocked(BlockReason.SAFE_BASE)


def test_expired_zone_does_not_protect():
    game = make_game()
    yesterday = NOON - datetime.timedelta(days=1)
    game.players["bob"].safe_zones.append(safezones.missed_zone(TARGET_AT, yesterday, "carol"))
    outcome = resolve(game, away(10))
    assert isinstance(outcome.result, Hit)
    assert all(not zone.is_expired(NOON) for zone in outcome.updates["bob"].safe_zones)


def test_wide_radius_reaches_further():
    alice = player(home_base=away(5000, bearing=0))
    ledger.credit(alice, ArsenalItem.WIDE_RADIUS_TAG, 1)
    game = make_game(alice=alice)

    assert isinstance(resolve(game, away(250)).result, Miss)
    outcome = resolve(game, away(250), kind=TagKind.WIDE_RADIUS)
    assert isinstance(outcome.result, Hit)
    assert outcome.updates["alice"].purchased_inventory.wide_radius_tags == 0


def test_final_strike_completes_game():
    game = active_game({
        "alice": player(home_base=away(5000, bearing=0)),
        "bob": player(strikes=1, home_base=away(6000, bearing=0)),
    })
    outcome = resolve(game, away(10))
    assert outcome.eliminated
    assert outcome.completed_game
    assert outcome.ended_at == NOON


@pytest.mark.parametrize("source,target", [("alice", "alice"), ("alice", "nobody"), ("", "bob")])
def test_malformed_attempts_are_rejected(source, target):
    game = make_game()
    with pytest.raises(ValidationError):
        TagResolver().resolve(attempt(away(10), source=source, target=target), game, TARGET_AT, NOON)


def test_eliminated_attacker_cannot_tag():
    game = make_game(alice=player(strikes=0, home_base=away(5000, bearing=0)))
    with pytest.raises(ValidationError):
        resolve(game, away(10))


def test_tags_need_an_active_game():
    game = make_game()
    game.status = GameStatus.WAITING
    with pytest.raises(ValidationError):
        resolve(game, away(10))
