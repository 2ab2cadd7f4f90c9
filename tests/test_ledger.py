"""Tests for player ledger mutations."""

import datetime

import pytest

from phonetag import ledger
from phonetag.errors import AlreadyEliminated, InvariantViolation, OutOfTags, ValidationError
from phonetag.models import ArsenalItem, TagKind

from conftest import NOON, player

TODAY = NOON.date()
TOMORROW = TODAY + datetime.timedelta(days=1)


def test_reset_sets_allowance_instead_of_adding():
    state = player(tags=2)
    state.last_tag_reset_date = TODAY - datetime.timedelta(days=3)
    assert ledger.reset_daily_allowance_if_needed(state, TODAY, daily_limit=5)
    assert state.tags_remaining_today == 5
    assert state.last_tag_reset_date == TODAY


def test_reset_is_idempotent_within_a_day():
    state = player(tags=1)
    assert not ledger.reset_daily_allowance_if_needed(state, TODAY)
    assert state.tags_remaining_today == 1

    assert ledger.reset_daily_allowance_if_needed(state, TOMORROW)
    state.tags_remaining_today -= 1
    assert not ledger.reset_daily_allowance_if_needed(state, TOMORROW)
    assert state.tags_remaining_today == 4


def test_basic_tags_use_daily_allowance_before_extras():
    state = player(tags=1)
    ledger.credit(state, ArsenalItem.BASIC_TAG, 2)
    assert ledger.count(ArsenalItem.BASIC_TAG, state) == 3

    ledger.consume_tag(state, TagKind.BASIC)
    assert state.tags_remaining_today == 0
    assert state.purchased_inventory.extra_basic_tags == 2

    ledger.consume_tag(state, TagKind.BASIC)
    assert state.purchased_inventory.extra_basic_tags == 1


def test_consume_tag_raises_when_empty():
    state = player(tags=0)
    with pytest.raises(OutOfTags):
        ledger.consume_tag(state, TagKind.BASIC)
    with pytest.raises(OutOfTags):
        ledger.consume_tag(state, TagKind.WIDE_RADIUS)
    assert state.tags_remaining_today == 0


def test_wide_radius_tags_only_come_from_inventory():
    state = player(tags=5)
    ledger.credit(state, ArsenalItem.WIDE_RADIUS_TAG, 1)
    ledger.consume_tag(state, TagKind.WIDE_RADIUS)
    assert state.tags_remaining_today == 5
    assert state.purchased_inventory.wide_radius_tags == 0


def test_credit_rejects_non_positive_quantity():
    with pytest.raises(ValidationError):
        ledger.credit(player(), ArsenalItem.RADAR, 0)


def test_current_allowance_lists_every_item():
    state = player(tags=4)
    ledger.credit(state, ArsenalItem.TRIPWIRE, 3)
    assert ledger.current_allowance(state) == {
        ArsenalItem.BASIC_TAG: 4,
        ArsenalItem.WIDE_RADIUS_TAG: 0,
        ArsenalItem.RADAR: 0,
        ArsenalItem.TRIPWIRE: 3,
    }


def test_apply_strike_eliminates_at_zero():
    state = player(strikes=1)
    ledger.apply_strike(state, "bob")
    assert state.strikes == 0
    assert not state.is_active
    state.check_invariants()


def test_apply_strike_on_eliminated_player_raises():
    state = player(strikes=0)
    with pytest.raises(AlreadyEliminated):
        ledger.apply_strike(state, "bob")
    assert state.strikes == 0


def test_apply_strike_rejects_inconsistent_record():
    state = player(strikes=2)
    state.is_active = False
    with pytest.raises(InvariantViolation):
        ledger.apply_strike(state, "bob")


def test_eliminated_player_has_nothing_available():
    state = player(strikes=0, tags=5)
    assert not ledger.is_available(ArsenalItem.BASIC_TAG, state)
