"""Player ledger: invariant-preserving mutations of a PlayerState.

All functions mutate the given state in place. Callers run them inside a
store transaction on a freshly read copy so a rejected commit leaves
nothing behind.
"""

import datetime
from typing import Dict

from .config import DAILY_TAG_LIMIT
from .errors import AlreadyEliminated, OutOfTags, ValidationError
from .models import ArsenalItem, PlayerState, TagKind

TAG_ITEMS = {
    TagKind.BASIC: ArsenalItem.BASIC_TAG,
    TagKind.WIDE_RADIUS: ArsenalItem.WIDE_RADIUS_TAG,
}


def reset_daily_allowance_if_needed(state: PlayerState, today: datetime.date,
                                    daily_limit: int = DAILY_TAG_LIMIT) -> bool:
    """Reset the daily allowance on the first call of a new calendar day.

    The allowance is set to `daily_limit`, never added to. Returns True if
    a reset happened.
    """
    if state.last_tag_reset_date >= today:
        return False
    state.tags_remaining_today = daily_limit
    state.last_tag_reset_date = today
    return True


def count(item: ArsenalItem, state: PlayerState) -> int:
    inventory = state.purchased_inventory
    if item == ArsenalItem.BASIC_TAG:
        return state.tags_remaining_today + inventory.extra_basic_tags
    if item == ArsenalItem.WIDE_RADIUS_TAG:
        return inventory.wide_radius_tags
    if item == ArsenalItem.RADAR:
        return inventory.radars
    return inventory.tripwires


def is_available(item: ArsenalItem, state: PlayerState) -> bool:
    return state.is_active and count(item, state) > 0


def current_allowance(state: PlayerState) -> Dict[ArsenalItem, int]:
    return {item: count(item, state) for item in ArsenalItem}


def consume_item(state: PlayerState, item: ArsenalItem) -> ArsenalItem:
    """Use up one of `item`, or raise OutOfTags if none are left.

    Basic tags come out of the daily allowance before purchased extras.
    """
    if count(item, state) <= 0:
        raise OutOfTags(item.value)
    inventory = state.purchased_inventory
    if item == ArsenalItem.BASIC_TAG:
        if state.tags_remaining_today > 0:
            state.tags_remaining_today -= 1
        else:
            inventory.extra_basic_tags -= 1
    elif item == ArsenalItem.WIDE_RADIUS_TAG:
        inventory.wide_radius_tags -= 1
    elif item == ArsenalItem.RADAR:
        inventory.radars -= 1
    else:
        inventory.tripwires -= 1
    return item


def consume_tag(state: PlayerState, kind: TagKind) -> ArsenalItem:
    return consume_item(state, TAG_ITEMS[kind])


def credit(state: PlayerState, item: ArsenalItem, quantity: int) -> PlayerState:
    if quantity <= 0:
        raise ValidationError(f"Quantity must be positive, got {quantity}")
    inventory = state.purchased_inventory
    if item == ArsenalItem.BASIC_TAG:
        inventory.extra_basic_tags += quantity
    elif item == ArsenalItem.WIDE_RADIUS_TAG:
        inventory.wide_radius_tags += quantity
    elif item == ArsenalItem.RADAR:
        inventory.radars += quantity
    else:
        inventory.tripwires += quantity
    return state


def apply_strike(state: PlayerState, player_id: str = None) -> PlayerState:
    """Take one strike. The player is eliminated when strikes reach zero."""
    state.check_invariants()
    if not state.is_active:
        raise AlreadyEliminated(player_id)
    state.strikes = max(0, state.strikes - 1)
    state.is_active = state.strikes > 0
    return state
