"""Tests for the store: compare-and-swap, atomic commits and timeouts."""

import asyncio
import datetime

import pytest

from phonetag import ledger
from phonetag.errors import AlreadyEliminated, ConcurrencyConflict, InvariantViolation, TransientStoreFailure
from phonetag.models import GameStatus, Miss, TagAttempt, TagKind
from phonetag.storage import GameStorage

from conftest import CITY_HALL, NOON, active_game, away, player, seed_game


@pytest.mark.asyncio
async def test_game_round_trips_through_store(storage):
    game = await seed_game(storage)
    assert game.status == GameStatus.ACTIVE
    assert set(game.players) == {"alice", "bob", "carol"}
    assert game.player_versions == {"alice": 1, "bob": 1, "carol": 1}
    assert (await storage.find_game_by_code("codeg1")).id == game.id


@pytest.mark.asyncio
async def test_stale_write_is_rejected(storage):
    await seed_game(storage)
    first, version = await storage.read_player("g1", "bob")
    second, same_version = await storage.read_player("g1", "bob")

    await storage.compare_and_swap_player("g1", "bob", version, ledger.apply_strike(first))
    with pytest.raises(ConcurrencyConflict):
        await storage.compare_and_swap_player("g1", "bob", same_version, ledger.apply_strike(second))

    state, new_version = await storage.read_player("g1", "bob")
    assert state.strikes == 2
    assert new_version == version + 1


@pytest.mark.asyncio
async def test_concurrent_strikes_on_last_life_apply_once(storage):
    await seed_game(storage)
    await storage.transact_player("g1", "bob", lambda s: ledger.apply_strike(ledger.apply_strike(s)))

    def strike(state):
        if not state.is_active:
            raise AlreadyEliminated("bob")
        return ledger.apply_strike(state, "bob")

    results = await asyncio.gather(
        storage.transact_player("g1", "bob", strike),
        storage.transact_player("g1", "bob", strike),
        return_exceptions=True,
    )
    applied = [r for r in results if not isinstance(r, Exception)]
    lost = [r for r in results if isinstance(r, Exception)]
    assert len(applied) == 1
    assert all(isinstance(e, (ConcurrencyConflict, AlreadyEliminated, TransientStoreFailure)) for e in lost)

    state, _ = await storage.read_player("g1", "bob")
    assert state.strikes == 0
    assert not state.is_active


@pytest.mark.asyncio
async def test_invalid_state_is_never_written(storage):
    await seed_game(storage)

    def corrupt(state):
        state.tags_remaining_today = -1
        return state

    with pytest.raises(InvariantViolation):
        await storage.transact_player("g1", "alice", corrupt)
    state, version = await storage.read_player("g1", "alice")
    assert state.tags_remaining_today == 5
    assert version == 1


@pytest.mark.asyncio
async def test_commit_players_is_all_or_nothing(storage):
    game = await seed_game(storage)
    await storage.transact_player("g1", "bob", lambda s: s)  # bob moves on

    alice = game.players["alice"]
    ledger.consume_tag(alice, TagKind.BASIC)
    tag = TagAttempt("t1", "g1", "alice", "bob", CITY_HALL, NOON).with_result(Miss(100.0))
    with pytest.raises(ConcurrencyConflict):
        await storage.commit_players("g1", {"alice": alice, "bob": game.players["bob"]},
                                     game.player_versions, tag=tag)

    state, version = await storage.read_player("g1", "alice")
    assert state.tags_remaining_today == 5
    assert version == 1
    assert await storage.get_tag("t1") is None


@pytest.mark.asyncio
async def test_commit_players_records_tag_and_completion(storage):
    game = await seed_game(storage, player_ids=("alice", "bob"))
    bob = game.players["bob"]
    bob.strikes, bob.is_active = 0, False
    tag = TagAttempt("t1", "g1", "alice", "bob", CITY_HALL, NOON).with_result(Miss(5.0))

    assert await storage.commit_players("g1", {"bob": bob}, game.player_versions, tag=tag, completed_at=NOON)

    stored = await storage.get_game("g1")
    assert stored.status == GameStatus.COMPLETED
    assert stored.ended_at == NOON
    assert (await storage.list_tags("g1"))[0].result == Miss(5.0)


@pytest.mark.asyncio
async def test_completed_game_stays_completed(storage):
    await seed_game(storage)
    assert await storage.complete_game("g1", NOON)
    assert not await storage.complete_game("g1", NOON + datetime.timedelta(hours=1))
    assert not await storage.set_nudge("g1", NOON, NOON)
    assert (await storage.get_game("g1")).ended_at == NOON


@pytest.mark.asyncio
async def test_nudge_claim_succeeds_once(storage):
    await seed_game(storage)
    deadline = NOON + datetime.timedelta(hours=6)
    await storage.set_nudge("g1", NOON, deadline)

    assert [g.id for g in await storage.list_due_nudges(deadline)] == ["g1"]
    assert await storage.list_due_nudges(NOON) == []

    claims = await asyncio.gather(storage.claim_nudge("g1", deadline), storage.claim_nudge("g1", deadline))
    assert sorted(claims) == [False, True]
    game = await storage.get_game("g1")
    assert game.nudge_issued_at is None and game.nudge_deadline_at is None


@pytest.mark.asyncio
async def test_add_player_refuses_a_full_roster(storage):
    game = active_game({"alice": player(), "bob": player()})
    game.status, game.started_at = GameStatus.WAITING, None
    await storage.create_game(game)

    assert await storage.add_player("g1", "carol", player(), max_players=3)
    assert not await storage.add_player("g1", "dave", player(), max_players=3)
    assert set((await storage.get_game("g1")).players) == {"alice", "bob", "carol"}


@pytest.mark.asyncio
async def test_presence_and_identity(storage):
    await storage.record_location("bob", away(30), NOON)
    assert await storage.get_location("bob") == away(30)
    assert await storage.last_seen_at("bob") == NOON
    assert await storage.last_seen_at("nobody") is None

    await storage.upsert_user("bob", "Bobby", "dm-bob")
    await storage.upsert_user("bob", "Robert")
    assert await storage.display_name("bob") == "Robert"
    assert await storage.display_name("nobody") == "Player"
    assert await storage.notification_tokens(["bob", "nobody"]) == {"bob": "dm-bob"}


@pytest.mark.asyncio
async def test_slow_store_surfaces_as_transient_failure(tmp_path, monkeypatch):
    store = GameStorage(db_path=str(tmp_path / "slow.db"), timeout=0.05)
    await store.initialize()

    async def stall(db, game_id):
        await asyncio.sleep(1)

    monkeypatch.setattr(store, "_load_game", stall)
    with pytest.raises(TransientStoreFailure):
        await store.get_game("g1")


@pytest.mark.asyncio
async def test_unreadable_database_surfaces_as_transient_failure(tmp_path):
    store = GameStorage(db_path=str(tmp_path / "missing" / "db.sqlite"))
    with pytest.raises(TransientStoreFailure):
        await store.get_game("g1")
