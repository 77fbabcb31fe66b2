#!/usr/bin/env python3
"""
Registration tracker tests

Covers the flag projection Player.registered <-> "at least one mapping exists":
- pure state transitions (mark_mapping_created / mark_mapping_removed)
- create / delete round trip, second-mapping idempotence, flip-flop
- both-or-neither behaviour when the mapping write fails
- serialized concurrent mutations for the same player
- reconcile() backfill

Usage:
    python tests/test_registration_tracker.py
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from support import run, make_database, seed_league

from shotspot.database.models import Player, RegistrationMapping, SyncStatus
from shotspot.operations.player_operations import player_to_dict
from shotspot.operations.registration_tracker import (
    RegistrationTracker, mark_mapping_created, mark_mapping_removed
)
from shotspot.utils.exceptions import NotFoundError


# ---------------------------------------------------------------------------
# Pure transitions
# ---------------------------------------------------------------------------

def test_mark_created_registers_unregistered_player():
    player = Player(first_name="Ann", last_name="Peeters", registered=False, verified_at=None)
    now = datetime(2025, 12, 19, 10, 0, tzinfo=timezone.utc)

    assert mark_mapping_created(player, now) is True
    assert player.registered is True
    assert player.verified_at == now


def test_mark_created_keeps_timestamp_without_refresh():
    first = datetime(2025, 1, 1, tzinfo=timezone.utc)
    player = Player(first_name="Ann", last_name="Peeters", registered=True, verified_at=first)

    assert mark_mapping_created(player, first + timedelta(days=3)) is False
    assert player.registered is True
    assert player.verified_at == first


def test_mark_created_refreshes_timestamp_when_asked():
    first = datetime(2025, 1, 1, tzinfo=timezone.utc)
    later = first + timedelta(days=3)
    player = Player(first_name="Ann", last_name="Peeters", registered=True, verified_at=first)

    assert mark_mapping_created(player, later, refresh=True) is True
    assert player.verified_at == later


def test_mark_removed_only_clears_when_nothing_remains():
    stamp = datetime(2025, 1, 1, tzinfo=timezone.utc)
    player = Player(first_name="Ann", last_name="Peeters", registered=True, verified_at=stamp)

    assert mark_mapping_removed(player, remaining=1) is False
    assert player.registered is True
    assert player.verified_at == stamp

    assert mark_mapping_removed(player, remaining=0) is True
    assert player.registered is False
    assert player.verified_at is None

    # Already unregistered: nothing to do
    assert mark_mapping_removed(player, remaining=0) is False


# ---------------------------------------------------------------------------
# Database-backed behaviour
# ---------------------------------------------------------------------------

def test_create_then_delete_mapping_round_trip():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            tracker = league.tracker
            player_id = league.unregistered.id

            before = await db.get_player(player_id)
            assert before.registered is False
            assert before.verified_at is None

            mapping = await tracker.create_mapping(player_id, "TW999", "Unregistered Player")
            after_create = await db.get_player(player_id)
            assert after_create.registered is True
            assert after_create.verified_at is not None
            assert await tracker.is_registered(player_id) is True

            await tracker.delete_mapping(mapping.id)
            after_delete = await db.get_player(player_id)
            assert after_delete.registered is False
            assert after_delete.verified_at is None
            assert await db.get_mappings_for_player(player_id) == []
        finally:
            await db.close()

    run(scenario())


def test_second_mapping_is_idempotent_and_keeps_verified_at():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            player_id = league.registered.id
            original = (await db.get_player(player_id)).verified_at
            assert original is not None

            await league.tracker.create_mapping(player_id, "TW001-B")
            player = await db.get_player(player_id)
            assert player.registered is True
            assert player.verified_at == original
            assert len(await db.get_mappings_for_player(player_id)) == 2
        finally:
            await db.close()

    run(scenario())


def test_refresh_policy_overwrites_verified_at():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            player_id = league.registered.id
            stale = datetime(2020, 1, 1)
            async with db.transaction() as session:
                await session.execute(update(Player).where(Player.id == player_id).values(verified_at=stale))

            refreshing = RegistrationTracker(db, refresh_verified_at=True)
            await refreshing.create_mapping(player_id, "TW001-C")
            player = await db.get_player(player_id)
            assert player.registered is True
            assert player.verified_at > stale
        finally:
            await db.close()

    run(scenario())


def test_deleting_one_of_two_mappings_keeps_player_registered():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            player_id = league.registered.id
            second = await league.tracker.create_mapping(player_id, "TW001-B")

            await league.tracker.delete_mapping(second.id)
            player = await db.get_player(player_id)
            assert player.registered is True
            assert player.verified_at is not None

            await league.tracker.delete_mapping(league.registered_mapping.id)
            player = await db.get_player(player_id)
            assert player.registered is False
            assert player.verified_at is None
        finally:
            await db.close()

    run(scenario())


def test_flip_flop_uses_current_state():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            player_id = league.unregistered.id
            tracker = league.tracker

            first = await tracker.create_mapping(player_id, "TW500")
            await tracker.delete_mapping(first.id)
            assert await tracker.is_registered(player_id) is False

            await tracker.create_mapping(player_id, "TW501")
            player = await db.get_player(player_id)
            assert player.registered is True
            assert player.verified_at is not None
        finally:
            await db.close()

    run(scenario())


def test_unknown_player_and_mapping_raise_not_found():
    async def scenario():
        db = await make_database()
        try:
            tracker = RegistrationTracker(db)
            try:
                await tracker.create_mapping(4242, "TW404")
                assert False, "Expected NotFoundError for unknown player"
            except NotFoundError as e:
                assert e.entity == "Player"

            try:
                await tracker.delete_mapping(4242)
                assert False, "Expected NotFoundError for unknown mapping"
            except NotFoundError as e:
                assert e.entity == "Registration mapping"

            try:
                await tracker.is_registered(4242)
                assert False, "Expected NotFoundError for unknown player"
            except NotFoundError:
                pass
        finally:
            await db.close()

    run(scenario())


def test_failed_mapping_write_leaves_flag_untouched():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            # TW001 already belongs to the registered player: unique violation
            try:
                await league.tracker.create_mapping(league.unregistered.id, "TW001")
                assert False, "Expected IntegrityError for duplicate external id"
            except IntegrityError:
                pass

            player = await db.get_player(league.unregistered.id)
            assert player.registered is False
            assert player.verified_at is None
            assert await db.get_mappings_for_player(league.unregistered.id) == []
        finally:
            await db.close()

    run(scenario())


def test_caller_transaction_rollback_undoes_both_writes():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            player_id = league.unregistered.id
            try:
                async with db.transaction() as session:
                    await league.tracker.create_mapping(player_id, "TW777", session=session)
                    raise RuntimeError("abort after mapping write")
            except RuntimeError:
                pass

            player = await db.get_player(player_id)
            assert player.registered is False
            assert await db.get_mappings_for_player(player_id) == []
        finally:
            await db.close()

    run(scenario())


def test_concurrent_mutations_for_same_player_are_serialized():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            tracker = league.tracker
            player_id = league.unregistered.id

            mappings = await asyncio.gather(*[
                tracker.create_mapping(player_id, f"TW-C{i}") for i in range(5)
            ])
            assert (await db.get_player(player_id)).registered is True

            await asyncio.gather(*[tracker.delete_mapping(m.id) for m in mappings])
            player = await db.get_player(player_id)
            assert player.registered is False
            assert player.verified_at is None
        finally:
            await db.close()

    run(scenario())


def test_player_locks_are_released_after_use():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            tracker = league.tracker

            await asyncio.gather(
                *[tracker.create_mapping(league.unregistered.id, f"TW-L{i}") for i in range(3)],
                tracker.create_mapping(league.another_unregistered.id, "TW-L9")
            )
            assert tracker._player_locks == {}
            assert not tracker._lock_users

            try:
                await tracker.create_mapping(4242, "TW-MISSING")
                assert False, "Expected NotFoundError"
            except NotFoundError:
                pass
            assert tracker._player_locks == {}
        finally:
            await db.close()

    run(scenario())


def test_timestamps_are_stored_as_naive_utc():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            mapping = await league.tracker.create_mapping(league.unregistered.id, "TW-TZ")
            assert mapping.last_synced_at.tzinfo is None

            reloaded = await db.get_player(league.unregistered.id)
            assert reloaded.verified_at.tzinfo is None
            assert reloaded.verified_at == mapping.last_synced_at

            player = await league.tracker.delete_mapping(mapping.id)
            assert player.verified_at is None

            refreshing = RegistrationTracker(db, refresh_verified_at=True)
            second = await refreshing.create_mapping(league.registered.id, "TW-TZ2")
            relinked = await db.get_player(league.registered.id)
            assert relinked.verified_at == second.last_synced_at
            assert player_to_dict(relinked)['verifiedAt'] == second.last_synced_at.isoformat()
        finally:
            await db.close()

    run(scenario())


def test_delete_mappings_for_player_clears_flag():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            player_id = league.registered.id
            await league.tracker.create_mapping(player_id, "TW001-B")

            removed = await league.tracker.delete_mappings_for_player(player_id)
            assert removed == 2
            player = await db.get_player(player_id)
            assert player.registered is False
            assert player.verified_at is None
        finally:
            await db.close()

    run(scenario())


def test_reconcile_repairs_drifted_flags():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            synced_at = datetime(2025, 6, 1, 12, 0)

            # Simulate rows written before the tracker existed
            async with db.transaction() as session:
                session.add(RegistrationMapping(
                    player_id=league.another_unregistered.id,
                    external_id="TW-LEGACY",
                    sync_status=SyncStatus.SUCCESS,
                    last_synced_at=synced_at
                ))
                await session.execute(
                    update(Player).where(Player.id == league.unregistered.id)
                    .values(registered=True, verified_at=datetime(2024, 1, 1))
                )

            changed = await league.tracker.reconcile()
            assert changed == 2

            legacy = await db.get_player(league.another_unregistered.id)
            assert legacy.registered is True
            assert legacy.verified_at == synced_at

            drifted = await db.get_player(league.unregistered.id)
            assert drifted.registered is False
            assert drifted.verified_at is None

            assert await league.tracker.reconcile() == 0
        finally:
            await db.close()

    run(scenario())


if __name__ == "__main__":
    tests = [(name, fn) for name, fn in sorted(globals().items()) if name.startswith("test_") and callable(fn)]
    failed = 0
    for name, fn in tests:
        try:
            fn()
            print(f"✅ PASS - {name}")
        except Exception as e:
            failed += 1
            print(f"❌ FAIL - {name}: {e}")
    print(f"\n{len(tests) - failed}/{len(tests)} tests passed")
    raise SystemExit(1 if failed else 0)
