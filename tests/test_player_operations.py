#!/usr/bin/env python3
"""
Player operations tests

New players start unregistered, registration fields cannot be edited
directly, and deleting a player takes its registration mappings with it.

Usage:
    python tests/test_player_operations.py
"""

from support import run, make_database, seed_league

from shotspot.operations.player_operations import player_to_dict
from shotspot.operations.roster_eligibility import RosterEntry
from shotspot.operations.roster_operations import RosterOperations
from shotspot.utils.exceptions import NotFoundError, PlayerInUseError, PlayerValidationError


def test_new_player_is_unregistered_with_advisory():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            player, advisory = await league.player_ops.create_player(
                league.home.id, "  New  ", "Player", 20, league.team.id, "female"
            )
            assert player.registered is False
            assert player.verified_at is None
            assert player.first_name == "New"
            assert "Twizzit" in advisory
            assert "KBKB" in advisory

            data = player_to_dict(player)
            assert data['registered'] is False
            assert data['verifiedAt'] is None
        finally:
            await db.close()

    run(scenario())


def test_create_player_validation():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            ops = league.player_ops
            bad_calls = [
                dict(club_id=league.home.id, first_name="X", last_name="Player"),
                dict(club_id=league.home.id, first_name="Valid", last_name="Player", jersey_number=100),
                dict(club_id=league.home.id, first_name="Valid", last_name="Player", gender="other"),
                # Jersey 10 is already taken in the seeded team
                dict(club_id=league.home.id, first_name="Valid", last_name="Player",
                     jersey_number=10, team_id=league.team.id),
                # Team belongs to the home club
                dict(club_id=league.away.id, first_name="Valid", last_name="Player", team_id=league.team.id),
            ]
            for kwargs in bad_calls:
                try:
                    await ops.create_player(**kwargs)
                    assert False, f"Expected PlayerValidationError for {kwargs}"
                except PlayerValidationError:
                    pass

            try:
                await ops.create_player(4242, "Valid", "Player")
                assert False, "Expected NotFoundError for unknown club"
            except NotFoundError as e:
                assert e.entity == "Club"
        finally:
            await db.close()

    run(scenario())


def test_registration_fields_cannot_be_edited():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            ops = league.player_ops
            for changes in ({'registered': True}, {'verified_at': None}):
                try:
                    await ops.update_player(league.unregistered.id, **changes)
                    assert False, f"Expected PlayerValidationError for {changes}"
                except PlayerValidationError as e:
                    assert "Twizzit" in e.user_message

            assert (await db.get_player(league.unregistered.id)).registered is False

            updated = await ops.update_player(league.unregistered.id, first_name="Renamed", jersey_number=30)
            assert updated.first_name == "Renamed"
            assert updated.jersey_number == 30
            assert updated.registered is False
        finally:
            await db.close()

    run(scenario())


def test_list_players_filters_on_registration():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            registered = await league.player_ops.list_players(club_id=league.home.id, registered=True)
            assert [p.id for p in registered] == [league.registered.id]

            unregistered = await league.player_ops.list_players(club_id=league.home.id, registered=False)
            assert {p.id for p in unregistered} == {league.unregistered.id, league.another_unregistered.id}

            assert await league.player_ops.list_players(club_id=league.away.id) == []
        finally:
            await db.close()

    run(scenario())


def test_delete_player_removes_mappings_and_is_blocked_by_rosters():
    async def scenario():
        db = await make_database()
        try:
            league = await seed_league(db)
            ops = league.player_ops

            await RosterOperations(db).submit_roster(
                league.friendly_game.id,
                [RosterEntry(club_id=league.home.id, player_id=league.unregistered.id)],
                "admin"
            )
            try:
                await ops.delete_player(league.unregistered.id)
                assert False, "Expected PlayerInUseError"
            except PlayerInUseError as e:
                assert e.roster_count == 1

            await ops.delete_player(league.registered.id)
            assert await db.get_player(league.registered.id) is None
            assert await db.get_mappings_for_player(league.registered.id) == []

            try:
                await ops.get_player(league.registered.id)
                assert False, "Expected NotFoundError"
            except NotFoundError:
                pass
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
