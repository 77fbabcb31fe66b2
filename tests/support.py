"""
Shared setup for the ShotSpot test scripts.

Every scenario runs against its own throwaway SQLite file so tests never
share state, and every coroutine-based test is driven with asyncio.run().
"""

import asyncio
import os
import sys
import tempfile
from types import SimpleNamespace

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shotspot.database.database import Database
from shotspot.operations.player_operations import PlayerOperations
from shotspot.operations.registration_tracker import RegistrationTracker


def run(coro):
    """Run a coroutine to completion on a fresh event loop"""
    return asyncio.run(coro)


def temp_database_url() -> str:
    directory = tempfile.mkdtemp(prefix="shotspot_test_")
    return f"sqlite:///{os.path.join(directory, 'test.db')}"


async def make_database(url: str = None) -> Database:
    db = Database(url or temp_database_url())
    await db.initialize()
    return db


async def seed_league(db: Database, tracker: RegistrationTracker = None) -> SimpleNamespace:
    """
    Two clubs, one team, an official and a non-official competition, and
    official / friendly / friendly-competition games. One registered player
    (mapped as TW001) and two unregistered players in the home club.
    """
    tracker = tracker or RegistrationTracker(db)
    player_ops = PlayerOperations(db, tracker)

    home = await db.create_club("Home Club")
    away = await db.create_club("Away Club")
    team = await db.create_team(home.id, "U17", "U17")

    official = await db.create_competition("KBKB League", is_official=True)
    friendly_cup = await db.create_competition("Friendly Tournament", is_official=False,
                                               competition_type="tournament")

    official_game = await db.create_game(home.id, away.id, official.id)
    friendly_game = await db.create_game(home.id, away.id)
    friendly_cup_game = await db.create_game(home.id, away.id, friendly_cup.id)

    registered, _ = await player_ops.create_player(home.id, "Registered", "Player", 10, team.id, "male")
    mapping = await tracker.create_mapping(registered.id, "TW001", "Registered Player")
    unregistered, _ = await player_ops.create_player(home.id, "Unregistered", "Player", 11, team.id, "female")
    another, _ = await player_ops.create_player(home.id, "Another", "Unregistered", 12, team.id)

    return SimpleNamespace(
        home=home, away=away, team=team,
        official=official, friendly_cup=friendly_cup,
        official_game=official_game, friendly_game=friendly_game,
        friendly_cup_game=friendly_cup_game,
        registered=registered, registered_mapping=mapping,
        unregistered=unregistered, another_unregistered=another,
        tracker=tracker, player_ops=player_ops,
    )
