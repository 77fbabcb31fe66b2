"""
Roster Eligibility - official-match registration rule for game rosters

Federation (KBKB) rule: only players registered in the external registration
system (Twizzit) may appear on the roster of an official match. A game is
official when it belongs to a competition flagged is_official; games without a
competition, or in a non-official competition, are friendlies and skip the check.

The gate is all-or-nothing: one unregistered player blocks the whole batch,
and a rejection always lists every offending player, never just the first.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from shotspot.config import Config
from shotspot.database.models import Game, Player
from shotspot.utils.exceptions import (
    NotFoundError, PlayerReferenceError, RosterIneligibleError, RosterValidationError
)
from shotspot.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class RosterEntry:
    """A proposed roster line for one player (not persisted by the gate)."""
    club_id: int
    player_id: int
    is_captain: bool = False
    is_starting: bool = True
    starting_position: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'RosterEntry':
        return cls(
            club_id=data['club_id'],
            player_id=data['player_id'],
            is_captain=bool(data.get('is_captain', False)),
            is_starting=True if data.get('is_starting') is None else bool(data['is_starting']),
            starting_position=data.get('starting_position')
        )


@dataclass
class IneligiblePlayer:
    player_id: int
    reason: str
    player_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'playerId': self.player_id,
            'playerName': self.player_name or 'Unknown',
            'reason': self.reason
        }


@dataclass
class EligibilityDecision:
    """Outcome of evaluating a roster batch against the official-match rule."""
    game_id: int
    is_official: bool
    ineligible_players: List[IneligiblePlayer] = field(default_factory=list)
    summary: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return not self.ineligible_players

    @property
    def check_skipped(self) -> bool:
        return not self.is_official

    def raise_for_rejection(self) -> None:
        if not self.allowed:
            raise RosterIneligibleError(self)

    def to_response(self) -> dict:
        """Body of the 403 response for a rejected roster"""
        return {
            'error': f"{len(self.ineligible_players)} player(s) not eligible for this official match",
            'ineligiblePlayers': [p.to_dict() for p in self.ineligible_players],
            'details': (
                f"Official {Config.FEDERATION_NAME} matches require all players to be registered in "
                f"{Config.REGISTRATION_SYSTEM_NAME}. Please sync players from "
                f"{Config.REGISTRATION_SYSTEM_NAME} or contact your club administrator."
            )
        }


def unregistered_reason(player_name: str) -> str:
    system = Config.REGISTRATION_SYSTEM_NAME
    return (
        f"{player_name} is not registered in {system} ({Config.FEDERATION_NAME}). "
        f"Official match participation requires {system} registration."
    )


def decide(
    game_id: int,
    is_official: bool,
    entries: Sequence[RosterEntry],
    players_by_id: Dict[int, Player]
) -> EligibilityDecision:
    """
    Pure decision over already-fetched data.

    players_by_id only needs to cover the entries when the game is official.
    Raises PlayerReferenceError naming every entry whose player is missing.
    """
    if not is_official:
        return EligibilityDecision(game_id=game_id, is_official=False)

    missing = [e.player_id for e in entries if e.player_id not in players_by_id]
    if missing:
        raise PlayerReferenceError(list(dict.fromkeys(missing)))

    ineligible = []
    for entry in entries:
        player = players_by_id[entry.player_id]
        if not player.registered:
            ineligible.append(IneligiblePlayer(
                player_id=entry.player_id,
                player_name=player.full_name,
                reason=unregistered_reason(player.full_name)
            ))

    summary = None
    if ineligible:
        summary = (
            "One or more players are not eligible for this official match. "
            f"All players must be registered in {Config.REGISTRATION_SYSTEM_NAME} ({Config.FEDERATION_NAME})."
        )
    return EligibilityDecision(
        game_id=game_id,
        is_official=True,
        ineligible_players=ineligible,
        summary=summary
    )


class RosterEligibilityGate:
    """Loads the game and players for a roster batch and applies decide()."""

    def __init__(self, database):
        self.db = database
        self.logger = logger

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        if session:
            yield session
        else:
            async with self.db.get_session() as new_session:
                yield new_session

    @staticmethod
    def is_official_game(game: Game) -> bool:
        return game.competition_id is not None and game.competition is not None and bool(game.competition.is_official)

    async def evaluate(
        self,
        game_id: int,
        entries: Iterable[RosterEntry],
        session: Optional[AsyncSession] = None
    ) -> EligibilityDecision:
        """
        Decide whether a roster batch may be stored for a game.

        Raises:
            RosterValidationError: entries is empty
            NotFoundError: the game does not exist
            PlayerReferenceError: an official-match entry names an unknown player
        """
        entries = list(entries)
        if not entries:
            raise RosterValidationError("Players array is required and must not be empty")

        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Game)
                .options(selectinload(Game.competition))
                .where(Game.id == game_id)
            )
            game = result.scalar_one_or_none()
            if not game:
                raise NotFoundError("Game", game_id)

            if not self.is_official_game(game):
                self.logger.debug(
                    f"Game {game_id} is a friendly; {Config.REGISTRATION_SYSTEM_NAME} registration not required"
                )
                return decide(game_id, False, entries, {})

            player_ids = {e.player_id for e in entries}
            result = await s.execute(select(Player).where(Player.id.in_(player_ids)))
            players_by_id = {p.id: p for p in result.scalars().all()}

        decision = decide(game_id, True, entries, players_by_id)
        if decision.allowed:
            self.logger.debug(f"Roster of {len(entries)} player(s) eligible for official game {game_id}")
        else:
            self.logger.warning(
                f"Roster for official game {game_id} rejected: "
                f"{[p.player_id for p in decision.ineligible_players]} not registered"
            )
        return decision
