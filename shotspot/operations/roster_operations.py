"""
Roster Operations - storing game rosters behind the eligibility gate

Submission workflow:
1. Role and shape validation (editor role, non-empty batch, one captain per club)
2. RosterEligibilityGate.evaluate() - rejects the whole batch for ineligible players
3. Replace the stored roster for the game in a single transaction
4. Non-blocking warnings for players whose registration mapping is missing or unsynced

The acting role is always an explicit argument; nothing here reads request state.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select, delete as sql_delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from shotspot.config import Config
from shotspot.database.models import (
    Game, GameRoster, Player, Club, RegistrationMapping, SyncStatus, StartingPosition
)
from shotspot.operations.roster_eligibility import (
    RosterEligibilityGate, RosterEntry, EligibilityDecision
)
from shotspot.utils.exceptions import (
    NotFoundError, PlayerReferenceError, RosterValidationError,
    PermissionDeniedError, DuplicateRosterEntryError
)
from shotspot.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class RosterSubmission:
    game_id: int
    roster: List[GameRoster]
    decision: EligibilityDecision
    warnings: List[dict] = field(default_factory=list)


def roster_entry_to_dict(entry: GameRoster) -> dict:
    return {
        'id': entry.id,
        'game_id': entry.game_id,
        'club_id': entry.club_id,
        'player_id': entry.player_id,
        'is_captain': entry.is_captain,
        'is_starting': entry.is_starting,
        'starting_position': entry.starting_position.value if entry.starting_position else None,
    }


def require_roster_editor(actor_role: Optional[str], operation: str = "edit game rosters") -> None:
    if not actor_role or actor_role.lower() not in Config.get_roster_editor_roles():
        raise PermissionDeniedError(actor_role, operation)


def validate_roster_entries(entries: Sequence[RosterEntry]) -> None:
    """Shape checks that run before the eligibility gate"""
    if not entries:
        raise RosterValidationError("Players array is required and must not be empty")

    captains_by_club = set()
    for entry in entries:
        if entry.starting_position is not None and entry.starting_position not in {p.value for p in StartingPosition}:
            raise RosterValidationError("Starting position must be offense or defense")
        if entry.is_captain:
            if entry.club_id in captains_by_club:
                raise RosterValidationError("Only one captain allowed per club")
            captains_by_club.add(entry.club_id)


class RosterOperations:
    """Business logic for game roster storage."""

    def __init__(self, database, gate: Optional[RosterEligibilityGate] = None):
        self.db = database
        self.gate = gate or RosterEligibilityGate(database)
        self.logger = logger

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        if session:
            yield session
        else:
            async with self.db.transaction() as new_session:
                yield new_session

    async def submit_roster(
        self,
        game_id: int,
        entries: Sequence[RosterEntry],
        actor_role: str,
        session: Optional[AsyncSession] = None
    ) -> RosterSubmission:
        """
        Replace the roster of a game with the given entries.

        Raises:
            PermissionDeniedError: actor_role may not edit rosters
            RosterValidationError: empty batch, two captains for one club, bad position
            NotFoundError: unknown game
            PlayerReferenceError: unknown player id(s)
            RosterIneligibleError: official game with unregistered player(s)
            DuplicateRosterEntryError: a player listed twice
        """
        require_roster_editor(actor_role)
        entries = list(entries)
        validate_roster_entries(entries)

        async with self._get_session_context(session) as s:
            decision = await self.gate.evaluate(game_id, entries, session=s)
            decision.raise_for_rejection()

            player_ids = [e.player_id for e in entries]
            duplicates = sorted({pid for pid in player_ids if player_ids.count(pid) > 1})
            if duplicates:
                raise DuplicateRosterEntryError(game_id, duplicates)

            result = await s.execute(select(Player.id).where(Player.id.in_(player_ids)))
            known = set(result.scalars().all())
            missing = [pid for pid in player_ids if pid not in known]
            if missing:
                raise PlayerReferenceError(missing)

            club_ids = {e.club_id for e in entries}
            result = await s.execute(select(Club.id).where(Club.id.in_(club_ids)))
            missing_clubs = club_ids - set(result.scalars().all())
            if missing_clubs:
                raise NotFoundError("Club", sorted(missing_clubs)[0])

            mappings = await self._mappings_by_player(s, player_ids)

            await s.execute(sql_delete(GameRoster).where(GameRoster.game_id == game_id))

            warnings = []
            stored = []
            for entry in entries:
                warning = self._registration_warning(entry, mappings.get(entry.player_id))
                if warning:
                    warnings.append(warning)

                row = GameRoster(
                    game_id=game_id,
                    club_id=entry.club_id,
                    player_id=entry.player_id,
                    is_captain=entry.is_captain,
                    is_starting=entry.is_starting,
                    starting_position=StartingPosition(entry.starting_position) if entry.starting_position else None
                )
                s.add(row)
                stored.append(row)

            await s.flush()

        self.logger.info(
            f"Stored roster of {len(stored)} player(s) for game {game_id} "
            f"({'official' if decision.is_official else 'friendly'}, {len(warnings)} warning(s))"
        )
        return RosterSubmission(game_id=game_id, roster=stored, decision=decision, warnings=warnings)

    async def _mappings_by_player(self, session: AsyncSession, player_ids: List[int]) -> Dict[int, RegistrationMapping]:
        result = await session.execute(
            select(RegistrationMapping).where(RegistrationMapping.player_id.in_(player_ids))
        )
        mappings = {}
        for mapping in result.scalars().all():
            # Prefer a successfully synced mapping when a player has several
            current = mappings.get(mapping.player_id)
            if current is None or (current.sync_status != SyncStatus.SUCCESS and mapping.sync_status == SyncStatus.SUCCESS):
                mappings[mapping.player_id] = mapping
        return mappings

    @staticmethod
    def _registration_warning(entry: RosterEntry, mapping: Optional[RegistrationMapping]) -> Optional[dict]:
        system = Config.REGISTRATION_SYSTEM_NAME
        if mapping is None:
            return {
                'player_id': entry.player_id,
                'club_id': entry.club_id,
                'type': 'registration_missing',
                'message': f"Player has no {system} registration mapping; rostered anyway. Please sync to {system}."
            }
        if mapping.sync_status != SyncStatus.SUCCESS:
            return {
                'player_id': entry.player_id,
                'club_id': entry.club_id,
                'external_id': mapping.external_id,
                'type': 'registration_unsynced',
                'message': f"Player {system} mapping exists but status is {mapping.sync_status.value}; rostered anyway."
            }
        return None

    async def get_roster(self, game_id: int, club_id: Optional[int] = None) -> List[dict]:
        """Roster rows for a game with player names and registration status"""
        async with self.db.get_session() as session:
            game = await session.get(Game, game_id)
            if not game:
                raise NotFoundError("Game", game_id)

            query = (
                select(GameRoster, Player, Club.name)
                .join(Player, GameRoster.player_id == Player.id)
                .join(Club, GameRoster.club_id == Club.id)
                .where(GameRoster.game_id == game_id)
            )
            if club_id is not None:
                query = query.where(GameRoster.club_id == club_id)
            query = query.order_by(GameRoster.club_id, Player.last_name, Player.first_name)

            rows = (await session.execute(query)).all()
            mappings = await self._mappings_by_player(session, [player.id for _, player, _ in rows])

            roster = []
            for entry, player, club_name in rows:
                mapping = mappings.get(player.id)
                data = roster_entry_to_dict(entry)
                data.update({
                    'first_name': player.first_name,
                    'last_name': player.last_name,
                    'jersey_number': player.jersey_number,
                    'gender': player.gender,
                    'club_name': club_name,
                    'registered': player.registered,
                    'external_id': mapping.external_id if mapping else None,
                    'registration_sync_status': mapping.sync_status.value if mapping else None,
                })
                roster.append(data)
            return roster

    async def update_entry(
        self,
        game_id: int,
        roster_id: int,
        actor_role: str,
        is_captain: Optional[bool] = None,
        is_starting: Optional[bool] = None
    ) -> GameRoster:
        """Toggle captain / starting flags on one roster row; one captain per club"""
        require_roster_editor(actor_role)
        if is_captain is None and is_starting is None:
            raise RosterValidationError("No fields to update")

        async with self.db.transaction() as session:
            result = await session.execute(
                select(GameRoster).where(GameRoster.id == roster_id, GameRoster.game_id == game_id)
            )
            entry = result.scalar_one_or_none()
            if not entry:
                raise NotFoundError("Roster entry", roster_id)

            if is_captain:
                await session.execute(
                    update(GameRoster)
                    .where(
                        GameRoster.game_id == game_id,
                        GameRoster.club_id == entry.club_id,
                        GameRoster.id != roster_id
                    )
                    .values(is_captain=False)
                )
            if is_captain is not None:
                entry.is_captain = is_captain
            if is_starting is not None:
                entry.is_starting = is_starting
            await session.flush()
            return entry

    async def remove_entry(self, game_id: int, roster_id: int, actor_role: str) -> None:
        """Remove one player from a game roster"""
        require_roster_editor(actor_role, "remove roster entries")
        async with self.db.transaction() as session:
            result = await session.execute(
                sql_delete(GameRoster).where(GameRoster.id == roster_id, GameRoster.game_id == game_id)
            )
            if result.rowcount == 0:
                raise NotFoundError("Roster entry", roster_id)
        self.logger.info(f"Removed roster entry {roster_id} from game {game_id}")
