"""
Player Operations - player lifecycle for club management

New players always start unregistered: the registration flag can only be set
by RegistrationTracker when a mapping to the external registration system is
created. Player edits never touch registered / verified_at.
"""

from contextlib import asynccontextmanager
from typing import Optional, List, Tuple

from sqlalchemy import select, func, delete as sql_delete
from sqlalchemy.ext.asyncio import AsyncSession

from shotspot.config import Config
from shotspot.database.models import Player, Club, Team, GameRoster
from shotspot.operations.registration_tracker import RegistrationTracker
from shotspot.utils.exceptions import NotFoundError, PlayerInUseError, PlayerValidationError
from shotspot.utils.logger import setup_logger

logger = setup_logger(__name__)

EDITABLE_FIELDS = {'team_id', 'first_name', 'last_name', 'jersey_number', 'gender', 'is_active'}
PROTECTED_FIELDS = {'registered', 'verified_at'}
GENDERS = {'male', 'female'}


def player_to_dict(player: Player) -> dict:
    """API shape of a player record"""
    return {
        'id': player.id,
        'club_id': player.club_id,
        'team_id': player.team_id,
        'first_name': player.first_name,
        'last_name': player.last_name,
        'jersey_number': player.jersey_number,
        'gender': player.gender,
        'is_active': player.is_active,
        'registered': bool(player.registered),
        'verifiedAt': player.verified_at.isoformat() if player.verified_at else None,
    }


def registration_advisory() -> str:
    system = Config.REGISTRATION_SYSTEM_NAME
    return (
        f"Player created but not yet registered in {system} ({Config.FEDERATION_NAME}). "
        f"The player must complete {system} registration before appearing in official match rosters."
    )


class PlayerOperations:
    """Business logic operations for Player management."""

    def __init__(self, database, tracker: Optional[RegistrationTracker] = None):
        self.db = database
        self.tracker = tracker or RegistrationTracker(database)
        self.logger = logger

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        if session:
            yield session
        else:
            async with self.db.transaction() as new_session:
                yield new_session

    def _validate_fields(self, data: dict) -> None:
        for key in ('first_name', 'last_name'):
            if key in data:
                value = (data[key] or '').strip()
                if not 2 <= len(value) <= 50:
                    label = key.replace('_', ' ').capitalize()
                    raise PlayerValidationError(f"{label} must be between 2 and 50 characters")
                data[key] = value

        jersey = data.get('jersey_number')
        if jersey is not None and not Config.MIN_JERSEY_NUMBER <= jersey <= Config.MAX_JERSEY_NUMBER:
            raise PlayerValidationError(
                f"Jersey number must be between {Config.MIN_JERSEY_NUMBER} and {Config.MAX_JERSEY_NUMBER}"
            )

        gender = data.get('gender')
        if gender is not None and gender not in GENDERS:
            raise PlayerValidationError("Gender must be male or female")

    async def _check_team(self, session: AsyncSession, club_id: int, team_id: Optional[int]) -> None:
        if team_id is None:
            return
        team = await session.get(Team, team_id)
        if not team:
            raise PlayerValidationError("Team does not exist")
        if team.club_id != club_id:
            raise PlayerValidationError("Team does not belong to the player's club")

    async def _check_jersey_free(self, session: AsyncSession, team_id: Optional[int],
                                 jersey_number: Optional[int], exclude_id: Optional[int] = None) -> None:
        if team_id is None or jersey_number is None:
            return
        query = select(Player.id).where(Player.team_id == team_id, Player.jersey_number == jersey_number)
        if exclude_id is not None:
            query = query.where(Player.id != exclude_id)
        if (await session.execute(query)).first():
            raise PlayerValidationError("Jersey number already in use for this team")

    async def create_player(
        self,
        club_id: int,
        first_name: str,
        last_name: str,
        jersey_number: Optional[int] = None,
        team_id: Optional[int] = None,
        gender: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> Tuple[Player, str]:
        """
        Create a new, unregistered player.

        Returns the player and an advisory message reminding the caller that
        the player needs external registration before official matches.
        """
        data = {'first_name': first_name, 'last_name': last_name,
                'jersey_number': jersey_number, 'gender': gender}
        self._validate_fields(data)

        async with self._get_session_context(session) as s:
            club = await s.get(Club, club_id)
            if not club:
                raise NotFoundError("Club", club_id)
            await self._check_team(s, club_id, team_id)
            await self._check_jersey_free(s, team_id, jersey_number)

            player = Player(
                club_id=club_id,
                team_id=team_id,
                first_name=data['first_name'],
                last_name=data['last_name'],
                jersey_number=jersey_number,
                gender=gender,
                registered=False,
                verified_at=None
            )
            s.add(player)
            await s.flush()
            await s.refresh(player)

        self.logger.info(f"Created player {player.id} ({player.full_name}) for club {club_id}")
        return player, registration_advisory()

    async def get_player(self, player_id: int) -> Player:
        async with self.db.get_session() as session:
            player = await session.get(Player, player_id)
            if not player:
                raise NotFoundError("Player", player_id)
            return player

    async def list_players(self, club_id: Optional[int] = None, team_id: Optional[int] = None,
                           registered: Optional[bool] = None) -> List[Player]:
        async with self.db.get_session() as session:
            query = select(Player)
            if club_id is not None:
                query = query.where(Player.club_id == club_id)
            if team_id is not None:
                query = query.where(Player.team_id == team_id)
            if registered is not None:
                query = query.where(Player.registered == registered)
            query = query.order_by(Player.club_id, Player.last_name, Player.first_name)
            result = await session.execute(query)
            return result.scalars().all()

    async def update_player(self, player_id: int, session: Optional[AsyncSession] = None, **changes) -> Player:
        """Edit player fields. Registration fields are read-only here."""
        protected = PROTECTED_FIELDS.intersection(changes)
        if protected:
            raise PlayerValidationError(
                f"{', '.join(sorted(protected))} cannot be edited directly; "
                f"it follows {Config.REGISTRATION_SYSTEM_NAME} registration mappings"
            )
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise PlayerValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")
        self._validate_fields(changes)

        async with self._get_session_context(session) as s:
            player = await s.get(Player, player_id)
            if not player:
                raise NotFoundError("Player", player_id)

            team_id = changes.get('team_id', player.team_id)
            jersey_number = changes.get('jersey_number', player.jersey_number)
            if 'team_id' in changes:
                await self._check_team(s, player.club_id, team_id)
            await self._check_jersey_free(s, team_id, jersey_number, exclude_id=player_id)

            for key, value in changes.items():
                setattr(player, key, value)
            await s.flush()
            await s.refresh(player)

        self.logger.info(f"Updated player {player_id}: {sorted(changes)}")
        return player

    async def delete_player(self, player_id: int) -> None:
        """Delete a player and their registration mappings; blocked while on any roster"""
        async with self.db.transaction() as session:
            player = await session.get(Player, player_id)
            if not player:
                raise NotFoundError("Player", player_id)

            result = await session.execute(
                select(func.count(GameRoster.id)).where(GameRoster.player_id == player_id)
            )
            roster_count = result.scalar() or 0
            if roster_count:
                raise PlayerInUseError(player_id, roster_count)

            await self.tracker.delete_mappings_for_player(player_id, session=session)
            await session.execute(sql_delete(Player).where(Player.id == player_id))

        self.logger.info(f"Deleted player {player_id}")
