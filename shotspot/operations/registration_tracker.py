"""
Registration Tracker - keeps Player.registered in step with registration mappings

A player counts as registered in the external registration system (Twizzit)
exactly when at least one RegistrationMapping row exists for them. The
Player.registered / Player.verified_at columns are a cached projection of that
fact, and this module is the only writer of those columns.

Key functionality:
- mark_mapping_created() / mark_mapping_removed(): pure state transitions on a Player
- RegistrationTracker.create_mapping(): insert mapping + flip flag in one transaction
- RegistrationTracker.delete_mapping(): delete mapping + re-evaluate flag in one transaction
- RegistrationTracker.reconcile(): recompute the projection for every player

Mapping writes for the same player are serialized with a per-player asyncio.Lock
(and a row lock on databases that support SELECT ... FOR UPDATE), so a flag
transition is never computed from a stale mapping count. Storage errors are
not caught here: they roll back both writes and reach the caller unchanged.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import select, func, delete as sql_delete
from sqlalchemy.ext.asyncio import AsyncSession

from shotspot.config import Config
from shotspot.database.models import Player, RegistrationMapping, SyncStatus, utcnow
from shotspot.utils.exceptions import NotFoundError
from shotspot.utils.logger import setup_logger

logger = setup_logger(__name__)


def mark_mapping_created(player: Player, now: datetime, refresh: bool = False) -> bool:
    """
    Apply the "a mapping now exists" transition to a player.

    A player that was not registered becomes registered with verified_at=now.
    A player that already was registered keeps its verified_at unless refresh
    is True. Returns True when the player row changed.
    """
    if not player.registered:
        player.registered = True
        player.verified_at = now
        return True
    if refresh or player.verified_at is None:
        player.verified_at = now
        return True
    return False


def mark_mapping_removed(player: Player, remaining: int) -> bool:
    """
    Apply the "a mapping was removed" transition given how many remain.

    Returns True when the player row changed.
    """
    if remaining > 0:
        return False
    if not player.registered and player.verified_at is None:
        return False
    player.registered = False
    player.verified_at = None
    return True


class RegistrationTracker:
    """
    Owns every write to registration mappings and the registration flag they project.

    Each public mutation either joins the caller's session (the caller commits)
    or opens its own transaction via Database.transaction().
    """

    def __init__(self, database, refresh_verified_at: Optional[bool] = None):
        self.db = database
        self.refresh_verified_at = (
            Config.REFRESH_VERIFIED_AT_ON_RELINK if refresh_verified_at is None else refresh_verified_at
        )
        # One lock per player with a mutation in flight; dropped when the last holder or waiter leaves
        self._player_locks: Dict[int, asyncio.Lock] = {}
        self._lock_users = defaultdict(int)
        self.logger = logger

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        """
        Provides a session context. Uses the provided session if available,
        otherwise opens a transaction that commits on exit.
        """
        if session:
            # If a session is provided, we do not manage its lifecycle
            yield session
        else:
            async with self.db.transaction() as new_session:
                yield new_session

    @asynccontextmanager
    async def _player_lock(self, player_id: int):
        lock = self._player_locks.setdefault(player_id, asyncio.Lock())
        self._lock_users[player_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[player_id] -= 1
            if not self._lock_users[player_id]:
                del self._lock_users[player_id]
                del self._player_locks[player_id]

    async def _load_player_for_update(self, session: AsyncSession, player_id: int) -> Player:
        result = await session.execute(
            select(Player).where(Player.id == player_id).with_for_update()
        )
        player = result.scalar_one_or_none()
        if not player:
            raise NotFoundError("Player", player_id)
        return player

    async def _count_mappings(self, session: AsyncSession, player_id: int) -> int:
        result = await session.execute(
            select(func.count(RegistrationMapping.id))
            .where(RegistrationMapping.player_id == player_id)
        )
        return result.scalar() or 0

    @staticmethod
    def _now() -> datetime:
        return utcnow()

    async def create_mapping(
        self,
        player_id: int,
        external_id: str,
        external_name: Optional[str] = None,
        sync_status: SyncStatus = SyncStatus.SUCCESS,
        session: Optional[AsyncSession] = None
    ) -> RegistrationMapping:
        """
        Link a local player to an external registration record.

        The mapping insert and the flag transition are flushed in the same
        transaction. Raises NotFoundError if the player does not exist.
        """
        async with self._player_lock(player_id):
            async with self._get_session_context(session) as s:
                player = await self._load_player_for_update(s, player_id)
                now = self._now()

                mapping = RegistrationMapping(
                    player_id=player_id,
                    external_id=external_id,
                    external_name=external_name or player.full_name,
                    sync_status=sync_status,
                    last_synced_at=now
                )
                s.add(mapping)

                was_registered = player.registered
                changed = mark_mapping_created(player, now, refresh=self.refresh_verified_at)
                await s.flush()

                if changed and not was_registered:
                    self.logger.info(
                        f"Player {player_id} registered via mapping to external id '{external_id}'"
                    )
                else:
                    self.logger.debug(
                        f"Added mapping '{external_id}' for already registered player {player_id}"
                    )
                return mapping

    async def delete_mapping(
        self,
        mapping_id: int,
        session: Optional[AsyncSession] = None
    ) -> Player:
        """
        Remove a mapping and re-evaluate the owning player's registration.

        The player stays registered while another mapping remains. Returns the
        updated player. Raises NotFoundError if the mapping does not exist.
        """
        async with self._get_session_context(session) as s:
            mapping = await s.get(RegistrationMapping, mapping_id)
            if not mapping:
                raise NotFoundError("Registration mapping", mapping_id)
            player_id = mapping.player_id

        async with self._player_lock(player_id):
            async with self._get_session_context(session) as s:
                player = await self._load_player_for_update(s, player_id)

                result = await s.execute(
                    sql_delete(RegistrationMapping).where(RegistrationMapping.id == mapping_id)
                )
                if result.rowcount == 0:
                    raise NotFoundError("Registration mapping", mapping_id)
                await s.flush()

                remaining = await self._count_mappings(s, player_id)
                if mark_mapping_removed(player, remaining):
                    self.logger.info(f"Player {player_id} no longer registered (last mapping {mapping_id} removed)")
                else:
                    self.logger.debug(
                        f"Removed mapping {mapping_id}; player {player_id} keeps {remaining} mapping(s)"
                    )
                await s.flush()
                return player

    async def delete_mappings_for_player(
        self,
        player_id: int,
        session: Optional[AsyncSession] = None
    ) -> int:
        """Remove every mapping of a player and clear the flag. Returns how many were removed."""
        async with self._player_lock(player_id):
            async with self._get_session_context(session) as s:
                player = await self._load_player_for_update(s, player_id)
                result = await s.execute(
                    sql_delete(RegistrationMapping).where(RegistrationMapping.player_id == player_id)
                )
                await s.flush()
                mark_mapping_removed(player, 0)
                await s.flush()
                self.logger.info(f"Removed {result.rowcount} mapping(s) for player {player_id}")
                return result.rowcount

    async def is_registered(self, player_id: int, session: Optional[AsyncSession] = None) -> bool:
        """Current registration flag of a player"""
        async with self._get_session_context(session) as s:
            player = await s.get(Player, player_id)
            if not player:
                raise NotFoundError("Player", player_id)
            return bool(player.registered)

    async def reconcile(self, session: Optional[AsyncSession] = None) -> int:
        """
        Recompute Player.registered for every player from the mapping table.

        Used to backfill databases populated before the tracker existed.
        Newly registered players get verified_at from their most recent
        mapping sync, falling back to now. Returns the number of players changed.
        """
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(
                    RegistrationMapping.player_id,
                    func.count(RegistrationMapping.id),
                    func.max(RegistrationMapping.last_synced_at)
                ).group_by(RegistrationMapping.player_id)
            )
            mapped = {row[0]: (row[1], row[2]) for row in result.all()}

            players = (await s.execute(select(Player))).scalars().all()
            changed = 0
            for player in players:
                count, last_synced = mapped.get(player.id, (0, None))
                if count > 0:
                    if mark_mapping_created(player, last_synced or self._now()):
                        changed += 1
                elif mark_mapping_removed(player, 0):
                    changed += 1

            await s.flush()
            self.logger.info(f"Reconciled registration flags: {changed} of {len(players)} player(s) changed")
            return changed
