"""
Registration Sync Service

Imports player records fetched from the external registration system (Twizzit)
for one club. Known external ids update the linked local player; unknown ids
create a local player and link it through RegistrationTracker, so the
registration flag follows every mapping written by the import.

Every run is recorded in SyncHistory: a row is written as in_progress when the
run starts and completed with counts, status and per-record errors at the end.
"""

import json
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from sqlalchemy import select

from shotspot.database.models import (
    Club, Player, RegistrationMapping, SyncStatus, SyncHistory, SyncRunStatus, utcnow
)
from shotspot.operations.player_operations import PlayerOperations
from shotspot.operations.registration_tracker import RegistrationTracker
from shotspot.utils.exceptions import NotFoundError, ShotSpotError
from shotspot.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class ExternalPlayer:
    """A player record as delivered by the registration system"""
    external_id: str
    first_name: str
    last_name: str
    jersey_number: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'ExternalPlayer':
        external_id = data.get('id')
        if external_id is None or str(external_id).strip() == '':
            raise ValueError("External player record has no id")
        # The registration API is inconsistent between snake_case and camelCase
        jersey_number = data.get('jersey_number') or data.get('jerseyNumber')
        return cls(
            external_id=str(external_id),
            first_name=data.get('first_name') or data.get('firstName') or '',
            last_name=data.get('last_name') or data.get('lastName') or '',
            jersey_number=int(jersey_number) if jersey_number is not None else None
        )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class SyncResult:
    succeeded: int = 0
    failed: int = 0
    total: int = 0
    removed: int = 0
    sync_id: Optional[int] = None
    errors: List[dict] = field(default_factory=list)

    @property
    def status(self) -> SyncRunStatus:
        return SyncRunStatus.PARTIAL_SUCCESS if self.failed else SyncRunStatus.SUCCESS

    def to_dict(self) -> dict:
        return {'syncId': self.sync_id, 'succeeded': self.succeeded, 'failed': self.failed,
                'total': self.total, 'removed': self.removed, 'errors': self.errors}


def sync_history_to_dict(history: SyncHistory) -> dict:
    return {
        'id': history.id,
        'club_id': history.club_id,
        'sync_type': history.sync_type,
        'sync_direction': history.sync_direction,
        'status': history.status.value,
        'items_processed': history.items_processed,
        'items_succeeded': history.items_succeeded,
        'items_failed': history.items_failed,
        'items_removed': history.items_removed,
        'error_message': history.error_message,
        'started_at': history.started_at.isoformat() if history.started_at else None,
        'completed_at': history.completed_at.isoformat() if history.completed_at else None,
    }


def _record_id(raw) -> Optional[str]:
    if isinstance(raw, ExternalPlayer):
        return raw.external_id
    if isinstance(raw, dict) and raw.get('id') is not None:
        return str(raw['id'])
    return None


class RegistrationSyncService:
    """Applies an external player list to local players and registration mappings."""

    def __init__(self, database, tracker: Optional[RegistrationTracker] = None,
                 player_ops: Optional[PlayerOperations] = None):
        self.db = database
        self.tracker = tracker or RegistrationTracker(database)
        self.player_ops = player_ops or PlayerOperations(database, self.tracker)

    async def sync_club_players(
        self,
        club_id: int,
        external_players: Iterable,
        remove_missing: bool = False
    ) -> SyncResult:
        """
        Import external player records for a club.

        Each record is parsed and applied in its own transaction; a malformed
        or failing record is counted and logged and the import continues with
        the next one. With remove_missing, mappings of this club's players
        whose external id is absent from the import are deleted (deregistered
        players). Errors outside a single record mark the history row failed
        and propagate.
        """
        raw_records = list(external_players)
        result = SyncResult(total=len(raw_records))
        result.sync_id = await self._start_history(club_id)

        try:
            seen_ids = set()
            for raw in raw_records:
                external_id = _record_id(raw)
                if external_id is not None:
                    seen_ids.add(external_id)
                try:
                    record = raw if isinstance(raw, ExternalPlayer) else ExternalPlayer.from_dict(raw)
                    await self._apply_record(club_id, record)
                    result.succeeded += 1
                except (ShotSpotError, ValueError, KeyError, TypeError, AttributeError) as e:
                    result.failed += 1
                    message = getattr(e, 'user_message', None) or str(e)
                    result.errors.append({'externalId': external_id, 'error': message})
                    logger.error(f"Failed to sync external player {external_id}: {e}")
                    if external_id is not None:
                        await self._mark_failed(external_id, message)

            if remove_missing:
                result.removed = await self._remove_missing(club_id, seen_ids)
        except Exception as e:
            await self._finish_history(result, SyncRunStatus.FAILED, str(e))
            logger.error(f"Registration sync for club {club_id} aborted: {e}")
            raise

        await self._finish_history(
            result, result.status, json.dumps(result.errors) if result.errors else None
        )
        logger.info(
            f"Registration sync for club {club_id}: {result.succeeded}/{result.total} succeeded, "
            f"{result.failed} failed, {result.removed} mapping(s) removed"
        )
        return result

    async def _apply_record(self, club_id: int, record: ExternalPlayer) -> None:
        async with self.db.transaction() as session:
            existing = (await session.execute(
                select(RegistrationMapping).where(RegistrationMapping.external_id == record.external_id)
            )).scalar_one_or_none()

            if existing:
                changes = {'first_name': record.first_name, 'last_name': record.last_name}
                if record.jersey_number is not None:
                    changes['jersey_number'] = record.jersey_number
                player = await self.player_ops.update_player(existing.player_id, session=session, **changes)

                existing.external_name = record.full_name
                existing.sync_status = SyncStatus.SUCCESS
                existing.sync_error = None
                existing.last_synced_at = utcnow()
                await session.flush()
                logger.debug(f"Updated player {player.id} from external record {record.external_id}")
                return

            player, _ = await self.player_ops.create_player(
                club_id=club_id,
                first_name=record.first_name,
                last_name=record.last_name,
                jersey_number=record.jersey_number,
                session=session
            )
            await self.tracker.create_mapping(
                player.id,
                record.external_id,
                external_name=record.full_name,
                sync_status=SyncStatus.SUCCESS,
                session=session
            )
            logger.debug(f"Created player {player.id} from external record {record.external_id}")

    async def _mark_failed(self, external_id: str, error: str) -> None:
        async with self.db.transaction() as session:
            mapping = (await session.execute(
                select(RegistrationMapping).where(RegistrationMapping.external_id == external_id)
            )).scalar_one_or_none()
            if mapping:
                mapping.sync_status = SyncStatus.FAILED
                mapping.sync_error = error

    async def _remove_missing(self, club_id: int, seen_ids: set) -> int:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(RegistrationMapping.id, RegistrationMapping.external_id)
                .join(Player, RegistrationMapping.player_id == Player.id)
                .where(Player.club_id == club_id)
            )
            stale = [mapping_id for mapping_id, external_id in result.all() if external_id not in seen_ids]

        for mapping_id in stale:
            await self.tracker.delete_mapping(mapping_id)
        return len(stale)

    async def _start_history(self, club_id: int) -> int:
        async with self.db.transaction() as session:
            if not await session.get(Club, club_id):
                raise NotFoundError("Club", club_id)
            history = SyncHistory(club_id=club_id, status=SyncRunStatus.IN_PROGRESS, started_at=utcnow())
            session.add(history)
            await session.flush()
            return history.id

    async def _finish_history(self, result: SyncResult, status: SyncRunStatus,
                              error_message: Optional[str]) -> None:
        async with self.db.transaction() as session:
            history = await session.get(SyncHistory, result.sync_id)
            history.status = status
            history.items_processed = result.succeeded + result.failed
            history.items_succeeded = result.succeeded
            history.items_failed = result.failed
            history.items_removed = result.removed
            history.error_message = error_message
            history.completed_at = utcnow()

    async def get_sync_history(self, club_id: Optional[int] = None, limit: int = 50,
                               offset: int = 0) -> List[SyncHistory]:
        """Import runs, most recent first"""
        async with self.db.get_session() as session:
            query = select(SyncHistory)
            if club_id is not None:
                query = query.where(SyncHistory.club_id == club_id)
            query = query.order_by(SyncHistory.started_at.desc(), SyncHistory.id.desc()).limit(limit).offset(offset)
            result = await session.execute(query)
            return result.scalars().all()
