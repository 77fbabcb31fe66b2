"""Manual link/unlink, import and import history of external registration records"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from shotspot.api.dependencies import get_actor_role, require_admin
from shotspot.api.schemas import MappingCreateIn, RegistrationSyncIn
from shotspot.database.models import SyncStatus
from shotspot.operations.player_operations import player_to_dict
from shotspot.operations.roster_operations import require_roster_editor
from shotspot.services.registration_sync import sync_history_to_dict

router = APIRouter(prefix="/api/twizzit", tags=["registration"])


def mapping_to_dict(mapping) -> dict:
    return {
        'id': mapping.id,
        'player_id': mapping.player_id,
        'external_id': mapping.external_id,
        'external_name': mapping.external_name,
        'sync_status': mapping.sync_status.value,
        'last_synced_at': mapping.last_synced_at.isoformat() if mapping.last_synced_at else None,
    }


@router.post("/mappings", status_code=201)
async def create_mapping(
    request: Request,
    body: MappingCreateIn,
    actor_role: Optional[str] = Depends(get_actor_role)
):
    require_admin(actor_role, "link players to the registration system")
    tracker = request.app.state.tracker
    mapping = await tracker.create_mapping(
        body.player_id,
        body.external_id,
        external_name=body.external_name,
        sync_status=SyncStatus(body.sync_status)
    )
    player = await request.app.state.player_ops.get_player(body.player_id)
    return {'mapping': mapping_to_dict(mapping), 'player': player_to_dict(player)}


@router.delete("/mappings/{mapping_id}")
async def delete_mapping(
    request: Request,
    mapping_id: int,
    actor_role: Optional[str] = Depends(get_actor_role)
):
    require_admin(actor_role, "unlink players from the registration system")
    player = await request.app.state.tracker.delete_mapping(mapping_id)
    return {'player': player_to_dict(player)}


@router.post("/sync/players")
async def sync_players(
    request: Request,
    body: RegistrationSyncIn,
    actor_role: Optional[str] = Depends(get_actor_role)
):
    require_admin(actor_role, "import registration records")
    result = await request.app.state.sync_service.sync_club_players(
        body.club_id, body.players, remove_missing=body.remove_missing
    )
    return result.to_dict()


@router.get("/sync/history")
async def sync_history(
    request: Request,
    club_id: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor_role: Optional[str] = Depends(get_actor_role)
):
    """Past import runs, most recent first (admin/coach)"""
    require_roster_editor(actor_role, "view registration sync history")
    history = await request.app.state.sync_service.get_sync_history(club_id, limit=limit, offset=offset)
    return {'history': [sync_history_to_dict(h) for h in history]}
