from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from shotspot.api.dependencies import get_actor_role
from shotspot.api.schemas import RosterSubmissionIn, RosterEntryUpdateIn
from shotspot.operations.roster_eligibility import RosterEntry
from shotspot.operations.roster_operations import roster_entry_to_dict

router = APIRouter(prefix="/api/game-rosters", tags=["game-rosters"])


@router.get("/{game_id}")
async def get_game_roster(request: Request, game_id: int, club_id: Optional[int] = None):
    """All roster entries for a game (both clubs)"""
    return await request.app.state.roster_ops.get_roster(game_id, club_id=club_id)


@router.post("/{game_id}", status_code=201)
async def submit_game_roster(
    request: Request,
    game_id: int,
    body: RosterSubmissionIn,
    actor_role: Optional[str] = Depends(get_actor_role)
):
    """Replace the roster of a game; official matches only accept registered players"""
    entries = [RosterEntry.from_dict(p.model_dump()) for p in body.players]
    submission = await request.app.state.roster_ops.submit_roster(game_id, entries, actor_role)
    return {
        'roster': [roster_entry_to_dict(row) for row in submission.roster],
        'warnings': submission.warnings,
    }


@router.put("/{game_id}/{roster_id}")
async def update_game_roster_entry(
    request: Request,
    game_id: int,
    roster_id: int,
    body: RosterEntryUpdateIn,
    actor_role: Optional[str] = Depends(get_actor_role)
):
    entry = await request.app.state.roster_ops.update_entry(
        game_id, roster_id, actor_role,
        is_captain=body.is_captain,
        is_starting=body.is_starting
    )
    return roster_entry_to_dict(entry)


@router.delete("/{game_id}/{roster_id}", status_code=204)
async def remove_game_roster_entry(
    request: Request,
    game_id: int,
    roster_id: int,
    actor_role: Optional[str] = Depends(get_actor_role)
):
    await request.app.state.roster_ops.remove_entry(game_id, roster_id, actor_role)
    return Response(status_code=204)
