from typing import Optional

from fastapi import APIRouter, Request

from shotspot.api.schemas import PlayerCreateIn, PlayerUpdateIn
from shotspot.operations.player_operations import player_to_dict

router = APIRouter(prefix="/api/players", tags=["players"])


@router.get("")
async def list_players(
    request: Request,
    club_id: Optional[int] = None,
    team_id: Optional[int] = None,
    registered: Optional[bool] = None
):
    players = await request.app.state.player_ops.list_players(
        club_id=club_id, team_id=team_id, registered=registered
    )
    return [player_to_dict(p) for p in players]


@router.get("/{player_id}")
async def get_player(request: Request, player_id: int):
    return player_to_dict(await request.app.state.player_ops.get_player(player_id))


@router.post("", status_code=201)
async def create_player(request: Request, body: PlayerCreateIn):
    """New players start unregistered; the response carries a registration reminder"""
    player, advisory = await request.app.state.player_ops.create_player(**body.model_dump())
    data = player_to_dict(player)
    data['_warning'] = advisory
    return data


@router.put("/{player_id}")
async def update_player(request: Request, player_id: int, body: PlayerUpdateIn):
    changes = body.model_dump(exclude_unset=True)
    player = await request.app.state.player_ops.update_player(player_id, **changes)
    return player_to_dict(player)


@router.delete("/{player_id}")
async def delete_player(request: Request, player_id: int):
    await request.app.state.player_ops.delete_player(player_id)
    return {'message': 'Player deleted successfully'}
