from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class RosterPlayerIn(BaseModel):
    club_id: int
    player_id: int
    is_captain: bool = False
    is_starting: Optional[bool] = None
    starting_position: Optional[Literal['offense', 'defense']] = None


class RosterSubmissionIn(BaseModel):
    players: List[RosterPlayerIn]


class RosterEntryUpdateIn(BaseModel):
    is_captain: Optional[bool] = None
    is_starting: Optional[bool] = None


class PlayerCreateIn(BaseModel):
    club_id: int
    team_id: Optional[int] = None
    first_name: str
    last_name: str
    jersey_number: Optional[int] = Field(default=None, ge=1, le=99)
    gender: Optional[Literal['male', 'female']] = None


class PlayerUpdateIn(BaseModel):
    """All fields optional; registered / verified_at are rejected by PlayerOperations."""
    team_id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    jersey_number: Optional[int] = Field(default=None, ge=1, le=99)
    gender: Optional[Literal['male', 'female']] = None
    is_active: Optional[bool] = None
    registered: Optional[bool] = None
    verified_at: Optional[str] = None


class MappingCreateIn(BaseModel):
    player_id: int
    external_id: str = Field(min_length=1, max_length=100)
    external_name: Optional[str] = None
    sync_status: Literal['pending', 'success', 'failed'] = 'success'


class RegistrationSyncIn(BaseModel):
    club_id: int
    players: List[dict]
    remove_missing: bool = False
