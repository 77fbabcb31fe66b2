"""
Shared exceptions for roster and registration operations, with user-friendly messages.
"""

from typing import List, Optional


class ShotSpotError(Exception):
    """Base exception for ShotSpot domain errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class NotFoundError(ShotSpotError):
    """Raised when a game, player or mapping does not exist."""
    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} {entity_id} not found",
            f"{entity} not found"
        )

class PlayerReferenceError(ShotSpotError):
    """Raised when roster entries name players that do not exist."""
    def __init__(self, player_ids: List[int]):
        self.player_ids = list(player_ids)
        super().__init__(
            f"Unknown player id(s) in roster: {self.player_ids}",
            "Invalid player ID in roster"
        )

class RosterValidationError(ShotSpotError):
    """Raised when a roster submission is malformed."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid roster: {reason}", reason)

class RosterIneligibleError(ShotSpotError):
    """Raised when the eligibility check blocks a roster for an official match."""
    def __init__(self, decision):
        self.decision = decision
        count = len(decision.ineligible_players)
        super().__init__(
            f"Roster for game {decision.game_id} rejected: {count} ineligible player(s)",
            f"{count} player(s) not eligible for this official match"
        )

class PermissionDeniedError(ShotSpotError):
    """Raised when the acting role may not perform an operation."""
    def __init__(self, role: Optional[str], operation: str):
        self.role = role
        super().__init__(
            f"Role '{role}' may not {operation}",
            "Insufficient permissions"
        )

class PlayerInUseError(ShotSpotError):
    """Raised when deleting a player that still appears on game rosters."""
    def __init__(self, player_id: int, roster_count: int):
        self.player_id = player_id
        self.roster_count = roster_count
        super().__init__(
            f"Player {player_id} is referenced by {roster_count} roster entr(y/ies)",
            "Cannot delete player who appears on game rosters"
        )

class DuplicateRosterEntryError(ShotSpotError):
    """Raised when the same player is listed more than once for one game."""
    def __init__(self, game_id: int, player_ids: List[int]):
        self.game_id = game_id
        self.player_ids = list(player_ids)
        super().__init__(
            f"Player(s) {self.player_ids} listed more than once for game {game_id}",
            "Player already in roster for this game"
        )

class PlayerValidationError(ShotSpotError):
    """Raised when player data fails validation."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid player data: {reason}", reason)
