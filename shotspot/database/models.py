from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text,
    ForeignKey, Enum as SQLEnum, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from datetime import datetime, timezone
from enum import Enum

Base = declarative_base()

def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)

class SyncStatus(Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

class SyncRunStatus(Enum):
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"

class GameStatus(Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class StartingPosition(Enum):
    OFFENSE = "offense"
    DEFENSE = "defense"

class Club(Base):
    __tablename__ = 'clubs'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    # Relationships
    teams = relationship("Team", back_populates="club")
    players = relationship("Player", back_populates="club")

    def __repr__(self):
        return f"<Club(id={self.id}, name='{self.name}')>"

class Team(Base):
    __tablename__ = 'teams'

    id = Column(Integer, primary_key=True)
    club_id = Column(Integer, ForeignKey('clubs.id'), nullable=False)
    name = Column(String(100), nullable=False)
    age_group = Column(String(20), nullable=True)  # e.g. "U17", "Senior"

    created_at = Column(DateTime, default=func.now())

    club = relationship("Club", back_populates="teams")
    players = relationship("Player", back_populates="team")

    __table_args__ = (UniqueConstraint('club_id', 'name'),)

    def __repr__(self):
        return f"<Team(id={self.id}, name='{self.name}', club_id={self.club_id})>"

class Player(Base):
    __tablename__ = 'players'

    id = Column(Integer, primary_key=True)
    club_id = Column(Integer, ForeignKey('clubs.id'), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey('teams.id'), nullable=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    jersey_number = Column(Integer, nullable=True)
    gender = Column(String(10), nullable=True)
    is_active = Column(Boolean, default=True)

    # External registration projection. Written only by RegistrationTracker:
    # registered is True iff at least one RegistrationMapping exists for the player
    registered = Column(Boolean, default=False, nullable=False, index=True)
    verified_at = Column(DateTime, nullable=True)  # Set when registered flips to True

    # Metadata
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    club = relationship("Club", back_populates="players")
    team = relationship("Team", back_populates="players")
    registration_mappings = relationship("RegistrationMapping", back_populates="player")

    __table_args__ = (
        CheckConstraint('jersey_number IS NULL OR (jersey_number >= 1 AND jersey_number <= 99)',
                        name='ck_player_jersey_number'),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<Player(id={self.id}, name='{self.full_name}', registered={self.registered})>"

class RegistrationMapping(Base):
    """
    Link between a local player and a player record in the external
    registration system (Twizzit). Existence of a row is the source of truth
    for Player.registered.
    """
    __tablename__ = 'registration_mappings'

    id = Column(Integer, primary_key=True)
    player_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    external_id = Column(String(100), nullable=False, unique=True)
    external_name = Column(String(255), nullable=True)

    sync_status = Column(SQLEnum(SyncStatus), default=SyncStatus.PENDING, nullable=False)
    sync_error = Column(Text, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    player = relationship("Player", back_populates="registration_mappings")

    def __repr__(self):
        return (f"<RegistrationMapping(player_id={self.player_id}, external_id='{self.external_id}', "
                f"status='{self.sync_status.value if self.sync_status else None}')>")

class SyncHistory(Base):
    """One run of the registration import for a club"""
    __tablename__ = 'registration_sync_history'

    id = Column(Integer, primary_key=True)
    club_id = Column(Integer, ForeignKey('clubs.id'), nullable=False, index=True)
    sync_type = Column(String(20), nullable=False, default="players")
    sync_direction = Column(String(10), nullable=False, default="import")
    status = Column(SQLEnum(SyncRunStatus), default=SyncRunStatus.IN_PROGRESS, nullable=False)

    items_processed = Column(Integer, default=0, nullable=False)
    items_succeeded = Column(Integer, default=0, nullable=False)
    items_failed = Column(Integer, default=0, nullable=False)
    items_removed = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)  # JSON list of per-record errors, or the abort reason

    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return (f"<SyncHistory(id={self.id}, club_id={self.club_id}, "
                f"status='{self.status.value if self.status else None}')>")

class Competition(Base):
    __tablename__ = 'competitions'

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    competition_type = Column(String(20), default="league")  # league, cup, tournament

    # Official federation competitions require registered players only
    is_official = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=func.now())

    games = relationship("Game", back_populates="competition")

    def __repr__(self):
        return f"<Competition(id={self.id}, name='{self.name}', official={self.is_official})>"

class Game(Base):
    __tablename__ = 'games'

    id = Column(Integer, primary_key=True)
    home_club_id = Column(Integer, ForeignKey('clubs.id'), nullable=False)
    away_club_id = Column(Integer, ForeignKey('clubs.id'), nullable=False)
    competition_id = Column(Integer, ForeignKey('competitions.id'), nullable=True)  # None = friendly
    date = Column(DateTime, default=func.now())
    status = Column(SQLEnum(GameStatus), default=GameStatus.SCHEDULED, nullable=False)

    created_at = Column(DateTime, default=func.now())

    home_club = relationship("Club", foreign_keys=[home_club_id])
    away_club = relationship("Club", foreign_keys=[away_club_id])
    competition = relationship("Competition", back_populates="games")
    roster = relationship("GameRoster", back_populates="game", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Game(id={self.id}, competition_id={self.competition_id}, status='{self.status.value if self.status else None}')>"

class GameRoster(Base):
    __tablename__ = 'game_rosters'

    id = Column(Integer, primary_key=True)
    game_id = Column(Integer, ForeignKey('games.id'), nullable=False, index=True)
    club_id = Column(Integer, ForeignKey('clubs.id'), nullable=False)
    player_id = Column(Integer, ForeignKey('players.id'), nullable=False)
    is_captain = Column(Boolean, default=False, nullable=False)
    is_starting = Column(Boolean, default=True, nullable=False)
    starting_position = Column(SQLEnum(StartingPosition), nullable=True)

    created_at = Column(DateTime, default=func.now())

    game = relationship("Game", back_populates="roster")
    club = relationship("Club")
    player = relationship("Player")

    __table_args__ = (UniqueConstraint('game_id', 'player_id', name='uq_game_roster_player'),)

    def __repr__(self):
        return f"<GameRoster(game_id={self.game_id}, player_id={self.player_id}, captain={self.is_captain})>"
