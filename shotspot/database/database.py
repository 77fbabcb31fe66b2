from datetime import datetime
from typing import Optional, List
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import select, event
from contextlib import asynccontextmanager

from shotspot.config import Config
from shotspot.database.models import (
    Base, Club, Team, Player, Competition, Game, GameStatus, RegistrationMapping
)
from shotspot.utils.logger import setup_logger

class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url or Config.DATABASE_URL
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        # Convert sqlite URL to async if needed
        database_url = self.database_url
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG,
            future=True
        )

        if database_url.startswith('sqlite'):
            # SQLite only checks foreign keys when asked to, per connection
            @event.listens_for(self.engine.sync_engine, "connect")
            def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context are committed together on success,
        or rolled back together on failure.

        Usage:
            async with db.transaction() as session:
                await tracker.create_mapping(..., session=session)
                await roster_ops.submit_roster(..., session=session)

        The caller passes the yielded session to every participating operation.
        Exceptions must propagate out of the context for rollback to occur.
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # Club / team operations
    async def create_club(self, name: str) -> Club:
        """Create a new club"""
        async with self.transaction() as session:
            club = Club(name=name)
            session.add(club)
            await session.flush()
            await session.refresh(club)
            return club

    async def create_team(self, club_id: int, name: str, age_group: str = None) -> Team:
        """Create a new team within a club"""
        async with self.transaction() as session:
            team = Team(club_id=club_id, name=name, age_group=age_group)
            session.add(team)
            await session.flush()
            await session.refresh(team)
            return team

    # Competition / game operations
    async def create_competition(self, name: str, is_official: bool = True,
                                 competition_type: str = "league") -> Competition:
        """Create a new competition"""
        async with self.transaction() as session:
            competition = Competition(
                name=name,
                is_official=is_official,
                competition_type=competition_type
            )
            session.add(competition)
            await session.flush()
            await session.refresh(competition)
            return competition

    async def create_game(self, home_club_id: int, away_club_id: int,
                          competition_id: Optional[int] = None,
                          date: Optional[datetime] = None,
                          status: GameStatus = GameStatus.SCHEDULED) -> Game:
        """Create a new game; a game without competition is a friendly"""
        async with self.transaction() as session:
            game = Game(
                home_club_id=home_club_id,
                away_club_id=away_club_id,
                competition_id=competition_id,
                status=status
            )
            if date is not None:
                game.date = date
            session.add(game)
            await session.flush()
            await session.refresh(game)
            return game

    async def get_game(self, game_id: int) -> Optional[Game]:
        """Get a game by ID"""
        async with self.get_session() as session:
            return await session.get(Game, game_id)

    # Player reads
    async def get_player(self, player_id: int) -> Optional[Player]:
        """Get a player by ID"""
        async with self.get_session() as session:
            return await session.get(Player, player_id)

    async def get_players_for_club(self, club_id: int) -> List[Player]:
        """Get all players of a club ordered by name"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Player)
                .where(Player.club_id == club_id)
                .order_by(Player.last_name, Player.first_name)
            )
            return result.scalars().all()

    async def get_mappings_for_player(self, player_id: int) -> List[RegistrationMapping]:
        """Get all registration mappings of a player"""
        async with self.get_session() as session:
            result = await session.execute(
                select(RegistrationMapping)
                .where(RegistrationMapping.player_id == player_id)
                .order_by(RegistrationMapping.id)
            )
            return result.scalars().all()
