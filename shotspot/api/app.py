"""
ShotSpot HTTP application

Thin FastAPI layer over the operations classes. Domain exceptions are mapped
to HTTP responses here; nothing in the operations layer knows about HTTP.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from shotspot.api.routes import game_rosters, players, registrations
from shotspot.config import Config
from shotspot.database.database import Database
from shotspot.operations.player_operations import PlayerOperations
from shotspot.operations.registration_tracker import RegistrationTracker
from shotspot.operations.roster_eligibility import RosterEligibilityGate
from shotspot.operations.roster_operations import RosterOperations
from shotspot.services.registration_sync import RegistrationSyncService
from shotspot.utils.exceptions import (
    ShotSpotError, NotFoundError, RosterIneligibleError, PlayerReferenceError,
    RosterValidationError, PermissionDeniedError, PlayerInUseError,
    DuplicateRosterEntryError, PlayerValidationError
)
from shotspot.utils.logger import setup_logger

logger = setup_logger(__name__)


def create_app(database: Optional[Database] = None) -> FastAPI:
    db = database or Database()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Config.validate()
        if db.engine is None:
            await db.initialize()
        tracker = RegistrationTracker(db)
        gate = RosterEligibilityGate(db)
        app.state.db = db
        app.state.tracker = tracker
        app.state.gate = gate
        app.state.roster_ops = RosterOperations(db, gate)
        app.state.player_ops = PlayerOperations(db, tracker)
        app.state.sync_service = RegistrationSyncService(db, tracker, app.state.player_ops)
        logger.info("ShotSpot API started")
        yield
        await db.close()
        logger.info("ShotSpot API stopped")

    app = FastAPI(title="ShotSpot", lifespan=lifespan)

    app.include_router(game_rosters.router)
    app.include_router(players.router)
    app.include_router(registrations.router)

    register_exception_handlers(app)
    return app


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RosterIneligibleError)
    async def _ineligible(request: Request, exc: RosterIneligibleError):
        return JSONResponse(status_code=403, content=exc.decision.to_response())

    @app.exception_handler(PlayerReferenceError)
    async def _player_reference(request: Request, exc: PlayerReferenceError):
        return JSONResponse(status_code=400, content={'error': exc.user_message, 'playerIds': exc.player_ids})

    @app.exception_handler(DuplicateRosterEntryError)
    async def _duplicate_entry(request: Request, exc: DuplicateRosterEntryError):
        return JSONResponse(status_code=409, content={'error': exc.user_message, 'playerIds': exc.player_ids})

    @app.exception_handler(ShotSpotError)
    async def _domain_error(request: Request, exc: ShotSpotError):
        status_by_type = {
            NotFoundError: 404,
            RosterValidationError: 400,
            PlayerValidationError: 400,
            PermissionDeniedError: 403,
            PlayerInUseError: 409,
        }
        status = next((code for kind, code in status_by_type.items() if isinstance(exc, kind)), 400)
        return JSONResponse(status_code=status, content={'error': exc.user_message})

    @app.exception_handler(IntegrityError)
    async def _integrity_error(request: Request, exc: IntegrityError):
        logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
        return JSONResponse(status_code=409, content={'error': 'Conflicting or invalid reference in request'})

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={'errors': jsonable_encoder(exc.errors())})
