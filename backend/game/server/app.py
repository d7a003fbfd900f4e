from __future__ import annotations

import contextlib
import json
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from game.logic.exceptions import AuthorizationError, DuelError, NotFoundError
from game.messaging.router import MessageRouter
from game.server.settings import GameServerSettings
from game.server.types import CreateMatchRequest, CreateMatchResponse
from game.server.websocket import websocket_endpoint
from game.session.challenge import ChallengeService
from game.session.manager import SessionManager
from shared.auth.ticket import verify_ticket
from shared.build_info import APP_VERSION, GIT_COMMIT
from shared.dal.exceptions import InfrastructureError
from shared.db import Database, SqliteMatchRepository, SqliteStatsRepository
from shared.logging import setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

logger = structlog.get_logger()

_MAX_REQUEST_BODY_SIZE = 4096


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": APP_VERSION, "commit": GIT_COMMIT})


async def status(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    settings: GameServerSettings = request.app.state.settings
    return JSONResponse(
        {
            "status": "ok",
            "version": APP_VERSION,
            "commit": GIT_COMMIT,
            "live_sessions": session_manager.session_count,
            "playing_sessions": session_manager.playing_count,
            "online_users": len(session_manager.registry.online_users()),
            "max_capacity": settings.max_capacity,
        },
    )


def _error_status(error: DuelError) -> int:
    if isinstance(error, AuthorizationError):
        return 403
    if isinstance(error, NotFoundError):
        return 404
    return 409


async def create_match(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    challenge_service: ChallengeService = request.app.state.challenge_service
    settings: GameServerSettings = request.app.state.settings

    try:
        raw_body = await request.body()
        if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
            return JSONResponse({"error": "Request body too large"}, status_code=413)
        match_request = CreateMatchRequest(**json.loads(raw_body))
    except (ValueError, TypeError, json.JSONDecodeError, UnicodeDecodeError, ValidationError):
        return JSONResponse({"error": "Invalid request body"}, status_code=400)

    ticket = verify_ticket(match_request.ticket, settings.ticket_secret)
    if ticket is None:
        return JSONResponse({"error": "Invalid or expired ticket"}, status_code=400)

    if session_manager.session_count >= settings.max_capacity:
        return JSONResponse({"error": "Server at capacity"}, status_code=503)

    try:
        match = await challenge_service.create_challenge(
            ticket.user_id,
            match_request.opponent_id,
            challenger_is_guest=ticket.is_guest,
            challenger_name=ticket.username,
            total_rounds=match_request.total_rounds,
        )
    except DuelError as e:
        return JSONResponse({"error": str(e), "code": e.code}, status_code=_error_status(e))
    except InfrastructureError:
        logger.exception("failed to create match")
        return JSONResponse({"error": "Server error"}, status_code=500)

    body = CreateMatchResponse(match_id=match.match_id, goal_time=match.goal_time, status=match.status)
    return JSONResponse(body.model_dump(), status_code=201)


def create_app(
    settings: GameServerSettings | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
    challenge_service: ChallengeService | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = GameServerSettings()  # ty: ignore[missing-argument]

    duel_settings = settings.duel_settings()

    # When the app wires its own repositories, it owns the DB lifecycle.
    owned_db: Database | None = None

    if session_manager is None:
        db = Database(settings.database_path)
        db.connect()
        owned_db = db
        match_repository = SqliteMatchRepository(db)
        session_manager = SessionManager(
            match_repository,
            SqliteStatsRepository(db),
            settings=duel_settings,
        )
        if challenge_service is None:
            challenge_service = ChallengeService(
                match_repository,
                registry=session_manager.registry,
                settings=duel_settings,
            )

    if challenge_service is None:
        raise ValueError("challenge_service is required when session_manager is provided")

    if message_router is None:
        message_router = MessageRouter(session_manager)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router, settings.ticket_secret)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/matches", create_match, methods=["POST"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        session_manager.registry.start_broadcaster(settings.presence_broadcast_seconds)
        session_manager.start_reaper(settings.reaper_interval_seconds)
        yield
        await session_manager.registry.stop_broadcaster()
        await session_manager.shutdown()
        if owned_db is not None:
            owned_db.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.session_manager = session_manager
    app.state.challenge_service = challenge_service

    logger.info("duel server ready")
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = GameServerSettings()  # ty: ignore[missing-argument]
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)
