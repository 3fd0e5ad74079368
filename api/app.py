"""
api/app.py — FastAPI app instance + session middleware + static page shell
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from config import BACKEND_API_URL, SESSION_CLEANUP_INTERVAL, SESSION_TTL, STATIC_DIR
from api.routes import router
import api.session as session

SESSION_COOKIE = "zad_exam_session"

logger = logging.getLogger(__name__)


async def _close_sessions(removed) -> None:
    for data in removed:
        for controller in list(data.get("controllers", {}).values()):
            await controller.close()


async def _cleanup_loop() -> None:
    while True:
        await asyncio.sleep(SESSION_CLEANUP_INTERVAL)
        removed = session.pop_expired()
        if removed:
            await _close_sessions(removed)
            logger.info(f"Removed {len(removed)} expired sessions")


def create_app(
    backend_url: str = BACKEND_API_URL,
    backend_transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """
    Args:
        backend_url:       platform REST API root.
        backend_transport: httpx transport override (tests).
        clock:             time source handed to every exam controller (tests).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # expired sessions hold timers bound to this loop, so sweep from it too
        cleanup = asyncio.create_task(_cleanup_loop())
        yield
        cleanup.cancel()
        await _close_sessions(session.pop_all())

    app = FastAPI(title="Zad Al-Hidaya Exam Session", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.backend_url = backend_url
    app.state.backend_transport = backend_transport
    app.state.clock = clock

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Session middleware: read the session id from the cookie, issue one if missing
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=SESSION_TTL,
        )
        return response

    app.include_router(router)

    if os.path.isdir(STATIC_DIR):
        app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    # Exam page shell
    @app.get("/")
    async def serve_index():
        index_path = os.path.join(STATIC_DIR, "index.html")
        if os.path.exists(index_path):
            return FileResponse(index_path)
        return {"error": "index.html not found"}

    return app
