"""
foundling server application.

Entry point: python -m foundling.server

Lifecycle:
  1. Start: open the KVStore, build the Router
  2. Run:   accept POSTs, dispatch each body via the Router
  3. Stop:  close the store (disposes the engine pool)

Every resource path is one POST route. The body carries the operation
name; the route only parses JSON, extracts the bearer token, and maps
the Reply's code to an HTTP status. All behavior lives in the Router.

Configuration via environment variables:

    FOUNDLING_DB_URL          database URL (default sqlite+aiosqlite:///data/foundling.db)
    FOUNDLING_HOST            bind host (default: 0.0.0.0)
    FOUNDLING_PORT            bind port (default: 3001)
    FOUNDLING_LOG_LEVEL       logging level (default: INFO)
    FOUNDLING_SESSION_TTL     session lifetime in seconds (default: 86400)
    FOUNDLING_ORACLE_COMMAND  idea oracle MCP server command (default: disabled)
"""

from __future__ import annotations

import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import timedelta

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from foundling.core.entities import to_timestamp, utc_now
from foundling.mcp.oracle import IdeaOracle
from foundling.server.protocol import (
    BAD_METHOD, INTERNAL_ERROR, INVALID_BODY, NOT_FOUND_PATH,
    ErrorCode, Reply, Resource,
    bearer_token, error,
)
from foundling.server.protocol import Request as OperationRequest
from foundling.server.router import Router
from foundling.store.kv import KVStore
from foundling.store.sessions import get_session_ttl

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def _respond(reply: Reply) -> JSONResponse:
    return JSONResponse(dict(reply), status_code=reply.status)


def _failure(status: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status)


# ─────────────────────────────────────────────────────────────
# Application
# ─────────────────────────────────────────────────────────────

def create_app(
    db_url: str | None = None,
    *,
    store: KVStore | None = None,
    oracle: IdeaOracle | None = None,
    session_ttl: timedelta | None = None,
) -> FastAPI:
    """Build the HTTP app.

    With ``store`` the caller owns the store's lifecycle and the router is
    ready immediately. Without it the lifespan opens a KVStore on
    ``db_url`` (default FOUNDLING_DB_URL) and closes it on shutdown.
    """
    started = time.monotonic()

    def build_router(kv: KVStore) -> Router:
        return Router(
            kv,
            oracle=oracle or IdeaOracle.from_env(),
            session_ttl=session_ttl or get_session_ttl(),
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if store is not None:
            yield
            return
        kv = KVStore(db_url)
        await kv.open()
        app.state.store  = kv
        app.state.router = build_router(kv)
        logger.info("foundling server ready")
        try:
            yield
        finally:
            await kv.close()

    app = FastAPI(
        title="foundling",
        version=VERSION,
        description="Key-value persistence and sessions for ideas, projects and funding.",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    if store is not None:
        app.state.store  = store
        app.state.router = build_router(store)

    # ── Error envelopes ──────────────────────────────────────

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return _failure(404, NOT_FOUND_PATH)
        if exc.status_code == 405:
            return _failure(405, BAD_METHOD)
        return _failure(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.url.path}: {exc}")
        return _failure(500, INTERNAL_ERROR)

    # ── Routes ───────────────────────────────────────────────

    @app.get("/health")
    async def health() -> dict:
        return {
            "status":    "healthy",
            "timestamp": to_timestamp(utc_now()),
            "uptime":    round(time.monotonic() - started, 3),
        }

    def operation_endpoint(resource: str):
        async def endpoint(request: Request) -> JSONResponse:
            try:
                body = await request.json()
                op_request = OperationRequest.from_body(
                    resource, body, bearer_token(request.headers.get("authorization")),
                )
            except ValueError:
                return _respond(error(ErrorCode.INVALID, INVALID_BODY))
            reply = await request.app.state.router.dispatch(op_request)
            return _respond(reply)

        endpoint.__name__ = "operation_" + resource.strip("/").replace("/", "_")
        return endpoint

    for resource in Resource.ALL:
        app.add_api_route(resource, operation_endpoint(resource), methods=["POST"])

    return app


# ─────────────────────────────────────────────────────────────
# Entry point
# ─────────────────────────────────────────────────────────────

def main() -> None:
    """Entry point: python -m foundling.server"""
    log_level = os.environ.get("FOUNDLING_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )

    host = os.environ.get("FOUNDLING_HOST", "0.0.0.0")
    port = int(os.environ.get("FOUNDLING_PORT", "3001"))

    logger.info(f"foundling listening on http://{host}:{port}")
    uvicorn.run(create_app(), host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
