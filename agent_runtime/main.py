from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .dependencies import AuthError, enforce_auth
from .engine import build_error_envelope, new_request_id
from .timing import now_ms

if TYPE_CHECKING:
    from .agent import Agent


def _error_response(status_code: int, code: str, message: str, details: Any = None) -> JSONResponse:
    _, body = build_error_envelope(
        request_id=new_request_id(),
        status_code=status_code,
        code=code,
        message=message,
        details=details,
    )
    return JSONResponse(status_code=status_code, content=body)


def create_app(agent: "Agent") -> FastAPI:
    """Build the HTTP shell around one agent: auth, dispatch, health."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await agent.aclose()

    app = FastAPI(title=type(agent).__name__, version="0.1.0", lifespan=lifespan)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return _error_response(404, "NOT_FOUND", f"Route {request.method} {request.url.path} not found")
        return _error_response(exc.status_code, "HTTP_ERROR", str(exc.detail))

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        """Simple liveness check."""
        return {
            "status": "healthy",
            "agent": type(agent).__name__,
            "timestamp": now_ms(),
        }

    @app.post("/")
    async def handle(request: Request) -> JSONResponse:
        """
        Core agent entrypoint called by the orchestrator.
        """
        try:
            enforce_auth(request, agent.auth_config)
        except AuthError as exc:
            code = "UNAUTHORIZED" if exc.status_code in (401, 403) else "INTERNAL_ERROR"
            return _error_response(exc.status_code, code, exc.message)

        body_bytes = await request.body()
        result = await agent.dispatcher.dispatch(body_bytes, path=request.url.path)
        return JSONResponse(status_code=result.status_code, content=result.body)

    return app
