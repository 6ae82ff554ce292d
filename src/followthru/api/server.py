"""FastAPI server for the Followthru generator endpoint."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from pydantic import BaseModel

from followthru.core.context import parse_context
from followthru.core.generator import SystemActionGenerator
from followthru.errors import InvalidContextError
from followthru.models import FollowthruConfig

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]

# Global generator reference (set by serve)
_generator: SystemActionGenerator | None = None
_config: FollowthruConfig | None = None


def set_generator(generator: SystemActionGenerator, config: FollowthruConfig | None = None) -> None:
    """Set the global generator and config references."""
    global _generator, _config
    _generator = generator
    _config = config


def get_generator() -> SystemActionGenerator:
    """Get the generator instance."""
    if _generator is None:
        raise HTTPException(status_code=503, detail="Generator not initialized")
    return _generator


# Security
security = HTTPBearer(auto_error=False)


async def verify_token(
    credentials: HTTPAuthorizationCredentials | None = Security(security),
) -> bool:
    """Verify the API token if authentication is enabled."""
    if _config is None or not _config.api.auth.enabled:
        return True

    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization token")

    if credentials.credentials != _config.api.auth.token:
        raise HTTPException(status_code=401, detail="Invalid token")

    return True


# Response Models
class HealthResponse(BaseModel):
    status: str
    version: str


def _failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _allowed_origin(allowed: list[str], origin: str | None) -> str | None:
    """Single Access-Control-Allow-Origin value for a request, or None."""
    if "*" in allowed:
        return "*"
    if origin and origin in allowed:
        return origin
    return None


# Create FastAPI app
def create_app(config: FollowthruConfig | None = None) -> FastAPI:
    """Create the FastAPI application."""
    config = config or _config or FollowthruConfig()

    app = FastAPI(
        title="Followthru API",
        description="System-generated follow-up actions for relationship management",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=CORS_ALLOW_HEADERS,
    )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Get server health status."""
        from followthru import __version__

        return HealthResponse(status="healthy", version=__version__)

    @app.options("/functions/v1/generate-system-actions")
    @app.options("/api/v1/actions/generate")
    async def generate_preflight(request: Request):
        """Answer bare OPTIONS requests that the CORS middleware does not treat as preflight."""
        headers = {"Access-Control-Allow-Headers": ", ".join(CORS_ALLOW_HEADERS)}
        origin = _allowed_origin(config.api.cors_origins, request.headers.get("origin"))
        if origin:
            headers["Access-Control-Allow-Origin"] = origin
            if origin != "*":
                headers["Vary"] = "Origin"
        return Response(status_code=200, headers=headers)

    @app.post("/functions/v1/generate-system-actions")
    @app.post("/api/v1/actions/generate")
    async def generate_system_actions(
        request: Request,
        _auth: bool = Depends(verify_token),
    ):
        """Generate follow-up actions for a trigger context."""
        generator = get_generator()

        try:
            payload: Any = await request.json()
        except ValueError:
            return _failure(400, "Request body must be valid JSON")

        try:
            context = parse_context(payload)
        except InvalidContextError as e:
            logger.warning(f"Rejected generation request: {e}")
            return _failure(400, str(e))

        try:
            result = generator.generate(context)
        except Exception as e:
            logger.exception(f"Error generating system actions: {e}")
            return _failure(500, str(e))

        body: dict[str, Any] = {
            "success": True,
            "actions": [a.model_dump(mode="json") for a in result.emitted],
            "count": result.count,
            "skipped": [s.model_dump(mode="json") for s in result.skipped],
            "duplicate": result.duplicate,
        }
        if result.count == 0:
            body["message"] = (
                "Actions were already generated for this context today"
                if result.duplicate
                else "No actions needed for this context"
            )
        return body

    return app


async def run_server(
    generator: SystemActionGenerator,
    config: FollowthruConfig,
) -> None:
    """Run the API server."""
    import uvicorn

    set_generator(generator, config)
    app = create_app(config)

    server_config = uvicorn.Config(
        app,
        host=config.daemon.host,
        port=config.daemon.port,
        log_level="warning",  # Reduce uvicorn noise
    )
    server = uvicorn.Server(server_config)
    await server.serve()
