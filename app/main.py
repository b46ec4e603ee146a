from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Optional
import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from app.config import Settings, settings as default_settings
from app.core.database import close_db, init_db
from app.core.errors import GatewayError, ValidationError
from app.core.errors.middleware import (
    build_error_body,
    make_gateway_error_handler,
    make_unhandled_error_handler,
)
from app.core.errors.registry import error_registry
from app.core.log_middleware import CorrelationMiddleware
from app.core.structured_logging import APP_VERSION, setup_logging
from app.routers import admin, credentials, keys, mcp
from app.services.container import build_services
from app.services.tool_executor import ToolExecutor

# Initialize structured logging before any logger calls
setup_logging(log_dir=default_settings.log_directory, log_file=default_settings.log_file)

logger = logging.getLogger(__name__)

API_TITLE = "meetgate API"
API_DESCRIPTION = """
## meetgate - Multi-tenant MCP gateway for Calendar & Meet tools

External tool-calling clients invoke calendar/meeting tools on behalf of the
user who owns the API key.

### Authentication

- Protocol endpoint: `X-API-Key: mgk_...`, or a dashboard session.
- Self-service and admin endpoints: dashboard session
  (`Authorization: Bearer <token>` or the session cookie).
"""

TAGS_METADATA = [
    {"name": "mcp", "description": "Protocol endpoint and health checks."},
    {"name": "api-keys", "description": "Generate, list and revoke gateway API keys. **Requires session.**"},
    {"name": "google", "description": "Per-user Google OAuth client credentials. **Requires session.**"},
    {"name": "admin", "description": "Usage statistics. **Admin only.**"},
]


def _make_lifespan(
    settings: Settings,
    engine: Optional[Engine],
    tool_executor: Optional[ToolExecutor],
):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting %s v%s (%s)", settings.app_name, APP_VERSION, settings.environment)

        error_registry.load()

        # Fails fast when MEETGATE_ENCRYPTION_KEY is missing
        services = build_services(settings, engine=engine, tool_executor=tool_executor)

        # Thread pool for run_sync() / asyncio.to_thread()
        executor = ThreadPoolExecutor(max_workers=32)
        asyncio.get_running_loop().set_default_executor(executor)

        init_db(engine)
        logger.info("Database initialized")

        app.state.services = services
        yield

        logger.info("Shutting down %s...", settings.app_name)
        await services.aclose()
        if engine is None:
            close_db()
        executor.shutdown(wait=False)

    return lifespan


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    tool_executor: Optional[ToolExecutor] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or default_settings

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=APP_VERSION,
        openapi_tags=TAGS_METADATA,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=_make_lifespan(settings, engine, tool_executor),
    )

    # Protocol clients call from anywhere
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(CorrelationMiddleware)

    expose = settings.is_development
    app.add_exception_handler(GatewayError, make_gateway_error_handler(expose))
    app.add_exception_handler(Exception, make_unhandled_error_handler(expose))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(request: Request, exc: RequestValidationError):
        detail = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        status_code, body = build_error_body(ValidationError.default_code, detail, expose)
        return JSONResponse(status_code=status_code, content=body)

    # Self-service routes first: the protocol router owns a POST catch-all
    app.include_router(keys.router, prefix="/api/mcp", tags=["api-keys"])
    app.include_router(mcp.router, prefix="/api/mcp", tags=["mcp"])
    app.include_router(credentials.router, prefix="/api/google", tags=["google"])
    app.include_router(admin.router, prefix="/api/admin", tags=["admin"])

    return app


app = create_app()
