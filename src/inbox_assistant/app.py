"""Application entry point: FastAPI service for the inbox rules assistant.

Configures:
- **structlog** with JSON rendering (production) or colored console (development)
- **Sentry** error reporting, with known provider/Gmail errors filtered out
- **SQLite** stores for usage records, error banners, plans and AI settings
- **LLM gateway** with per-user backend selection and managed fallbacks
- **Routes** for planned-action approval, AI settings, error banners,
  health/readiness and Prometheus metrics
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from inbox_assistant.config import Settings, get_settings, validate_credentials
from inbox_assistant.email.client import GmailClient
from inbox_assistant.health import register_health_routes
from inbox_assistant.llm.gateway import LLMGateway
from inbox_assistant.notifications.store import UserErrorStore, init_user_error_table
from inbox_assistant.observability.metrics import setup_metrics
from inbox_assistant.observability.middleware import RequestIdMiddleware
from inbox_assistant.observability.sentry import get_sentry_processor, init_sentry
from inbox_assistant.pipeline import StaticRuleResult, handle_static_rule
from inbox_assistant.planned.routes import router as planned_router
from inbox_assistant.rules.loader import load_rules
from inbox_assistant.state.schema import (
    init_ai_settings_table,
    init_planned_execution_table,
    open_database,
)
from inbox_assistant.state.store import AISettingsStore, PlanStore
from inbox_assistant.usage.store import UsageStore, init_usage_table
from inbox_assistant.user.context import build_user_context
from inbox_assistant.user.routes import router as user_router

logger = structlog.get_logger()


def configure_logging(production: bool = False, sentry_enabled: bool = False) -> None:
    """Configure structlog for production (JSON) or development (console).

    Production mode (*production=True*): JSON rendering at INFO level.
    Development mode: colored console rendering at DEBUG level.

    Args:
        production: Enable production mode if ``True``.
        sentry_enabled: Forward ERROR-level events to Sentry.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if sentry_enabled:
        shared_processors.append(get_sentry_processor())

    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer()
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service="inbox-assistant")


def initialize_services(settings: Settings | None = None) -> dict[str, Any]:
    """Set up all shared services for the application.

    Opens the database and creates its tables, builds the stores and the LLM
    gateway, loads the rules file, and builds the Gmail client when a token
    is available.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.

    Returns:
        A dict of initialized service instances keyed by name.
    """
    if settings is None:
        settings = get_settings()

    services: dict[str, Any] = {"_settings": settings}

    conn = open_database(settings.db_path)
    init_usage_table(conn)
    init_user_error_table(conn)
    init_planned_execution_table(conn)
    init_ai_settings_table(conn)
    services["db_conn"] = conn

    services["usage_store"] = UsageStore(conn)
    services["error_store"] = UserErrorStore(conn)
    services["plan_store"] = PlanStore(conn)
    services["ai_settings_store"] = AISettingsStore(conn)
    services["gateway"] = LLMGateway(settings, services["usage_store"], services["error_store"])

    if settings.rules_path.exists():
        services["rules"] = load_rules(settings.rules_path)
        logger.info("Rules loaded", count=len(services["rules"]), path=str(settings.rules_path))
    else:
        services["rules"] = []
        logger.warning("Rules file not found, no static rules active", path=str(settings.rules_path))

    gmail_client = None
    if settings.gmail_token_path.exists():
        try:
            from inbox_assistant.auth.credentials import get_gmail_service

            service = get_gmail_service(
                token_path=settings.gmail_token_path,
                credentials_path=settings.gmail_credentials_path,
            )
            gmail_client = GmailClient(service, settings.user_email)
            logger.info("GmailClient initialized", user_email=settings.user_email)
        except Exception:
            logger.warning("Failed to initialize GmailClient", exc_info=True)
    services["gmail_client"] = gmail_client

    return services


async def process_message(message_id: str, services: dict[str, Any]) -> StaticRuleResult:
    """Fetch one Gmail message and run the static-rule pipeline on it.

    Args:
        message_id: The Gmail message ID.
        services: The initialized services dict.

    Returns:
        The pipeline result.

    Raises:
        RuntimeError: If the Gmail client is not configured.
    """
    gmail: GmailClient | None = services.get("gmail_client")
    if gmail is None:
        msg = "Gmail client not configured"
        raise RuntimeError(msg)

    settings: Settings = services["_settings"]
    message = await asyncio.to_thread(gmail.get_message, message_id)
    user = build_user_context(settings, services["ai_settings_store"])
    return await handle_static_rule(
        message,
        user,
        gmail,
        services["rules"],
        services["gateway"],
        services["plan_store"],
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Lifespan context manager for FastAPI startup and shutdown.

    On shutdown: closes the database connection.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application.
    """
    logger.info("FastAPI application starting")
    yield
    conn = app.state.services.get("db_conn")
    if conn is not None:
        conn.close()
        logger.info("Database connection closed")


def create_app(services: dict[str, Any]) -> FastAPI:
    """Create the FastAPI app with middleware, routers, health and metrics.

    Args:
        services: The initialized services dict from ``initialize_services``.

    Returns:
        The configured FastAPI application.
    """
    settings: Settings = services.get("_settings") or get_settings()
    fastapi_app = FastAPI(title="Inbox Assistant", lifespan=lifespan)
    fastapi_app.state.services = services
    fastapi_app.state.settings = settings
    fastapi_app.add_middleware(RequestIdMiddleware, service_name=settings.service_name)
    fastapi_app.include_router(planned_router)
    fastapi_app.include_router(user_router)
    register_health_routes(fastapi_app)
    setup_metrics(fastapi_app)
    return fastapi_app


async def main() -> None:
    """Main entry point: configure, initialize services and serve HTTP."""
    settings = get_settings()
    init_sentry(settings.sentry_dsn, environment="production" if settings.production else "development")
    configure_logging(production=settings.production, sentry_enabled=bool(settings.sentry_dsn))
    logger.info("Application starting")

    validate_credentials(settings)

    services = initialize_services(settings)
    fastapi_app = create_app(services)

    config = uvicorn.Config(
        fastapi_app,
        host="0.0.0.0",
        port=settings.http_port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    await server.serve()


if __name__ == "__main__":
    asyncio.run(main())
