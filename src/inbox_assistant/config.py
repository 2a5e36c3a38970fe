"""Centralized, typed configuration using pydantic-settings.

Provides a single ``Settings`` class backed by ``.env`` file and environment
variables, a cached ``get_settings()`` accessor, and a ``validate_credentials()``
startup gate that enforces credential presence in production mode.

IMPORTANT: This module has ZERO imports from the ``inbox_assistant`` package to
prevent circular imports.  Only stdlib, pydantic, pydantic_settings, and
structlog are used.
"""

from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env`` file.

    Process-wide LLM credentials (``openai_api_key``, ``bedrock_*``,
    ``ollama_*``) are the managed fallbacks used when the mailbox owner has
    not supplied a personal API key.  They are read once at startup and never
    mutated afterwards.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- General ---------------------------------------------------------------
    production: bool = False
    http_port: int = 8000
    service_name: str = "inbox-assistant"

    # -- Mailbox owner ---------------------------------------------------------
    user_id: str = "me"
    user_email: str = ""
    user_about: str = ""

    # -- Storage ---------------------------------------------------------------
    db_path: Path = Path("data/assistant.db")
    rules_path: Path = Path("config/rules.yaml")

    # -- Gmail -----------------------------------------------------------------
    gmail_token_path: Path = Path("token.json")
    gmail_credentials_path: Path = Path("credentials.json")

    # -- Per-user AI selection ---------------------------------------------------
    ai_provider: str = ""
    ai_model: str = ""
    ai_api_key: SecretStr = SecretStr("")

    # -- Managed LLM credentials (secrets) --------------------------------------
    openai_api_key: SecretStr = SecretStr("")
    bedrock_access_key: SecretStr = SecretStr("")
    bedrock_secret_key: SecretStr = SecretStr("")
    bedrock_region: str = "us-west-2"
    ollama_base_url: str = "https://api.ollama.com"
    ollama_api_key: SecretStr = SecretStr("")

    # -- Observability ---------------------------------------------------------
    sentry_dsn: str = ""


@lru_cache
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance.

    The ``@lru_cache`` decorator ensures environment variables are parsed
    exactly once.  Call ``get_settings.cache_clear()`` in tests to reset.

    Returns:
        The application ``Settings``.
    """
    try:
        return Settings()
    except ValidationError as exc:
        # Log only the structured errors list -- never the full exception
        # which may contain raw SecretStr values.
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)


def validate_credentials(settings: Settings) -> None:
    """Enforce credential presence at startup.

    In **production** mode (``settings.production is True``), the application
    exits with a clear error block if any required credential is missing.

    In **development** mode, each missing credential is logged as a warning
    but the application continues to start.

    An LLM credential counts as present when the owner supplied a personal
    key or when at least one managed credential is configured.

    Args:
        settings: The loaded application settings.
    """
    errors: list[str] = []

    if not settings.gmail_token_path.exists():
        errors.append(f"Gmail token file not found: {settings.gmail_token_path}")

    if not settings.user_email:
        errors.append("USER_EMAIL is empty or not set")

    has_managed_llm = bool(
        settings.openai_api_key.get_secret_value()
        or (
            settings.bedrock_access_key.get_secret_value()
            and settings.bedrock_secret_key.get_secret_value()
        )
        or settings.ollama_api_key.get_secret_value()
    )
    if not settings.ai_api_key.get_secret_value() and not has_managed_llm:
        errors.append("No LLM credential set (AI_API_KEY or a managed provider key)")

    if not errors:
        logger.info("credential_validation_passed")
        return

    if settings.production:
        for err in errors:
            logger.error("credential_missing", detail=err)
        print("\n=== STARTUP FAILED ===", file=sys.stderr)
        print("Missing required credentials for production mode:", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        print("======================\n", file=sys.stderr)
        sys.exit(1)
    else:
        for err in errors:
            logger.warning("credential_missing_dev", detail=err)
