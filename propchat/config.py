"""
Centralized configuration with environment variable overrides.

Backend endpoints, orchestration thresholds, and widget defaults are
configurable here. Nothing is hardcoded in agent or tool logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from propchat.logging_context import LOG_FORMAT, install_session_filter

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class BackendConfig:
    """Endpoints of the external services called by tool handlers."""

    tools_url: str = os.getenv(
        "TOOLS_FUNCTION_URL", "http://localhost:54321/functions/v1/realtime_tools"
    )
    phone_auth_url: str = os.getenv(
        "PHONE_AUTH_URL", "http://localhost:54321/functions/v1/phoneAuth"
    )
    schedule_visit_url: str = os.getenv(
        "SCHEDULE_VISIT_URL", "http://localhost:54321/functions/v1/schedule-visit-whatsapp"
    )
    visit_notify_url: str = os.getenv("VISIT_NOTIFY_URL", "")
    api_key: str = os.getenv("BACKEND_API_KEY", "")
    timeout_sec: float = _safe_float("BACKEND_TIMEOUT_SEC", "15.0")


@dataclass(frozen=True)
class OrchestrationConfig:
    """Thresholds and timers used by the session orchestration core."""

    default_agent: str = os.getenv("DEFAULT_AGENT", "realEstate")
    auth_question_threshold: int = _safe_int("AUTH_QUESTION_THRESHOLD", "7")
    schedule_prompt_threshold: int = _safe_int("SCHEDULE_PROMPT_THRESHOLD", "12")
    cancel_ack_timeout_sec: float = _safe_float("CANCEL_ACK_TIMEOUT_SEC", "2.0")
    ui_hint_ttl_sec: float = _safe_float("UI_HINT_TTL_SEC", "30.0")


@dataclass(frozen=True)
class WidgetConfig:
    """Defaults applied when the embedding page supplies nothing better."""

    default_language: str = os.getenv("DEFAULT_LANGUAGE", "English")
    default_org_name: str = os.getenv("DEFAULT_ORG_NAME", "the company")
    fallback_chatbot_id: str = os.getenv(
        "FALLBACK_CHATBOT_ID", "00000000-0000-0000-0000-000000000000"
    )
    platform: str = os.getenv("WIDGET_PLATFORM", "WebChat")
    chat_mode: str = os.getenv("WIDGET_CHAT_MODE", "voice")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    backend: BackendConfig = field(default_factory=BackendConfig)
    orchestration: OrchestrationConfig = field(default_factory=OrchestrationConfig)
    widget: WidgetConfig = field(default_factory=WidgetConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "propchat")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    orch = config.orchestration
    if orch.auth_question_threshold < 1:
        raise ValueError(
            f"AUTH_QUESTION_THRESHOLD must be >= 1, got {orch.auth_question_threshold}"
        )
    if orch.schedule_prompt_threshold < 1:
        raise ValueError(
            f"SCHEDULE_PROMPT_THRESHOLD must be >= 1, got {orch.schedule_prompt_threshold}"
        )
    if orch.cancel_ack_timeout_sec <= 0:
        raise ValueError(
            f"CANCEL_ACK_TIMEOUT_SEC must be > 0, got {orch.cancel_ack_timeout_sec}"
        )
    if orch.ui_hint_ttl_sec <= 0:
        raise ValueError(f"UI_HINT_TTL_SEC must be > 0, got {orch.ui_hint_ttl_sec}")
    if config.backend.timeout_sec <= 0:
        raise ValueError(
            f"BACKEND_TIMEOUT_SEC must be > 0, got {config.backend.timeout_sec}"
        )
    if not orch.default_agent:
        raise ValueError("DEFAULT_AGENT must not be empty")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        install_session_filter(handler)
    logger.info("Configuration loaded for '%s'", config.app_name)
    return config


# Singleton instance
settings = load_config()
