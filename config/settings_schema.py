"""
Typed Settings Schema (Pydantic)
================================

Provides typed, validated configuration for the order service.

Sources, lowest to highest precedence:
    1. Model defaults
    2. base.yaml (or the file named by ORDERS_CONFIG_PATH / the path argument)
    3. Environment overrides (ORDERS_* variables, see ENV_OVERRIDES)

Usage:
    from config.settings_schema import load_validated_settings

    settings = load_validated_settings()
    settings.store.one_order_per_owner
    settings.broadcast.subscriber_queue_size
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config.settings_loader import get_config_path, read_yaml
from core.exceptions import SettingsValidationError

logger = logging.getLogger(__name__)


# ============================================================================
# Schema Definitions
# ============================================================================

class StoreConfig(BaseModel):
    """Order store policies."""
    one_order_per_owner: bool = Field(
        default=False,
        description="Reject create() when the owner already has an order",
    )
    strict_forward_transitions: bool = Field(
        default=False,
        description="Only allow forward lifecycle moves (plus cancel)",
    )


class BroadcastConfig(BaseModel):
    """Subscriber fan-out configuration."""
    subscriber_queue_size: int = Field(
        default=100, ge=1, le=100_000,
        description="Pending messages per subscriber before it is dropped",
    )


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    event_log_path: Optional[str] = Field(
        default=None,
        description="JSONL event log file; None disables file output",
    )


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)


class Settings(BaseModel):
    """Complete settings schema."""
    model_config = ConfigDict(extra="allow")  # Allow extra fields not in schema

    store: StoreConfig = Field(default_factory=StoreConfig)
    broadcast: BroadcastConfig = Field(default_factory=BroadcastConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


# Environment variable -> (section, key)
ENV_OVERRIDES: Dict[str, tuple[str, str]] = {
    "ORDERS_ONE_PER_OWNER": ("store", "one_order_per_owner"),
    "ORDERS_STRICT_TRANSITIONS": ("store", "strict_forward_transitions"),
    "ORDERS_QUEUE_SIZE": ("broadcast", "subscriber_queue_size"),
    "ORDERS_LOG_LEVEL": ("logging", "level"),
    "ORDERS_EVENT_LOG": ("logging", "event_log_path"),
    "ORDERS_HOST": ("server", "host"),
    "ORDERS_PORT": ("server", "port"),
}


# ============================================================================
# Validation Functions
# ============================================================================

def _apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    merged = {section: dict(values or {}) for section, values in raw.items() if isinstance(values, dict)}
    merged.update({k: v for k, v in raw.items() if not isinstance(v, dict)})
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is None:
            continue
        if key == "event_log_path":
            # Empty string disables the file log
            value = value or None
        elif not value:
            continue
        elif key == "level":
            value = value.upper()
        # Pydantic coerces "true"/"1"/"8080" to the field types
        merged.setdefault(section, {})[key] = value
    return merged


def load_validated_settings(path: str | Path | None = None) -> Settings:
    """
    Load and validate settings.

    Args:
        path: Explicit YAML path; defaults to ORDERS_CONFIG_PATH or base.yaml

    Returns:
        Validated Settings object

    Raises:
        SettingsValidationError: If settings are invalid
    """
    config_path = Path(path) if path else get_config_path()
    raw = read_yaml(config_path)
    raw = _apply_env_overrides(raw)

    try:
        return Settings(**raw)
    except ValidationError as e:
        logger.error(f"Settings validation failed: {e}")
        raise SettingsValidationError(
            "Settings validation failed",
            {"path": str(config_path), "errors": [err["msg"] for err in e.errors()]},
            cause=e,
        ) from e
