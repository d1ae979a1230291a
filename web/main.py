"""
Order Service entry point.

Usage:
    uvicorn web.main:app --port 8000

    python -m web.main --host 0.0.0.0 --port 8000 --config config/base.yaml

Loads ``.env`` (if present) before reading settings, so ORDERS_* overrides
can live there.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

import uvicorn

from config.env_loader import load_env
from config.settings_schema import load_validated_settings
from web.app import create_app

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Order tracking service (REST + WebSocket)")
    ap.add_argument("--config", type=str, default=None, help="Path to settings YAML")
    ap.add_argument("--env-file", type=str, default=".env", help="Path to .env file")
    ap.add_argument("--host", type=str, default=None, help="Override server.host")
    ap.add_argument("--port", type=int, default=None, help="Override server.port")
    args = ap.parse_args(argv)

    loaded = load_env(Path(args.env_file), override=False)
    settings = load_validated_settings(args.config)
    _configure_logging(settings.logging.level)
    if loaded:
        logger.info(f"Loaded {len(loaded)} variables from {args.env_file}")

    host = args.host or settings.server.host
    port = args.port or settings.server.port
    logger.info(
        f"Starting order service on http://{host}:{port} "
        f"(one_order_per_owner={settings.store.one_order_per_owner}, "
        f"strict_forward={settings.store.strict_forward_transitions})"
    )
    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.logging.level.lower())
    return 0


def __getattr__(name: str):
    # Built lazily so importing web.main (tests, tooling) does not read config
    if name == "app":
        app = create_app()
        globals()["app"] = app
        return app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


if __name__ == "__main__":
    raise SystemExit(main())
