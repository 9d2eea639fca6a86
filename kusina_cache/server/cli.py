"""Command-line interface for the cache admin server.

Usage
-----
    kusina-cache --config config.json --port 8080
    kusina-cache --config config.json --check-config
"""

from __future__ import annotations

import argparse
import importlib
import json
import os
import sys
from pathlib import Path
from typing import List, Optional

from ..config.models import AppConfig, EnvSettings
from ..observability import setup_logging
from .app import DashboardServer
from .http import create_app


def _check_config(cfg: AppConfig) -> int:
    """Build the runtime once and report config problems.

    Returns the process exit status: 0 when every invalidation pattern maps
    to a memoized read function, 1 otherwise.
    """
    server = DashboardServer(cfg)
    unmatched = server.check_invalidation_map() if server.queries else []
    report = {
        "stores": {
            name: {"max_size": s.max_size, "default_ttl_ms": s.default_ttl_ms}
            for name, s in server.context.stores.items()
        },
        "backend_configured": cfg.backend is not None,
        "memoized_functions": server.context.function_names,
        "unmatched_invalidation_patterns": unmatched,
    }
    print(json.dumps(report, indent=2))
    return 1 if unmatched else 0


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entrypoint: serve the admin API or validate configuration."""
    parser = argparse.ArgumentParser(description="Kusina cache admin server")
    parser.add_argument("--config", help="Path to JSON app config")
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=[
            "CRITICAL",
            "ERROR",
            "WARNING",
            "INFO",
            "DEBUG",
        ],
        help="Logging level (overrides environment)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (once sets DEBUG)",
    )
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="Validate configuration and invalidation map, then exit",
    )
    parser.add_argument(
        "--host", default="127.0.0.1", help="HTTP bind host (default 127.0.0.1)"
    )
    parser.add_argument("--port", type=int, default=8080, help="HTTP port")
    args = parser.parse_args(argv)

    env_level = os.environ.get("KUSINA_LOG_LEVEL", "INFO").upper()
    effective_level = args.log_level or ("DEBUG" if args.verbose > 0 else env_level)
    setup_logging(effective_level)

    settings = EnvSettings()
    if args.config:
        settings = settings.model_copy(update={"config_path": args.config})
    if settings.config_path and not Path(settings.config_path).is_file():
        parser.error(f"config file not found: {settings.config_path}")
    cfg = settings.load_app_config()

    if args.check_config:
        sys.exit(_check_config(cfg))

    # Lazy import uvicorn only for HTTP mode
    uvicorn = importlib.import_module("uvicorn")
    app = create_app(DashboardServer(cfg), settings)
    uvicorn.run(app, host=args.host, port=args.port, log_level=effective_level.lower())


if __name__ == "__main__":
    main()
