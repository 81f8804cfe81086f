"""Command-line interface for the Microsub server."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import pprint
from pathlib import Path
from typing import List, Optional

from .config import parse_app_config, parse_env_config
from .runner import RunConfig, describe_adapters, execute

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Serve a Microsub endpoint aggregating several adapters."
    )
    parser.add_argument(
        "--config",
        default="configs/config.xml",
        help="Path to the main configuration XML file.",
    )

    # Overrides for logging/debugging
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )

    parser.add_argument("--host", default=None, help="Bind address. Overrides config.")
    parser.add_argument(
        "--port", type=int, default=None, help="Listen port. Overrides config."
    )
    parser.add_argument(
        "--list-adapters",
        action="store_true",
        help="Print the configured adapters in fallback order and exit.",
    )

    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )


def _masked(config: RunConfig) -> dict:
    config_dict = dataclasses.asdict(config)
    if config_dict.get("database_connection_string"):
        config_dict["database_connection_string"] = "***MASKED***"
    for token in config_dict.get("tokens", []):
        token["value"] = "***MASKED***"
    return config_dict


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config)

        if app_config.env_file:
            env_vars = parse_env_config(app_config.env_file)
            os.environ.update(env_vars)

        # CLI overrides config
        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file

        configure_logging(log_level, log_file)

        config = RunConfig(
            adapters=app_config.adapters,
            tokens=app_config.tokens,
            host=args.host or app_config.server.host,
            port=args.port or app_config.server.port,
            endpoint_url=app_config.server.endpoint_url,
            database_connection_string=app_config.database.connection_string,
            log_level=log_level,
        )

        logger.info("Active Configuration:\n%s", pprint.pformat(_masked(config)))

        if args.list_adapters:
            for info in describe_adapters(config):
                print(f"{info.priority:>4}  {info.id}  {info.name}")
            return 0

        execute(config)
    except ValueError as exc:
        parser.error(str(exc))
    except (RuntimeError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1

    return 0
