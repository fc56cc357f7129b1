"""
Telemetry bridge CLI entry point.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from mesh_telemetry_bridge.config import BridgeConfig
from mesh_telemetry_bridge.exceptions import ConfigurationError
from mesh_telemetry_bridge.logging_config import setup_logging as setup_full_logging
from mesh_telemetry_bridge.service import run_bridge


def setup_logging(verbose: bool = False, log_dir: Optional[str] = None) -> None:
    """Setup console logging, plus file logging when a directory is given."""
    console_level = "DEBUG" if verbose else "INFO"
    try:
        setup_full_logging(console_level=console_level, log_dir=log_dir)
    except PermissionError:
        # Fall back to console-only logging if the directory is not writable
        logging.basicConfig(
            level=getattr(logging, console_level),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            handlers=[logging.StreamHandler(sys.stdout)],
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mesh-telemetry-bridge",
        description="Relay mesh agent telemetry from NATS into VictoriaMetrics",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to YAML configuration file (environment variables override it)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--log-dir", type=str, default=None, help="Directory for log files")
    parser.add_argument(
        "--validate-config", action="store_true", help="Validate configuration and exit"
    )
    parser.add_argument(
        "--poll-once", action="store_true", help="Run a single KV poll cycle and exit"
    )
    return parser


def load_config(path: Optional[str]) -> BridgeConfig:
    if path:
        return BridgeConfig.from_file(path)
    return BridgeConfig.from_env()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose, args.log_dir)
    logger = logging.getLogger(__name__)

    if args.validate_config:
        try:
            config = load_config(args.config)
            config.validate_for_startup()
        except ConfigurationError as e:
            print(f"Configuration invalid: {e}")
            return 1
        print("Configuration valid")
        return 0

    try:
        config = load_config(args.config)
        asyncio.run(run_bridge(config, poll_once=args.poll_once))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except ConfigurationError as e:
        logger.error(f"[bridge] {e}")
        return 1
    except Exception as e:
        logger.error(f"[bridge] Fatal: {e}", exc_info=True)
        print(f"Error running telemetry bridge: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
