"""Entry point for the KidTime device agent."""

import argparse
import logging
import sys
from pathlib import Path

import firebase_admin  # type: ignore[import-untyped]
from firebase_admin import credentials, firestore  # type: ignore[import-untyped]

from kidtime_shared.logs import setup_logging
from kidtime_shared.store import FirestoreStore

from .cache import LocalCache
from .config import Config, load_config
from .device_client import DeviceClient
from .loop import run_agent_loop

logger = logging.getLogger(__name__)


def init_firebase(config: Config) -> firestore.Client:
    """Initialize Firebase Admin SDK and return Firestore client."""
    cred = credentials.Certificate(str(config.firebase_credentials_path))
    firebase_admin.initialize_app(cred)
    return firestore.client()


def cmd_run(args: argparse.Namespace) -> None:
    """Run the device agent in the foreground."""
    setup_logging(args.verbose, args.log_file)

    config_path: Path = args.config
    if not config_path.exists():
        logger.error("Configuration file not found: %s", config_path)
        sys.exit(1)

    config = load_config(config_path)
    logger.info("Loaded configuration for device %s (child %s)", config.device_name, config.child_id)

    db = init_firebase(config)
    logger.info("Firebase initialized")

    client = DeviceClient(FirestoreStore(db), child_id=config.child_id)
    cache = LocalCache(config.resolved_cache_dir())

    run_agent_loop(
        client=client,
        cache=cache,
        poll_interval_seconds=config.poll_interval_seconds,
        debounce_seconds=config.debounce_seconds,
    )


def _add_run_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=Path("config.json"),
        help="Path to configuration file",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file",
    )


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="KidTime device agent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  kidtime-agent                        Run with ./config.json
  kidtime-agent run -c agent.json -v   Run with another config and debug logging
""",
    )

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run the agent")
    _add_run_args(run_parser)
    run_parser.set_defaults(func=cmd_run)

    # Running without a subcommand behaves like "run"
    _add_run_args(parser)

    args = parser.parse_args()
    if args.command is None:
        cmd_run(args)
    else:
        args.func(args)


if __name__ == "__main__":
    main()
