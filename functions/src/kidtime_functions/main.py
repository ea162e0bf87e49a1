"""Command line entry point for the KidTime ledger functions."""

import argparse
import json
import logging
import sys
from pathlib import Path

import firebase_admin  # type: ignore[import-untyped]
from firebase_admin import credentials, firestore  # type: ignore[import-untyped]

from kidtime_shared import Role
from kidtime_shared.logs import setup_logging
from kidtime_shared.store import FirestoreStore

from .api import KidTimeFunctions
from .config import FunctionsConfig, load_config
from .session import Session
from .worker import poll_awards_once, run_award_loop

logger = logging.getLogger(__name__)


def init_firebase(config: FunctionsConfig) -> firestore.Client:
    """Initialize the Firebase Admin SDK and return a Firestore client.

    Without a credentials file the SDK falls back to application default
    credentials.
    """
    if config.firebase_credentials_path is not None:
        firebase_admin.initialize_app(credentials.Certificate(str(config.firebase_credentials_path)))
    else:
        firebase_admin.initialize_app()
    return firestore.client()


def _load(args: argparse.Namespace) -> FunctionsConfig:
    config_path: Path = args.config
    if not config_path.exists():
        logger.info("No configuration file at %s, using defaults", config_path)
        return FunctionsConfig()
    return load_config(config_path)


def build_functions(config: FunctionsConfig) -> KidTimeFunctions:
    db = init_firebase(config)
    logger.info("Firebase initialized")
    store = FirestoreStore(db, max_attempts=config.transaction_max_attempts)
    return KidTimeFunctions(store, limits=config.limits)


def cmd_call(args: argparse.Namespace) -> None:
    """Invoke one callable operation and print its JSON result."""
    setup_logging(args.verbose)
    try:
        payload = json.loads(args.data)
    except json.JSONDecodeError as e:
        logger.error("--data is not valid JSON: %s", e)
        sys.exit(2)

    functions = build_functions(_load(args))
    session = Session.sign_in(args.uid, args.role) if args.uid else Session()
    try:
        result = functions.call(args.operation, payload, session.caller)
    finally:
        session.sign_out()

    print(json.dumps(result, indent=2))
    if not result.get("ok"):
        sys.exit(1)


def cmd_awards(args: argparse.Namespace) -> None:
    """Run the award worker."""
    setup_logging(args.verbose)
    config = _load(args)
    functions = build_functions(config)

    if args.once:
        applied = poll_awards_once(functions.rewards)
        logger.info("Applied %d awards", len(applied))
        return

    run_award_loop(functions.rewards, poll_interval_seconds=config.award_poll_interval_seconds)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="KidTime ledger functions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  kidtime-functions call submitRequest --uid kid1 --role child --data '{"childId": "kid1", "minutes": 30}'
  kidtime-functions call approveRequest --uid mom --role parent --data '{"requestId": "abc"}'
  kidtime-functions awards           Poll for passing chore submissions
  kidtime-functions awards --once    Apply pending awards and exit
""",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=Path("functions.json"),
        help="Path to configuration file",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    call_parser = subparsers.add_parser("call", help="Invoke a callable operation")
    call_parser.add_argument("operation", help="Operation name, e.g. submitRequest")
    call_parser.add_argument("--uid", help="Caller user id (omit for an anonymous call)")
    call_parser.add_argument(
        "--role",
        choices=[role.value for role in Role],
        default=Role.PARENT.value,
        help="Caller role",
    )
    call_parser.add_argument("--data", default="{}", help="JSON payload")
    call_parser.set_defaults(func=cmd_call)

    awards_parser = subparsers.add_parser("awards", help="Run the chore award worker")
    awards_parser.add_argument(
        "--once",
        action="store_true",
        help="Apply pending awards once and exit",
    )
    awards_parser.set_defaults(func=cmd_awards)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
