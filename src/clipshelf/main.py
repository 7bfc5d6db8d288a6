#!/usr/bin/env python3

import argparse
import logging
import signal
import sys
from pathlib import Path

from clipshelf.app import ClipShelfApp
from clipshelf.config import AppConfig
from clipshelf.errors import ClipShelfError

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="ClipShelf - Clipboard history with automatic categorization"
    )

    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="SQLite database file (default: <data-dir>/clipshelf.db)"
    )

    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory for the database and exported images (default: ~/.clipshelf)"
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="HTTP API host (default: 127.0.0.1)"
    )

    parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="HTTP API port (default: 3001)"
    )

    parser.add_argument(
        "-i", "--poll-interval",
        type=float,
        default=None,
        help="Clipboard polling interval in seconds (default: 0.25)"
    )

    parser.add_argument(
        "-t", "--session-timeout",
        type=float,
        default=None,
        help="Seconds before an open capture session auto-saves, 0 disables (default: 30)"
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this file"
    )

    parser.add_argument(
        "--no-api",
        action="store_true",
        help="Run the clipboard pipeline without the HTTP API"
    )

    parser.add_argument(
        "--no-hotkey",
        action="store_true",
        help="Do not register the global capture hotkey"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose debug logging"
    )

    return parser.parse_args(argv)


def build_config(args) -> AppConfig:
    config = AppConfig.from_env(env_path=args.env_file)
    return config.with_overrides(
        data_dir=args.data_dir.expanduser() if args.data_dir else None,
        db_path=args.db.expanduser() if args.db else None,
        api_host=args.host,
        api_port=args.port,
        poll_interval=args.poll_interval,
        session_timeout=args.session_timeout,
    )


def serve(app: ClipShelfApp, register_hotkey: bool) -> None:
    import uvicorn

    from clipshelf.api import create_app

    app.start(register_hotkey=register_hotkey)
    try:
        logger.info("API listening on http://%s:%d", app.config.api_host, app.config.api_port)
        uvicorn.run(create_app(app), host=app.config.api_host, port=app.config.api_port, log_level="warning")
    finally:
        app.stop()


def main(argv=None):
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    try:
        app = ClipShelfApp(build_config(args))
    except (ClipShelfError, ValueError) as e:
        logger.error("Could not start ClipShelf: %s", e)
        sys.exit(1)

    if args.no_api:
        def signal_handler(signum, frame):
            app.stop()
            sys.exit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        print("ClipShelf running. Press Ctrl+C to stop")
        try:
            app.run_forever(register_hotkey=not args.no_hotkey)
        except ClipShelfError as e:
            logger.error("Fatal error: %s", e)
            app.stop()
            sys.exit(1)
        return

    try:
        serve(app, register_hotkey=not args.no_hotkey)
    except ClipShelfError as e:
        logger.error("Fatal error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
