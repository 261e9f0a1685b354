"""
Praxis entry point.

This file handles startup concerns (arg-parsing, env setup, logging) and launches the appropriate
interface (API server, or API server plus CLI client).
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from praxis.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # Request lines from the gateway are noise at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Praxis agent")
    parser.add_argument(
        "--mode",
        choices=["api", "cli"],
        type=str.lower,
        default="api",
        help="Launch the REST API only, or the API plus an interactive CLI (default: api)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    parser.add_argument(
        "--work-dir",
        default=settings.WORK_DIRECTORY,
        help="Directory the tools are sandboxed to (default from env: %(default)s)",
    )
    return parser


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the Praxis application.

    Parses the command line, initializes logging and the data directory, then starts the API
    server (and, in ``cli`` mode, the interactive client in the foreground).
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = _build_parser()
    args = parser.parse_args(argv)

    settings.LOG_LEVEL = args.log_level
    _init_logging(settings.LOG_LEVEL)

    data_dir = Path(settings.DATA_DIR)
    data_dir.mkdir(parents=True, exist_ok=True)
    if not data_dir.is_dir() or not os.access(data_dir, os.W_OK):
        logger.error("Data directory is not writable: %s", data_dir)
        sys.exit(1)

    if args.work_dir:
        work_dir = Path(args.work_dir).expanduser()
        if not work_dir.is_dir():
            parser.error(f"--work-dir is not a directory: {args.work_dir}")
        settings.WORK_DIRECTORY = str(work_dir.resolve())

    logger.info("Starting Praxis [%s mode]", args.mode)
    logger.debug("Settings: %s", settings.model_dump(exclude={"LLM_API_KEY"}))

    # Imported late so the settings above are in place before the app is built
    from praxis.api.app import run_api  # pylint: disable=import-outside-toplevel

    if args.mode == "api":
        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
        return

    import threading  # pylint: disable=import-outside-toplevel

    from praxis.client.cli import run_cli  # pylint: disable=import-outside-toplevel

    api_thread = threading.Thread(
        target=run_api,
        kwargs={
            "host": "127.0.0.1",
            "port": settings.API_PORT,
            "reload": False,  # reload needs the main thread
            "log_level": "warning",
        },
        daemon=True,
    )
    api_thread.start()
    run_cli()


if __name__ == "__main__":
    main()
