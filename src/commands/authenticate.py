#!/usr/bin/env python3
"""
Run the interactive Google OAuth flow and store the resulting tokens.

Exits 0 when usable tokens exist afterwards, 1 otherwise.
"""
import argparse
import asyncio
import pathlib
import sys
from typing import List, NoReturn, Optional

SRC_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from auth.orchestrator import run_auth_flow  # noqa: E402
from utils.logging_config import configure_logging  # noqa: E402
from utils.settings import load_settings  # noqa: E402


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Authorize Google Drive access for this machine via the browser OAuth flow.",
    )
    parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Do not open a browser; print the authorization URL for manual use instead.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Discard stored tokens and sign in again even if they are still valid.",
    )
    parser.add_argument(
        "--config-path",
        help="Optional YAML settings file. Defaults to $GOOGLE_DRIVE_AUTH_CONFIG or config/auth.yaml.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for diagnostics written to stderr. Default: INFO",
    )
    return parser.parse_args(argv)


def run_auth_command(argv: Optional[List[str]] = None) -> NoReturn:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        settings = load_settings(args.config_path)
    except ValueError as error:
        print(f"Configuration error: {error}", file=sys.stderr)
        sys.exit(1)

    try:
        status = asyncio.run(
            run_auth_flow(settings, open_browser=not args.no_browser, force=args.force),
        )
    except KeyboardInterrupt:
        print("\n\nAuthentication cancelled", file=sys.stderr)
        sys.exit(1)
    sys.exit(status)


def main():
    run_auth_command()


if __name__ == "__main__":
    main()
