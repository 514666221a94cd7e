#!/usr/bin/env python3
"""
Verify configured credentials by listing Google Drive files they can see.
"""
import argparse
import asyncio
import json
import pathlib
import sys
from typing import Any, Dict, List, Optional

from googleapiclient.errors import HttpError

SRC_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from auth.errors import AuthError  # noqa: E402
from auth.orchestrator import get_credentials  # noqa: E402
from utils.google_api import build_service, execute_with_retry, list_all_pages  # noqa: E402
from utils.logging_config import configure_logging  # noqa: E402
from utils.settings import load_settings  # noqa: E402

FILE_FIELDS = "nextPageToken, files(id, name, mimeType, modifiedTime)"


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def fetch_files(service, limit: int) -> List[Dict[str, Any]]:
    """Return up to `limit` files visible to the authenticated identity."""

    def fetch_page(page_token: Optional[str]) -> Dict[str, Any]:
        request = service.files().list(
            pageSize=min(limit, 100),
            pageToken=page_token,
            fields=FILE_FIELDS,
            supportsAllDrives=True,
            includeItemsFromAllDrives=True,
        )
        return execute_with_retry(request.execute, operation="Drive files.list")

    return list_all_pages(fetch_page, items_field="files", limit=limit)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "List Google Drive files using the configured credentials "
            "(service account if configured, otherwise OAuth user tokens)."
        ),
    )
    parser.add_argument(
        "--limit",
        type=_positive_int,
        default=10,
        help="Maximum number of files to list. Default: 10",
    )
    parser.add_argument(
        "--config-path",
        help="Optional YAML settings file. Defaults to $GOOGLE_DRIVE_AUTH_CONFIG or config/auth.yaml.",
    )
    parser.add_argument(
        "--output",
        help="Optional path to write the results as JSON. Defaults to printing to stdout.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    configure_logging("INFO")

    try:
        settings = load_settings(args.config_path)
        credentials = asyncio.run(get_credentials(settings))
    except (AuthError, ValueError) as error:
        print(f"Error: {error}", file=sys.stderr)
        sys.exit(1)

    try:
        service = build_service("drive", "v3", credentials)
        files = fetch_files(service, args.limit)

        output = json.dumps({"files": files}, indent=2, ensure_ascii=False)
        if args.output:
            with open(args.output, "w", encoding="utf-8") as handle:
                handle.write(output)
            print(f"Wrote {len(files)} Drive files to {args.output}")
        else:
            print(output)
    except HttpError as error:
        print(f"Drive API error: {error}", file=sys.stderr)
        raise


if __name__ == "__main__":
    main()
