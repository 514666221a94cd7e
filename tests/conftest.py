from __future__ import annotations

import sys
from pathlib import Path

import pytest

_AUTH_ENV_VARS = (
    "GOOGLE_DRIVE_CREDENTIALS_CONFIG",
    "GOOGLE_DRIVE_SERVICE_ACCOUNT_PATH",
    "GOOGLE_DRIVE_OAUTH_CREDENTIALS",
    "GOOGLE_DRIVE_MCP_TOKEN_PATH",
    "GOOGLE_DRIVE_OAUTH_PORTS",
    "GOOGLE_DRIVE_AUTH_TIMEOUT",
    "GOOGLE_DRIVE_AUTH_CONFIG",
)


def pytest_configure() -> None:
    src_root = Path(__file__).resolve().parents[1] / "src"
    sys.path.insert(0, str(src_root))


@pytest.fixture(autouse=True)
def _isolated_auth_environment(monkeypatch) -> None:
    """Keep a developer's real credentials out of the tests."""
    for name in _AUTH_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
