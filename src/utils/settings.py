"""Runtime settings for drive-auth.

Settings come from an optional YAML file and environment variables, with the
environment winning. The YAML file may hold the keys below at top level or
wrapped in an `auth:` section:

```yaml
auth:
  oauth_credentials_path: ~/secrets/gcp-oauth.keys.json
  token_path: ~/.config/google-drive-mcp/tokens.json
  service_account_path: /var/run/secrets/sa.json
  oauth_ports: "3000-3004"
  auth_timeout: 300
```

Inline service account JSON is only accepted from the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from auth.credentials import INLINE_CREDENTIALS_ENV_VAR, KEY_FILE_ENV_VAR

DEFAULT_SETTINGS_CONFIG = "config/auth.yaml"
SETTINGS_CONFIG_ENV_VAR = "GOOGLE_DRIVE_AUTH_CONFIG"
OAUTH_CREDENTIALS_ENV_VAR = "GOOGLE_DRIVE_OAUTH_CREDENTIALS"
TOKEN_PATH_ENV_VAR = "GOOGLE_DRIVE_MCP_TOKEN_PATH"
OAUTH_PORTS_ENV_VAR = "GOOGLE_DRIVE_OAUTH_PORTS"
AUTH_TIMEOUT_ENV_VAR = "GOOGLE_DRIVE_AUTH_TIMEOUT"

DEFAULT_OAUTH_CREDENTIALS_PATH = "gcp-oauth.keys.json"
DEFAULT_TOKEN_PATH = "~/.config/google-drive-mcp/tokens.json"
DEFAULT_OAUTH_PORTS: tuple[int, ...] = tuple(range(3000, 3005))


@dataclass(frozen=True)
class AuthSettings:
    """Resolved configuration for both credential strategies."""

    credentials_config: str | None = None
    service_account_path: str | None = None
    oauth_credentials_path: str = DEFAULT_OAUTH_CREDENTIALS_PATH
    token_path: str = DEFAULT_TOKEN_PATH
    oauth_ports: tuple[int, ...] = DEFAULT_OAUTH_PORTS
    auth_timeout: float | None = None

    @property
    def uses_service_account(self) -> bool:
        """True when either service account source is configured."""
        return bool(
            (self.credentials_config and self.credentials_config.strip())
            or self.service_account_path,
        )


def parse_port_range(value: Any) -> tuple[int, ...]:
    """Parse ``"3000-3004"``, ``"3000,3001"``, a single port, or a YAML list/mapping.

    Raises:
        ValueError: If the value does not describe at least one valid TCP port.
    """
    ports: list[int]
    try:
        if isinstance(value, bool):
            raise TypeError(value)
        if isinstance(value, int):
            ports = [value]
        elif isinstance(value, (list, tuple)):
            ports = [int(p) for p in value]
        elif isinstance(value, dict):
            ports = list(range(int(value["start"]), int(value["end"]) + 1))
        else:
            text = str(value).strip()
            if "-" in text:
                start, end = (part.strip() for part in text.split("-", 1))
                ports = list(range(int(start), int(end) + 1))
            else:
                ports = [int(part) for part in text.split(",") if part.strip()]
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid port range: {value!r}") from exc

    if not ports or any(p < 1 or p > 65535 for p in ports):
        raise ValueError(f"Invalid port range: {value!r}")
    return tuple(ports)


def _parse_timeout(value: Any, key: str) -> float | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        timeout = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} must be a number of seconds.") from exc
    if timeout <= 0:
        raise ValueError(f"{key} must be positive.")
    return timeout


def _resolve_config_path(config_path: str | None, environ: Mapping[str, str]) -> Path | None:
    if config_path:
        return Path(config_path)

    env_path = environ.get(SETTINGS_CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    default_path = Path(DEFAULT_SETTINGS_CONFIG)
    if default_path.exists():
        return default_path

    return None


def _load_settings_file(config_path: str | None, environ: Mapping[str, str]) -> dict[str, Any]:
    path_to_load = _resolve_config_path(config_path, environ)
    if not path_to_load or not path_to_load.exists():
        return {}

    with open(path_to_load, "r", encoding="utf-8") as config_file:
        raw_data = yaml.safe_load(config_file) or {}

    if not isinstance(raw_data, dict):
        raise ValueError("Auth config must be a mapping.")

    section = raw_data.get("auth", raw_data)
    if not isinstance(section, dict):
        raise ValueError("Auth config must be a mapping.")
    return section


def load_settings(
    config_path: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> AuthSettings:
    """Load settings from the YAML config and the environment.

    Args:
        config_path: Optional explicit YAML path. Falls back to
            ``GOOGLE_DRIVE_AUTH_CONFIG`` and then ``config/auth.yaml``.
        environ: Environment mapping, defaults to ``os.environ``.

    Returns:
        The merged settings; environment variables override file values.

    Raises:
        ValueError: If a port range or timeout value is malformed.
    """
    env = os.environ if environ is None else environ
    file_values = _load_settings_file(config_path, env)

    def pick(env_var: str, key: str, default: Any = None) -> Any:
        value = env.get(env_var)
        if value:
            return value
        file_value = file_values.get(key)
        return default if file_value is None else file_value

    ports_value = pick(OAUTH_PORTS_ENV_VAR, "oauth_ports")
    service_account_path = pick(KEY_FILE_ENV_VAR, "service_account_path")

    return AuthSettings(
        credentials_config=env.get(INLINE_CREDENTIALS_ENV_VAR) or None,
        service_account_path=str(service_account_path) if service_account_path else None,
        oauth_credentials_path=str(
            pick(OAUTH_CREDENTIALS_ENV_VAR, "oauth_credentials_path", DEFAULT_OAUTH_CREDENTIALS_PATH),
        ),
        token_path=str(pick(TOKEN_PATH_ENV_VAR, "token_path", DEFAULT_TOKEN_PATH)),
        oauth_ports=(
            parse_port_range(ports_value) if ports_value is not None else DEFAULT_OAUTH_PORTS
        ),
        auth_timeout=_parse_timeout(
            pick(AUTH_TIMEOUT_ENV_VAR, "auth_timeout"),
            AUTH_TIMEOUT_ENV_VAR,
        ),
    )
