from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

import commands.authenticate as authenticate_cmd
import commands.list_drive_files as list_files_cmd
from auth.errors import MissingFieldsError


class _FakeRequest:
    def __init__(self, payload: dict):
        self._payload = payload

    def execute(self) -> dict:
        return self._payload


class _FakeFilesResource:
    def __init__(self, pages: dict):
        self._pages = pages
        self.calls: list[dict] = []

    def list(self, **kwargs) -> _FakeRequest:
        self.calls.append(kwargs)
        return _FakeRequest(self._pages[kwargs.get("pageToken")])


class _FakeDriveService:
    def __init__(self, pages: dict):
        self.files_resource = _FakeFilesResource(pages)

    def files(self) -> _FakeFilesResource:
        return self.files_resource


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch) -> None:
    monkeypatch.setattr(authenticate_cmd, "configure_logging", MagicMock())
    monkeypatch.setattr(list_files_cmd, "configure_logging", MagicMock())


def test_auth_command_exits_with_flow_status(monkeypatch) -> None:
    run_flow = AsyncMock(return_value=0)
    monkeypatch.setattr(authenticate_cmd, "run_auth_flow", run_flow)
    monkeypatch.setattr(authenticate_cmd, "load_settings", MagicMock(return_value="settings"))

    with pytest.raises(SystemExit) as excinfo:
        authenticate_cmd.run_auth_command(["--no-browser", "--force"])

    assert excinfo.value.code == 0
    run_flow.assert_awaited_once_with("settings", open_browser=False, force=True)


def test_auth_command_propagates_failure_status(monkeypatch) -> None:
    monkeypatch.setattr(authenticate_cmd, "run_auth_flow", AsyncMock(return_value=1))
    monkeypatch.setattr(authenticate_cmd, "load_settings", MagicMock(return_value="settings"))

    with pytest.raises(SystemExit) as excinfo:
        authenticate_cmd.run_auth_command([])

    assert excinfo.value.code == 1


def test_auth_command_rejects_bad_configuration(monkeypatch, capsys) -> None:
    monkeypatch.setenv("GOOGLE_DRIVE_OAUTH_PORTS", "not-a-port")
    run_flow = AsyncMock(return_value=0)
    monkeypatch.setattr(authenticate_cmd, "run_auth_flow", run_flow)

    with pytest.raises(SystemExit) as excinfo:
        authenticate_cmd.run_auth_command([])

    assert excinfo.value.code == 1
    assert "Invalid port range" in capsys.readouterr().err
    run_flow.assert_not_called()


def test_fetch_files_paginates_up_to_limit() -> None:
    service = _FakeDriveService(
        {
            None: {"files": [{"id": "1", "name": "a"}], "nextPageToken": "p2"},
            "p2": {"files": [{"id": "2", "name": "b"}, {"id": "3", "name": "c"}]},
        },
    )

    files = list_files_cmd.fetch_files(service, limit=2)

    assert [f["id"] for f in files] == ["1", "2"]
    assert service.files_resource.calls[0]["pageSize"] == 2
    assert service.files_resource.calls[1]["pageToken"] == "p2"


def test_list_drive_files_writes_output(monkeypatch, tmp_path) -> None:
    service = _FakeDriveService({None: {"files": [{"id": "1", "name": "Doc"}]}})
    monkeypatch.setattr(list_files_cmd, "get_credentials", AsyncMock(return_value="creds"))
    build = MagicMock(return_value=service)
    monkeypatch.setattr(list_files_cmd, "build_service", build)
    output = tmp_path / "files.json"

    list_files_cmd.main(["--output", str(output), "--limit", "5"])

    build.assert_called_once_with("drive", "v3", "creds")
    assert json.loads(output.read_text(encoding="utf-8")) == {"files": [{"id": "1", "name": "Doc"}]}


def test_list_drive_files_exits_on_auth_error(monkeypatch, capsys) -> None:
    monkeypatch.setattr(
        list_files_cmd,
        "get_credentials",
        AsyncMock(side_effect=MissingFieldsError("GOOGLE_DRIVE_SERVICE_ACCOUNT_PATH", ["private_key"])),
    )

    with pytest.raises(SystemExit) as excinfo:
        list_files_cmd.main([])

    assert excinfo.value.code == 1
    assert "missing required field(s): private_key" in capsys.readouterr().err


@pytest.mark.parametrize("limit", ["0", "-3", "many"])
def test_list_drive_files_rejects_non_positive_limit(limit, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        list_files_cmd.parse_args(["--limit", limit])

    assert excinfo.value.code == 2
    assert "--limit" in capsys.readouterr().err


def test_list_drive_files_accepts_positive_limit() -> None:
    assert list_files_cmd.parse_args(["--limit", "1"]).limit == 1
