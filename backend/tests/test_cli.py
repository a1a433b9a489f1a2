"""CLI tests against a stubbed HTTP backend."""

from __future__ import annotations

from pathlib import Path

import pytest
import requests
from typer.testing import CliRunner

from code_chronicle.cli import main as cli

runner = CliRunner()


class FakeResponse:
    def __init__(self, payload: object, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = str(payload)

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> object:
        return self._payload


@pytest.fixture
def calls(monkeypatch: pytest.MonkeyPatch) -> list[dict]:
    recorded: list[dict] = []
    responses: dict[tuple[str, str], FakeResponse] = {
        ("GET", "/status"): FakeResponse({"enabled": True, "snapshots": 2}),
        ("POST", "/snapshots"): FakeResponse({"created": True, "snapshot": {"id": "snap-1"}}),
        ("POST", "/rebuild"): FakeResponse(
            {"content": "restored text\n", "patches_applied": 3, "recoveries": 1, "source": "patches"}
        ),
        ("GET", "/snapshots/snap-missing/files"): FakeResponse(
            {"detail": {"code": "snapshot_not_found", "message": "Snapshot snap-missing does not exist"}}, 404
        ),
        ("POST", "/clear"): FakeResponse({"status": "ok"}),
    }

    def fake_request(method: str, url: str, timeout: int, **kwargs) -> FakeResponse:
        path = url.split("://", 1)[1].split("/", 1)[1]
        recorded.append({"method": method, "url": url, **kwargs})
        return responses.get((method, f"/{path}"), FakeResponse({}))

    monkeypatch.setattr(requests, "request", fake_request)
    return recorded


def test_status_uses_host_from_environment(calls: list[dict], monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHRON_HOST", "http://chronicle.local:9000/")
    result = runner.invoke(cli.app, ["status"])
    assert result.exit_code == 0
    assert '"snapshots": 2' in result.stdout
    assert calls[0]["url"] == "http://chronicle.local:9000/status"


def test_capture_sends_affected_paths(calls: list[dict]) -> None:
    result = runner.invoke(cli.app, ["capture", "Before refactor", "--path", "a.py", "--path", "b.py"])
    assert result.exit_code == 0
    assert calls[0]["json"] == {"description": "Before refactor", "affected_paths": ["a.py", "b.py"]}


def test_rebuild_writes_output_file(calls: list[dict], tmp_path: Path) -> None:
    target = tmp_path / "restored.py"
    result = runner.invoke(cli.app, ["rebuild", "src/app.py", "1700000000000", "-o", str(target)])
    assert result.exit_code == 0
    assert target.read_text(encoding="utf-8") == "restored text\n"
    assert "3 patches, 1 recoveries" in result.stdout
    assert calls[0]["json"] == {"path": "src/app.py", "timestamp": 1700000000000}


def test_rebuild_prints_content(calls: list[dict]) -> None:
    result = runner.invoke(cli.app, ["rebuild", "src/app.py", "5"])
    assert result.exit_code == 0
    assert result.stdout == "restored text\n"


def test_failed_request_exits_non_zero(calls: list[dict]) -> None:
    result = runner.invoke(cli.app, ["snapshots", "files", "snap-missing"])
    assert result.exit_code == 1


def test_clear_requires_confirmation(calls: list[dict]) -> None:
    result = runner.invoke(cli.app, ["clear"], input="n\n")
    assert result.exit_code == 1
    assert calls == []

    result = runner.invoke(cli.app, ["clear", "--yes"])
    assert result.exit_code == 0
    assert calls[0]["method"] == "POST"


def test_rebuild_accepts_iso_datetimes(calls: list[dict]) -> None:
    result = runner.invoke(cli.app, ["rebuild", "src/app.py", "2023-11-14T22:13:20Z"])
    assert result.exit_code == 0
    assert calls[0]["json"]["timestamp"] == 1700000000000

    result = runner.invoke(cli.app, ["rebuild", "src/app.py", "yesterday"])
    assert result.exit_code == 2
    assert len(calls) == 1
