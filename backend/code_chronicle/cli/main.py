"""CLI entrypoint for Code Chronicle."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import requests
import typer

from code_chronicle.utils.time import parse_timestamp

app = typer.Typer(name="chron", help="Code Chronicle command-line interface")
snapshots_app = typer.Typer(name="snapshots", help="Inspect and manage workspace snapshots")
app.add_typer(snapshots_app, name="snapshots")

DEFAULT_HOST = "http://127.0.0.1:5180"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("CHRON_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=60, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo(resp: requests.Response) -> None:
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def serve(
    bind: str = typer.Option("127.0.0.1", "--bind", help="Interface to listen on"),
    port: int = typer.Option(5180, "--port", help="Port to listen on"),
) -> None:
    """Run the HTTP service for the configured workspace."""
    import uvicorn

    uvicorn.run("code_chronicle.app:app", host=bind, port=port)


@app.command()
def status(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    """Show recording state and store statistics."""
    _echo(_request("GET", "/status", host=host))


@app.command()
def capture(
    description: str = typer.Argument("Manual snapshot", help="Snapshot description"),
    path: list[str] = typer.Option([], "--path", help="Path affected by this change; repeatable"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Capture the workspace as a snapshot."""
    _echo(_request("POST", "/snapshots", host=host, json={"description": description, "affected_paths": path}))


@app.command()
def rebuild(
    path: str = typer.Argument(..., help="Workspace-relative file path"),
    timestamp: str = typer.Argument(..., help="Milliseconds since the epoch or an ISO-8601 datetime"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write content to this file"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Reconstruct a file as it was at TIMESTAMP."""
    try:
        millis = parse_timestamp(timestamp)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="TIMESTAMP") from None
    resp = _request("POST", "/rebuild", host=host, json={"path": path, "timestamp": millis})
    payload = resp.json()
    if output is not None:
        output.expanduser().write_text(payload["content"], encoding="utf-8")
        typer.echo(f"Wrote {output} ({payload['patches_applied']} patches, {payload['recoveries']} recoveries)")
        return
    typer.echo(payload["content"], nl=False)


@app.command()
def timestamps(
    path: str = typer.Argument(..., help="Workspace-relative file path"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List the recorded change times of a file."""
    _echo(_request("GET", "/timestamps", host=host, params={"path": path}))


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Delete all recorded history."""
    if not yes:
        typer.confirm("Delete all recorded history?", abort=True)
    _echo(_request("POST", "/clear", host=host))


@app.command()
def enable(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    """Turn recording on."""
    _echo(_request("POST", "/enabled", host=host, json={"enabled": True}))


@app.command()
def disable(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    """Turn recording off."""
    _echo(_request("POST", "/enabled", host=host, json={"enabled": False}))


@snapshots_app.command("list")
def list_snapshots(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    """List retained snapshots."""
    _echo(_request("GET", "/snapshots", host=host))


@snapshots_app.command("files")
def snapshot_files(
    snapshot_id: str = typer.Argument(..., help="Snapshot identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List the files held by a snapshot."""
    _echo(_request("GET", f"/snapshots/{snapshot_id}/files", host=host))


@snapshots_app.command("show")
def show_file(
    snapshot_id: str = typer.Argument(..., help="Snapshot identifier"),
    path: str = typer.Argument(..., help="Workspace-relative file path"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Print a file as it was in a snapshot."""
    resp = _request("GET", f"/snapshots/{snapshot_id}/content", host=host, params={"path": path})
    typer.echo(resp.json()["content"], nl=False)


@snapshots_app.command("rename")
def rename_snapshot(
    snapshot_id: str = typer.Argument(..., help="Snapshot identifier"),
    description: str = typer.Argument(..., help="New description"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Change a snapshot's description."""
    _echo(_request("PATCH", f"/snapshots/{snapshot_id}", host=host, json={"description": description}))


@snapshots_app.command("export")
def export_snapshot(
    snapshot_id: str = typer.Argument(..., help="Snapshot identifier"),
    destination: Path = typer.Argument(..., help="Directory to write files into"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Write a snapshot's files into DESTINATION."""
    payload = {"destination": str(destination.expanduser().resolve())}
    _echo(_request("POST", f"/snapshots/{snapshot_id}/export", host=host, json=payload))


@snapshots_app.command("restore")
def restore_snapshot(
    snapshot_id: str = typer.Argument(..., help="Snapshot identifier"),
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Make the workspace match a snapshot, deleting files it does not hold."""
    if not yes:
        typer.confirm("Overwrite the workspace with this snapshot?", abort=True)
    _echo(_request("POST", f"/snapshots/{snapshot_id}/restore", host=host))


if __name__ == "__main__":
    app()
