"""
Command-line interface tools for the Mood Journal service.
"""

import asyncio
import json
from collections.abc import Callable, Coroutine
from datetime import date, datetime
from pathlib import Path
from typing import Any

import httpx
import typer
from httpx_sse import ServerSentEvent, aconnect_sse

from .config import DEFAULT_DATA_DIR, Settings
from .models import DeliveredNotification, MoodCategory, MoodEntry

DEFAULT_BASE_URL = "http://localhost:8000"

app = typer.Typer(help="Mood Journal CLI tools")

_URL_OPTION = typer.Option(
    DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the Mood Journal service"
)


# MARK: - CLI Entry Points


def cli_main() -> None:
    """Entry point for the mood-journal CLI command."""
    app()


# MARK: - Commands


@app.command()
def add(
    category: MoodCategory = typer.Argument(..., help="The mood category"),
    notes: str = typer.Option("", "--notes", "-n", help="Free-text notes"),
    timestamp: datetime | None = typer.Option(
        None, "--at", help="When the mood applies (defaults to now)"
    ),
    base_url: str = _URL_OPTION,
) -> None:
    """Log a new mood entry."""

    async def _add() -> None:
        payload: dict[str, Any] = {"category": category.value, "notes": notes}
        if timestamp is not None:
            payload["timestamp"] = timestamp.isoformat()

        async with httpx.AsyncClient() as client:
            response = await client.post(f"{base_url}/entries", json=payload)
            response.raise_for_status()
            entry = MoodEntry.model_validate(response.json()["entry"])
            print(f"Logged {entry.id}: {_format_entry(entry)}")

    _run_with_error_handling(_add(), base_url)


@app.command()
def edit(
    entry_id: str = typer.Argument(..., help="Identifier of the entry"),
    category: MoodCategory = typer.Argument(..., help="The new mood category"),
    timestamp: datetime = typer.Option(..., "--at", help="When the mood applies"),
    notes: str = typer.Option("", "--notes", "-n", help="Free-text notes"),
    base_url: str = _URL_OPTION,
) -> None:
    """Replace an existing mood entry."""

    async def _edit() -> None:
        payload = {
            "timestamp": timestamp.isoformat(),
            "category": category.value,
            "notes": notes,
        }
        async with httpx.AsyncClient() as client:
            response = await client.put(f"{base_url}/entries/{entry_id}", json=payload)
            response.raise_for_status()
            entry = MoodEntry.model_validate(response.json()["entry"])
            print(f"Updated {entry.id}: {_format_entry(entry)}")

    _run_with_error_handling(_edit(), base_url)


@app.command()
def remove(
    entry_id: str = typer.Argument(..., help="Identifier of the entry"),
    base_url: str = _URL_OPTION,
) -> None:
    """Delete a mood entry."""

    async def _remove() -> None:
        async with httpx.AsyncClient() as client:
            response = await client.delete(f"{base_url}/entries/{entry_id}")
            response.raise_for_status()
            print(f"Deleted {entry_id}")

    _run_with_error_handling(_remove(), base_url)


@app.command("list")
def list_entries(
    day: datetime | None = typer.Option(
        None, "--date", "-d", formats=["%Y-%m-%d"], help="Day to show (today)"
    ),
    show_all: bool = typer.Option(False, "--all", "-a", help="Show every entry"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output raw JSON"),
    base_url: str = _URL_OPTION,
) -> None:
    """List the entries of a day."""
    selected = day.date() if day else date.today()
    params = {"date": selected.isoformat()}
    if show_all:
        params = {"all": "true"}
    _run_with_error_handling(_print_entries(base_url, params, json_output), base_url)


@app.command()
def search(
    keyword: str = typer.Argument(..., help="Text to look for in notes or moods"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output raw JSON"),
    base_url: str = _URL_OPTION,
) -> None:
    """Search entries by notes or mood label."""
    _run_with_error_handling(
        _print_entries(base_url, {"q": keyword}, json_output), base_url
    )


@app.command()
def watch(base_url: str = _URL_OPTION) -> None:
    """Stream the entry list in real-time."""

    async def _watch() -> None:
        await _consume_stream(f"{base_url}/entries/stream", _handle_entries_event)

    _run_with_error_handling(_watch(), base_url)


@app.command()
def notifications(base_url: str = _URL_OPTION) -> None:
    """Stream delivered notifications in real-time."""

    async def _notifications() -> None:
        await _consume_stream(
            f"{base_url}/notifications/stream", _handle_notification_event
        )

    _run_with_error_handling(_notifications(), base_url)


@app.command("test-notification")
def test_notification(base_url: str = _URL_OPTION) -> None:
    """Schedule the diagnostic notification."""

    async def _test() -> None:
        async with httpx.AsyncClient() as client:
            response = await client.post(f"{base_url}/notifications/test")
            response.raise_for_status()
            if response.json()["scheduled"]:
                print("Test notification scheduled")
            else:
                print("Test notification could not be scheduled")

    _run_with_error_handling(_test(), base_url)


@app.command()
def serve(
    data_dir: Path = typer.Option(
        DEFAULT_DATA_DIR, "--data-dir", help="Directory holding the entry file"
    ),
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to listen on"),
    delay: float = typer.Option(
        1.0, "--notification-delay", help="Seconds before a notification fires"
    ),
    log_level: str = typer.Option("info", "--log-level", help="Logging level"),
) -> None:
    """Run the Mood Journal server."""
    from .server import main

    main(
        Settings(
            data_dir=data_dir,
            host=host,
            port=port,
            notification_delay=delay,
            log_level=log_level,
        )
    )


# MARK: - Private Helpers


def _format_entry(entry: MoodEntry) -> str:
    """Format an entry as a single line."""
    timestamp = entry.timestamp.strftime("%Y-%m-%d %H:%M")
    line = f"{timestamp} {entry.category.glyph} {entry.category.label}"
    if entry.notes:
        line += f" - {entry.notes}"
    return line


async def _print_entries(
    base_url: str, params: dict[str, str], json_output: bool
) -> None:
    async with httpx.AsyncClient() as client:
        response = await client.get(f"{base_url}/entries", params=params)
        response.raise_for_status()
        result = response.json()

    if json_output:
        print(json.dumps(result, indent=2))
        return

    entries = [MoodEntry.model_validate(item) for item in result["entries"]]
    if not entries:
        print("No entries")
    for entry in entries:
        print(f"{entry.id}  {_format_entry(entry)}")


async def _consume_stream(
    url: str, handler: Callable[[ServerSentEvent], None]
) -> None:
    print(f"Streaming from {url}... (Ctrl+C to stop)")

    async with httpx.AsyncClient(timeout=None) as client:
        async with aconnect_sse(client, "GET", url) as event_source:
            async for sse in event_source.aiter_sse():
                handler(sse)


def _decode_event(sse: ServerSentEvent) -> dict[str, Any] | None:
    """Decode an SSE payload, reporting server errors."""
    try:
        if sse.event == "error":
            error_data = json.loads(sse.data)
            print(f"Server error: {error_data.get('error', 'Unknown error')}")
            return None

        raw_data = json.loads(sse.data)
        if "error" in raw_data:
            print(f"Server error: {raw_data['error']}")
            return None
        return raw_data

    except json.JSONDecodeError as e:
        print(f"Warning: Could not parse SSE data: {sse.data} - {e}")
        return None


def _handle_entries_event(sse: ServerSentEvent) -> None:
    """Handle a single entry list snapshot."""
    raw_data = _decode_event(sse)
    if raw_data is None:
        return

    try:
        entries = [MoodEntry.model_validate(item) for item in raw_data["entries"]]
    except Exception as e:
        print(f"Warning: Error processing entry data: {e}")
        return

    print(f"--- {len(entries)} entries")
    for entry in entries:
        print(_format_entry(entry))


def _handle_notification_event(sse: ServerSentEvent) -> None:
    """Handle a single delivered notification."""
    raw_data = _decode_event(sse)
    if raw_data is None:
        return

    try:
        notification = DeliveredNotification.model_validate(raw_data)
    except Exception as e:
        print(f"Warning: Error processing notification data: {e}")
        return

    delivered = notification.delivered_at.strftime("%H:%M:%S")
    print(f"{delivered} > {notification.title}: {notification.body}")


def _run_with_error_handling(coro: Coroutine[Any, Any, Any], base_url: str) -> None:
    """Run an async coroutine with standardized error handling."""
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        print("\nStopped")
        raise typer.Exit(0)
    except httpx.ConnectError:
        print(f"Error: Could not connect to {base_url}")
        raise typer.Exit(1)
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 404:
            print("Error: No such entry")
        else:
            print(f"Error: HTTP {e.response.status_code}")
        raise typer.Exit(1)
    except Exception as e:
        error_msg = str(e) if str(e) else f"Unknown error of type {type(e).__name__}"
        print(f"Error: {error_msg}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
