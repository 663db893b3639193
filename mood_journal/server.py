"""
FastAPI server for the Mood Journal.

This module implements the HTTP API over the entry store and the notification
dispatcher, plus Server-Sent Events streams of entry list snapshots and
delivered notifications. It is also the composition root that builds the
store, dispatcher and notification center for a running process.
"""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import date, datetime
from uuid import UUID

from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from . import __version__
from .config import Settings
from .models import MoodCategory, MoodEntry
from .notifications import LocalNotificationCenter, NotificationDispatcher
from .store import EntryStore

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "*",
}


# API Request/Response Schemas
class EntryCreate(BaseModel):
    """Payload for creating an entry."""

    timestamp: datetime | None = Field(None, description="Defaults to now")
    category: MoodCategory = MoodCategory.NEUTRAL
    notes: str = ""


class EntryUpdate(BaseModel):
    """Payload replacing every editable field of an entry."""

    timestamp: datetime
    category: MoodCategory
    notes: str = ""


class BulkDelete(BaseModel):
    """Positions to delete, relative to the selected list."""

    positions: list[int] = Field(..., description="List positions to remove")
    day: date | None = Field(None, description="Day the positions refer to")
    q: str = Field("", description="Search keyword the positions refer to")


class EntryResponse(BaseModel):
    entry: MoodEntry


class EntriesResponse(BaseModel):
    entries: list[MoodEntry]


class CategoryInfo(BaseModel):
    tag: MoodCategory
    label: str
    glyph: str
    color: str
    notification_title: str
    notification_body: str


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _sse_error(error: Exception) -> str:
    return f"event: error\ndata: {json.dumps({'error': str(error)})}\n\n"


def create_app(
    store: EntryStore,
    dispatcher: NotificationDispatcher,
    center: LocalNotificationCenter,
) -> FastAPI:
    """
    Create a FastAPI application around already constructed components.

    Args:
        store: The EntryStore serving entry operations
        dispatcher: The NotificationDispatcher used by the store
        center: The notification center the dispatcher schedules on

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Load entries and ask for notification permission on startup."""
        await store.load()
        await dispatcher.request_permission()
        yield
        await center.aclose()

    app = FastAPI(
        title="Mood Journal",
        description="A local mood log with notifications",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/")
    async def root() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "mood-journal"}

    @app.get("/categories")
    async def categories() -> list[CategoryInfo]:
        """The fixed mood category table."""
        return [
            CategoryInfo(
                tag=category,
                label=category.label,
                glyph=category.glyph,
                color=category.color,
                notification_title=category.notification_title,
                notification_body=category.notification_body,
            )
            for category in MoodCategory
        ]

    @app.get("/entries")
    async def list_entries(
        date: date | None = None,
        q: str = "",
        show_all: bool = Query(False, alias="all"),
    ) -> EntriesResponse:
        """
        List entries the way the journal screen shows them.

        A non-empty keyword searches every entry; otherwise the entries of
        the given day (today by default) are returned.
        """
        if show_all:
            return EntriesResponse(entries=store.entries)
        return EntriesResponse(entries=store.visible(date or datetime.now(), q))

    @app.post("/entries", status_code=201)
    async def create_entry(payload: EntryCreate) -> EntryResponse:
        """Log a new mood and schedule its notification."""
        entry = MoodEntry(
            timestamp=payload.timestamp or datetime.now(),
            category=payload.category,
            notes=payload.notes,
        )
        if not await store.create(entry):
            raise HTTPException(status_code=409, detail=f"Entry {entry.id} exists")
        return EntryResponse(entry=entry)

    @app.put("/entries/{entry_id}")
    async def update_entry(entry_id: UUID, payload: EntryUpdate) -> EntryResponse:
        """Replace an entry and schedule a notification for its category."""
        entry = MoodEntry(id=entry_id, **payload.model_dump())
        if not await store.update(entry):
            raise HTTPException(status_code=404, detail=f"No entry {entry_id}")
        return EntryResponse(entry=entry)

    @app.delete("/entries/{entry_id}", status_code=204)
    async def delete_entry(entry_id: UUID) -> Response:
        """Delete an entry by id."""
        if not await store.delete(entry_id):
            raise HTTPException(status_code=404, detail=f"No entry {entry_id}")
        return Response(status_code=204)

    @app.post("/entries/bulk-delete")
    async def bulk_delete(payload: BulkDelete) -> dict[str, int]:
        """
        Delete entries by position.

        Positions refer to the list selected by ``day`` or ``q`` when either
        is given, and to the full store list otherwise.
        """
        if payload.day is None and not payload.q:
            deleted = await store.delete_at(payload.positions)
            return {"deleted": deleted}

        selected = store.visible(payload.day or datetime.now(), payload.q)
        ids = {
            selected[position].id
            for position in payload.positions
            if 0 <= position < len(selected)
        }
        positions = [
            index for index, entry in enumerate(store.entries) if entry.id in ids
        ]
        deleted = await store.delete_at(positions)
        return {"deleted": deleted}

    @app.get("/entries/stream")
    async def stream_entries() -> StreamingResponse:
        """
        Stream the entry list via Server-Sent Events.

        The current list is sent on connection, then a fresh list after every
        change.
        """

        async def event_generator() -> AsyncGenerator[str, None]:
            try:
                async with store.stream() as snapshots:
                    async for entries in snapshots:
                        yield _sse(
                            EntriesResponse(entries=entries).model_dump(mode="json")
                        )
            except asyncio.CancelledError:
                # Client disconnected
                pass
            except Exception as e:
                yield _sse_error(e)

        return StreamingResponse(
            event_generator(), media_type="text/event-stream", headers=SSE_HEADERS
        )

    @app.post("/notifications/test")
    async def test_notification() -> dict[str, bool]:
        """Schedule the diagnostic notification."""
        return {"scheduled": await dispatcher.notify_test()}

    @app.get("/notifications/stream")
    async def stream_notifications() -> StreamingResponse:
        """Stream notifications as they are delivered."""

        async def event_generator() -> AsyncGenerator[str, None]:
            try:
                async with center.stream() as notifications:
                    async for notification in notifications:
                        yield _sse(notification.model_dump(mode="json"))
            except asyncio.CancelledError:
                pass
            except Exception as e:
                yield _sse_error(e)

        return StreamingResponse(
            event_generator(), media_type="text/event-stream", headers=SSE_HEADERS
        )

    return app


def build_app(settings: Settings) -> FastAPI:
    """Wire the store, dispatcher and notification center from settings."""
    center = LocalNotificationCenter(grant_permission=settings.grant_notifications)
    dispatcher = NotificationDispatcher(center, delay=settings.notification_delay)
    store = EntryStore(settings.entries_path, dispatcher)
    logger.info("Using entry file %s", settings.entries_path)
    return create_app(store, dispatcher, center)


def create_default_app() -> FastAPI:
    """Application factory used by uvicorn."""
    return build_app(Settings())


def main(settings: Settings | None = None) -> None:
    """Main entry point for the server."""
    import uvicorn

    settings = settings or Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        build_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
