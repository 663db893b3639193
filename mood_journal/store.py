"""
Mood entry storage for the Mood Journal.

This module provides the store that owns the list of mood entries. The full
list is kept in memory and written to a single JSON file on every mutation,
replacing the previous snapshot atomically. Subscribers can stream list
snapshots to re-render whenever the list changes.
"""

import asyncio
import logging
import os
import tempfile
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager
from datetime import date, datetime
from pathlib import Path
from uuid import UUID

from pydantic import TypeAdapter, ValidationError

from .models import MoodEntry
from .notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

_ENTRY_LIST = TypeAdapter(list[MoodEntry])


def _atomic_write(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _unique_entries(entries: list[MoodEntry]) -> list[MoodEntry]:
    # First occurrence of an id wins.
    seen: set[UUID] = set()
    unique = []
    for entry in entries:
        if entry.id not in seen:
            seen.add(entry.id)
            unique.append(entry)
    return unique


class EntryStore:
    """
    In-memory list of mood entries synchronized to a snapshot file.

    Every mutation rewrites the whole file, then notifies stream subscribers.
    Creates and successful updates also schedule a notification for the
    entry's category. Storage and notification failures are logged and never
    raised to the caller.
    """

    def __init__(self, path: Path, dispatcher: NotificationDispatcher) -> None:
        self._path = Path(path)
        self._dispatcher = dispatcher
        self._entries: list[MoodEntry] = []
        self._condition = asyncio.Condition()
        self._update_counter = 0

    @property
    def entries(self) -> list[MoodEntry]:
        return list(self._entries)

    async def load(self) -> bool:
        """
        Replace the in-memory list with the contents of the snapshot file.

        A missing file yields an empty list. An unreadable or invalid file
        also yields an empty list, and the failure is logged. Records that
        repeat an earlier id are dropped.

        Returns:
            True if the list reflects the file (or there was no file)
        """
        try:
            payload = await asyncio.to_thread(self._path.read_bytes)
            entries = _ENTRY_LIST.validate_json(payload)
        except FileNotFoundError:
            logger.debug("No entry file at %s, starting empty", self._path)
            entries, loaded = [], True
        except (OSError, ValidationError):
            logger.warning(
                "Could not load entries from %s, starting empty",
                self._path,
                exc_info=True,
            )
            entries, loaded = [], False
        else:
            unique = _unique_entries(entries)
            loaded = len(unique) == len(entries)
            if not loaded:
                logger.warning(
                    "Dropped %d entries with repeated ids from %s",
                    len(entries) - len(unique),
                    self._path,
                )
            entries = unique
            logger.info("Loaded %d entries from %s", len(entries), self._path)

        async with self._condition:
            self._entries = entries
            self._changed()
        return loaded

    async def save(self) -> bool:
        """
        Write the full list to the snapshot file atomically.

        Returns:
            True once the new snapshot has replaced the old one
        """
        payload = _ENTRY_LIST.dump_json(list(self._entries), indent=2)
        try:
            await asyncio.to_thread(_atomic_write, self._path, payload)
        except OSError:
            logger.warning(
                "Could not save entries to %s", self._path, exc_info=True
            )
            return False

        logger.debug("Saved %d entries to %s", len(self._entries), self._path)
        return True

    async def create(self, entry: MoodEntry) -> bool:
        """
        Append an entry, persist the list and notify for its category.

        Returns:
            False if an entry with the same id is already held; nothing is
            saved or notified then
        """
        async with self._condition:
            if self._index_of(entry.id) is not None:
                logger.warning("Create ignored, id %s is already held", entry.id)
                return False

            self._entries.append(entry)
            await self.save()
            self._changed()

        await self._dispatcher.notify(entry.category)
        return True

    async def update(self, entry: MoodEntry) -> bool:
        """
        Replace the entry with the same id, keeping its position.

        Returns:
            False if no entry has that id; the list is then left untouched
        """
        async with self._condition:
            index = self._index_of(entry.id)
            if index is None:
                logger.debug("Update ignored, no entry with id %s", entry.id)
                return False

            self._entries[index] = entry
            await self.save()
            self._changed()

        await self._dispatcher.notify(entry.category)
        return True

    async def delete(self, entry_id: UUID) -> bool:
        """Remove the entry with the given id, if any."""
        async with self._condition:
            index = self._index_of(entry_id)
            if index is None:
                return False

            del self._entries[index]
            await self.save()
            self._changed()
            return True

    async def delete_at(self, positions: Iterable[int]) -> int:
        """
        Remove the entries at the given list positions.

        Out-of-range positions are ignored.

        Returns:
            The number of entries removed
        """
        async with self._condition:
            size = len(self._entries)
            wanted = set(positions)
            valid = {position for position in wanted if 0 <= position < size}
            if len(valid) != len(wanted):
                logger.debug(
                    "Ignoring out-of-range positions %s", sorted(wanted - valid)
                )

            self._entries = [
                entry
                for position, entry in enumerate(self._entries)
                if position not in valid
            ]
            await self.save()
            self._changed()
            return len(valid)

    def query(self, day: date | datetime) -> list[MoodEntry]:
        """Entries whose timestamp falls on the given local calendar day."""
        if isinstance(day, datetime):
            day = day.astimezone().date() if day.tzinfo else day.date()
        return [entry for entry in self._entries if entry.local_day == day]

    def search(self, keyword: str) -> list[MoodEntry]:
        """Entries whose notes or category label contain the keyword."""
        if not keyword:
            return self.entries
        return [entry for entry in self._entries if entry.matches(keyword)]

    def visible(self, day: date | datetime, keyword: str = "") -> list[MoodEntry]:
        """The list a screen shows: search results, or the day's entries."""
        if keyword:
            return self.search(keyword)
        return self.query(day)

    @asynccontextmanager
    async def stream(
        self,
    ) -> AsyncGenerator[AsyncGenerator[list[MoodEntry], None], None]:
        """
        Stream entry list snapshots to a subscriber.

        The generator produces the current list immediately and then a fresh
        snapshot after every change.

        Yields:
            An async generator of entry lists
        """

        async def snapshot_generator() -> AsyncGenerator[list[MoodEntry], None]:
            async with self._condition:
                last_seen_counter = self._update_counter
                snapshot = self.entries
            yield snapshot

            try:
                while True:
                    async with self._condition:
                        await self._condition.wait_for(
                            lambda: self._update_counter > last_seen_counter
                        )
                        last_seen_counter = self._update_counter
                        snapshot = self.entries
                    yield snapshot

            except (asyncio.CancelledError, GeneratorExit):
                return

        yield snapshot_generator()

    def _index_of(self, entry_id: UUID) -> int | None:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return index
        return None

    def _changed(self) -> None:
        # Caller holds the condition lock.
        self._update_counter += 1
        self._condition.notify_all()
