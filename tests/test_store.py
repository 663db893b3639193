"""
Tests for the EntryStore implementation.

These tests verify the core functionality of the entry store, including
persistence, mutations, queries and streaming of list snapshots.
"""

import asyncio
import json
import logging
import os
from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import pytest

from mood_journal.models import MoodCategory, MoodEntry
from mood_journal.store import EntryStore


class FakeDispatcher:
    """Records the categories it is asked to notify for."""

    def __init__(self) -> None:
        self.notified: list[MoodCategory] = []

    async def notify(self, category: MoodCategory) -> bool:
        self.notified.append(category)
        return True


class TestEntryStore:
    """Test suite for EntryStore functionality."""

    @pytest.fixture(autouse=True)
    def setup_store(self, tmp_path):
        """Set up a fresh EntryStore in a temporary directory for each test."""
        self.path = tmp_path / "MoodEntries.json"
        self.dispatcher = FakeDispatcher()
        self.store = EntryStore(self.path, self.dispatcher)

    def _stored_records(self) -> list[dict]:
        return json.loads(self.path.read_text(encoding="utf-8"))

    async def test_load_without_file(self):
        """Test that a missing file loads as an empty list."""
        assert await self.store.load() is True
        assert self.store.entries == []

    async def test_load_corrupt_file_resets(self):
        """Test that an unreadable file resets the list instead of raising."""
        await self.store.create(MoodEntry(category=MoodCategory.SAD))
        self.path.write_text("{not json", encoding="utf-8")

        assert await self.store.load() is False
        assert self.store.entries == []

    async def test_load_invalid_category_resets(self):
        """Test that records failing validation reset the list."""
        record = {
            "id": str(uuid4()),
            "timestamp": "2024-05-01T10:00:00",
            "category": "ecstatic",
            "notes": "",
        }
        self.path.write_text(json.dumps([record]), encoding="utf-8")

        assert await self.store.load() is False
        assert self.store.entries == []

    async def test_create_and_delete_scenario(self):
        """Test create then delete against the file and the notifications."""
        await self.store.load()
        entry = MoodEntry(category=MoodCategory.HAPPY, notes="sunny")

        await self.store.create(entry)

        assert self.store.entries == [entry]
        records = self._stored_records()
        assert len(records) == 1
        assert records[0]["id"] == str(entry.id)
        assert records[0]["category"] == "happy"
        assert self.dispatcher.notified == [MoodCategory.HAPPY]

        assert await self.store.delete(entry.id) is True
        assert self.store.entries == []
        assert self._stored_records() == []
        assert self.dispatcher.notified == [MoodCategory.HAPPY]

    async def test_create_rejects_held_id(self):
        """Test that an id already in the store cannot be created again."""
        entry = MoodEntry(category=MoodCategory.HAPPY, notes="once")
        assert await self.store.create(entry) is True

        again = entry.model_copy(update={"notes": "twice"})
        assert await self.store.create(again) is False

        assert self.store.entries == [entry]
        assert [r["notes"] for r in self._stored_records()] == ["once"]
        assert self.dispatcher.notified == [MoodCategory.HAPPY]

        assert await self.store.delete(entry.id) is True
        assert self.store.entries == []

    async def test_load_drops_repeated_ids(self):
        """Test that a file repeating an id loads only the first record."""
        first = MoodEntry(notes="first")
        copy = first.model_copy(update={"notes": "copy"})
        other = MoodEntry(notes="other")
        records = [e.model_dump(mode="json") for e in (first, copy, other)]
        self.path.write_text(json.dumps(records), encoding="utf-8")

        assert await self.store.load() is False
        assert self.store.entries == [first, other]

    async def test_create_then_query(self):
        """Test that a created entry is returned once for its day."""
        entry = MoodEntry(timestamp=datetime(2024, 5, 1, 9, 30), notes="coffee")
        other = MoodEntry(timestamp=datetime(2024, 5, 2, 9, 30))
        await self.store.create(entry)
        await self.store.create(other)

        assert self.store.query(date(2024, 5, 1)) == [entry]
        assert self.store.query(datetime(2024, 5, 2, 23, 59)) == [other]
        assert self.store.query(date(2024, 5, 3)) == []

    async def test_query_aware_timestamp(self):
        """Test that aware timestamps are matched on their local day."""
        moment = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc).astimezone()
        entry = MoodEntry(timestamp=moment)
        await self.store.create(entry)

        assert self.store.query(moment.date()) == [entry]

    async def test_update_replaces_in_place(self):
        """Test that update keeps the list position and other entries."""
        first = MoodEntry(notes="first")
        second = MoodEntry(notes="second", category=MoodCategory.ANXIOUS)
        third = MoodEntry(notes="third")
        for entry in (first, second, third):
            await self.store.create(entry)

        changed = second.model_copy(
            update={"category": MoodCategory.JOYFUL, "notes": "better now"}
        )
        assert await self.store.update(changed) is True

        assert self.store.entries == [first, changed, third]
        assert self._stored_records()[1]["notes"] == "better now"
        assert self.dispatcher.notified[-1] == MoodCategory.JOYFUL

    async def test_update_unknown_id(self):
        """Test that updating a missing entry leaves everything unchanged."""
        entry = MoodEntry(notes="kept")
        await self.store.create(entry)
        notified_before = list(self.dispatcher.notified)

        assert await self.store.update(MoodEntry(notes="stranger")) is False

        assert self.store.entries == [entry]
        assert self.dispatcher.notified == notified_before

    async def test_delete_missing_id(self):
        """Test that deleting an unknown id is a no-op."""
        entry = MoodEntry()
        await self.store.create(entry)

        assert await self.store.delete(uuid4()) is False
        assert self.store.entries == [entry]

    async def test_delete_at_positions(self):
        """Test bulk deletion by list position."""
        entries = [MoodEntry(notes=str(n)) for n in range(4)]
        for entry in entries:
            await self.store.create(entry)

        removed = await self.store.delete_at([0, 2, 2, 99])

        assert removed == 2
        assert self.store.entries == [entries[1], entries[3]]
        assert [r["notes"] for r in self._stored_records()] == ["1", "3"]

    async def test_search(self):
        """Test case-insensitive search over notes and category labels."""
        great = MoodEntry(category=MoodCategory.HAPPY, notes="Had a Great day")
        tired = MoodEntry(category=MoodCategory.SAD, notes="tired")
        await self.store.create(great)
        await self.store.create(tired)

        assert self.store.search("") == [great, tired]
        assert self.store.search("great") == [great]
        assert self.store.search("SAD") == [tired]
        assert self.store.search("nothing") == []

    async def test_visible(self):
        """Test the search-or-day selection rule."""
        today = MoodEntry(timestamp=datetime(2024, 5, 1, 8), notes="walk")
        later = MoodEntry(timestamp=datetime(2024, 5, 9, 8), notes="walk again")
        await self.store.create(today)
        await self.store.create(later)

        assert self.store.visible(date(2024, 5, 1)) == [today]
        assert self.store.visible(date(2024, 5, 1), "walk") == [today, later]

    async def test_round_trip(self):
        """Test that save followed by load reproduces every field."""
        plus_two = timezone(timedelta(hours=2))
        entries = [
            MoodEntry(
                timestamp=datetime(2024, 1, 2, 3, 4, 5, 678901),
                category=MoodCategory.ANGRY,
                notes="traffic",
            ),
            MoodEntry(
                timestamp=datetime(2024, 6, 7, 8, 9, tzinfo=plus_two),
                category=MoodCategory.ANXIOUS,
                notes="exam ✍️",
            ),
            MoodEntry(category=MoodCategory.NEUTRAL, notes=""),
        ]
        for entry in entries:
            await self.store.create(entry)

        reloaded = EntryStore(self.path, FakeDispatcher())
        assert await reloaded.load() is True
        assert reloaded.entries == entries

    async def test_save_failure_is_not_raised(self, tmp_path):
        """Test that a failed write is logged and leaves the list in memory."""
        blocked = tmp_path / "blocked"
        blocked.mkdir()
        store = EntryStore(blocked, self.dispatcher)
        entry = MoodEntry(category=MoodCategory.SAD)

        await store.create(entry)

        assert store.entries == [entry]
        assert await store.save() is False
        assert self.dispatcher.notified == [MoodCategory.SAD]
        assert [p.name for p in tmp_path.iterdir()] == ["blocked"]

    async def test_failed_save_keeps_previous_snapshot(self, monkeypatch, caplog):
        """Test that a failed replace leaves the old file and no temp file."""
        first = MoodEntry(notes="one")
        await self.store.create(first)

        def fail_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", fail_replace)
        with caplog.at_level(logging.WARNING, logger="mood_journal.store"):
            await self.store.create(MoodEntry(notes="two"))

        assert [r["notes"] for r in self._stored_records()] == ["one"]
        assert list(self.path.parent.glob(".MoodEntries.json.*")) == []
        assert "Could not save entries" in caplog.text
        assert len(self.store.entries) == 2

    async def test_streaming(self):
        """Test that a subscriber receives a snapshot per change."""
        sizes: list[int] = []

        async def consumer():
            async with self.store.stream() as snapshots:
                async for entries in snapshots:
                    sizes.append(len(entries))
                    if len(sizes) >= 3:  # initial + 2 creates
                        break

        task = asyncio.create_task(consumer())
        await asyncio.sleep(0.01)

        await self.store.create(MoodEntry(category=MoodCategory.HAPPY))
        await asyncio.sleep(0.01)
        await self.store.create(MoodEntry(category=MoodCategory.SAD))

        try:
            await asyncio.wait_for(task, timeout=2.0)
        except TimeoutError:
            task.cancel()
            assert False, f"Streaming test timed out. Got: {sizes}"

        assert sizes == [0, 1, 2]
