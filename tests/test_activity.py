"""
Tests for the Activity Log

Tests covering:
1. emit() returns immediately and the entry reaches the sink after drain()
2. A failing sink is logged, never raised
3. File sink writes daily JSON logs readable per actor, off the event loop thread
"""

from __future__ import annotations

import logging
import threading

import pytest

from actor_engine.activity import (
    SYSTEM,
    ActivityAction,
    ActivityEntry,
    ActivityLog,
    ActivitySink,
    FileActivitySink,
    InMemoryActivitySink,
)


class BrokenSink(ActivitySink):
    async def record(self, entry):
        raise OSError("disk full")


class TestActivityLog:
    @pytest.mark.asyncio
    async def test_emit_then_drain(self):
        sink = InMemoryActivitySink()
        activity = ActivityLog(sink)

        entry = activity.emit("TEN-1", ActivityAction.ACTOR_CREATED, details={"policy_id": "POL-1"})

        assert entry.performed_by == SYSTEM
        assert entry.entry_id.startswith("ACT-")
        assert activity.pending_count == 1
        await activity.drain()
        assert activity.pending_count == 0
        assert sink.entries == [entry]

    @pytest.mark.asyncio
    async def test_failing_sink_is_logged(self, caplog):
        activity = ActivityLog(BrokenSink())

        with caplog.at_level(logging.ERROR, logger="actor_engine.activity"):
            activity.emit("TEN-1", ActivityAction.ACTOR_APPROVED, "reviewer@example.com")
            await activity.drain()

        assert "Failed to record activity actor_approved for TEN-1" in caplog.text

    def test_emit_requires_running_loop(self):
        with pytest.raises(RuntimeError):
            ActivityLog().emit("TEN-1", ActivityAction.ACTOR_CREATED)


class TestFileActivitySink:
    @pytest.mark.asyncio
    async def test_entries_persisted_per_day(self, tmp_path):
        sink = FileActivitySink(tmp_path / "activity")
        activity = ActivityLog(sink)

        activity.emit("TEN-1", ActivityAction.ACTOR_CREATED)
        activity.emit("TEN-2", ActivityAction.ACTOR_CREATED)
        await activity.drain()
        activity.emit("TEN-1", ActivityAction.ACTOR_SUBMITTED, details={"from": "pending", "to": "in_review"})
        await activity.drain()

        files = list((tmp_path / "activity").glob("activity_*.json"))
        assert len(files) == 1

        entries = sink.list_for("TEN-1")
        assert [e.action for e in entries] == [
            ActivityAction.ACTOR_CREATED,
            ActivityAction.ACTOR_SUBMITTED,
        ]
        assert entries[1].details == {"from": "pending", "to": "in_review"}

    @pytest.mark.asyncio
    async def test_concurrent_entries_all_persisted(self, tmp_path):
        sink = FileActivitySink(tmp_path / "activity")
        activity = ActivityLog(sink)

        for i in range(25):
            activity.emit(f"TEN-{i % 5}", ActivityAction.ACTOR_UPDATED, details={"n": i})
        await activity.drain()

        for i in range(5):
            assert len(sink.list_for(f"TEN-{i}")) == 5

    @pytest.mark.asyncio
    async def test_file_writes_leave_event_loop_thread(self, tmp_path, monkeypatch):
        sink = FileActivitySink(tmp_path / "activity")
        write_threads = []
        append = sink._append

        def tracking_append(data):
            write_threads.append(threading.get_ident())
            append(data)

        monkeypatch.setattr(sink, "_append", tracking_append)

        await sink.record(ActivityEntry.create("TEN-1", ActivityAction.ACTOR_CREATED, SYSTEM))

        assert write_threads and threading.get_ident() not in write_threads
        assert len(sink.list_for("TEN-1")) == 1

    def test_entry_dict_round_trip(self):
        entry = ActivityEntry.create("LLD-1", ActivityAction.PRIMARY_SET, "admin", {"policy_id": "POL-1"})
        assert ActivityEntry.from_dict(entry.to_dict()) == entry
