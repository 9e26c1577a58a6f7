"""Tests for the in-memory batch registry."""

import asyncio
from unittest.mock import MagicMock

import pytest

from models import JobDescriptor, SourceKind
from orchestrator import BatchSession
from pipeline import PipelineResult
from server.registry import BatchNotFoundError, BatchRegistry


def _job():
    return JobDescriptor(
        source_kind=SourceKind.COMMERCIAL_POSE,
        source_label="Variation 1",
        instruction_payload="payload",
        reference_images=(b"base",),
    )


class TestBatchRegistry:
    """Tests for BatchRegistry."""

    def test_register_and_get(self):
        """Test that registered sessions can be looked up."""
        registry = BatchRegistry()
        session = BatchSession()
        entry = registry.register(session, MagicMock(), {"key": "value"})
        assert registry.get(session.id) is entry
        assert entry.data == {"key": "value"}
        assert registry.list() == [entry]
        assert entry.running is False

    def test_get_unknown(self):
        """Test that unknown ids raise BatchNotFoundError."""
        with pytest.raises(BatchNotFoundError):
            BatchRegistry().get("missing")

    def test_forwards_session_events(self):
        """Test that slot events reach registry listeners."""
        registry = BatchRegistry()
        events = []
        registry.add_listener(lambda event, data: events.append(event))
        session = BatchSession()
        registry.register(session, MagicMock())
        session.create_slots([_job()])
        assert events == ["slot_created"]

    def test_listener_error_isolated(self):
        """Test that a failing listener doesn't break the others."""
        registry = BatchRegistry()
        events = []

        def bad_listener(event, data):
            raise RuntimeError("Listener error")

        registry.add_listener(bad_listener)
        registry.add_listener(lambda event, data: events.append(event))
        session = BatchSession()
        registry.register(session, MagicMock())
        session.create_slots([_job()])
        assert events == ["slot_created"]

    def test_remove_listener(self):
        """Test removing a listener."""
        registry = BatchRegistry()
        events = []
        listener = lambda event, data: events.append(event)  # noqa: E731
        registry.add_listener(listener)
        registry.remove_listener(listener)
        session = BatchSession()
        registry.register(session, MagicMock())
        session.create_slots([_job()])
        assert events == []

    def test_evicts_oldest_finished(self):
        """Test that the oldest finished batch makes room."""
        registry = BatchRegistry(max_sessions=2)
        first, second, third = BatchSession(), BatchSession(), BatchSession()
        registry.register(first, MagicMock())
        registry.register(second, MagicMock())
        registry.register(third, MagicMock())
        assert [e.session.id for e in registry.list()] == [second.id, third.id]

    @pytest.mark.asyncio
    async def test_full_of_running(self):
        """Test that running batches are never evicted."""
        registry = BatchRegistry(max_sessions=1)
        session = BatchSession()
        registry.register(session, MagicMock())
        release = asyncio.Event()

        async def run():
            await release.wait()
            return PipelineResult(success=True)

        registry.start(session.id, run)
        with pytest.raises(RuntimeError):
            registry.register(BatchSession(), MagicMock())
        release.set()
        await registry.get(session.id).task


class TestStart:
    """Tests for background execution."""

    @pytest.mark.asyncio
    async def test_result_stored(self):
        """Test that the pipeline result lands on the entry."""
        registry = BatchRegistry()
        session = BatchSession()
        registry.register(session, MagicMock())

        async def run():
            return PipelineResult(success=True, batch_id=session.id)

        await registry.start(session.id, run)
        entry = registry.get(session.id)
        assert entry.result.batch_id == session.id
        assert entry.error is None
        assert entry.running is False

    @pytest.mark.asyncio
    async def test_unsuccessful_result(self):
        """Test that an unsuccessful result records its error."""
        registry = BatchRegistry()
        session = BatchSession()
        registry.register(session, MagicMock())

        async def run():
            return PipelineResult(success=False, error="nothing to do")

        await registry.start(session.id, run)
        assert registry.get(session.id).error == "nothing to do"

    @pytest.mark.asyncio
    async def test_crash_reported(self):
        """Test that a crashing batch emits batch_failed."""
        registry = BatchRegistry()
        events = []
        registry.add_listener(lambda event, data: events.append((event, data)))
        session = BatchSession()
        registry.register(session, MagicMock())

        async def run():
            raise RuntimeError("disk full")

        await registry.start(session.id, run)
        assert registry.get(session.id).error == "disk full"
        assert events == [("batch_failed", {"batch_id": session.id, "error": "disk full"})]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running(self):
        """Test that shutdown cancels running batches and waits for them."""
        registry = BatchRegistry()
        session = BatchSession()
        orchestrator = MagicMock()
        registry.register(session, orchestrator)
        release = asyncio.Event()
        orchestrator.cancel_all.side_effect = release.set

        async def run():
            await release.wait()
            return PipelineResult(success=True)

        registry.start(session.id, run)
        await asyncio.sleep(0)
        await registry.shutdown()

        orchestrator.cancel_all.assert_called_once()
        assert registry.get(session.id).running is False
