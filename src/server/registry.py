"""In-memory registry of running and finished batches."""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from orchestrator import BatchOrchestrator, BatchSession
from pipeline import PipelineResult


class BatchNotFoundError(Exception):
    """Raised when a batch id is not in the registry."""
    pass


@dataclass
class BatchEntry:
    """A session plus the machinery running it."""
    session: BatchSession
    orchestrator: BatchOrchestrator
    data: dict = field(default_factory=dict)
    task: asyncio.Task | None = None
    result: PipelineResult | None = None
    error: str | None = None

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()


class BatchRegistry:
    """Holds batch sessions for the lifetime of the server process.

    Sessions are kept in insertion order. When the registry is full the
    oldest finished batch is evicted. Slot events of every session are
    forwarded to registry listeners.
    """

    def __init__(self, max_sessions: int = 20):
        self.max_sessions = max_sessions
        self._entries: OrderedDict[str, BatchEntry] = OrderedDict()
        self._listeners: list[Callable[[str, dict], None]] = []

    def _notify(self, event: str, data: dict) -> None:
        """Notify all listeners of an event.

        Iterates a snapshot to allow add/remove during notification.
        """
        for listener in list(self._listeners):
            try:
                listener(event, data)
            except Exception as e:
                logging.exception(f"Error in registry listener for event {event}: {e}")

    def add_listener(self, listener: Callable[[str, dict], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[str, dict], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _evict(self) -> None:
        while len(self._entries) >= self.max_sessions:
            finished = next((bid for bid, e in self._entries.items() if not e.running), None)
            if finished is None:
                raise RuntimeError(f"Too many running batches (limit {self.max_sessions})")
            del self._entries[finished]
            logging.info(f"Evicted batch {finished[:8]} from registry")

    def register(self, session: BatchSession, orchestrator: BatchOrchestrator, data: dict | None = None) -> BatchEntry:
        """Add a session and forward its events.

        Raises:
            RuntimeError: If the registry is full of running batches
        """
        self._evict()
        entry = BatchEntry(session=session, orchestrator=orchestrator, data=data or {})
        self._entries[session.id] = entry
        session.add_listener(self._notify)
        return entry

    def start(self, batch_id: str, run: Callable[[], Awaitable[PipelineResult]]) -> asyncio.Task:
        """Run a batch in the background, storing its result on the entry."""
        entry = self.get(batch_id)

        async def _runner() -> None:
            try:
                entry.result = await run()
                if not entry.result.success:
                    entry.error = entry.result.error
            except Exception as e:
                logging.exception(f"Batch {batch_id[:8]} crashed: {e}")
                entry.error = str(e)
                self._notify("batch_failed", {"batch_id": batch_id, "error": str(e)})

        entry.task = asyncio.create_task(_runner(), name=f"batch-{batch_id[:8]}")
        return entry.task

    def get(self, batch_id: str) -> BatchEntry:
        """Look up a batch.

        Raises:
            BatchNotFoundError: If no batch has this id
        """
        entry = self._entries.get(batch_id)
        if entry is None:
            raise BatchNotFoundError(batch_id)
        return entry

    def list(self) -> list[BatchEntry]:
        return list(self._entries.values())

    async def shutdown(self) -> None:
        """Cancel every running batch and wait for them to settle."""
        tasks = []
        for entry in self._entries.values():
            if entry.running:
                entry.orchestrator.cancel_all()
                tasks.append(entry.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
