"""Batch session state and concurrent job execution."""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import reducer
from classifier import QualityClassifier
from config import settings
from gateway import Gateway, classify_error, failure_for
from models import (
    ErrorType,
    InvalidTransition,
    JobDescriptor,
    ResultSlot,
    RiskLevel,
    SafetyResult,
    SlotFailure,
    SlotState,
)

logger = logging.getLogger(__name__)

Listener = Callable[[str, dict], None]


class BatchSession:
    """Ordered slot store for one batch, with change listeners.

    All mutation goes through create_slots, update_slot and remove_slot.
    Readers get deep copies from snapshot().
    """

    def __init__(self, session_id: str | None = None, label: str = ""):
        self.id = session_id or str(uuid.uuid4())
        self.label = label
        self.created_at = datetime.now()
        self.completed = False
        self._slots: dict[str, ResultSlot] = {}
        self._removed: set[str] = set()
        self._listeners: list[Listener] = []

    def _notify(self, event: str, data: dict) -> None:
        """Notify all listeners of an event.

        Iterates a snapshot so listeners may unsubscribe while handling.
        """
        for listener in list(self._listeners):
            try:
                listener(event, data)
            except Exception as e:
                logger.exception(f"Error in batch listener for event {event}: {e}")

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _event_data(self, slot: ResultSlot) -> dict:
        return {"batch_id": self.id, "slot": slot.summary()}

    def create_slots(self, jobs: list[JobDescriptor]) -> list[ResultSlot]:
        """Create one queued slot per job, in job order."""
        created = []
        for job in jobs:
            if job.id in self._slots:
                raise ValueError(f"Duplicate job id: {job.id}")
            slot = ResultSlot.for_job(job)
            self._slots[slot.id] = slot
            created.append(slot)
            self._notify("slot_created", self._event_data(slot))
        return created

    def update_slot(self, slot_id: str, state: SlotState | None = None, **changes) -> ResultSlot | None:
        """Merge changes into a slot by id.

        Updates for unknown or removed slots are ignored and return None.

        Raises:
            InvalidTransition: If state would move the slot backward or out of a terminal state
        """
        slot = self._slots.get(slot_id)
        if slot is None:
            if slot_id in self._removed:
                logger.debug(f"Ignoring update for removed slot {slot_id}")
            else:
                logger.warning(f"Ignoring update for unknown slot {slot_id}")
            return None

        if state is not None:
            slot.check_transition(state)
        for key, value in changes.items():
            setattr(slot, key, value)
        if state is not None:
            slot.advance(state)
        else:
            slot.updated_at = datetime.now()

        self._notify("slot_updated", self._event_data(slot))
        return slot

    def remove_slot(self, slot_id: str) -> bool:
        """Drop a slot from the visible list. Returns False if it was not there."""
        if self._slots.pop(slot_id, None) is None:
            return False
        self._removed.add(slot_id)
        self._notify("slot_removed", {"batch_id": self.id, "slot_id": slot_id})
        return True

    def get_slot(self, slot_id: str) -> ResultSlot | None:
        slot = self._slots.get(slot_id)
        return slot.model_copy(deep=True) if slot else None

    def snapshot(self) -> list[ResultSlot]:
        """Deep copies of the current slots, in creation order."""
        return [slot.model_copy(deep=True) for slot in self._slots.values()]

    def mark_completed(self) -> None:
        self.completed = True
        self._notify("batch_completed", {
            "batch_id": self.id,
            "counts": reducer.counts(self._slots.values()).model_dump(),
        })


@dataclass(frozen=True)
class FallbackPolicy:
    """When a risky pose reference is swapped for the standard front pose."""
    allow_fallback: bool = True
    strict_mode: bool = False

    @classmethod
    def from_settings(cls) -> "FallbackPolicy":
        return cls(
            allow_fallback=settings.batch.allow_fallback,
            strict_mode=settings.batch.strict_mode,
        )

    def should_fallback(self, safety: SafetyResult) -> bool:
        """Fallback when allowed and either recommended, or strict and not SAFE."""
        return self.allow_fallback and (
            safety.fallback_recommended
            or (self.strict_mode and safety.risk_level != RiskLevel.SAFE)
        )


class BatchOrchestrator:
    """Runs every job of a batch concurrently and records outcomes in a session.

    One job's failure never affects another's slot. run() returns once every
    slot is terminal and never raises for an individual job.
    """

    def __init__(
        self,
        gateway: Gateway,
        classifier: QualityClassifier,
        fallback_policy: FallbackPolicy | None = None,
        job_timeout: float | None = None,
    ):
        self.gateway = gateway
        self.classifier = classifier
        self.fallback_policy = fallback_policy or FallbackPolicy.from_settings()
        if job_timeout is None:
            job_timeout = settings.batch.job_timeout
        # 0 disables the timeout
        self.job_timeout = job_timeout or None
        self._tasks: dict[str, asyncio.Task] = {}
        self._cancelled: set[str] = set()

    async def run(self, jobs: list[JobDescriptor], session: BatchSession | None = None) -> BatchSession:
        """Execute jobs and return the session holding their slots.

        Every slot is created, in job order, before the first network call.
        """
        session = session or BatchSession()
        session.create_slots(jobs)

        tasks = []
        for job in jobs:
            task = asyncio.create_task(self._run_guarded(job, session), name=f"job-{job.id[:8]}")
            self._tasks[job.id] = task
            tasks.append(task)

        try:
            await asyncio.gather(*tasks, return_exceptions=True)
            # Tasks cancelled before their first step never touched their slot
            for slot in session.snapshot():
                if not slot.is_terminal and slot.id in self._cancelled:
                    self._fail(session, slot.id, failure_for(ErrorType.CANCELLED))
        finally:
            for job in jobs:
                self._tasks.pop(job.id, None)
                self._cancelled.discard(job.id)

        session.mark_completed()
        logger.info(f"Batch {session.id[:8]} finished: {reducer.counts(session.snapshot()).model_dump()}")
        return session

    def cancel(self, slot_id: str) -> bool:
        """Cancel an in-flight job. Its slot fails with type CANCELLED."""
        task = self._tasks.get(slot_id)
        if task is None or task.done():
            return False
        self._cancelled.add(slot_id)
        task.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every in-flight job. Returns how many were cancelled."""
        return sum(1 for slot_id in list(self._tasks) if self.cancel(slot_id))

    def _update(self, session: BatchSession, slot_id: str, state: SlotState | None = None, **changes) -> None:
        try:
            session.update_slot(slot_id, state, **changes)
        except InvalidTransition as e:
            logger.warning(f"Dropped late update: {e}")

    def _fail(self, session: BatchSession, slot_id: str, failure: SlotFailure) -> None:
        self._update(session, slot_id, SlotState.FAILED, failure=failure)

    async def _run_guarded(self, job: JobDescriptor, session: BatchSession) -> None:
        """Run one job, mapping timeouts, cancellation and stray errors onto its slot."""
        try:
            if self.job_timeout:
                await asyncio.wait_for(self._run_job(job, session), timeout=self.job_timeout)
            else:
                await self._run_job(job, session)
        except asyncio.TimeoutError:
            logger.warning(f"Job {job.id[:8]} ({job.source_label}) timed out after {self.job_timeout}s")
            self._fail(session, job.id, failure_for(ErrorType.TIMEOUT))
        except asyncio.CancelledError:
            self._fail(session, job.id, failure_for(ErrorType.CANCELLED))
            if job.id not in self._cancelled:
                raise
        except Exception as e:
            logger.exception(f"Unexpected error in job {job.id[:8]}: {e}")
            self._fail(session, job.id, classify_error(e))

    async def _run_job(self, job: JobDescriptor, session: BatchSession) -> None:
        self._update(session, job.id, SlotState.GENERATING)

        payload = job.instruction_payload
        images = job.reference_images

        if job.requires_safety_check:
            safety = await self.classifier.analyze_safety(job.reference_images[1])
            self._update(session, job.id, safety=safety)
            if self.fallback_policy.should_fallback(safety):
                logger.info(f"Job {job.id[:8]} falling back to front pose: {safety.reason}")
                payload = job.fallback_payload
                images = (job.base_image,)
                self._update(session, job.id, is_fallback=True, fallback_reason=safety.reason)

        try:
            image = await self.gateway.generate_image(payload, images, job.output_constraints)
        except Exception as e:
            failure = classify_error(e)
            logger.warning(f"Generation failed for {job.source_label}: [{failure.error_type.value}] {e}")
            self._fail(session, job.id, failure)
            return

        if not job.requires_analysis:
            self._update(session, job.id, SlotState.SUCCEEDED, image=image)
            return

        self._update(session, job.id, SlotState.ANALYZING, image=image)
        try:
            qc = await self.classifier.analyze_quality_strict(image)
        except Exception as e:
            failure = classify_error(e)
            logger.warning(f"Analysis failed for {job.source_label}: [{failure.error_type.value}] {e}")
            # The produced image stays on the failed slot
            self._fail(session, job.id, failure)
            return

        self._update(session, job.id, SlotState.SUCCEEDED, qc=qc)
