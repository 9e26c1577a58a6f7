"""API routes for the web server."""

import asyncio
import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response
from sse_starlette.sse import EventSourceResponse

from .app import get_gateway, get_registry, get_shutdown_event
from .models import (
    ActionResponse,
    BatchCreatedResponse,
    BatchDetailResponse,
    BatchInfo,
    BatchRequest,
)
from .registry import BatchEntry, BatchNotFoundError

import reducer
from classifier import QualityClassifier
from config import settings
from job_builder import ValidationError as JobValidationError
from models import ResultSlot
from orchestrator import BatchOrchestrator, BatchSession, FallbackPolicy
from pipeline import DesignBlockedError, StudioPipeline
from presets import POSE_PRESETS, PresetFamily, presets_by_family
from prompt_library import LOCATIONS
from utils import decode_data_url, guess_mime_type


router = APIRouter()


def _get_entry(batch_id: str) -> BatchEntry:
    try:
        return get_registry().get(batch_id)
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="Batch not found")


def _info(entry: BatchEntry) -> BatchInfo:
    session = entry.session
    return BatchInfo(
        batch_id=session.id,
        label=session.label,
        completed=session.completed,
        counts=reducer.counts(session.snapshot()),
    )


# ----------------------------------------------------------------------------
# Catalog Endpoints
# ----------------------------------------------------------------------------

@router.get("/api/presets")
async def list_presets(family: PresetFamily | None = None) -> list[dict]:
    """List pose presets, optionally filtered by family."""
    presets = presets_by_family(family) if family else POSE_PRESETS
    return [preset.model_dump(mode="json") for preset in presets]


@router.get("/api/locations")
async def list_locations() -> list[dict]:
    """List the UGC location catalog."""
    return [
        {"id": location_id, "name": name, "scene": scene}
        for location_id, (name, scene) in LOCATIONS.items()
    ]


# ----------------------------------------------------------------------------
# Batch Endpoints
# ----------------------------------------------------------------------------

@router.post("/api/batches", status_code=202, response_model=BatchCreatedResponse)
async def create_batch(req: BatchRequest):
    """Validate a batch request and start it in the background."""
    try:
        base_image = decode_data_url(req.base_image)
        config = req.to_job_config()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    gateway = get_gateway()
    classifier = QualityClassifier(gateway)
    policy = FallbackPolicy(
        allow_fallback=settings.batch.allow_fallback if req.allow_fallback is None else req.allow_fallback,
        strict_mode=settings.batch.strict_mode if req.strict_mode is None else req.strict_mode,
    )
    orchestrator = BatchOrchestrator(gateway, classifier, fallback_policy=policy)
    pipeline = StudioPipeline(gateway=gateway, classifier=classifier, orchestrator=orchestrator)

    data = {}
    try:
        jobs = await pipeline.prepare(config, base_image, data)
    except DesignBlockedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except JobValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    session = BatchSession(label=req.kind.value)
    registry = get_registry()
    try:
        registry.register(session, orchestrator, data)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))

    registry.start(session.id, lambda: pipeline.execute(jobs, session=session, data=data))

    return BatchCreatedResponse(
        batch_id=session.id,
        message=f"Batch started with {len(jobs)} job(s)",
        slots=[ResultSlot.for_job(job).summary() for job in jobs],
        data=data,
    )


@router.get("/api/batches", response_model=list[BatchInfo])
async def list_batches():
    """List batches held by the server, oldest first."""
    return [_info(entry) for entry in get_registry().list()]


@router.get("/api/batches/{batch_id}", response_model=BatchDetailResponse)
async def get_batch(batch_id: str):
    """Get slots, counts and ranking for a batch."""
    entry = _get_entry(batch_id)
    slots = entry.session.snapshot()
    output_dir = entry.result.output_dir if entry.result else None

    return BatchDetailResponse(
        batch_id=entry.session.id,
        label=entry.session.label,
        completed=entry.session.completed,
        counts=reducer.counts(slots),
        slots=[slot.summary() for slot in slots],
        ranked=[slot.id for slot in reducer.ranked(slots)],
        output_dir=str(output_dir) if output_dir else None,
        error=entry.error,
        data=entry.data,
    )


@router.delete("/api/batches/{batch_id}/slots/{slot_id}", response_model=ActionResponse)
async def remove_slot(batch_id: str, slot_id: str):
    """Remove a slot from the batch. An in-flight call is not cancelled."""
    entry = _get_entry(batch_id)
    if not entry.session.remove_slot(slot_id):
        raise HTTPException(status_code=404, detail="Slot not found")
    return ActionResponse(batch_id=batch_id, message=f"Removed slot {slot_id[:8]}", affected=1)


@router.post("/api/batches/{batch_id}/cancel", response_model=ActionResponse)
async def cancel_batch(batch_id: str):
    """Cancel every in-flight job of a batch."""
    entry = _get_entry(batch_id)
    count = entry.orchestrator.cancel_all()
    return ActionResponse(batch_id=batch_id, message=f"Cancelled {count} job(s)", affected=count)


@router.post("/api/batches/{batch_id}/slots/{slot_id}/cancel", response_model=ActionResponse)
async def cancel_slot(batch_id: str, slot_id: str):
    """Cancel one in-flight job."""
    entry = _get_entry(batch_id)
    cancelled = entry.orchestrator.cancel(slot_id)
    message = f"Cancelled slot {slot_id[:8]}" if cancelled else "Slot not running"
    return ActionResponse(batch_id=batch_id, message=message, affected=int(cancelled))


@router.get("/api/batches/{batch_id}/slots/{slot_id}/image")
async def get_slot_image(batch_id: str, slot_id: str):
    """Serve the image bytes of a slot."""
    entry = _get_entry(batch_id)
    slot = entry.session.get_slot(slot_id)
    if slot is None:
        raise HTTPException(status_code=404, detail="Slot not found")
    if slot.image is None:
        raise HTTPException(status_code=404, detail="Slot has no image")
    return Response(content=slot.image, media_type=guess_mime_type(slot.image))


# ----------------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------------

@router.get("/api/events")
async def sse_events(request: Request):
    """SSE endpoint for real-time slot updates."""
    queue = asyncio.Queue(maxsize=settings.server.sse_queue_size)
    registry = get_registry()

    def on_event(event: str, data: dict):
        try:
            queue.put_nowait({"event": event, "data": data})
        except asyncio.QueueFull:
            logging.warning(f"SSE queue full, dropped event: {event}")

    # Register listener BEFORE taking the initial snapshot to avoid a race
    registry.add_listener(on_event)

    async def event_generator() -> AsyncGenerator:
        try:
            shutdown = get_shutdown_event()
        except RuntimeError:
            shutdown = None

        try:
            yield {
                "event": "status",
                "data": json.dumps([_info(entry).model_dump(mode="json") for entry in registry.list()]),
            }

            while True:
                if shutdown and shutdown.is_set():
                    break

                if await request.is_disconnected():
                    break

                try:
                    msg = await asyncio.wait_for(queue.get(), timeout=settings.server.sse_timeout)
                    yield {
                        "event": msg["event"],
                        "data": json.dumps(msg["data"]),
                    }
                except asyncio.TimeoutError:
                    # Send keepalive
                    yield {"event": "ping", "data": ""}

        finally:
            registry.remove_listener(on_event)

    return EventSourceResponse(event_generator())
