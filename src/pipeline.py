"""Pipeline executor for lookbook batches.

Provides a unified interface used by both the CLI and the web API:
build jobs, run them through the orchestrator, then write the kept images
and a batch.json manifest. Uses callback-based progress reporting.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Protocol

import reducer
from classifier import QualityClassifier
from config import paths
from gateway import Gateway, GeminiGateway
from job_builder import DesignTransferJob, JobConfig, ValidationError, build_jobs
from models import BatchCounts, JobDescriptor, ResultSlot, StructureLevel
from orchestrator import BatchOrchestrator, BatchSession
from utils import batch_dir_name, save_slot_image, slot_filename

logger = logging.getLogger(__name__)

MANIFEST_NAME = "batch.json"


class DesignBlockedError(ValidationError):
    """Raised when the garment structure check blocks a design transfer."""
    pass


class ProgressCallback(Protocol):
    """Protocol for progress callbacks."""

    def __call__(
        self,
        stage: str,
        current: int = 0,
        total: int = 0,
        message: str = "",
    ) -> None:
        """Report progress.

        Args:
            stage: Current stage (e.g., "building_jobs", "generating", "saving")
            current: Current progress count
            total: Total items to process
            message: Human-readable progress message
        """
        ...


class SlotUpdateCallback(Protocol):
    """Protocol for slot change notifications."""

    def __call__(self, slot: ResultSlot) -> None:
        ...


@dataclass
class PipelineResult:
    """Result of a pipeline operation."""

    success: bool
    batch_id: str | None = None
    output_dir: Path | None = None
    slots: list[ResultSlot] = field(default_factory=list)
    counts: BatchCounts = field(default_factory=BatchCounts)
    saved_files: list[Path] = field(default_factory=list)
    error: str | None = None
    data: dict = field(default_factory=dict)

    @property
    def ranked(self) -> list[ResultSlot]:
        return reducer.ranked(self.slots)


def _null_progress(stage: str, current: int = 0, total: int = 0, message: str = "") -> None:
    """No-op progress callback."""
    pass


def _null_slot_update(slot: ResultSlot) -> None:
    """No-op slot update callback."""
    pass


class StudioPipeline:
    """Executor for lookbook batch operations."""

    def __init__(
        self,
        gateway: Gateway | None = None,
        classifier: QualityClassifier | None = None,
        orchestrator: BatchOrchestrator | None = None,
        on_progress: ProgressCallback | None = None,
        on_slot_update: SlotUpdateCallback | None = None,
        save_outputs: bool = True,
    ):
        """Initialize the executor.

        Args:
            gateway: Model gateway, a GeminiGateway from settings if None
            classifier: Classifier, built on the gateway if None
            orchestrator: Orchestrator, built on gateway and classifier if None
            on_progress: Callback for progress updates
            on_slot_update: Callback receiving a copy of each changed slot
            save_outputs: Whether to write images and batch.json to disk
        """
        self.gateway = gateway or GeminiGateway()
        self.classifier = classifier or QualityClassifier(self.gateway)
        self.orchestrator = orchestrator or BatchOrchestrator(self.gateway, self.classifier)
        self.on_progress = on_progress or _null_progress
        self.on_slot_update = on_slot_update or _null_slot_update
        self.save_outputs = save_outputs

    async def run(
        self,
        config: JobConfig,
        base_image: bytes | None,
        output_dir: Path | None = None,
        session: BatchSession | None = None,
    ) -> PipelineResult:
        """Build, run and persist one batch.

        Args:
            config: Job configuration
            base_image: The product photo
            output_dir: Custom output directory, generated/batches/<timestamp>_<kind> if None
            session: Existing session to record slots in

        Returns:
            PipelineResult with slots, counts and written files
        """
        data = {}
        try:
            jobs = await self.prepare(config, base_image, data)
        except ValidationError as e:
            return PipelineResult(success=False, error=str(e), data=data)
        return await self.execute(jobs, session=session, output_dir=output_dir, data=data)

    async def prepare(self, config: JobConfig, base_image: bytes | None, data: dict | None = None) -> list[JobDescriptor]:
        """Build the jobs for a config and run any pre-checks.

        Pre-check verdicts are recorded into data when given.

        Raises:
            ValidationError: If the config is invalid
            DesignBlockedError: If a design transfer is structurally unsafe and not forced
        """
        data = data if data is not None else {}
        self.on_progress("building_jobs", 0, 1, f"Building {type(config).__name__}...")
        jobs = build_jobs(config, base_image)
        self.on_progress("building_jobs", 1, 1, f"Built {len(jobs)} job(s)")

        if isinstance(config, DesignTransferJob):
            self.on_progress("checking_structure", 0, 1, "Comparing garment structure...")
            structure = await self.classifier.analyze_garment_structure(base_image, config.reference_image)
            data["structure"] = structure.model_dump(mode="json")
            self.on_progress("checking_structure", 1, 1, f"Structure level {structure.level.value}")
            if structure.level == StructureLevel.L3 and not config.force:
                raise DesignBlockedError(f"Design transfer blocked (L3): {structure.reason}")

        return jobs

    async def execute(
        self,
        jobs: list[JobDescriptor],
        session: BatchSession | None = None,
        output_dir: Path | None = None,
        data: dict | None = None,
    ) -> PipelineResult:
        """Run prepared jobs and persist the outcome."""
        data = data or {}
        kind = jobs[0].source_kind.value
        session = session or BatchSession(label=kind)
        total = len(jobs)

        def on_event(event: str, payload: dict) -> None:
            if event != "slot_updated":
                return
            slot = session.get_slot(payload["slot"]["id"])
            if slot is None:
                return
            self.on_slot_update(slot)
            if slot.is_terminal:
                done = total - len(reducer.pending(session.snapshot()))
                self.on_progress("generating", done, total, f"{slot.source_label}: {slot.state.value}")

        session.add_listener(on_event)
        self.on_progress("generating", 0, total, f"Generating {total} image(s)...")
        try:
            await self.orchestrator.run(jobs, session)
        finally:
            session.remove_listener(on_event)

        slots = session.snapshot()
        result = PipelineResult(
            success=True,
            batch_id=session.id,
            slots=slots,
            counts=reducer.counts(slots),
            data=data,
        )

        if self.save_outputs:
            if output_dir is None:
                output_dir = paths.batches_dir / batch_dir_name(kind)
            result.output_dir = output_dir
            result.saved_files = self._write_outputs(session, jobs, slots, output_dir, data)

        return result

    def _write_outputs(
        self,
        session: BatchSession,
        jobs: list[JobDescriptor],
        slots: list[ResultSlot],
        output_dir: Path,
        data: dict,
    ) -> list[Path]:
        """Save kept images as PNG with text metadata, then the manifest."""
        output_dir.mkdir(parents=True, exist_ok=True)
        jobs_by_id = {job.id: job for job in jobs}
        kept = reducer.kept(slots)

        saved = []
        files = {}
        for i, slot in enumerate(kept, start=1):
            self.on_progress("saving", i - 1, len(kept), f"Saving {slot.source_label}")
            if slot.image is None:
                continue
            job = jobs_by_id.get(slot.id)
            constraints = job.output_constraints if job else None
            dest = output_dir / slot_filename(i, slot.source_label)
            try:
                save_slot_image(slot.image, dest, {
                    "slot_id": slot.id,
                    "source_kind": slot.source_kind.value,
                    "source_label": slot.source_label,
                    "qc_status": slot.qc.status.value if slot.qc else None,
                    "qc_score": slot.qc.score if slot.qc else None,
                    "is_fallback": slot.is_fallback,
                    "resolution": constraints.resolution.value if constraints else None,
                    "aspect_ratio": constraints.aspect_ratio.value if constraints else None,
                    "created_at": slot.created_at.isoformat(),
                })
            except ValueError as e:
                logger.warning(f"Could not save image for {slot.source_label}: {e}")
                continue
            saved.append(dest)
            files[slot.id] = dest.name
        self.on_progress("saving", len(kept), len(kept), f"Saved {len(saved)} image(s)")

        manifest = {
            "batch_id": session.id,
            "label": session.label,
            "created_at": session.created_at.isoformat(),
            "finished_at": datetime.now().isoformat(),
            "counts": reducer.counts(slots).model_dump(),
            "ranked": [slot.id for slot in reducer.ranked(slots)],
            "slots": [
                {**slot.summary(), "file": files.get(slot.id)}
                for slot in slots
            ],
            **data,
        }
        (output_dir / MANIFEST_NAME).write_text(json.dumps(manifest, indent=2))
        return saved


def load_manifest(batch_dir: Path) -> dict:
    """Load batch.json from a batch directory.

    Raises:
        ValueError: If the directory has no manifest
        json.JSONDecodeError: If the manifest is invalid JSON
    """
    manifest = batch_dir / MANIFEST_NAME
    if not manifest.exists():
        raise ValueError(f"No {MANIFEST_NAME} found in {batch_dir}")
    return json.loads(manifest.read_text())
