"""Pydantic models for jobs, result slots and classifier verdicts."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Resolution(str, Enum):
    """Output resolution tiers supported by the image model."""
    LOW = "1K"
    STANDARD = "2K"
    HIGH = "4K"


class AspectRatio(str, Enum):
    """Output aspect ratios supported by the image model."""
    SQUARE = "1:1"
    PORTRAIT = "9:16"
    CLASSIC = "4:3"
    WIDE = "16:9"


class SourceKind(str, Enum):
    """Which builder path produced a job."""
    PRESET = "preset"
    CUSTOM_REFERENCE = "custom_reference"
    ANGLE_VARIANT = "angle_variant"
    REGION_EDIT = "region_edit"
    COLOR_MATCH = "color_match"
    COMMERCIAL_POSE = "commercial_pose"
    POSE_CHANGE = "pose_change"
    BACKGROUND_CHANGE = "background_change"
    DESIGN_TRANSFER = "design_transfer"
    LOCATION = "location"


# Job kinds whose output goes through the QC pass
ANALYZED_KINDS = frozenset({
    SourceKind.PRESET,
    SourceKind.CUSTOM_REFERENCE,
    SourceKind.COMMERCIAL_POSE,
})


class SlotState(str, Enum):
    """Lifecycle state of a result slot."""
    QUEUED = "queued"
    GENERATING = "generating"
    ANALYZING = "analyzing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SlotState.SUCCEEDED, SlotState.FAILED)

    @property
    def order(self) -> int:
        return _STATE_ORDER[self]


_STATE_ORDER = {
    SlotState.QUEUED: 0,
    SlotState.GENERATING: 1,
    SlotState.ANALYZING: 2,
    SlotState.SUCCEEDED: 3,
    SlotState.FAILED: 3,
}


class ErrorType(str, Enum):
    """Classified failure causes surfaced on a failed slot."""
    SAFETY = "safety"
    QUOTA = "quota"
    INVALID_CREDENTIAL = "invalid_credential"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class QCStatus(str, Enum):
    """Quality verdict for a generated image."""
    RECOMMENDED = "RECOMMENDED"
    USABLE = "USABLE"
    NOT_RECOMMENDED = "NOT_RECOMMENDED"


class RiskLevel(str, Enum):
    """Risk level of a candidate pose reference."""
    SAFE = "SAFE"
    WARNING = "WARNING"
    DANGER = "DANGER"


class StructureLevel(str, Enum):
    """Replacement difficulty between two upper garments."""
    L1 = "L1"
    L2 = "L2"
    L3 = "L3"


class InvalidTransition(Exception):
    """Raised when a slot would move backward or leave a terminal state."""
    pass


class OutputConstraints(BaseModel):
    """Resolution tier and aspect ratio requested for one output."""
    model_config = ConfigDict(frozen=True)

    resolution: Resolution = Resolution.STANDARD
    aspect_ratio: AspectRatio = AspectRatio.PORTRAIT


class JobDescriptor(BaseModel):
    """One fully-resolved unit of work. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_kind: SourceKind
    source_label: str
    instruction_payload: str
    reference_images: tuple[bytes, ...] = Field(..., min_length=1, max_length=3)
    output_constraints: OutputConstraints = Field(default_factory=OutputConstraints)
    fallback_payload: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def base_image(self) -> bytes:
        return self.reference_images[0]

    @property
    def requires_analysis(self) -> bool:
        """Whether a QC pass runs after generation."""
        return self.source_kind in ANALYZED_KINDS

    @property
    def requires_safety_check(self) -> bool:
        """Whether the reference pose is screened before generation."""
        return self.source_kind == SourceKind.CUSTOM_REFERENCE and self.fallback_payload is not None


class ComponentScores(BaseModel):
    """Weighted QC sub-scores."""
    face_confidence: int = Field(0, ge=0, le=40)
    body_ratio: int = Field(0, ge=0, le=30)
    centering: int = Field(0, ge=0, le=30)

    @property
    def total(self) -> int:
        return self.face_confidence + self.body_ratio + self.centering


class PoseSignature(BaseModel):
    """Coarse pose descriptor extracted by the QC pass."""
    rotation: int = 0
    arm_state: str = "unknown"


class QCResult(BaseModel):
    """Structured quality verdict for a generated image."""
    status: QCStatus
    score: int = Field(..., ge=0, le=100)
    reject_reasons: list[str] = Field(default_factory=list)
    component_scores: ComponentScores = Field(default_factory=ComponentScores)
    signature: PoseSignature = Field(default_factory=PoseSignature)


class SafetyResult(BaseModel):
    """Pre-check verdict for a user-supplied pose reference."""
    risk_level: RiskLevel
    issues: list[str] = Field(default_factory=list)
    fallback_recommended: bool = False
    reason: str = ""


class GarmentStructureResult(BaseModel):
    """Structure comparison between base and reference upper garments."""
    level: StructureLevel
    reason: str = ""
    base_category: str | None = None
    ref_category: str | None = None


class SlotFailure(BaseModel):
    """Classified failure attached to a failed slot."""
    error_type: ErrorType
    message: str
    detail: str | None = None


class ResultSlot(BaseModel):
    """Mutable tracking record for one job's progress and outcome."""
    id: str
    source_kind: SourceKind
    source_label: str
    state: SlotState = SlotState.QUEUED
    image: bytes | None = None
    qc: QCResult | None = None
    safety: SafetyResult | None = None
    failure: SlotFailure | None = None
    is_fallback: bool = False
    fallback_reason: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def for_job(cls, job: JobDescriptor) -> "ResultSlot":
        """Create the queued slot paired with a job."""
        return cls(id=job.id, source_kind=job.source_kind, source_label=job.source_label)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def check_transition(self, new_state: SlotState) -> None:
        """Raise InvalidTransition unless moving to new_state goes forward.

        Re-entering the current non-terminal state is allowed so that
        field-only updates can carry the state along.
        """
        if self.state.is_terminal:
            raise InvalidTransition(
                f"Slot {self.id} is already {self.state.value}"
            )
        if new_state.order < self.state.order:
            raise InvalidTransition(
                f"Slot {self.id} cannot move from {self.state.value} to {new_state.value}"
            )

    def advance(self, new_state: SlotState) -> None:
        """Move to new_state, enforcing forward-only transitions."""
        self.check_transition(new_state)
        self.state = new_state
        self.updated_at = datetime.now()

    def summary(self) -> dict:
        """JSON-safe view of the slot without image bytes."""
        data = self.model_dump(mode="json", exclude={"image"})
        data["has_image"] = self.image is not None
        return data


class BatchCounts(BaseModel):
    """Aggregate counts for display and billing."""
    total: int = 0
    valid: int = 0
    discarded: int = 0
