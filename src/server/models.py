"""Pydantic models for the web server API."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from job_builder import (
    AngleJob,
    BackgroundChangeJob,
    ColorMatchJob,
    CommercialPoseJob,
    CustomReferenceJob,
    DesignTransferJob,
    JobConfig,
    LocationJob,
    PoseChangeJob,
    PresetJob,
    RegionColor,
    RegionEditJob,
)
from models import AspectRatio, BatchCounts, OutputConstraints, Resolution, SourceKind
from utils import decode_data_url


def _decode_optional(value: str | None) -> bytes | None:
    return decode_data_url(value) if value else None


# API Request Models

class RegionColorRequest(BaseModel):
    """Color instruction for one garment region."""
    enabled: bool = True
    mode: Literal["picker", "reference"] = "picker"
    target_color: str = ""
    reference_image: str | None = None
    source_region: Literal["upper_garment", "lower_garment", "outerwear"] | None = None
    extracted_hex: str | None = Field(None, pattern=r'^#[0-9A-Fa-f]{6}$')

    def to_region_color(self) -> RegionColor:
        return RegionColor(
            enabled=self.enabled,
            mode=self.mode,
            target_color=self.target_color,
            reference_image=_decode_optional(self.reference_image),
            source_region=self.source_region,
            extracted_hex=self.extracted_hex,
        )


class BatchRequest(BaseModel):
    """Request to start a batch.

    Images are base64 data URLs (or bare base64). Only the fields that apply
    to `kind` are read.
    """
    kind: SourceKind
    base_image: str = Field(..., min_length=1)
    resolution: Resolution = Resolution.STANDARD
    aspect_ratio: AspectRatio = AspectRatio.PORTRAIT
    free_prompt: str = Field("", max_length=2000)

    # preset / custom_reference
    preset_ids: list[str] = Field(default_factory=list)
    reference_images: list[str] = Field(default_factory=list, max_length=10)
    headless: bool = True
    allow_fallback: bool | None = None
    strict_mode: bool | None = None

    # angle_variant / pose_change / design_transfer / location
    angles: list[str] = Field(default_factory=list)
    view_mode: str = "full"
    reference_image: str | None = None
    pose_ids: list[str] = Field(default_factory=list)
    framing: str = "full"
    gender: Literal["Female", "Male"] = "Female"
    force: bool = False

    # region_edit
    locked_regions: list[str] = Field(default_factory=lambda: ["bottom", "pose", "face"])
    top_mode: str = "design"
    fit_lock: bool = True
    neck_lock: bool = False
    sleeve_lock: bool = False
    shoes_option: str = "change"
    pose_option: str = "maintain"
    accessory_option: str = "remove"

    # color_match
    regions: dict[str, RegionColorRequest] = Field(default_factory=dict)

    # commercial_pose
    variation_count: int = Field(4, ge=1, le=12)

    # background_change
    background_image: str | None = None

    # location
    location_ids: list[str] = Field(default_factory=lambda: ["korean_subway_station"])

    def to_job_config(self) -> JobConfig:
        """Translate the request into a job configuration.

        Raises:
            ValueError: If an image field is not valid base64
        """
        constraints = OutputConstraints(resolution=self.resolution, aspect_ratio=self.aspect_ratio)
        match self.kind:
            case SourceKind.PRESET:
                return PresetJob(
                    preset_ids=self.preset_ids,
                    headless=self.headless,
                    free_prompt=self.free_prompt,
                    constraints=constraints,
                )
            case SourceKind.CUSTOM_REFERENCE:
                return CustomReferenceJob(
                    reference_images=[decode_data_url(ref) for ref in self.reference_images],
                    headless=self.headless,
                    free_prompt=self.free_prompt,
                    constraints=constraints,
                )
            case SourceKind.ANGLE_VARIANT:
                return AngleJob(
                    angles=self.angles,
                    view_mode=self.view_mode,
                    reference_image=_decode_optional(self.reference_image),
                    free_prompt=self.free_prompt,
                    constraints=constraints,
                )
            case SourceKind.REGION_EDIT:
                return RegionEditJob(
                    locked_regions=set(self.locked_regions),
                    top_mode=self.top_mode,
                    fit_lock=self.fit_lock,
                    neck_lock=self.neck_lock,
                    sleeve_lock=self.sleeve_lock,
                    shoes_option=self.shoes_option,
                    pose_option=self.pose_option,
                    accessory_option=self.accessory_option,
                    free_prompt=self.free_prompt,
                    constraints=constraints,
                )
            case SourceKind.COLOR_MATCH:
                return ColorMatchJob(
                    regions={name: region.to_region_color() for name, region in self.regions.items()},
                    free_prompt=self.free_prompt,
                    constraints=constraints,
                )
            case SourceKind.COMMERCIAL_POSE:
                return CommercialPoseJob(
                    variation_count=self.variation_count,
                    free_prompt=self.free_prompt,
                    constraints=constraints,
                )
            case SourceKind.POSE_CHANGE:
                return PoseChangeJob(
                    pose_ids=self.pose_ids,
                    framing=self.framing,
                    reference_image=_decode_optional(self.reference_image),
                    gender=self.gender,
                    constraints=constraints,
                )
            case SourceKind.BACKGROUND_CHANGE:
                return BackgroundChangeJob(
                    background_image=_decode_optional(self.background_image),
                    free_prompt=self.free_prompt,
                    constraints=constraints,
                )
            case SourceKind.DESIGN_TRANSFER:
                return DesignTransferJob(
                    reference_image=_decode_optional(self.reference_image),
                    free_prompt=self.free_prompt,
                    force=self.force,
                    constraints=constraints,
                )
            case SourceKind.LOCATION:
                return LocationJob(
                    location_ids=self.location_ids,
                    free_prompt=self.free_prompt,
                    gender=self.gender,
                    constraints=constraints,
                )


# API Response Models

class BatchCreatedResponse(BaseModel):
    """Response after a batch is accepted."""
    batch_id: str
    message: str
    slots: list[dict[str, Any]]
    data: dict[str, Any] = Field(default_factory=dict)


class BatchInfo(BaseModel):
    """Summary of a batch for listings."""
    batch_id: str
    label: str
    completed: bool
    counts: BatchCounts


class BatchDetailResponse(BaseModel):
    """Full state of a batch."""
    batch_id: str
    label: str
    completed: bool
    counts: BatchCounts
    slots: list[dict[str, Any]]
    ranked: list[str] = Field(default_factory=list)
    output_dir: str | None = None
    error: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class ActionResponse(BaseModel):
    """Response for slot removal and cancellation."""
    batch_id: str
    message: str
    affected: int = 0
