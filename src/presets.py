"""Pose preset catalog with safety clamps applied at build time."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PresetFamily(str, Enum):
    """Groupings of pose presets."""
    COMMERCE_SAFE = "COMMERCE_SAFE"
    CROP_FOCUS = "CROP_FOCUS"
    RECOVERY = "RECOVERY"
    ANGLE_SET = "ANGLE_SET"
    DETAIL_EMPHASIS = "DETAIL_EMPHASIS"
    LOWER_BODY_FOCUS = "LOWER_BODY_FOCUS"


PRESET_VERSION = "1.0.0"

# Global safe ranges in degrees, (min, max)
GLOBAL_SAFE_RANGES = {
    "body_rotation_deg": (-20, 20),
    "torso_tilt_deg": (-10, 10),
    "arm_raise_deg": (0, 35),
    "elbow_bend_deg": (0, 60),
}

FORBIDDEN_PATTERNS = (
    "arms_crossed",
    "hands_cover_chest_area",
    "deep_pockets",
    "legs_crossed_tightly",
)

_ID_PREFIXES = {
    PresetFamily.COMMERCE_SAFE: "COM_SAFE",
    PresetFamily.CROP_FOCUS: "CROP",
    PresetFamily.RECOVERY: "RECOVERY",
    PresetFamily.ANGLE_SET: "ANGLE",
    PresetFamily.DETAIL_EMPHASIS: "DETAIL",
    PresetFamily.LOWER_BODY_FOCUS: "LOWER",
}


class PoseSignatureTemplate(BaseModel):
    """Skeleton descriptor a preset asks the generator to reproduce."""
    model_config = ConfigDict(frozen=True)

    body_rotation_deg: float
    arm_state: str
    leg_state: str = "neutral"
    weight_shift: str = "center"
    head_visibility: str = "optional"
    description: str = ""


class SafeRanges(BaseModel):
    model_config = ConfigDict(frozen=True)

    body_rotation: tuple[float, float]
    arm_raise: tuple[float, float]


class PosePreset(BaseModel):
    """A named, pre-vetted pose template."""
    model_config = ConfigDict(frozen=True)

    id: str
    version: str = PRESET_VERSION
    family: PresetFamily
    name_ko: str
    name_en: str
    icon: str = ""
    tags_ko: tuple[str, ...] = ()
    recommended_for: tuple[str, ...] = ()
    signature: PoseSignatureTemplate
    safe_ranges: SafeRanges
    forbidden_patterns: tuple[str, ...] = FORBIDDEN_PATTERNS
    micro_variation_level: float = 0.0
    ctr_expected: float = Field(0.0, ge=0.0, le=1.0)


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return min(max(value, low), high)


def build_preset(
    id_suffix: str,
    family: PresetFamily,
    name_ko: str,
    name_en: str,
    icon: str,
    rotation: float,
    arm: str,
    desc: str,
    tags: list[str] | None = None,
    use: list[str] | None = None,
    ctr: float = 0.0,
    leg: str | None = None,
    weight: str | None = None,
    head: str | None = None,
    micro: float | None = None,
) -> PosePreset:
    """Build a preset, clamping body rotation into the global safe range.

    The clamp happens here so every PosePreset in circulation is already
    within range.
    """
    low, high = GLOBAL_SAFE_RANGES["body_rotation_deg"]
    safe_rotation = clamp(rotation, low, high)

    return PosePreset(
        id=f"POSE_{_ID_PREFIXES[family]}_{id_suffix}",
        family=family,
        name_ko=name_ko,
        name_en=name_en,
        icon=icon,
        tags_ko=tuple(tags or ()),
        recommended_for=tuple(use or ()),
        signature=PoseSignatureTemplate(
            body_rotation_deg=safe_rotation,
            arm_state=arm,
            leg_state=leg or "neutral",
            weight_shift=weight or "center",
            head_visibility=head or "optional",
            description=desc,
        ),
        safe_ranges=SafeRanges(
            body_rotation=(safe_rotation - 5, safe_rotation + 5),
            arm_raise=GLOBAL_SAFE_RANGES["arm_raise_deg"],
        ),
        micro_variation_level=micro or 0.0,
        ctr_expected=ctr,
    )


def commerce_safe_presets() -> list[PosePreset]:
    F = PresetFamily.COMMERCE_SAFE
    return [
        build_preset("001", F, "정면 차렷", "Front Neutral Stand", "🧍",
                     rotation=0, arm="resting_sides",
                     desc="Front view, standing straight, arms naturally at sides.",
                     tags=["국룰", "전신", "안정"], use=["detail_page", "thumbnail"],
                     ctr=0.9, micro=0.1),
        build_preset("002", F, "좌측 15도 차렷", "Left 15 Deg Stand", "↙️",
                     rotation=-15, arm="resting",
                     desc="Body rotated 15 degrees left, showing side fit.",
                     tags=["입체감", "핏강조"], use=["detail_page"], ctr=0.85, micro=0.12),
        build_preset("003", F, "우측 15도 차렷", "Right 15 Deg Stand", "↘️",
                     rotation=15, arm="resting",
                     desc="Body rotated 15 degrees right, showing side fit.",
                     tags=["입체감", "핏강조"], use=["detail_page"], ctr=0.85, micro=0.12),
        build_preset("004", F, "체중 오른발", "Weight Shift Right", "🚶",
                     rotation=0, arm="resting", leg="weight_right", weight="right",
                     desc="Standing with weight shifted to right leg, natural vibe.",
                     tags=["자연스러움"], use=["detail_page"], ctr=0.82, micro=0.15),
        build_preset("005", F, "손 미세 변형", "Hand Variation", "🤚",
                     rotation=0, arm="slight_bend",
                     desc="Hands slightly bent or active to show sleeve detail.",
                     tags=["디테일", "소매"], use=["detail_page"], ctr=0.80, micro=0.18),
    ]


def crop_focus_presets() -> list[PosePreset]:
    F = PresetFamily.CROP_FOCUS
    return [
        build_preset("001", F, "상반신 정면", "Upper Body Front", "👤",
                     rotation=0, arm="resting", head="none",
                     desc="Upper body crop, facing forward, focus on torso.",
                     tags=["상반신", "크롭"], use=["detail_page"], ctr=0.88),
        build_preset("002", F, "상반신 좌측 15도", "Upper Body Left 15", "🌔",
                     rotation=-15, arm="resting", head="none",
                     desc="Upper body crop, rotated left.",
                     tags=["상반신", "각도"], use=["detail_page"], ctr=0.85),
        build_preset("003", F, "상반신 우측 15도", "Upper Body Right 15", "🌖",
                     rotation=15, arm="resting", head="none",
                     desc="Upper body crop, rotated right.",
                     tags=["상반신", "각도"], use=["detail_page"], ctr=0.85),
        build_preset("004", F, "하반신 정면", "Lower Body Front", "👖",
                     rotation=0, arm="hidden", leg="step_slight", head="none",
                     desc="Lower body crop, slight step width.",
                     tags=["하반신", "바지핏"], use=["detail_page"], ctr=0.83),
        build_preset("005", F, "하반신 측면", "Lower Body Side", "🦵",
                     rotation=15, arm="hidden", head="none",
                     desc="Lower body crop, side silhouette.",
                     tags=["하반신", "실루엣"], use=["detail_page"], ctr=0.80),
    ]


def recovery_presets() -> list[PosePreset]:
    F = PresetFamily.RECOVERY
    return [
        build_preset("001", F, "기본 안전 포즈", "Normalize Base", "🩹",
                     rotation=0, arm="resting", head="none",
                     desc="Reset to safe standard pose. Use this to fix broken generations.",
                     tags=["복구", "초기화"], use=["detail_page"], ctr=0.9),
        build_preset("002", F, "목짤 안전 포즈", "Safety Headless", "✂️",
                     rotation=0, arm="resting", head="none",
                     desc="Force headless crop with standard pose. Maximum safety.",
                     tags=["얼굴제거", "안전"], use=["detail_page"], ctr=0.88),
    ]


def generate_all() -> list[PosePreset]:
    """Generate the full preset library."""
    return [
        *commerce_safe_presets(),
        *crop_focus_presets(),
        *recovery_presets(),
    ]


# Built once at import, immutable afterwards
POSE_PRESETS: tuple[PosePreset, ...] = tuple(generate_all())
_PRESETS_BY_ID = {preset.id: preset for preset in POSE_PRESETS}


def presets_by_family(family: PresetFamily | str) -> list[PosePreset]:
    """Return all presets in a family, in catalog order."""
    family = PresetFamily(family)
    return [preset for preset in POSE_PRESETS if preset.family == family]


def get_preset(preset_id: str) -> PosePreset:
    """Look up a preset by id.

    Raises:
        KeyError: If no preset has this id
    """
    return _PRESETS_BY_ID[preset_id]
