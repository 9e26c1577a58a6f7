"""Expand UI-level job configurations into JobDescriptors.

Each config dataclass below is one variant of the job union. build_jobs()
matches on the variant and returns one descriptor per output image. The
builder never talks to the gateway; the only work besides string assembly
is pigment sampling for reference-mode color regions.
"""

import logging
from dataclasses import dataclass, field
from typing import Literal, Union

from color_sampler import sample_center_hex
from models import JobDescriptor, OutputConstraints, SourceKind
from presets import PosePreset, get_preset
from prompt_library import (
    ACCESSORY_EDIT_CLAUSES,
    ANGLES,
    BACKGROUND_SCENARIOS,
    EDIT_REGIONS,
    FALLBACK_POSE_PROMPT,
    FRAMINGS,
    GARMENT_LAYER_ORDER,
    GARMENT_REGION_NAMES,
    GLOBAL_BASE_PROMPT,
    HEADLESS_CLAUSE,
    LOCATIONS,
    POSE_EDIT_CLAUSES,
    POSE_LIBRARY,
    PRESERVE_CLAUSES,
    SHOES_EDIT_CLAUSES,
    TOP_EDIT_CLAUSES,
    VIEW_MODES,
)

logger = logging.getLogger(__name__)

MAX_SECONDARY_REFERENCES = 2
MAX_VARIATIONS = 12

GarmentRegion = Literal["upper_garment", "lower_garment", "outerwear"]


class ValidationError(ValueError):
    """Raised when a job configuration cannot produce any job."""
    pass


# ----------------------------------------------------------------------------
# Job configurations
# ----------------------------------------------------------------------------

@dataclass
class PresetJob:
    """Apply catalog presets, one output per preset."""
    preset_ids: list[str]
    headless: bool = True
    free_prompt: str = ""
    constraints: OutputConstraints = field(default_factory=OutputConstraints)


@dataclass
class CustomReferenceJob:
    """Transfer the pose of user-supplied reference images, one output per image."""
    reference_images: list[bytes]
    headless: bool = True
    free_prompt: str = ""
    constraints: OutputConstraints = field(default_factory=OutputConstraints)


@dataclass
class AngleJob:
    """Fitting variations at several camera angles."""
    angles: list[str]
    view_mode: str = "full"
    reference_image: bytes | None = None
    free_prompt: str = ""
    constraints: OutputConstraints = field(default_factory=OutputConstraints)


@dataclass
class RegionEditJob:
    """Selective edit: locked regions are preserved, the rest are changed."""
    locked_regions: set[str] = field(default_factory=lambda: {"bottom", "pose", "face"})
    top_mode: str = "design"
    fit_lock: bool = True
    neck_lock: bool = False
    sleeve_lock: bool = False
    shoes_option: str = "change"
    pose_option: str = "maintain"
    accessory_option: str = "remove"
    free_prompt: str = ""
    constraints: OutputConstraints = field(default_factory=OutputConstraints)


@dataclass
class RegionColor:
    """Color instruction for one garment region."""
    enabled: bool = True
    mode: Literal["picker", "reference"] = "picker"
    target_color: str = ""
    reference_image: bytes | None = None
    source_region: GarmentRegion | None = None
    extracted_hex: str | None = None


@dataclass
class ColorMatchJob:
    """Recolor one or more garment regions in a single output."""
    regions: dict[str, RegionColor]
    free_prompt: str = ""
    constraints: OutputConstraints = field(
        default_factory=lambda: OutputConstraints(resolution="2K", aspect_ratio="1:1")
    )


@dataclass
class CommercialPoseJob:
    """N free commercial pose variations of the same image."""
    variation_count: int = 4
    free_prompt: str = ""
    constraints: OutputConstraints = field(default_factory=OutputConstraints)


@dataclass
class PoseChangeJob:
    """Repose the model using entries from the pose library."""
    pose_ids: list[str]
    framing: str = "full"
    reference_image: bytes | None = None
    gender: str = "Female"
    constraints: OutputConstraints = field(default_factory=OutputConstraints)


@dataclass
class BackgroundChangeJob:
    """Swap the background for a reference one, or for the automatic scenarios."""
    background_image: bytes | None = None
    free_prompt: str = ""
    constraints: OutputConstraints = field(default_factory=OutputConstraints)


@dataclass
class DesignTransferJob:
    """Transfer the upper garment design from a reference image."""
    reference_image: bytes | None = None
    free_prompt: str = ""
    force: bool = False  # run even when the structure check says L3
    constraints: OutputConstraints = field(default_factory=OutputConstraints)


@dataclass
class LocationJob:
    """UGC-style shots of the outfit at catalog locations, one output per location.

    With no location selected, a single shot is made from the free prompt alone.
    """
    location_ids: list[str] = field(default_factory=lambda: ["korean_subway_station"])
    free_prompt: str = ""
    gender: str = "Female"
    constraints: OutputConstraints = field(default_factory=OutputConstraints)


JobConfig = Union[
    PresetJob,
    CustomReferenceJob,
    AngleJob,
    RegionEditJob,
    ColorMatchJob,
    CommercialPoseJob,
    PoseChangeJob,
    BackgroundChangeJob,
    DesignTransferJob,
    LocationJob,
]


# ----------------------------------------------------------------------------
# Entry point
# ----------------------------------------------------------------------------

def build_jobs(config: JobConfig, base_image: bytes | None) -> list[JobDescriptor]:
    """Expand a job configuration into one descriptor per output image.

    Args:
        config: One of the job configuration variants
        base_image: The product photo every job starts from

    Returns:
        Non-empty list of JobDescriptors, in selection order

    Raises:
        ValidationError: If the base image is missing or the config selects nothing
    """
    if not base_image:
        raise ValidationError("A base image is required")

    match config:
        case PresetJob():
            jobs = _build_preset_jobs(config, base_image)
        case CustomReferenceJob():
            jobs = _build_custom_reference_jobs(config, base_image)
        case AngleJob():
            jobs = _build_angle_jobs(config, base_image)
        case RegionEditJob():
            jobs = [_build_region_edit_job(config, base_image)]
        case ColorMatchJob():
            jobs = [_build_color_match_job(config, base_image)]
        case CommercialPoseJob():
            jobs = _build_commercial_pose_jobs(config, base_image)
        case PoseChangeJob():
            jobs = _build_pose_change_jobs(config, base_image)
        case BackgroundChangeJob():
            jobs = _build_background_jobs(config, base_image)
        case DesignTransferJob():
            jobs = [_build_design_transfer_job(config, base_image)]
        case LocationJob():
            jobs = _build_location_jobs(config, base_image)
        case _:
            raise TypeError(f"Unsupported job configuration: {type(config).__name__}")

    logger.debug(f"Built {len(jobs)} job(s) for {type(config).__name__}")
    return jobs


def _user_instruction(free_prompt: str, label: str = "ADDITIONAL USER INSTRUCTION") -> str:
    free_prompt = free_prompt.strip()
    return f"**{label}:** {free_prompt}" if free_prompt else ""


def _join(*sections: str) -> str:
    """Join non-empty prompt sections with blank lines."""
    return "\n\n".join(s.strip() for s in sections if s and s.strip())


# ----------------------------------------------------------------------------
# Pose presets and custom references
# ----------------------------------------------------------------------------

def preset_instructions(preset: PosePreset) -> str:
    """Pose instruction block for a catalog preset."""
    sig = preset.signature
    return (
        f"[SMART POSE LIBRARY: {preset.name_en}]\n"
        "Apply the following specific pose instructions to the model in Image A (Target).\n\n"
        "**POSE SIGNATURE:**\n"
        f"- Rotation: {sig.body_rotation_deg:g} degrees.\n"
        f"- Arms: {sig.arm_state}.\n"
        f"- Legs: {sig.leg_state}, weight {sig.weight_shift}.\n"
        f"- Description: {sig.description}\n\n"
        "**SAFETY CONSTRAINTS:**\n"
        f"- Strictly avoid: {', '.join(preset.forbidden_patterns)}.\n"
        "- Ensure clear visibility of the garment.\n\n"
        "**PRESERVE:**\n"
        "- Keep the original outfit from Image A exactly as is.\n"
        "- Adjust fabric folds naturally to match the new pose."
    )


REFERENCE_POSE_PROMPT = """\
[SMART POSE REFERENCE MODE - STRICT SKELETON TRANSFER]

**TASK:** Extract the body pose (skeleton) from Image B (Reference) and apply it to the subject in Image A (Target).

**1. DIRECTIONAL STANDARD (CRITICAL):**
- **Subject-Centric Mapping:** The Target Subject's Left Hand corresponds to the Reference Subject's Left Hand.
- **Visual Matching:** Maintain the exact limb orientation relative to the camera.
- Do NOT flip or mirror the pose.

**2. CLEAN POSE (NO PROPS):**
- **IGNORE PROPS:** If the reference model in Image B is holding objects, **DO NOT GENERATE THEM**.
- **Empty Hands:** Render the target model's hands natural and empty.
- **Focus:** Transfer ONLY the joint angles and body geometry.

**3. PRESERVATION:**
- Keep the original outfit from Image A (Target) exactly as is.
- Retain the Target Subject's identity and body type.
- Adjust fabric folds naturally to match the new pose physics."""


def _smart_pose_payload(pose_block: str, headless: bool, free_prompt: str) -> str:
    return _join(
        pose_block,
        HEADLESS_CLAUSE if headless else "",
        _user_instruction(free_prompt),
        "Output: Photorealistic fashion image.",
    )


def _build_preset_jobs(config: PresetJob, base_image: bytes) -> list[JobDescriptor]:
    if not config.preset_ids:
        raise ValidationError("Select at least one pose preset")

    jobs = []
    for preset_id in config.preset_ids:
        try:
            preset = get_preset(preset_id)
        except KeyError:
            raise ValidationError(f"Unknown pose preset: {preset_id}") from None
        jobs.append(JobDescriptor(
            source_kind=SourceKind.PRESET,
            source_label=preset.name_en,
            instruction_payload=_smart_pose_payload(
                preset_instructions(preset), config.headless, config.free_prompt
            ),
            reference_images=(base_image,),
            output_constraints=config.constraints,
            metadata={"preset_id": preset.id, "family": preset.family.value},
        ))
    return jobs


def _build_custom_reference_jobs(config: CustomReferenceJob, base_image: bytes) -> list[JobDescriptor]:
    references = [ref for ref in config.reference_images if ref]
    if not references:
        raise ValidationError("Upload at least one pose reference image")

    fallback = _smart_pose_payload(FALLBACK_POSE_PROMPT, config.headless, config.free_prompt)
    primary = _smart_pose_payload(REFERENCE_POSE_PROMPT, config.headless, config.free_prompt)

    return [
        JobDescriptor(
            source_kind=SourceKind.CUSTOM_REFERENCE,
            source_label=f"Custom Reference {i + 1}",
            instruction_payload=primary,
            reference_images=(base_image, ref),
            output_constraints=config.constraints,
            fallback_payload=fallback,
        )
        for i, ref in enumerate(references)
    ]


# ----------------------------------------------------------------------------
# Angles and pose library
# ----------------------------------------------------------------------------

def _build_angle_jobs(config: AngleJob, base_image: bytes) -> list[JobDescriptor]:
    if not config.angles:
        raise ValidationError("Select at least one camera angle")
    if config.view_mode not in VIEW_MODES:
        raise ValidationError(f"Unknown view mode: {config.view_mode}")

    constraints = config.constraints
    render_block = (
        f"Framing: {VIEW_MODES[config.view_mode]}.\n"
        f"Aspect ratio: {constraints.aspect_ratio.value}.\n"
        "Resolution: high quality commercial photo.\n"
        "Style: clean fashion product photography.\n"
        "Purpose: e-commerce fitting variation.\n"
        "No text, no icons, no watermarks, no graphic overlays."
    )
    images = (base_image, config.reference_image) if config.reference_image else (base_image,)

    jobs = []
    for angle_id in config.angles:
        if angle_id not in ANGLES:
            raise ValidationError(f"Unknown camera angle: {angle_id}")
        label, angle_prompt = ANGLES[angle_id]
        payload = _join(
            GLOBAL_BASE_PROMPT,
            render_block,
            angle_prompt,
            f"Additional context: {config.free_prompt.strip()}" if config.free_prompt.strip() else "",
            "Do not generate identical poses. Each generated image must have a clearly "
            "different body rotation and camera angle.",
        )
        jobs.append(JobDescriptor(
            source_kind=SourceKind.ANGLE_VARIANT,
            source_label=label,
            instruction_payload=payload,
            reference_images=images,
            output_constraints=constraints,
            metadata={"angle": angle_id},
        ))
    return jobs


def _pose_change_payload(pose_prompt: str, framing_instruction: str, gender: str) -> str:
    return _join(
        "**ROLE:**\nYou are an expert AI Fashion Photographer and Image Editor.\n"
        "Your task is to generate a realistic fashion lookbook image based on the reference image provided.",
        "**CORE TASK:**\n"
        "1. **Analyze the Reference:** Pay extreme attention to the fabric texture, color, fit, and wrinkles.\n"
        "2. **Repose the Subject:** Generate a new image of a model wearing EXACTLY the same outfit, "
        "but in the new pose described below.\n"
        "3. **Preserve Identity:** The clothing items must look identical to the original.",
        f"**TARGET POSE:**\n> {pose_prompt}",
        framing_instruction,
        "**BACKGROUND & LIGHTING:**\n"
        "- Background: Clean, minimal professional studio background (Soft Grey or Off-White).\n"
        "- Lighting: Soft, directional studio lighting that highlights the fabric texture.",
        "**NEGATIVE PROMPT:**\n"
        "cartoon, illustration, 3d render, distorted body, extra limbs, changed clothes, blur, low resolution.",
        f"Gender: {gender}.",
    )


def _build_pose_change_jobs(config: PoseChangeJob, base_image: bytes) -> list[JobDescriptor]:
    if not config.pose_ids:
        raise ValidationError("Select at least one pose")
    if config.framing not in FRAMINGS:
        raise ValidationError(f"Unknown framing: {config.framing}")

    framing_label, framing_instruction = FRAMINGS[config.framing]
    images = (base_image, config.reference_image) if config.reference_image else (base_image,)

    jobs = []
    for pose_id in config.pose_ids:
        if pose_id not in POSE_LIBRARY:
            raise ValidationError(f"Unknown pose: {pose_id}")
        label, pose_prompt = POSE_LIBRARY[pose_id]
        jobs.append(JobDescriptor(
            source_kind=SourceKind.POSE_CHANGE,
            source_label=label,
            instruction_payload=_pose_change_payload(pose_prompt, framing_instruction, config.gender),
            reference_images=images,
            output_constraints=config.constraints,
            metadata={"pose": pose_id, "framing": framing_label},
        ))
    return jobs


# ----------------------------------------------------------------------------
# Region edit
# ----------------------------------------------------------------------------

# Regions that can only be preserved; unlocking them adds no clause
PRESERVE_ONLY_REGIONS = ("bottom", "face")


def region_edit_plan(config: RegionEditJob) -> tuple[set[str], set[str]]:
    """Split regions into (preserved, edited).

    A region is edited only when it is unlocked and its option produces a
    change clause, so the two sets never intersect.
    """
    unknown = set(config.locked_regions) - set(EDIT_REGIONS)
    if unknown:
        raise ValidationError(f"Unknown regions: {', '.join(sorted(unknown))}")

    preserved = {r for r in EDIT_REGIONS if r in config.locked_regions}
    edited = set()
    for region in EDIT_REGIONS:
        if region in preserved or region in PRESERVE_ONLY_REGIONS:
            continue
        if region == "pose" and POSE_EDIT_CLAUSES.get(config.pose_option) is None:
            continue
        edited.add(region)
    return preserved, edited


def _edit_clauses(region: str, config: RegionEditJob) -> list[str]:
    if region == "top":
        if config.top_mode not in TOP_EDIT_CLAUSES:
            raise ValidationError(f"Unknown top edit mode: {config.top_mode}")
        clauses = [TOP_EDIT_CLAUSES[config.top_mode]]
        if config.fit_lock:
            clauses.append("  * Maintain the original fit and silhouette.")
        if config.neck_lock:
            clauses.append("  * Preserve the neckline shape.")
        if config.sleeve_lock:
            clauses.append("  * Keep sleeve length unchanged.")
        return clauses
    if region == "shoes":
        if config.shoes_option not in SHOES_EDIT_CLAUSES:
            raise ValidationError(f"Unknown shoes option: {config.shoes_option}")
        return [SHOES_EDIT_CLAUSES[config.shoes_option]]
    if region == "pose":
        if config.pose_option not in POSE_EDIT_CLAUSES:
            raise ValidationError(f"Unknown pose option: {config.pose_option}")
        return [POSE_EDIT_CLAUSES[config.pose_option]]
    if region == "accessories":
        if config.accessory_option not in ACCESSORY_EDIT_CLAUSES:
            raise ValidationError(f"Unknown accessory option: {config.accessory_option}")
        return [ACCESSORY_EDIT_CLAUSES[config.accessory_option]]
    raise ValidationError(f"Region {region} has no edit mode")


def _build_region_edit_job(config: RegionEditJob, base_image: bytes) -> JobDescriptor:
    preserved, edited = region_edit_plan(config)
    if not edited:
        raise ValidationError("Nothing to edit; unlock a region that has an edit option")

    lock_lines = [PRESERVE_CLAUSES[r] for r in EDIT_REGIONS if r in preserved]
    edit_lines = []
    for region in EDIT_REGIONS:
        if region in edited:
            edit_lines.extend(_edit_clauses(region, config))

    payload = _join(
        "[NanoBanana Pro - Selective Edit Mode]\n\n"
        "You are an expert AI fashion editor.\n"
        "Your goal is to edit specific parts of the image while STRICTLY PRESERVING others.",
        "**LOCKED REGIONS (PRESERVE EXACTLY):**\n" + "\n".join(lock_lines) if lock_lines else "",
        "**EDIT REGIONS (APPLY CHANGES):**\n" + "\n".join(edit_lines),
        _user_instruction(config.free_prompt, "ADDITIONAL USER INSTRUCTIONS"),
        "**GLOBAL PROTECTION RULES:**\n"
        "- Preserve body proportions, camera angle, lighting, shadows, and fabric realism.\n"
        "- Avoid AI artifacts, distortions, or unnatural textures.\n"
        "- Ensure natural blending between locked and edited regions.",
        "Output a high-quality, photorealistic fashion image.",
    )
    return JobDescriptor(
        source_kind=SourceKind.REGION_EDIT,
        source_label="Edit: " + ", ".join(r for r in EDIT_REGIONS if r in edited),
        instruction_payload=payload,
        reference_images=(base_image,),
        output_constraints=config.constraints,
        metadata={"preserved": sorted(preserved), "edited": sorted(edited)},
    )


# ----------------------------------------------------------------------------
# Multi-region color
# ----------------------------------------------------------------------------

def _pigment_for(color: RegionColor) -> str:
    if color.extracted_hex:
        return color.extracted_hex
    try:
        return sample_center_hex(color.reference_image)
    except ValueError as e:
        logger.warning(f"Could not sample reference pigment: {e}")
        return "Detect from image"


def _build_color_match_job(config: ColorMatchJob, base_image: bytes) -> JobDescriptor:
    unknown = set(config.regions) - set(GARMENT_LAYER_ORDER)
    if unknown:
        raise ValidationError(f"Unknown garment regions: {', '.join(sorted(unknown))}")

    # Layer order is fixed: later layers occlude earlier ones
    active = [
        (region, config.regions[region])
        for region in GARMENT_LAYER_ORDER
        if region in config.regions and config.regions[region].enabled
    ]
    if not active:
        raise ValidationError("Enable at least one garment region")

    missing = [r for r, c in active if c.mode == "reference" and not c.reference_image]
    if missing:
        raise ValidationError(f"Reference image required for: {', '.join(missing)}")

    references = [c.reference_image for _, c in active if c.mode == "reference"]
    if len(references) > MAX_SECONDARY_REFERENCES:
        raise ValidationError(
            f"At most {MAX_SECONDARY_REFERENCES} reference images can be combined in one job"
        )

    steps = []
    cross_matched = []
    ref_index = 0
    for step, (region, color) in enumerate(active, start=1):
        lines = [f"STEP {step} - TARGET: {GARMENT_REGION_NAMES[region]}"]
        if color.mode == "picker":
            if not color.target_color:
                raise ValidationError(f"Pick a color for: {region}")
            lines.append(f"- SOURCE: Solid color {color.target_color}")
        else:
            ref_index += 1
            source = color.source_region or region
            lines.extend([
                f"- SOURCE: Reference Image {ref_index}",
                f"- EXTRACT FROM: {GARMENT_REGION_NAMES[source]}",
                f"- GROUND TRUTH COLOR (PIGMENT): {_pigment_for(color)}",
                "- INSTRUCTION: Extract the pigment from the reference source and apply it to the target region.",
            ])
            if source != region:
                cross_matched.append(region)
                lines.extend([
                    "- CROSS-MATCH: Source region differs from target region. This is intentional.",
                    "- IGNORE the lighting and environment of the reference image; "
                    "ADAPT only the extracted pigment to the base image's lighting.",
                ])
        steps.append("\n".join(lines))

    payload = _join(
        "[NanoBanana Pro - Multi-Region Color Engine v2]\n\n"
        "You are a layered fashion rendering engine.\n"
        "Your task is to change the colors of specific garment regions based on the instructions below.",
        "**INPUTS:**\n"
        "- Image A: Base Image (Target)\n"
        "- Following images: Reference Images (Source for colors)",
        "**TASK QUEUE:**\n" + "\n\n".join(steps),
        "**LAYER PRIORITY (CRITICAL for Occlusion):**\n"
        "1. Render LOWER GARMENT first.\n"
        "2. Render UPPER GARMENT next (over lower if tucked out).\n"
        "3. Render OUTERWEAR last (over upper).",
        "**LIGHTING NORMALIZATION RULES:**\n"
        "- **IGNORE** the lighting/environment of the Reference Images.\n"
        "- **ADAPT** the extracted pigment to the Base Image's lighting environment.\n"
        "- Preserve the Base Image's shadows, highlights, and fabric texture exactly.",
        _user_instruction(config.free_prompt, "ADDITIONAL USER INSTRUCTIONS"),
        "Output the final composite image.",
    )
    return JobDescriptor(
        source_kind=SourceKind.COLOR_MATCH,
        source_label="Color: " + ", ".join(r for r, _ in active),
        instruction_payload=payload,
        reference_images=(base_image, *references),
        output_constraints=config.constraints,
        metadata={
            "layer_order": [r for r, _ in active],
            "cross_matched": cross_matched,
        },
    )


# ----------------------------------------------------------------------------
# Commercial poses, backgrounds and design transfer
# ----------------------------------------------------------------------------

COMMERCIAL_POSE_PROMPT = """\
[Commercial Pose Variation Engine - Physics Aware]

Input: Fashion Model Image.
Task: Generate a high-quality commercial pose variation while preserving the outfit's texture and identity.

**PHYSICS SIMULATION RULES:**
1. **Reacting Fabric:** When limbs move, the clothing folds must change naturally.
2. **Texture Preservation:** Strictly maintain the fabric pattern and material finish.
3. **Background Inpainting:** If the model moves and reveals the background, fill it naturally.

**POSE STRATEGY:**
- Create a dynamic, commercially viable pose (e.g., walking, hand in pocket, slight turn, leaning).
- Ensure the pose highlights the garment's fit."""


def _build_commercial_pose_jobs(config: CommercialPoseJob, base_image: bytes) -> list[JobDescriptor]:
    if not 1 <= config.variation_count <= MAX_VARIATIONS:
        raise ValidationError(f"Variation count must be between 1 and {MAX_VARIATIONS}")

    payload = _join(
        COMMERCIAL_POSE_PROMPT,
        _user_instruction(config.free_prompt, "Additional Instruction"),
        "Output: Photorealistic image.",
    )
    return [
        JobDescriptor(
            source_kind=SourceKind.COMMERCIAL_POSE,
            source_label=f"Variation {i + 1}",
            instruction_payload=payload,
            reference_images=(base_image,),
            output_constraints=config.constraints,
        )
        for i in range(config.variation_count)
    ]


BACKGROUND_RULES = """\
LIGHTING & SHADOW RULES (VERY IMPORTANT):
- Preserve the original natural light direction, intensity, color temperature, and softness of the subject.
- Preserve all existing shadows cast by the subject.
- Match the new background to the lighting of the subject, NOT the other way around.
- Ensure the ground contact shadows remain physically consistent and realistic.

STRICT EXCLUSIONS:
- Do NOT add text, labels, sections, UI elements, or decorative graphics.
- Do NOT modify clothing color, fabric, wrinkles, or silhouette.
- Do NOT alter skin tone, body shape, or proportions."""


def _build_background_jobs(config: BackgroundChangeJob, base_image: bytes) -> list[JobDescriptor]:
    user = _user_instruction(config.free_prompt, "ADDITIONAL USER INSTRUCTIONS")

    if config.background_image:
        payload = _join(
            "You are a professional fashion image editor.\n\n"
            "Use Image A as the primary subject reference.\n"
            "Use Image B as the background reference only.",
            "TASK:\n"
            "- Keep the subject, pose, body proportions, clothing fit, fabric texture, and camera angle of Image A completely unchanged.\n"
            "- Extract ONLY the background environment from Image B and replace the background of Image A with it.",
            BACKGROUND_RULES,
            user,
            "OUTPUT:\n- Photorealistic fashion image, clean, professional, e-commerce ready.",
        )
        return [JobDescriptor(
            source_kind=SourceKind.BACKGROUND_CHANGE,
            source_label="Reference Background",
            instruction_payload=payload,
            reference_images=(base_image, config.background_image),
            output_constraints=config.constraints,
        )]

    jobs = []
    for name, description in BACKGROUND_SCENARIOS:
        payload = _join(
            "You are a professional fashion image editor.",
            "TASK:\n"
            f"- Change the background of the provided image to: {description}\n"
            "- Keep the subject, pose, body proportions, clothing fit, fabric texture, and camera angle completely unchanged.",
            BACKGROUND_RULES,
            user,
        )
        jobs.append(JobDescriptor(
            source_kind=SourceKind.BACKGROUND_CHANGE,
            source_label=name,
            instruction_payload=payload,
            reference_images=(base_image,),
            output_constraints=config.constraints,
            metadata={"scenario": name},
        ))
    return jobs


def _build_design_transfer_job(config: DesignTransferJob, base_image: bytes) -> JobDescriptor:
    if not config.reference_image:
        raise ValidationError("A design reference image is required")

    payload = _join(
        "[Top Garment Design Replacement]\n\n"
        "Task: Replace the Upper Garment in Image A (Base) with the design/texture/structure from Image B (Reference).",
        "Strict Rules:\n"
        "1. **TARGET:** Upper Garment ONLY.\n"
        "2. **PRESERVE:** Face & Hair, Hands & Arms Pose, Lower Garment, Background Environment.\n"
        "3. **TRANSFER:** Texture, Pattern, Graphics, and Collar/Sleeve style from Image B.\n"
        "4. **ADAPT:** Apply the new design to the model's body shape and pose in Image A. "
        "Match the Lighting and Shadows of Image A.",
        _user_instruction(config.free_prompt, "User Instruction"),
        "Output: Photorealistic composite image.",
    )
    return JobDescriptor(
        source_kind=SourceKind.DESIGN_TRANSFER,
        source_label="Design Transfer",
        instruction_payload=payload,
        reference_images=(base_image, config.reference_image),
        output_constraints=config.constraints,
    )


# ----------------------------------------------------------------------------
# UGC locations
# ----------------------------------------------------------------------------

def _build_location_jobs(config: LocationJob, base_image: bytes) -> list[JobDescriptor]:
    free_prompt = config.free_prompt.strip()
    if config.location_ids:
        locations = []
        for location_id in config.location_ids:
            if location_id not in LOCATIONS:
                raise ValidationError(f"Unknown location: {location_id}")
            locations.append((location_id, *LOCATIONS[location_id]))
    elif free_prompt:
        locations = [("custom", "Custom", "")]
    else:
        raise ValidationError("Select at least one location or describe the scene")

    jobs = []
    for location_id, name, scene in locations:
        payload = _join(
            "Create high-end fashion UGC of the outfit in the provided image.",
            f"Prompt: {free_prompt}" if free_prompt else "",
            f"Location: {scene}" if scene else "",
            f"Model: {config.gender}.",
            "Professional commercial style. Keep the outfit design, color, and fit exactly the same.",
        )
        jobs.append(JobDescriptor(
            source_kind=SourceKind.LOCATION,
            source_label=name,
            instruction_payload=payload,
            reference_images=(base_image,),
            output_constraints=config.constraints,
            metadata={"location": location_id},
        ))
    return jobs
