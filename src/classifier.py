"""Quality and safety analysis of images through the Gemini JSON model.

The model's output is never trusted: it is parsed strictly, clamped, and
the QC status is re-derived locally. Quality analysis fails closed,
safety analysis fails open.
"""

import json
import logging
import re

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

from gateway import Gateway, load_template
from models import (
    ComponentScores,
    GarmentStructureResult,
    PoseSignature,
    QCResult,
    QCStatus,
    RiskLevel,
    SafetyResult,
    StructureLevel,
)

logger = logging.getLogger(__name__)

ANALYSIS_FAILED = "ANALYSIS_FAILED"

# Component caps: face 40%, body 30%, centering 30%
FACE_CAP = 40
BODY_CAP = 30
CENTERING_CAP = 30

RECOMMENDED_MIN_SCORE = 80
USABLE_MIN_SCORE = 40


def qc_fail_safe() -> QCResult:
    """Verdict used whenever quality analysis cannot be trusted."""
    return QCResult(
        status=QCStatus.NOT_RECOMMENDED,
        score=0,
        reject_reasons=[ANALYSIS_FAILED],
        component_scores=ComponentScores(),
        signature=PoseSignature(rotation=0, arm_state="unknown"),
    )


def safety_fail_safe() -> SafetyResult:
    """Verdict used whenever the safety pre-check cannot run."""
    return SafetyResult(
        risk_level=RiskLevel.SAFE,
        issues=[],
        fallback_recommended=False,
        reason="Analysis failed, assuming safe.",
    )


def structure_fail_safe() -> GarmentStructureResult:
    return GarmentStructureResult(
        level=StructureLevel.L2,
        reason="Analysis failed, proceeding with caution.",
    )


def derive_qc_status(score: int, reject_reasons: list[str]) -> QCStatus:
    """Classify a QC score.

    NOT_RECOMMENDED if any reject reason is present or the score is below 40,
    RECOMMENDED if there are none and the score is at least 80, USABLE otherwise.
    """
    if reject_reasons or score < USABLE_MIN_SCORE:
        return QCStatus.NOT_RECOMMENDED
    if score >= RECOMMENDED_MIN_SCORE:
        return QCStatus.RECOMMENDED
    return QCStatus.USABLE


def clean_json_output(text: str) -> str:
    """
    Clean model output by removing thinking blocks, markdown code blocks, and extra whitespace.

    Args:
        text: Raw model output

    Returns:
        Cleaned JSON content
    """
    # Remove <think>...</think> blocks (including multiline)
    text = re.sub(r'<think>.*?</think>', '', text, flags=re.DOTALL)

    code_block_match = re.search(r'```(?:json)?\s*\n(.*?)```', text, flags=re.DOTALL)
    if code_block_match:
        text = code_block_match.group(1)

    text = text.strip()

    try:
        json.loads(text)
    except json.JSONDecodeError:
        # Try to extract a JSON object from surrounding prose
        json_match = re.search(r'\{[\s\S]*\}', text)
        if json_match:
            text = json_match.group(0)

    return text


def _clamp_int(value: float, low: int, high: int) -> int:
    return int(min(max(round(value), low), high))


# Wire shapes of the model's JSON answers

class _RawSignature(BaseModel):
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    rotation: float = 0
    arm_state: str = Field("unknown", alias="armState")


class _RawDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    face_confidence: float = Field(0, alias="faceConfidence")
    body_ratio: float = Field(0, alias="bodyRatio")
    centering: float = 0


class _RawQC(BaseModel):
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    score: float
    reject_reasons: list[str] = Field(default_factory=list, alias="rejectReasons")
    signature: _RawSignature = Field(default_factory=_RawSignature)
    details: _RawDetails = Field(default_factory=_RawDetails)


class _RawSafety(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    risk_level: RiskLevel = Field(alias="riskLevel")
    issues: list[str] = Field(default_factory=list)
    reason: str = ""


class _RawStructure(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    level: StructureLevel
    reason: str = ""
    base_category: str | None = Field(None, alias="baseCategory")
    ref_category: str | None = Field(None, alias="refCategory")


def parse_qc(text: str) -> QCResult:
    """Parse and normalize a QC answer.

    Raises:
        json.JSONDecodeError, SchemaError: If the answer is malformed
    """
    raw = _RawQC.model_validate(json.loads(clean_json_output(text)))
    score = _clamp_int(raw.score, 0, 100)
    reasons = [r for r in raw.reject_reasons if r]
    return QCResult(
        status=derive_qc_status(score, reasons),
        score=score,
        reject_reasons=reasons,
        component_scores=ComponentScores(
            face_confidence=_clamp_int(raw.details.face_confidence, 0, FACE_CAP),
            body_ratio=_clamp_int(raw.details.body_ratio, 0, BODY_CAP),
            centering=_clamp_int(raw.details.centering, 0, CENTERING_CAP),
        ),
        signature=PoseSignature(
            rotation=_clamp_int(raw.signature.rotation, -90, 90),
            arm_state=raw.signature.arm_state or "unknown",
        ),
    )


def parse_safety(text: str) -> SafetyResult:
    """Parse a safety answer; fallback is recommended exactly for DANGER."""
    raw = _RawSafety.model_validate(json.loads(clean_json_output(text)))
    return SafetyResult(
        risk_level=raw.risk_level,
        issues=raw.issues,
        fallback_recommended=raw.risk_level == RiskLevel.DANGER,
        reason=raw.reason,
    )


def parse_structure(text: str) -> GarmentStructureResult:
    raw = _RawStructure.model_validate(json.loads(clean_json_output(text)))
    return GarmentStructureResult(
        level=raw.level,
        reason=raw.reason,
        base_category=raw.base_category,
        ref_category=raw.ref_category,
    )


class QualityClassifier:
    """Rubric-driven image analysis on top of a gateway."""

    def __init__(
        self,
        gateway: Gateway,
        qc_rubric: str | None = None,
        safety_rubric: str | None = None,
        structure_rubric: str | None = None,
    ):
        self.gateway = gateway
        self.qc_rubric = qc_rubric or load_template("qc_rubric")
        self.safety_rubric = safety_rubric or load_template("safety_rubric")
        self.structure_rubric = structure_rubric or load_template("structure_rubric")

    async def analyze_quality_strict(self, image: bytes) -> QCResult:
        """QC verdict for a generated image.

        Gateway errors propagate. Malformed answers give the fail-safe verdict.
        """
        text = await self.gateway.analyze(self.qc_rubric, (image,))
        try:
            return parse_qc(text)
        except (SchemaError, ValueError, TypeError) as e:
            logger.warning(f"Malformed QC answer, using fail-safe: {e}")
            return qc_fail_safe()

    async def analyze_quality(self, image: bytes) -> QCResult:
        """QC verdict for a generated image. Never raises."""
        try:
            return await self.analyze_quality_strict(image)
        except Exception as e:
            logger.warning(f"QC analysis failed, using fail-safe: {e}")
            return qc_fail_safe()

    async def analyze_safety(self, reference_image: bytes) -> SafetyResult:
        """Screen a pose reference before generation. Never raises."""
        try:
            text = await self.gateway.analyze(self.safety_rubric, (reference_image,))
            return parse_safety(text)
        except Exception as e:
            logger.warning(f"Safety analysis failed, assuming safe: {e}")
            return safety_fail_safe()

    async def analyze_garment_structure(self, base_image: bytes, reference_image: bytes) -> GarmentStructureResult:
        """Compare upper garments before a design transfer. Never raises."""
        try:
            text = await self.gateway.analyze(self.structure_rubric, (base_image, reference_image))
            return parse_structure(text)
        except Exception as e:
            logger.warning(f"Garment structure analysis failed: {e}")
            return structure_fail_safe()
