"""Shared test fixtures for all test modules."""

import asyncio
import json
import sys
import tempfile
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


QC_RUBRIC = "QC RUBRIC"
SAFETY_RUBRIC = "SAFETY RUBRIC"
STRUCTURE_RUBRIC = "STRUCTURE RUBRIC"


def make_png(color=(200, 30, 60), size=(64, 64)) -> bytes:
    """Encode a solid-color PNG."""
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def qc_json(score=85, reasons=None, face=35, body=25, centering=25, rotation=5, arm="straight") -> str:
    """A QC answer in the model's wire format."""
    return json.dumps({
        "status": "RECOMMENDED",
        "score": score,
        "rejectReasons": reasons or [],
        "signature": {"rotation": rotation, "armState": arm},
        "details": {"faceConfidence": face, "bodyRatio": body, "centering": centering, "total": score},
    })


def safety_json(risk="SAFE", issues=None, reason="Looks fine") -> str:
    return json.dumps({
        "isSafe": risk != "DANGER",
        "riskLevel": risk,
        "issues": issues or [],
        "fallbackRecommended": risk == "DANGER",
        "reason": reason,
    })


class StubGateway:
    """In-memory gateway recording every call.

    Generation fails with the mapped exception when the payload contains
    one of the `errors` keys. Analysis answers come from `responses`,
    keyed by rubric; an exception value is raised instead of returned.
    """

    def __init__(self, image: bytes | None = None, responses: dict | None = None, delay: float = 0.0):
        self.image = image or make_png()
        self.responses = responses if responses is not None else {
            QC_RUBRIC: qc_json(),
            SAFETY_RUBRIC: safety_json(),
            STRUCTURE_RUBRIC: json.dumps({"level": "L1", "reason": "Same structure"}),
        }
        self.delay = delay
        self.errors: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.generate_calls: list[tuple] = []
        self.analyze_calls: list[tuple] = []

    async def generate_image(self, payload, images, constraints):
        self.generate_calls.append((payload, images, constraints))
        delay = next((d for needle, d in self.delays.items() if needle in payload), self.delay)
        if delay:
            await asyncio.sleep(delay)
        for needle, exc in self.errors.items():
            if needle in payload:
                raise exc
        return self.image

    async def analyze(self, rubric, images):
        self.analyze_calls.append((rubric, images))
        response = self.responses.get(rubric, "{}")
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def png_bytes():
    """A small solid-color PNG."""
    return make_png()


@pytest.fixture
def stub_gateway():
    """Gateway stub that succeeds with a PNG and a RECOMMENDED QC answer."""
    return StubGateway()


@pytest.fixture
def classifier(stub_gateway):
    """Classifier on the stub gateway with short rubric markers."""
    from classifier import QualityClassifier
    return QualityClassifier(
        stub_gateway,
        qc_rubric=QC_RUBRIC,
        safety_rubric=SAFETY_RUBRIC,
        structure_rubric=STRUCTURE_RUBRIC,
    )
