"""Gemini integration for image generation and JSON image analysis."""

import logging
from typing import Protocol

from google import genai
from google.genai import types

from config import paths, settings
from models import ErrorType, OutputConstraints, SlotFailure
from utils import guess_mime_type

logger = logging.getLogger(__name__)


# User-facing message per failure type
ERROR_MESSAGES = {
    ErrorType.SAFETY: "The image was blocked by the safety policy.",
    ErrorType.QUOTA: "API quota exceeded. Please try again shortly.",
    ErrorType.INVALID_CREDENTIAL: "The API key lacks permission or has expired. Please select a key again.",
    ErrorType.TIMEOUT: "The job did not finish within the time limit.",
    ErrorType.CANCELLED: "The job was cancelled.",
    ErrorType.UNKNOWN: "An error occurred while generating the image.",
}

# Substring rules checked in order, first match wins
_ERROR_RULES = (
    (ErrorType.SAFETY, ("safety", "blocked")),
    (ErrorType.QUOTA, ("quota", "429")),
    (ErrorType.INVALID_CREDENTIAL, ("key", "401", "403", "permission", "entity was not found")),
)


class GatewayError(Exception):
    """Raised when the model returns no usable output."""
    pass


def failure_for(error_type: ErrorType, detail: str | None = None) -> SlotFailure:
    """Build a SlotFailure carrying the fixed message for error_type."""
    return SlotFailure(error_type=error_type, message=ERROR_MESSAGES[error_type], detail=detail)


def classify_error(exc: BaseException) -> SlotFailure:
    """Map a raw gateway exception to a classified failure.

    Matching is case-insensitive on the exception text. The raw text is kept
    in `detail` for logs; the user only sees the fixed message.
    """
    text = str(exc) or type(exc).__name__
    lowered = text.lower()
    for error_type, needles in _ERROR_RULES:
        if any(needle in lowered for needle in needles):
            return failure_for(error_type, text)
    return failure_for(ErrorType.UNKNOWN, text)


def load_template(name: str) -> str:
    """Load a prompt template from the templates directory."""
    return (paths.templates_dir / f"{name}.txt").read_text()


class Gateway(Protocol):
    """Anything that can generate and analyze images."""

    async def generate_image(
        self,
        payload: str,
        images: tuple[bytes, ...],
        constraints: OutputConstraints,
    ) -> bytes:
        ...

    async def analyze(self, rubric: str, images: tuple[bytes, ...]) -> str:
        ...


def _image_parts(images: tuple[bytes, ...]) -> list:
    return [
        types.Part.from_bytes(data=data, mime_type=guess_mime_type(data))
        for data in images
    ]


def _extract_image(response) -> bytes:
    """Pull the first inline image out of a generate_content response."""
    candidates = response.candidates or []
    if not candidates:
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None)
        if block_reason:
            raise GatewayError(f"Request blocked: {block_reason}")
        raise GatewayError("No image in response")

    candidate = candidates[0]
    parts = candidate.content.parts if candidate.content and candidate.content.parts else []
    for part in parts:
        if part.inline_data and part.inline_data.data:
            return part.inline_data.data

    finish_reason = str(getattr(candidate, "finish_reason", "") or "")
    if "SAFETY" in finish_reason.upper():
        raise GatewayError(f"Image blocked by safety filter ({finish_reason})")
    raise GatewayError("No image in response")


class GeminiGateway:
    """Stateless wrapper around the Gemini image and analysis models.

    Every generation call carries the studio constitution as its system
    instruction. Analysis calls request JSON and return the raw text;
    parsing is the classifier's job.
    """

    def __init__(
        self,
        api_key: str | None = None,
        image_model: str | None = None,
        analysis_model: str | None = None,
        constitution: str | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.gemini.api_key
        self.image_model = image_model or settings.gemini.image_model
        self.analysis_model = analysis_model or settings.gemini.analysis_model
        self.constitution = constitution if constitution is not None else load_template("constitution")
        self._client: genai.Client | None = None

    @property
    def client(self) -> genai.Client:
        """Lazily created Gemini client."""
        if self._client is None:
            if not self.api_key:
                raise GatewayError(
                    "No API key configured. Set LOOKBOOK_GEMINI_API_KEY or GEMINI_API_KEY."
                )
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def generate_image(
        self,
        payload: str,
        images: tuple[bytes, ...],
        constraints: OutputConstraints,
    ) -> bytes:
        """Generate one image from an instruction payload and 1-3 input images.

        Raises:
            GatewayError: If the response carries no image
        """
        if not 1 <= len(images) <= 3:
            raise ValueError(f"Expected 1-3 input images, got {len(images)}")

        logger.debug(
            f"Generating with {self.image_model}: {len(images)} image(s), "
            f"{constraints.resolution.value} {constraints.aspect_ratio.value}"
        )
        response = await self.client.aio.models.generate_content(
            model=self.image_model,
            contents=[payload, *_image_parts(images)],
            config=types.GenerateContentConfig(
                system_instruction=self.constitution,
                response_modalities=["IMAGE"],
                image_config=types.ImageConfig(
                    aspect_ratio=constraints.aspect_ratio.value,
                    image_size=constraints.resolution.value,
                ),
            ),
        )
        return _extract_image(response)

    async def analyze(self, rubric: str, images: tuple[bytes, ...]) -> str:
        """Run a JSON analysis request and return the raw response text."""
        response = await self.client.aio.models.generate_content(
            model=self.analysis_model,
            contents=[rubric, *_image_parts(images)],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
            ),
        )
        return response.text or "{}"
