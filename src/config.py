"""Centralized configuration for the lookbook studio application."""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class GeminiConfig:
    """Configuration for the Gemini connection."""
    api_key: str = ""
    image_model: str = "gemini-3-pro-image-preview"
    analysis_model: str = "gemini-2.5-flash"


@dataclass(frozen=True)
class BatchConfig:
    """Default configuration for batch generation."""
    default_resolution: str = "2K"
    default_aspect_ratio: str = "9:16"
    job_timeout: float = 0.0  # seconds per job, 0 disables the timeout
    allow_fallback: bool = True
    strict_mode: bool = False


@dataclass(frozen=True)
class ServerConfig:
    """Configuration for the web server."""
    sse_queue_size: int = 100
    sse_timeout: float = 5.0  # seconds between keepalives
    max_sessions: int = 20


@dataclass(frozen=True)
class PathConfig:
    """Centralized path configuration for the application."""

    @property
    def root_dir(self) -> Path:
        """Project root directory."""
        return Path(__file__).parent.parent

    @property
    def src_dir(self) -> Path:
        """Source code directory."""
        return self.root_dir / "src"

    @property
    def generated_dir(self) -> Path:
        """Directory for all generated output."""
        return self.root_dir / "generated"

    @property
    def batches_dir(self) -> Path:
        """Directory for finished batch runs."""
        return self.generated_dir / "batches"

    @property
    def templates_dir(self) -> Path:
        """Directory for system prompt and rubric templates."""
        return self.root_dir / "templates"


# Singleton path configuration instance
paths = PathConfig()


def _env_flag(name: str, default: bool) -> bool:
    """Read a boolean flag from the environment."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Application settings, can be overridden via environment variables."""
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables with LOOKBOOK_ prefix."""
        gemini = GeminiConfig(
            api_key=os.environ.get(
                "LOOKBOOK_GEMINI_API_KEY",
                os.environ.get("GEMINI_API_KEY", GeminiConfig.api_key),
            ),
            image_model=os.environ.get("LOOKBOOK_IMAGE_MODEL", GeminiConfig.image_model),
            analysis_model=os.environ.get("LOOKBOOK_ANALYSIS_MODEL", GeminiConfig.analysis_model),
        )
        batch = BatchConfig(
            default_resolution=os.environ.get("LOOKBOOK_RESOLUTION", BatchConfig.default_resolution),
            default_aspect_ratio=os.environ.get("LOOKBOOK_ASPECT_RATIO", BatchConfig.default_aspect_ratio),
            job_timeout=float(os.environ.get("LOOKBOOK_JOB_TIMEOUT", BatchConfig.job_timeout)),
            allow_fallback=_env_flag("LOOKBOOK_ALLOW_FALLBACK", BatchConfig.allow_fallback),
            strict_mode=_env_flag("LOOKBOOK_STRICT_MODE", BatchConfig.strict_mode),
        )
        server = ServerConfig(
            sse_queue_size=int(os.environ.get("LOOKBOOK_SSE_QUEUE_SIZE", ServerConfig.sse_queue_size)),
            sse_timeout=float(os.environ.get("LOOKBOOK_SSE_TIMEOUT", ServerConfig.sse_timeout)),
            max_sessions=int(os.environ.get("LOOKBOOK_MAX_SESSIONS", ServerConfig.max_sessions)),
        )
        return cls(
            gemini=gemini,
            batch=batch,
            server=server,
        )


# Global settings instance - use from_env() for environment-aware settings
settings = Settings.from_env()
