#!/usr/bin/env python
#
# OpenFuse - Schema definitions
# © 2025 Shinichi Morita (shin3tky)
#

"""
Data structures, constants, and type definitions for burst fusion.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

if TYPE_CHECKING:
    from .exceptions import FuseError

# ==========================================
# Version
# ==========================================
VERSION = "1.0.0"

# ==========================================
# Default Settings
# ==========================================
DEFAULT_BURST_COUNT = 6
DEFAULT_JPEG_QUALITY = 0.92
DEFAULT_SHADOW_AMOUNT = 0.2
DEFAULT_SHADOW_PIVOT = 0.5
DEFAULT_MIN_ALIGNMENT_RESPONSE = 0.05
DEFAULT_DECODE_WORKERS = 1
DEFAULT_CAPTURE_WORKERS = 4
DEFAULT_ENCODER_BACKEND = "opencv"
DEFAULT_LOCALE_NAME = "en"

DEFAULT_SOURCE_FOLDER = "TestDNGs"
DEFAULT_OUTPUT_FOLDER = "output"
DEFAULT_FILE_PREFIX = "openfuse"

ENCODER_BACKENDS = ("opencv", "pillow")

# ==========================================
# Media types
# ==========================================
MEDIA_TYPE_JPEG = "image/jpeg"
MEDIA_TYPE_DNG = "image/x-adobe-dng"

MEDIA_TYPE_EXTENSIONS: Dict[str, str] = {
    MEDIA_TYPE_JPEG: ".jpg",
    MEDIA_TYPE_DNG: ".dng",
}

# Raw container extensions accepted by the directory frame source
RAW_EXTENSIONS = [
    ".DNG",  # Adobe
    ".ORF",  # Olympus
    ".RW2",  # Panasonic
    ".RAF",  # Fujifilm
    ".ARW",  # Sony
    ".CR2",  # Canon
    ".CR3",  # Canon
    ".NEF",  # Nikon
    ".SRW",  # Samsung
    ".RAW",  # RAW
]


# ==========================================
# Enumerations
# ==========================================
class OutputMode(Enum):
    """Which artifacts a burst produces."""

    ENCODED_ONLY = "encoded_only"
    ENCODED_PLUS_RAW = "encoded_plus_raw"

    @property
    def label(self) -> str:
        """Status wording for this mode (``encoded-only`` / ``encoded-plus-raw``)."""
        return self.value.replace("_", "-")

    @property
    def includes_raw(self) -> bool:
        return self is OutputMode.ENCODED_PLUS_RAW

    @classmethod
    def parse(cls, value: Union["OutputMode", str]) -> "OutputMode":
        """Parse a mode from its enum, snake, kebab or camel case spelling.

        Raises:
            ValueError: If the value does not name a mode.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Unknown output mode: {value!r}")

        text = value.strip()
        if text.isupper() or "_" in text or "-" in text:
            key = text.lower().replace("-", "_")
        else:
            # camelCase spelling, e.g. "encodedPlusRaw"
            key = "".join("_" + c.lower() if c.isupper() else c for c in text)
        for mode in cls:
            if mode.value == key:
                return mode
        raise ValueError(f"Unknown output mode: {value!r}")


class SessionState(Enum):
    """Lifecycle of a burst session inside the coordinator."""

    COLLECTING = "collecting"
    READY = "ready"
    DRAINING = "draining"


class FrameDecodeStatus(Enum):
    UNDECODED = "undecoded"
    DECODED = "decoded"
    DECODE_FAILED = "decode_failed"


class PipelineState(Enum):
    """States of a single fusion run."""

    IDLE = "idle"
    DECODING = "decoding"
    ALIGNING = "aligning"
    MERGING = "merging"
    TONE_MAPPING = "tone_mapping"
    ENCODING = "encoding"
    DONE = "done"
    FAILED = "failed"


# ==========================================
# Frame and result types
# ==========================================
@dataclass(frozen=True)
class RawFrame:
    """One raw container blob as received from a frame source.

    Attributes:
        data: Opaque raw container bytes.
        arrival_index: Zero-based position in arrival order within its burst.
        received_at: Monotonic clock reading when the frame was appended.
    """

    data: bytes
    arrival_index: int
    received_at: float = 0.0


@dataclass(frozen=True)
class AlignmentTransform:
    """Pure 2-D translation of a frame relative to the reference.

    ``dx``/``dy`` are the displacement of the moving frame in pixels.
    ``estimated`` is False when registration could not be performed and the
    identity was substituted.
    """

    dx: float = 0.0
    dy: float = 0.0
    estimated: bool = True
    response: float = 1.0

    @property
    def is_identity(self) -> bool:
        return self.dx == 0.0 and self.dy == 0.0

    @classmethod
    def fallback(cls) -> "AlignmentTransform":
        """Identity transform used when estimation was not possible."""
        return cls(0.0, 0.0, estimated=False, response=0.0)


IDENTITY = AlignmentTransform()


@dataclass(frozen=True)
class OutputArtifacts:
    """Artifacts of one successful fusion run."""

    encoded_image: bytes
    raw_frame: Optional[bytes] = None


@dataclass(frozen=True)
class FrameNotice:
    """A soft, per-frame problem that did not abort the run."""

    arrival_index: int
    stage: str
    detail: str


@dataclass
class FusionResult:
    """Outcome of a fusion run.

    Exactly one of ``artifacts`` and ``error`` is set.
    """

    artifacts: Optional[OutputArtifacts] = None
    error: Optional["FuseError"] = None
    failure_category: Optional[str] = None
    notices: List[FrameNotice] = field(default_factory=list)
    frame_status: List[FrameDecodeStatus] = field(default_factory=list)
    frames_fused: int = 0
    state_history: List[PipelineState] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.artifacts is not None

    @classmethod
    def succeeded(cls, artifacts: OutputArtifacts, **kwargs: Any) -> "FusionResult":
        return cls(artifacts=artifacts, **kwargs)

    @classmethod
    def failed(
        cls, error: "FuseError", category: Optional[str] = None, **kwargs: Any
    ) -> "FusionResult":
        return cls(
            error=error,
            failure_category=category or error.category or "unexpected",
            **kwargs,
        )


# ==========================================
# Configuration
# ==========================================
@dataclass
class FusionConfig:
    """Configuration for a burst fusion run.

    Attributes:
        burst_count: Number of frames per burst.
        output_mode: Which artifacts to produce.
        jpeg_quality: Lossy encode quality in (0, 1].
        shadow_amount: Shadow lift strength of the tone curve.
        min_alignment_response: Minimum phase correlation response accepted
            as a valid registration.
        decode_workers: Threads used to decode frames of one burst.
        capture_workers: Threads used by the live frame source.
        encoder_backend: "opencv" or "pillow".
        source_folder: Fixture folder for the directory frame source.
        output_folder: Folder for saved artifacts.
        fallback_folder: Folder used when the primary output is unwritable.
        locale: Locale for status messages.
    """

    burst_count: int = DEFAULT_BURST_COUNT
    output_mode: OutputMode = OutputMode.ENCODED_ONLY
    jpeg_quality: float = DEFAULT_JPEG_QUALITY
    shadow_amount: float = DEFAULT_SHADOW_AMOUNT
    min_alignment_response: float = DEFAULT_MIN_ALIGNMENT_RESPONSE
    decode_workers: int = DEFAULT_DECODE_WORKERS
    capture_workers: int = DEFAULT_CAPTURE_WORKERS
    encoder_backend: str = DEFAULT_ENCODER_BACKEND
    source_folder: str = DEFAULT_SOURCE_FOLDER
    output_folder: str = DEFAULT_OUTPUT_FOLDER
    fallback_folder: Optional[str] = None
    locale: str = DEFAULT_LOCALE_NAME

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self.output_mode = OutputMode.parse(self.output_mode)
        if self.burst_count < 1:
            raise ValueError(f"burst_count must be >= 1, got {self.burst_count}")
        if not 0.0 < self.jpeg_quality <= 1.0:
            raise ValueError(
                f"jpeg_quality must be in (0, 1], got {self.jpeg_quality}"
            )
        if self.shadow_amount < 0.0:
            raise ValueError(
                f"shadow_amount must be >= 0, got {self.shadow_amount}"
            )
        if not 0.0 <= self.min_alignment_response <= 1.0:
            raise ValueError(
                "min_alignment_response must be in [0, 1], "
                f"got {self.min_alignment_response}"
            )
        if self.decode_workers < 1:
            raise ValueError(
                f"decode_workers must be >= 1, got {self.decode_workers}"
            )
        if self.capture_workers < 1:
            raise ValueError(
                f"capture_workers must be >= 1, got {self.capture_workers}"
            )
        if self.encoder_backend not in ENCODER_BACKENDS:
            raise ValueError(
                f"encoder_backend must be one of {ENCODER_BACKENDS}, "
                f"got {self.encoder_backend!r}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a plain dictionary."""
        data = {item.name: getattr(self, item.name) for item in fields(self)}
        data["output_mode"] = self.output_mode.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FusionConfig":
        """Create configuration from a dictionary.

        Missing keys take their defaults.

        Raises:
            KeyError: If the dictionary contains unknown keys.
            ValueError: If a value fails validation.
        """
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise KeyError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)
