#!/usr/bin/env python
#
# OpenFuse - Custom Exceptions
# © 2025 Shinichi Morita (shin3tky)
#

"""
Custom exception classes for burst fusion.

Every exception carries diagnostic information (wrapped cause, context,
error category) that the pipeline maps onto a typed ``FusionResult`` and the
CLI renders for troubleshooting.

Exception Hierarchy:
    FuseError (base)
    ├── FuseValidationError (parameter/input validation)
    ├── FuseConfigError (configuration errors)
    ├── FuseDecodeError (raw frame decoding, skippable per frame)
    │   └── FuseUnsupportedFormatError (unsupported raw container)
    ├── FusePipelineError (fatal to a fusion run)
    │   ├── FuseNoFramesError (no decodable frames)
    │   ├── FuseMergeError (merge precondition violated)
    │   └── FuseEncodeError (encoder failure)
    ├── FuseBurstStateError (burst session misuse)
    ├── FuseSourceError (frame source failures)
    └── FuseWriteError (artifact write failures)

Example:
    >>> try:
    ...     image = FrameDecoder().decode(blob)
    ... except FuseDecodeError as e:
    ...     print(e.category)
"""

from __future__ import annotations

import os
import platform
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .i18n import DEFAULT_LOCALE, get_message
from .schema import VERSION

# Key dependencies to include in diagnostic reports
_KEY_DEPENDENCIES = [
    "numpy",
    "opencv-python",
    "rawpy",
    "pillow",
    "pyyaml",
]


def _get_package_versions() -> Dict[str, str]:
    """Collect versions of key dependencies.

    Returns:
        Dictionary mapping package names to version strings.
        Returns "not installed" for missing packages.
    """
    from importlib.metadata import PackageNotFoundError, version

    versions: Dict[str, str] = {}
    for pkg in _KEY_DEPENDENCIES:
        try:
            versions[pkg] = version(pkg)
        except PackageNotFoundError:
            versions[pkg] = "not installed"
    return versions


@dataclass
class DiagnosticInfo:
    """Structured diagnostic information for error reporting.

    Attributes:
        version: fuse_core version string.
        python_version: Python interpreter version.
        platform: Operating system and architecture.
        timestamp: ISO format timestamp when the error occurred.
        filepath: Path related to the error (if applicable).
        file_exists: Whether the file exists at the given path.
        error_type: Name of the exception class.
        error_message: The error message.
        original_error_type: Type of the wrapped original exception.
        original_error_message: Message from the wrapped original exception.
        context: Additional context-specific information.
        dependencies: Installed versions of key dependencies.
    """

    version: str = ""
    python_version: str = ""
    platform: str = ""
    timestamp: str = ""
    filepath: Optional[str] = None
    file_exists: Optional[bool] = None
    error_type: str = ""
    error_message: str = ""
    original_error_type: Optional[str] = None
    original_error_message: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    dependencies: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "version": self.version,
            "python_version": self.python_version,
            "platform": self.platform,
            "timestamp": self.timestamp,
            "filepath": self.filepath,
            "file_exists": self.file_exists,
            "error_type": self.error_type,
            "error_message": self.error_message,
            "original_error_type": self.original_error_type,
            "original_error_message": self.original_error_message,
            "context": self.context,
            "dependencies": self.dependencies,
        }

    def format_report(self) -> str:
        """Format diagnostic info as a markdown report."""
        lines = [
            "## Diagnostic Information",
            "",
            "```",
            f"Version: {self.version}",
            f"Python: {self.python_version}",
            f"Platform: {self.platform}",
            f"Timestamp: {self.timestamp}",
            "```",
            "",
            "## Error",
            "",
            "```",
            f"Type: {self.error_type}",
            f"Message: {self.error_message}",
        ]
        if self.filepath:
            lines.append(f"File: {self.filepath} (exists: {self.file_exists})")
        if self.original_error_type:
            lines.append(
                f"Cause: {self.original_error_type}: {self.original_error_message}"
            )
        lines.extend(["```", ""])

        if self.context:
            lines.extend(["## Context", "", "```"])
            lines.extend(f"{key}: {value}" for key, value in self.context.items())
            lines.extend(["```", ""])

        if self.dependencies:
            lines.extend(["## Dependencies", "", "```"])
            lines.extend(
                f"{pkg}: {ver}" for pkg, ver in sorted(self.dependencies.items())
            )
            lines.extend(["```", ""])

        return "\n".join(lines)


class FuseError(Exception):
    """Base exception for all fuse_core errors.

    Attributes:
        message: Human-readable error message.
        filepath: Path to the related file (if applicable).
        original_error: The original exception that was caught (if wrapping).
        context: Additional context information as key-value pairs.

    Example:
        >>> raise FuseError("Something went wrong", context={"stage": "merging"})
    """

    def __init__(
        self,
        message: str,
        *,
        filepath: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.filepath = filepath
        self.original_error = original_error
        self.context = context or {}

        full_message = message
        if filepath:
            full_message = f"{message} (file: {filepath})"
        if original_error:
            full_message = (
                f"{full_message}: {type(original_error).__name__}: {original_error}"
            )

        super().__init__(full_message)

    @property
    def category(self) -> Optional[str]:
        """Machine-readable error category stored in the context."""
        return self.context.get("error_category")

    def get_diagnostic_info(self) -> DiagnosticInfo:
        """Generate diagnostic information for this error."""
        file_exists = None
        if self.filepath:
            file_exists = os.path.exists(self.filepath)

        original_type = None
        original_message = None
        if self.original_error:
            original_type = type(self.original_error).__name__
            original_message = str(self.original_error)

        return DiagnosticInfo(
            version=VERSION,
            python_version=sys.version,
            platform=f"{platform.system()} {platform.release()} ({platform.machine()})",
            timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            filepath=self.filepath,
            file_exists=file_exists,
            error_type=type(self).__name__,
            error_message=self.message,
            original_error_type=original_type,
            original_error_message=original_message,
            context=self.context,
            dependencies=_get_package_versions(),
        )


class FuseValidationError(FuseError):
    """Exception raised when a parameter or input value is invalid.

    Attributes:
        parameter_name: Name of the invalid parameter.
        provided_value: The value that was provided.
        expected: Description of what was expected.

    Example:
        >>> raise FuseValidationError(
        ...     "Invalid burst size",
        ...     parameter_name="expected_count",
        ...     provided_value=0,
        ...     expected="integer >= 1",
        ... )
    """

    def __init__(
        self,
        message: str = "Validation failed",
        *,
        filepath: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        parameter_name: Optional[str] = None,
        provided_value: Any = None,
        expected: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.parameter_name = parameter_name
        self.provided_value = provided_value
        self.expected = expected

        ctx = context.copy() if context else {}
        ctx.setdefault("error_category", "invalid_input")
        if parameter_name:
            ctx["parameter_name"] = parameter_name
        if provided_value is not None:
            ctx["provided_value"] = repr(provided_value)
        if expected:
            ctx["expected"] = expected

        super().__init__(
            message,
            filepath=filepath,
            original_error=original_error,
            context=ctx,
        )


class FuseConfigError(FuseError):
    """Exception raised when configuration is invalid.

    Attributes:
        config_key: The configuration key that has an issue.
    """

    def __init__(
        self,
        message: str = "Configuration error",
        *,
        filepath: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        config_key: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.config_key = config_key

        ctx = context.copy() if context else {}
        if config_key:
            ctx["config_key"] = config_key

        super().__init__(
            message,
            filepath=filepath,
            original_error=original_error,
            context=ctx,
        )


class FuseDecodeError(FuseError):
    """Exception raised when a raw frame cannot be decoded.

    Raised by the frame decoder for unparseable containers, LibRaw failures
    and unsupported sensor patterns. The pipeline treats it as a soft,
    per-frame failure and drops the frame.
    """

    def __init__(
        self,
        message: str = "Failed to decode raw frame",
        *,
        filepath: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            filepath=filepath,
            original_error=original_error,
            context=context,
        )


class FuseUnsupportedFormatError(FuseDecodeError):
    """Exception raised when the raw container format is not supported.

    Attributes:
        detected_format: The detected container format (if available).
    """

    def __init__(
        self,
        message: str = "Unsupported raw format",
        *,
        filepath: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        detected_format: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.detected_format = detected_format

        ctx = context.copy() if context else {}
        ctx.setdefault("error_category", "unsupported_format")
        if detected_format:
            ctx["detected_format"] = detected_format

        super().__init__(
            message,
            filepath=filepath,
            original_error=original_error,
            context=ctx,
        )


class FusePipelineError(FuseError):
    """Base exception for failures that abort a fusion run.

    Attributes:
        stage: Pipeline stage in which the failure happened.
    """

    def __init__(
        self,
        message: str = "Fusion run failed",
        *,
        stage: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.stage = stage

        ctx = context.copy() if context else {}
        if stage:
            ctx["stage"] = stage

        super().__init__(message, original_error=original_error, context=ctx)


class FuseNoFramesError(FusePipelineError):
    """Exception raised when none of the burst frames could be decoded."""

    def __init__(
        self,
        message: str = "no decodable frames",
        *,
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        ctx = context.copy() if context else {}
        ctx.setdefault("error_category", "no_decodable_frames")
        super().__init__(
            message,
            stage="decoding",
            original_error=original_error,
            context=ctx,
        )


class FuseMergeError(FusePipelineError):
    """Exception raised when frames cannot be merged (empty set, mismatched sizes)."""

    def __init__(
        self,
        message: str = "Failed to merge frames",
        *,
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        ctx = context.copy() if context else {}
        ctx.setdefault("error_category", "merge_failed")
        super().__init__(
            message,
            stage="merging",
            original_error=original_error,
            context=ctx,
        )


class FuseEncodeError(FusePipelineError):
    """Exception raised when the fused image cannot be encoded.

    Common error categories (stored in context["error_category"]):
        - "invalid_image": Image buffer is empty or malformed
        - "backend_unavailable": Requested encoder backend is missing
        - "encode_failed": Backend reported an encoding failure
    """

    def __init__(
        self,
        message: str = "Failed to encode image",
        *,
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        ctx = context.copy() if context else {}
        ctx.setdefault("error_category", "encode_failed")
        super().__init__(
            message,
            stage="encoding",
            original_error=original_error,
            context=ctx,
        )


class FuseBurstStateError(FuseError):
    """Exception raised when a burst session operation is not allowed.

    For example, beginning a burst while another one is still collecting.
    """

    def __init__(
        self,
        message: str = "Invalid burst state",
        *,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        ctx = context.copy() if context else {}
        ctx.setdefault("error_category", "burst_in_progress")
        super().__init__(message, context=ctx)


class FuseSourceError(FuseError):
    """Exception raised when a frame source cannot supply a burst."""

    def __init__(
        self,
        message: str = "Frame source failed",
        *,
        filepath: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            filepath=filepath,
            original_error=original_error,
            context=context,
        )


class FuseWriteError(FuseError):
    """Exception raised when writing an artifact fails.

    Common error categories (stored in context["error_category"]):
        - "directory_creation_failed": Failed to create the output directory
        - "write_failed": Failed to write artifact bytes
        - "unsupported_media_type": No file extension known for media type

    Attributes:
        destination_path: Path where the write was attempted.
        operation: Type of write operation (e.g., "mkdir", "write").
    """

    def __init__(
        self,
        message: str = "Failed to write artifact",
        *,
        filepath: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        destination_path: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.destination_path = destination_path
        self.operation = operation

        ctx = context.copy() if context else {}
        if destination_path:
            ctx["destination_path"] = destination_path
        if operation:
            ctx["operation"] = operation

        super().__init__(
            message,
            filepath=filepath,
            original_error=original_error,
            context=ctx,
        )


# =============================================================================
# CLI Helper Functions
# =============================================================================


def format_error_for_user(
    error: FuseError, *, verbose: bool = False, locale: str = DEFAULT_LOCALE
) -> str:
    """Format an error message for CLI display.

    Args:
        error: The FuseError to format.
        verbose: If True, include full diagnostic information.
        locale: Locale code for message localization.

    Returns:
        Formatted error message string.
    """
    lines: List[str] = [
        "",
        "=" * 60,
        get_message("ui.error.header", locale=locale, message=error.message),
        "=" * 60,
    ]

    if error.filepath:
        lines.append(
            get_message("ui.error.filepath", locale=locale, filepath=error.filepath)
        )

    if error.original_error:
        lines.append(
            get_message(
                "ui.error.cause",
                locale=locale,
                error_type=type(error.original_error).__name__,
                error_message=error.original_error,
            )
        )

    if verbose:
        lines.extend(
            [
                "",
                get_message("ui.error.diagnostic", locale=locale),
                "-" * 60,
                error.get_diagnostic_info().format_report(),
            ]
        )
    else:
        lines.extend(["", get_message("ui.error.hint_verbose", locale=locale)])

    lines.append("")
    return "\n".join(lines)


__all__ = [
    "DiagnosticInfo",
    "FuseError",
    "FuseValidationError",
    "FuseConfigError",
    "FuseDecodeError",
    "FuseUnsupportedFormatError",
    "FusePipelineError",
    "FuseNoFramesError",
    "FuseMergeError",
    "FuseEncodeError",
    "FuseBurstStateError",
    "FuseSourceError",
    "FuseWriteError",
    "format_error_for_user",
]
