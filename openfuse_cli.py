#!/usr/bin/env python
#
# OpenFuse CLI
# © 2025 Shinichi Morita (shin3tky)
#
# CLI entry point for burst fusion.
# This module handles argument parsing and delegates to fuse_core.
#

import argparse
import dataclasses
import logging
import os
import sys
from typing import List, Optional

from fuse_core import (
    VERSION,
    ENCODER_BACKENDS,
    SUPPORTED_CONFIG_EXTENSIONS,
    FuseConfigError,
    FuseError,
    FusionConfig,
    FusionController,
    DirectoryFrameSource,
    FileArtifactSink,
    FileSinkConfig,
    FallbackArtifactSink,
    OutputMode,
    format_error_for_user,
    get_message,
    load_fusion_config,
)
from fuse_core.sinks import ArtifactSink

# Maps command-line destinations onto FusionConfig fields
_CONFIG_OVERRIDES = {
    "source": "source_folder",
    "count": "burst_count",
    "mode": "output_mode",
    "output": "output_folder",
    "fallback_output": "fallback_folder",
    "quality": "jpeg_quality",
    "backend": "encoder_backend",
    "locale": "locale",
}


def build_arg_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    default_locale = os.environ.get("OPENFUSE_LOCALE")
    parser = argparse.ArgumentParser(
        description="Fuse a burst of raw frames into one noise-reduced photograph"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"OpenFuse CLI {VERSION}",
    )
    parser.add_argument(
        "--locale",
        default=default_locale,
        help="Locale code for CLI messages (default: OPENFUSE_LOCALE or 'en').",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help=(
            "Path to fusion configuration file (YAML/JSON). "
            f"Supported extensions: {', '.join(sorted(SUPPORTED_CONFIG_EXTENSIONS))}."
        ),
    )
    parser.add_argument(
        "-s",
        "--source",
        default=None,
        help="Folder holding the raw frames of the burst (default: TestDNGs)",
    )
    parser.add_argument(
        "-n",
        "--count",
        type=int,
        default=None,
        help="Number of frames in the burst (default: 6)",
    )
    parser.add_argument(
        "--mode",
        choices=[mode.label for mode in OutputMode],
        default=None,
        help="Artifacts to save (default: encoded-only)",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Folder for saved artifacts (default: output)",
    )
    parser.add_argument(
        "--fallback-output",
        default=None,
        help="Folder used when the output folder cannot be written",
    )
    parser.add_argument(
        "-q",
        "--quality",
        type=float,
        default=None,
        help="JPEG quality in (0, 1] (default: 0.92)",
    )
    parser.add_argument(
        "--backend",
        choices=list(ENCODER_BACKENDS),
        default=None,
        help="JPEG encoder backend (default: opencv)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging and full diagnostic output on errors",
    )

    return parser


def _configure_logging(verbose: bool) -> None:
    """Configure logging for CLI execution.

    When verbose mode is enabled, DEBUG-level logs from fuse_core become
    visible; otherwise keep the default warning noise level.
    """

    if not verbose:
        return

    logging.basicConfig(
        level=logging.DEBUG,
        format="%(levelname)s:%(name)s:%(message)s",
        force=True,
    )


def build_config(args: argparse.Namespace) -> FusionConfig:
    """Merge defaults, the config file and command-line options, in that order.

    Raises:
        FuseConfigError: If the file or an override is invalid.
    """
    config = load_fusion_config(args.config) if args.config else FusionConfig()

    overrides = {
        field_name: getattr(args, dest)
        for dest, field_name in _CONFIG_OVERRIDES.items()
        if getattr(args, dest, None) is not None
    }
    if not overrides:
        return config

    try:
        return dataclasses.replace(config, **overrides)
    except ValueError as exc:
        raise FuseConfigError(
            "Invalid command-line option",
            original_error=exc,
            context={"options": ", ".join(sorted(overrides))},
        ) from exc


def build_sink(config: FusionConfig) -> ArtifactSink:
    """File sink for ``output_folder``, with the fallback folder if configured."""
    sink: ArtifactSink = FileArtifactSink(FileSinkConfig(config.output_folder))
    if config.fallback_folder:
        sink = FallbackArtifactSink(
            sink, FileArtifactSink(FileSinkConfig(config.fallback_folder))
        )
    return sink


def run_burst(config: FusionConfig) -> int:
    """Run one burst from the source folder and print its status lines.

    Returns:
        Process exit code: 0 if the artifacts were saved, 1 otherwise.
    """
    source = DirectoryFrameSource(config.source_folder)
    with FusionController(source, build_sink(config), print, config=config) as controller:
        ticket = controller.start_burst()
        result = ticket.result()
        paths = controller.saved_paths(ticket.session_id)

    if not result.ok:
        return 1

    print(
        get_message(
            "ui.cli.fused_frames",
            locale=config.locale,
            used=result.frames_fused,
            total=ticket.expected_count,
        )
    )
    for path in paths:
        print(get_message("ui.cli.saved_to", locale=config.locale, path=path))
    return 0 if paths else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    locale = args.locale or "en"

    _configure_logging(args.verbose)

    try:
        config = build_config(args)
        locale = config.locale
        return run_burst(config)
    except FuseError as e:
        print(
            format_error_for_user(e, verbose=args.verbose, locale=locale),
            file=sys.stderr,
        )
        return 1
    except KeyboardInterrupt:
        print("\n" + get_message("ui.interrupt", locale=locale), file=sys.stderr)
        return 130
    except Exception as e:
        # Unexpected errors - show traceback in verbose mode
        if args.verbose:
            import traceback

            traceback.print_exc()
        else:
            print(
                "\n"
                + get_message(
                    "ui.cli.unexpected",
                    locale=locale,
                    error_type=type(e).__name__,
                    error_message=e,
                ),
                file=sys.stderr,
            )
            print(get_message("ui.cli.unexpected_hint", locale=locale), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
