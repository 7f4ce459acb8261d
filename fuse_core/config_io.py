#!/usr/bin/env python
#
# OpenFuse - Configuration I/O
# © 2025 Shinichi Morita (shin3tky)
#

"""Load fusion configuration files for CLI usage."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

import yaml

from .exceptions import FuseConfigError
from .schema import FusionConfig

SUPPORTED_CONFIG_EXTENSIONS = {".json", ".yaml", ".yml"}

logger = logging.getLogger(__name__)


def _load_config_mapping(path: Path) -> Dict[str, Any]:
    suffix = path.suffix.lower()
    if suffix == ".json":
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise FuseConfigError(
                "Invalid JSON configuration file",
                filepath=str(path),
                original_error=exc,
            ) from exc
    if suffix in {".yaml", ".yml"}:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise FuseConfigError(
                "Invalid YAML configuration file",
                filepath=str(path),
                original_error=exc,
            ) from exc
        return data if data is not None else {}
    raise FuseConfigError(
        "Unsupported configuration file format",
        filepath=str(path),
        context={"supported_extensions": sorted(SUPPORTED_CONFIG_EXTENSIONS)},
    )


def load_fusion_config(path: str | Path) -> FusionConfig:
    """Load fusion configuration from a YAML/JSON file.

    Keys absent from the file keep their defaults.

    Raises:
        FuseConfigError: If the file is missing, unreadable, malformed, or
            contains unknown keys or invalid values.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FuseConfigError(
            "Configuration file not found",
            filepath=str(config_path),
        )
    if config_path.is_dir():
        raise FuseConfigError(
            "Configuration path must be a file, not a directory",
            filepath=str(config_path),
        )
    data = _load_config_mapping(config_path)
    if not isinstance(data, dict):
        raise FuseConfigError(
            "Configuration file must define an object at the top level",
            filepath=str(config_path),
        )
    try:
        config = FusionConfig.from_dict(data)
    except (TypeError, ValueError, KeyError) as exc:
        raise FuseConfigError(
            "Invalid fusion configuration",
            filepath=str(config_path),
            original_error=exc,
        ) from exc

    logger.debug("Loaded fusion configuration from %s: %s", config_path, config)
    return config
