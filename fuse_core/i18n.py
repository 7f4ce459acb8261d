"""Internationalization helpers for fuse_core.

Status and CLI messages live in locale-specific YAML catalogs under
``fuse_core/locales/<locale>/messages.yaml``. Keys are dotted paths into the
catalog and values are ``str.format`` templates.
"""

from __future__ import annotations

from functools import lru_cache
from importlib import resources
from typing import Any, Dict, Mapping

import yaml

DEFAULT_LOCALE = "en"
_LOCALES_PACKAGE = "fuse_core.locales"


class _SafeDict(dict):
    """Dictionary that leaves unknown format keys untouched."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def _normalize_locale(locale: str | None) -> str:
    normalized = (locale or DEFAULT_LOCALE).strip().replace("_", "-").lower()
    return normalized or DEFAULT_LOCALE


def _candidate_locales(locale: str) -> list[str]:
    """Return lookup order: exact locale, bare language, then the default."""
    normalized = _normalize_locale(locale)
    candidates = [normalized]
    language = normalized.split("-")[0]
    for fallback in (language, DEFAULT_LOCALE):
        if fallback not in candidates:
            candidates.append(fallback)
    return candidates


def _flatten_messages(node: Mapping[str, Any], prefix: str = "") -> Dict[str, str]:
    flat: Dict[str, str] = {}
    for key, value in node.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(_flatten_messages(value, prefix=full_key))
        else:
            flat[full_key] = str(value)
    return flat


@lru_cache(maxsize=None)
def _load_catalog(locale: str) -> Dict[str, str]:
    """Load and flatten the catalog of one locale (empty if absent or invalid)."""
    try:
        base = resources.files(_LOCALES_PACKAGE)
    except ModuleNotFoundError:
        return {}

    path = base.joinpath(locale, "messages.yaml")
    if not path.is_file():
        return {}

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError:
        return {}
    if not isinstance(data, Mapping):
        return {}
    return _flatten_messages(data)


def get_message(
    key: str,
    *,
    locale: str = DEFAULT_LOCALE,
    params: Mapping[str, Any] | None = None,
    **kwargs: Any,
) -> str:
    """Retrieve a localized message by key and fill in its placeholders.

    Unknown keys render as the key itself.
    """
    merged: Dict[str, Any] = dict(params or {})
    merged.update(kwargs)

    template = key
    for candidate in _candidate_locales(locale):
        catalog = _load_catalog(candidate)
        if key in catalog:
            template = catalog[key]
            break

    try:
        return template.format_map(_SafeDict(merged))
    except (ValueError, IndexError):
        return template


__all__ = ["DEFAULT_LOCALE", "get_message"]
