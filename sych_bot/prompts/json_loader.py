from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger("sych_bot.prompts")

_CACHE: dict[str, tuple[int | None, dict[str, Any]]] = {}


def _read_text(path: Path) -> str:
    last_exc: Exception | None = None
    for encoding in ("utf-8-sig", "utf-8", "cp1251"):
        try:
            return path.read_text(encoding=encoding)
        except Exception as exc:
            last_exc = exc
    if last_exc is not None:
        raise last_exc
    raise RuntimeError(f"Unable to read prompt JSON: {path}")


def data_dir() -> Path:
    override = os.getenv("SYCH_PROMPTS_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return Path(__file__).with_name("data")


def _deep_merge(base: Any, override: Any) -> Any:
    if isinstance(base, dict) and isinstance(override, dict):
        merged = copy.deepcopy(base)
        for key, value in override.items():
            merged[key] = _deep_merge(merged[key], value) if key in merged else copy.deepcopy(value)
        return merged
    return copy.deepcopy(override)


def load_prompt_json(filename: str, defaults: dict[str, Any]) -> dict[str, Any]:
    """Code defaults overlaid with ``<data dir>/<filename>``; re-read when the file's mtime changes."""
    path = data_dir() / filename
    cache_key = f"{path.resolve()}::{id(defaults)}"

    mtime_ns: int | None = None
    try:
        mtime_ns = path.stat().st_mtime_ns
    except OSError:
        mtime_ns = None

    cached = _CACHE.get(cache_key)
    if cached is not None and cached[0] == mtime_ns:
        return copy.deepcopy(cached[1])

    merged: dict[str, Any] = copy.deepcopy(defaults)
    if mtime_ns is not None:
        try:
            payload = json.loads(_read_text(path))
        except Exception as exc:
            logger.warning("Failed to parse prompt JSON %s (%s). Using defaults.", path, exc)
        else:
            if isinstance(payload, dict):
                merged = _deep_merge(merged, payload)
            else:
                logger.warning("Prompt JSON root must be an object: %s (using defaults)", path)

    _CACHE[cache_key] = (mtime_ns, copy.deepcopy(merged))
    return merged
