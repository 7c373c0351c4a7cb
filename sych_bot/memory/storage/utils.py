from __future__ import annotations

import math
import os
from pathlib import Path
from typing import Any

DEFAULT_RELATIONSHIP = 50
DEFAULT_ATTITUDE = "Neutral"

_UNKNOWN_NAME_MARKERS = {"unknown", "неизвестно", "n/a", "none", "null", "-"}


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def read_text_with_fallback(path: Path) -> str:
    last_exc: Exception | None = None
    for encoding in ("utf-8-sig", "utf-8", "cp1251"):
        try:
            return path.read_text(encoding=encoding)
        except Exception as exc:
            last_exc = exc
    if last_exc is not None:
        raise last_exc
    raise RuntimeError(f"Failed to read file: {path}")


def atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(content, encoding="utf-8")
    os.replace(tmp, path)


def default_profile() -> dict[str, Any]:
    return {
        "realName": None,
        "facts": "",
        "attitude": DEFAULT_ATTITUDE,
        "relationship": DEFAULT_RELATIONSHIP,
    }


def coerce_relationship(value: object) -> int | None:
    """Returns the relationship score as an int in [0, 100], or None when invalid."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return _clamp(value, 0, 100)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return _clamp(int(value), 0, 100)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            return _clamp(int(raw), 0, 100)
        except ValueError:
            pass
        try:
            parsed = float(raw)
        except ValueError:
            return None
        if not math.isfinite(parsed):
            return None
        return _clamp(int(parsed), 0, 100)
    return None


def _valid_text(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def merge_profile_state(current: dict[str, Any] | None, delta: dict[str, Any] | None) -> dict[str, Any]:
    merged = default_profile()
    if isinstance(current, dict):
        merged.update(current)
    stored_score = coerce_relationship(merged.get("relationship"))
    merged["relationship"] = DEFAULT_RELATIONSHIP if stored_score is None else stored_score

    if not isinstance(delta, dict):
        return merged

    real_name = _valid_text(delta.get("realName"))
    if real_name and real_name.casefold() not in _UNKNOWN_NAME_MARKERS:
        merged["realName"] = real_name

    facts = _valid_text(delta.get("facts"))
    if facts:
        merged["facts"] = facts

    attitude = _valid_text(delta.get("attitude"))
    if attitude:
        merged["attitude"] = attitude

    score = coerce_relationship(delta.get("relationship"))
    if score is not None:
        merged["relationship"] = score
    return merged
