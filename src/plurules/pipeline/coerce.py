"""Robust coercion of raw values coming from untyped source records.

Pure functions, never raise. Anything that cannot be read with confidence
comes back as ``None`` so that callers degrade to "unknown" instead of
guessing.
"""

import math
import re
from collections.abc import Iterable, Mapping
from typing import Any

# Leading numeric prefix, like a lenient float parse ("5.5 m" -> 5.5)
_NUMBER_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def to_number(v: Any) -> float | None:
    """Convert ``v`` to a finite float, accepting ``,`` as decimal separator.

    Booleans are rejected: ``True`` is not a setback.
    """
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        try:
            n = float(v)
        except OverflowError:
            return None
        return n if math.isfinite(n) else None
    if isinstance(v, str):
        text = v.strip()
        if not text:
            return None
        m = _NUMBER_PREFIX.match(text.replace(",", ".", 1))
        if not m:
            return None
        n = float(m.group(0))
        return n if math.isfinite(n) else None
    return None


def pick_first_number(*candidates: Any) -> float | None:
    """Return the first candidate ``to_number`` accepts.

    This is the fallback-chain primitive: candidates are listed from the
    most to the least trusted location.
    """
    for candidate in candidates:
        n = to_number(candidate)
        if n is not None:
            return n
    return None


def safe_boolean(v: Any) -> bool | None:
    """Return ``v`` only if it is strictly a bool.

    ``"true"``, ``1`` or ``"oui"`` are ambiguous in source data and
    come back as ``None``.
    """
    if isinstance(v, bool):
        return v
    return None


def safe_string(v: Any) -> str | None:
    if isinstance(v, str) and v.strip():
        return v.strip()
    return None


def get_path(obj: Any, *keys: str) -> Any:
    """Nested lookup: ``get_path(d, "a", "b")`` ~ ``d["a"]["b"]``.

    Returns ``None`` as soon as an intermediate is missing or not a mapping.
    """
    current = obj
    for key in keys:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def unique_strings(values: Iterable[Any]) -> list[str]:
    """Trimmed, non-empty strings in first-seen order, duplicates dropped."""
    seen: dict[str, None] = {}
    for v in values:
        s = safe_string(v)
        if s is not None:
            seen.setdefault(s, None)
    return list(seen)


def normalize_zone_code(code: Any) -> str | None:
    """Zone codes compare case- and whitespace-insensitively: ``" ua "`` -> ``"UA"``."""
    if code is None:
        return None
    normalized = str(code).strip().upper()
    return normalized or None


def zones_match(a: Any, b: Any) -> bool:
    norm_a = normalize_zone_code(a)
    norm_b = normalize_zone_code(b)
    if not norm_a or not norm_b:
        return False
    return norm_a == norm_b
