from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from threading import Lock

_lock = Lock()
_counters: Counter[tuple[str, tuple[tuple[str, str], ...]]] = Counter()


def increment(name: str, value: int = 1, **labels: str) -> int:
    key = (name, tuple(sorted((label, str(val)) for label, val in labels.items())))
    with _lock:
        _counters[key] += value
        return _counters[key]


def snapshot() -> dict[str, int]:
    """Return counters keyed as ``name`` or ``name|label=value,...``."""
    with _lock:
        items = list(_counters.items())
    return {_format_key(name, dict(labels)): count for (name, labels), count in items}


def reset() -> None:
    with _lock:
        _counters.clear()


def _format_key(name: str, labels: Mapping[str, str]) -> str:
    if not labels:
        return name
    parts = [f"{key}={value}" for key, value in sorted(labels.items())]
    return f"{name}|{','.join(parts)}"


__all__ = ["increment", "reset", "snapshot"]
