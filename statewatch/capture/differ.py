"""Structural diff of two captured graphs.

Only captured values (see graph.capture) are compared: composites are plain
dicts and every leaf compares by its string form, so the result is stable
for any pair of captures.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from .graph import safe_repr

ABSENT = "<absent>"


@dataclass(frozen=True)
class DiffEntry:
    """One changed path between two captures."""

    path: str
    before: str
    after: str

    def __str__(self) -> str:
        return f"{self.path}: {self.before} -> {self.after}"

    def to_dict(self) -> dict:
        return {"path": self.path, "before": self.before, "after": self.after}


def _leaf(value: Any) -> str:
    return safe_repr(value)


def _join(prefix: str, key: Any) -> str:
    segment = safe_repr(key)
    return segment if prefix == "" else f"{prefix}.{segment}"


def _walk(a: Any, b: Any, prefix: str, acc: List[DiffEntry]) -> None:
    if not isinstance(a, dict) or not isinstance(b, dict):
        before, after = _leaf(a), _leaf(b)
        if before != after:
            acc.append(DiffEntry(prefix, before, after))
        return

    keys = list(a)
    keys.extend(k for k in b if k not in a)

    for key in keys:
        in_a, in_b = key in a, key in b
        ka = a[key] if in_a else None
        kb = b[key] if in_b else None
        path = _join(prefix, key)

        if isinstance(ka, dict) and isinstance(kb, dict):
            _walk(ka, kb, path, acc)
            continue

        before = _leaf(ka) if in_a else ABSENT
        after = _leaf(kb) if in_b else ABSENT
        if before != after:
            acc.append(DiffEntry(path, before, after))


def diff(a: Any, b: Any, prefix: str = "") -> List[DiffEntry]:
    """Compare two captures.

    Args:
        a: Earlier capture
        b: Later capture
        prefix: Path prepended to every entry

    Returns:
        Changed paths in key enumeration order; empty when nothing changed
    """
    acc: List[DiffEntry] = []
    _walk(a, b, prefix, acc)
    return acc


def format_diff(entries: List[DiffEntry], indent: str = "    ") -> Optional[str]:
    """Render entries one per line, or None when there are none."""
    if not entries:
        return None
    return "\n".join(f"{indent}{entry}" for entry in entries)
