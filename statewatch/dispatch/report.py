"""Human-readable inspection reports.

A report looks like:

    ---------------------------------------------------------------- ...
                              INSPECTION REPORT
    ---------------------------------------------------------------- ...
    [Source]: Guard failure
    [TracePath]: app/worker.py:41 -> app/jobs.py:12
    [Target]: dict
    [Unexpected]: KeyError('speed')
    [Deep Inspect]:
        - speed: int
    [Diff]:
        speed: 1 -> 4
    ---------------------------------------------------------------- ...
"""

import json
import os
import sys
import traceback
from typing import Any, List, Optional

from ..capture.differ import DiffEntry
from ..capture.graph import NodeKind, classify, composite_fields, safe_repr
from .aggregator import RULE, RULE_WIDTH

DEEP_INSPECT_LIMIT = 20
MISSING_CATCHER = "The error catcher wasn't used."

_PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_LIBRARY_DIRS = tuple(
    os.path.abspath(p) for p in {sys.prefix, sys.base_prefix, sys.exec_prefix} if p
)


def banner(title: str, width: int = RULE_WIDTH) -> str:
    """Centered title between two rules."""
    pad = max(0, (width - len(title)) // 2)
    return "\n".join([RULE, " " * pad + title, RULE])


def trace_path(limit: Optional[int] = None) -> List[str]:
    """``file:line`` of the calling application frames, outermost first.

    Frames from statewatch itself and from the interpreter/site-packages
    are left out.
    """
    frames = []
    for frame in traceback.extract_stack():
        filename = os.path.abspath(frame.filename)
        if filename.startswith(_PACKAGE_DIR) or filename.startswith(_LIBRARY_DIRS):
            continue
        if frame.filename.startswith("<"):
            continue
        frames.append(f"{frame.filename}:{frame.lineno}")
    return frames[-limit:] if limit else frames


def build_report(
    target: Any,
    unexpected: Any = None,
    source: Optional[str] = None,
    diff_entries: Optional[List[DiffEntry]] = None,
    show_missing_catcher: bool = False,
    title: str = "INSPECTION REPORT",
) -> str:
    """Format an inspection report for ``target``.

    Args:
        target: Object being examined
        unexpected: What went wrong (error, message, value)
        source: Label of the reporting site
        diff_entries: Differences to list; an empty list prints "No differences"
        show_missing_catcher: Add the unobserved-failure notice
        title: Banner title

    Returns:
        The report text
    """
    lines = [banner(title)]
    lines.append(f"[Source]: {source or '<unknown>'}")
    lines.append(f"[TracePath]: {' -> '.join(trace_path())}")
    lines.append(f"[Target]: {type(target).__name__}")
    if unexpected is not None:
        lines.append(f"[Unexpected]: {safe_repr(unexpected)}")

    if classify(target) is NodeKind.COMPOSITE:
        lines.append("[Deep Inspect]:")
        try:
            fields = composite_fields(target)
        except Exception:
            fields = []
        for key, value in fields[:DEEP_INSPECT_LIMIT]:
            lines.append(f"    - {safe_repr(key)}: {type(value).__name__}")

    if diff_entries is not None:
        if diff_entries:
            lines.append("[Diff]:")
            lines.extend(f"    {entry}" for entry in diff_entries)
        else:
            lines.append("[Diff]: No differences detected")

    if show_missing_catcher:
        lines.append(MISSING_CATCHER)
    lines.append(RULE)
    return "\n".join(lines)


def report_to_json(report: str) -> Optional[str]:
    """Wrap a report in a JSON document, or None if it cannot be encoded."""
    try:
        return json.dumps({"report": report})
    except (TypeError, ValueError):
        return None
