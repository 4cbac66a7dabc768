"""Bounded trail of recently executed operation names."""

import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, List

DEFAULT_BREADCRUMB_LIMIT = 10


@dataclass(frozen=True)
class Breadcrumb:
    name: str
    at: float


class BreadcrumbTrail:
    """Keeps the last ``limit`` breadcrumbs; oldest fall off first."""

    def __init__(self, limit: int = DEFAULT_BREADCRUMB_LIMIT):
        self.limit = limit
        self._crumbs: Deque[Breadcrumb] = deque(maxlen=limit)

    def record(self, name: str) -> None:
        self._crumbs.append(Breadcrumb(name=str(name), at=time.time()))

    def names(self) -> List[str]:
        return [c.name for c in self._crumbs]

    def format(self, separator: str = " -> ") -> str:
        return separator.join(self.names())

    def annotate(self, message: str) -> str:
        """Append the trail to an error message."""
        return f"{message} | Breadcrumbs: {self.format()}"

    def clear(self) -> None:
        self._crumbs.clear()

    def __len__(self) -> int:
        return len(self._crumbs)
