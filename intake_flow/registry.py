"""Ordered step registries for intake funnels."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Tuple


@dataclass(frozen=True)
class StepRegistry:
    """Immutable, ordered sequence of step routes for one funnel.

    Registry order is traversal order. Routes that are not part of the
    registry (a funnel's loading page, results page, unrelated pages) are
    "unindexed": :meth:`index_of` returns ``None`` for them, never ``0``.
    """

    steps: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.steps:
            raise ValueError("A step registry needs at least one step.")
        if len(set(self.steps)) != len(self.steps):
            raise ValueError("Step identifiers must be unique within a registry.")

    @classmethod
    def from_routes(cls, routes: Sequence[str]) -> "StepRegistry":
        return cls(tuple(routes))

    @classmethod
    def under(cls, prefix: str, slugs: Sequence[str]) -> "StepRegistry":
        """Build a registry of ``<prefix>/<slug>`` routes."""

        base = prefix.rstrip("/")
        return cls(tuple(f"{base}/{slug}" for slug in slugs))

    def index_of(self, step: str | None) -> Optional[int]:
        """Return the position of *step* or ``None`` when unindexed."""

        if step is None:
            return None
        try:
            return self.steps.index(step)
        except ValueError:
            return None

    def at(self, index: int) -> Optional[str]:
        if 0 <= index < len(self.steps):
            return self.steps[index]
        return None

    @property
    def first(self) -> str:
        return self.steps[0]

    @property
    def last(self) -> str:
        return self.steps[-1]

    def __contains__(self, step: object) -> bool:
        return step in self.steps

    def __iter__(self) -> Iterator[str]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)
