"""Pure access rules deciding which funnel steps a visitor may reach."""

from __future__ import annotations

from typing import Iterable, Optional

from .registry import StepRegistry

# Returned when no registry step has been completed yet.
NO_STEP: Optional[str] = None


def get_last_completed_step(registry: StepRegistry, completed_steps: Iterable[str]) -> Optional[str]:
    """Return the furthest completed step by registry position.

    The order of *completed_steps* is irrelevant: after back-navigation the
    most recently completed step is not necessarily the furthest one.
    """

    furthest: Optional[int] = None
    for step in completed_steps:
        index = registry.index_of(step)
        if index is None:
            continue
        if furthest is None or index > furthest:
            furthest = index
    if furthest is None:
        return NO_STEP
    return registry.at(furthest)


def can_access_step(registry: StepRegistry, target_step: str, completed_steps: Iterable[str]) -> bool:
    """Strictly sequential rule: the first step, or one whose predecessor is done."""

    index = registry.index_of(target_step)
    if index is None:
        return False
    if index == 0:
        return True
    previous = registry.at(index - 1)
    return previous in set(completed_steps)


def get_next_step(registry: StepRegistry, current_step: str) -> Optional[str]:
    """Return the step after *current_step*, or ``None`` at the end or when unindexed."""

    index = registry.index_of(current_step)
    if index is None:
        return None
    return registry.at(index + 1)


def resume_target(registry: StepRegistry, completed_steps: Iterable[str]) -> str:
    """Step one past the furthest completed one, clamped to the last step."""

    last_completed = get_last_completed_step(registry, completed_steps)
    if last_completed is None:
        return registry.first
    return get_next_step(registry, last_completed) or last_completed
