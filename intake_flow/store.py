"""Funnel-scoped form state container with write-through persistence."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from .registry import StepRegistry
from .schemas import FormState
from .storage import StateStorage

logger = logging.getLogger(__name__)

STEP_OFFSETS_FIELD = "stepOffsets"
SNAPSHOT_VERSION = 0


def step_offsets(form_data: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of the stored offsets; anything but a mapping counts as none."""

    offsets = form_data.get(STEP_OFFSETS_FIELD)
    return dict(offsets) if isinstance(offsets, Mapping) else {}


class FormStateStore:
    """Hold ``currentStep``, ``completedSteps`` and ``formData`` for one funnel.

    Each instance is bound to one storage key, normally ``<session>:<funnel
    storage name>``. Every mutation writes the whole state back to storage.
    """

    def __init__(self, storage: StateStorage, storage_key: str, registry: StepRegistry) -> None:
        self._storage = storage
        self._key = storage_key
        self._registry = registry
        self._state = self._load()

    def _load(self) -> FormState:
        snapshot = self._storage.load(self._key)
        if not snapshot:
            return FormState()
        state = FormState.model_validate(snapshot.get("state", {}))
        known = [step for step in state.completed_steps if step in self._registry]
        if len(known) != len(state.completed_steps):
            logger.info("Dropping unknown completed steps from snapshot %s", self._key)
            state.completed_steps = known
        return state

    def _persist(self) -> None:
        self._storage.save(
            self._key,
            {"state": self._state.model_dump(by_alias=True), "version": SNAPSHOT_VERSION},
        )

    @property
    def storage_key(self) -> str:
        return self._key

    @property
    def state(self) -> FormState:
        """Return a deep copy so callers cannot mutate the store behind its back."""

        return self._state.model_copy(deep=True)

    @property
    def current_step(self) -> str:
        return self._state.current_step

    @property
    def completed_steps(self) -> Tuple[str, ...]:
        return tuple(self._state.completed_steps)

    @property
    def form_data(self) -> Dict[str, Any]:
        return self.state.form_data

    def set_current_step(self, step: str) -> None:
        self._state.current_step = step
        self._persist()

    def mark_step_completed(self, step: str) -> None:
        """Append *step* once; repeated calls and unknown steps are no-ops."""

        if step not in self._registry:
            logger.debug("Ignoring completion of unknown step %s", step)
            return
        if step in self._state.completed_steps:
            return
        self._state.completed_steps.append(step)
        self._persist()

    def set_field(self, name: str, value: Any) -> None:
        self._state.form_data[name] = value
        self._persist()

    def set_fields(self, values: Mapping[str, Any]) -> None:
        if not values:
            return
        self._state.form_data.update(values)
        self._persist()

    def set_step_offset(self, step: str, offset: int) -> None:
        offsets = step_offsets(self._state.form_data)
        offsets[step] = offset
        self._state.form_data[STEP_OFFSETS_FIELD] = offsets
        self._persist()

    def get_step_offset(self, step: str) -> Optional[int]:
        value = step_offsets(self._state.form_data).get(step)
        return value if isinstance(value, int) else None

    def reset_form(self) -> None:
        """Empty the state and drop the stored snapshot."""

        self._state = FormState()
        self._storage.remove(self._key)
