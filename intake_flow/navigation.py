"""Route-entry transitions for the funnel state machine.

The ``resolve_*`` functions are pure: they look at a funnel definition and a
form state snapshot and return a :class:`NavigationDecision`. ``FunnelSession``
applies the matching side effects to a store.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .funnels import FunnelDefinition
from .guard import can_access_step, get_last_completed_step, get_next_step, resume_target
from .schemas import FormState, NavigationAction, NavigationDecision, SessionStateResponse
from .storage import StateStorage, scoped_key
from .store import STEP_OFFSETS_FIELD, FormStateStore, step_offsets
from .validation import FieldValidationError, validate_fields

logger = logging.getLogger(__name__)


def _stay(reason: str) -> NavigationDecision:
    return NavigationDecision(action=NavigationAction.STAY, reason=reason)


def with_offset(route: str, offset: Optional[int]) -> str:
    """Append the ``offset`` query parameter used by paginated steps."""

    if not offset:
        return route
    return f"{route}?offset={offset}"


def resolve_step_visit(funnel: FunnelDefinition, state: FormState, route: str) -> NavigationDecision:
    """Decide whether a visitor may stay on *route* or must be sent back."""

    if route == funnel.entry_route:
        return _stay("entry route")
    if not state.completed_steps:
        return _stay("no progress to guard")
    if route not in funnel.registry:
        return _stay("route is not a funnel step")
    if can_access_step(funnel.registry, route, state.completed_steps):
        return _stay("step is reachable")

    target = resume_target(funnel.registry, state.completed_steps)
    return NavigationDecision(
        action=NavigationAction.REPLACE,
        target=target,
        reason="previous step not completed",
    )


def resolve_entry(funnel: FunnelDefinition, state: FormState) -> NavigationDecision:
    """Decide where the funnel's loading page sends the visitor."""

    first_step = funnel.registry.first
    if not funnel.is_resumable:
        return NavigationDecision(
            action=NavigationAction.PUSH,
            target=first_step,
            delay_ms=funnel.entry_delay_ms,
            reset=True,
            reason="funnel always starts fresh",
        )

    last_completed = get_last_completed_step(funnel.registry, state.completed_steps)
    if last_completed is None:
        return NavigationDecision(
            action=NavigationAction.PUSH,
            target=first_step,
            delay_ms=funnel.entry_delay_ms,
            reason="no progress yet",
        )

    offset = step_offsets(state.form_data).get(last_completed)
    return NavigationDecision(
        action=NavigationAction.PUSH,
        target=with_offset(last_completed, offset if isinstance(offset, int) else None),
        delay_ms=funnel.entry_delay_ms,
        reason="resuming progress",
    )


class FunnelSession:
    """One visitor's progress through one funnel."""

    def __init__(self, funnel: FunnelDefinition, storage: StateStorage, session_id: str) -> None:
        self.funnel = funnel
        self.session_id = session_id
        self._storage = storage
        self.store = FormStateStore(
            storage,
            scoped_key(session_id, funnel.storage_name),
            funnel.registry,
        )

    def visit(self, route: str, offset: Optional[int] = None) -> NavigationDecision:
        """Evaluate the guard for *route* and record the visit when allowed."""

        decision = resolve_step_visit(self.funnel, self.store.state, route)
        if decision.action is NavigationAction.STAY and route in self.funnel.registry:
            self.store.set_current_step(route)
            if offset is not None:
                self.store.set_step_offset(route, offset)
        elif decision.action is NavigationAction.REPLACE:
            logger.info(
                "Redirecting session %s from %s to %s",
                self.session_id,
                route,
                decision.target,
            )
        return decision

    def enter(self) -> NavigationDecision:
        decision = resolve_entry(self.funnel, self.store.state)
        if decision.reset:
            self.reset()
        return decision

    def _check_answers(self, answers: Mapping[str, Any]) -> None:
        if STEP_OFFSETS_FIELD in answers:
            raise FieldValidationError(STEP_OFFSETS_FIELD, "This field is managed by the funnel.")
        validate_fields(self.funnel.field_rules, answers)

    def set_answer(self, name: str, value: Any) -> None:
        """Store one answer after the same checks as :meth:`advance`."""

        self._check_answers({name: value})
        self.store.set_field(name, value)

    def advance(self, step: str, fields: Mapping[str, Any] | None = None) -> NavigationDecision:
        """Handle the "continue" action: save answers, complete *step*, move on.

        Raises :class:`~intake_flow.validation.FieldValidationError` before
        touching the store when an answer is rejected.
        """

        if step not in self.funnel.registry:
            return _stay("route is not a funnel step")
        completed = self.store.completed_steps
        if not can_access_step(self.funnel.registry, step, completed):
            return NavigationDecision(
                action=NavigationAction.REPLACE,
                target=resume_target(self.funnel.registry, completed),
                reason="previous step not completed",
            )

        answers = dict(fields or {})
        self._check_answers(answers)
        self.store.set_fields(answers)
        self.store.mark_step_completed(step)

        next_step = get_next_step(self.funnel.registry, step)
        if next_step is None:
            return NavigationDecision(
                action=NavigationAction.PUSH,
                target=self.funnel.results_route,
                reason="funnel complete",
            )
        self.store.set_current_step(next_step)
        return NavigationDecision(action=NavigationAction.PUSH, target=next_step, reason="continue")

    def reset(self) -> None:
        """Drop the form state and any legacy per-field entries."""

        self.store.reset_form()
        for legacy_key in self.funnel.legacy_storage_keys:
            self._storage.remove(scoped_key(self.session_id, legacy_key))

    def describe(self) -> SessionStateResponse:
        state = self.store.state
        last_completed = get_last_completed_step(self.funnel.registry, state.completed_steps)
        next_step = get_next_step(self.funnel.registry, last_completed) if last_completed else self.funnel.registry.first
        return SessionStateResponse(
            funnel=self.funnel.id,
            session_id=self.session_id,
            state=state,
            last_completed_step=last_completed,
            next_step=next_step,
        )
