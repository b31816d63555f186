"""Terminal-step submission of collected answers to the lead ingestion service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

import httpx

from .crm import DEFAULT_TIMEOUT, LeadIngestionError
from .guard import can_access_step, resume_target
from .navigation import FunnelSession
from .schemas import ContactInfo, NavigationAction, NavigationDecision, SubmissionResponse
from .store import STEP_OFFSETS_FIELD

logger = logging.getLogger(__name__)

FORM_DATA_REQUIRED = "Form data is required"
SERVICE_UNAVAILABLE = "Service unavailable"


class LeadSink(Protocol):
    """Anything able to deliver a lead; raises ``LeadIngestionError`` on failure."""

    def send(
        self,
        form_data: Mapping[str, Any],
        contact_info: Mapping[str, Any] | None,
        *,
        lead_source: str,
    ) -> Any: ...


class HttpLeadSink:
    """Post ``{formData, contactInfo}`` to an external ingestion endpoint.

    The remote decides the lead source from its own route, so ``lead_source``
    is not part of the body.
    """

    def __init__(self, url: str, client: httpx.Client | None = None) -> None:
        self._url = url
        self._client = client or httpx.Client(timeout=DEFAULT_TIMEOUT)

    def send(
        self,
        form_data: Mapping[str, Any],
        contact_info: Mapping[str, Any] | None,
        *,
        lead_source: str,
    ) -> Any:
        body: dict[str, Any] = {"formData": dict(form_data)}
        if contact_info is not None:
            body["contactInfo"] = dict(contact_info)
        try:
            response = self._client.post(self._url, json=body)
        except httpx.HTTPError as exc:
            raise LeadIngestionError(f"Ingestion request failed: {exc}") from exc

        if not response.is_success:
            raise LeadIngestionError(f"Ingestion endpoint answered HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise LeadIngestionError("Ingestion endpoint returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise LeadIngestionError("Ingestion endpoint returned an unexpected payload")
        if not payload.get("success"):
            raise LeadIngestionError(payload.get("error") or "Ingestion endpoint reported failure")
        return payload


@dataclass(frozen=True)
class SubmissionResult:
    success: bool
    status_code: int
    message: str | None = None
    error: str | None = None


def _contact_payload(contact_info: ContactInfo | None) -> dict[str, Any] | None:
    if contact_info is None:
        return None
    return contact_info.model_dump(by_alias=True, exclude_none=True)


class SubmissionHandler:
    """Package answers, send them once, and report a UI-friendly outcome."""

    def __init__(self, sink: LeadSink | None) -> None:
        self._sink = sink

    def forward(
        self,
        form_data: Mapping[str, Any] | None,
        contact_info: ContactInfo | None,
        *,
        lead_source: str,
    ) -> SubmissionResult:
        """Deliver one lead; structural problems never reach the network."""

        if not form_data:
            return SubmissionResult(success=False, status_code=400, error=FORM_DATA_REQUIRED)
        if self._sink is None:
            logger.error("No lead sink configured; dropping %s submission", lead_source)
            return SubmissionResult(success=False, status_code=503, error=SERVICE_UNAVAILABLE)

        try:
            self._sink.send(form_data, _contact_payload(contact_info), lead_source=lead_source)
        except (LeadIngestionError, httpx.HTTPError) as exc:
            logger.warning("Lead submission for %s failed: %s", lead_source, exc)
            return SubmissionResult(success=False, status_code=503, error=SERVICE_UNAVAILABLE)

        logger.info("Lead submitted for %s", lead_source)
        return SubmissionResult(success=True, status_code=200, message="Lead created successfully")

    def submit(self, session: FunnelSession, contact_info: ContactInfo | None = None) -> tuple[SubmissionResponse, int]:
        """Submit a funnel session's answers from its terminal step."""

        funnel = session.funnel
        completed = session.store.completed_steps
        if not can_access_step(funnel.registry, funnel.terminal_step, completed):
            redirect = NavigationDecision(
                action=NavigationAction.REPLACE,
                target=resume_target(funnel.registry, completed),
                reason="previous step not completed",
            )
            return (
                SubmissionResponse(success=False, error="Previous steps are not complete", navigation=redirect),
                409,
            )

        answers = {key: value for key, value in session.store.form_data.items() if key != STEP_OFFSETS_FIELD}
        result = self.forward(answers, contact_info, lead_source=funnel.lead_source)
        if not result.success:
            return SubmissionResponse(success=False, error=result.error), result.status_code

        session.store.mark_step_completed(funnel.terminal_step)
        if funnel.clear_on_submit:
            session.reset()
        navigation = NavigationDecision(
            action=NavigationAction.PUSH,
            target=funnel.results_route,
            reason="submission accepted",
        )
        return SubmissionResponse(success=True, message=result.message, navigation=navigation), result.status_code
