"""Funnel navigation and submission endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response

from ..cms import SanityClient
from ..dependencies import get_cms, get_storage, get_submission_handler
from ..funnels import FUNNELS, FunnelDefinition, describe_funnel, list_funnel_definitions
from ..navigation import FunnelSession
from ..recommendations import fetch_products, recommend
from ..schemas import (
    FieldUpdateRequest,
    FunnelDefinitionOut,
    FunnelId,
    NavigationDecision,
    RecommendationRequest,
    RecommendationResponse,
    SessionStateResponse,
    StepContinueRequest,
    StepOffsetRequest,
    StepVisitRequest,
    SubmissionResponse,
    SubmitRequest,
)
from ..storage import StateStorage
from ..submission import SubmissionHandler
from ..validation import FieldValidationError


router = APIRouter(prefix="/funnels", tags=["funnels"])


def _session(funnel_id: FunnelId, session_id: str, storage: StateStorage) -> FunnelSession:
    return FunnelSession(FUNNELS[funnel_id], storage, session_id)


def _unprocessable(exc: FieldValidationError) -> HTTPException:
    return HTTPException(status_code=422, detail={"field": exc.field, "message": exc.message})


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    """Simple health check endpoint."""

    return {"status": "ok"}


@router.get("", response_model=list[FunnelDefinitionOut])
async def list_funnels() -> list[FunnelDefinitionOut]:
    """Expose funnel metadata to the UI."""

    return list_funnel_definitions()


@router.get("/{funnel_id}", response_model=FunnelDefinitionOut)
async def get_funnel_definition(funnel_id: FunnelId) -> FunnelDefinitionOut:
    return describe_funnel(FUNNELS[funnel_id])


@router.get("/{funnel_id}/sessions/{session_id}", response_model=SessionStateResponse)
def fetch_session(
    funnel_id: FunnelId,
    session_id: str,
    storage: StateStorage = Depends(get_storage),
) -> SessionStateResponse:
    """Return the stored progress for one visitor."""

    return _session(funnel_id, session_id, storage).describe()


@router.post("/{funnel_id}/sessions/{session_id}/entry", response_model=NavigationDecision)
def enter_funnel(
    funnel_id: FunnelId,
    session_id: str,
    response: Response,
    storage: StateStorage = Depends(get_storage),
) -> NavigationDecision:
    """Decide where the funnel's loading page sends the visitor."""

    session = _session(funnel_id, session_id, storage)
    decision = session.enter()
    if decision.reset:
        for cookie in session.funnel.legacy_cookies:
            response.delete_cookie(cookie)
    return decision


@router.post("/{funnel_id}/sessions/{session_id}/visit", response_model=NavigationDecision)
def visit_step(
    funnel_id: FunnelId,
    session_id: str,
    payload: StepVisitRequest,
    storage: StateStorage = Depends(get_storage),
) -> NavigationDecision:
    """Run the access guard for a route the visitor landed on."""

    return _session(funnel_id, session_id, storage).visit(payload.route, payload.offset)


@router.post("/{funnel_id}/sessions/{session_id}/continue", response_model=NavigationDecision)
def continue_step(
    funnel_id: FunnelId,
    session_id: str,
    payload: StepContinueRequest,
    storage: StateStorage = Depends(get_storage),
) -> NavigationDecision:
    """Save the step's answers and move to the next step."""

    session = _session(funnel_id, session_id, storage)
    try:
        return session.advance(payload.step, payload.fields)
    except FieldValidationError as exc:
        raise _unprocessable(exc) from exc


@router.put("/{funnel_id}/sessions/{session_id}/fields/{name}", response_model=SessionStateResponse)
def update_field(
    funnel_id: FunnelId,
    session_id: str,
    name: str,
    payload: FieldUpdateRequest,
    storage: StateStorage = Depends(get_storage),
) -> SessionStateResponse:
    session = _session(funnel_id, session_id, storage)
    try:
        session.set_answer(name, payload.value)
    except FieldValidationError as exc:
        raise _unprocessable(exc) from exc
    return session.describe()


@router.put("/{funnel_id}/sessions/{session_id}/offsets", response_model=SessionStateResponse)
def update_offset(
    funnel_id: FunnelId,
    session_id: str,
    payload: StepOffsetRequest,
    storage: StateStorage = Depends(get_storage),
) -> SessionStateResponse:
    """Remember how far the visitor scrolled through a paginated step."""

    session = _session(funnel_id, session_id, storage)
    if payload.step not in session.funnel.registry:
        raise HTTPException(status_code=404, detail=f"Unknown step '{payload.step}'.")
    session.store.set_step_offset(payload.step, payload.offset)
    return session.describe()


@router.delete("/{funnel_id}/sessions/{session_id}", response_model=SessionStateResponse)
def reset_session(
    funnel_id: FunnelId,
    session_id: str,
    storage: StateStorage = Depends(get_storage),
) -> SessionStateResponse:
    session = _session(funnel_id, session_id, storage)
    session.reset()
    return session.describe()


@router.post(
    "/{funnel_id}/sessions/{session_id}/submit",
    response_model=SubmissionResponse,
    response_model_exclude_none=True,
)
def submit_session(
    funnel_id: FunnelId,
    session_id: str,
    payload: SubmitRequest,
    response: Response,
    storage: StateStorage = Depends(get_storage),
    handler: SubmissionHandler = Depends(get_submission_handler),
) -> SubmissionResponse:
    """Send the collected answers to the lead service from the terminal step."""

    session = _session(funnel_id, session_id, storage)
    result, status_code = handler.submit(session, payload.contact_info)
    response.status_code = status_code
    return result


@router.post("/{funnel_id}/recommendations", response_model=RecommendationResponse)
def recommend_products(
    funnel_id: FunnelId,
    payload: RecommendationRequest,
    cms: SanityClient | None = Depends(get_cms),
) -> RecommendationResponse:
    """Screen the answers and suggest one product from the funnel's category."""

    funnel: FunnelDefinition = FUNNELS[funnel_id]
    products = fetch_products(cms, funnel.product_category)
    return recommend(funnel, payload.form_responses, products)
