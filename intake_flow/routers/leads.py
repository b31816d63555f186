"""Direct lead ingestion endpoint used by the questionnaire front end."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from ..dependencies import get_submission_handler
from ..funnels import FUNNELS
from ..schemas import FunnelId, LeadRequest, LeadResponse
from ..submission import SubmissionHandler


router = APIRouter(prefix="/leads", tags=["leads"])


@router.post("/{funnel_id}", response_model=LeadResponse, response_model_exclude_none=True)
def ingest_lead(
    funnel_id: FunnelId,
    payload: LeadRequest,
    response: Response,
    handler: SubmissionHandler = Depends(get_submission_handler),
) -> LeadResponse:
    """Forward ``{formData, contactInfo}`` to the CRM under the funnel's lead source."""

    result = handler.forward(
        payload.form_data,
        payload.contact_info,
        lead_source=FUNNELS[funnel_id].lead_source,
    )
    response.status_code = result.status_code
    return LeadResponse(success=result.success, message=result.message, error=result.error)
