"""Pydantic models and enums for the intake funnel API."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FunnelId(str, Enum):
    """Enumerate the supported intake funnels."""

    WEIGHT_LOSS = "wm"
    HAIR_LOSS = "hl"
    BIRTH_CONTROL = "b"
    SKIN = "aa"
    MENTAL_HEALTH = "mh"
    CONSULTATION = "consultation"


class ResumePolicy(str, Enum):
    """What happens when a visitor comes back to a funnel's entry route."""

    RESUMABLE = "resumable"
    NON_RESUMABLE = "non_resumable"


class NavigationAction(str, Enum):
    STAY = "stay"
    PUSH = "push"
    REPLACE = "replace"


class CamelModel(BaseModel):
    """Base model accepting both snake_case names and camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Funnel state and navigation
# ---------------------------------------------------------------------------


class FormState(CamelModel):
    """Serializable snapshot of one funnel's progress for one session."""

    current_step: str = Field(default="", alias="currentStep")
    completed_steps: List[str] = Field(default_factory=list, alias="completedSteps")
    form_data: Dict[str, Any] = Field(default_factory=dict, alias="formData")


class NavigationDecision(CamelModel):
    """Outcome of evaluating a route against the funnel state machine."""

    action: NavigationAction
    target: Optional[str] = None
    delay_ms: int = Field(default=0, alias="delayMs")
    reset: bool = False
    reason: str = ""


class FunnelDefinitionOut(CamelModel):
    """Expose funnel metadata to the UI."""

    id: FunnelId
    label: str
    policy: ResumePolicy
    entry_route: str = Field(alias="entryRoute")
    results_route: str = Field(alias="resultsRoute")
    steps: List[str]


class SessionStateResponse(CamelModel):
    funnel: FunnelId
    session_id: str = Field(alias="sessionId")
    state: FormState
    last_completed_step: Optional[str] = Field(default=None, alias="lastCompletedStep")
    next_step: Optional[str] = Field(default=None, alias="nextStep")


class StepVisitRequest(CamelModel):
    route: str
    offset: Optional[int] = Field(default=None, ge=0)


class StepContinueRequest(CamelModel):
    """Payload for the "continue" action on a step."""

    step: str
    fields: Dict[str, Any] = Field(default_factory=dict)


class FieldUpdateRequest(CamelModel):
    value: Any = None


class StepOffsetRequest(CamelModel):
    step: str
    offset: int = Field(..., ge=0)


# ---------------------------------------------------------------------------
# Lead submission
# ---------------------------------------------------------------------------


class ContactInfo(CamelModel):
    """Contact details collected separately from the questionnaire answers."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    email: Optional[str] = None
    phone: Optional[str] = None
    state: Optional[str] = None
    date_of_birth: Optional[str] = Field(default=None, alias="dateOfBirth")


class LeadRequest(CamelModel):
    """Body accepted by the lead ingestion endpoint."""

    form_data: Optional[Dict[str, Any]] = Field(default=None, alias="formData")
    contact_info: Optional[ContactInfo] = Field(default=None, alias="contactInfo")


class LeadResponse(CamelModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None


class SubmitRequest(CamelModel):
    contact_info: Optional[ContactInfo] = Field(default=None, alias="contactInfo")


class SubmissionResponse(LeadResponse):
    """Lead response enriched with where the UI should go next."""

    navigation: Optional[NavigationDecision] = None


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------


class RecommendationRequest(CamelModel):
    form_responses: Dict[str, Any] = Field(default_factory=dict, alias="formResponses")


class RecommendationResponse(CamelModel):
    eligible: bool
    recommended_product_id: Optional[str] = Field(default=None, alias="recommendedProductId")
    explanation: str
    product: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Admin price sync
# ---------------------------------------------------------------------------


class PriceComparisonStatus(str, Enum):
    OK = "OK"
    DIFFERENT = "DIFFERENT"
    MISSING = "MISSING"
    NOT_FOUND = "NOT_FOUND"
    ERROR = "ERROR"


class SyncActionType(str, Enum):
    SYNC = "sync"
    CREATE = "create"


class PriceComparisonRow(CamelModel):
    """One comparison line between a CMS price and a payment-provider price."""

    subscription_id: str = Field(alias="subscriptionId")
    subscription_title: str = Field(alias="subscriptionTitle")
    variant_key: Optional[str] = Field(default=None, alias="variantKey")
    variant_title: Optional[str] = Field(default=None, alias="variantTitle")
    sanity_price: float = Field(alias="sanityPrice")
    stripe_price: Optional[float] = Field(default=None, alias="stripePrice")
    stripe_price_id: Optional[str] = Field(default=None, alias="stripePriceId")
    status: PriceComparisonStatus
    status_message: str = Field(alias="statusMessage")
    needs_action: bool = Field(alias="needsAction")
    action_type: Optional[SyncActionType] = Field(default=None, alias="actionType")
    error: Optional[str] = None


class PriceComparisonResponse(CamelModel):
    success: bool
    rows: List[PriceComparisonRow] = Field(default_factory=list)
    error: Optional[str] = None


class SyncPriceRequest(CamelModel):
    """Request to sync one base plan or variant price.

    Fields are optional so that missing values surface as a 400 from the
    sync service rather than a schema error.
    """

    subscription_id: Optional[str] = Field(default=None, alias="subscriptionId")
    variant_key: Optional[str] = Field(default=None, alias="variantKey")
    action: Optional[str] = None


class SyncPriceResponse(CamelModel):
    success: bool
    message: str
    new_price_id: Optional[str] = Field(default=None, alias="newPriceId")
    error: Optional[str] = None


class SyncProgress(CamelModel):
    total: int = 0
    completed: int = 0
    failed: int = 0


class SyncItemResult(CamelModel):
    subscription_id: str = Field(alias="subscriptionId")
    variant_key: Optional[str] = Field(default=None, alias="variantKey")
    action: SyncActionType
    response: SyncPriceResponse


class BulkSyncResponse(CamelModel):
    success: bool
    progress: SyncProgress
    results: List[SyncItemResult] = Field(default_factory=list)
