"""Salesforce lead creation for completed intake funnels."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Mapping
from xml.sax.saxutils import escape

import httpx

from .config import SalesforceSettings

logger = logging.getLogger(__name__)

SOAP_API_VERSION = "58.0"
DEFAULT_TIMEOUT = httpx.Timeout(20.0, connect=10.0)

STATE_NAMES: Dict[str, str] = {
    "AL": "Alabama",
    "AK": "Alaska",
    "AZ": "Arizona",
    "AR": "Arkansas",
    "CA": "California",
    "CO": "Colorado",
    "CT": "Connecticut",
    "DE": "Delaware",
    "FL": "Florida",
    "GA": "Georgia",
    "HI": "Hawaii",
    "ID": "Idaho",
    "IL": "Illinois",
    "IN": "Indiana",
    "IA": "Iowa",
    "KS": "Kansas",
    "KY": "Kentucky",
    "LA": "Louisiana",
    "ME": "Maine",
    "MD": "Maryland",
    "MA": "Massachusetts",
    "MI": "Michigan",
    "MN": "Minnesota",
    "MS": "Mississippi",
    "MO": "Missouri",
    "MT": "Montana",
    "NE": "Nebraska",
    "NV": "Nevada",
    "NH": "New Hampshire",
    "NJ": "New Jersey",
    "NM": "New Mexico",
    "NY": "New York",
    "NC": "North Carolina",
    "ND": "North Dakota",
    "OH": "Ohio",
    "OK": "Oklahoma",
    "OR": "Oregon",
    "PA": "Pennsylvania",
    "RI": "Rhode Island",
    "SC": "South Carolina",
    "SD": "South Dakota",
    "TN": "Tennessee",
    "TX": "Texas",
    "UT": "Utah",
    "VT": "Vermont",
    "VA": "Virginia",
    "WA": "Washington",
    "WV": "West Virginia",
    "WI": "Wisconsin",
    "WY": "Wyoming",
}

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SESSION_ID = re.compile(r"<sessionId>([^<]+)</sessionId>")
_SERVER_URL = re.compile(r"<serverUrl>([^<]+)</serverUrl>")
_SOAP_SUFFIX = re.compile(r"/services/Soap/c/[\d.]+.*")


class LeadIngestionError(RuntimeError):
    """Raised when a lead could not be delivered to the remote system."""


def full_state_name(state: str | None) -> str | None:
    """Expand a two letter state code; longer values pass through unchanged."""

    if not state:
        return None
    if len(state) > 2:
        return state
    return STATE_NAMES.get(state.upper(), state)


def _yes_no(value: Any) -> str | None:
    if value == "yes":
        return "Yes"
    if value == "no":
        return "No"
    return None


def _to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> int | None:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _parse_height(raw: Any) -> tuple[int | None, int | None]:
    if not raw:
        return None, None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return None, None
    if not isinstance(raw, Mapping):
        return None, None
    feet = _to_int(raw.get("feet")) if raw.get("feet") else None
    inches = _to_int(raw.get("inches")) if raw.get("inches") is not None else None
    return feet, inches


def calculate_bmi(weight_lbs: float, feet: int, inches: int) -> float | None:
    """BMI from imperial measurements, rounded to two decimals."""

    total_inches = feet * 12 + inches
    if total_inches <= 0 or weight_lbs <= 0:
        return None
    weight_kg = weight_lbs * 0.453592
    height_m = total_inches * 0.0254
    return round(weight_kg / (height_m * height_m), 2)


def transform_form_data_to_lead(
    form_data: Mapping[str, Any],
    contact_info: Mapping[str, Any] | None,
    *,
    lead_source: str,
    submitted_at: datetime | None = None,
) -> Dict[str, Any]:
    """Map questionnaire answers and contact details onto CRM lead fields.

    Fields without a value are omitted so the CRM keeps its defaults.
    """

    contact = contact_info or {}
    first_name = contact.get("firstName") or "Unknown"
    last_name = contact.get("lastName") or "User"
    full_name = f"{first_name} {last_name}".strip()

    date_of_birth = contact.get("dateOfBirth")
    if not (isinstance(date_of_birth, str) and _ISO_DATE.match(date_of_birth)):
        date_of_birth = None

    feet, inches = _parse_height(form_data.get("height"))
    weight = _to_float(form_data.get("current-weight")) if form_data.get("current-weight") else None
    bmi = calculate_bmi(weight, feet, inches) if weight and feet and inches is not None else None

    conditions = form_data.get("medical-conditions")
    medical_conditions = None
    if isinstance(conditions, list):
        relevant = [str(item) for item in conditions if item != "none"]
        medical_conditions = ", ".join(relevant) or None

    age_group = form_data.get("age-group")
    if age_group == "55-plus":
        age_group = "55+"

    timestamp = submitted_at or datetime.now(timezone.utc)
    lead = {
        "Name": f"{lead_source.removesuffix(' Form')} Lead - {full_name}",
        "First_Name__c": first_name,
        "Last_Name__c": last_name,
        "Email__c": contact.get("email"),
        "Phone__c": contact.get("phone"),
        "State__c": full_state_name(contact.get("state")),
        "DOB__c": date_of_birth,
        "Age_Group__c": age_group,
        "Is_Female__c": _yes_no(form_data.get("gender")),
        "Current_Weight__c": weight,
        "Height_Feet__c": feet,
        "Height_Inches__c": inches,
        "BMI__c": bmi,
        "Is_Pregnant__c": _yes_no(form_data.get("pregnant")),
        "Is_Breastfeeding__c": _yes_no(form_data.get("breastfeeding")),
        "Medical_Conditions__c": medical_conditions,
        "Takes_Prescription_Medications__c": _yes_no(form_data.get("prescription-medications")),
        "Has_Eating_Disorder__c": _yes_no(form_data.get("eating-disorder")),
        "Previous_Weight_Loss_Attempts__c": form_data.get("previous-weight-loss"),
        "Form_Submission_Date__c": timestamp.isoformat(),
        "Lead_Source__c": lead_source,
    }
    return {key: value for key, value in lead.items() if value is not None}


class SalesforceLeadClient:
    """Create lead records through a SOAP login followed by the REST sObject API."""

    def __init__(self, settings: SalesforceSettings, client: httpx.Client | None = None) -> None:
        if not settings.is_configured:
            raise ValueError("Missing Salesforce credentials")
        self._settings = settings
        self._client = client or httpx.Client(timeout=DEFAULT_TIMEOUT)

    def _login(self) -> tuple[str, str]:
        username = escape(self._settings.username or "")
        password = escape(self._settings.password or "")
        body = f"""<?xml version="1.0" encoding="utf-8"?>
<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/" xmlns:urn="urn:enterprise.soap.sforce.com">
   <soapenv:Header/>
   <soapenv:Body>
      <urn:login>
         <urn:username>{username}</urn:username>
         <urn:password>{password}</urn:password>
      </urn:login>
   </soapenv:Body>
</soapenv:Envelope>"""
        login_url = (self._settings.login_url or "").rstrip("/")
        response = self._client.post(
            f"{login_url}/services/Soap/c/{SOAP_API_VERSION}",
            content=body.encode("utf-8"),
            headers={"Content-Type": "text/xml; charset=UTF-8", "SOAPAction": "login"},
        )
        if not response.is_success:
            raise LeadIngestionError("Authentication failed")

        session_match = _SESSION_ID.search(response.text)
        server_match = _SERVER_URL.search(response.text)
        if not session_match or not server_match:
            raise LeadIngestionError("Authentication failed")
        return session_match.group(1), server_match.group(1)

    def create_lead(self, lead: Mapping[str, Any]) -> str:
        """Create one lead record and return its id."""

        session_id, server_url = self._login()
        base_url = _SOAP_SUFFIX.sub("", server_url)
        response = self._client.post(
            f"{base_url}/services/data/v{SOAP_API_VERSION}/sobjects/{self._settings.lead_object}",
            json=dict(lead),
            headers={"Authorization": f"Bearer {session_id}"},
        )
        if not response.is_success:
            logger.warning("CRM rejected lead with HTTP %s", response.status_code)
            raise LeadIngestionError("Failed to create lead")
        try:
            payload = response.json()
        except ValueError as exc:
            raise LeadIngestionError("CRM returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise LeadIngestionError("CRM returned an unexpected payload")
        return str(payload.get("id", ""))

    def send(
        self,
        form_data: Mapping[str, Any],
        contact_info: Mapping[str, Any] | None,
        *,
        lead_source: str,
    ) -> str:
        lead = transform_form_data_to_lead(form_data, contact_info, lead_source=lead_source)
        try:
            return self.create_lead(lead)
        except httpx.HTTPError as exc:
            raise LeadIngestionError(str(exc)) from exc
