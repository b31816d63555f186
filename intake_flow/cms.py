"""Thin Sanity HTTP API client for GROQ queries and document patches."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping

import httpx

from .config import SanitySettings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(15.0, connect=5.0)


class CMSError(RuntimeError):
    """Raised when the CMS cannot be reached or rejects a request."""


def _json_object(response: httpx.Response) -> Dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise CMSError("CMS returned invalid JSON") from exc
    if not isinstance(payload, dict):
        raise CMSError("CMS returned an unexpected payload")
    return payload


class SanityClient:
    """Query and patch documents through Sanity's HTTP data API."""

    def __init__(self, settings: SanitySettings, client: httpx.Client | None = None) -> None:
        if not settings.is_configured:
            raise ValueError("Missing Sanity project id")
        self._settings = settings
        headers = {"Authorization": f"Bearer {settings.token}"} if settings.token else {}
        self._client = client or httpx.Client(timeout=DEFAULT_TIMEOUT)
        self._headers = headers
        self._base_url = f"https://{settings.project_id}.api.sanity.io/v{settings.api_version}/data"

    def fetch(self, query: str, params: Mapping[str, Any] | None = None) -> Any:
        """Run a GROQ query and return its ``result`` member."""

        query_params: Dict[str, str] = {"query": query}
        for name, value in (params or {}).items():
            query_params[f"${name}"] = json.dumps(value)
        try:
            response = self._client.get(
                f"{self._base_url}/query/{self._settings.dataset}",
                params=query_params,
                headers=self._headers,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise CMSError(f"CMS query failed: {exc}") from exc
        payload = _json_object(response)
        return payload.get("result")

    def mutate(self, mutations: List[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            response = self._client.post(
                f"{self._base_url}/mutate/{self._settings.dataset}",
                json={"mutations": mutations},
                headers=self._headers,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise CMSError(f"CMS mutation failed: {exc}") from exc
        return _json_object(response)

    def patch(
        self,
        document_id: str,
        values: Mapping[str, Any],
        *,
        set_if_missing: Mapping[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """Set *values* (GROQ path keys allowed) on one document."""

        patch: Dict[str, Any] = {"id": document_id, "set": dict(values)}
        if set_if_missing:
            patch["setIfMissing"] = dict(set_if_missing)
        logger.debug("Patching CMS document %s with %s", document_id, sorted(values))
        return self.mutate([{"patch": patch}])
