"""Client for the external petition-scoring service (session based, async on their side)."""
import logging
from typing import Any

import httpx

from ..config import SCORING_API_BASE, SCORING_API_KEY
from ..utils.error_handlers import UpstreamError

logger = logging.getLogger(__name__)


class ScoringClient:
    def __init__(self, *, base_url: str = SCORING_API_BASE, api_key: str = SCORING_API_KEY, timeout_s: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s

    def _request(self, method: str, path: str, *, json_body: dict | None = None) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            with httpx.Client(timeout=self.timeout_s) as client:
                r = client.request(method, f"{self.base_url}{path}", json=json_body, headers=headers)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Scoring service request failed: {type(e).__name__}") from e

        if r.status_code >= 400:
            raise UpstreamError(
                f"Scoring service returned {r.status_code}",
                details={"status_code": r.status_code, "body": r.text[:200]},
            )
        try:
            return r.json() or {}
        except ValueError as e:
            raise UpstreamError("Scoring service returned an invalid response") from e

    def create_session(
        self,
        *,
        visa_type: str,
        document_type: str | None = None,
        beneficiary_name: str | None = None,
    ) -> dict[str, Any]:
        return self._request(
            "POST",
            "/sessions",
            json_body={"visaType": visa_type, "documentType": document_type, "beneficiaryName": beneficiary_name},
        )

    def get_session(self, session_id: str) -> dict[str, Any]:
        return self._request("GET", f"/sessions/{session_id}")

    def register_webhook(self, *, session_id: str, url: str) -> dict[str, Any]:
        return self._request(
            "POST",
            "/webhooks",
            json_body={
                "url": url,
                "events": ["scoring.completed", "scoring.failed"],
                "description": f"this webhook is created for {session_id}",
            },
        )


def get_scoring_client() -> ScoringClient:
    return ScoringClient()
