"""
E-signature provider (SignWell) client.

Only the request/response contract is modelled here: create a document for
signing, fetch the completed PDF, and verify webhook signatures.
"""
import base64
import hashlib
import hmac
import logging
import re
from typing import Any

import httpx

from ..config import (
    APP_URL,
    SIGNWELL_API_KEY,
    SIGNWELL_API_URL,
    SIGNWELL_TEST_MODE,
    SIGNWELL_WEBHOOK_SECRET,
)
from ..utils.error_handlers import UpstreamError

logger = logging.getLogger(__name__)

_TIMEOUT_S = 20.0
_FILENAME_RE = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def verify_webhook_signature(payload: bytes, signature: str | None, secret: str | None = None) -> bool:
    """HMAC-SHA256 hex digest of the raw body, compared in constant time."""
    key = secret if secret is not None else SIGNWELL_WEBHOOK_SECRET
    if not key or not signature:
        return False
    expected = hmac.new(key.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


async def _request(method: str, endpoint: str, *, json_body: dict | None = None) -> dict[str, Any]:
    if not SIGNWELL_API_KEY:
        raise UpstreamError("E-signature service is not configured")
    url = f"{SIGNWELL_API_URL}{endpoint}"
    try:
        async with httpx.AsyncClient(timeout=_TIMEOUT_S) as client:
            r = await client.request(method, url, json=json_body, headers={"X-Api-Key": SIGNWELL_API_KEY})
    except httpx.HTTPError as e:
        logger.error("SignWell %s %s failed: %s", method, endpoint, type(e).__name__)
        raise UpstreamError("E-signature service unavailable") from e

    if r.status_code >= 400:
        logger.error("SignWell %s %s returned %s: %s", method, endpoint, r.status_code, r.text[:300])
        raise UpstreamError("E-signature service rejected the request", details={"status_code": r.status_code})
    try:
        return r.json() or {}
    except ValueError as e:
        raise UpstreamError("E-signature service returned an invalid response") from e


async def create_document(
    *,
    letter_id: int,
    title: str,
    html_content: str,
    employer_name: str,
    employer_email: str,
    talent_name: str,
    talent_email: str,
) -> dict[str, Any]:
    """Create a signing document with the employer and talent as signers. Returns the provider response."""
    file_name = f"{_FILENAME_RE.sub('_', title)}.html"
    body = {
        "name": title,
        "test_mode": SIGNWELL_TEST_MODE,
        "expires_in": 30,
        "metadata": {"letter_id": str(letter_id), "type": "interest_letter"},
        "custom_requester_name": "O1DMatch",
        "redirect_url": f"{APP_URL}/dashboard/talent/letters",
        "allow_decline": True,
        "message": f"Please review and sign this interest letter from {employer_name}.",
        "files": [
            {"name": file_name, "file_base64": base64.b64encode(html_content.encode("utf-8")).decode("ascii")},
        ],
        "signers": [
            {"id": "1", "email": employer_email, "name": employer_name, "send_email": True},
            {"id": "2", "email": talent_email, "name": talent_name, "send_email": True},
        ],
    }
    data = await _request("POST", "/documents", json_body=body)
    if not data.get("id"):
        raise UpstreamError("E-signature service did not return a document id")
    logger.info("SignWell document created letter_id=%s document_id=%s", letter_id, data["id"])
    return data


async def get_completed_pdf_url(document_id: str) -> str | None:
    data = await _request("GET", f"/documents/{document_id}/completed_pdf?url_only=true")
    return data.get("file_url") or data.get("pdf_url")
