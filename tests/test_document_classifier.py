import asyncio

import pytest


def test_extract_first_json_object_handles_fenced_json():
    from o1dmatch.services.ai_common import extract_first_json_object

    raw = "Sure:\n```json\n{ \"category\": \"awards\", \"score_impact\": 9 }\n```\n"
    obj = extract_first_json_object(raw)
    assert obj["category"] == "awards"
    assert obj["score_impact"] == 9


def test_normalize_accepts_known_category_and_clamps_impact():
    from o1dmatch.services.document_classifier import normalize_classification

    result = normalize_classification(
        {"criterion": "Judging", "confidence": "HIGH", "reasoning": "Reviewer for NeurIPS", "score_impact": 40},
        provider="gemini",
    )
    assert result.category == "judging"
    assert result.category_name == "Judging"
    assert result.confidence == "high"
    assert result.rationale == "Reviewer for NeurIPS"
    assert result.score_impact == 15
    assert result.fallback is False


def test_unknown_category_is_replaced_by_fallback():
    from o1dmatch.services.document_classifier import (
        FALLBACK_CATEGORY,
        FALLBACK_SCORE_IMPACT,
        normalize_classification,
    )

    result = normalize_classification({"category": "celebrity_status", "confidence": "high", "score_impact": 10})
    assert result.category == FALLBACK_CATEGORY
    assert result.confidence == "low"
    assert result.score_impact == FALLBACK_SCORE_IMPACT
    assert result.fallback is True


def test_secondary_provider_used_when_primary_fails(monkeypatch):
    import o1dmatch.services.document_classifier as dc
    from o1dmatch.services.ai_client import AIClientTimeout

    async def failing_gemini(prompt):
        raise AIClientTimeout("gemini request timed out")

    async def working_openai(prompt):
        return {"category": "high_salary", "confidence": "medium", "rationale": "Offer letter", "score_impact": 7}

    monkeypatch.setattr(dc, "_classify_with_gemini", failing_gemini)
    monkeypatch.setattr(dc, "_classify_with_openai", working_openai)

    result = asyncio.run(dc.classify_document(text="Base salary $420,000", title="Offer"))
    assert result.category == "high_salary"
    assert result.provider == "openai"
    assert result.score_impact == 7


def test_all_providers_failing(monkeypatch):
    import o1dmatch.services.document_classifier as dc
    from o1dmatch.utils.error_handlers import UpstreamError

    async def bad_json(prompt):
        raise ValueError("No JSON object found in AI response")

    monkeypatch.setattr(dc, "_classify_with_gemini", bad_json)
    monkeypatch.setattr(dc, "_classify_with_openai", bad_json)

    with pytest.raises(UpstreamError):
        asyncio.run(dc.classify_document(text="anything"))

    fallback = asyncio.run(dc.classify_or_fallback(text="anything"))
    assert fallback.category == dc.FALLBACK_CATEGORY
    assert fallback.fallback is True


def test_classify_endpoint_degrades_without_provider_keys(client, signup):
    token, _ = signup(email="classify@example.com", role="talent")
    r = client.post(
        "/documents/classify",
        json={"title": "Best Paper Award", "content": "Awarded best paper at ICML"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["fallback"] is True
    assert data["confidence"] == "low"


def test_classify_endpoint_requires_content_or_title(client, signup):
    token, _ = signup(email="classify2@example.com", role="talent")
    r = client.post("/documents/classify", json={}, headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 422, r.text
