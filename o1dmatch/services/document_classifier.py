import logging
from typing import Any

from ..config import (
    AI_LOG_PAYLOADS,
    AI_MAX_RETRIES,
    AI_TIMEOUT_S,
    GEMINI_API_KEY,
    GEMINI_API_VERSION,
    GEMINI_BASE_URL,
    GEMINI_MODEL,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    OPENAI_MODEL,
)
from ..schemas.classification import ClassificationResult
from ..utils.error_handlers import UpstreamError
from .ai_client import AIClientError, gemini_generate_content, openai_chat_completion
from .ai_common import extract_first_json_object, truncate_for_prompt
from .criteria import CATEGORIES, get_category

logger = logging.getLogger(__name__)

FALLBACK_CATEGORY = "original_contributions"
FALLBACK_CONFIDENCE = "low"
FALLBACK_RATIONALE = "Could not confidently classify the document"
FALLBACK_SCORE_IMPACT = 3

DEFAULT_SCORE_IMPACT = 5
MIN_SCORE_IMPACT = 1
MAX_SCORE_IMPACT = 15

_CONFIDENCES = {"high", "medium", "low"}

SYSTEM_PROMPT = (
    "You are an expert immigration document classifier specializing in O-1 visa applications. "
    "Respond only with valid JSON."
)


def classification_prompt(*, text: str, title: str | None = None, description: str | None = None) -> str:
    lines = [
        "Analyze the following document content and classify it into one of the 8 O-1 visa criteria categories.",
        "",
        "The 8 O-1 visa criteria are:",
    ]
    for i, cat in enumerate(CATEGORIES, start=1):
        lines.append(f"{i}. {cat.key} - {cat.description}")
    lines += [
        "",
        "Respond with a JSON object containing:",
        "- category: the most applicable criterion (one of the 8 keys above)",
        "- confidence: high, medium, or low",
        "- rationale: a brief explanation of why this document fits the criterion",
        "- score_impact: estimated score impact (1-15) based on the strength of the evidence",
        "",
        f"Title: {title or 'Untitled'}",
    ]
    if description:
        lines.append(f"Description: {description}")
    lines.append(f"Content: {truncate_for_prompt(text) or 'No content available'}")
    return "\n".join(lines)


def _coerce_score_impact(value: Any) -> int:
    try:
        n = int(float(value))
    except (TypeError, ValueError):
        return DEFAULT_SCORE_IMPACT
    return max(MIN_SCORE_IMPACT, min(MAX_SCORE_IMPACT, n))


def fallback_classification(*, provider: str | None = None) -> ClassificationResult:
    cat = get_category(FALLBACK_CATEGORY)
    return ClassificationResult(
        category=cat.key,
        category_name=cat.name,
        confidence=FALLBACK_CONFIDENCE,
        rationale=FALLBACK_RATIONALE,
        score_impact=FALLBACK_SCORE_IMPACT,
        provider=provider,
        fallback=True,
    )


def normalize_classification(raw: dict[str, Any], *, provider: str | None = None) -> ClassificationResult:
    """
    Coerce a provider response into a result naming one of the 8 categories.

    An unrecognised category is never passed through; the whole result is
    replaced by the low-confidence fallback.
    """
    key = str(raw.get("category") or raw.get("criterion") or "").strip().lower()
    cat = get_category(key)
    if cat is None:
        logger.warning("Classifier returned unknown category %r; using fallback", key)
        return fallback_classification(provider=provider)

    confidence = str(raw.get("confidence") or "").strip().lower()
    if confidence not in _CONFIDENCES:
        confidence = "medium"

    return ClassificationResult(
        category=cat.key,
        category_name=cat.name,
        confidence=confidence,
        rationale=str(raw.get("rationale") or raw.get("reasoning") or "").strip(),
        score_impact=_coerce_score_impact(raw.get("score_impact")),
        provider=provider,
    )


async def _classify_with_gemini(prompt: str) -> dict[str, Any]:
    raw_text, _ = await gemini_generate_content(
        api_key=GEMINI_API_KEY,
        base_url=GEMINI_BASE_URL,
        api_version=GEMINI_API_VERSION,
        model=GEMINI_MODEL,
        user_text=prompt,
        system_text=SYSTEM_PROMPT,
        temperature=0.2,
        timeout_s=AI_TIMEOUT_S,
        max_retries=AI_MAX_RETRIES,
        log_payloads=AI_LOG_PAYLOADS,
    )
    return extract_first_json_object(raw_text)


async def _classify_with_openai(prompt: str) -> dict[str, Any]:
    raw_text, _ = await openai_chat_completion(
        api_key=OPENAI_API_KEY,
        base_url=OPENAI_BASE_URL,
        model=OPENAI_MODEL,
        user_text=prompt,
        system_text=SYSTEM_PROMPT,
        timeout_s=AI_TIMEOUT_S,
        max_retries=AI_MAX_RETRIES,
        log_payloads=AI_LOG_PAYLOADS,
    )
    return extract_first_json_object(raw_text)


async def classify_document(
    *,
    text: str,
    title: str | None = None,
    description: str | None = None,
) -> ClassificationResult:
    """
    Classify document text into an O-1 category.

    Tries Gemini first, then the OpenAI-compatible provider. Raises
    UpstreamError when neither returns a usable response.
    """
    prompt = classification_prompt(text=text, title=title, description=description)

    providers = (("gemini", _classify_with_gemini), ("openai", _classify_with_openai))
    for name, call in providers:
        try:
            raw = await call(prompt)
        except (AIClientError, ValueError) as e:
            logger.warning("Classification via %s failed: %s", name, type(e).__name__)
            continue
        return normalize_classification(raw, provider=name)

    raise UpstreamError("All classification providers failed")


async def classify_or_fallback(
    *,
    text: str,
    title: str | None = None,
    description: str | None = None,
) -> ClassificationResult:
    """Like classify_document, but degrades to the fallback result instead of raising."""
    try:
        return await classify_document(text=text, title=title, description=description)
    except UpstreamError as e:
        logger.error("Document classification unavailable: %s", e.message)
        return fallback_classification()
