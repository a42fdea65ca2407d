import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx


logger = logging.getLogger(__name__)

_RETRYABLE_STATUSES = {408, 429, 500, 502, 503, 504}


class AIClientError(RuntimeError):
    pass


class AIClientTimeout(AIClientError):
    pass


class AIClientHTTPError(AIClientError):
    def __init__(self, *, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class AIMeta:
    provider: str
    model: str
    latency_ms: int
    status_code: int | None
    retries: int


def _safe_truncate(s: str, n: int = 800) -> str:
    s = s or ""
    if len(s) <= n:
        return s
    return s[:n] + "…"


async def _post_json_with_retries(
    *,
    provider: str,
    url: str,
    headers: dict[str, str],
    body: dict[str, Any],
    timeout_s: float,
    max_retries: int,
    log_payloads: bool,
) -> tuple[dict[str, Any], int, int]:
    """
    POST a JSON body, retrying transient failures with exponential backoff.

    Returns (response json, status code, retries used).
    """
    for attempt in range(max_retries + 1):
        backoff = 0.5 * (2**attempt)
        try:
            async with httpx.AsyncClient(timeout=timeout_s) as client:
                if log_payloads:
                    logger.info(
                        "%s request url=%s body=%s",
                        provider,
                        url,
                        _safe_truncate(json.dumps(body, ensure_ascii=False)),
                    )
                r = await client.post(url, json=body, headers=headers)
        except httpx.TimeoutException:
            if attempt < max_retries:
                logger.warning("%s timeout; retrying in %.1fs", provider, backoff)
                await asyncio.sleep(backoff)
                continue
            raise AIClientTimeout(f"{provider} request timed out") from None
        except httpx.RequestError as e:
            if attempt < max_retries:
                logger.warning("%s network error (%s); retrying in %.1fs", provider, type(e).__name__, backoff)
                await asyncio.sleep(backoff)
                continue
            raise AIClientError(f"{provider} request failed: {type(e).__name__}") from e

        if r.status_code >= 400:
            if r.status_code in _RETRYABLE_STATUSES and attempt < max_retries:
                logger.warning("%s HTTP %s; retrying in %.1fs", provider, r.status_code, backoff)
                await asyncio.sleep(backoff)
                continue
            raise AIClientHTTPError(status_code=r.status_code, message=_safe_truncate(r.text, 1000))

        try:
            data = r.json()
        except ValueError as e:
            raise AIClientError(f"{provider} returned a non-JSON body") from e
        return data or {}, r.status_code, attempt

    raise AIClientError(f"{provider} request failed after retries")


async def gemini_generate_content(
    *,
    api_key: str | None,
    base_url: str,
    api_version: str = "v1",
    model: str,
    user_text: str,
    system_text: str | None = None,
    temperature: float = 0.0,
    timeout_s: float = 20.0,
    max_retries: int = 2,
    log_payloads: bool = False,
) -> tuple[str, AIMeta]:
    """
    Call the Gemini Generative Language API (API key auth) and return the model text.

    Endpoint:
      POST {base_url}/{api_version}/models/{model}:generateContent
    Auth:
      x-goog-api-key: {api_key}

    The system prompt is inlined into the user turn because some v1
    deployments reject `systemInstruction`.
    """
    if not api_key:
        raise AIClientError("Missing GEMINI_API_KEY")
    if not model:
        raise AIClientError("Missing GEMINI_MODEL")

    api_v = (api_version or "v1").strip().lstrip("/")
    base = (base_url or "").rstrip("/")
    model_path = model.strip()
    if model_path.startswith("models/"):
        model_path = model_path[len("models/"):]
    url = f"{base}/{api_v}/models/{model_path}:generateContent"

    effective_user = user_text or ""
    if system_text:
        effective_user = f"{system_text.strip()}\n\n{effective_user}"
    body = {
        "contents": [{"role": "user", "parts": [{"text": effective_user}]}],
        "generationConfig": {"temperature": float(temperature)},
    }
    headers = {"x-goog-api-key": api_key, "content-type": "application/json"}

    start = time.perf_counter()
    data, status, retries = await _post_json_with_retries(
        provider="Gemini",
        url=url,
        headers=headers,
        body=body,
        timeout_s=timeout_s,
        max_retries=max_retries,
        log_payloads=log_payloads,
    )
    # { candidates: [ { content: { parts: [ { text: "..." } ] } } ] }
    text = (
        (data.get("candidates") or [{}])[0]
        .get("content", {})
        .get("parts", [{}])[0]
        .get("text", "")
    )
    meta = AIMeta(
        provider="gemini",
        model=model,
        latency_ms=int((time.perf_counter() - start) * 1000),
        status_code=status,
        retries=retries,
    )
    logger.info("Gemini ok model=%s status=%s latency_ms=%s retries=%s", meta.model, status, meta.latency_ms, retries)
    return (text or "").strip(), meta


async def openai_chat_completion(
    *,
    api_key: str | None,
    base_url: str,
    model: str,
    user_text: str,
    system_text: str | None = None,
    temperature: float = 0.2,
    json_mode: bool = True,
    timeout_s: float = 20.0,
    max_retries: int = 2,
    log_payloads: bool = False,
) -> tuple[str, AIMeta]:
    """
    Call an OpenAI-compatible chat completions endpoint and return the message text.

    Endpoint:
      POST {base_url}/chat/completions
    """
    if not api_key:
        raise AIClientError("Missing OPENAI_API_KEY")

    messages: list[dict[str, str]] = []
    if system_text:
        messages.append({"role": "system", "content": system_text})
    messages.append({"role": "user", "content": user_text or ""})
    body: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "temperature": float(temperature),
    }
    if json_mode:
        body["response_format"] = {"type": "json_object"}

    start = time.perf_counter()
    data, status, retries = await _post_json_with_retries(
        provider="OpenAI",
        url=f"{(base_url or '').rstrip('/')}/chat/completions",
        headers={"authorization": f"Bearer {api_key}", "content-type": "application/json"},
        body=body,
        timeout_s=timeout_s,
        max_retries=max_retries,
        log_payloads=log_payloads,
    )
    text = ((data.get("choices") or [{}])[0].get("message") or {}).get("content") or ""
    meta = AIMeta(
        provider="openai",
        model=str(data.get("model") or model),
        latency_ms=int((time.perf_counter() - start) * 1000),
        status_code=status,
        retries=retries,
    )
    logger.info("OpenAI ok model=%s status=%s latency_ms=%s retries=%s", meta.model, status, meta.latency_ms, retries)
    return text.strip(), meta
