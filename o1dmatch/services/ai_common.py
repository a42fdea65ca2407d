import json
import re


_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def extract_first_json_object(text: str) -> dict:
    """
    Pull the first JSON object out of a model response.

    Models sometimes wrap the JSON in a ```json fence or in prose.
    """
    raw = _FENCE_RE.sub("", (text or "").strip()).strip()
    if not raw:
        raise ValueError("Empty AI response")

    try:
        obj = json.loads(raw)
    except json.JSONDecodeError:
        obj = None
    if isinstance(obj, dict):
        return obj

    m = _JSON_OBJECT_RE.search(raw)
    if not m:
        raise ValueError("No JSON object found in AI response")
    obj = json.loads(m.group(0))
    if not isinstance(obj, dict):
        raise ValueError("AI response JSON is not an object")
    return obj


def truncate_for_prompt(text: str, limit: int = 12000) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "\n[...truncated]"
