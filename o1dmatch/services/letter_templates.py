import html
import json
from typing import Any

from .criteria import get_commitment_level

_ENGAGEMENT_LABELS = {
    "full_time": "full-time",
    "part_time": "part-time",
    "contract_w2": "W-2 contract",
    "consulting_1099": "1099 consulting",
    "project_based": "project-based",
}
_ARRANGEMENT_LABELS = {
    "on_site": "on-site",
    "hybrid": "hybrid",
    "remote": "remote",
    "flexible": "flexible",
}


def format_salary_range(salary_min: int | None, salary_max: int | None, period: str | None = "year") -> str:
    """`$120,000 - $150,000 per year`; empty when no figures are set."""
    unit = f" per {period or 'year'}"
    if salary_min and salary_max and salary_min != salary_max:
        return f"${salary_min:,} - ${salary_max:,}{unit}"
    amount = salary_min or salary_max
    if amount:
        return f"${amount:,}{unit}"
    return ""


def _locations(letter: Any) -> list[str]:
    try:
        items = json.loads(getattr(letter, "locations_json", None) or "[]")
    except json.JSONDecodeError:
        return []
    return [str(x) for x in items if x]


def render_letter_body(letter: Any, *, talent_name: str, salary_range: str | None = None) -> str:
    """
    Plain-text letter body: the commitment level's legal paragraph followed by
    the position details.
    """
    level = get_commitment_level(letter.commitment_level)
    if level is None:
        raise ValueError(f"Unknown commitment level: {letter.commitment_level}")

    salary = salary_range or format_salary_range(letter.salary_min, letter.salary_max, letter.salary_period)
    if salary and getattr(letter, "salary_negotiable", False):
        salary = f"{salary} (negotiable)"

    opening = level.language.format(
        name=talent_name or "the candidate",
        title=letter.job_title or "the position",
        salary_range=salary or "a competitive range",
    )

    paragraphs = [opening]

    details = []
    engagement = _ENGAGEMENT_LABELS.get(letter.engagement_type or "", letter.engagement_type)
    arrangement = _ARRANGEMENT_LABELS.get(letter.work_arrangement or "", letter.work_arrangement)
    if engagement:
        details.append(f"The engagement is {engagement}, {arrangement or 'on-site'}.")
    if letter.department:
        details.append(f"The role sits within our {letter.department} department.")
    locations = _locations(letter)
    if locations:
        details.append(f"Work location(s): {', '.join(locations)}.")
    if letter.start_timing:
        details.append(f"Anticipated start: {letter.start_timing}.")
    if letter.duration_years:
        details.append(f"Anticipated duration: {letter.duration_years} year(s).")
    if details:
        paragraphs.append(" ".join(details))

    if letter.duties_description:
        paragraphs.append(f"Duties:\n{letter.duties_description.strip()}")
    if letter.why_o1_required:
        paragraphs.append(f"Why this role requires an individual of extraordinary ability:\n{letter.why_o1_required.strip()}")

    return "\n\n".join(paragraphs)


def render_signature_html(*, body: str, employer_name: str, talent_name: str) -> str:
    """HTML document uploaded to the e-signature provider."""
    e = html.escape
    return f"""<!DOCTYPE html>
<html>
<head>
  <style>
    body {{ font-family: Arial, sans-serif; padding: 40px; max-width: 800px; margin: 0 auto; }}
    h1 {{ color: #2563eb; }}
    .content {{ white-space: pre-wrap; line-height: 1.6; }}
    .signature-block {{ margin-top: 40px; border-top: 1px solid #ccc; padding-top: 20px; }}
    .signature-line {{ border-bottom: 1px solid #000; width: 200px; height: 30px; }}
  </style>
</head>
<body>
  <h1>Interest Letter</h1>
  <p><strong>From:</strong> {e(employer_name)}</p>
  <p><strong>To:</strong> {e(talent_name)}</p>
  <div class="content">{e(body)}</div>
  <div class="signature-block">
    <p><strong>Employer Signature:</strong></p>
    <div class="signature-line"></div>
    <p>{e(employer_name)}</p>
    <p>Date: _______________</p>
  </div>
  <div class="signature-block">
    <p><strong>Talent Acknowledgment:</strong></p>
    <div class="signature-line"></div>
    <p>{e(talent_name)}</p>
    <p>Date: _______________</p>
  </div>
</body>
</html>
"""
