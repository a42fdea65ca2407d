import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.document import EvidenceDocument
from ..models.talent_profile import TalentProfile
from ..utils.error_handlers import NotFoundError, StorageError
from .criteria import CATEGORIES, MAX_OVERALL_SCORE, CategoryDefinition, qualification_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryScore:
    key: str
    score: int
    max_score: int
    threshold: int
    met: bool
    evidence_count: int
    satisfied_examples: list[str] = field(default_factory=list)
    needed_examples: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "max_score": self.max_score,
            "threshold": self.threshold,
            "met": self.met,
            "evidence_count": self.evidence_count,
            "satisfied_examples": list(self.satisfied_examples),
            "needed_examples": list(self.needed_examples),
        }


@dataclass(frozen=True)
class ScoreResult:
    overall_score: int
    qualification_status: str
    status_label: str
    criteria_met: list[str]
    categories: list[CategoryScore]

    def summary(self) -> dict[str, dict[str, Any]]:
        return {c.key: c.as_dict() for c in self.categories}

    def summary_json(self) -> str:
        # Sorted keys so recomputation over the same set is byte-identical.
        return json.dumps(self.summary(), sort_keys=True, ensure_ascii=False)

    def as_dict(self) -> dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "qualification_status": self.qualification_status,
            "status_label": self.status_label,
            "criteria_met": list(self.criteria_met),
            "evidence_summary": self.summary(),
        }


def _impact(doc: Any) -> int:
    try:
        value = int(getattr(doc, "score_impact", 0) or 0)
    except (TypeError, ValueError):
        return 0
    return max(0, value)


def _example_label(doc: Any) -> str:
    title = (getattr(doc, "title", None) or "").strip()
    if title:
        return title
    return (getattr(doc, "file_name", None) or "").strip() or f"Document {getattr(doc, 'id', '')}".strip()


def compute_evidence_summary(
    documents: Iterable[Any],
    *,
    categories: tuple[CategoryDefinition, ...] = CATEGORIES,
) -> ScoreResult:
    """
    Pure scoring over a candidate's documents.

    Only verified documents in a known category count. Each category sums its
    documents' score_impact and saturates at max_score; the overall score is
    the sum of category scores capped at 100.
    """
    known = {c.key for c in categories}
    verified = [
        d for d in documents
        if getattr(d, "status", None) == "verified" and getattr(d, "category", None) in known
    ]
    verified.sort(key=lambda d: (getattr(d, "id", None) or 0))

    by_category: dict[str, list[Any]] = {c.key: [] for c in categories}
    for doc in verified:
        by_category[doc.category].append(doc)

    results: list[CategoryScore] = []
    for cat in categories:
        docs = by_category[cat.key]
        raw = sum(_impact(d) for d in docs)
        score = min(raw, cat.max_score)
        results.append(
            CategoryScore(
                key=cat.key,
                score=score,
                max_score=cat.max_score,
                threshold=cat.threshold,
                met=score >= cat.threshold,
                evidence_count=len(docs),
                satisfied_examples=[_example_label(d) for d in docs],
                needed_examples=list(cat.examples),
            )
        )

    overall = min(sum(r.score for r in results), MAX_OVERALL_SCORE)
    status, label = qualification_status(overall)
    return ScoreResult(
        overall_score=overall,
        qualification_status=status,
        status_label=label,
        criteria_met=[r.key for r in results if r.met],
        categories=results,
    )


def recalculate_talent_score(db: Session, *, talent_id: int) -> ScoreResult:
    """
    Recompute and persist a talent's score from their verified documents.

    Raises NotFoundError for an unknown talent and StorageError when the store
    fails; in the latter case the previous score is left in place.
    """
    try:
        profile = db.query(TalentProfile).filter(TalentProfile.id == talent_id).first()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to load talent %s for scoring: %s", talent_id, e)
        raise StorageError("Failed to load talent profile") from e

    if not profile:
        raise NotFoundError("Talent profile not found")

    try:
        documents = (
            db.query(EvidenceDocument)
            .filter(EvidenceDocument.talent_id == talent_id, EvidenceDocument.status == "verified")
            .order_by(EvidenceDocument.id.asc())
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to load documents for talent %s: %s", talent_id, e)
        raise StorageError("Failed to load evidence documents") from e

    result = compute_evidence_summary(documents)

    profile.overall_score = result.overall_score
    profile.qualification_status = result.qualification_status
    profile.criteria_met_json = json.dumps(result.criteria_met)
    profile.evidence_summary_json = result.summary_json()
    profile.score_updated_at = datetime.now(timezone.utc)

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to persist score for talent %s: %s", talent_id, e)
        raise StorageError("Failed to save talent score") from e

    logger.info(
        "Recalculated score talent_id=%s overall=%s status=%s met=%s",
        talent_id,
        result.overall_score,
        result.qualification_status,
        ",".join(result.criteria_met) or "-",
    )
    return result
