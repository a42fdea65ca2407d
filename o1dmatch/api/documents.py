from pathlib import Path
from uuid import uuid4
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import config
from ..database import get_db
from ..models.document import EvidenceDocument
from ..schemas.classification import ClassifyRequest
from ..services.document_classifier import classify_or_fallback
from ..services.document_extraction import extract_document_text
from ..services.evidence_scoring import recalculate_talent_score
from ..services.profiles import get_talent_for_user, public_document
from ..services.side_effects import log_activity
from ..utils.dependencies import get_current_user
from ..utils.error_handlers import NotFoundError, get_error_message, handle_database_error
from ..utils.roles import talent_only
from ..utils.validation import (
    sanitize_filename,
    validate_category,
    validate_document_status,
    validate_string_field,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["Documents"])

ALLOWED_EXTENSIONS = {".pdf", ".docx", ".txt"}
ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",  # sometimes used incorrectly for docx by browsers
    "text/plain",
    "application/octet-stream",  # allow when extension is trusted
}


def _remove_file(path: Path) -> None:
    try:
        if path.exists():
            path.unlink()
    except OSError as e:
        logger.warning("Failed to remove %s: %s", path, e)


@router.post("", status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    title: str = Form(...),
    description: str | None = Form(None),
    db: Session = Depends(get_db),
    user=Depends(talent_only),
):
    title = validate_string_field(title, "Title", max_length=255)
    description = validate_string_field(description, "Description", max_length=5000, required=False)

    if not file or not file.filename:
        raise HTTPException(status_code=400, detail=get_error_message("invalid_file_type"))

    original_filename = sanitize_filename(Path(file.filename).name)
    ext = Path(original_filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail=get_error_message("invalid_file_type"))
    if file.content_type and file.content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail=get_error_message("invalid_file_type"))

    talent = get_talent_for_user(db, user_id=int(user["sub"]))

    stored_filename = f"{uuid4().hex}{ext}"
    base_dir = Path(config.UPLOAD_DIR) / "documents" / str(talent.id)
    try:
        base_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Failed to create upload directory: %s", e)
        raise HTTPException(status_code=500, detail="Failed to prepare storage")

    dest = base_dir / stored_filename
    rel_path = Path("documents") / str(talent.id) / stored_filename

    size = 0
    try:
        with open(dest, "wb") as out:
            while True:
                chunk = await file.read(1024 * 1024)  # 1MB
                if not chunk:
                    break
                size += len(chunk)
                if size > config.MAX_DOCUMENT_BYTES:
                    raise HTTPException(status_code=413, detail=get_error_message("file_too_large"))
                out.write(chunk)
    except HTTPException:
        _remove_file(dest)
        raise
    except OSError as e:
        _remove_file(dest)
        logger.error("File save error for %s: %s", original_filename, e)
        raise HTTPException(status_code=500, detail=get_error_message("file_processing_failed"))
    finally:
        await file.close()

    extracted_text, warnings = extract_document_text(file_path=dest.as_posix(), ext=ext)

    # Advisory only; an admin confirms or overrides at verification.
    classification = await classify_or_fallback(text=extracted_text, title=title, description=description)

    doc = EvidenceDocument(
        talent_id=talent.id,
        title=title,
        description=description,
        file_path=rel_path.as_posix(),
        file_name=original_filename,
        content_type=file.content_type,
        size_bytes=size,
        extracted_content=extracted_text or None,
        category=classification.category,
        score_impact=classification.score_impact,
        confidence=classification.confidence,
        ai_rationale=classification.rationale,
        status="pending",
    )
    try:
        db.add(doc)
        db.commit()
        db.refresh(doc)
    except SQLAlchemyError as e:
        db.rollback()
        _remove_file(dest)
        raise handle_database_error(e, "saving document")

    try:
        log_activity(
            db,
            user_id=int(user["sub"]),
            action="document_uploaded",
            entity_type="talent_document",
            entity_id=doc.id,
            metadata={"category": doc.category, "fallback": classification.fallback},
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Failed to log upload of document %s: %s", doc.id, e)

    return {
        "success": True,
        "document": public_document(doc),
        "classification": classification.model_dump(),
        "warnings": warnings,
    }


@router.get("")
def list_my_documents(
    status: str | None = None,
    category: str | None = None,
    db: Session = Depends(get_db),
    user=Depends(talent_only),
):
    talent = get_talent_for_user(db, user_id=int(user["sub"]))
    q = db.query(EvidenceDocument).filter(EvidenceDocument.talent_id == talent.id)
    status = validate_document_status(status)
    category = validate_category(category)
    if status:
        q = q.filter(EvidenceDocument.status == status)
    if category:
        q = q.filter(EvidenceDocument.category == category)
    rows = q.order_by(EvidenceDocument.created_at.desc(), EvidenceDocument.id.desc()).all()
    return {"success": True, "documents": [public_document(d) for d in rows]}


@router.delete("/{document_id}")
def delete_document(
    document_id: int,
    db: Session = Depends(get_db),
    user=Depends(talent_only),
):
    talent = get_talent_for_user(db, user_id=int(user["sub"]))
    doc = (
        db.query(EvidenceDocument)
        .filter(EvidenceDocument.id == document_id, EvidenceDocument.talent_id == talent.id)
        .first()
    )
    if not doc:
        raise NotFoundError(get_error_message("document_not_found"))

    file_path = Path(config.UPLOAD_DIR) / doc.file_path if doc.file_path else None
    try:
        db.delete(doc)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise handle_database_error(e, "deleting document")

    if file_path is not None:
        _remove_file(file_path)

    result = recalculate_talent_score(db, talent_id=talent.id)
    return {"success": True, "score": result.as_dict()}


@router.post("/classify")
async def classify(payload: ClassifyRequest, user=Depends(get_current_user)):
    result = await classify_or_fallback(
        text=payload.content or "",
        title=payload.title,
        description=payload.description,
    )
    return {"success": True, "data": result.model_dump()}
