import logging
import re

logger = logging.getLogger(__name__)

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_MULTISPACE_RE = re.compile(r"[ \t]{2,}")
_MULTINEWLINE_RE = re.compile(r"\n{3,}")
_HYPHEN_LINEBREAK_RE = re.compile(r"([A-Za-z])-\n([A-Za-z])")

# Stored on the document row; the classifier prompt truncates further.
MAX_EXTRACTED_CHARS = 50000


def extract_text_from_pdf(*, file_path: str) -> str:
    """Extract text from a PDF using pypdf, page by page."""
    from pypdf import PdfReader

    reader = PdfReader(file_path)
    parts: list[str] = []
    for i, page in enumerate(reader.pages):
        try:
            parts.append(page.extract_text() or "")
        except Exception as e:  # pypdf raises assorted errors on malformed pages
            logger.warning("Failed to extract PDF page %s from %s: %s", i, file_path, type(e).__name__)
            parts.append("")
    return "\n".join(parts)


def extract_text_from_docx(*, file_path: str) -> str:
    """Extract plain text from a DOCX using python-docx."""
    import docx

    d = docx.Document(file_path)
    return "\n".join(p.text for p in d.paragraphs if p.text)


def clean_text(text: str) -> str:
    s = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    s = _CONTROL_CHARS_RE.sub("", s)
    s = _HYPHEN_LINEBREAK_RE.sub(r"\1\2", s)
    s = _MULTISPACE_RE.sub(" ", s)
    s = _MULTINEWLINE_RE.sub("\n\n", s)
    return s.strip()[:MAX_EXTRACTED_CHARS]


def extract_document_text(*, file_path: str, ext: str | None) -> tuple[str, list[str]]:
    """
    Best-effort text extraction for an uploaded evidence file.

    Returns (clean_text, warnings). Extraction failures are reported as
    warnings; the upload itself never fails because of them.
    """
    ext_norm = (ext or "").lower()
    warnings: list[str] = []
    raw = ""

    try:
        if ext_norm == ".pdf":
            raw = extract_text_from_pdf(file_path=file_path)
        elif ext_norm == ".docx":
            raw = extract_text_from_docx(file_path=file_path)
        else:
            with open(file_path, "rb") as f:
                raw = f.read().decode("utf-8", errors="ignore")
    except Exception as e:  # parser libraries raise many unrelated exception types
        logger.warning("Text extraction failed for %s: %s", file_path, e)
        warnings.append(f"Could not extract text from {ext_norm or 'file'}.")

    text = clean_text(raw)
    if not text:
        warnings.append("No readable text found; classification will rely on title and description.")
    return text, warnings
