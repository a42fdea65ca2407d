import pytest
from fastapi import HTTPException

from o1dmatch.utils.validation import (
    sanitize_filename,
    validate_category,
    validate_commitment_level,
    validate_document_status,
    validate_email,
    validate_password,
    validate_promo_code,
    validate_role,
    validate_string_field,
)


def _rejects(func, *args, **kwargs) -> HTTPException:
    with pytest.raises(HTTPException) as exc:
        func(*args, **kwargs)
    assert exc.value.status_code == 400
    return exc.value


def test_email_is_normalised():
    assert validate_email("  TEST@EXAMPLE.COM  ") == "test@example.com"
    _rejects(validate_email, "invalid")
    _rejects(validate_email, "")


def test_password_length_bounds():
    validate_password("123456")
    _rejects(validate_password, "12345")
    _rejects(validate_password, "x" * 129)


def test_string_field_trims_and_handles_optional_blanks():
    assert validate_string_field("  test  ", "Field") == "test"
    assert validate_string_field("   ", "Field", required=False) is None
    assert validate_string_field(None, "Field", required=False) is None
    _rejects(validate_string_field, "   ", "Field")
    _rejects(validate_string_field, "abcdef", "Field", max_length=5)
    _rejects(validate_string_field, 42, "Field")


def test_signup_roles_exclude_admin():
    assert validate_role(" Agency ") == "agency"
    detail = _rejects(validate_role, "admin").detail
    assert "talent, employer, agency" in detail


def test_enumerated_fields():
    assert validate_category("AWARDS") == "awards"
    assert validate_category(None) is None
    _rejects(validate_category, None, required=True)
    _rejects(validate_category, "fame")

    assert validate_document_status("needs_review") == "needs_review"
    assert validate_document_status("") is None
    _rejects(validate_document_status, "archived")

    assert validate_commitment_level("Offer_Extended") == "offer_extended"
    _rejects(validate_commitment_level, "maybe")


def test_promo_code_format():
    assert validate_promo_code(" SPRING_24 ") == "SPRING_24"
    _rejects(validate_promo_code, "spring")
    _rejects(validate_promo_code, "A")
    _rejects(validate_promo_code, "BAD CODE")


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("award.pdf", "award.pdf"),
        ("../../etc/passwd", "____etc_passwd"),
        ("..\\secret.docx", "__secret.docx"),
        (".hidden.txt", "hidden.txt"),
    ],
)
def test_sanitize_filename(raw, expected):
    assert sanitize_filename(raw) == expected


def test_sanitize_filename_rejects_empty_results():
    _rejects(sanitize_filename, "")
    _rejects(sanitize_filename, "..")
