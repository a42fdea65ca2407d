import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Any

from ..config import APP_URL

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str = "1") -> bool:
    v = (os.getenv(name, default) or default).strip().lower()
    return v in {"1", "true", "yes", "y", "on"}


def send_email(*, to_email: str, subject: str, body: str) -> None:
    """
    Send a plain-text e-mail over SMTP.

    Env vars:
      SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, SMTP_FROM, SMTP_TLS
    """
    host = (os.getenv("SMTP_HOST") or "").strip()
    port = int((os.getenv("SMTP_PORT") or "587").strip())
    user = (os.getenv("SMTP_USER") or "").strip()
    password = (os.getenv("SMTP_PASS") or "").strip()
    mail_from = (os.getenv("SMTP_FROM") or user).strip()
    use_tls = _env_bool("SMTP_TLS", "1")

    if not host or not user or not password or not mail_from:
        raise RuntimeError("SMTP is not configured (missing SMTP_HOST/SMTP_USER/SMTP_PASS/SMTP_FROM).")
    if not to_email:
        raise ValueError("Recipient e-mail is required")

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = mail_from
    msg["To"] = to_email
    msg.set_content(body)

    with smtplib.SMTP(host, port, timeout=15) as smtp:
        smtp.ehlo()
        if use_tls:
            smtp.starttls()
            smtp.ehlo()
        smtp.login(user, password)
        smtp.send_message(msg)
    logger.info("E-mail sent to=%s subject=%r", to_email, subject)


def _admin_letter_review(ctx: dict[str, Any]) -> tuple[str, list[str]]:
    company = ctx.get("company_name") or "An employer"
    return f"Interest letter awaiting review: {ctx.get('job_title') or 'Position'}", [
        "Hi,",
        "",
        f"{company} submitted an interest letter for {ctx.get('job_title') or 'a position'} "
        f"(candidate {ctx.get('candidate_code') or '-'}).",
        "",
        f"Review it here: {APP_URL}/dashboard/admin/letters/{ctx.get('letter_id')}",
    ]


def _admin_signature_review(ctx: dict[str, Any]) -> tuple[str, list[str]]:
    return f"Signed interest letter awaiting review: {ctx.get('job_title') or 'Position'}", [
        "Hi,",
        "",
        f"Candidate {ctx.get('candidate_code') or '-'} signed the interest letter from "
        f"{ctx.get('company_name') or 'an employer'}.",
        "",
        f"Review the signature here: {APP_URL}/dashboard/admin/signed-letters/{ctx.get('letter_id')}",
    ]


def _letter_received(ctx: dict[str, Any]) -> tuple[str, list[str]]:
    company = ctx.get("company_name") or "An employer"
    return f"{company} sent you an interest letter", [
        f"Hi {ctx.get('talent_name') or 'there'},",
        "",
        f"{company} is interested in you for {ctx.get('job_title') or 'a position'}.",
        "",
        f"Read the letter here: {APP_URL}/dashboard/talent/letters/{ctx.get('letter_id')}",
        "",
        "Best regards,",
        "O1DMatch",
    ]


def _signed_letter_forwarded(ctx: dict[str, Any]) -> tuple[str, list[str]]:
    return f"Signed interest letter: {ctx.get('job_title') or 'Position'}", [
        "Hi,",
        "",
        f"{ctx.get('talent_name') or 'The candidate'} signed your interest letter for "
        f"{ctx.get('job_title') or 'the position'}. Their contact details are now available.",
        "",
        f"E-mail: {ctx.get('talent_email') or '-'}",
        f"View the letter here: {APP_URL}/dashboard/employer/letters/{ctx.get('letter_id')}",
        "",
        "Best regards,",
        "O1DMatch",
    ]


def _letter_response(ctx: dict[str, Any]) -> tuple[str, list[str]]:
    status = "accepted" if ctx.get("accepted") else "declined"
    lines = [
        "Hi,",
        "",
        f"Candidate {ctx.get('candidate_code') or '-'} has {status} your interest letter for "
        f"{ctx.get('job_title') or 'the position'}.",
    ]
    if ctx.get("message"):
        lines += ["", f"Their message: {ctx['message']}"]
    lines += [
        "",
        f"View the letter here: {APP_URL}/dashboard/employer/letters/{ctx.get('letter_id')}",
        "",
        "Best regards,",
        "O1DMatch",
    ]
    return f"Interest letter {status}: {ctx.get('job_title') or 'Position'}", lines


TEMPLATES = {
    "admin_letter_review": _admin_letter_review,
    "admin_signature_review": _admin_signature_review,
    "letter_received": _letter_received,
    "letter_response": _letter_response,
    "signed_letter_forwarded": _signed_letter_forwarded,
}


def send_templated_email(*, template: str, to_email: str, context: dict[str, Any]) -> None:
    render = TEMPLATES.get(template)
    if render is None:
        raise ValueError(f"Unknown e-mail template: {template}")
    subject, lines = render(context)
    send_email(to_email=to_email, subject=subject, body="\n".join(lines))
