"""
Demande Lifecycle Platform
Email Service.

Plain-text email transport with one short template per notified status.
When SMTP is not configured, emails are logged but not sent (dev/test mode).

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.text import MIMEText
from typing import Any

from flask import current_app

from app.workflow.constants import DemandeStatus

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Templates
# ═══════════════════════════════════════════════════════════════════════════

# status → template key. Statuses absent here send no email.
STATUS_TO_TEMPLATE: dict[str, str] = {
    DemandeStatus.RECEIVED: "demande-received",
    DemandeStatus.IN_PROGRESS: "demande-in-progress",
    DemandeStatus.AWAITING_INFO: "demande-awaiting-info",
    DemandeStatus.VALIDATED: "demande-validated",
    DemandeStatus.REJECTED: "demande-rejected",
    DemandeStatus.PROCESSED: "demande-processed",
}

_TEMPLATES: dict[str, dict[str, str]] = {
    "demande-received": {
        "subject": "[{sequence_number}] Your request has been received",
        "text": (
            "Hello {first_name},\n\n"
            "Your request \"{subject}\" ({request_type}) has been received by the "
            "administration. Estimated processing time: {processing_days} day(s).\n"
        ),
    },
    "demande-in-progress": {
        "subject": "[{sequence_number}] Your request is being processed",
        "text": (
            "Hello {first_name},\n\n"
            "Your request \"{subject}\" is now being processed.\n"
            "{admin_comment_line}"
        ),
    },
    "demande-awaiting-info": {
        "subject": "[{sequence_number}] Additional information required",
        "text": (
            "Hello {first_name},\n\n"
            "The administration needs more information to process your request "
            "\"{subject}\":\n\n{admin_comment}\n"
        ),
    },
    "demande-validated": {
        "subject": "[{sequence_number}] Your request has been validated",
        "text": (
            "Hello {first_name},\n\n"
            "Your request \"{subject}\" has been validated.\n"
        ),
    },
    "demande-rejected": {
        "subject": "[{sequence_number}] Your request has been rejected",
        "text": (
            "Hello {first_name},\n\n"
            "Your request \"{subject}\" has been rejected.\n\nReason: {rejection_reason}\n"
        ),
    },
    "demande-processed": {
        "subject": "[{sequence_number}] Your request has been processed",
        "text": (
            "Hello {first_name},\n\n"
            "Your request \"{subject}\" has been processed on {processed_at}.\n"
        ),
    },
}


def template_for_status(status_code: str) -> str | None:
    return STATUS_TO_TEMPLATE.get(status_code)


def render_template(template_name: str, context: dict[str, Any]) -> tuple[str, str] | None:
    """Return ``(subject, body)`` or None when the template does not exist."""
    template = _TEMPLATES.get(template_name)
    if not template:
        return None
    safe = _SafeDict(context)
    return template["subject"].format_map(safe), template["text"].format_map(safe)


def demande_email_context(demande) -> dict[str, Any]:
    """Template variables for a demande."""
    return {
        "first_name": demande.student_first_name,
        "last_name": demande.student_last_name,
        "sequence_number": demande.sequence_number,
        "subject": demande.subject,
        "request_type": demande.request_type_name,
        "processing_days": demande.processing_days,
        "status_label": demande.status_label,
        "admin_comment": demande.admin_comment or "",
        "admin_comment_line": f"\nComment: {demande.admin_comment}\n" if demande.admin_comment else "",
        "rejection_reason": demande.rejection_reason or "",
        "processed_at": demande.processed_at.strftime("%Y-%m-%d") if demande.processed_at else "",
    }


class EmailService:
    """
    SMTP transport.

    In development/test mode (no MAIL_SERVER configured), emails are only
    logged.
    """

    @staticmethod
    def is_configured() -> bool:
        """Check if SMTP is configured."""
        return bool(current_app.config.get("MAIL_SERVER"))

    @classmethod
    def deliver(cls, *, to_email: str, subject: str, body: str) -> None:
        """Send one email. Raises on SMTP failure."""
        if not cls.is_configured():
            logger.info("Email (dev mode): to=%s subject='%s'", to_email, subject)
            return
        cls._send_smtp(to_email=to_email, subject=subject, body=body)
        logger.info("Email sent: to=%s subject='%s'", to_email, subject)

    @staticmethod
    def _send_smtp(*, to_email: str, subject: str, body: str) -> None:
        """Actually send via SMTP."""
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")

        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to_email

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"
