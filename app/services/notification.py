"""
Demande Lifecycle Platform
Notification Service.

Sends the status-change email of a demande, or a custom message written
by an administrator, and records every delivery attempt in the
``notifications`` table for audit and statistics.

Every public send method reports its outcome as a dict and never raises
for delivery problems; the workflow engine additionally guards against
unexpected exceptions. Retries are explicit (``retry_notification``).
"""

import logging

from flask import current_app

from app.core.exceptions import ValidationError
from app.models import db
from app.models.notification import (
    DELIVERY_FAILED,
    DELIVERY_PENDING,
    DELIVERY_SENT,
    Notification,
)
from app.services.email_service import (
    EmailService,
    demande_email_context,
    render_template,
    template_for_status,
)

logger = logging.getLogger(__name__)

CUSTOM_TEMPLATE = "custom"
CUSTOM_SUBJECT_MAX_LENGTH = 300


class NotificationService:
    """Stateless service class for demande notifications."""

    # ── Send ──────────────────────────────────────────────────────────────

    @staticmethod
    def send_status_change_notification(demande) -> dict:
        """
        Email the student about the demande's current status.

        Returns:
            {"success": True, "notification_id": int}
            or {"success": False, "error": str, "notification_id"?: int}
        """
        if not current_app.config.get("NOTIFICATIONS_ENABLED", True):
            return {"success": False, "error": "Notifications are disabled"}

        template_name = template_for_status(demande.status_code)
        if not template_name:
            return {
                "success": False,
                "error": f"No email template defined for status: {demande.status_code}",
            }

        rendered = render_template(template_name, demande_email_context(demande))
        if rendered is None:
            return {"success": False, "error": f"Template not found: {template_name}"}
        subject, body = rendered
        return NotificationService._record_and_deliver(demande, subject, body, template_name)

    @staticmethod
    def send_custom_notification(demande, subject: str, message: str) -> dict:
        """
        Email the student a free-form message written by an administrator.

        Recorded like any other notification (template ``custom``).

        Raises:
            ValidationError: subject or message missing, blank or not a string,
                or subject longer than CUSTOM_SUBJECT_MAX_LENGTH.
        """
        errors = {}
        for name, value in (("subject", subject), ("message", message)):
            if not isinstance(value, str) or not value.strip():
                errors[name] = f"{name} is required"
        if "subject" not in errors and len(subject.strip()) > CUSTOM_SUBJECT_MAX_LENGTH:
            errors["subject"] = f"subject must be at most {CUSTOM_SUBJECT_MAX_LENGTH} characters"
        if errors:
            raise ValidationError("Invalid custom email", details=errors)

        if not current_app.config.get("NOTIFICATIONS_ENABLED", True):
            return {"success": False, "error": "Notifications are disabled"}

        return NotificationService._record_and_deliver(
            demande, subject.strip(), message.strip(), CUSTOM_TEMPLATE,
        )

    @staticmethod
    def retry_notification(notification_id: int) -> dict:
        """Resend a notification that is not yet SENT."""
        notif = db.session.get(Notification, notification_id)
        if notif is None:
            return {"success": False, "error": "Notification not found"}
        if notif.delivery_status == DELIVERY_SENT:
            return {"success": False, "error": "Notification already sent", "notification_id": notif.id}
        return NotificationService._deliver(notif)

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_demande(demande_id: str) -> list[Notification]:
        return (
            Notification.query
            .filter_by(demande_id=demande_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .all()
        )

    @staticmethod
    def get_notification_stats(demande_id: str) -> dict:
        """Counts of notifications for a demande, by delivery status."""
        rows = (
            db.session.query(Notification.delivery_status, db.func.count(Notification.id))
            .filter(Notification.demande_id == demande_id, Notification.channel == "EMAIL")
            .group_by(Notification.delivery_status)
            .all()
        )
        counts = dict(rows)
        return {
            "total": sum(counts.values()),
            "sent": counts.get(DELIVERY_SENT, 0),
            "pending": counts.get(DELIVERY_PENDING, 0),
            "failed": counts.get(DELIVERY_FAILED, 0),
        }

    # ── Internal ──────────────────────────────────────────────────────────

    @staticmethod
    def _record_and_deliver(demande, subject: str, body: str, template: str) -> dict:
        notif = Notification(
            demande_id=demande.id,
            channel="EMAIL",
            recipient=demande.student_email,
            subject=subject,
            body=body,
            template=template,
            delivery_status=DELIVERY_PENDING,
            attempts=0,
        )
        db.session.add(notif)
        db.session.commit()

        return NotificationService._deliver(notif)

    @staticmethod
    def _deliver(notif: Notification) -> dict:
        try:
            EmailService.deliver(to_email=notif.recipient, subject=notif.subject, body=notif.body)
        except Exception as exc:
            notif.mark_failed(str(exc)[:1000])
            db.session.commit()
            logger.error("Notification %s failed: to=%s error=%s", notif.id, notif.recipient, exc)
            return {"success": False, "error": str(exc), "notification_id": notif.id}

        notif.mark_sent()
        db.session.commit()
        return {"success": True, "notification_id": notif.id}
