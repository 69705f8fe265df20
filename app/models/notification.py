"""
Demande Lifecycle Platform
Notification domain model.

Models:
    - Notification: one outbound message about a demande, with delivery tracking
"""

from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_CHANNELS = {"EMAIL", "SMS"}

DELIVERY_PENDING = "PENDING"
DELIVERY_SENT = "SENT"
DELIVERY_FAILED = "FAILED"
DELIVERY_STATUSES = {DELIVERY_PENDING, DELIVERY_SENT, DELIVERY_FAILED}


class Notification(db.Model):
    """
    Outbound notification record.

    Created PENDING before the send is attempted, then marked SENT or
    FAILED. ``attempts`` counts every send, retries included.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    demande_id = db.Column(
        db.String(36), db.ForeignKey("demandes.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    channel = db.Column(db.String(10), nullable=False, default="EMAIL")
    recipient = db.Column(db.String(255), nullable=False)
    subject = db.Column(db.String(300), nullable=True)
    body = db.Column(db.Text, nullable=False)
    template = db.Column(db.String(50), nullable=True, comment="Template key, e.g. demande-received")

    # Delivery tracking
    delivery_status = db.Column(db.String(10), nullable=False, default=DELIVERY_PENDING, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def mark_sent(self):
        self.delivery_status = DELIVERY_SENT
        self.sent_at = datetime.now(timezone.utc)
        self.attempts = (self.attempts or 0) + 1
        self.error = None

    def mark_failed(self, error: str):
        self.delivery_status = DELIVERY_FAILED
        self.attempts = (self.attempts or 0) + 1
        self.error = error

    def to_dict(self):
        return {
            "id": self.id,
            "demande_id": self.demande_id,
            "channel": self.channel,
            "recipient": self.recipient,
            "subject": self.subject,
            "template": self.template,
            "delivery_status": self.delivery_status,
            "attempts": self.attempts,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "error": self.error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.delivery_status} → {self.recipient}>"
