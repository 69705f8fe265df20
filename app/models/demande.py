"""
Demande Lifecycle Platform
Demande domain model.

Models:
    - Demande: a student-submitted administrative request under lifecycle control
    - DemandeDocument: a file attached to a demande (metadata only)

The status is stored as its full catalog tuple (code, label, color,
terminal flag) so a row is self-describing without a catalog lookup.
Status columns are written only through ``Demande.apply_status`` which the
workflow engine calls.
"""

import json
import uuid
from datetime import datetime, timezone

from app.models import db
from app.models.soft_delete import SoftDeleteMixin
from app.workflow.constants import DemandeStatus, get_status_meta


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ── Constants ────────────────────────────────────────────────────────────────

# Ordered lowest → highest.
PRIORITIES = ("LOW", "NORMAL", "HIGH", "URGENT")
DEFAULT_PRIORITY = "NORMAL"

# code → (display name, processing delay in days)
REQUEST_TYPES = {
    "ENROLLMENT_CERTIFICATE": ("Enrollment certificate", 3),
    "TRANSCRIPT": ("Transcript of records", 5),
    "SUCCESS_CERTIFICATE": ("Certificate of success", 5),
    "DUPLICATE_CARD": ("Duplicate student card", 7),
    "INTERNSHIP_AGREEMENT": ("Internship agreement", 10),
}


class Demande(SoftDeleteMixin, db.Model):
    """
    Administrative service request.

    ``sequence_number`` (DEM-<year>-<6 digits>) is assigned once at creation
    and echoed into every history entry.
    """

    __tablename__ = "demandes"
    __table_args__ = (
        db.Index("idx_demande_student_status", "student_id", "status_code"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    sequence_number = db.Column(db.String(20), nullable=False, unique=True, index=True)

    # Student reference (denormalised snapshot of the external student record)
    student_id = db.Column(db.String(36), nullable=False, index=True)
    student_last_name = db.Column(db.String(100), nullable=False)
    student_first_name = db.Column(db.String(100), nullable=False)
    student_email = db.Column(db.String(255), nullable=False)
    student_number = db.Column(db.String(50), nullable=False)

    # Request type
    request_type_code = db.Column(db.String(40), nullable=False, index=True)
    request_type_name = db.Column(db.String(100), nullable=False)
    processing_days = db.Column(db.Integer, nullable=False, default=0)

    # Status tuple
    status_code = db.Column(
        db.String(20), nullable=False, default=DemandeStatus.SUBMITTED, index=True,
        comment="SUBMITTED | RECEIVED | IN_PROGRESS | AWAITING_INFO | VALIDATED | REJECTED | PROCESSED | ARCHIVED",
    )
    status_label = db.Column(db.String(60), nullable=False)
    status_color = db.Column(db.String(10), nullable=True)
    status_is_terminal = db.Column(db.Boolean, nullable=False, default=False)

    # Actor-supplied content
    subject = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    priority = db.Column(db.String(10), nullable=False, default=DEFAULT_PRIORITY)

    # Administrative annotations
    admin_comment = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    processed_by_id = db.Column(db.String(36), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    metadata_json = db.Column(db.Text, default="{}")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )

    documents = db.relationship(
        "DemandeDocument", backref="demande", lazy="select",
        cascade="all, delete-orphan", order_by="DemandeDocument.uploaded_at",
    )

    def __init__(self, **kwargs):
        status = kwargs.pop("status_code", DemandeStatus.SUBMITTED)
        super().__init__(**kwargs)
        self.apply_status(status)

    # ── Status ───────────────────────────────────────────────────────────

    def apply_status(self, code: str) -> None:
        """Replace the status with the catalog's full metadata tuple."""
        meta = get_status_meta(code)
        self.status_code = meta.code
        self.status_label = meta.label
        self.status_color = meta.color
        self.status_is_terminal = meta.is_terminal

    @property
    def status(self) -> dict:
        return {
            "code": self.status_code,
            "label": self.status_label,
            "color": self.status_color,
            "is_terminal": self.status_is_terminal,
        }

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def metadata_dict(self) -> dict:
        try:
            return json.loads(self.metadata_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self, include_documents=True):
        d = {
            "id": self.id,
            "sequence_number": self.sequence_number,
            "student": {
                "id": self.student_id,
                "last_name": self.student_last_name,
                "first_name": self.student_first_name,
                "email": self.student_email,
                "student_number": self.student_number,
            },
            "request_type": {
                "code": self.request_type_code,
                "name": self.request_type_name,
                "processing_days": self.processing_days,
            },
            "status": self.status,
            "subject": self.subject,
            "description": self.description,
            "priority": self.priority,
            "admin_comment": self.admin_comment,
            "rejection_reason": self.rejection_reason,
            "processed_by_id": self.processed_by_id,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "metadata": self.metadata_dict,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_documents:
            d["documents"] = [doc.to_dict() for doc in self.documents]
        return d

    def __repr__(self):
        return f"<Demande {self.sequence_number} [{self.status_code}]>"


class DemandeDocument(db.Model):
    """Metadata of a file attached to a demande. Storage lives elsewhere."""

    __tablename__ = "demande_documents"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    demande_id = db.Column(
        db.String(36), db.ForeignKey("demandes.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    filename = db.Column(db.String(255), nullable=False)
    original_name = db.Column(db.String(255), nullable=True)
    mime_type = db.Column(db.String(100), nullable=False)
    size = db.Column(db.Integer, nullable=False, default=0)
    url = db.Column(db.String(500), nullable=False)
    category = db.Column(db.String(50), nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "filename": self.filename,
            "original_name": self.original_name,
            "mime_type": self.mime_type,
            "size": self.size,
            "url": self.url,
            "category": self.category,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }

    def __repr__(self):
        return f"<DemandeDocument {self.filename}>"
