"""
Demande Service

CRUD around the lifecycle engine:
  - create_demande: SUBMITTED + CREATION history, then automatic intake
                    (SUBMITTED → RECEIVED as SYSTEM)
  - update_demande: edit subject / description / priority (EDIT history)
  - add_comment:    free-text COMMENT history entry
  - deactivate_demande / restore_demande: soft delete
  - get / list / history queries
  - transition:     load + delegate to DemandeWorkflow

Status changes never happen here directly; they always go through
``app.workflow.state_machine``.

Usage:
    from app.services.demande_service import create_demande

    demande = create_demande(
        student={"id": "s-1", "last_name": "Doe", "first_name": "Jane",
                 "email": "jane@univ.example", "student_number": "20260001"},
        request_type="TRANSCRIPT",
        subject="Transcript for exchange program",
        description="Needed for the Erasmus application file.",
    )
"""

import json
import logging

from app.core.exceptions import NotFoundError, ValidationError, WorkflowError
from app.models import db
from app.models.demande import (
    DEFAULT_PRIORITY,
    PRIORITIES,
    REQUEST_TYPES,
    Demande,
    DemandeDocument,
)
from app.models.history import (
    ACTION_COMMENT,
    ACTION_CREATION,
    ACTION_EDIT,
    HistoryEntry,
    list_history,
    write_history,
)
from app.services.code_generator import generate_sequence_number
from app.workflow.actors import SYSTEM_ACTOR, ActorContext
from app.workflow.constants import DemandeStatus
from app.workflow.state_machine import DemandeWorkflow, TransitionResult

logger = logging.getLogger(__name__)

_STUDENT_FIELDS = ("id", "last_name", "first_name", "email", "student_number")
_EDITABLE_FIELDS = ("subject", "description", "priority")
_DOCUMENT_FIELDS = ("filename", "mime_type", "url")

SUBJECT_MAX_LENGTH = 255


# ── Validation helpers ───────────────────────────────────────────────────────


def _validate_text(name: str, value, errors: dict, max_length: int | None = None) -> None:
    if value is None:
        errors[name] = f"{name} is required"
    elif not isinstance(value, str):
        errors[name] = f"{name} must be a string"
    elif not value.strip():
        errors[name] = f"{name} is required"
    elif max_length and len(value) > max_length:
        errors[name] = f"{name} must be at most {max_length} characters"


def _validate_content(fields: dict) -> dict:
    """Check the editable fields present in ``fields``; an explicit null is an error."""
    errors = {}
    if "subject" in fields:
        _validate_text("subject", fields["subject"], errors, SUBJECT_MAX_LENGTH)
    if "description" in fields:
        _validate_text("description", fields["description"], errors)
    if "priority" in fields and fields["priority"] not in PRIORITIES:
        errors["priority"] = f"priority must be one of {', '.join(PRIORITIES)}"
    return errors


def _validate_documents(documents) -> dict:
    """Per-index errors for an attachment list (filename, mime_type and url are required)."""
    if documents is None:
        return {}
    if not isinstance(documents, list):
        return {"documents": "documents must be a list"}
    errors = {}
    for index, doc in enumerate(documents):
        key = f"documents[{index}]"
        if not isinstance(doc, dict):
            errors[key] = "document must be an object"
            continue
        missing = [f for f in _DOCUMENT_FIELDS if not isinstance(doc.get(f), str) or not doc[f].strip()]
        if missing:
            errors[key] = f"missing or invalid fields: {', '.join(missing)}"
        elif not isinstance(doc.get("size", 0), int) or doc.get("size", 0) < 0:
            errors[key] = "size must be a non-negative integer"
    return errors


# ── Create ───────────────────────────────────────────────────────────────────


def create_demande(
    *,
    student: dict,
    request_type: str,
    subject: str,
    description: str,
    priority: str = DEFAULT_PRIORITY,
    documents: list[dict] | None = None,
    metadata: dict | None = None,
    auto_intake: bool = True,
) -> Demande:
    """
    Create a demande at SUBMITTED and run the automatic intake.

    The intake (SUBMITTED → RECEIVED, acting as SYSTEM) is best-effort:
    a WorkflowError is logged and the demande stays SUBMITTED.

    Raises:
        ValidationError: missing student fields, unknown request type,
            empty or non-string subject/description, unknown priority,
            or a malformed document entry (keyed ``documents[<index>]``).
    """
    errors = {}
    if not isinstance(student, dict):
        errors["student"] = "student must be an object"
    else:
        missing = [f for f in _STUDENT_FIELDS if not student.get(f)]
        if missing:
            errors["student"] = f"missing fields: {', '.join(missing)}"
    if not isinstance(request_type, str) or request_type not in REQUEST_TYPES:
        errors["request_type"] = f"unknown request type: {request_type}"
    errors.update(_validate_content({"subject": subject, "description": description, "priority": priority}))
    errors.update(_validate_documents(documents))
    if errors:
        raise ValidationError("Invalid demande", details=errors)

    type_name, processing_days = REQUEST_TYPES[request_type]
    demande = Demande(
        sequence_number=generate_sequence_number(),
        student_id=str(student["id"]),
        student_last_name=student["last_name"],
        student_first_name=student["first_name"],
        student_email=student["email"],
        student_number=student["student_number"],
        request_type_code=request_type,
        request_type_name=type_name,
        processing_days=processing_days,
        subject=subject.strip(),
        description=description.strip(),
        priority=priority,
        metadata_json=json.dumps(metadata or {}),
        status_code=DemandeStatus.SUBMITTED,
    )
    for doc in documents or []:
        demande.documents.append(DemandeDocument(
            filename=doc["filename"],
            original_name=doc.get("original_name"),
            mime_type=doc["mime_type"],
            size=doc.get("size", 0),
            url=doc["url"],
            category=doc.get("category"),
        ))
    db.session.add(demande)
    db.session.flush()

    write_history(
        demande=demande,
        new_status=demande.status,
        action_type=ACTION_CREATION,
        actor=SYSTEM_ACTOR,
    )
    db.session.commit()
    logger.info("Demande %s created for student %s", demande.sequence_number, demande.student_id,
                extra={"demande_id": demande.id, "sequence_number": demande.sequence_number})

    if auto_intake:
        try:
            DemandeWorkflow(demande, ActorContext.system()).transition(DemandeStatus.RECEIVED)
        except WorkflowError as exc:
            logger.error("Automatic intake failed for %s (demande created): %s",
                         demande.sequence_number, exc)

    return demande


# ── Read ─────────────────────────────────────────────────────────────────────


def get_demande(demande_id: str) -> Demande:
    demande = db.session.get(Demande, demande_id)
    if demande is None:
        raise NotFoundError(resource="Demande", resource_id=demande_id)
    return demande


def get_demande_by_sequence_number(sequence_number: str) -> Demande:
    demande = Demande.query.filter_by(sequence_number=sequence_number).first()
    if demande is None:
        raise NotFoundError(resource="Demande", resource_id=sequence_number)
    return demande


def list_demandes(
    *,
    student_id: str | None = None,
    status: str | None = None,
    priority: str | None = None,
    include_inactive: bool = False,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Demande], int]:
    """Newest first. Inactive demandes are excluded unless asked for."""
    q = Demande.query if include_inactive else Demande.query_active()
    if student_id:
        q = q.filter_by(student_id=student_id)
    if status:
        q = q.filter_by(status_code=status)
    if priority:
        q = q.filter_by(priority=priority)
    total = q.count()
    page = max(page, 1)
    items = (
        q.order_by(Demande.created_at.desc(), Demande.sequence_number.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return items, total


def get_history(demande_id: str) -> list[HistoryEntry]:
    get_demande(demande_id)
    return list_history(demande_id)


# ── Update ───────────────────────────────────────────────────────────────────


def update_demande(demande_id: str, fields: dict, context: ActorContext) -> Demande:
    """
    Edit actor-supplied content. The sequence number and the status are
    never touched here.

    Raises:
        NotFoundError, ValidationError (unknown/invalid field, or the
        demande is in a terminal status).
    """
    demande = get_demande(demande_id)

    unknown = set(fields) - set(_EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(
            "Only subject, description and priority can be edited",
            details={f: "not editable" for f in sorted(unknown)},
        )
    if demande.status_is_terminal:
        raise ValidationError(
            f"Demande {demande.sequence_number} is {demande.status_code} and can no longer be edited",
        )
    errors = _validate_content(fields)
    if errors:
        raise ValidationError("Invalid demande", details=errors)

    diff = {}
    for name in _EDITABLE_FIELDS:
        if name not in fields:
            continue
        new = fields[name].strip() if name != "priority" else fields[name]
        old = getattr(demande, name)
        if new != old:
            diff[name] = {"old": old, "new": new}
            setattr(demande, name, new)

    if diff:
        write_history(
            demande=demande,
            previous_status=demande.status,
            new_status=demande.status,
            action_type=ACTION_EDIT,
            actor=context.actor(),
            comment=context.comment,
            changed_fields=diff,
        )
        db.session.commit()
    return demande


def add_comment(demande_id: str, comment: str, context: ActorContext) -> HistoryEntry:
    demande = get_demande(demande_id)
    if not isinstance(comment, str) or not comment.strip():
        raise ValidationError("comment is required", details={"comment": "required"})
    entry = write_history(
        demande=demande,
        previous_status=demande.status,
        new_status=demande.status,
        action_type=ACTION_COMMENT,
        actor=context.actor(),
        comment=comment.strip(),
    )
    db.session.commit()
    return entry


def deactivate_demande(demande_id: str) -> Demande:
    """Soft delete: the demande leaves default listings but is kept."""
    demande = get_demande(demande_id)
    demande.soft_delete()
    db.session.commit()
    logger.info("Demande %s deactivated", demande.sequence_number)
    return demande


def restore_demande(demande_id: str) -> Demande:
    demande = get_demande(demande_id)
    demande.restore()
    db.session.commit()
    return demande


# ── Lifecycle ────────────────────────────────────────────────────────────────


def transition(demande_id: str, target_status: str, context: ActorContext, **kwargs) -> TransitionResult:
    """Load a demande and run one lifecycle transition on it."""
    demande = get_demande(demande_id)
    return DemandeWorkflow(demande, context, **kwargs).transition(target_status)
