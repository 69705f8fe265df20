"""Demande blueprint — thin JSON adapter around the lifecycle engine.

Endpoint groups:
  Demandes        GET/POST /api/v1/demandes
                  GET/PUT/DELETE /api/v1/demandes/<id>
  Lifecycle       POST /api/v1/demandes/<id>/transition
                  GET  /api/v1/demandes/<id>/transitions?role=
  Audit           GET  /api/v1/demandes/<id>/history
                  POST /api/v1/demandes/<id>/comments
  Notifications   GET  /api/v1/demandes/<id>/notifications
                  GET  /api/v1/demandes/<id>/notifications/stats
                  POST /api/v1/demandes/<id>/send-email
                  POST /api/v1/notifications/<id>/retry

The acting user is supplied in the JSON body (``role``, ``user_id``,
``user_name``); authentication wiring lives outside this service.
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import app.services.demande_service as ds
from app.core.exceptions import NotFoundError, ValidationError, WorkflowError
from app.services.notification import NotificationService
from app.utils.errors import E, api_error
from app.workflow import ActorContext, get_available_transitions, validate_transition_context
from app.workflow.constants import ALL_ROLES, Role

logger = logging.getLogger(__name__)

demande_bp = Blueprint("demande", __name__, url_prefix="/api/v1")


# ── Error handlers ────────────────────────────────────────────────────────────


@demande_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@demande_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), details=error.details)


@demande_bp.errorhandler(WorkflowError)
def _handle_workflow(error: WorkflowError):
    return api_error(error.code, str(error), details=error.details)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _require_role(data: dict) -> tuple[str | None, tuple | None]:
    role = data.get("role")
    if role and (not isinstance(role, str) or role not in ALL_ROLES):
        return None, api_error(
            E.VALIDATION_INVALID, f"Unknown role: {role}",
            details={"role": f"one of {', '.join(sorted(ALL_ROLES))}"},
        )
    return role, None


def _require_status(data: dict) -> tuple[str | None, tuple | None]:
    new_status = data.get("new_status")
    if new_status is not None and not isinstance(new_status, str):
        return None, api_error(
            E.VALIDATION_INVALID, "new_status must be a string",
            details={"new_status": "must be a status code string"},
        )
    new_status = (new_status or "").strip()
    if not new_status:
        return None, api_error(E.VALIDATION_REQUIRED, "new_status is required")
    return new_status, None


# ═════════════════════════════════════════════════════════════════════════
# Demandes
# ═════════════════════════════════════════════════════════════════════════


@demande_bp.route("/demandes", methods=["GET"])
def list_demandes():
    """List demandes, newest first.

    Query params: student_id, status, priority, include_inactive, page, per_page
    """
    items, total = ds.list_demandes(
        student_id=request.args.get("student_id"),
        status=request.args.get("status"),
        priority=request.args.get("priority"),
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        page=request.args.get("page", 1, type=int),
        per_page=min(request.args.get("per_page", 20, type=int), 100),
    )
    return jsonify({"items": [d.to_dict(include_documents=False) for d in items], "total": total}), 200


@demande_bp.route("/demandes", methods=["POST"])
def create_demande():
    """Create a demande; it is received automatically.

    Body: {student: {...}, request_type, subject, description, priority?, documents?}
    """
    data = _json_body()
    demande = ds.create_demande(
        student=data.get("student") or {},
        request_type=data.get("request_type"),
        subject=data.get("subject"),
        description=data.get("description"),
        priority=data.get("priority") or "NORMAL",
        documents=data.get("documents"),
        metadata=data.get("metadata"),
    )
    return jsonify(demande.to_dict()), 201


@demande_bp.route("/demandes/<demande_id>", methods=["GET"])
def get_demande(demande_id):
    return jsonify(ds.get_demande(demande_id).to_dict()), 200


@demande_bp.route("/demandes/<demande_id>", methods=["PUT"])
def update_demande(demande_id):
    """Body: {subject?, description?, priority?, role, user_id?, comment?}"""
    data = _json_body()
    _, err = _require_role(data)
    if err:
        return err
    fields = {k: data[k] for k in ("subject", "description", "priority") if k in data}
    demande = ds.update_demande(demande_id, fields, ActorContext.from_dict(data))
    return jsonify(demande.to_dict()), 200


@demande_bp.route("/demandes/<demande_id>", methods=["DELETE"])
def delete_demande(demande_id):
    """Soft delete."""
    demande = ds.deactivate_demande(demande_id)
    return jsonify({"id": demande.id, "is_active": demande.is_active}), 200


# ═════════════════════════════════════════════════════════════════════════
# Lifecycle
# ═════════════════════════════════════════════════════════════════════════


@demande_bp.route("/demandes/<demande_id>/transition", methods=["POST"])
def transition_demande(demande_id):
    """Move a demande to a new status.

    Body: {new_status, role, user_id?, user_name?, comment?, rejection_reason?, processor_id?}
    Returns: transition summary + updated demande.
    """
    data = _json_body()
    new_status, err = _require_status(data)
    if err:
        return err
    _, err = _require_role(data)
    if err:
        return err

    result = ds.transition(demande_id, new_status, ActorContext.from_dict(data))
    body = result.to_dict()
    body["demande"] = ds.get_demande(demande_id).to_dict()
    return jsonify(body), 200


@demande_bp.route("/demandes/<demande_id>/transitions", methods=["GET"])
def available_transitions(demande_id):
    """Statuses the given role may move this demande to.

    Query params: role (required)
    """
    role = request.args.get("role")
    if not role:
        return api_error(E.VALIDATION_REQUIRED, "role is required")
    demande = ds.get_demande(demande_id)
    return jsonify({
        "current_status": demande.status_code,
        "role": role,
        "available_transitions": get_available_transitions(demande.status_code, role),
    }), 200


@demande_bp.route("/demandes/validate-transition", methods=["POST"])
def validate_transition():
    """Pre-submission field check. Body: {new_status, rejection_reason?, admin_comment?}"""
    data = _json_body()
    new_status, err = _require_status(data)
    if err:
        return err
    return jsonify(validate_transition_context(new_status, data)), 200


# ═════════════════════════════════════════════════════════════════════════
# Audit
# ═════════════════════════════════════════════════════════════════════════


@demande_bp.route("/demandes/<demande_id>/history", methods=["GET"])
def demande_history(demande_id):
    entries = ds.get_history(demande_id)
    return jsonify({"items": [e.to_dict() for e in entries], "total": len(entries)}), 200


@demande_bp.route("/demandes/<demande_id>/comments", methods=["POST"])
def add_comment(demande_id):
    """Body: {comment, role, user_id?, user_name?}"""
    data = _json_body()
    _, err = _require_role(data)
    if err:
        return err
    entry = ds.add_comment(demande_id, data.get("comment") or "", ActorContext.from_dict(data))
    return jsonify(entry.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Notifications
# ═════════════════════════════════════════════════════════════════════════


@demande_bp.route("/demandes/<demande_id>/notifications", methods=["GET"])
def list_notifications(demande_id):
    ds.get_demande(demande_id)
    items = NotificationService.list_for_demande(demande_id)
    return jsonify({"items": [n.to_dict() for n in items], "total": len(items)}), 200


@demande_bp.route("/demandes/<demande_id>/notifications/stats", methods=["GET"])
def notification_stats(demande_id):
    ds.get_demande(demande_id)
    return jsonify(NotificationService.get_notification_stats(demande_id)), 200


@demande_bp.route("/demandes/<demande_id>/send-email", methods=["POST"])
def send_email(demande_id):
    """Manually email the student (administrators only).

    Body: {type: "status" | "custom", subject?, message?, role, user_id?}
      status  re-sends the email of the current status
      custom  sends ``subject`` / ``message`` as written
    Delivery failures answer 502 with the recorded notification id.
    """
    data = _json_body()
    role, err = _require_role(data)
    if err:
        return err
    if role not in (Role.ADMIN, Role.SUPER_ADMIN):
        return api_error(
            E.PERMISSION_DENIED, "Only administrators can send emails",
            details={"user_role": role, "required_roles": [Role.ADMIN, Role.SUPER_ADMIN]},
        )

    demande = ds.get_demande(demande_id)
    email_type = data.get("type")
    if email_type == "status":
        result = NotificationService.send_status_change_notification(demande)
    elif email_type == "custom":
        result = NotificationService.send_custom_notification(demande, data.get("subject"), data.get("message"))
    else:
        return api_error(E.VALIDATION_INVALID, "type must be 'status' or 'custom'",
                         details={"type": "one of status, custom"})

    if result["success"]:
        logger.info("Manual %s email for %s sent by %s", email_type, demande.sequence_number,
                    data.get("user_id"), extra={"demande_id": demande.id,
                                                "sequence_number": demande.sequence_number})
        return jsonify(result), 200
    if "notification_id" in result:
        return api_error(E.DELIVERY_FAILED, result["error"],
                         details={"notification_id": result["notification_id"]})
    return api_error(E.VALIDATION_INVALID, result["error"])


@demande_bp.route("/notifications/<int:notification_id>/retry", methods=["POST"])
def retry_notification(notification_id):
    result = NotificationService.retry_notification(notification_id)
    if not result["success"] and result.get("error") == "Notification not found":
        return api_error(E.NOT_FOUND, result["error"])
    return jsonify(result), 200
