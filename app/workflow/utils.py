"""
Demande Lifecycle — Transition Query Utilities

Read-only helpers used to build caller-facing choice lists and to
pre-validate a form before it is submitted. Nothing here mutates a demande.
"""

from app.workflow.actors import ActorContext
from app.workflow.constants import (
    ENGINE_DEFAULT_ROLES,
    FIELD_ADMIN_COMMENT,
    FIELD_DOCUMENTS,
    FIELD_REJECTION_REASON,
    QUERY_DEFAULT_ROLES,
    TRANSITION_REQUIREMENTS,
    allowed_next_statuses,
    get_requirements,
    resolve_allowed_roles,
)

# Form-level wording; fields absent here use "<field> is required for <target>".
_FORM_MESSAGES = {
    FIELD_REJECTION_REASON: "rejection_reason is required when rejecting",
    FIELD_ADMIN_COMMENT: "admin_comment is required for {target}",
}


def get_available_transitions(current_status: str, role: str) -> list[str]:
    """Next statuses ``role`` may move a demande to, using the engine's rule."""
    return [
        next_status
        for next_status in allowed_next_statuses(current_status)
        if role in resolve_allowed_roles(current_status, next_status, default=ENGINE_DEFAULT_ROLES)
    ]


def can_role_transition(from_status: str, to_status: str, role: str) -> bool:
    """
    Whether ``role`` may perform ``from_status → to_status``.

    Unlike the engine, an edge without an explicit permission entry also
    admits SYSTEM here, since callers may represent automated actors.
    Does not check that the edge exists in the graph.
    """
    return role in resolve_allowed_roles(from_status, to_status, default=QUERY_DEFAULT_ROLES)


def validate_transition_context(
    target_status: str,
    context,
    *,
    documents=None,
    requirements=TRANSITION_REQUIREMENTS,
) -> dict:
    """
    Non-throwing field check for ``target_status``.

    Reads the same requirement table as the engine. ``context`` may be an
    ActorContext or a plain dict using either the context keys (``comment``)
    or the demande field names (``admin_comment``). ``documents`` stands in
    for the demande's attachments when the target requires them.

    Returns:
        {"valid": bool, "errors": [str, ...]}
    """
    if isinstance(context, ActorContext):
        lookup = context.field_value
    else:
        payload = context or {}

        def lookup(field):
            if field == FIELD_ADMIN_COMMENT:
                return payload.get(FIELD_ADMIN_COMMENT) or payload.get("comment")
            return payload.get(field)

    errors = []
    for field in get_requirements(target_status, requirements).required:
        if field == FIELD_DOCUMENTS:
            present = bool(documents if documents is not None else lookup(field))
        else:
            present = _filled(lookup(field))
        if not present:
            errors.append(_FORM_MESSAGES.get(field, "{field} is required for {target}").format(
                field=field, target=target_status,
            ))

    return {"valid": not errors, "errors": errors}


def _filled(value) -> bool:
    return bool(value and str(value).strip())
