"""
Demande Lifecycle — Status Catalog & Transition Graph

Static, read-only configuration of the request lifecycle:

  - STATUS_CATALOG:          status code → display metadata + terminal flag
  - WORKFLOW_TRANSITIONS:    status → allowed next statuses (directed graph)
  - TRANSITION_PERMISSIONS:  (from, to) → roles allowed to perform the move
  - TRANSITION_REQUIREMENTS: destination status → required / optional fields

8 statuses, 11 edges:

    SUBMITTED     → RECEIVED
    RECEIVED      → IN_PROGRESS | REJECTED
    IN_PROGRESS   → AWAITING_INFO | VALIDATED | REJECTED
    AWAITING_INFO → IN_PROGRESS | REJECTED
    VALIDATED     → PROCESSED
    REJECTED      → ARCHIVED
    PROCESSED     → ARCHIVED
    ARCHIVED      → (terminal)

All tables are frozen at import time (MappingProxyType / frozenset / tuple).
Tests substitute them by passing alternate tables to the engine, never by
mutating these.
"""

from dataclasses import dataclass
from types import MappingProxyType


# ── Codes ────────────────────────────────────────────────────────────────────


class DemandeStatus:
    """Lifecycle status codes."""

    SUBMITTED = "SUBMITTED"
    RECEIVED = "RECEIVED"
    IN_PROGRESS = "IN_PROGRESS"
    AWAITING_INFO = "AWAITING_INFO"
    VALIDATED = "VALIDATED"
    REJECTED = "REJECTED"
    PROCESSED = "PROCESSED"
    ARCHIVED = "ARCHIVED"


class Role:
    """Actor roles. ``SYSTEM`` is synthetic and used for automated moves."""

    STUDENT = "STUDENT"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"
    SYSTEM = "SYSTEM"


ALL_STATUSES = (
    DemandeStatus.SUBMITTED,
    DemandeStatus.RECEIVED,
    DemandeStatus.IN_PROGRESS,
    DemandeStatus.AWAITING_INFO,
    DemandeStatus.VALIDATED,
    DemandeStatus.REJECTED,
    DemandeStatus.PROCESSED,
    DemandeStatus.ARCHIVED,
)

ALL_ROLES = frozenset({Role.STUDENT, Role.ADMIN, Role.SUPER_ADMIN, Role.SYSTEM})

ARCHIVE_STATUS = DemandeStatus.ARCHIVED


# ── Status Catalog ───────────────────────────────────────────────────────────


class UnknownStatusError(KeyError):
    """Raised when a status code is not part of the catalog."""

    def __init__(self, code):
        super().__init__(f"Unknown demande status: {code!r}")
        self.code = code


@dataclass(frozen=True)
class StatusMeta:
    code: str
    label: str
    color: str
    is_terminal: bool
    description: str = ""

    def snapshot(self) -> dict:
        """Full tagged value as stored on a request."""
        return {
            "code": self.code,
            "label": self.label,
            "color": self.color,
            "is_terminal": self.is_terminal,
        }


STATUS_CATALOG = MappingProxyType({
    DemandeStatus.SUBMITTED: StatusMeta(
        DemandeStatus.SUBMITTED, "Submitted", "#6B7280", False,
        "Request has just been submitted",
    ),
    DemandeStatus.RECEIVED: StatusMeta(
        DemandeStatus.RECEIVED, "Received", "#3B82F6", False,
        "Request received by the administration",
    ),
    DemandeStatus.IN_PROGRESS: StatusMeta(
        DemandeStatus.IN_PROGRESS, "In progress", "#F59E0B", False,
        "Request is being processed",
    ),
    DemandeStatus.AWAITING_INFO: StatusMeta(
        DemandeStatus.AWAITING_INFO, "Awaiting information", "#F59E0B", False,
        "Additional information required from the student",
    ),
    DemandeStatus.VALIDATED: StatusMeta(
        DemandeStatus.VALIDATED, "Validated", "#10B981", False,
        "Request validated by the administration",
    ),
    DemandeStatus.REJECTED: StatusMeta(
        DemandeStatus.REJECTED, "Rejected", "#EF4444", True,
        "Request rejected",
    ),
    DemandeStatus.PROCESSED: StatusMeta(
        DemandeStatus.PROCESSED, "Processed", "#059669", True,
        "Request processed successfully",
    ),
    DemandeStatus.ARCHIVED: StatusMeta(
        DemandeStatus.ARCHIVED, "Archived", "#6B7280", True,
        "Request archived",
    ),
})


def get_status_meta(code: str, catalog=STATUS_CATALOG) -> StatusMeta:
    """Look up catalog metadata; unknown codes fail fast."""
    try:
        return catalog[code]
    except KeyError:
        raise UnknownStatusError(code) from None


def is_terminal(code: str, catalog=STATUS_CATALOG) -> bool:
    return get_status_meta(code, catalog).is_terminal


# ── Transition Graph ─────────────────────────────────────────────────────────

WORKFLOW_TRANSITIONS = MappingProxyType({
    DemandeStatus.SUBMITTED:     (DemandeStatus.RECEIVED,),
    DemandeStatus.RECEIVED:      (DemandeStatus.IN_PROGRESS, DemandeStatus.REJECTED),
    DemandeStatus.IN_PROGRESS:   (DemandeStatus.AWAITING_INFO, DemandeStatus.VALIDATED,
                                  DemandeStatus.REJECTED),
    DemandeStatus.AWAITING_INFO: (DemandeStatus.IN_PROGRESS, DemandeStatus.REJECTED),
    DemandeStatus.VALIDATED:     (DemandeStatus.PROCESSED,),
    DemandeStatus.REJECTED:      (DemandeStatus.ARCHIVED,),
    DemandeStatus.PROCESSED:     (DemandeStatus.ARCHIVED,),
    DemandeStatus.ARCHIVED:      (),
})


def allowed_next_statuses(from_status: str, transitions=WORKFLOW_TRANSITIONS) -> list[str]:
    """Statically configured outgoing edges for ``from_status``."""
    return list(transitions.get(from_status, ()))


def is_transition_allowed(from_status: str, to_status: str,
                          transitions=WORKFLOW_TRANSITIONS) -> bool:
    return to_status in transitions.get(from_status, ())


# ── Permissions ──────────────────────────────────────────────────────────────

_STAFF = frozenset({Role.ADMIN, Role.SUPER_ADMIN})
_STAFF_OR_SYSTEM = frozenset({Role.SYSTEM, Role.ADMIN, Role.SUPER_ADMIN})

# Roles granted on edges without an explicit entry.
ENGINE_DEFAULT_ROLES = _STAFF
QUERY_DEFAULT_ROLES = _STAFF_OR_SYSTEM

TRANSITION_PERMISSIONS = MappingProxyType({
    (DemandeStatus.SUBMITTED, DemandeStatus.RECEIVED):        frozenset({Role.SYSTEM}),
    (DemandeStatus.RECEIVED, DemandeStatus.IN_PROGRESS):      _STAFF,
    (DemandeStatus.RECEIVED, DemandeStatus.REJECTED):         _STAFF,
    (DemandeStatus.IN_PROGRESS, DemandeStatus.AWAITING_INFO): _STAFF,
    (DemandeStatus.IN_PROGRESS, DemandeStatus.VALIDATED):     _STAFF,
    (DemandeStatus.IN_PROGRESS, DemandeStatus.REJECTED):      _STAFF,
    (DemandeStatus.AWAITING_INFO, DemandeStatus.IN_PROGRESS): frozenset(
        {Role.STUDENT, Role.ADMIN, Role.SUPER_ADMIN}
    ),
    (DemandeStatus.AWAITING_INFO, DemandeStatus.REJECTED):    _STAFF,
    (DemandeStatus.VALIDATED, DemandeStatus.PROCESSED):       _STAFF_OR_SYSTEM,
    (DemandeStatus.PROCESSED, DemandeStatus.ARCHIVED):        _STAFF_OR_SYSTEM,
    (DemandeStatus.REJECTED, DemandeStatus.ARCHIVED):         _STAFF_OR_SYSTEM,
})


def transition_key(from_status: str, to_status: str) -> str:
    """Human-readable ``"FROM->TO"`` label used in messages and logs."""
    return f"{from_status}->{to_status}"


def resolve_allowed_roles(
    from_status: str,
    to_status: str,
    *,
    default: frozenset = ENGINE_DEFAULT_ROLES,
    permissions=TRANSITION_PERMISSIONS,
) -> frozenset:
    """
    Roles allowed to move ``from_status → to_status``.

    Explicit table entry wins; otherwise ``default``. The engine passes
    ENGINE_DEFAULT_ROLES and the query utility ``can_role_transition``
    passes QUERY_DEFAULT_ROLES.
    """
    return permissions.get((from_status, to_status), default)


# ── Field requirements ───────────────────────────────────────────────────────

FIELD_REJECTION_REASON = "rejection_reason"
FIELD_ADMIN_COMMENT = "admin_comment"
FIELD_PROCESSOR_ID = "processor_id"
FIELD_DOCUMENTS = "documents"


@dataclass(frozen=True)
class TransitionRequirements:
    required: tuple = ()
    optional: tuple = ()


TRANSITION_REQUIREMENTS = MappingProxyType({
    DemandeStatus.REJECTED: TransitionRequirements(
        required=(FIELD_REJECTION_REASON,),
        optional=(FIELD_ADMIN_COMMENT,),
    ),
    DemandeStatus.AWAITING_INFO: TransitionRequirements(
        required=(FIELD_ADMIN_COMMENT,),
    ),
    DemandeStatus.IN_PROGRESS: TransitionRequirements(
        optional=(FIELD_PROCESSOR_ID, FIELD_ADMIN_COMMENT),
    ),
    DemandeStatus.VALIDATED: TransitionRequirements(
        optional=(FIELD_DOCUMENTS,),
    ),
})

REQUIRED_FIELD_MESSAGES = MappingProxyType({
    FIELD_REJECTION_REASON: "A rejection reason is required to reject a demande",
    FIELD_ADMIN_COMMENT: "An administrator comment is required for this transition",
    FIELD_DOCUMENTS: "At least one document is required for this transition",
})


def get_requirements(to_status: str, requirements=TRANSITION_REQUIREMENTS) -> TransitionRequirements:
    return requirements.get(to_status, TransitionRequirements())
