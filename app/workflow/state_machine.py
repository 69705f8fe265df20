"""
Demande Lifecycle — Workflow Engine

Executes one status transition of a demande as a single unit of work:

  1. Path validation        (INVALID_TRANSITION)
  2. Permission validation  (PERMISSION_DENIED)
  3. Precondition checks    (PRECONDITION_FAILED)
  4. Field application      (rejection reason, comment, processor id)
  5. Status mutation + save
  6. History entry          (actor omitted for SYSTEM)
  7. Side effects           (processed_at stamp, notification, deferred
                             VALIDATED → PROCESSED auto-transition)

Steps 1–3 are pure validation: a refused transition leaves the demande,
the history and the notification log untouched. Notification failures are
logged and swallowed. Persistence errors propagate unchanged.

Usage:
    from app.workflow import ActorContext
    from app.workflow.state_machine import transition_demande

    result = transition_demande(
        demande,
        "REJECTED",
        ActorContext(role="ADMIN", user_id="u-1", rejection_reason="Missing documents ..."),
    )
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from flask import current_app

from app.core.exceptions import WorkflowError
from app.models import db
from app.models.demande import Demande
from app.models.history import ACTION_STATUS_CHANGE, HistoryEntry, write_history
from app.services.notification import NotificationService
from app.services.task_runner import DeferredTask, task_runner
from app.workflow.actors import SYSTEM_ACTOR, ActorContext
from app.workflow.constants import (
    ARCHIVE_STATUS,
    ENGINE_DEFAULT_ROLES,
    FIELD_DOCUMENTS,
    REQUIRED_FIELD_MESSAGES,
    TRANSITION_PERMISSIONS,
    TRANSITION_REQUIREMENTS,
    WORKFLOW_TRANSITIONS,
    DemandeStatus,
    allowed_next_statuses,
    get_requirements,
    is_terminal,
    is_transition_allowed,
    resolve_allowed_roles,
    transition_key,
)

logger = logging.getLogger(__name__)

DEFAULT_AUTO_PROCESS_DELAY = 0.1
AUTO_PROCESS_COMMENT = "Automatically processed after validation"


@dataclass
class TransitionResult:
    demande_id: str
    sequence_number: str
    previous_status: str
    new_status: str
    history_entry_id: int
    notification: dict | None = None
    auto_transition: DeferredTask | None = None

    def to_dict(self) -> dict:
        return {
            "demande_id": self.demande_id,
            "sequence_number": self.sequence_number,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "history_entry_id": self.history_entry_id,
            "notification": self.notification,
            "auto_transition_scheduled": self.auto_transition is not None,
        }


class DemandeWorkflow:
    """
    Lifecycle engine bound to one demande and one actor context.

    Collaborators (notifier, task runner) and the static tables are
    injectable so tests can substitute them without touching module state.
    """

    def __init__(
        self,
        demande: Demande,
        context: ActorContext | None = None,
        *,
        notifier=None,
        runner=None,
        transitions=WORKFLOW_TRANSITIONS,
        permissions=TRANSITION_PERMISSIONS,
        requirements=TRANSITION_REQUIREMENTS,
        auto_process_delay: float | None = None,
    ):
        self.demande = demande
        self.context = context or ActorContext()
        self.notifier = notifier or NotificationService
        self.runner = runner or task_runner
        self.transitions = transitions
        self.permissions = permissions
        self.requirements = requirements
        self.auto_process_delay = auto_process_delay

    # ── Public ────────────────────────────────────────────────────────────

    def transition(self, target: str) -> TransitionResult:
        """
        Execute ``current → target``.

        Raises:
            WorkflowError: INVALID_TRANSITION, PERMISSION_DENIED or
                PRECONDITION_FAILED, always before any mutation.
        """
        current = self.demande.status_code

        # 1–3. Validation (no side effects)
        self._validate_path(current, target)
        self._validate_permissions(current, target)
        self._validate_preconditions(current, target)

        # 4. Field application
        self._apply_fields(target)

        # 5–6. Status mutation + history, committed together
        entry = self._change_status(target, comment=self.context.comment, actor=self.context.actor())

        # 7. Side effects
        if target == DemandeStatus.PROCESSED:
            self.demande.processed_at = datetime.now(timezone.utc)
            db.session.commit()

        notification = self._notify()

        auto_task = None
        if target == DemandeStatus.VALIDATED:
            auto_task = self._schedule_auto_process()

        return TransitionResult(
            demande_id=self.demande.id,
            sequence_number=self.demande.sequence_number,
            previous_status=current,
            new_status=target,
            history_entry_id=entry.id,
            notification=notification,
            auto_transition=auto_task,
        )

    # ── Validation ────────────────────────────────────────────────────────

    def _validate_path(self, current: str, target: str) -> None:
        if is_transition_allowed(current, target, self.transitions):
            return
        allowed = allowed_next_statuses(current, self.transitions)
        raise WorkflowError(
            WorkflowError.INVALID_TRANSITION,
            f"Invalid transition: {current} → {target}. "
            f"Allowed transitions: {', '.join(allowed) or 'none'}",
            details={
                "current_status": current,
                "attempted_status": target,
                "allowed_transitions": allowed,
            },
        )

    def _validate_permissions(self, current: str, target: str) -> None:
        role = self.context.role
        if not role:
            raise WorkflowError(
                WorkflowError.PERMISSION_DENIED,
                "User role is required for transition validation",
            )

        allowed_roles = resolve_allowed_roles(
            current, target, default=ENGINE_DEFAULT_ROLES, permissions=self.permissions,
        )
        if role not in allowed_roles:
            raise WorkflowError(
                WorkflowError.PERMISSION_DENIED,
                f"Role {role} not allowed for transition {transition_key(current, target)}",
                details={"user_role": role, "required_roles": sorted(allowed_roles)},
            )

    def _validate_preconditions(self, current: str, target: str) -> None:
        reqs = get_requirements(target, self.requirements)
        for field in reqs.required:
            if field == FIELD_DOCUMENTS:
                present = bool(self.demande.documents)
            else:
                value = self.context.field_value(field)
                present = bool(value and str(value).strip())
            if not present:
                raise WorkflowError(
                    WorkflowError.PRECONDITION_FAILED,
                    REQUIRED_FIELD_MESSAGES.get(field, f"{field} is required for {target}"),
                    details={"field": field, "target_status": target},
                )

        # Independent of the graph: terminal demandes only ever get archived.
        if is_terminal(current) and target != ARCHIVE_STATUS:
            raise WorkflowError(
                WorkflowError.PRECONDITION_FAILED,
                "Cannot modify demandes in terminal state (except archiving)",
                details={"current_status": current, "attempted_status": target},
            )

    # ── Mutation ──────────────────────────────────────────────────────────

    def _apply_fields(self, target: str) -> None:
        """Copy supplied context fields onto the demande; never clear stored values."""
        ctx = self.context
        if ctx.rejection_reason:
            self.demande.rejection_reason = ctx.rejection_reason
        if ctx.comment:
            self.demande.admin_comment = ctx.comment
        if ctx.processor_id:
            self.demande.processed_by_id = ctx.processor_id

        # Validator becomes the processor unless one was designated.
        if target == DemandeStatus.VALIDATED and not self.demande.processed_by_id and ctx.user_id:
            self.demande.processed_by_id = ctx.user_id

    def _change_status(self, target: str, *, comment, actor) -> HistoryEntry:
        previous = dict(self.demande.status)
        self.demande.apply_status(target)
        db.session.add(self.demande)
        entry = write_history(
            demande=self.demande,
            previous_status=previous,
            new_status=self.demande.status,
            action_type=ACTION_STATUS_CHANGE,
            actor=actor,
            comment=comment,
        )
        db.session.commit()

        logger.info(
            "Demande %s: %s → %s (role=%s)",
            self.demande.sequence_number, previous["code"], target, self.context.role,
            extra={
                "demande_id": self.demande.id,
                "sequence_number": self.demande.sequence_number,
                "status": target,
            },
        )
        return entry

    # ── Side effects ──────────────────────────────────────────────────────

    def _notify(self) -> dict | None:
        """Best-effort status email. Never raises."""
        try:
            result = self.notifier.send_status_change_notification(self.demande)
        except Exception as exc:
            db.session.rollback()
            logger.error(
                "Error sending notification for %s: %s",
                self.demande.sequence_number, exc, exc_info=True,
            )
            return {"success": False, "error": str(exc)}

        if result and not result.get("success"):
            logger.warning(
                "Notification not delivered for %s: %s",
                self.demande.sequence_number, result.get("error"),
            )
        return result

    def _schedule_auto_process(self) -> DeferredTask:
        delay = self.auto_process_delay
        if delay is None:
            delay = current_app.config.get("AUTO_PROCESS_DELAY_SECONDS", DEFAULT_AUTO_PROCESS_DELAY)
        return self.runner.submit(
            f"auto_process:{self.demande.sequence_number}",
            run_auto_process,
            self.demande.id,
            notifier=self.notifier,
            delay=delay,
        )

    def auto_process(self) -> TransitionResult | None:
        """
        VALIDATED → PROCESSED performed by the engine itself.

        Skipped (returns None) when the demande left VALIDATED in the
        meantime, e.g. an administrator processed it by hand.
        """
        if self.demande.status_code != DemandeStatus.VALIDATED:
            logger.info(
                "Auto-process skipped for %s: status is %s",
                self.demande.sequence_number, self.demande.status_code,
            )
            return None

        self.demande.processed_at = datetime.now(timezone.utc)
        entry = self._change_status(
            DemandeStatus.PROCESSED, comment=AUTO_PROCESS_COMMENT, actor=SYSTEM_ACTOR,
        )
        notification = self._notify()
        return TransitionResult(
            demande_id=self.demande.id,
            sequence_number=self.demande.sequence_number,
            previous_status=DemandeStatus.VALIDATED,
            new_status=DemandeStatus.PROCESSED,
            history_entry_id=entry.id,
            notification=notification,
        )


def run_auto_process(demande_id: str, notifier=None) -> dict | None:
    """Deferred task body: reload the demande in a fresh session and process it."""
    demande = db.session.get(Demande, demande_id)
    if demande is None:
        logger.warning("Auto-process: demande %s no longer exists", demande_id)
        return None
    result = DemandeWorkflow(demande, ActorContext.system(), notifier=notifier).auto_process()
    return result.to_dict() if result else None


def transition_demande(
    demande: Demande,
    target: str,
    context: ActorContext,
    **kwargs,
) -> TransitionResult:
    """Functional entry point: ``DemandeWorkflow(demande, context).transition(target)``."""
    return DemandeWorkflow(demande, context, **kwargs).transition(target)

