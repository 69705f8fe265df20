"""
Transition query utilities: choice lists, role checks and the
non-throwing field validation used before a form is submitted.
"""

import pytest

from app.workflow.actors import ActorContext
from app.workflow.constants import TransitionRequirements
from app.workflow.utils import (
    can_role_transition,
    get_available_transitions,
    validate_transition_context,
)


class TestAvailableTransitions:

    def test_admin_in_progress(self):
        assert get_available_transitions("IN_PROGRESS", "ADMIN") == [
            "AWAITING_INFO", "VALIDATED", "REJECTED",
        ]

    def test_student_awaiting_info(self):
        assert get_available_transitions("AWAITING_INFO", "STUDENT") == ["IN_PROGRESS"]

    def test_student_received(self):
        assert get_available_transitions("RECEIVED", "STUDENT") == []

    def test_system_submitted(self):
        assert get_available_transitions("SUBMITTED", "SYSTEM") == ["RECEIVED"]
        assert get_available_transitions("SUBMITTED", "ADMIN") == []

    def test_archived_has_none(self):
        for role in ("STUDENT", "ADMIN", "SUPER_ADMIN", "SYSTEM"):
            assert get_available_transitions("ARCHIVED", role) == []

    def test_system_may_process_and_archive(self):
        assert get_available_transitions("VALIDATED", "SYSTEM") == ["PROCESSED"]
        assert get_available_transitions("REJECTED", "SYSTEM") == ["ARCHIVED"]


class TestCanRoleTransition:

    def test_explicit_entries(self):
        assert can_role_transition("AWAITING_INFO", "IN_PROGRESS", "STUDENT") is True
        assert can_role_transition("RECEIVED", "IN_PROGRESS", "STUDENT") is False
        assert can_role_transition("SUBMITTED", "RECEIVED", "ADMIN") is False

    def test_default_admits_system(self):
        # No permission entry for this pair: the query default includes SYSTEM.
        assert can_role_transition("IN_PROGRESS", "ARCHIVED", "SYSTEM") is True
        assert can_role_transition("IN_PROGRESS", "ARCHIVED", "ADMIN") is True
        assert can_role_transition("IN_PROGRESS", "ARCHIVED", "STUDENT") is False


class TestValidateTransitionContext:

    def test_reject_without_reason(self):
        result = validate_transition_context("REJECTED", {})
        assert result == {"valid": False, "errors": ["rejection_reason is required when rejecting"]}

    def test_reject_with_reason(self):
        assert validate_transition_context("REJECTED", {"rejection_reason": "Incomplete file"})["valid"]

    @pytest.mark.parametrize("payload", [
        {"admin_comment": "Send your ID"},
        {"comment": "Send your ID"},
        ActorContext(role="ADMIN", comment="Send your ID"),
    ])
    def test_awaiting_info_comment_forms(self, payload):
        assert validate_transition_context("AWAITING_INFO", payload) == {"valid": True, "errors": []}

    def test_awaiting_info_blank_comment(self):
        result = validate_transition_context("AWAITING_INFO", {"admin_comment": "  "})
        assert result["errors"] == ["admin_comment is required for AWAITING_INFO"]

    def test_context_object(self):
        result = validate_transition_context("REJECTED", ActorContext(role="ADMIN"))
        assert result["valid"] is False

    @pytest.mark.parametrize("target", ["IN_PROGRESS", "VALIDATED", "PROCESSED", "ARCHIVED"])
    def test_no_requirements(self, target):
        assert validate_transition_context(target, None) == {"valid": True, "errors": []}

    def test_substituted_requirements(self):
        reqs = {"VALIDATED": TransitionRequirements(required=("processor_id",))}
        result = validate_transition_context("VALIDATED", {}, requirements=reqs)
        assert result == {"valid": False, "errors": ["processor_id is required for VALIDATED"]}

        ctx = ActorContext(role="ADMIN", processor_id="adm-9")
        assert validate_transition_context("VALIDATED", ctx, requirements=reqs)["valid"]
        # Default table no longer applies once substituted
        assert validate_transition_context("REJECTED", {}, requirements=reqs)["valid"]

    def test_substituted_document_requirement(self):
        reqs = {"VALIDATED": TransitionRequirements(required=("documents",))}
        result = validate_transition_context("VALIDATED", {}, requirements=reqs)
        assert result["errors"] == ["documents is required for VALIDATED"]
        assert validate_transition_context("VALIDATED", {}, documents=["a.pdf"], requirements=reqs)["valid"]
        assert validate_transition_context("VALIDATED", {"documents": ["a.pdf"]}, requirements=reqs)["valid"]
