"""
Status catalog, transition graph, permission table and field requirements.

Pure data tests: no database access.
"""

import pytest

from app.workflow.constants import (
    ALL_STATUSES,
    ENGINE_DEFAULT_ROLES,
    QUERY_DEFAULT_ROLES,
    STATUS_CATALOG,
    TRANSITION_PERMISSIONS,
    TRANSITION_REQUIREMENTS,
    WORKFLOW_TRANSITIONS,
    DemandeStatus,
    Role,
    UnknownStatusError,
    allowed_next_statuses,
    get_requirements,
    get_status_meta,
    is_terminal,
    is_transition_allowed,
    resolve_allowed_roles,
    transition_key,
)

EXPECTED_EDGES = {
    ("SUBMITTED", "RECEIVED"),
    ("RECEIVED", "IN_PROGRESS"),
    ("RECEIVED", "REJECTED"),
    ("IN_PROGRESS", "AWAITING_INFO"),
    ("IN_PROGRESS", "VALIDATED"),
    ("IN_PROGRESS", "REJECTED"),
    ("AWAITING_INFO", "IN_PROGRESS"),
    ("AWAITING_INFO", "REJECTED"),
    ("VALIDATED", "PROCESSED"),
    ("REJECTED", "ARCHIVED"),
    ("PROCESSED", "ARCHIVED"),
}


class TestStatusCatalog:

    def test_catalog_has_eight_statuses(self):
        assert set(STATUS_CATALOG) == set(ALL_STATUSES)
        assert len(ALL_STATUSES) == 8

    def test_meta_code_matches_key(self):
        for code, meta in STATUS_CATALOG.items():
            assert meta.code == code
            assert meta.label
            assert meta.color.startswith("#")

    @pytest.mark.parametrize("code", ["REJECTED", "PROCESSED", "ARCHIVED"])
    def test_terminal_statuses(self, code):
        assert is_terminal(code) is True

    @pytest.mark.parametrize(
        "code", ["SUBMITTED", "RECEIVED", "IN_PROGRESS", "AWAITING_INFO", "VALIDATED"],
    )
    def test_non_terminal_statuses(self, code):
        assert is_terminal(code) is False

    def test_unknown_status_fails_fast(self):
        with pytest.raises(UnknownStatusError):
            get_status_meta("LOST")
        with pytest.raises(KeyError):
            is_terminal("LOST")

    def test_snapshot_is_full_tuple(self):
        snap = get_status_meta(DemandeStatus.VALIDATED).snapshot()
        assert snap == {
            "code": "VALIDATED",
            "label": "Validated",
            "color": "#10B981",
            "is_terminal": False,
        }

    def test_catalog_is_read_only(self):
        with pytest.raises(TypeError):
            STATUS_CATALOG["NEW"] = None


class TestTransitionGraph:

    def test_edges(self):
        edges = {(src, dst) for src, targets in WORKFLOW_TRANSITIONS.items() for dst in targets}
        assert edges == EXPECTED_EDGES

    def test_every_status_has_an_entry(self):
        assert set(WORKFLOW_TRANSITIONS) == set(ALL_STATUSES)

    def test_archived_has_no_outgoing_edge(self):
        assert allowed_next_statuses(DemandeStatus.ARCHIVED) == []

    def test_unknown_source_has_no_outgoing_edge(self):
        assert allowed_next_statuses("LOST") == []
        assert is_transition_allowed("LOST", "RECEIVED") is False

    def test_allowed_next_statuses_preserves_order(self):
        assert allowed_next_statuses(DemandeStatus.IN_PROGRESS) == [
            "AWAITING_INFO", "VALIDATED", "REJECTED",
        ]

    def test_allowed_next_statuses_returns_a_copy(self):
        nxt = allowed_next_statuses(DemandeStatus.RECEIVED)
        nxt.append("ARCHIVED")
        assert allowed_next_statuses(DemandeStatus.RECEIVED) == ["IN_PROGRESS", "REJECTED"]

    @pytest.mark.parametrize("terminal", ["REJECTED", "PROCESSED"])
    def test_terminal_statuses_only_lead_to_archive(self, terminal):
        assert allowed_next_statuses(terminal) == ["ARCHIVED"]

    def test_substitute_graph(self):
        graph = {"A": ("B",)}
        assert is_transition_allowed("A", "B", graph)
        assert not is_transition_allowed("B", "A", graph)


class TestPermissions:

    def test_every_edge_has_an_explicit_entry(self):
        assert set(TRANSITION_PERMISSIONS) == EXPECTED_EDGES

    def test_intake_is_system_only(self):
        assert resolve_allowed_roles("SUBMITTED", "RECEIVED") == {Role.SYSTEM}

    def test_student_may_answer_information_request(self):
        assert Role.STUDENT in resolve_allowed_roles("AWAITING_INFO", "IN_PROGRESS")

    def test_student_has_no_other_edge(self):
        for edge, roles in TRANSITION_PERMISSIONS.items():
            if edge != ("AWAITING_INFO", "IN_PROGRESS"):
                assert Role.STUDENT not in roles, edge

    def test_defaults_differ_only_by_system(self):
        assert QUERY_DEFAULT_ROLES - ENGINE_DEFAULT_ROLES == {Role.SYSTEM}

    def test_default_applies_to_unlisted_pair(self):
        assert resolve_allowed_roles("X", "Y") == ENGINE_DEFAULT_ROLES
        assert resolve_allowed_roles("X", "Y", default=QUERY_DEFAULT_ROLES) == QUERY_DEFAULT_ROLES

    def test_transition_key(self):
        assert transition_key("RECEIVED", "IN_PROGRESS") == "RECEIVED->IN_PROGRESS"


class TestRequirements:

    def test_rejected_requires_reason(self):
        reqs = get_requirements(DemandeStatus.REJECTED)
        assert reqs.required == ("rejection_reason",)
        assert "admin_comment" in reqs.optional

    def test_awaiting_info_requires_comment(self):
        assert get_requirements(DemandeStatus.AWAITING_INFO).required == ("admin_comment",)

    @pytest.mark.parametrize("target", ["IN_PROGRESS", "VALIDATED", "PROCESSED", "ARCHIVED"])
    def test_no_required_fields(self, target):
        assert get_requirements(target).required == ()

    def test_documents_never_required(self):
        for reqs in TRANSITION_REQUIREMENTS.values():
            assert "documents" not in reqs.required
