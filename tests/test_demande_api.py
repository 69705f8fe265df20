"""
Demande JSON API tests — CRUD, lifecycle endpoint and error envelope:
  - INVALID_TRANSITION / PRECONDITION_FAILED → 400
  - PERMISSION_DENIED → 403
  - unknown demande → 404
"""

import pytest

from app.models import db
from app.services.email_service import EmailService
from app.services.task_runner import task_runner

BASE = "/api/v1/demandes"


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════


def _create(client, student, **extra):
    payload = {
        "student": student,
        "request_type": "SUCCESS_CERTIFICATE",
        "subject": "Certificate of success",
        "description": "Needed for a master's application.",
        **extra,
    }
    r = client.post(BASE, json=payload)
    assert r.status_code == 201, r.get_json()
    return r.get_json()


def _transition(client, demande_id, new_status, role="ADMIN", **extra):
    payload = {"new_status": new_status, "role": role, "user_id": "adm-1", "user_name": "Admin One", **extra}
    return client.post(f"{BASE}/{demande_id}/transition", json=payload)


@pytest.fixture()
def created(client, student):
    return _create(client, student)


# ═══════════════════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════════════════


class TestCrud:

    def test_create(self, created):
        assert created["status"]["code"] == "RECEIVED"
        assert created["status"]["label"] == "Received"
        assert created["sequence_number"].startswith("DEM-")
        assert created["request_type"] == {
            "code": "SUCCESS_CERTIFICATE", "name": "Certificate of success", "processing_days": 5,
        }
        assert created["documents"] == []

    def test_create_invalid(self, client, student):
        r = client.post(BASE, json={"student": student, "request_type": "NOPE", "subject": "", "description": "x"})
        assert r.status_code == 400
        body = r.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert set(body["details"]) == {"request_type", "subject"}

    def test_create_requires_json(self, client):
        r = client.post(BASE, data="subject=x", content_type="text/plain")
        assert r.status_code == 415

    def test_get(self, client, created):
        r = client.get(f"{BASE}/{created['id']}")
        assert r.status_code == 200
        assert r.get_json()["id"] == created["id"]

    def test_get_unknown(self, client):
        r = client.get(f"{BASE}/does-not-exist")
        assert r.status_code == 404
        assert r.get_json()["code"] == "ERR_NOT_FOUND"

    def test_list(self, client, student):
        _create(client, student)
        _create(client, student, priority="URGENT")
        r = client.get(BASE)
        assert r.status_code == 200
        assert r.get_json()["total"] == 2

        r = client.get(f"{BASE}?priority=URGENT")
        assert r.get_json()["total"] == 1
        assert "documents" not in r.get_json()["items"][0]

    def test_update(self, client, created):
        r = client.put(f"{BASE}/{created['id']}", json={"priority": "HIGH", "role": "ADMIN", "user_id": "adm-1"})
        assert r.status_code == 200
        assert r.get_json()["priority"] == "HIGH"

    def test_create_wrongly_typed_subject(self, client, student):
        r = client.post(BASE, json={
            "student": student, "request_type": "TRANSCRIPT", "subject": 5, "description": "x",
        })
        assert r.status_code == 400
        assert r.get_json()["details"] == {"subject": "subject must be a string"}

    def test_create_document_without_url(self, client, student):
        r = client.post(BASE, json={
            "student": student, "request_type": "TRANSCRIPT", "subject": "Transcript",
            "description": "For my file.",
            "documents": [{"filename": "a.pdf", "mime_type": "application/pdf"}],
        })
        assert r.status_code == 400
        assert r.get_json()["code"] == "ERR_VALIDATION_INVALID"
        assert r.get_json()["details"] == {"documents[0]": "missing or invalid fields: url"}
        assert client.get(BASE).get_json()["total"] == 0

    def test_create_non_object_body(self, client):
        r = client.post(BASE, json=["not", "an", "object"])
        assert r.status_code == 400
        assert r.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_update_null_subject(self, client, created):
        r = client.put(f"{BASE}/{created['id']}", json={"subject": None, "role": "ADMIN", "user_id": "adm-1"})
        assert r.status_code == 400
        assert r.get_json()["details"] == {"subject": "subject is required"}
        assert client.get(f"{BASE}/{created['id']}").get_json()["subject"] == created["subject"]

    def test_update_unknown_role(self, client, created):
        r = client.put(f"{BASE}/{created['id']}", json={"priority": "HIGH", "role": "DEAN"})
        assert r.status_code == 400

    def test_delete_is_soft(self, client, created):
        r = client.delete(f"{BASE}/{created['id']}")
        assert r.status_code == 200
        assert r.get_json()["is_active"] is False

        assert client.get(BASE).get_json()["total"] == 0
        assert client.get(f"{BASE}?include_inactive=true").get_json()["total"] == 1
        assert client.get(f"{BASE}/{created['id']}").status_code == 200


# ═══════════════════════════════════════════════════════════════════════════
# Lifecycle
# ═══════════════════════════════════════════════════════════════════════════


class TestTransitionEndpoint:

    def test_success(self, client, created):
        r = _transition(client, created["id"], "IN_PROGRESS", processor_id="adm-9")
        assert r.status_code == 200
        body = r.get_json()
        assert body["previous_status"] == "RECEIVED"
        assert body["new_status"] == "IN_PROGRESS"
        assert body["notification"]["success"] is True
        assert body["auto_transition_scheduled"] is False
        assert body["demande"]["processed_by_id"] == "adm-9"

    def test_invalid_transition(self, client, created):
        r = _transition(client, created["id"], "PROCESSED")
        assert r.status_code == 400
        body = r.get_json()
        assert body["code"] == "INVALID_TRANSITION"
        assert body["details"]["allowed_transitions"] == ["IN_PROGRESS", "REJECTED"]

    def test_permission_denied(self, client, created):
        r = _transition(client, created["id"], "IN_PROGRESS", role="STUDENT")
        assert r.status_code == 403
        assert r.get_json()["code"] == "PERMISSION_DENIED"

    def test_missing_role(self, client, created):
        r = client.post(f"{BASE}/{created['id']}/transition", json={"new_status": "IN_PROGRESS"})
        assert r.status_code == 403

    def test_precondition_failed(self, client, created):
        r = _transition(client, created["id"], "REJECTED")
        assert r.status_code == 400
        assert r.get_json()["code"] == "PRECONDITION_FAILED"

        r = _transition(client, created["id"], "REJECTED", rejection_reason="Grades not yet published")
        assert r.status_code == 200
        assert r.get_json()["demande"]["rejection_reason"] == "Grades not yet published"

    def test_admin_comment_alias(self, client, created):
        _transition(client, created["id"], "IN_PROGRESS")
        r = _transition(client, created["id"], "AWAITING_INFO", admin_comment="Send your ID card")
        assert r.status_code == 200
        assert r.get_json()["demande"]["admin_comment"] == "Send your ID card"

    def test_new_status_required(self, client, created):
        r = client.post(f"{BASE}/{created['id']}/transition", json={"role": "ADMIN"})
        assert r.status_code == 400
        assert r.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    @pytest.mark.parametrize("new_status", [5, ["IN_PROGRESS"], {"code": "IN_PROGRESS"}])
    def test_new_status_must_be_string(self, client, created, new_status):
        r = _transition(client, created["id"], new_status)
        assert r.status_code == 400
        assert r.get_json()["code"] == "ERR_VALIDATION_INVALID"

        r = client.post(f"{BASE}/validate-transition", json={"new_status": new_status})
        assert r.status_code == 400

    def test_role_must_be_string(self, client, created):
        r = _transition(client, created["id"], "IN_PROGRESS", role=["ADMIN"])
        assert r.status_code == 400
        assert r.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_unknown_demande(self, client):
        r = _transition(client, "does-not-exist", "IN_PROGRESS")
        assert r.status_code == 404

    def test_validation_leads_to_processing(self, client, created):
        _transition(client, created["id"], "IN_PROGRESS")
        r = _transition(client, created["id"], "VALIDATED")
        assert r.status_code == 200
        assert r.get_json()["auto_transition_scheduled"] is True

        assert task_runner.wait_all(timeout=10)
        db.session.expire_all()

        body = client.get(f"{BASE}/{created['id']}").get_json()
        assert body["status"]["code"] == "PROCESSED"
        assert body["processed_at"] is not None
        assert body["processed_by_id"] == "adm-1"

        history = client.get(f"{BASE}/{created['id']}/history").get_json()["items"]
        assert [h["new_status"]["code"] for h in history][-2:] == ["VALIDATED", "PROCESSED"]
        assert "actor" in history[-2]
        assert "actor" not in history[-1]

    def test_available_transitions(self, client, created):
        r = client.get(f"{BASE}/{created['id']}/transitions?role=ADMIN")
        assert r.status_code == 200
        assert r.get_json() == {
            "current_status": "RECEIVED",
            "role": "ADMIN",
            "available_transitions": ["IN_PROGRESS", "REJECTED"],
        }
        r = client.get(f"{BASE}/{created['id']}/transitions?role=STUDENT")
        assert r.get_json()["available_transitions"] == []

    def test_available_transitions_requires_role(self, client, created):
        r = client.get(f"{BASE}/{created['id']}/transitions")
        assert r.status_code == 400

    def test_validate_transition(self, client):
        r = client.post(f"{BASE}/validate-transition", json={"new_status": "AWAITING_INFO"})
        assert r.status_code == 200
        assert r.get_json() == {"valid": False, "errors": ["admin_comment is required for AWAITING_INFO"]}


# ═══════════════════════════════════════════════════════════════════════════
# Audit & notifications
# ═══════════════════════════════════════════════════════════════════════════


class TestAuditEndpoints:

    def test_history(self, client, created):
        r = client.get(f"{BASE}/{created['id']}/history")
        assert r.status_code == 200
        body = r.get_json()
        assert body["total"] == 2
        assert [h["action_type"] for h in body["items"]] == ["CREATION", "STATUS_CHANGE"]
        assert all(h["sequence_number"] == created["sequence_number"] for h in body["items"])

    def test_comment(self, client, created):
        r = client.post(f"{BASE}/{created['id']}/comments", json={
            "comment": "Student phoned the office", "role": "ADMIN", "user_id": "adm-1",
        })
        assert r.status_code == 201
        assert r.get_json()["action_type"] == "COMMENT"
        assert r.get_json()["actor"]["id"] == "adm-1"

    def test_blank_comment(self, client, created):
        r = client.post(f"{BASE}/{created['id']}/comments", json={"comment": " ", "role": "ADMIN"})
        assert r.status_code == 400

    def test_notifications(self, client, created):
        r = client.get(f"{BASE}/{created['id']}/notifications")
        assert r.status_code == 200
        [notif] = r.get_json()["items"]
        assert notif["template"] == "demande-received"

        r = client.get(f"{BASE}/{created['id']}/notifications/stats")
        assert r.get_json() == {"total": 1, "sent": 1, "pending": 0, "failed": 0}

    def test_notification_stats_unknown_demande(self, client):
        assert client.get(f"{BASE}/does-not-exist/notifications/stats").status_code == 404

    def test_retry_unknown_notification(self, client):
        r = client.post("/api/v1/notifications/999/retry")
        assert r.status_code == 404


class TestSendEmail:

    def _send(self, client, demande_id, role="ADMIN", **body):
        return client.post(f"{BASE}/{demande_id}/send-email", json={"role": role, "user_id": "adm-1", **body})

    def test_resend_status_email(self, client, created):
        r = self._send(client, created["id"], type="status")
        assert r.status_code == 200
        assert r.get_json()["success"] is True

        items = client.get(f"{BASE}/{created['id']}/notifications").get_json()["items"]
        assert [n["template"] for n in items] == ["demande-received", "demande-received"]

    def test_custom_email(self, client, created):
        r = self._send(client, created["id"], type="custom",
                       subject="Pick-up hours", message="The office is open 9am to noon.")
        assert r.status_code == 200

        latest = client.get(f"{BASE}/{created['id']}/notifications").get_json()["items"][0]
        assert latest["template"] == "custom"
        assert latest["subject"] == "Pick-up hours"
        assert client.get(f"{BASE}/{created['id']}/notifications/stats").get_json()["total"] == 2

    def test_custom_email_requires_subject_and_message(self, client, created):
        r = self._send(client, created["id"], type="custom", subject="Pick-up hours")
        assert r.status_code == 400
        assert r.get_json()["details"] == {"message": "message is required"}

    def test_unknown_type(self, client, created):
        r = self._send(client, created["id"], type="sms")
        assert r.status_code == 400
        assert r.get_json()["details"] == {"type": "one of status, custom"}

    @pytest.mark.parametrize("role", ["STUDENT", None])
    def test_administrators_only(self, client, created, role):
        r = self._send(client, created["id"], role=role, type="status")
        assert r.status_code == 403
        assert r.get_json()["code"] == "PERMISSION_DENIED"

    def test_unknown_demande(self, client):
        assert self._send(client, "does-not-exist", type="status").status_code == 404

    def test_status_without_template(self, client, make_demande):
        demande = make_demande("SUBMITTED")
        r = self._send(client, demande.id, type="status")
        assert r.status_code == 400
        assert "SUBMITTED" in r.get_json()["error"]

    def test_delivery_failure(self, app, client, created, monkeypatch):
        def _boom(*, to_email, subject, body):
            raise ConnectionRefusedError("smtp.test:587 refused")

        monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.test")
        monkeypatch.setattr(EmailService, "_send_smtp", staticmethod(_boom))

        r = self._send(client, created["id"], type="custom", subject="Reminder", message="Bring your ID.")
        assert r.status_code == 502
        body = r.get_json()
        assert body["code"] == "ERR_DELIVERY_FAILED"
        assert client.get(f"{BASE}/{created['id']}/notifications/stats").get_json()["failed"] == 1

        retry = client.post(f"/api/v1/notifications/{body['details']['notification_id']}/retry")
        assert retry.status_code == 200
        assert retry.get_json()["success"] is False


class TestHealth:

    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live(self, client):
        r = client.get("/api/v1/health/live")
        assert r.status_code == 200
        body = r.get_json()
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["mail"]["status"] == "log_only"

    def test_db_diag(self, client):
        body = client.get("/api/v1/health/db-diag").get_json()
        assert all(v["status"] == "ok" for v in body.values())

    def test_unknown_api_path(self, client):
        r = client.get("/api/v1/nothing-here")
        assert r.status_code == 404
        assert r.get_json()["path"] == "/api/v1/nothing-here"
