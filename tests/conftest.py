"""
Shared pytest fixtures for the Demande Lifecycle test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - student: student identity payload
    - make_demande: ORM factory placing a demande at any status
    - received_demande: demande created through the service (auto-received)
    - notifier / runner: recording collaborators for the workflow engine
    - failing_notifier / refusing_notifier: notifiers that raise or report failure
"""

import os
import tempfile

# Deferred tasks commit from their own thread and connection; a file
# database lets them do so next to the test session.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="demandes-tests-")
os.environ.setdefault(
    "TEST_DATABASE_URL", f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}",
)

import pytest  # noqa: E402

from app import create_app  # noqa: E402
from app.models import db as _db  # noqa: E402
from app.models.demande import Demande, DemandeDocument  # noqa: E402
from app.services.code_generator import generate_sequence_number  # noqa: E402
from app.services.task_runner import DeferredTask, task_runner  # noqa: E402


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, drain deferred tasks, recreate tables."""
    with app.app_context():
        yield
        assert task_runner.wait_all(timeout=10), "deferred tasks did not finish"
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


STUDENT = {
    "id": "stu-0001",
    "last_name": "Martin",
    "first_name": "Alice",
    "email": "alice.martin@univ.example",
    "student_number": "20260001",
}


@pytest.fixture()
def student():
    return dict(STUDENT)


@pytest.fixture()
def make_demande():
    """Create a demande directly at ``status`` (bypasses the lifecycle)."""

    def _make(status="RECEIVED", *, documents=0, **overrides):
        fields = {
            "sequence_number": generate_sequence_number(),
            "student_id": STUDENT["id"],
            "student_last_name": STUDENT["last_name"],
            "student_first_name": STUDENT["first_name"],
            "student_email": STUDENT["email"],
            "student_number": STUDENT["student_number"],
            "request_type_code": "TRANSCRIPT",
            "request_type_name": "Transcript of records",
            "processing_days": 5,
            "subject": "Transcript request",
            "description": "Needed for an exchange application.",
            "status_code": status,
        }
        fields.update(overrides)
        demande = Demande(**fields)
        for i in range(documents):
            demande.documents.append(DemandeDocument(
                filename=f"doc-{i}.pdf", mime_type="application/pdf",
                size=1024, url=f"/uploads/doc-{i}.pdf",
            ))
        _db.session.add(demande)
        _db.session.commit()
        return demande

    return _make


@pytest.fixture()
def received_demande(student):
    """Demande created through the service: SUBMITTED then auto-received."""
    from app.services.demande_service import create_demande

    return create_demande(
        student=student,
        request_type="ENROLLMENT_CERTIFICATE",
        subject="Enrollment certificate",
        description="Needed for a housing application.",
    )


class RecordingNotifier:
    """Notifier double: records statuses, returns ``result`` or raises ``error``."""

    def __init__(self, result=None, error=None):
        self.result = result if result is not None else {"success": True}
        self.error = error
        self.sent = []

    def send_status_change_notification(self, demande):
        self.sent.append(demande.status_code)
        if self.error is not None:
            raise self.error
        return self.result


class RecordingRunner:
    """Task runner double: records submissions without running them."""

    def __init__(self):
        self.submitted = []

    def submit(self, name, execute_fn, *args, delay=0.0, app=None, **kwargs):
        task = DeferredTask(len(self.submitted) + 1, name, delay)
        self.submitted.append({"task": task, "fn": execute_fn, "args": args, "kwargs": kwargs})
        return task


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def runner():
    return RecordingRunner()


@pytest.fixture()
def failing_notifier():
    return RecordingNotifier(error=RuntimeError("SMTP connection refused"))


@pytest.fixture()
def refusing_notifier():
    return RecordingNotifier(result={"success": False, "error": "mailbox unavailable"})
