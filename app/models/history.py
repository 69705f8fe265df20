"""
Demande Lifecycle Platform
History domain model.

Models:
    - HistoryEntry: immutable, append-only audit trail of a demande's lifecycle.
"""

import json
from datetime import datetime, timezone

from app.models import db
from app.workflow.actors import HumanActor, SystemActor

# ── Constants ────────────────────────────────────────────────────────────────

ACTION_CREATION = "CREATION"
ACTION_STATUS_CHANGE = "STATUS_CHANGE"
ACTION_EDIT = "EDIT"
ACTION_COMMENT = "COMMENT"

HISTORY_ACTIONS = {ACTION_CREATION, ACTION_STATUS_CHANGE, ACTION_EDIT, ACTION_COMMENT}


class HistoryEntry(db.Model):
    """
    Immutable audit record, one row per lifecycle event of a demande.

    Status columns hold snapshots taken at write time, so later catalog
    changes never rewrite history. Actor columns stay NULL for entries
    written by the system actor.
    """

    __tablename__ = "demande_history"
    __table_args__ = (
        db.Index("idx_history_demande", "demande_id", "created_at"),
        db.Index("idx_history_actor", "actor_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    demande_id = db.Column(
        db.String(36), db.ForeignKey("demandes.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    sequence_number_ref = db.Column(db.String(20), nullable=False, index=True)

    previous_status_code = db.Column(db.String(20), nullable=True)
    previous_status_label = db.Column(db.String(60), nullable=True)
    new_status_code = db.Column(db.String(20), nullable=False)
    new_status_label = db.Column(db.String(60), nullable=True)

    action_type = db.Column(
        db.String(20), nullable=False, default=ACTION_STATUS_CHANGE,
        comment="CREATION | STATUS_CHANGE | EDIT | COMMENT",
    )
    comment = db.Column(db.Text, nullable=True)

    actor_id = db.Column(db.String(36), nullable=True)
    actor_name = db.Column(db.String(150), nullable=True)
    actor_role = db.Column(db.String(20), nullable=True)

    changed_fields_json = db.Column(
        db.Text, nullable=True,
        comment="JSON: {field: {old, new}} for EDIT entries",
    )

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def previous_status(self) -> dict | None:
        if self.previous_status_code is None:
            return None
        return {"code": self.previous_status_code, "label": self.previous_status_label}

    @property
    def new_status(self) -> dict:
        return {"code": self.new_status_code, "label": self.new_status_label}

    @property
    def actor(self) -> HumanActor | SystemActor:
        if self.actor_id is None:
            return SystemActor()
        return HumanActor(id=self.actor_id, role=self.actor_role, name=self.actor_name)

    @property
    def changed_fields(self) -> dict:
        try:
            return json.loads(self.changed_fields_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "demande_id": self.demande_id,
            "sequence_number": self.sequence_number_ref,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "action_type": self.action_type,
            "comment": self.comment,
            "changed_fields": self.changed_fields,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        actor = self.actor
        if isinstance(actor, HumanActor):
            d["actor"] = actor.to_dict()
        return d

    def __repr__(self):
        return f"<HistoryEntry {self.id}: {self.action_type} on {self.sequence_number_ref}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_history(
    *,
    demande,
    new_status: dict,
    previous_status: dict | None = None,
    action_type: str = ACTION_STATUS_CHANGE,
    actor: HumanActor | SystemActor,
    comment: str | None = None,
    changed_fields: dict | None = None,
) -> HistoryEntry:
    """
    Append a single history row. Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) HistoryEntry instance.
    """
    if action_type not in HISTORY_ACTIONS:
        raise ValueError(f"Unknown history action: {action_type}")

    entry = HistoryEntry(
        demande_id=demande.id,
        sequence_number_ref=demande.sequence_number,
        previous_status_code=previous_status["code"] if previous_status else None,
        previous_status_label=previous_status.get("label") if previous_status else None,
        new_status_code=new_status["code"],
        new_status_label=new_status.get("label"),
        action_type=action_type,
        comment=comment,
        changed_fields_json=json.dumps(changed_fields, default=str) if changed_fields else None,
    )
    match actor:
        case HumanActor(id=actor_id, role=role, name=name):
            entry.actor_id = actor_id
            entry.actor_role = role
            entry.actor_name = name
        case SystemActor():
            pass
    db.session.add(entry)
    db.session.flush()
    return entry


def list_history(demande_id: str) -> list[HistoryEntry]:
    """Entries for one demande, oldest first."""
    return (
        HistoryEntry.query
        .filter_by(demande_id=demande_id)
        .order_by(HistoryEntry.created_at.asc(), HistoryEntry.id.asc())
        .all()
    )
