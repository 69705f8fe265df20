"""
Actors and transition context.

An actor is either a human (``HumanActor``) or the platform itself
(``SystemActor``). History entries carry a human actor's identity and
carry no identity at all for the system actor.

``ActorContext`` is the ephemeral input of one transition call; it is never
persisted as such.
"""

from dataclasses import dataclass

from app.workflow.constants import Role


@dataclass(frozen=True)
class HumanActor:
    id: str
    role: str
    name: str | None = None

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "role": self.role}


@dataclass(frozen=True)
class SystemActor:
    role: str = Role.SYSTEM


SYSTEM_ACTOR = SystemActor()


@dataclass(frozen=True)
class ActorContext:
    """
    Input supplied by the calling layer for one transition.

    ``role`` is mandatory for transitions (checked by the engine, not here,
    so a missing role surfaces as PERMISSION_DENIED).
    """

    role: str | None = None
    user_id: str | None = None
    user_name: str | None = None
    comment: str | None = None
    rejection_reason: str | None = None
    processor_id: str | None = None

    @classmethod
    def system(cls, comment: str | None = None) -> "ActorContext":
        return cls(role=Role.SYSTEM, comment=comment)

    @classmethod
    def from_dict(cls, data: dict) -> "ActorContext":
        """Build from a request payload, ignoring unknown keys."""
        return cls(
            role=data.get("role"),
            user_id=data.get("user_id"),
            user_name=data.get("user_name"),
            comment=data.get("comment") or data.get("admin_comment"),
            rejection_reason=data.get("rejection_reason"),
            processor_id=data.get("processor_id"),
        )

    @property
    def is_system(self) -> bool:
        return self.role == Role.SYSTEM

    def actor(self) -> HumanActor | SystemActor:
        """Resolve the actor recorded in history for this context."""
        if self.is_system or not self.user_id:
            return SYSTEM_ACTOR
        return HumanActor(id=self.user_id, role=self.role, name=self.user_name)

    def field_value(self, field: str):
        """Value of a requirement field (see TRANSITION_REQUIREMENTS)."""
        if field == "admin_comment":
            return self.comment
        if field == "rejection_reason":
            return self.rejection_reason
        if field == "processor_id":
            return self.processor_id
        return None
