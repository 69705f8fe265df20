"""
Demande Lifecycle — workflow package.

Re-exports the static tables, actors and query utilities. These modules
never import models, so ``app.models`` can depend on them; the engine
itself is imported from ``app.workflow.state_machine``.

    from app.workflow import ActorContext, DemandeStatus, Role
    from app.workflow.state_machine import transition_demande
"""

from app.workflow.actors import SYSTEM_ACTOR, ActorContext, HumanActor, SystemActor  # noqa: F401
from app.workflow.constants import (  # noqa: F401
    STATUS_CATALOG,
    DemandeStatus,
    Role,
    UnknownStatusError,
    allowed_next_statuses,
    get_status_meta,
    is_terminal,
    is_transition_allowed,
)
from app.workflow.utils import (  # noqa: F401
    can_role_transition,
    get_available_transitions,
    validate_transition_context,
)
