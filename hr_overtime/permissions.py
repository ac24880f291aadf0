from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Mapping, Optional

from .errors import PermissionDenied
from .models import Actor, OvertimeRequest, Role


class Capability(str, Enum):
    CREATE = "create"
    EDIT = "edit"
    DECIDE = "decide"
    EXECUTE = "execute"
    SEND_TO_PAYROLL = "send_to_payroll"
    IMPORT = "import"
    EXPORT = "export"
    VIEW_COST = "view_cost"
    AUTHORIZATION = "authorization"
    ACKNOWLEDGE = "acknowledge"


# Granted by role alone, for any request.
ROLE_CAPABILITIES: Mapping[Role, FrozenSet[Capability]] = {
    Role.ADM: frozenset(
        {
            Capability.CREATE,
            Capability.EDIT,
            Capability.DECIDE,
            Capability.EXECUTE,
            Capability.SEND_TO_PAYROLL,
            Capability.IMPORT,
            Capability.EXPORT,
            Capability.VIEW_COST,
            Capability.AUTHORIZATION,
        }
    ),
    Role.RH: frozenset(
        {
            Capability.CREATE,
            Capability.EDIT,
            Capability.EXECUTE,
            Capability.SEND_TO_PAYROLL,
            Capability.IMPORT,
            Capability.EXPORT,
            Capability.VIEW_COST,
            Capability.AUTHORIZATION,
        }
    ),
    Role.GESTOR: frozenset({Capability.EXPORT, Capability.VIEW_COST, Capability.AUTHORIZATION}),
    Role.COLABORADOR: frozenset(),
}

# Granted to the manager named on the request.
MANAGER_CAPABILITIES: FrozenSet[Capability] = frozenset({Capability.DECIDE, Capability.EXECUTE})

# Granted to the employee the request is for.
OWNER_CAPABILITIES: FrozenSet[Capability] = frozenset({Capability.ACKNOWLEDGE})


class PermissionPolicy:
    def __init__(
        self,
        role_capabilities: Optional[Mapping[Role, FrozenSet[Capability]]] = None,
        manager_capabilities: FrozenSet[Capability] = MANAGER_CAPABILITIES,
        owner_capabilities: FrozenSet[Capability] = OWNER_CAPABILITIES,
    ) -> None:
        self.role_capabilities = dict(role_capabilities or ROLE_CAPABILITIES)
        self.manager_capabilities = manager_capabilities
        self.owner_capabilities = owner_capabilities

    def allows(self, actor: Actor, capability: Capability, request: Optional[OvertimeRequest] = None) -> bool:
        if capability in self.role_capabilities.get(actor.role, frozenset()):
            return True
        if request is None:
            return False
        if capability in self.manager_capabilities and actor.uid and request.manager_uid == actor.uid:
            return True
        if capability in self.owner_capabilities and request.is_owned_by(actor):
            return True
        return False

    def require(self, actor: Actor, capability: Capability, request: Optional[OvertimeRequest] = None) -> None:
        if not self.allows(actor, capability, request):
            target = f" on {request.id}" if request is not None else ""
            raise PermissionDenied(f"{actor.role.value} {actor.uid or '?'} may not {capability.value}{target}")
