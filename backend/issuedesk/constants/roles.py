"""Actor roles and the role groupings the lifecycle and visibility rules refer to.

Extend cautiously: role values are embedded in issued JWTs and stored on users.
"""
from __future__ import annotations
from enum import Enum
from typing import Dict, FrozenSet, List


class Role(str, Enum):
    SUBMITTER = 'submitter'
    DISTRICT_APPROVER = 'district_approver'
    CENTRAL_APPROVER = 'central_approver'
    TECHNICIAN = 'technician'
    SUPER_APPROVER = 'super_approver'
    ROOT = 'root'


# Role names used by the previous system, still present in old user rows.
LEGACY_ROLE_NAMES: Dict[str, Role] = {
    'subject_clerk': Role.SUBMITTER,
    'clerk': Role.SUBMITTER,
    'dc': Role.DISTRICT_APPROVER,
    'super_user': Role.CENTRAL_APPROVER,
    'technical_officer': Role.TECHNICIAN,
    'super_admin': Role.SUPER_APPROVER,
}

HEAD_OFFICE_ROLES: FrozenSet[Role] = frozenset({Role.CENTRAL_APPROVER, Role.TECHNICIAN, Role.SUPER_APPROVER})
ELEVATED_ROLES: FrozenSet[Role] = frozenset({Role.SUPER_APPROVER, Role.ROOT})
APPROVING_ROLES: FrozenSet[Role] = ELEVATED_ROLES
CENTRAL_DECISION_ROLES: FrozenSet[Role] = frozenset({Role.CENTRAL_APPROVER, Role.SUPER_APPROVER, Role.ROOT})
REPORTING_ROLES: FrozenSet[Role] = frozenset({
    Role.DISTRICT_APPROVER, Role.CENTRAL_APPROVER, Role.SUPER_APPROVER, Role.ROOT,
})


def parse_role(raw) -> Role:
    """Return the Role for a canonical or legacy name; ValueError when unrecognised."""
    if isinstance(raw, Role):
        return raw
    text = str(raw or '').strip().lower()
    try:
        return Role(text)
    except ValueError:
        pass
    if text in LEGACY_ROLE_NAMES:
        return LEGACY_ROLE_NAMES[text]
    raise ValueError(f'Unknown role {raw!r}')


def role_names(role: Role) -> List[str]:
    """Every stored role string meaning ``role`` (canonical first, then legacy names)."""
    return [role.value] + sorted(k for k, v in LEGACY_ROLE_NAMES.items() if v is role)


__all__ = [
    'Role', 'LEGACY_ROLE_NAMES', 'HEAD_OFFICE_ROLES', 'ELEVATED_ROLES', 'APPROVING_ROLES',
    'CENTRAL_DECISION_ROLES', 'REPORTING_ROLES', 'parse_role', 'role_names',
]
