"""Issue status registry.

Closed set of lifecycle states plus the translation table for the free-text
status strings written by the previous system. Persisted rows may still carry
those strings; everything inside the service works on ``IssueStatus``.
Never rename a canonical value silently: add an alias instead.
"""
from __future__ import annotations
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Union

from issuedesk.constants.roles import Role


class IssueStatus(str, Enum):
    PENDING = 'Pending'
    DC_APPROVED = 'DCApproved'
    DC_REJECTED = 'DCRejected'
    SUPER_ADMIN_APPROVED = 'SuperAdminApproved'
    SUPER_ADMIN_REJECTED = 'SuperAdminRejected'
    ASSIGNED = 'Assigned'
    IN_PROGRESS = 'InProgress'
    RESOLVED = 'Resolved'
    PENDING_REVIEW = 'PendingReview'
    COMPLETED = 'Completed'
    REOPENED = 'Reopened'


ALL_STATUSES = tuple(IssueStatus)

DISPLAY_NAMES: Dict[IssueStatus, str] = {
    IssueStatus.PENDING: 'Pending',
    IssueStatus.DC_APPROVED: 'Approved by Verifying Officer',
    IssueStatus.DC_REJECTED: 'Rejected by Verifying Officer',
    IssueStatus.SUPER_ADMIN_APPROVED: 'Approved by Super Admin',
    IssueStatus.SUPER_ADMIN_REJECTED: 'Rejected by Super Admin',
    IssueStatus.ASSIGNED: 'Assigned to Technician',
    IssueStatus.IN_PROGRESS: 'In Progress',
    IssueStatus.RESOLVED: 'Resolved',
    IssueStatus.PENDING_REVIEW: 'Pending Review',
    IssueStatus.COMPLETED: 'Completed',
    IssueStatus.REOPENED: 'Reopened',
}

# Strings found in historical rows -> canonical status.
LEGACY_ALIASES: Dict[str, IssueStatus] = {
    'Approved by DC/AC': IssueStatus.DC_APPROVED,
    'Rejected by DC/AC': IssueStatus.DC_REJECTED,
    'Approved by DC': IssueStatus.DC_APPROVED,
    'Rejected by DC': IssueStatus.DC_REJECTED,
    'Issue approved by DC': IssueStatus.DC_APPROVED,
    'Approved by Verifying Officer': IssueStatus.DC_APPROVED,
    'Rejected by Verifying Officer': IssueStatus.DC_REJECTED,
    'Issue approved by Super Admin': IssueStatus.SUPER_ADMIN_APPROVED,
    'Approved by Super Admin': IssueStatus.SUPER_ADMIN_APPROVED,
    'Rejected by Super Admin': IssueStatus.SUPER_ADMIN_REJECTED,
    'Issue assigned by Super User': IssueStatus.ASSIGNED,
    'Assigned to Technician': IssueStatus.ASSIGNED,
    'In Progress': IssueStatus.IN_PROGRESS,
    'In_Progress': IssueStatus.IN_PROGRESS,
    'Pending_Review': IssueStatus.PENDING_REVIEW,
    'Pending Review': IssueStatus.PENDING_REVIEW,
}

# Statuses still needing work from each role; anything else lands in the archive bucket.
ACTIVE_FOR_ROLE: Dict[Role, FrozenSet[IssueStatus]] = {
    Role.SUBMITTER: frozenset({
        IssueStatus.PENDING, IssueStatus.DC_APPROVED, IssueStatus.SUPER_ADMIN_APPROVED,
        IssueStatus.ASSIGNED, IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED,
        IssueStatus.PENDING_REVIEW, IssueStatus.REOPENED,
    }),
    Role.DISTRICT_APPROVER: frozenset({IssueStatus.PENDING}),
    Role.CENTRAL_APPROVER: frozenset({IssueStatus.DC_APPROVED}),
    Role.TECHNICIAN: frozenset({IssueStatus.ASSIGNED, IssueStatus.IN_PROGRESS, IssueStatus.REOPENED}),
    Role.SUPER_APPROVER: frozenset({
        IssueStatus.DC_APPROVED, IssueStatus.SUPER_ADMIN_APPROVED, IssueStatus.RESOLVED,
        IssueStatus.PENDING_REVIEW, IssueStatus.REOPENED,
    }),
}
ACTIVE_FOR_ROLE[Role.ROOT] = ACTIVE_FOR_ROLE[Role.SUPER_APPROVER]


class UnknownStatus(ValueError):
    pass


def resolve(raw: Union[str, IssueStatus, None]) -> Optional[IssueStatus]:
    """Map a canonical value, enum member name or legacy alias to ``IssueStatus``.

    Returns None when nothing matches.
    """
    if raw is None:
        return None
    if isinstance(raw, IssueStatus):
        return raw
    text = str(raw).strip()
    try:
        return IssueStatus(text)
    except ValueError:
        pass
    if text in LEGACY_ALIASES:
        return LEGACY_ALIASES[text]
    folded = text.replace(' ', '_').upper()
    if folded in IssueStatus.__members__:
        return IssueStatus[folded]
    lowered = text.lower()
    for alias, status in LEGACY_ALIASES.items():
        if alias.lower() == lowered:
            return status
    return None


def normalize(raw: Union[str, IssueStatus]) -> IssueStatus:
    status = resolve(raw)
    if status is None:
        raise UnknownStatus(f'Unknown issue status {raw!r}')
    return status


def is_valid(status) -> bool:
    """Registry membership: canonical values only (aliases are accepted by ``resolve``)."""
    if isinstance(status, IssueStatus):
        return True
    try:
        IssueStatus(status)
    except ValueError:
        return False
    return True


def display_name(status) -> str:
    resolved = resolve(status)
    if resolved is None:
        return str(status) if status is not None else ''
    return DISPLAY_NAMES[resolved]


def is_terminal_for_role(status, role: Role) -> bool:
    return normalize(status) not in ACTIVE_FOR_ROLE.get(role, frozenset())


def storage_values(statuses: Iterable[IssueStatus]) -> List[str]:
    """Every raw string a stored row may carry for the given statuses (canonical + aliases)."""
    wanted = {normalize(s) for s in statuses}
    values = sorted(s.value for s in wanted)
    values += sorted(alias for alias, s in LEGACY_ALIASES.items() if s in wanted)
    return values


__all__ = [
    'IssueStatus', 'ALL_STATUSES', 'DISPLAY_NAMES', 'LEGACY_ALIASES', 'ACTIVE_FOR_ROLE', 'UnknownStatus',
    'resolve', 'normalize', 'is_valid', 'display_name', 'is_terminal_for_role', 'storage_values',
]
