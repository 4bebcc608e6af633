"""In-memory value objects the lifecycle core operates on.

The core never touches ORM rows: the store converts a row into an ``IssueSnapshot``,
the engine returns a new snapshot, and the store writes it back in one transaction.
Snapshots are frozen so a refused transition leaves the caller's copy untouched.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from issuedesk.constants.roles import Role
from issuedesk.constants.statuses import IssueStatus
from issuedesk.utils.clock import format_iso

HEAD_OFFICE_TAG = 'head-office'


class Priority(str, Enum):
    LOW = 'Low'
    MEDIUM = 'Medium'
    HIGH = 'High'

    @classmethod
    def parse(cls, raw) -> 'Priority':
        text = str(raw or '').strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f'priority_level must be one of {[m.value for m in cls]}')


def head_office_location(branch: str) -> str:
    return f'{HEAD_OFFICE_TAG}:{branch}'


def location_branch(location: Optional[str], branch: Optional[str] = None) -> Optional[str]:
    """Branch encoded by a head-office location, in either the tagged or the bare+branch form."""
    if not location:
        return None
    if location.startswith(HEAD_OFFICE_TAG + ':'):
        return location.split(':', 1)[1] or None
    if location == HEAD_OFFICE_TAG:
        return branch
    return None


def is_head_office_location(location: Optional[str]) -> bool:
    return bool(location) and (location == HEAD_OFFICE_TAG or location.startswith(HEAD_OFFICE_TAG + ':'))


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: Role
    district_id: Optional[str] = None
    branch: Optional[str] = None
    name: Optional[str] = None

    @property
    def label(self) -> str:
        role = getattr(self.role, 'value', self.role)
        return f'{self.name} ({role})' if self.name else f'{role}#{self.user_id}'


@dataclass(frozen=True)
class AuditEntry:
    timestamp: datetime
    actor_label: str
    text: str
    actor_id: Optional[int] = None
    action: Optional[str] = None

    @property
    def formatted(self) -> str:
        return f'{self.text} ({self.actor_label}) at {format_iso(self.timestamp)}'

    def to_dict(self):
        return {
            'timestamp': format_iso(self.timestamp),
            'actor_label': self.actor_label,
            'actor_id': self.actor_id,
            'action': self.action,
            'text': self.text,
            'formatted': self.formatted,
        }


MILESTONE_FIELDS = (
    'submitted_at', 'dc_decided_at', 'super_admin_decided_at', 'assigned_at', 'started_at',
    'resolved_at', 'reviewed_at', 'completed_at', 'reopened_at',
)

ASSIGNED_STATUSES = frozenset({
    IssueStatus.ASSIGNED, IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED,
    IssueStatus.PENDING_REVIEW, IssueStatus.REOPENED,
})


@dataclass(frozen=True)
class IssueSnapshot:
    id: Optional[int]
    device_id: str
    complaint_type: str
    description: str
    priority_level: Priority
    location: str
    submitted_by: int
    status: IssueStatus = IssueStatus.PENDING
    under_warranty: bool = False
    attachment_ref: Optional[str] = None
    branch: Optional[str] = None
    audit_trail: Tuple[AuditEntry, ...] = ()
    assigned_to: Optional[int] = None
    last_requested_status: Optional[IssueStatus] = None
    submitted_at: Optional[datetime] = None
    dc_decided_at: Optional[datetime] = None
    super_admin_decided_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    reopened_at: Optional[datetime] = None
    version: int = field(default=0, compare=False)

    def milestones(self):
        return {name: getattr(self, name) for name in MILESTONE_FIELDS}


def invariant_violations(issue: IssueSnapshot) -> List[str]:
    problems = []
    if not isinstance(issue.status, IssueStatus):
        problems.append(f'status {issue.status!r} outside registry')
    if issue.assigned_to is not None and issue.status not in ASSIGNED_STATUSES:
        problems.append(f'assigned_to set while {issue.status.value}')
    if is_head_office_location(issue.location) and not location_branch(issue.location, issue.branch):
        problems.append('head-office location without branch')
    stamps = [ts for ts in issue.milestones().values() if ts is not None]
    if stamps:
        if not issue.audit_trail:
            problems.append('milestones recorded without audit trail')
        elif issue.audit_trail[-1].timestamp < max(stamps):
            problems.append('latest audit entry older than a milestone')
    return problems


__all__ = [
    'HEAD_OFFICE_TAG', 'Priority', 'Actor', 'AuditEntry', 'IssueSnapshot', 'MILESTONE_FIELDS',
    'ASSIGNED_STATUSES', 'head_office_location', 'location_branch', 'is_head_office_location',
    'invariant_violations',
]
