"""Test seeding utilities to reduce duplication.

Users carry the actor descriptor (role, district, branch) directly; issues can be built
in memory (``make_issue``) for engine tests or persisted through the store.
"""
from datetime import datetime, timedelta, timezone
from dataclasses import replace
from typing import Optional
from sqlalchemy import text
from issuedesk import get_db
from issuedesk.constants.roles import Role
from issuedesk.constants.statuses import IssueStatus
from issuedesk.domain.models import Actor, AuditEntry, IssueSnapshot, Priority
from issuedesk.models.authz import User

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


def ensure_user(email: str, role, district_id: Optional[str] = None, branch: Optional[str] = None,
                name: Optional[str] = None, password: str = 'pw') -> User:
    session = get_db()
    u = session.query(User).filter_by(email=email).one_or_none()
    if not u:
        u = User(name=name or email.split('@')[0], email=email, password_hash='',
                 role=getattr(role, 'value', role), district_id=district_id, branch=branch)
        u.set_password(password)
        session.add(u); session.commit(); session.refresh(u)
    return u


def actor_for(user: User) -> Actor:
    return Actor(user_id=user.id, role=Role(user.role), district_id=user.district_id, branch=user.branch, name=user.name)


def make_actor(user_id: int, role: Role, district_id: Optional[str] = None, branch: Optional[str] = None,
               name: Optional[str] = None) -> Actor:
    return Actor(user_id=user_id, role=role, district_id=district_id, branch=branch, name=name)


def make_issue(issue_id: int = 1, status: IssueStatus = IssueStatus.PENDING, location: str = 'district-7',
               submitted_by: int = 100, **changes) -> IssueSnapshot:
    """Snapshot with one submission entry at BASE_TIME; ``changes`` override any field."""
    entry = AuditEntry(timestamp=BASE_TIME, actor_label='clerk (submitter)', text='Issue submitted',
                       actor_id=submitted_by, action='submit')
    issue = IssueSnapshot(
        id=issue_id,
        device_id='PC-0042',
        complaint_type='Hardware',
        description='Monitor flickers',
        priority_level=Priority.MEDIUM,
        location=location,
        submitted_by=submitted_by,
        status=status,
        audit_trail=(entry,),
        submitted_at=BASE_TIME,
    )
    return replace(issue, **changes) if changes else issue


def set_raw_status(issue_id: int, raw: str):
    """Write a status string bypassing the column type, as rows from the old system look."""
    session = get_db()
    session.execute(text('UPDATE issues SET status = :s WHERE id = :i'), {'s': raw, 'i': issue_id})
    session.commit()


def set_legacy_comment(issue_id: int, raw: str):
    session = get_db()
    session.execute(text('UPDATE issues SET legacy_comment = :c WHERE id = :i'), {'c': raw, 'i': issue_id})
    session.commit()


__all__ = [
    'BASE_TIME', 'at', 'ensure_user', 'actor_for', 'make_actor', 'make_issue', 'set_raw_status', 'set_legacy_comment',
]
