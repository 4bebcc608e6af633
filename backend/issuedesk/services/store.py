"""Issue persistence: ORM rows <-> ``IssueSnapshot``.

Writes are compare-and-swap on ``issues.version``: a transition computed from a stale
snapshot never lands. The loser re-reads the row and gets ``NoChange`` or
``IllegalTransition`` describing the state it lost to.
"""
from __future__ import annotations
import logging
from typing import Dict, Iterable, List, Sequence

from sqlalchemy import delete, func, select, update

from issuedesk.constants.roles import Role
from issuedesk.constants.statuses import IssueStatus
from issuedesk.domain.errors import Forbidden, IllegalTransition, NoChange, NotDeletable, NotFound
from issuedesk.domain.models import MILESTONE_FIELDS, Actor, AuditEntry, IssueSnapshot, Priority
from issuedesk.models.issue import Issue, IssueAuditEntry
from issuedesk.services.audit_trail import parse_legacy_comment
from issuedesk.services.visibility import checked_role
from issuedesk.utils.clock import ensure_utc, utc_now

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = ('status', 'last_requested_status', 'assigned_to') + MILESTONE_FIELDS


def _entry(row: IssueAuditEntry) -> AuditEntry:
    return AuditEntry(
        timestamp=ensure_utc(row.timestamp),
        actor_label=row.actor_label,
        text=row.text,
        actor_id=row.actor_id,
        action=row.action,
    )


def to_snapshot(row: Issue, entry_rows: Iterable[IssueAuditEntry] = ()) -> IssueSnapshot:
    fallback = row.submitted_at or row.updated_at or utc_now()
    trail = parse_legacy_comment(row.legacy_comment, ensure_utc(fallback))
    trail += tuple(_entry(e) for e in entry_rows)
    return IssueSnapshot(
        id=row.id,
        device_id=row.device_id,
        complaint_type=row.complaint_type,
        description=row.description,
        priority_level=Priority.parse(row.priority_level),
        location=row.location,
        branch=row.branch,
        submitted_by=row.submitted_by,
        status=row.status,
        under_warranty=bool(row.under_warranty),
        attachment_ref=row.attachment_ref,
        audit_trail=trail,
        assigned_to=row.assigned_to,
        last_requested_status=row.last_requested_status,
        version=row.version or 0,
        **{name: ensure_utc(getattr(row, name)) for name in MILESTONE_FIELDS},
    )


def _entry_rows(session, issue_id: int) -> List[IssueAuditEntry]:
    stmt = select(IssueAuditEntry).where(IssueAuditEntry.issue_id == issue_id).order_by(IssueAuditEntry.position)
    return list(session.execute(stmt).scalars())


def load(session, issue_id: int) -> IssueSnapshot:
    row = session.get(Issue, issue_id, populate_existing=True)
    if row is None:
        raise NotFound(f'Issue {issue_id} not found', {'issue_id': issue_id})
    return to_snapshot(row, _entry_rows(session, issue_id))


def snapshots(session, rows: Sequence[Issue]) -> List[IssueSnapshot]:
    """Snapshots for a page of rows with one query for all their audit entries."""
    ids = [r.id for r in rows]
    by_issue: Dict[int, List[IssueAuditEntry]] = {}
    if ids:
        stmt = (
            select(IssueAuditEntry)
            .where(IssueAuditEntry.issue_id.in_(ids))
            .order_by(IssueAuditEntry.issue_id, IssueAuditEntry.position)
        )
        for entry in session.execute(stmt).scalars():
            by_issue.setdefault(entry.issue_id, []).append(entry)
    return [to_snapshot(r, by_issue.get(r.id, ())) for r in rows]


def _insert_entries(session, issue_id: int, entries: Iterable[AuditEntry]):
    last = session.execute(
        select(func.max(IssueAuditEntry.position)).where(IssueAuditEntry.issue_id == issue_id)
    ).scalar()
    position = -1 if last is None else last
    for entry in entries:
        position += 1
        session.add(IssueAuditEntry(
            issue_id=issue_id,
            position=position,
            timestamp=entry.timestamp,
            actor_id=entry.actor_id,
            actor_label=entry.actor_label,
            action=entry.action,
            text=entry.text,
            formatted=entry.formatted,
        ))


def create(session, issue: IssueSnapshot) -> IssueSnapshot:
    row = Issue(
        device_id=issue.device_id,
        complaint_type=issue.complaint_type,
        description=issue.description,
        priority_level=issue.priority_level.value,
        under_warranty=issue.under_warranty,
        attachment_ref=issue.attachment_ref,
        location=issue.location,
        branch=issue.branch,
        submitted_by=issue.submitted_by,
        version=0,
        **{name: getattr(issue, name) for name in MUTABLE_FIELDS},
    )
    session.add(row)
    session.flush()
    _insert_entries(session, row.id, issue.audit_trail)
    session.commit()
    return load(session, row.id)


def save_transition(session, before: IssueSnapshot, after: IssueSnapshot) -> IssueSnapshot:
    """Persist ``after`` only if the row still holds ``before``'s version."""
    new_entries = after.audit_trail[len(before.audit_trail):]
    values = {name: getattr(after, name) for name in MUTABLE_FIELDS}
    values['version'] = before.version + 1
    result = session.execute(
        update(Issue)
        .where(Issue.id == before.id, Issue.version == before.version)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        session.rollback()
        current = load(session, before.id)
        logger.warning('issue %s: lost concurrent update (version %s, now %s, status %s)',
                       before.id, before.version, current.version, current.status.value)
        if current.status == after.status:
            raise NoChange(current.status)
        raise IllegalTransition(current.status, after.status,
                                message=f'Issue moved to {current.status.value} concurrently')
    _insert_entries(session, before.id, new_entries)
    session.commit()
    return load(session, before.id)


def delete_issue(session, issue: IssueSnapshot, actor: Actor):
    role = checked_role(actor)
    if not (role is Role.ROOT or (role is Role.SUBMITTER and issue.submitted_by == actor.user_id)):
        raise Forbidden('Only the submitter or root can delete an issue', {'issue_id': issue.id})
    if issue.status is not IssueStatus.PENDING:
        raise NotDeletable(f'Issue is {issue.status.value}; only Pending issues can be deleted',
                           {'current_status': issue.status.value})
    result = session.execute(
        delete(Issue).where(Issue.id == issue.id, Issue.version == issue.version)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        session.rollback()
        current = load(session, issue.id)
        raise NotDeletable(f'Issue is {current.status.value}; only Pending issues can be deleted',
                           {'current_status': current.status.value})
    session.execute(delete(IssueAuditEntry).where(IssueAuditEntry.issue_id == issue.id))
    session.commit()
    logger.info('issue %s deleted by user %s', issue.id, actor.user_id)


__all__ = ['MUTABLE_FIELDS', 'to_snapshot', 'load', 'snapshots', 'create', 'save_transition', 'delete_issue']
