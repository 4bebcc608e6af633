"""Review gate: confirms or returns a technician's resolution."""
from __future__ import annotations
import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from issuedesk.constants.roles import APPROVING_ROLES
from issuedesk.constants.statuses import IssueStatus
from issuedesk.domain.errors import Forbidden, NotReviewable
from issuedesk.domain.models import HEAD_OFFICE_TAG, Actor, IssueSnapshot
from issuedesk.services.audit_trail import append_note, compose_text
from issuedesk.services.visibility import checked_role, resolve_scope
from issuedesk.utils.clock import utc_now

logger = logging.getLogger(__name__)

REVIEWER_ROLES = APPROVING_ROLES
REVIEWABLE = frozenset({IssueStatus.PENDING_REVIEW, IssueStatus.RESOLVED})
APPROVE_NOTE = 'Issue resolved and reviewed by Super Admin'
RETURN_NOTE = 'Review rejected. Please check and resubmit.'


def confirm(issue: IssueSnapshot, actor: Actor, approved: bool, comment: Optional[str] = None, *,
            now: Optional[datetime] = None, head_office_district: str = HEAD_OFFICE_TAG) -> IssueSnapshot:
    role = checked_role(actor)
    if role not in REVIEWER_ROLES:
        raise Forbidden('Only approving roles can review issues',
                        {'role': role.value, 'required_roles': sorted(r.value for r in REVIEWER_ROLES)})
    if not resolve_scope(actor, head_office_district).matches(issue):
        raise Forbidden('Issue is outside your jurisdiction', {'issue_id': issue.id})
    if issue.status not in REVIEWABLE:
        raise NotReviewable(issue.status)

    action = 'approve-review' if approved else 'reject-review'
    trail = append_note(issue.audit_trail, actor.label, compose_text(APPROVE_NOTE if approved else RETURN_NOTE, comment),
                        at=now or utc_now(), actor_id=actor.user_id, action=action)
    at = trail[-1].timestamp
    if approved:
        updated = replace(
            issue,
            status=IssueStatus.COMPLETED,
            audit_trail=trail,
            reviewed_at=at,
            completed_at=issue.completed_at or at,
            assigned_to=None,
        )
    else:
        updated = replace(
            issue,
            status=IssueStatus.IN_PROGRESS,
            audit_trail=trail,
            reviewed_at=at,
            last_requested_status=None,
        )
    logger.info('issue %s %s: %s -> %s by user %s', issue.id, action, issue.status.value,
                updated.status.value, actor.user_id)
    return updated


__all__ = ['REVIEWER_ROLES', 'REVIEWABLE', 'APPROVE_NOTE', 'RETURN_NOTE', 'confirm']
