"""Issue lifecycle engine.

``apply_transition`` refuses issues the actor cannot see, validates the intent against
``ISSUE_TRANSITIONS`` and the actor's jurisdiction, then returns a new snapshot with the target status, the milestone timestamp
and exactly one appended audit entry. Validation fully precedes mutation: on any error
the input snapshot is returned to nobody and nothing has changed.
"""
from __future__ import annotations
import logging
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from issuedesk.constants.roles import CENTRAL_DECISION_ROLES, ELEVATED_ROLES, Role
from issuedesk.constants.statuses import IssueStatus
from issuedesk.domain.errors import Forbidden, InvalidRequest
from issuedesk.domain.models import HEAD_OFFICE_TAG, Actor, IssueSnapshot
from issuedesk.services import review
from issuedesk.services.audit_trail import append_note, compose_text
from issuedesk.services.visibility import can_view, checked_role, resolve_scope
from issuedesk.utils.clock import utc_now
from issuedesk.utils.fsm import Edge, TransitionTable

logger = logging.getLogger(__name__)

S = IssueStatus


class Intent(str, Enum):
    APPROVE_DISTRICT = 'approve-district'
    REJECT_DISTRICT = 'reject-district'
    APPROVE_CENTRAL = 'approve-central'
    REJECT_CENTRAL = 'reject-central'
    ASSIGN = 'assign'
    START = 'start'
    RESOLVE = 'resolve'
    REOPEN = 'reopen'
    APPROVE_REVIEW = 'approve-review'
    REJECT_REVIEW = 'reject-review'


REVIEW_INTENTS = {Intent.APPROVE_REVIEW.value: True, Intent.REJECT_REVIEW.value: False}

ISSUE_TRANSITIONS = TransitionTable([
    Edge(Intent.APPROVE_DISTRICT.value, roles={Role.DISTRICT_APPROVER}, sources={S.PENDING},
         target=S.DC_APPROVED, stamp='dc_decided_at', note='Approved by Verifying Officer'),
    Edge(Intent.REJECT_DISTRICT.value, roles={Role.DISTRICT_APPROVER}, sources={S.PENDING},
         target=S.DC_REJECTED, stamp='dc_decided_at', note='Rejected by Verifying Officer'),
    Edge(Intent.APPROVE_CENTRAL.value, roles=CENTRAL_DECISION_ROLES, sources={S.DC_APPROVED},
         target=S.SUPER_ADMIN_APPROVED, stamp='super_admin_decided_at', note='Approved by Super Admin'),
    Edge(Intent.REJECT_CENTRAL.value, roles=CENTRAL_DECISION_ROLES, sources={S.DC_APPROVED},
         target=S.SUPER_ADMIN_REJECTED, stamp='super_admin_decided_at', note='Rejected by Super Admin'),
    Edge(Intent.ASSIGN.value, roles=ELEVATED_ROLES,
         sources={S.DC_APPROVED, S.SUPER_ADMIN_APPROVED, S.REOPENED},
         target=S.ASSIGNED, stamp='assigned_at', note='Assigned'),
    Edge(Intent.START.value, roles={Role.TECHNICIAN}, sources={S.ASSIGNED, S.REOPENED},
         target=S.IN_PROGRESS, stamp='started_at', note='Work in progress', requires_assignment=True),
    # A technician's "resolved" always waits for the review gate.
    Edge(Intent.RESOLVE.value, roles={Role.TECHNICIAN}, sources={S.IN_PROGRESS},
         target=S.PENDING_REVIEW, requested=S.RESOLVED, stamp='resolved_at', note='Issue resolved',
         requires_assignment=True),
    Edge(Intent.REOPEN.value, roles={Role.SUBMITTER},
         sources={S.RESOLVED, S.COMPLETED, S.DC_REJECTED, S.SUPER_ADMIN_REJECTED},
         target=S.REOPENED, stamp='reopened_at', note='Issue reopened'),
    Edge(Intent.APPROVE_REVIEW.value, roles=review.REVIEWER_ROLES, sources=review.REVIEWABLE,
         target=S.COMPLETED, stamp='reviewed_at', note=review.APPROVE_NOTE),
    Edge(Intent.REJECT_REVIEW.value, roles=review.REVIEWER_ROLES, sources=review.REVIEWABLE,
         target=S.IN_PROGRESS, stamp='reviewed_at', note=review.RETURN_NOTE),
])


def parse_intent(raw: Union[str, Intent]) -> str:
    return raw.value if isinstance(raw, Intent) else str(raw or '').strip().lower()


def _check_jurisdiction(issue: IssueSnapshot, actor: Actor, edge: Edge, intent: str, head_office_district: str):
    if edge.requires_assignment:
        if issue.assigned_to is None or issue.assigned_to != actor.user_id:
            raise Forbidden('You are not assigned to this issue',
                            {'intent': intent, 'assigned_to': issue.assigned_to})
        return
    if not resolve_scope(actor, head_office_district).matches(issue):
        raise Forbidden('Issue is outside your jurisdiction',
                        {'intent': intent, 'location': issue.location, 'required_roles': sorted(r.value for r in edge.roles)})


def apply_transition(issue: IssueSnapshot, actor: Actor, intent: Union[str, Intent], comment: Optional[str] = None, *,
                     assignee_id: Optional[int] = None, assignee_label: Optional[str] = None,
                     now: Optional[datetime] = None, head_office_district: str = HEAD_OFFICE_TAG) -> IssueSnapshot:
    intent = parse_intent(intent)
    role = checked_role(actor)
    # Nothing about an issue outside the actor's view may leak through a refusal.
    if not can_view(actor, issue, head_office_district):
        raise Forbidden('Issue is outside your jurisdiction', {'intent': intent, 'issue_id': issue.id})
    edge = ISSUE_TRANSITIONS.assert_can_transition(issue.status, intent, role)
    if intent in REVIEW_INTENTS:
        return review.confirm(issue, actor, REVIEW_INTENTS[intent], comment, now=now,
                              head_office_district=head_office_district)
    _check_jurisdiction(issue, actor, edge, intent, head_office_district)

    changes = {'status': edge.target}
    text = compose_text(edge.note, comment)
    if intent == Intent.ASSIGN.value:
        if assignee_id is None:
            raise InvalidRequest('assignee_id required for assign', {'intent': intent})
        who = assignee_label or f'user #{assignee_id}'
        text = f'Assigned to {who}' + (f': {comment.strip()}' if comment and comment.strip() else '')
        changes['assigned_to'] = assignee_id
    elif intent == Intent.RESOLVE.value:
        changes['last_requested_status'] = edge.requested
    elif intent == Intent.REOPEN.value:
        changes['assigned_to'] = None
        changes['last_requested_status'] = None

    trail = append_note(issue.audit_trail, actor.label, text, at=now or utc_now(),
                        actor_id=actor.user_id, action=intent)
    if edge.stamp:
        changes[edge.stamp] = trail[-1].timestamp
    updated = replace(issue, audit_trail=trail, **changes)
    logger.info('issue %s %s: %s -> %s by user %s', issue.id, intent, issue.status.value,
                updated.status.value, actor.user_id)
    return updated


__all__ = ['Intent', 'REVIEW_INTENTS', 'ISSUE_TRANSITIONS', 'parse_intent', 'apply_transition']
