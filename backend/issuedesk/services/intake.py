from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from issuedesk.constants.roles import Role
from issuedesk.constants.statuses import IssueStatus
from issuedesk.domain.errors import Forbidden, InvalidRequest
from issuedesk.domain.models import HEAD_OFFICE_TAG, Actor, IssueSnapshot, Priority, head_office_location
from issuedesk.services.audit_trail import append_note
from issuedesk.services.visibility import checked_role
from issuedesk.utils.clock import utc_now

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('device_id', 'complaint_type', 'description', 'priority_level')
SUBMIT_NOTE = 'Issue submitted'


def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    text = str(value).strip().lower()
    if text in ('true', '1', 'yes'):
        return True
    if text in ('false', '0', 'no', ''):
        return False
    raise InvalidRequest('under_warranty must be a boolean', {'field': 'under_warranty'})


def _text(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def resolve_location(actor: Actor, branch: Optional[str], head_office_district: str = HEAD_OFFICE_TAG):
    """Location (and stored branch) for a new issue submitted by ``actor``."""
    if actor.district_id == head_office_district:
        branch = branch or actor.branch
        if not branch:
            raise InvalidRequest('Head-office submissions require a branch', {'field': 'branch'})
        return head_office_location(branch), branch
    if not actor.district_id:
        raise InvalidRequest('Submitter has no district', {'field': 'district_id'})
    return actor.district_id, None


def submit_issue(actor: Actor, payload: Dict[str, Any], *, head_office_district: str = HEAD_OFFICE_TAG,
                 now: Optional[datetime] = None) -> IssueSnapshot:
    role = checked_role(actor)
    if role is not Role.SUBMITTER:
        raise Forbidden('Only submitters can raise issues', {'role': role.value, 'required_roles': [Role.SUBMITTER.value]})
    payload = payload or {}
    missing = [f for f in REQUIRED_FIELDS if not _text(payload, f)]
    if missing:
        raise InvalidRequest('Missing required fields', {'missing': missing})
    try:
        priority = Priority.parse(payload.get('priority_level'))
    except ValueError as exc:
        raise InvalidRequest(str(exc), {'field': 'priority_level'})
    location, branch = resolve_location(actor, _text(payload, 'branch'), head_office_district)

    trail = append_note((), actor.label, SUBMIT_NOTE, at=now or utc_now(), actor_id=actor.user_id, action='submit')
    issue = IssueSnapshot(
        id=None,
        device_id=_text(payload, 'device_id'),
        complaint_type=_text(payload, 'complaint_type'),
        description=_text(payload, 'description'),
        priority_level=priority,
        location=location,
        branch=branch,
        submitted_by=actor.user_id,
        status=IssueStatus.PENDING,
        under_warranty=_flag(payload.get('under_warranty')),
        attachment_ref=_text(payload, 'attachment_ref'),
        audit_trail=trail,
        submitted_at=trail[-1].timestamp,
    )
    logger.info('issue submitted by user %s at %s', actor.user_id, location)
    return issue


__all__ = ['REQUIRED_FIELDS', 'resolve_location', 'submit_issue']
