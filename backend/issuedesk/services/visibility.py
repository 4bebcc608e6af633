"""Which issues an actor may see.

Rules, first match wins:
  1. submitter            -> issues they submitted
  2. district approver    -> issues located in their district; the head-office district's
                             approver gets every head-office location (tagged or bare)
  3. head-office role with a branch -> issues of that branch (tagged ``head-office:<branch>``
     or the older bare ``head-office`` location with a matching ``branch`` column)
  4. super approver / root without a branch -> everything
  5. anything else        -> nothing; callers must report this as an authorization failure

The same ``VisibilityScope`` answers both the in-memory question (``matches``) and the
SQL one (``clause``) so list queries and per-issue checks cannot drift apart.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from sqlalchemy import and_, false, or_, true

from issuedesk.constants.roles import ELEVATED_ROLES, HEAD_OFFICE_ROLES, Role, parse_role
from issuedesk.domain.errors import UnknownRole
from issuedesk.domain.models import HEAD_OFFICE_TAG, Actor, IssueSnapshot, head_office_location, is_head_office_location

logger = logging.getLogger(__name__)


class ScopeKind(str, Enum):
    OWN = 'own'
    DISTRICT = 'district'
    HEAD_OFFICE = 'head-office'
    BRANCH = 'branch'
    ALL = 'all'
    NONE = 'none'


@dataclass(frozen=True)
class VisibilityScope:
    kind: ScopeKind
    user_id: Optional[int] = None
    district_id: Optional[str] = None
    branch: Optional[str] = None

    @property
    def denies_all(self) -> bool:
        return self.kind is ScopeKind.NONE

    def matches(self, issue: IssueSnapshot) -> bool:
        if self.kind is ScopeKind.OWN:
            return issue.submitted_by == self.user_id
        if self.kind is ScopeKind.DISTRICT:
            return issue.location == self.district_id
        if self.kind is ScopeKind.HEAD_OFFICE:
            return is_head_office_location(issue.location)
        if self.kind is ScopeKind.BRANCH:
            if issue.location == head_office_location(self.branch):
                return True
            return issue.location == HEAD_OFFICE_TAG and issue.branch == self.branch
        return self.kind is ScopeKind.ALL

    def clause(self, model):
        """SQLAlchemy filter expression equivalent to ``matches`` for an issue model."""
        if self.kind is ScopeKind.OWN:
            return model.submitted_by == self.user_id
        if self.kind is ScopeKind.DISTRICT:
            return model.location == self.district_id
        if self.kind is ScopeKind.HEAD_OFFICE:
            return or_(model.location == HEAD_OFFICE_TAG, model.location.like(head_office_location('%')))
        if self.kind is ScopeKind.BRANCH:
            return or_(
                model.location == head_office_location(self.branch),
                and_(model.location == HEAD_OFFICE_TAG, model.branch == self.branch),
            )
        if self.kind is ScopeKind.ALL:
            return true()
        return false()


def checked_role(actor: Actor) -> Role:
    try:
        return parse_role(actor.role)
    except ValueError:
        logger.error('Unrecognised role %r for user %s; denying visibility', actor.role, actor.user_id)
        raise UnknownRole(f'Unknown role {actor.role!r}', {'role': str(actor.role), 'user_id': actor.user_id})


def resolve_scope(actor: Actor, head_office_district: str = HEAD_OFFICE_TAG) -> VisibilityScope:
    """Scope for ``actor``; ``head_office_district`` is the district id of head-office users."""
    role = checked_role(actor)
    if role is Role.SUBMITTER:
        return VisibilityScope(ScopeKind.OWN, user_id=actor.user_id)
    if role is Role.DISTRICT_APPROVER:
        if actor.district_id is None:
            return VisibilityScope(ScopeKind.NONE)
        if actor.district_id == head_office_district:
            return VisibilityScope(ScopeKind.HEAD_OFFICE, district_id=actor.district_id)
        return VisibilityScope(ScopeKind.DISTRICT, district_id=actor.district_id)
    if role in HEAD_OFFICE_ROLES and actor.branch:
        return VisibilityScope(ScopeKind.BRANCH, branch=actor.branch)
    if role in ELEVATED_ROLES:
        return VisibilityScope(ScopeKind.ALL)
    return VisibilityScope(ScopeKind.NONE)


def visible_issues(actor: Actor, issues: Iterable[IssueSnapshot],
                   head_office_district: str = HEAD_OFFICE_TAG) -> List[IssueSnapshot]:
    scope = resolve_scope(actor, head_office_district)
    return [issue for issue in issues if scope.matches(issue)]


def can_view(actor: Actor, issue: IssueSnapshot, head_office_district: str = HEAD_OFFICE_TAG) -> bool:
    """Detail access: anything in scope, plus issues assigned to the actor."""
    if issue.assigned_to is not None and issue.assigned_to == actor.user_id:
        return True
    return resolve_scope(actor, head_office_district).matches(issue)


__all__ = ['ScopeKind', 'VisibilityScope', 'checked_role', 'resolve_scope', 'visible_issues', 'can_view']
