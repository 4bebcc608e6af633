from __future__ import annotations
from flask import Blueprint, current_app, make_response, jsonify, request
from sqlalchemy import String, and_, func, or_, select, type_coerce
from issuedesk import get_db
from issuedesk.constants.roles import APPROVING_ROLES, Role, role_names
from issuedesk.constants.statuses import ACTIVE_FOR_ROLE, IssueStatus, display_name, resolve, storage_values
from issuedesk.decorators.audit import audit_log
from issuedesk.decorators.auth import require_roles
from issuedesk.domain.errors import Forbidden, InvalidRequest
from issuedesk.domain.models import HEAD_OFFICE_TAG, IssueSnapshot, head_office_location
from issuedesk.models.authz import User
from issuedesk.models.issue import Issue
from issuedesk.services import review, store
from issuedesk.services.intake import submit_issue
from issuedesk.services.lifecycle import Intent, apply_transition, parse_intent
from issuedesk.services.policy import current_actor
from issuedesk.services.visibility import can_view, checked_role, resolve_scope
from issuedesk.utils.clock import format_iso
from issuedesk.utils.listing import (
    apply_pagination, canonicalize_timestamp, compute_etag, handle_conditional, make_cached_list_response,
)
from issuedesk.utils.sorting import apply_multi_sort

issues_bp = Blueprint('issues', __name__)

SORT_FIELDS = {
    'id': Issue.id,
    'status': Issue.status,
    'priority_level': Issue.priority_level,
    'submitted_at': Issue.submitted_at,
    'updated_at': Issue.updated_at,
    'device_id': Issue.device_id,
}
REVIEW_QUEUE_STATUSES = (IssueStatus.PENDING_REVIEW, IssueStatus.RESOLVED, IssueStatus.COMPLETED)
TECHNICIAN_QUEUE_STATUSES = (IssueStatus.ASSIGNED, IssueStatus.IN_PROGRESS, IssueStatus.REOPENED)


def issue_json(issue: IssueSnapshot):
    body = {
        'id': issue.id,
        'device_id': issue.device_id,
        'complaint_type': issue.complaint_type,
        'description': issue.description,
        'priority_level': issue.priority_level.value,
        'under_warranty': issue.under_warranty,
        'attachment_ref': issue.attachment_ref,
        'location': issue.location,
        'branch': issue.branch,
        'status': issue.status.value,
        'status_display': display_name(issue.status),
        'last_requested_status': issue.last_requested_status.value if issue.last_requested_status else None,
        'submitted_by': issue.submitted_by,
        'assigned_to': issue.assigned_to,
        'version': issue.version,
        'audit_trail': [e.to_dict() for e in issue.audit_trail],
    }
    body.update({name: format_iso(ts) for name, ts in issue.milestones().items()})
    return body


def _status_column_in(statuses):
    # Raw comparison so rows still holding legacy strings match.
    return type_coerce(Issue.status, String).in_(storage_values(statuses))


def _parse_statuses(raw: str):
    out = []
    for token in raw.split(','):
        token = token.strip()
        if not token:
            continue
        status = resolve(token)
        if status is None:
            raise InvalidRequest(f'Unknown status {token}', {'status': token})
        out.append(status)
    return out


def _head_office() -> str:
    return current_app.config['HEAD_OFFICE_DISTRICT_ID']


def visible_issue_stmt(actor):
    scope = resolve_scope(actor, _head_office())
    if scope.denies_all:
        raise Forbidden('No issues are visible to this role', {'role': actor.role.value})
    stmt = select(Issue).where(scope.clause(Issue))
    # Hints can only narrow the visible set.
    district = request.args.get('district')
    if district:
        stmt = stmt.where(Issue.location == district)
    branch = request.args.get('branch')
    if branch:
        stmt = stmt.where(or_(
            Issue.location == head_office_location(branch),
            and_(Issue.location == HEAD_OFFICE_TAG, Issue.branch == branch),
        ))
    status = request.args.get('status')
    if status:
        stmt = stmt.where(_status_column_in(_parse_statuses(status)))
    bucket = request.args.get('bucket')
    if bucket:
        active = ACTIVE_FOR_ROLE.get(checked_role(actor), frozenset())
        if bucket == 'active':
            stmt = stmt.where(_status_column_in(active))
        elif bucket == 'archived':
            stmt = stmt.where(~_status_column_in(active))
        else:
            raise InvalidRequest('bucket must be active or archived', {'bucket': bucket})
    return stmt


def _list_response(stmt):
    session = get_db()
    stmt = apply_multi_sort(stmt, request.args.get('sort'), SORT_FIELDS, Issue.id)
    rows, total, limit, offset = apply_pagination(session, stmt)
    rows_json = [issue_json(i) for i in store.snapshots(session, rows)]
    latest_ts = max((r.updated_at for r in rows if r.updated_at), default=None)
    resp, etag = make_cached_list_response(rows_json, total, limit, offset, latest_ts)
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


@issues_bp.route('', methods=['GET', 'HEAD'])
@require_roles()
def list_issues():
    return _list_response(visible_issue_stmt(current_actor()))


@issues_bp.get('/review-queue')
@require_roles(*APPROVING_ROLES)
def review_queue():
    stmt = visible_issue_stmt(current_actor()).where(_status_column_in(REVIEW_QUEUE_STATUSES))
    return _list_response(stmt)


@issues_bp.get('/assigned')
@require_roles(Role.TECHNICIAN)
def assigned_issues():
    actor = current_actor()
    stmt = select(Issue).where(Issue.assigned_to == actor.user_id, _status_column_in(TECHNICIAN_QUEUE_STATUSES))
    return _list_response(stmt)


@issues_bp.post('')
@require_roles(Role.SUBMITTER)
@audit_log('ISSUE.SUBMIT', entity='Issue', entity_id_key='id', meta_keys=['status', 'location', 'priority_level'])
def create_issue():
    session = get_db()
    issue = submit_issue(
        current_actor(),
        request.get_json(silent=True) or {},
        head_office_district=_head_office(),
    )
    return issue_json(store.create(session, issue)), 201


def _visible_issue(issue_id: int) -> IssueSnapshot:
    issue = store.load(get_db(), issue_id)
    if not can_view(current_actor(), issue, _head_office()):
        raise Forbidden('Issue is outside your jurisdiction', {'issue_id': issue_id})
    return issue


@issues_bp.route('/<int:issue_id>', methods=['GET', 'HEAD'])
@require_roles()
def get_issue(issue_id: int):
    issue = _visible_issue(issue_id)
    session = get_db()
    latest_ts = session.execute(select(Issue.updated_at).where(Issue.id == issue_id)).scalar_one_or_none()
    latest_iso = format_iso(canonicalize_timestamp(latest_ts)) if latest_ts else ''
    etag = compute_etag([(issue.id, issue.version)], 1, 1, 0, latest_iso)
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    resp = make_response(jsonify(issue_json(issue)))
    resp.headers['ETag'] = etag
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


def _prefetch_issue(issue_id: int):
    issue = store.load(get_db(), issue_id)
    return {'status': issue.status.value, 'assigned_to': issue.assigned_to}


def _assignee(session, raw):
    """(id, label) of the technician named by ``raw``; (None, None) when absent."""
    if raw is None or raw == '':
        return None, None
    try:
        user_id = int(raw)
    except (TypeError, ValueError):
        raise InvalidRequest('assignee_id must be an integer', {'assignee_id': raw})
    user = session.get(User, user_id)
    if not user or not user.is_active:
        raise InvalidRequest('Assignee not found', {'assignee_id': user_id})
    if user.role not in role_names(Role.TECHNICIAN):
        raise InvalidRequest('Assignee must be a technician', {'assignee_id': user_id, 'role': user.role})
    return user.id, user.name


@issues_bp.post('/<int:issue_id>/transitions')
@require_roles()
@audit_log('ISSUE.TRANSITION', entity='Issue', entity_id_arg='issue_id', diff_keys=['status', 'assigned_to'],
           pre_fetch=lambda a, kw: _prefetch_issue(kw.get('issue_id')),
           meta_builder=lambda data, rv, a, kw: {'intent': parse_intent((request.get_json(silent=True) or {}).get('intent'))})
def transition_issue(issue_id: int):
    session = get_db()
    data = request.get_json(silent=True) or {}
    intent = parse_intent(data.get('intent'))
    if not intent:
        raise InvalidRequest('intent required', {'intents': [i.value for i in Intent]})
    assignee_id = assignee_label = None
    if intent == Intent.ASSIGN.value:
        assignee_id, assignee_label = _assignee(session, data.get('assignee_id'))
    before = store.load(session, issue_id)
    after = apply_transition(before, current_actor(), intent, data.get('comment'),
                             assignee_id=assignee_id, assignee_label=assignee_label,
                             head_office_district=_head_office())
    return issue_json(store.save_transition(session, before, after))


def _flag(value, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    raise InvalidRequest(f'{field_name} must be a boolean', {'field': field_name})


@issues_bp.post('/<int:issue_id>/review')
@require_roles()
@audit_log('ISSUE.REVIEW', entity='Issue', entity_id_arg='issue_id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _prefetch_issue(kw.get('issue_id')))
def review_issue(issue_id: int):
    session = get_db()
    data = request.get_json(silent=True) or {}
    approved = _flag(data.get('approved'), 'approved')
    before = store.load(session, issue_id)
    after = review.confirm(before, current_actor(), approved, data.get('comment'),
                           head_office_district=_head_office())
    return issue_json(store.save_transition(session, before, after))


@issues_bp.delete('/<int:issue_id>')
@require_roles()
@audit_log('ISSUE.DELETE', entity='Issue', entity_id_arg='issue_id')
def delete_issue(issue_id: int):
    session = get_db()
    store.delete_issue(session, store.load(session, issue_id), current_actor())
    return '', 204


@issues_bp.get('/stats')
@require_roles()
def issue_counts():
    """Count per status bucket for the caller's visible set (dashboard badges)."""
    actor = current_actor()
    session = get_db()
    stmt = visible_issue_stmt(actor).with_only_columns(Issue.status, func.count(Issue.id)).group_by(Issue.status)
    active = ACTIVE_FOR_ROLE.get(checked_role(actor), frozenset())
    counts = {'active': 0, 'archived': 0}
    for status, count in session.execute(stmt).all():
        counts['active' if status in active else 'archived'] += int(count)
    counts['total'] = counts['active'] + counts['archived']
    return counts
