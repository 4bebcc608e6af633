from __future__ import annotations
from datetime import datetime
from flask import Blueprint, request
from sqlalchemy import func
from issuedesk import get_db
from issuedesk.constants.roles import REPORTING_ROLES
from issuedesk.constants.statuses import display_name
from issuedesk.decorators.auth import require_roles
from issuedesk.domain.errors import InvalidRequest
from issuedesk.models.issue import Issue
from issuedesk.routes.issues import visible_issue_stmt
from issuedesk.services.policy import current_actor
from issuedesk.utils.clock import ensure_utc
from issuedesk.utils.listing import handle_conditional, make_cached_list_response

rpt_bp = Blueprint('reports', __name__)

REPORT_COLUMNS = {
    'by_status': Issue.status,
    'by_district': Issue.location,
    'by_priority': Issue.priority_level,
}


def _parse_date(value: str, field_name: str):
    if not value:
        return None
    for fmt in ('%Y-%m-%d', '%Y-%m-%dT%H:%M:%S', '%Y-%m-%dT%H:%M:%S%z'):
        try:
            return ensure_utc(datetime.strptime(value, fmt))
        except ValueError:
            continue
    raise InvalidRequest(f'{field_name} must be YYYY-MM-DD or ISO 8601', {'field': field_name, 'value': value})


def _gather(report_type: str, start_date=None, end_date=None):
    session = get_db()
    column = REPORT_COLUMNS[report_type]
    base = visible_issue_stmt(current_actor())
    if start_date:
        base = base.where(Issue.submitted_at >= start_date)
    if end_date:
        base = base.where(Issue.submitted_at <= end_date)
    stmt = base.with_only_columns(column, func.count(Issue.id), func.max(Issue.updated_at)).group_by(column)
    counts = {}
    latest_ts = None
    # Legacy status strings come back already folded by the column type; merge their groups.
    for key, count, updated in session.execute(stmt).all():
        label = key.value if report_type == 'by_status' else key
        counts[label] = counts.get(label, 0) + int(count)
        if updated is not None:
            updated = ensure_utc(updated)
            latest_ts = updated if latest_ts is None or updated > latest_ts else latest_ts
    rows = []
    for key in sorted(counts):
        row = {'key': key, 'count': counts[key]}
        if report_type == 'by_status':
            row['display'] = display_name(key)
        rows.append(row)
    return rows, latest_ts


@rpt_bp.route('/issues', methods=['GET', 'HEAD'])
@require_roles(*REPORTING_ROLES)
def issue_report():
    report_type = request.args.get('type', 'by_status')
    if report_type not in REPORT_COLUMNS:
        raise InvalidRequest('Unknown report type', {'type': report_type, 'allowed': sorted(REPORT_COLUMNS)})
    start_date = _parse_date(request.args.get('start_date'), 'start_date')
    end_date = _parse_date(request.args.get('end_date'), 'end_date')
    rows, latest_ts = _gather(report_type, start_date, end_date)
    resp, etag = make_cached_list_response(rows, len(rows), len(rows), 0, latest_ts,
                                           tag_items=[(r['key'], r['count']) for r in rows])
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp
