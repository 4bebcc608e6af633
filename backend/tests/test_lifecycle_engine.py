import itertools
import pytest
from dataclasses import replace
from issuedesk.constants.roles import Role
from issuedesk.constants.statuses import ALL_STATUSES, IssueStatus
from issuedesk.domain.errors import Forbidden, IllegalTransition, InvalidRequest, NoChange, UnknownRole
from issuedesk.domain.models import Actor, invariant_violations
from issuedesk.services.intake import submit_issue
from issuedesk.services.lifecycle import ISSUE_TRANSITIONS, Intent, apply_transition
from tests.test_utils_seed import at, make_actor, make_issue

S = IssueStatus
CLERK = make_actor(100, Role.SUBMITTER, district_id='district-7', name='clerk')
OFFICER = make_actor(200, Role.DISTRICT_APPROVER, district_id='district-7', name='officer')
SUPER = make_actor(300, Role.SUPER_APPROVER, district_id='head-office', name='super')
TECH = make_actor(400, Role.TECHNICIAN, district_id='head-office', branch='it', name='tech')
ROLE_ACTORS = {
    Role.SUBMITTER: CLERK,
    Role.DISTRICT_APPROVER: OFFICER,
    Role.CENTRAL_APPROVER: make_actor(500, Role.CENTRAL_APPROVER, branch='it'),
    Role.TECHNICIAN: TECH,
    Role.SUPER_APPROVER: SUPER,
    Role.ROOT: make_actor(1, Role.ROOT),
}
# every grid actor can see the issue it is handed
ROLE_LOCATIONS = {Role.CENTRAL_APPROVER: 'head-office:it'}


def _combos():
    for intent, status, role in itertools.product(ISSUE_TRANSITIONS.intents(), ALL_STATUSES, Role):
        edge = ISSUE_TRANSITIONS.edge_for(intent)
        if role in edge.roles and status in edge.sources:
            continue
        yield intent, status, role


@pytest.mark.parametrize('intent,status,role', list(_combos()))
def test_edges_outside_table_are_refused_and_issue_unchanged(intent, status, role):
    issue = make_issue(status=status, assigned_to=TECH.user_id, location=ROLE_LOCATIONS.get(role, 'district-7'))
    before = replace(issue)
    edge = ISSUE_TRANSITIONS.edge_for(intent)
    expected = NoChange if (status == edge.target and role in edge.roles) else IllegalTransition
    with pytest.raises(expected) as exc:
        apply_transition(issue, ROLE_ACTORS[role], intent, assignee_id=TECH.user_id)
    assert issue == before
    assert issue.audit_trail == before.audit_trail
    if expected is IllegalTransition:
        assert exc.value.details['current_status'] == status.value
        assert exc.value.details['intent'] == intent


def test_unknown_intent_is_illegal():
    with pytest.raises(IllegalTransition):
        apply_transition(make_issue(), OFFICER, 'teleport')


def test_unknown_role_is_reported():
    with pytest.raises(UnknownRole):
        apply_transition(make_issue(), Actor(user_id=9, role='janitor'), Intent.APPROVE_DISTRICT)


def test_retry_yields_no_change_and_single_entry():
    issue = make_issue()
    approved = apply_transition(issue, OFFICER, Intent.APPROVE_DISTRICT, now=at(5))
    with pytest.raises(NoChange):
        apply_transition(approved, OFFICER, Intent.APPROVE_DISTRICT, now=at(6))
    assert len(approved.audit_trail) == len(issue.audit_trail) + 1


def test_district_approver_outside_district_forbidden():
    other = make_actor(201, Role.DISTRICT_APPROVER, district_id='district-9')
    with pytest.raises(Forbidden):
        apply_transition(make_issue(), other, Intent.APPROVE_DISTRICT)


def test_technician_must_be_assignee():
    issue = make_issue(status=S.ASSIGNED, assigned_to=999)
    with pytest.raises(Forbidden) as exc:
        apply_transition(issue, TECH, Intent.START)
    assert exc.value.http_status == 403


def test_assign_requires_assignee():
    with pytest.raises(InvalidRequest):
        apply_transition(make_issue(status=S.SUPER_ADMIN_APPROVED), SUPER, Intent.ASSIGN)


def test_assign_names_assignee_in_note():
    issue = apply_transition(make_issue(status=S.DC_APPROVED), SUPER, Intent.ASSIGN, 'urgent',
                             assignee_id=TECH.user_id, assignee_label='tech', now=at(5))
    assert issue.status is S.ASSIGNED
    assert issue.assigned_to == TECH.user_id
    assert issue.assigned_at == at(5)
    assert issue.audit_trail[-1].text == 'Assigned to tech: urgent'


def test_resolve_is_converted_to_pending_review():
    issue = make_issue(status=S.IN_PROGRESS, assigned_to=TECH.user_id)
    resolved = apply_transition(issue, TECH, Intent.RESOLVE, now=at(30))
    assert resolved.status is S.PENDING_REVIEW
    assert resolved.status is not S.RESOLVED
    assert resolved.last_requested_status is S.RESOLVED
    assert resolved.resolved_at == at(30)


@pytest.mark.parametrize('assignee', [TECH.user_id, 12345, None])
def test_reopen_clears_assignment(assignee):
    issue = make_issue(status=S.COMPLETED, assigned_to=assignee, submitted_by=CLERK.user_id)
    reopened = apply_transition(issue, CLERK, Intent.REOPEN, 'still broken', now=at(60))
    assert reopened.status is S.REOPENED
    assert reopened.assigned_to is None
    assert reopened.reopened_at == at(60)
    assert reopened.audit_trail[-1].text == 'still broken'


def test_reopen_by_other_submitter_forbidden():
    issue = make_issue(status=S.COMPLETED, submitted_by=CLERK.user_id)
    with pytest.raises(Forbidden):
        apply_transition(issue, make_actor(101, Role.SUBMITTER, district_id='district-7'), Intent.REOPEN)


def test_clock_skew_keeps_trail_monotonic():
    issue = make_issue()
    approved = apply_transition(issue, OFFICER, Intent.APPROVE_DISTRICT, now=at(-30))
    assert approved.audit_trail[-1].timestamp == issue.audit_trail[-1].timestamp
    assert approved.dc_decided_at == approved.audit_trail[-1].timestamp
    assert invariant_violations(approved) == []


def test_end_to_end_scenario():
    issue = submit_issue(CLERK, {
        'device_id': 'PC-7', 'complaint_type': 'Hardware', 'description': 'No power', 'priority_level': 'high',
    }, now=at(0))
    issue = replace(issue, id=42)
    assert issue.status is S.PENDING
    assert issue.location == 'district-7'
    steps = [
        (OFFICER, Intent.APPROVE_DISTRICT, {}, S.DC_APPROVED, 'dc_decided_at'),
        (SUPER, Intent.APPROVE_CENTRAL, {}, S.SUPER_ADMIN_APPROVED, 'super_admin_decided_at'),
        (SUPER, Intent.ASSIGN, {'assignee_id': TECH.user_id, 'assignee_label': 'tech'}, S.ASSIGNED, 'assigned_at'),
        (TECH, Intent.START, {}, S.IN_PROGRESS, 'started_at'),
        (TECH, Intent.RESOLVE, {}, S.PENDING_REVIEW, 'resolved_at'),
        (SUPER, Intent.APPROVE_REVIEW, {}, S.COMPLETED, 'completed_at'),
        (CLERK, Intent.REOPEN, {}, S.REOPENED, 'reopened_at'),
    ]
    history = list(issue.audit_trail)
    for minute, (actor, intent, extra, expected, stamp) in enumerate(steps, start=1):
        before_len = len(issue.audit_trail)
        issue = apply_transition(issue, actor, intent, now=at(minute), **extra)
        assert issue.status is expected
        assert getattr(issue, stamp) is not None
        assert len(issue.audit_trail) == before_len + 1
        assert list(issue.audit_trail[:before_len]) == history
        history = list(issue.audit_trail)
        assert invariant_violations(issue) == []
        if expected is S.ASSIGNED:
            assert issue.assigned_to == TECH.user_id
    assert issue.assigned_to is None
    assert issue.completed_at == at(6)


def test_head_office_issue_reaches_central_approval():
    clerk = make_actor(110, Role.SUBMITTER, district_id='head-office', branch='it', name='ho-clerk')
    head_office_dc = make_actor(210, Role.DISTRICT_APPROVER, district_id='head-office', name='ho-officer')
    central = make_actor(500, Role.CENTRAL_APPROVER, district_id='head-office', branch='it', name='central')
    issue = submit_issue(clerk, {
        'device_id': 'PC-9', 'complaint_type': 'Network', 'description': 'No uplink', 'priority_level': 'low',
    }, now=at(0))
    issue = replace(issue, id=43)
    assert issue.location == 'head-office:it'
    issue = apply_transition(issue, head_office_dc, Intent.APPROVE_DISTRICT, now=at(1))
    assert issue.status is S.DC_APPROVED
    issue = apply_transition(issue, central, Intent.APPROVE_CENTRAL, now=at(2))
    assert issue.status is S.SUPER_ADMIN_APPROVED
    assert issue.super_admin_decided_at == at(2)
    assert invariant_violations(issue) == []


def test_head_office_approver_covers_bare_location():
    head_office_dc = make_actor(210, Role.DISTRICT_APPROVER, district_id='head-office')
    issue = make_issue(location='head-office', branch='it')
    assert apply_transition(issue, head_office_dc, Intent.APPROVE_DISTRICT, now=at(1)).status is S.DC_APPROVED
    with pytest.raises(Forbidden):
        apply_transition(make_issue(), head_office_dc, Intent.APPROVE_DISTRICT)


def test_foreign_approver_learns_nothing_about_status():
    other = make_actor(201, Role.DISTRICT_APPROVER, district_id='district-9')
    issue = make_issue(status=S.DC_APPROVED)
    with pytest.raises(Forbidden) as exc:
        apply_transition(issue, other, Intent.APPROVE_DISTRICT)
    assert 'current_status' not in exc.value.details
    assert exc.value.http_status == 403


def test_out_of_branch_reviewer_refused_before_status_check():
    reviewer = make_actor(301, Role.SUPER_APPROVER, district_id='head-office', branch='finance')
    issue = make_issue(status=S.PENDING, location='head-office:it')
    with pytest.raises(Forbidden) as exc:
        apply_transition(issue, reviewer, Intent.APPROVE_REVIEW)
    assert 'current_status' not in exc.value.details
