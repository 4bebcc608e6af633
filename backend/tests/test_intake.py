import pytest
from issuedesk.constants.roles import Role
from issuedesk.constants.statuses import IssueStatus
from issuedesk.domain.errors import Forbidden, InvalidRequest
from issuedesk.domain.models import Priority, invariant_violations
from issuedesk.services.intake import resolve_location, submit_issue
from tests.test_lifecycle_helpers import DEFAULT_PAYLOAD
from tests.test_utils_seed import at, make_actor

HO_CLERK = make_actor(110, Role.SUBMITTER, district_id='head-office', branch='it', name='ho-clerk')


def test_district_submission_uses_actor_district():
    clerk = make_actor(100, Role.SUBMITTER, district_id='district-7', name='clerk')
    issue = submit_issue(clerk, DEFAULT_PAYLOAD, now=at(0))
    assert issue.status is IssueStatus.PENDING
    assert issue.location == 'district-7'
    assert issue.branch is None
    assert issue.priority_level is Priority.HIGH
    assert [e.action for e in issue.audit_trail] == ['submit']
    assert issue.submitted_at == at(0)


def test_head_office_submission_is_tagged_with_branch():
    issue = submit_issue(HO_CLERK, DEFAULT_PAYLOAD, now=at(0))
    assert issue.location == 'head-office:it'
    assert issue.branch == 'it'
    assert invariant_violations(issue) == []


def test_payload_branch_overrides_actor_branch():
    issue = submit_issue(HO_CLERK, {**DEFAULT_PAYLOAD, 'branch': ' finance '}, now=at(0))
    assert issue.location == 'head-office:finance'
    assert issue.branch == 'finance'


def test_head_office_submitter_without_branch_refused():
    clerk = make_actor(111, Role.SUBMITTER, district_id='head-office')
    with pytest.raises(InvalidRequest) as exc:
        submit_issue(clerk, DEFAULT_PAYLOAD)
    assert exc.value.details == {'field': 'branch'}
    assert exc.value.http_status == 400


def test_submitter_without_district_refused():
    with pytest.raises(InvalidRequest) as exc:
        submit_issue(make_actor(112, Role.SUBMITTER), DEFAULT_PAYLOAD)
    assert exc.value.details == {'field': 'district_id'}


def test_head_office_district_id_is_configurable():
    clerk = make_actor(113, Role.SUBMITTER, district_id='hq', branch='it')
    assert resolve_location(clerk, None) == ('hq', None)
    assert resolve_location(clerk, None, head_office_district='hq') == ('head-office:it', 'it')


def test_only_submitters_raise_issues():
    officer = make_actor(200, Role.DISTRICT_APPROVER, district_id='district-7')
    with pytest.raises(Forbidden):
        submit_issue(officer, DEFAULT_PAYLOAD)
