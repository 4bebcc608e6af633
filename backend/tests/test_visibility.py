import pytest
from issuedesk.constants.roles import Role
from issuedesk.domain.errors import UnknownRole
from issuedesk.domain.models import Actor
from issuedesk.services.visibility import ScopeKind, can_view, resolve_scope, visible_issues
from tests.test_utils_seed import make_actor, make_issue

POPULATION = [
    make_issue(1, location='district-7', submitted_by=100),
    make_issue(2, location='district-7', submitted_by=101),
    make_issue(3, location='district-9', submitted_by=100),
    make_issue(4, location='head-office:it', submitted_by=102),
    make_issue(5, location='head-office', branch='it', submitted_by=103),
    make_issue(6, location='head-office:finance', submitted_by=104),
    make_issue(7, location='head-office', branch='finance', submitted_by=104),
]


def _ids(issues):
    return sorted(i.id for i in issues)


@pytest.mark.parametrize('user_id', [100, 101, 102, 999])
def test_submitter_sees_exactly_own(user_id):
    actor = make_actor(user_id, Role.SUBMITTER, district_id='district-7')
    expected = sorted(i.id for i in POPULATION if i.submitted_by == user_id)
    assert _ids(visible_issues(actor, POPULATION)) == expected


def test_submitter_with_no_issues_gets_empty_list():
    assert visible_issues(make_actor(5, Role.SUBMITTER), []) == []


def test_district_approver_sees_district():
    actor = make_actor(200, Role.DISTRICT_APPROVER, district_id='district-7')
    assert _ids(visible_issues(actor, POPULATION)) == [1, 2]


def test_district_approver_without_district_sees_nothing():
    scope = resolve_scope(make_actor(201, Role.DISTRICT_APPROVER))
    assert scope.denies_all


def test_head_office_district_approver_sees_every_branch():
    actor = make_actor(202, Role.DISTRICT_APPROVER, district_id='head-office')
    assert resolve_scope(actor).kind is ScopeKind.HEAD_OFFICE
    assert _ids(visible_issues(actor, POPULATION)) == [4, 5, 6, 7]


def test_head_office_district_id_comes_from_caller():
    actor = make_actor(203, Role.DISTRICT_APPROVER, district_id='hq')
    assert _ids(visible_issues(actor, POPULATION)) == []
    assert _ids(visible_issues(actor, POPULATION, head_office_district='hq')) == [4, 5, 6, 7]


@pytest.mark.parametrize('role', [Role.CENTRAL_APPROVER, Role.TECHNICIAN, Role.SUPER_APPROVER])
def test_head_office_branch_supports_both_location_forms(role):
    actor = make_actor(300, role, district_id='head-office', branch='it')
    assert _ids(visible_issues(actor, POPULATION)) == [4, 5]


@pytest.mark.parametrize('role', [Role.SUPER_APPROVER, Role.ROOT])
def test_elevated_without_branch_sees_all(role):
    actor = make_actor(400, role)
    assert resolve_scope(actor).kind is ScopeKind.ALL
    assert _ids(visible_issues(actor, POPULATION)) == list(range(1, 8))


@pytest.mark.parametrize('role', [Role.CENTRAL_APPROVER, Role.TECHNICIAN])
def test_head_office_role_without_branch_sees_nothing(role):
    actor = make_actor(500, role, district_id='head-office')
    assert resolve_scope(actor).denies_all
    assert visible_issues(actor, POPULATION) == []


def test_unknown_role_raises():
    actor = Actor(user_id=1, role='janitor')
    with pytest.raises(UnknownRole):
        visible_issues(actor, POPULATION)


def test_legacy_role_names_accepted():
    actor = Actor(user_id=600, role='dc', district_id='district-9')
    assert _ids(visible_issues(actor, POPULATION)) == [3]


def test_can_view_includes_assigned():
    tech = make_actor(700, Role.TECHNICIAN)
    issue = make_issue(8, location='district-9', assigned_to=700)
    assert can_view(tech, issue)
    assert not can_view(tech, make_issue(9, location='district-9'))
