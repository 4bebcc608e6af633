import pytest
from sqlalchemy import select, text
from issuedesk import get_db
from issuedesk.constants.roles import Role
from issuedesk.constants.statuses import IssueStatus
from issuedesk.domain.errors import Forbidden, IllegalTransition, NoChange, NotDeletable, NotFound
from issuedesk.models.issue import IssueAuditEntry
from issuedesk.services import store
from issuedesk.services.lifecycle import Intent, apply_transition
from tests.test_utils_seed import (
    BASE_TIME, actor_for, at, ensure_user, make_issue, set_legacy_comment, set_raw_status,
)

S = IssueStatus


@pytest.fixture()
def people(app_context):
    return {
        'clerk': actor_for(ensure_user('store.clerk@example.com', Role.SUBMITTER, district_id='district-3')),
        'officer': actor_for(ensure_user('store.officer@example.com', Role.DISTRICT_APPROVER, district_id='district-3')),
        'super': actor_for(ensure_user('store.super@example.com', Role.SUPER_APPROVER, district_id='head-office')),
        'root': actor_for(ensure_user('store.root@example.com', Role.ROOT)),
    }


def _persist(actor, **changes):
    return store.create(get_db(), make_issue(location='district-3', submitted_by=actor.user_id, **changes))


def test_create_and_load_round_trip(people):
    created = _persist(people['clerk'])
    assert created.id is not None
    assert created.version == 0
    loaded = store.load(get_db(), created.id)
    assert loaded.status is S.PENDING
    assert loaded.submitted_at == BASE_TIME
    assert [e.text for e in loaded.audit_trail] == ['Issue submitted']
    assert loaded.audit_trail[0].timestamp == BASE_TIME


def test_load_missing_issue(app_context):
    with pytest.raises(NotFound) as exc:
        store.load(get_db(), 999999)
    assert exc.value.http_status == 404


def test_save_transition_appends_entry_and_bumps_version(people):
    session = get_db()
    before = _persist(people['clerk'])
    after = apply_transition(before, people['officer'], Intent.APPROVE_DISTRICT, now=at(5))
    saved = store.save_transition(session, before, after)
    assert saved.status is S.DC_APPROVED
    assert saved.version == before.version + 1
    assert saved.dc_decided_at == at(5)
    assert len(saved.audit_trail) == 2
    positions = session.execute(
        select(IssueAuditEntry.position).where(IssueAuditEntry.issue_id == before.id).order_by(IssueAuditEntry.position)
    ).scalars().all()
    assert positions == [0, 1]


def test_stale_write_loses_with_illegal_transition(people):
    session = get_db()
    before = _persist(people['clerk'])
    approve = apply_transition(before, people['officer'], Intent.APPROVE_DISTRICT, now=at(1))
    reject = apply_transition(before, people['officer'], Intent.REJECT_DISTRICT, now=at(1))
    store.save_transition(session, before, approve)
    with pytest.raises(IllegalTransition) as exc:
        store.save_transition(session, before, reject)
    assert exc.value.details['current_status'] == S.DC_APPROVED.value
    current = store.load(session, before.id)
    assert current.status is S.DC_APPROVED
    assert len(current.audit_trail) == 2


def test_duplicate_concurrent_write_is_no_change(people):
    session = get_db()
    before = _persist(people['clerk'])
    first = apply_transition(before, people['officer'], Intent.APPROVE_DISTRICT, now=at(1))
    second = apply_transition(before, people['officer'], Intent.APPROVE_DISTRICT, now=at(2))
    store.save_transition(session, before, first)
    with pytest.raises(NoChange):
        store.save_transition(session, before, second)
    assert len(store.load(session, before.id).audit_trail) == 2


def test_legacy_status_is_normalized_and_rewritten(people):
    session = get_db()
    created = _persist(people['clerk'])
    set_raw_status(created.id, 'Approved by DC')
    before = store.load(session, created.id)
    assert before.status is S.DC_APPROVED
    after = apply_transition(before, people['super'], Intent.APPROVE_CENTRAL, now=at(3))
    store.save_transition(session, before, after)
    raw = session.execute(text('SELECT status FROM issues WHERE id = :i'), {'i': created.id}).scalar_one()
    assert raw == 'SuperAdminApproved'


def test_legacy_comment_precedes_new_entries(people):
    session = get_db()
    created = _persist(people['clerk'])
    set_legacy_comment(created.id, 'Approved by DC (dc1) at 2024-02-01T10:00:00Z\n\nChecked cabling')
    loaded = store.load(session, created.id)
    texts = [e.text for e in loaded.audit_trail]
    assert texts == ['Approved by DC', 'Checked cabling', 'Issue submitted']
    assert loaded.audit_trail[0].actor_label == 'dc1'


def test_submitter_deletes_own_pending_issue(people):
    session = get_db()
    created = _persist(people['clerk'])
    store.delete_issue(session, created, people['clerk'])
    with pytest.raises(NotFound):
        store.load(session, created.id)
    left = session.execute(select(IssueAuditEntry).where(IssueAuditEntry.issue_id == created.id)).all()
    assert left == []


def test_delete_after_approval_refused(people):
    session = get_db()
    before = _persist(people['clerk'])
    after = store.save_transition(session, before, apply_transition(before, people['officer'], Intent.APPROVE_DISTRICT))
    with pytest.raises(NotDeletable) as exc:
        store.delete_issue(session, after, people['clerk'])
    assert exc.value.http_status == 409
    assert store.load(session, before.id).status is S.DC_APPROVED


def test_delete_by_other_user_forbidden(people):
    session = get_db()
    created = _persist(people['clerk'])
    with pytest.raises(Forbidden):
        store.delete_issue(session, created, people['officer'])
    store.delete_issue(session, created, people['root'])


def test_delete_with_stale_snapshot_refused(people):
    session = get_db()
    before = _persist(people['clerk'])
    store.save_transition(session, before, apply_transition(before, people['officer'], Intent.REJECT_DISTRICT))
    with pytest.raises(NotDeletable):
        store.delete_issue(session, before, people['clerk'])
