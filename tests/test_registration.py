from datetime import timedelta

import pytest

from dual_consent.audit import load_consent_events
from dual_consent.compliance import check_athlete_compliance, has_all_required_consents
from dual_consent.errors import PersistenceError, RequestExpiredError
from dual_consent.models import (
    APPROVED,
    ART8_GDPR_PARENTAL_CONSENT,
    MEDICAL_DATA,
    PENDING,
    REJECTED,
    REQUIRED_MINOR_CONSENTS,
    Athlete,
    Parent,
)
from dual_consent.registration import (
    register_minor,
    request_parental_consent,
    resolve_consent_request,
    revoke_consent,
)
from dual_consent.store import InMemoryUserStore, JsonUserStore


class FlakyStore(InMemoryUserStore):
    """Fails the write matching `fail_on`: "athlete", "parent" or "consents"."""

    def __init__(self, fail_on):
        super().__init__()
        self.fail_on = fail_on

    def add_user(self, user):
        if getattr(user, "role", None) == self.fail_on:
            return False
        return super().add_user(user)

    def add_consents(self, records):
        if self.fail_on == "consents":
            return False
        return super().add_consents(records)


class CommitOnceStore(JsonUserStore):
    """JSON store whose file writes fail after the first one succeeds."""

    commits = 0

    def _commit(self):
        self.commits += 1
        return self.commits == 1 and super()._commit()


def _event_types():
    return [e["event_type"] for e in load_consent_events()]


def test_registering_14_year_old(store, registration, now, today):
    result = register_minor(registration(14), store, now)

    assert result.success
    assert result.errors == []

    users = store.get_users()
    parents = [u for u in users if isinstance(u, Parent)]
    athletes = [u for u in users if isinstance(u, Athlete)]
    assert len(parents) == 1
    assert len(athletes) == 1

    parent, athlete = parents[0], athletes[0]
    assert athlete.needs_parental_consent
    assert athlete.has_parental_consent
    assert athlete.parental_consent_by == parent.id
    assert athlete.parental_consent_date == now.isoformat()
    assert athlete.parent_ids == [parent.id]

    assert parent.has_data_consent and parent.has_medical_consent
    assert parent.children_ids == [athlete.id]
    assert parent.can_give_consent_for == [athlete.id]

    records = store.get_consents()
    assert len(records) == 3
    assert {r.consent_type for r in records} == set(REQUIRED_MINOR_CONSENTS)
    assert all(r.legal_basis_germany == ART8_GDPR_PARENTAL_CONSENT for r in records)
    assert all(r.minor_age == 14 and r.parent_id == parent.id for r in records)
    assert sorted(parent.consent_history) == sorted(r.id for r in records)

    assert check_athlete_compliance(athlete, store, today).compliant
    assert _event_types().count("CONSENT_RECORD_CREATED") == 3
    assert _event_types()[-1] == "MINOR_REGISTERED"


def test_invalid_registration_writes_nothing(store, registration, now):
    result = register_minor(registration(14, medical_data=False), store, now)

    assert not result.success
    assert result.errors == ["Consent to processing of health data is required"]
    assert store.get_users() == []
    assert store.get_consents() == []
    assert _event_types() == ["REGISTRATION_REJECTED"]


@pytest.mark.parametrize("age", [11, 18])
def test_out_of_range_ages_are_rejected(store, registration, now, age):
    result = register_minor(registration(age), store, now)
    assert not result.success
    assert store.get_users() == []


def test_17_year_old_passes_without_consent_records(store, registration, now):
    result = register_minor(registration(17), store, now)

    assert result.success
    assert result.consent_records == []
    assert not result.athlete.needs_parental_consent
    assert not result.athlete.has_parental_consent
    assert result.parent.can_give_consent_for == []
    assert store.get_consents() == []
    assert _event_types()[-1] == "ADULT_MINOR_FLOW_REGISTERED"


def test_17_year_old_without_parent_details_gets_no_parent_account(store, registration, now):
    data = registration(17)
    data.parent.email = ""
    result = register_minor(data, store, now)

    assert result.success
    assert result.parent is None
    assert [u.role for u in store.get_users()] == ["athlete"]


def test_failed_athlete_write_rolls_back_parent(registration, now):
    store = FlakyStore("athlete")
    with pytest.raises(PersistenceError):
        register_minor(registration(14), store, now)

    assert store.get_users() == []
    assert store.get_consents() == []
    assert _event_types()[-1] == "REGISTRATION_PERSISTENCE_FAILED"


def test_failed_parent_write_stops_before_athlete(registration, now):
    store = FlakyStore("parent")
    with pytest.raises(PersistenceError):
        register_minor(registration(14), store, now)
    assert store.get_users() == []


def test_failed_consent_write_rolls_back_accounts(registration, now):
    store = FlakyStore("consents")
    with pytest.raises(PersistenceError):
        register_minor(registration(14), store, now)
    assert store.get_users() == []
    assert store.get_consents() == []


def test_existing_parent_email_is_rejected(store, registration, now):
    register_minor(registration(14), store, now)
    second = registration(13)
    second.athlete.email = "sibling@example.com"

    result = register_minor(second, store, now)

    assert not result.success
    assert result.errors == ["An account with email petra@example.com already exists"]
    assert len(store.get_users()) == 2
    assert len(store.get_consents()) == 3
    assert _event_types()[-1] == "REGISTRATION_REJECTED"


def test_athlete_and_parent_sharing_an_email_is_rejected(store, registration, now):
    data = registration(14)
    data.athlete.email = data.parent.email

    result = register_minor(data, store, now)

    assert not result.success
    assert result.errors == ["Athlete and parent need different email addresses"]
    assert store.get_users() == []


def test_failed_rollback_reports_inconsistent_store(tmp_path, registration, now):
    store = CommitOnceStore(tmp_path / "store.json")

    with pytest.raises(PersistenceError, match="rollback failed"):
        register_minor(registration(14), store, now)
    assert _event_types()[-1] == "REGISTRATION_ROLLBACK_FAILED"


def test_revoke_consent_updates_record_and_athlete(store, registration, now, today):
    result = register_minor(registration(14), store, now)
    medical = next(r for r in result.consent_records if r.consent_type == MEDICAL_DATA)

    revoked = revoke_consent(store, medical.id, now + timedelta(days=1))

    assert revoked.id == medical.id
    stored = {r.id: r for r in store.get_consents()}
    assert len(stored) == 3
    assert stored[medical.id].revoked_at == (now + timedelta(days=1)).isoformat()

    athlete = store.get_user_by_id(result.athlete.id)
    assert not athlete.has_parental_consent
    assert not has_all_required_consents(athlete, store.get_consents(), today)
    assert _event_types()[-1] == "CONSENT_REVOKED"


def test_revoke_unknown_record(store):
    with pytest.raises(KeyError):
        revoke_consent(store, "missing")


def test_async_request_approval_grants_consents(store, make_athlete, make_parent, now, today):
    athlete = make_athlete(
        13, parent_ids=[], has_parental_consent=False, needs_parental_consent=True
    )
    store.add_user(athlete)
    store.add_user(make_parent(children_ids=[], can_give_consent_for=[]))

    request = request_parental_consent(store, athlete.id, "parent-1", now=now)
    resolved = resolve_consent_request(store, request.id, True, now + timedelta(days=2))

    assert resolved.status == APPROVED
    assert store.get_requests()[0].status == APPROVED

    athlete = store.get_user_by_id(athlete.id)
    parent = store.get_user_by_id("parent-1")
    assert athlete.has_parental_consent
    assert athlete.parent_ids == ["parent-1"]
    assert parent.can_give_consent_for == [athlete.id]
    assert len(parent.consent_history) == 3
    assert all(r.minor_age == 13 for r in store.get_consents())
    assert check_athlete_compliance(athlete, store, today).compliant


def test_async_request_rejection_and_expiry(store, make_athlete, make_parent, now):
    store.add_user(make_athlete(13))
    store.add_user(make_parent())

    first = request_parental_consent(store, "athlete-1", "parent-1", now=now)
    assert resolve_consent_request(store, first.id, False, now).status == REJECTED
    assert store.get_consents() == []

    second = request_parental_consent(store, "athlete-1", "parent-1", now=now)
    with pytest.raises(RequestExpiredError):
        resolve_consent_request(store, second.id, True, now + timedelta(days=8))


def test_request_with_unknown_consent_type_is_refused(store, make_athlete, make_parent, now):
    store.add_user(make_athlete(13))
    store.add_user(make_parent())

    with pytest.raises(ValueError):
        request_parental_consent(store, "athlete-1", "parent-1", ["newsletter"], now)
    assert store.get_requests() == []


def test_failed_consent_write_leaves_request_pending(make_athlete, make_parent, now):
    store = FlakyStore("consents")
    store.add_user(
        make_athlete(13, parent_ids=[], has_parental_consent=False, needs_parental_consent=True)
    )
    store.add_user(make_parent(children_ids=[], can_give_consent_for=[]))
    request = request_parental_consent(store, "athlete-1", "parent-1", now=now)

    with pytest.raises(PersistenceError, match="rolled back"):
        resolve_consent_request(store, request.id, True, now + timedelta(days=1))

    assert store.get_requests()[0].status == PENDING
    assert store.get_consents() == []
    assert not store.get_user_by_id("athlete-1").has_parental_consent
    assert store.get_user_by_id("parent-1").can_give_consent_for == []
    assert _event_types()[-1] == "DUAL_CONSENT_REQUEST_RESOLUTION_FAILED"

    store.fail_on = None
    resolved = resolve_consent_request(store, request.id, True, now + timedelta(days=1))
    assert resolved.status == APPROVED
    assert len(store.get_consents()) == 3
