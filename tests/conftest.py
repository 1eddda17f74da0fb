import os
import tempfile
from datetime import date, datetime, timezone

# config creates its data/log directories on import; keep them out of the tree
os.environ.setdefault("VIGORLOG_HOME", tempfile.mkdtemp(prefix="vigorlog_"))

import pytest

from dual_consent import audit, store as store_module
from dual_consent.models import (
    Athlete,
    AthleteInput,
    ConsentFlags,
    MinorRegistrationData,
    Parent,
    ParentInput,
)
from dual_consent.store import InMemoryUserStore

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def born_years_ago(years: int, today: date = TODAY) -> str:
    return date(today.year - years, today.month, today.day).isoformat()


@pytest.fixture(autouse=True)
def _isolated_files(tmp_path, monkeypatch):
    """Event log and JSON store go to a per-test temp directory."""
    monkeypatch.setattr(audit, "CONSENT_LOG_FILE", tmp_path / "consent_events.jsonl")
    monkeypatch.setattr(store_module, "STORE_FILE", tmp_path / "store.json")
    yield


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def store():
    return InMemoryUserStore()


@pytest.fixture
def registration():
    """Builds a complete, valid registration for an athlete of the given age."""
    def _mk(age: int = 14, **consents):
        flags = dict(data_processing=True, medical_data=True, parent_access=True)
        flags.update(consents)
        return MinorRegistrationData(
            athlete=AthleteInput(
                first_name="Max",
                last_name="Mustermann",
                email="max@example.com",
                birth_date=born_years_ago(age),
                sport="Football",
            ),
            parent=ParentInput(
                first_name="Petra",
                last_name="Mustermann",
                email="petra@example.com",
                phone_number="+49 30 123456",
            ),
            consents=ConsentFlags(**flags),
        )
    return _mk


@pytest.fixture
def make_athlete():
    def _mk(age: int = 14, **overrides):
        fields = dict(
            id="athlete-1",
            email="athlete@example.com",
            first_name="Sophie",
            last_name="Schmidt",
            birth_date=born_years_ago(age),
            sport="Swimming",
            parent_ids=["parent-1"],
            needs_parental_consent=age < 16,
            has_parental_consent=age < 16,
        )
        fields.update(overrides)
        return Athlete(**fields)
    return _mk


@pytest.fixture
def make_parent():
    def _mk(**overrides):
        fields = dict(
            id="parent-1",
            email="parent@example.com",
            first_name="Anna",
            last_name="Schmidt",
            children_ids=["athlete-1"],
            can_give_consent_for=["athlete-1"],
            has_data_consent=True,
            has_medical_consent=True,
        )
        fields.update(overrides)
        return Parent(**fields)
    return _mk
