import uuid
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from config import CONSENT_AGE_THRESHOLD, CONSENT_DOCUMENT_VERSION
from .age import calculate_age
from .clock import isoformat, utcnow
from .models import (
    CONSENT_TYPES,
    DATA_PROCESSING,
    DUAL_CONSENT_MINOR,
    MEDICAL_DATA,
    PARENT_ACCESS,
    REQUIRED_MINOR_CONSENTS,
    Athlete,
    ConsentRecord,
)
from .policy import legal_basis

if TYPE_CHECKING:
    from .store import UserStore


def generate_id() -> str:
    return uuid.uuid4().hex


def documentation_url(consent_type: str, version: str = CONSENT_DOCUMENT_VERSION) -> str:
    return f"/legal/gdpr-consent-{consent_type}-v{version}.pdf"


def _resolve_age(athlete_id: str, store: Optional["UserStore"], now: datetime) -> int:
    if store is not None:
        athlete = store.get_user_by_id(athlete_id)
        if isinstance(athlete, Athlete):
            return calculate_age(athlete.birth_date, now.date())
    # Unknown athletes are recorded under the adult legal basis
    return CONSENT_AGE_THRESHOLD


def create_consent_record(
    athlete_id: str,
    parent_id: Optional[str],
    consent_type: str,
    granted: bool = True,
    *,
    age: Optional[int] = None,
    store: Optional["UserStore"] = None,
    now: Optional[datetime] = None,
) -> ConsentRecord:
    """
    Builds an immutable consent record for a minor. The age is either passed
    in or looked up from the store, and decides the legal basis stamped on
    the record.
    """
    if consent_type not in CONSENT_TYPES:
        raise ValueError(f"Unknown consent type: {consent_type!r}")

    now = now or utcnow()
    if age is None:
        age = _resolve_age(athlete_id, store, now)

    return ConsentRecord(
        id=generate_id(),
        user_id=athlete_id,
        parent_id=parent_id,
        consent_type=consent_type,
        granted=granted,
        granted_at=isoformat(now),
        version=CONSENT_DOCUMENT_VERSION,
        is_for_minor=True,
        minor_age=age,
        legal_basis_germany=legal_basis(age),
        documentation_url=documentation_url(consent_type),
    )


def create_registration_consent_records(
    athlete_id: str,
    parent_id: str,
    age: int,
    now: Optional[datetime] = None,
) -> List[ConsentRecord]:
    now = now or utcnow()
    return [
        create_consent_record(athlete_id, parent_id, consent_type, True, age=age, now=now)
        for consent_type in REQUIRED_MINOR_CONSENTS
    ]


def revoke_consent_record(record: ConsentRecord, now: Optional[datetime] = None) -> ConsentRecord:
    if record.revoked_at is not None:
        return record
    return replace(record, revoked_at=isoformat(now or utcnow()))


_CONSENT_TEXTS = {
    DATA_PROCESSING: (
        "On behalf of {name} ({age} years) I agree that personal data is processed "
        "within the VigorLog health monitoring system. This covers daily check-in "
        "data, health metrics and related notes. Processing is based on Art. 8 GDPR "
        "(protection of children)."
    ),
    MEDICAL_DATA: (
        "On behalf of {name} ({age} years) I agree that special categories of "
        "personal data (health data) are processed under Art. 9 GDPR. This covers "
        "pain levels, fatigue scores, mood ratings and other health-related metrics "
        "used to improve athletic care."
    ),
    PARENT_ACCESS: (
        "As parent or guardian of {name} ({age} years) I agree to receive access to "
        "the health data stored in the VigorLog system, to safeguard the child's "
        "wellbeing and fulfil my duty of supervision."
    ),
    DUAL_CONSENT_MINOR: (
        "As parent or guardian I consent, on behalf of {name} ({age} years), to the "
        "use of the VigorLog system, including processing of personal and health "
        "data under Art. 8 GDPR. This consent can be withdrawn at any time."
    ),
}


def generate_consent_text(consent_type: str, athlete_name: str, age: int) -> str:
    template = _CONSENT_TEXTS.get(consent_type)
    if template is None:
        return "General declaration of consent"
    return template.format(name=athlete_name, age=age)
