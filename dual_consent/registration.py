from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Optional

from .age import calculate_age
from .audit import log_consent_event
from .clock import isoformat, utcnow
from .consent_requests import (
    approve_dual_consent_request,
    create_dual_consent_request,
    reject_dual_consent_request,
)
from .errors import PersistenceError
from .models import (
    CONSENT_TYPES,
    DATA_PROCESSING,
    MEDICAL_DATA,
    REQUIRED_MINOR_CONSENTS,
    Athlete,
    ConsentRecord,
    DualConsentRequest,
    MinorRegistrationData,
    Parent,
    get_user_id,
)
from .policy import needs_parental_consent
from .records import (
    create_consent_record,
    create_registration_consent_records,
    generate_id,
    revoke_consent_record,
)
from .store import UserStore
from .validation import validate_minor_registration


@dataclass
class RegistrationResult:
    success: bool
    errors: List[str] = field(default_factory=list)
    parent: Optional[Parent] = None
    athlete: Optional[Athlete] = None
    consent_records: List[ConsentRecord] = field(default_factory=list)


def _restore(store: UserStore, users_before, consents_before, requests_before=None) -> bool:
    results = [store.update_users(users_before), store.update_consents(consents_before)]
    if requests_before is not None:
        results.append(store.update_requests(requests_before))
    return all(results)


def _fail(store: UserStore, stage: str, users_before, consents_before, details) -> None:
    if not _restore(store, users_before, consents_before):
        log_consent_event("REGISTRATION_ROLLBACK_FAILED", dict(details, stage=stage))
        raise PersistenceError(
            f"Registration failed while writing {stage} and the rollback failed; "
            "the store may be inconsistent"
        )
    log_consent_event("REGISTRATION_PERSISTENCE_FAILED", dict(details, stage=stage))
    raise PersistenceError(f"Registration failed while writing {stage}; changes rolled back")


def _duplicate_email_errors(store: UserStore, athlete_email: str, parent: Optional[Parent]) -> List[str]:
    emails = [athlete_email]
    if parent is not None:
        if parent.email == athlete_email:
            return ["Athlete and parent need different email addresses"]
        emails.append(parent.email)
    return [
        f"An account with email {email} already exists"
        for email in emails
        if store.get_user_by_email(email) is not None
    ]


def register_minor(
    data: MinorRegistrationData,
    store: UserStore,
    now: Optional[datetime] = None,
) -> RegistrationResult:
    """
    Registers an athlete through the minor flow: creates the parent account,
    the athlete account and, below the consent threshold, one consent record
    per required type.

    Invalid input, including an email that already has an account, is
    returned as errors and nothing is written. A failed store write restores
    the previous users and consent records and raises PersistenceError;
    consent records are never written after a failed account write. When the
    restore itself fails the error says so and REGISTRATION_ROLLBACK_FAILED
    is logged.
    """
    now = now or utcnow()
    validation = validate_minor_registration(data, now.date())
    if not validation.valid:
        log_consent_event(
            "REGISTRATION_REJECTED",
            {"athlete_email": data.athlete.email, "errors": validation.errors},
        )
        return RegistrationResult(success=False, errors=validation.errors)

    age = calculate_age(data.athlete.birth_date, now.date())
    needs_consent = needs_parental_consent(data.athlete.birth_date, now.date())
    stamp = isoformat(now)
    athlete_id = generate_id()

    parent = None
    if needs_consent or "@" in (data.parent.email or ""):
        parent = Parent(
            id=generate_id(),
            email=data.parent.email,
            first_name=data.parent.first_name.strip(),
            last_name=data.parent.last_name.strip(),
            phone_number=data.parent.phone_number,
            children_ids=[athlete_id],
            can_give_consent_for=[athlete_id] if needs_consent else [],
            has_data_consent=data.consents.data_processing,
            has_medical_consent=data.consents.medical_data,
            consent_date=stamp,
            created_at=stamp,
        )

    records: List[ConsentRecord] = []
    if needs_consent:
        records = create_registration_consent_records(athlete_id, parent.id, age, now)
        parent.consent_history = [r.id for r in records]

    athlete = Athlete(
        id=athlete_id,
        email=data.athlete.email,
        first_name=data.athlete.first_name.strip(),
        last_name=data.athlete.last_name.strip(),
        birth_date=data.athlete.birth_date,
        sport=data.athlete.sport,
        parent_ids=[parent.id] if parent else [],
        needs_parental_consent=needs_consent,
        has_parental_consent=needs_consent,
        parental_consent_date=stamp if needs_consent else None,
        parental_consent_by=parent.id if needs_consent else None,
        created_at=stamp,
    )

    duplicates = _duplicate_email_errors(store, athlete.email, parent)
    if duplicates:
        log_consent_event(
            "REGISTRATION_REJECTED",
            {"athlete_email": data.athlete.email, "errors": duplicates},
        )
        return RegistrationResult(success=False, errors=duplicates)

    users_before = store.get_users()
    consents_before = store.get_consents()
    details = {"athlete_id": athlete.id, "parent_id": parent.id if parent else None}

    if parent is not None and not store.add_user(parent):
        _fail(store, "parent account", users_before, consents_before, details)
    if not store.add_user(athlete):
        _fail(store, "athlete account", users_before, consents_before, details)
    if records and not store.add_consents(records):
        _fail(store, "consent records", users_before, consents_before, details)

    for record in records:
        log_consent_event(
            "CONSENT_RECORD_CREATED",
            {
                "record_id": record.id,
                "athlete_id": athlete.id,
                "parent_id": record.parent_id,
                "consent_type": record.consent_type,
                "legal_basis": record.legal_basis_germany,
            },
        )
    log_consent_event(
        "MINOR_REGISTERED" if needs_consent else "ADULT_MINOR_FLOW_REGISTERED",
        dict(details, age=age, needs_parental_consent=needs_consent),
    )

    return RegistrationResult(
        success=True, parent=parent, athlete=athlete, consent_records=records
    )


def _replace_user(store: UserStore, updated) -> bool:
    users = [updated if get_user_id(u) == get_user_id(updated) else u for u in store.get_users()]
    return store.update_users(users)


def revoke_consent(
    store: UserStore,
    record_id: str,
    now: Optional[datetime] = None,
) -> ConsentRecord:
    """
    Stamps a revocation on a stored record. Revoking a required type also
    clears the athlete's has_parental_consent flag.
    """
    consents = store.get_consents()
    record = next((c for c in consents if c.id == record_id), None)
    if record is None:
        raise KeyError(record_id)

    revoked = revoke_consent_record(record, now)
    if revoked is record:
        return record

    if not store.update_consents([revoked if c.id == record_id else c for c in consents]):
        raise PersistenceError(f"Could not store revocation of consent record {record_id}")

    athlete = store.get_user_by_id(record.user_id)
    if (
        isinstance(athlete, Athlete)
        and record.consent_type in REQUIRED_MINOR_CONSENTS
        and athlete.has_parental_consent
    ):
        if not _replace_user(store, replace(athlete, has_parental_consent=False)):
            raise PersistenceError(f"Could not update consent flags of athlete {athlete.id}")

    log_consent_event(
        "CONSENT_REVOKED",
        {
            "record_id": record_id,
            "athlete_id": record.user_id,
            "consent_type": record.consent_type,
        },
    )
    return revoked


# ==================== Asynchronous consent ====================

def request_parental_consent(
    store: UserStore,
    athlete_id: str,
    parent_id: str,
    consent_types: Optional[List[str]] = None,
    now: Optional[datetime] = None,
) -> DualConsentRequest:
    consent_types = list(consent_types or REQUIRED_MINOR_CONSENTS)
    unknown = [t for t in consent_types if t not in CONSENT_TYPES]
    if unknown:
        raise ValueError(f"Unknown consent type(s): {', '.join(unknown)}")

    request = create_dual_consent_request(athlete_id, parent_id, consent_types, now)
    if not store.add_request(request):
        raise PersistenceError(f"Could not store dual-consent request for athlete {athlete_id}")

    log_consent_event(
        "DUAL_CONSENT_REQUEST_CREATED",
        {
            "request_id": request.id,
            "athlete_id": athlete_id,
            "parent_id": parent_id,
            "expires_at": request.expires_at,
        },
    )
    return request


def resolve_consent_request(
    store: UserStore,
    request_id: str,
    approved: bool,
    now: Optional[datetime] = None,
) -> DualConsentRequest:
    """
    Approves or rejects a pending request. Approval writes one consent record
    per requested type and links the parent to the athlete. The resolved
    request is stored last; if any write fails, users, consent records and
    requests are restored and PersistenceError is raised, leaving the request
    pending.
    """
    now = now or utcnow()
    requests = store.get_requests()
    request = next((r for r in requests if r.id == request_id), None)
    if request is None:
        raise KeyError(request_id)

    records: List[ConsentRecord] = []
    if approved:
        resolved = approve_dual_consent_request(request, now)
        records = [
            create_consent_record(
                request.athlete_id, request.parent_id, consent_type, True, store=store, now=now
            )
            for consent_type in request.consent_types
        ]
    else:
        resolved = reject_dual_consent_request(request, now)

    users_before = store.get_users()
    consents_before = store.get_consents()

    failed = None
    if approved:
        failed = _apply_approval(store, resolved, records, now)
    if failed is None and not store.update_requests(
        [resolved if r.id == request_id else r for r in requests]
    ):
        failed = "request resolution"

    details = {
        "request_id": request_id,
        "athlete_id": request.athlete_id,
        "parent_id": request.parent_id,
    }
    if failed is not None:
        restored = _restore(store, users_before, consents_before, requests)
        log_consent_event(
            "DUAL_CONSENT_REQUEST_RESOLUTION_FAILED",
            dict(details, stage=failed, rolled_back=restored),
        )
        if not restored:
            raise PersistenceError(
                f"Could not store {failed} for request {request_id} and the rollback failed; "
                "the store may be inconsistent"
            )
        raise PersistenceError(f"Could not store {failed} for request {request_id}; changes rolled back")

    log_consent_event(
        "DUAL_CONSENT_REQUEST_APPROVED" if approved else "DUAL_CONSENT_REQUEST_REJECTED",
        details,
    )
    return resolved


def _apply_approval(
    store: UserStore,
    request: DualConsentRequest,
    records: List[ConsentRecord],
    now: datetime,
) -> Optional[str]:
    """Writes the approval's records and account links; returns the failed stage, if any."""
    if not store.add_consents(records):
        return "consent records"

    stamp = isoformat(now)
    athlete = store.get_user_by_id(request.athlete_id)
    parent = store.get_user_by_id(request.parent_id)

    if isinstance(parent, Parent):
        parent = replace(
            parent,
            children_ids=sorted(set(parent.children_ids) | {request.athlete_id}),
            can_give_consent_for=sorted(set(parent.can_give_consent_for) | {request.athlete_id}),
            has_data_consent=parent.has_data_consent or DATA_PROCESSING in request.consent_types,
            has_medical_consent=parent.has_medical_consent or MEDICAL_DATA in request.consent_types,
            consent_date=stamp,
            consent_history=parent.consent_history + [r.id for r in records],
        )
        if not _replace_user(store, parent):
            return "parent account"

    if isinstance(athlete, Athlete):
        athlete = replace(
            athlete,
            parent_ids=sorted(set(athlete.parent_ids) | {request.parent_id}),
            needs_parental_consent=needs_parental_consent(athlete.birth_date, now.date()),
            has_parental_consent=True,
            parental_consent_date=stamp,
            parental_consent_by=request.parent_id,
        )
        if not _replace_user(store, athlete):
            return "athlete account"
    return None
