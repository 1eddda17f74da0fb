from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional

import pandas as pd

from .age import age_group_label, calculate_age
from .models import REQUIRED_MINOR_CONSENTS, Athlete, ConsentRecord, Parent
from .policy import is_gdpr_compliant_for_minor, needs_parental_consent
from .store import UserStore


@dataclass
class AthleteCompliance:
    athlete_id: str
    compliant: bool
    needs_parental_consent: bool
    missing_consents: List[str] = field(default_factory=list)
    required_actions: List[str] = field(default_factory=list)


def _active_types(athlete_id: str, consent_records: Iterable[ConsentRecord]) -> set:
    return {
        c.consent_type
        for c in consent_records
        if c.user_id == athlete_id and c.granted and not c.revoked_at
    }


def missing_consent_types(
    athlete: Athlete,
    consent_records: Iterable[ConsentRecord],
    today: Optional[date] = None,
) -> List[str]:
    if not needs_parental_consent(athlete.birth_date, today):
        return []
    active = _active_types(athlete.id, consent_records)
    return [t for t in REQUIRED_MINOR_CONSENTS if t not in active]


def has_all_required_consents(
    athlete: Athlete,
    consent_records: Iterable[ConsentRecord],
    today: Optional[date] = None,
) -> bool:
    """
    True when every required consent type is covered by a granted, unrevoked
    record for this athlete. Athletes aged 16 or over need none. Evaluated
    from the records passed in on each call, so revocations show up
    immediately.
    """
    return not missing_consent_types(athlete, consent_records, today)


def _linked_parent(athlete: Athlete, store: UserStore) -> Optional[Parent]:
    for parent_id in athlete.parent_ids:
        parent = store.get_user_by_id(parent_id)
        if isinstance(parent, Parent):
            return parent
    return None


def check_athlete_compliance(
    athlete: Athlete,
    store: UserStore,
    today: Optional[date] = None,
) -> AthleteCompliance:
    needs_consent = needs_parental_consent(athlete.birth_date, today)
    if not needs_consent:
        return AthleteCompliance(
            athlete_id=athlete.id, compliant=True, needs_parental_consent=False
        )

    parent = _linked_parent(athlete, store)
    policy = is_gdpr_compliant_for_minor(athlete, parent, today)
    missing = missing_consent_types(athlete, store.get_consents(), today)

    return AthleteCompliance(
        athlete_id=athlete.id,
        compliant=policy.compliant and not missing,
        needs_parental_consent=True,
        missing_consents=missing,
        required_actions=policy.required_actions,
    )


def compliance_frame(store: UserStore, today: Optional[date] = None) -> pd.DataFrame:
    """One row per athlete, for dashboards flagging non-compliant minors."""
    rows = []
    for user in store.get_users():
        if not isinstance(user, Athlete):
            continue
        status = check_athlete_compliance(user, store, today)
        rows.append(
            {
                "athlete_id": user.id,
                "name": user.full_name,
                "age": calculate_age(user.birth_date, today),
                "age_group": age_group_label(user.birth_date, today),
                "needs_parental_consent": status.needs_parental_consent,
                "compliant": status.compliant,
                "missing_consents": ", ".join(status.missing_consents),
                "required_actions": "; ".join(status.required_actions),
            }
        )

    columns = [
        "athlete_id",
        "name",
        "age",
        "age_group",
        "needs_parental_consent",
        "compliant",
        "missing_consents",
        "required_actions",
    ]
    return pd.DataFrame(rows, columns=columns)
