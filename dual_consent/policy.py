from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from config import CONSENT_AGE_THRESHOLD
from .age import calculate_age
from .clock import DateLike
from .models import ART6_1A_GDPR, ART8_GDPR_PARENTAL_CONSENT, Athlete, Parent

MINOR_CONSENT_REASON = "GDPR Art. 8: users under 16 require dual consent"


@dataclass
class MinorComplianceResult:
    compliant: bool
    reason: Optional[str] = None
    required_actions: List[str] = field(default_factory=list)


def needs_parental_consent(birth_date: DateLike, today: Optional[date] = None) -> bool:
    return calculate_age(birth_date, today) < CONSENT_AGE_THRESHOLD


def legal_basis(age: int) -> str:
    if age < CONSENT_AGE_THRESHOLD:
        return ART8_GDPR_PARENTAL_CONSENT
    return ART6_1A_GDPR


def is_gdpr_compliant_for_minor(
    athlete: Athlete,
    parent: Optional[Parent] = None,
    today: Optional[date] = None,
) -> MinorComplianceResult:
    """
    Art. 8 check for German law. Athletes aged 16 or over are always
    compliant; younger athletes need their consent flags set and a linked
    parent who acknowledged both data and medical processing.
    """
    age = calculate_age(athlete.birth_date, today)

    if age >= CONSENT_AGE_THRESHOLD:
        return MinorComplianceResult(compliant=True)

    required_actions: List[str] = []

    if not athlete.needs_parental_consent:
        required_actions.append("Set needs_parental_consent flag")

    if not athlete.has_parental_consent:
        required_actions.append("Obtain parental consent")

    if parent is None:
        required_actions.append("Link a parent account")
    else:
        if not parent.has_data_consent:
            required_actions.append("Obtain parent data consent")
        if not parent.has_medical_consent:
            required_actions.append("Obtain parent medical consent")

    compliant = not required_actions
    return MinorComplianceResult(
        compliant=compliant,
        reason=None if compliant else MINOR_CONSENT_REASON,
        required_actions=required_actions,
    )
