from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from config import ADULT_AGE, CONSENT_AGE_THRESHOLD, MIN_ATHLETE_AGE
from .age import calculate_age
from .models import MinorRegistrationData


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


def _blank(value: Optional[str]) -> bool:
    return not (value or "").strip()


def _looks_like_email(value: Optional[str]) -> bool:
    return "@" in (value or "")


def validate_minor_registration(
    data: MinorRegistrationData,
    today: Optional[date] = None,
) -> ValidationResult:
    """
    Validates a minor registration. Every rule is checked and each failure
    contributes its own message, so a form can show all problems at once.
    Parent fields and consent flags are only required below the consent
    threshold.
    """
    errors: List[str] = []
    athlete = data.athlete

    if _blank(athlete.first_name):
        errors.append("Athlete first name is required")

    if _blank(athlete.last_name):
        errors.append("Athlete last name is required")

    if not _looks_like_email(athlete.email):
        errors.append("A valid athlete email is required")

    age = None
    if not athlete.birth_date:
        errors.append("Birth date is required")
    else:
        age = calculate_age(athlete.birth_date, today)
        if age < MIN_ATHLETE_AGE:
            errors.append(f"Athletes must be at least {MIN_ATHLETE_AGE} years old")
        if age >= ADULT_AGE:
            errors.append("Adults do not need parental consent; use the standard registration")

    if age is not None and age < CONSENT_AGE_THRESHOLD:
        parent = data.parent
        consents = data.consents

        if _blank(parent.first_name):
            errors.append("Parent first name is required")

        if _blank(parent.last_name):
            errors.append("Parent last name is required")

        if not _looks_like_email(parent.email):
            errors.append("A valid parent email is required")

        if not consents.data_processing:
            errors.append("Consent to data processing is required")

        if not consents.medical_data:
            errors.append("Consent to processing of health data is required")

        if not consents.parent_access:
            errors.append("Consent to parent access is required")

    return ValidationResult(valid=not errors, errors=errors)
