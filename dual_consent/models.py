from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional, Union

# Consent types
DATA_PROCESSING = "data_processing"
MEDICAL_DATA = "medical_data"
PARENT_ACCESS = "parent_access"
MARKETING = "marketing"
DUAL_CONSENT_MINOR = "dual_consent_minor"

CONSENT_TYPES = (
    DATA_PROCESSING,
    MEDICAL_DATA,
    PARENT_ACCESS,
    MARKETING,
    DUAL_CONSENT_MINOR,
)

# Consent types a minor registration must cover
REQUIRED_MINOR_CONSENTS = (DATA_PROCESSING, MEDICAL_DATA, PARENT_ACCESS)

# Legal bases under German law
ART6_1A_GDPR = "art6_1a_gdpr"
ART8_GDPR_PARENTAL_CONSENT = "art8_gdpr_parental_consent"

# Dual-consent request states
PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
EXPIRED = "expired"


class _Record:
    """Dict conversion shared by all persisted dataclasses."""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class Athlete(_Record):
    id: str
    email: str
    first_name: str
    last_name: str
    birth_date: str
    sport: str = ""
    team_id: Optional[str] = None
    parent_ids: List[str] = field(default_factory=list)
    needs_parental_consent: bool = False
    has_parental_consent: bool = False
    parental_consent_date: Optional[str] = None
    parental_consent_by: Optional[str] = None
    created_at: str = ""
    is_active: bool = True
    role: str = "athlete"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class Parent(_Record):
    id: str
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    children_ids: List[str] = field(default_factory=list)
    can_give_consent_for: List[str] = field(default_factory=list)
    has_data_consent: bool = False
    has_medical_consent: bool = False
    consent_date: Optional[str] = None
    consent_history: List[str] = field(default_factory=list)  # consent record ids
    emergency_contact: bool = False
    created_at: str = ""
    is_active: bool = True
    role: str = "parent"


# Coach/admin accounts pass through the store untouched as plain dicts
User = Union[Athlete, Parent, Dict[str, Any]]


@dataclass(frozen=True)
class ConsentRecord(_Record):
    id: str
    user_id: str
    consent_type: str
    granted: bool
    granted_at: str
    version: str
    parent_id: Optional[str] = None
    revoked_at: Optional[str] = None
    is_for_minor: bool = False
    minor_age: Optional[int] = None
    legal_basis_germany: Optional[str] = None
    documentation_url: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.granted and self.revoked_at is None


@dataclass(frozen=True)
class DualConsentRequest(_Record):
    id: str
    athlete_id: str
    parent_id: str
    consent_types: List[str]
    requested_at: str
    expires_at: str
    status: str = PENDING
    notifications_sent: int = 0
    approved_at: Optional[str] = None
    rejected_at: Optional[str] = None


@dataclass
class AthleteInput(_Record):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    birth_date: str = ""
    sport: str = ""


@dataclass
class ParentInput(_Record):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone_number: Optional[str] = None


@dataclass
class ConsentFlags(_Record):
    data_processing: bool = False
    medical_data: bool = False
    parent_access: bool = False


@dataclass
class MinorRegistrationData:
    athlete: AthleteInput
    parent: ParentInput = field(default_factory=ParentInput)
    consents: ConsentFlags = field(default_factory=ConsentFlags)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MinorRegistrationData":
        return cls(
            athlete=AthleteInput.from_dict(data.get("athlete", {})),
            parent=ParentInput.from_dict(data.get("parent", {})),
            consents=ConsentFlags.from_dict(data.get("consents", {})),
        )


def user_from_dict(data: Dict[str, Any]) -> User:
    role = data.get("role")
    if role == "athlete":
        return Athlete.from_dict(data)
    if role == "parent":
        return Parent.from_dict(data)
    return dict(data)


def user_to_dict(user: User) -> Dict[str, Any]:
    if isinstance(user, dict):
        return dict(user)
    return user.to_dict()


def get_user_id(user: User) -> Optional[str]:
    return user.get("id") if isinstance(user, dict) else user.id


def get_user_email(user: User) -> Optional[str]:
    return user.get("email") if isinstance(user, dict) else user.email
