import copy
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from config import STORE_FILE, SYSTEM_VERSION
from .audit import log_consent_event
from .clock import isoformat, utcnow
from .models import (
    ConsentRecord,
    DualConsentRequest,
    User,
    get_user_email,
    get_user_id,
    user_from_dict,
    user_to_dict,
)


class UserStore(Protocol):
    """Synchronous key-value style collaborator the engine reads and writes through."""

    def get_users(self) -> List[User]: ...

    def add_user(self, user: User) -> bool: ...

    def update_users(self, users: List[User]) -> bool: ...

    def get_user_by_id(self, user_id: str) -> Optional[User]: ...

    def get_user_by_email(self, email: str) -> Optional[User]: ...

    def get_consents(self) -> List[ConsentRecord]: ...

    def add_consents(self, records: List[ConsentRecord]) -> bool: ...

    def update_consents(self, records: List[ConsentRecord]) -> bool: ...

    def get_requests(self) -> List[DualConsentRequest]: ...

    def add_request(self, request: DualConsentRequest) -> bool: ...

    def update_requests(self, requests: List[DualConsentRequest]) -> bool: ...


class InMemoryUserStore:
    """
    Store backed by plain lists. Reads hand out copies, so callers never
    mutate stored state without an explicit update call.
    """

    def __init__(self) -> None:
        self._users: List[User] = []
        self._consents: List[ConsentRecord] = []
        self._requests: List[DualConsentRequest] = []

    def _commit(self) -> bool:
        return True

    # Users
    def get_users(self) -> List[User]:
        return copy.deepcopy(self._users)

    def update_users(self, users: List[User]) -> bool:
        previous = self._users
        self._users = copy.deepcopy(list(users))
        if not self._commit():
            self._users = previous
            return False
        return True

    def add_user(self, user: User) -> bool:
        users = self.get_users()
        email = get_user_email(user)
        if email and any(get_user_email(u) == email for u in users):
            return False
        users.append(user)
        return self.update_users(users)

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        return next((u for u in self.get_users() if get_user_id(u) == user_id), None)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return next((u for u in self.get_users() if get_user_email(u) == email), None)

    # Consent records
    def get_consents(self) -> List[ConsentRecord]:
        return list(self._consents)

    def update_consents(self, records: List[ConsentRecord]) -> bool:
        previous = self._consents
        self._consents = list(records)
        if not self._commit():
            self._consents = previous
            return False
        return True

    def add_consents(self, records: List[ConsentRecord]) -> bool:
        return self.update_consents(self.get_consents() + list(records))

    # Dual-consent requests
    def get_requests(self) -> List[DualConsentRequest]:
        return list(self._requests)

    def update_requests(self, requests: List[DualConsentRequest]) -> bool:
        previous = self._requests
        self._requests = list(requests)
        if not self._commit():
            self._requests = previous
            return False
        return True

    def add_request(self, request: DualConsentRequest) -> bool:
        return self.update_requests(self.get_requests() + [request])


class JsonUserStore(InMemoryUserStore):
    """Store persisted as a single JSON document, rewritten on every change."""

    def __init__(self, path: Optional[Path] = None):
        super().__init__()
        self.path = Path(path or STORE_FILE)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        with open(self.path, "r") as f:
            data = json.load(f)
        self._users = [user_from_dict(u) for u in data.get("users", [])]
        self._consents = [ConsentRecord.from_dict(c) for c in data.get("consents", [])]
        self._requests = [
            DualConsentRequest.from_dict(r) for r in data.get("consent_requests", [])
        ]

    def _commit(self) -> bool:
        data: Dict[str, Any] = {
            "version": SYSTEM_VERSION,
            "users": [user_to_dict(u) for u in self._users],
            "consents": [c.to_dict() for c in self._consents],
            "consent_requests": [r.to_dict() for r in self._requests],
            "last_sync": isoformat(utcnow()),
        }
        try:
            self.path.parent.mkdir(exist_ok=True, parents=True)
            with open(self.path, "w") as f:
                json.dump(data, f, indent=2)
        except OSError:
            return False
        return True


# ==================== GDPR access & erasure ====================

def export_user_data(
    store: UserStore,
    user_id: str,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """Art. 15 export: the user record plus every consent record and request about them."""
    user = store.get_user_by_id(user_id)
    if user is None:
        return None

    export = {
        "user": user_to_dict(user),
        "consents": [c.to_dict() for c in store.get_consents() if c.user_id == user_id],
        "consent_requests": [
            r.to_dict()
            for r in store.get_requests()
            if user_id in (r.athlete_id, r.parent_id)
        ],
        "export_date": isoformat(now or utcnow()),
    }
    log_consent_event("USER_DATA_EXPORTED", {"user_id": user_id})
    return export


def delete_user_data(store: UserStore, user_id: str) -> bool:
    """Art. 17 erasure: removes the user and everything recorded about them."""
    users = [u for u in store.get_users() if get_user_id(u) != user_id]
    consents = [c for c in store.get_consents() if c.user_id != user_id]
    requests = [
        r for r in store.get_requests() if user_id not in (r.athlete_id, r.parent_id)
    ]

    ok = (
        store.update_users(users)
        and store.update_consents(consents)
        and store.update_requests(requests)
    )
    if ok:
        log_consent_event("USER_DATA_DELETED", {"user_id": user_id})
    return ok
