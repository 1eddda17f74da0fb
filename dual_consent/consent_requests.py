from dataclasses import replace
from datetime import datetime, timedelta
from typing import List, Optional

from config import CONSENT_REQUEST_TTL_DAYS
from .clock import as_utc, isoformat, parse_timestamp, utcnow
from .errors import RequestExpiredError
from .models import APPROVED, EXPIRED, PENDING, REJECTED, DualConsentRequest
from .records import generate_id

REQUEST_TTL = timedelta(days=CONSENT_REQUEST_TTL_DAYS)


def create_dual_consent_request(
    athlete_id: str,
    parent_id: str,
    consent_types: List[str],
    now: Optional[datetime] = None,
) -> DualConsentRequest:
    now = now or utcnow()
    return DualConsentRequest(
        id=generate_id(),
        athlete_id=athlete_id,
        parent_id=parent_id,
        consent_types=list(consent_types),
        requested_at=isoformat(now),
        expires_at=isoformat(now + REQUEST_TTL),
        status=PENDING,
        notifications_sent=0,
    )


def is_dual_consent_request_expired(
    request: DualConsentRequest,
    now: Optional[datetime] = None,
) -> bool:
    # Derived on every call; the stored status is not consulted
    return as_utc(now or utcnow()) > parse_timestamp(request.expires_at)


def effective_status(request: DualConsentRequest, now: Optional[datetime] = None) -> str:
    if request.status == PENDING and is_dual_consent_request_expired(request, now):
        return EXPIRED
    return request.status


def _resolve(request: DualConsentRequest, status: str, now: Optional[datetime]) -> DualConsentRequest:
    now = now or utcnow()
    if is_dual_consent_request_expired(request, now):
        raise RequestExpiredError(
            f"Dual-consent request {request.id} expired at {request.expires_at}"
        )
    if request.status != PENDING:
        raise ValueError(f"Dual-consent request {request.id} is already {request.status}")

    stamp = isoformat(now)
    if status == APPROVED:
        return replace(request, status=APPROVED, approved_at=stamp)
    return replace(request, status=REJECTED, rejected_at=stamp)


def approve_dual_consent_request(
    request: DualConsentRequest,
    now: Optional[datetime] = None,
) -> DualConsentRequest:
    return _resolve(request, APPROVED, now)


def reject_dual_consent_request(
    request: DualConsentRequest,
    now: Optional[datetime] = None,
) -> DualConsentRequest:
    return _resolve(request, REJECTED, now)


def record_notification_sent(request: DualConsentRequest) -> DualConsentRequest:
    return replace(request, notifications_sent=request.notifications_sent + 1)
