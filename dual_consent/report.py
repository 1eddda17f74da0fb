from datetime import datetime
from typing import Any, Dict, Optional

from config import (
    CONSENT_AGE_THRESHOLD,
    CONSENT_DOCUMENT_VERSION,
    JURISDICTION,
    PROVIDER,
    SYSTEM_NAME,
    SYSTEM_VERSION,
)
from .audit import load_consent_events
from .clock import utcnow
from .compliance import compliance_frame
from .consent_requests import effective_status
from .models import ART8_GDPR_PARENTAL_CONSENT
from .store import UserStore


def generate_compliance_report(store: UserStore, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Dual-consent compliance summary over the store and the consent event log."""
    now = now or utcnow()
    events = load_consent_events()
    frame = compliance_frame(store, now.date())
    consents = store.get_consents()
    requests = store.get_requests()

    minors = frame[frame["needs_parental_consent"]] if not frame.empty else frame
    non_compliant = minors[~minors["compliant"]] if not minors.empty else minors

    system_overview = {
        "system_name": SYSTEM_NAME,
        "version": SYSTEM_VERSION,
        "provider": PROVIDER,
        "jurisdiction": JURISDICTION,
        "consent_age_threshold": CONSENT_AGE_THRESHOLD,
        "consent_document_version": CONSENT_DOCUMENT_VERSION,
    }

    athletes_section = {
        "total_athletes": int(len(frame)),
        "minors_requiring_consent": int(len(minors)),
        "non_compliant_minors": non_compliant["athlete_id"].tolist() if len(non_compliant) else [],
    }

    records_section = {
        "total_records": len(consents),
        "active_records": sum(1 for c in consents if c.is_active),
        "revoked_records": sum(1 for c in consents if c.revoked_at),
        "art8_records": sum(
            1 for c in consents if c.legal_basis_germany == ART8_GDPR_PARENTAL_CONSENT
        ),
    }

    by_status: Dict[str, int] = {}
    for r in requests:
        status = effective_status(r, now)
        by_status[status] = by_status.get(status, 0) + 1

    event_counts: Dict[str, int] = {}
    for e in events:
        event_type = e.get("event_type", "unknown")
        event_counts[event_type] = event_counts.get(event_type, 0) + 1

    issues = []
    if athletes_section["non_compliant_minors"]:
        issues.append("Minors without complete dual consent are being monitored.")
    if by_status.get("expired"):
        issues.append("Dual-consent requests expired without a parental decision.")
    if event_counts.get("REGISTRATION_PERSISTENCE_FAILED"):
        issues.append("Registrations failed during persistence and were rolled back.")

    actions = [
        "Review consent document versions before publishing new consent texts.",
        "Export and erase user data on request within one month (Art. 12(3) GDPR).",
    ]
    if athletes_section["non_compliant_minors"]:
        actions.insert(0, "Suspend health data collection for non-compliant minors until consent is obtained.")
    if by_status.get("expired"):
        actions.insert(0, "Re-issue expired dual-consent requests or contact the parents directly.")

    return {
        "generated_at": now.isoformat(),
        "system_overview": system_overview,
        "athletes": athletes_section,
        "consent_records": records_section,
        "consent_requests": {"total": len(requests), "by_status": by_status},
        "events": event_counts,
        "risk_assessment": {
            "overall_level": "high" if issues else "low",
            "identified_issues": issues,
        },
        "recommended_actions": actions,
    }
