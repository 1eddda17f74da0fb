import json
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import CONSENT_LOG_FILE
from .clock import isoformat, utcnow


@dataclass
class ConsentEvent:
    timestamp: str
    event_type: str  # e.g. "MINOR_REGISTERED", "CONSENT_REVOKED", "REGISTRATION_REJECTED"
    details: Dict[str, Any]


def _append_jsonl(path, obj: Dict[str, Any]) -> None:
    with open(path, "a") as f:
        f.write(json.dumps(obj) + "\n")


def log_consent_event(event_type: str, details: Optional[Dict[str, Any]] = None) -> None:
    event = ConsentEvent(
        timestamp=isoformat(utcnow()),
        event_type=event_type,
        details=details or {},
    )
    _append_jsonl(CONSENT_LOG_FILE, asdict(event))


def load_consent_events(path: Optional[Path] = None) -> List[Dict[str, Any]]:
    path = Path(path or CONSENT_LOG_FILE)
    if not path.exists():
        return []
    lines = path.read_text().strip().splitlines()
    return [json.loads(l) for l in lines if l.strip()]
