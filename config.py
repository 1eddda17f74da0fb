import os
from pathlib import Path

# ==================== System Metadata ====================
SYSTEM_NAME = "VigorLog Dual-Consent Engine"
SYSTEM_VERSION = "1.0.0"
PROVIDER = "VigorLog Demo"
JURISDICTION = "DE"

# ==================== Legal Thresholds ====================
# GDPR Art. 8 as transposed in Germany: parental consent below 16
CONSENT_AGE_THRESHOLD = 16
# Age bounds of the minor registration flow
MIN_ATHLETE_AGE = 12
ADULT_AGE = 18

# Version of the consent documents parents agree to
CONSENT_DOCUMENT_VERSION = "1.0.0"
CONSENT_REQUEST_TTL_DAYS = 7

# ==================== Paths ====================
BASE_DIR = Path(os.environ.get("VIGORLOG_HOME", Path(__file__).resolve().parent))
DATA_DIR = BASE_DIR / "data"
LOG_DIR = BASE_DIR / "logs"

DATA_DIR.mkdir(exist_ok=True, parents=True)
LOG_DIR.mkdir(exist_ok=True, parents=True)

STORE_FILE = DATA_DIR / "vigorlog_store.json"
CONSENT_LOG_FILE = LOG_DIR / "consent_events.jsonl"

# ==================== Demo ====================
DEMO_SPORTS = ["Football", "Basketball", "Swimming", "Athletics", "Handball"]
