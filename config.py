import os
from datetime import datetime, timezone
from typing import Optional

STORAGE_PATH = os.environ.get("CARESCAN_STORAGE_PATH", "carescan.db")
STORAGE_QUOTA_BYTES = 5 * 1024 * 1024
LOG_LEVEL = os.environ.get("CARESCAN_LOG_LEVEL", "INFO").upper()
CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "x-csrf-token"
LOGIN_ATTEMPT_LIMIT = 10
LOGIN_ATTEMPT_WINDOW = 300  # seconds

# Record kinds and the storage key each one lives under
PREDICTIONS = "prediction"
MEDICATIONS = "medication"
CONTACTS = "contact"

NAMESPACES = {
    PREDICTIONS: "carescan_predictions",
    MEDICATIONS: "carescan_medications",
    CONTACTS:    "carescan_emergency_contacts",
}

# Field stamped with the creation time on insert
CREATED_FIELDS = {
    PREDICTIONS: "timestamp",
    MEDICATIONS: "createdAt",
    CONTACTS:    "createdAt",
}

# Max entries kept per namespace (None = unbounded); newest entries survive
RETENTION: dict[str, Optional[int]] = {
    PREDICTIONS: 50,
    MEDICATIONS: None,
    CONTACTS:    None,
}

MEDICATION_FREQUENCIES = ["Once daily", "Twice daily", "Three times daily", "As needed"]

SKIN_DISEASE = "Skin Disease"
PNEUMONIA = "Pneumonia"
LUNG_CANCER = "Lung Cancer"
DIABETES = "Diabetes"
HYPERTENSION = "Hypertension"
CKD = "Chronic Kidney Disease (CKD)"

PREDICTION_ENDPOINTS = {
    SKIN_DISEASE: os.environ.get("CARESCAN_SKIN_URL", "https://walgar-skin-2.hf.space/predict"),
    PNEUMONIA:    os.environ.get("CARESCAN_PNEUMONIA_URL", "https://walgar-pneumonia.hf.space/predict"),
    LUNG_CANCER:  os.environ.get("CARESCAN_LUNG_URL", "https://walgar-lung.hf.space/predict"),
    DIABETES:     os.environ.get("CARESCAN_DIABETES_URL", "https://walgar-diabetes.hf.space/predict"),
    HYPERTENSION: os.environ.get("CARESCAN_HYPERTENSION_URL", "https://walgar-hyper.hf.space/predict"),
    CKD:          os.environ.get("CARESCAN_CKD_URL", "https://walgar-ckd.hf.space/predict"),
}


def _load_timeout() -> Optional[float]:
    raw = os.environ.get("CARESCAN_PREDICTION_TIMEOUT", "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


# None leaves the transport default in place
PREDICTION_TIMEOUT = _load_timeout()

SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_KEY = os.environ.get("SUPABASE_KEY", "")

MAX_IMAGE_SIZE = 10 * 1024 * 1024


def _now_utc_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a trailing Z."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _from_utc_storage(ts: str) -> Optional[datetime]:
    """Convert a stored UTC ISO string to a server-local naive datetime."""
    if not isinstance(ts, str) or not ts.strip():
        return None
    raw = ts.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    server_tz = datetime.now().astimezone().tzinfo
    return dt.astimezone(server_tz).replace(tzinfo=None)
