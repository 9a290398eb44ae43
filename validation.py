import math
import re
from typing import Optional, Tuple

from config import MEDICATION_FREQUENCIES

_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

MAX_NAME_LEN = 120
MAX_DOSAGE_LEN = 80
MAX_NOTES_LEN = 1000
MAX_PHONE_LEN = 40


def _parse_float(value, default: float = 0.0) -> float:
    """Lenient number parsing: the leading numeric prefix, else ``default``."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else default
    m = _FLOAT_PREFIX.match(str(value or ""))
    if not m:
        return default
    n = float(m.group(1))
    return n if math.isfinite(n) else default


def _parse_int(value, default: int = 0) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else default
    m = _INT_PREFIX.match(str(value or ""))
    return int(m.group(1)) if m else default


def _to_number(value) -> Optional[float]:
    """Strict parse used by validators; None for anything that is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(str(value).strip())
    except ValueError:
        return None
    return n if math.isfinite(n) else None


def _is_blank(value) -> bool:
    return value is None or str(value).strip() == ""


# ── Diabetes ──────────────────────────────────────────────────────────────────

DIABETES_LIMITS = {
    "pregnancies":   20,
    "glucose":       300,
    "bloodpressure": 200,
    "skinthickness": 100,
    "insulin":       846,
    "bmi":           67.1,
    "dpf":           2.42,
    "age":           120,
}

DIABETES_LABELS = {
    "pregnancies":   "Pregnancies",
    "glucose":       "Glucose",
    "bloodpressure": "Blood Pressure",
    "skinthickness": "Skin Thickness",
    "insulin":       "Insulin",
    "bmi":           "BMI",
    "dpf":           "Diabetes Pedigree",
    "age":           "Age",
}


def _validate_diabetes(fields: dict) -> Tuple[Optional[str], Optional[dict]]:
    """Return (error, cleaned) where cleaned maps each field to its submitted string."""
    cleaned = {}
    for key, limit in DIABETES_LIMITS.items():
        value = fields.get(key)
        if _is_blank(value):
            return (f"{key} is required", None)
        n = _to_number(value)
        if n is None:
            return (f"{key} must be a number", None)
        if n < 0:
            return (f"{key} cannot be negative", None)
        if n > limit:
            return (f"{key} cannot exceed {limit}", None)
        cleaned[key] = str(value).strip()
    return (None, cleaned)


# ── Hypertension ──────────────────────────────────────────────────────────────

HYPERTENSION_DEFAULTS = {
    "gender": "1",
    "diabetes": "0",
    "heart_disease": "0",
    "smoking_history": "0",
}

_HYPERTENSION_RANGES = [
    ("age",                 0,  120, "Please enter a valid age"),
    ("bmi",                 10, 50,  "Please enter a valid BMI (10-50)"),
    ("HbA1c_level",         3,  9,   "Please enter a valid HbA1c level (3-9%)"),
    ("blood_glucose_level", 50, 300, "Please enter a valid blood glucose level (50-300 mg/dL)"),
]

_HYPERTENSION_CHOICES = [
    ("gender",          {"0", "1"},      "Please select a valid gender"),
    ("smoking_history", {"0", "1", "2"}, "Please select a valid smoking history"),
    ("diabetes",        {"0", "1"},      "Diabetes must be Yes or No"),
    ("heart_disease",   {"0", "1"},      "Heart disease must be Yes or No"),
]

SMOKING_LABELS = {"0": "Never", "1": "Former"}


def _choice(value) -> str:
    s = str(value).strip()
    # JSON clients may send 1.0 for 1
    n = _to_number(s)
    if n is not None and n == int(n):
        return str(int(n))
    return s


def _validate_hypertension(form: dict) -> Tuple[Optional[str], Optional[dict], Optional[dict]]:
    """Return (error, request_body, parameters) for a hypertension submission."""
    data = dict(HYPERTENSION_DEFAULTS)
    data.update({k: v for k, v in (form or {}).items() if v is not None})

    for key, _lo, _hi, _msg in _HYPERTENSION_RANGES:
        if _is_blank(data.get(key)):
            return ("Please fill in all fields", None, None)
    for key, lo, hi, msg in _HYPERTENSION_RANGES:
        n = _to_number(data[key])
        if n is None or n < lo or n > hi:
            return (msg, None, None)
    for key, allowed, msg in _HYPERTENSION_CHOICES:
        if _choice(data.get(key, "")) not in allowed:
            return (msg, None, None)

    gender = _choice(data["gender"])
    diabetes = _choice(data["diabetes"])
    heart = _choice(data["heart_disease"])
    smoking = _choice(data["smoking_history"])

    body = {
        "gender": int(gender),
        "age": _parse_float(data["age"]),
        "diabetes": int(diabetes),
        "heart_disease": int(heart),
        "smoking_history": int(smoking),
        "bmi": _parse_float(data["bmi"]),
        "HbA1c_level": _parse_float(data["HbA1c_level"]),
        "blood_glucose_level": _parse_int(data["blood_glucose_level"]),
    }
    parameters = {
        "Gender": "Male" if gender == "1" else "Female",
        "Age": str(data["age"]).strip(),
        "Diabetes": "Yes" if diabetes == "1" else "No",
        "Heart Disease": "Yes" if heart == "1" else "No",
        "Smoking History": SMOKING_LABELS.get(smoking, "Current"),
        "BMI": str(data["bmi"]).strip(),
        "HbA1c Level": str(data["HbA1c_level"]).strip(),
        "Blood Glucose": str(data["blood_glucose_level"]).strip(),
    }
    return (None, body, parameters)


# ── Chronic kidney disease ────────────────────────────────────────────────────

CKD_NUMERIC_FIELDS = [
    ("Age", "age"),
    ("Blood Pressure", "blood_pressure"),
    ("Specific Gravity", "specific_gravity"),
    ("Albumin", "albumin"),
    ("Sugar", "sugar"),
    ("Blood Glucose Random", "blood_glucose_random"),
    ("Blood Urea", "blood_urea"),
    ("Serum Creatinine", "serum_creatinine"),
    ("Sodium", "sodium"),
    ("Potassium", "potassium"),
    ("Haemoglobin", "haemoglobin"),
    ("Packed Cell Volume", "packed_cell_volume"),
    ("WBC Count", "white_blood_cell_count"),
    ("RBC Count", "red_blood_cell_count"),
]

CKD_SELECT_FIELDS = [
    ("Red Blood Cells", "red_blood_cells"),
    ("Pus Cell", "pus_cell"),
    ("Pus Cell Clumps", "pus_cell_clumps"),
    ("Bacteria", "bacteria"),
    ("Hypertension", "hypertension"),
    ("Diabetes Mellitus", "diabetes_mellitus"),
    ("Coronary Artery Disease", "coronary_artery_disease"),
    ("Appetite", "appetite"),
    ("Pedal Edema", "peda_edema"),
    ("Anemia", "aanemia"),
]

# Subset echoed into the stored record
CKD_PARAMETER_LABELS = [
    ("Age", "age"),
    ("Blood Pressure", "blood_pressure"),
    ("Specific Gravity", "specific_gravity"),
    ("Albumin", "albumin"),
    ("Sugar", "sugar"),
    ("Blood Glucose", "blood_glucose_random"),
    ("Blood Urea", "blood_urea"),
    ("Serum Creatinine", "serum_creatinine"),
    ("Sodium", "sodium"),
    ("Potassium", "potassium"),
    ("Haemoglobin", "haemoglobin"),
]


def _build_ckd_request(form: dict) -> Tuple[dict, dict]:
    """CKD input is never rejected: missing or unparsable values are sent as 0."""
    form = form or {}
    body = {}
    for _label, key in CKD_NUMERIC_FIELDS:
        body[key] = _parse_float(form.get(key, ""))
    for _label, key in CKD_SELECT_FIELDS:
        body[key] = _parse_int(form.get(key, "0"))
    parameters = {
        label: "" if form.get(key) is None else str(form.get(key))
        for label, key in CKD_PARAMETER_LABELS
    }
    return body, parameters


# ── Images ────────────────────────────────────────────────────────────────────

def _validate_image(content: Optional[bytes], max_size: int) -> Optional[str]:
    if not content:
        return "Please select an image"
    if len(content) > max_size:
        return f"Image must be {max_size // (1024 * 1024)} MB or smaller"
    return None


# ── Medications and contacts ──────────────────────────────────────────────────

def _validate_medication(
    name: str, dosage: str, frequency: str, time: str, notes: str
) -> Tuple[Optional[str], Optional[dict]]:
    name, dosage, notes = (name or "").strip(), (dosage or "").strip(), (notes or "").strip()
    time = (time or "").strip()
    if not name:
        return ("Medicine name is required", None)
    if len(name) > MAX_NAME_LEN:
        return (f"Medicine name must be {MAX_NAME_LEN} characters or fewer", None)
    if not dosage:
        return ("Dosage is required", None)
    if len(dosage) > MAX_DOSAGE_LEN:
        return (f"Dosage must be {MAX_DOSAGE_LEN} characters or fewer", None)
    if frequency not in MEDICATION_FREQUENCIES:
        return ("Frequency must be one of: " + ", ".join(MEDICATION_FREQUENCIES), None)
    if not _TIME_RE.match(time):
        return ("Time must be in HH:MM format", None)
    if len(notes) > MAX_NOTES_LEN:
        return (f"Notes must be {MAX_NOTES_LEN} characters or fewer", None)
    return (None, {
        "name": name,
        "dosage": dosage,
        "frequency": frequency,
        "time": time,
        "notes": notes,
    })


def _validate_contact(
    name: str, relationship: str, phone: str, email: str
) -> Tuple[Optional[str], Optional[dict]]:
    name = (name or "").strip()
    relationship = (relationship or "").strip()
    phone = (phone or "").strip()
    email = (email or "").strip()
    if not name:
        return ("Name is required", None)
    if len(name) > MAX_NAME_LEN:
        return (f"Name must be {MAX_NAME_LEN} characters or fewer", None)
    if not relationship:
        return ("Relationship is required", None)
    if not phone:
        return ("Phone number is required", None)
    if len(phone) > MAX_PHONE_LEN:
        return (f"Phone number must be {MAX_PHONE_LEN} characters or fewer", None)
    if email and "@" not in email:
        return ("Email address is invalid", None)
    return (None, {"name": name, "relationship": relationship, "phone": phone, "email": email})
