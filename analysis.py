from typing import Iterable

from config import DIABETES, HYPERTENSION, _from_utc_storage
from validation import _parse_float

TREND_WINDOW = 10
RECENT_LIMIT = 5
FLAG_MARKERS = ("Detected", "Diabetic", "Hypertension")

# Stored parameter label -> series key
DIABETES_TREND_FIELDS = {"Glucose": "glucose", "BMI": "bmi"}
HYPERTENSION_TREND_FIELDS = {"Blood Glucose": "glucose", "BMI": "bmi"}


def _records(predictions: Iterable) -> list[dict]:
    return [p for p in predictions if isinstance(p, dict)]


def _type_key(pred: dict):
    kind = pred.get("type")
    # Stored data is untrusted; lists and objects cannot be dict keys.
    return str(kind) if isinstance(kind, (list, dict)) else kind


def group_by_type(predictions: Iterable[dict]) -> dict[str, list]:
    groups: dict[str, list] = {}
    for pred in _records(predictions):
        groups.setdefault(_type_key(pred), []).append(pred)
    return groups


def type_counts(predictions: Iterable[dict]) -> dict[str, int]:
    return {t: len(preds) for t, preds in group_by_type(predictions).items()}


def _short_date(ts) -> str:
    dt = _from_utc_storage(ts)
    if dt is None:
        return ""
    return f"{dt.day} {dt.strftime('%b')}"


def time_series(predictions: list, condition: str, fields: dict[str, str]) -> list[dict]:
    """Chronological points for the newest ``TREND_WINDOW`` records of ``condition``.

    ``fields`` maps a stored parameter label to the key used in each point.
    """
    matching = [
        p for p in _records(predictions)
        if p.get("type") == condition and p.get("parameters")
    ][:TREND_WINDOW]
    points = []
    for pred in reversed(matching):
        params = pred["parameters"] if isinstance(pred["parameters"], dict) else {}
        point = {"date": _short_date(pred.get("timestamp"))}
        for label, key in fields.items():
            point[key] = _parse_float(params.get(label), 0.0)
        points.append(point)
    return points


def diabetes_trend(predictions: list) -> list[dict]:
    return time_series(predictions, DIABETES, DIABETES_TREND_FIELDS)


def hypertension_trend(predictions: list) -> list[dict]:
    return time_series(predictions, HYPERTENSION, HYPERTENSION_TREND_FIELDS)


def recent_activity(predictions: list, limit: int = RECENT_LIMIT) -> list:
    return predictions[:limit]


def is_flagged(prediction: dict) -> bool:
    # Plain substring match, so "No CKD Detected" and "No Hypertension" are flagged too.
    result = prediction.get("result") or ""
    return isinstance(result, str) and any(m in result for m in FLAG_MARKERS)
