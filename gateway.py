"""Calls to the external prediction services.

Every condition has a pure normalizer that turns the endpoint's JSON into a
``PredictionOutcome``; the ``predict_*`` functions validate input, make one
outbound call, normalize and persist exactly one record. Upstream failures
raise ``PredictionError`` and nothing is stored.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests

import config
from config import CKD, DIABETES, HYPERTENSION, LUNG_CANCER, PNEUMONIA, SKIN_DISEASE
from storage import save_prediction
from validation import (
    DIABETES_LABELS,
    _build_ckd_request,
    _parse_float,
    _validate_diabetes,
    _validate_hypertension,
    _validate_image,
)

logger = logging.getLogger(__name__)

DIABETES_POSITIVE_ADVICE = "Please consult with a healthcare professional for proper medical advice."
DIABETES_NEGATIVE_ADVICE = "Maintain a healthy lifestyle to stay diabetes-free."
NO_PREDICTIONS_MESSAGE = "No predictions available."


class PredictionError(Exception):
    """Upstream failure; the message is shown to the user as-is."""


class InvalidInputError(ValueError):
    """Input rejected before any request was made."""


@dataclass
class PredictionOutcome:
    result: str
    details: str = ""
    parameters: Optional[dict] = None


def _pct(confidence, digits: int) -> str:
    return f"{_parse_float(confidence) * 100:.{digits}f}%"


def _require_object(data) -> dict:
    if not isinstance(data, dict):
        raise PredictionError("Invalid response format")
    return data


# ── Normalizers ───────────────────────────────────────────────────────────────

def _normalize_skin_disease(data: Any) -> Optional[PredictionOutcome]:
    data = _require_object(data)
    predictions = data.get("predictions")
    if not data.get("success") and not isinstance(predictions, list):
        raise PredictionError(data.get("error") or "Prediction failed")
    if isinstance(predictions, list):
        lines = []
        for p in predictions:
            p = p if isinstance(p, dict) else {"class": p}
            lines.append(f"{p.get('class')}: {_pct(p.get('confidence'), 2)}")
        top = predictions[0] if predictions else None
        top_class = top.get("class") if isinstance(top, dict) else top
        return PredictionOutcome(result=str(top_class) if top_class else "Analyzed",
                                 details="\n".join(lines))
    if predictions:
        # Unexpected shape; keep what we got rather than failing the submission.
        return PredictionOutcome(
            result="Analyzed",
            details=json.dumps(predictions, separators=(",", ":"), ensure_ascii=False),
        )
    return None


def _normalize_pneumonia(data: Any) -> PredictionOutcome:
    data = _require_object(data)
    prediction, confidence = data.get("prediction"), data.get("confidence")
    if not (prediction and confidence):
        raise PredictionError("Prediction failed: Invalid response format")
    return PredictionOutcome(result=str(prediction), details=f"{prediction} ({_pct(confidence, 2)})")


def _normalize_lung_cancer(data: Any) -> PredictionOutcome:
    if isinstance(data, dict):
        label = data.get("class") or data.get("prediction") or "Unknown"
        confidence = data.get("confidence") or data.get("probability") or 1.0
    else:
        label = data if isinstance(data, str) and data else "Unknown"
        confidence = 1.0
    label = str(label)
    return PredictionOutcome(result=label, details=f"{label} - Confidence: {_pct(confidence, 1)}")


def _normalize_diabetes(data: Any, parameters: dict) -> PredictionOutcome:
    data = _require_object(data)
    if not data.get("success"):
        raise PredictionError(data.get("error") or "Unexpected error")
    if data.get("prediction_text") is None:
        raise PredictionError("Invalid response format")
    prediction = data.get("prediction")
    positive = not isinstance(prediction, bool) and prediction == 1
    return PredictionOutcome(
        result=str(data["prediction_text"]),
        details=DIABETES_POSITIVE_ADVICE if positive else DIABETES_NEGATIVE_ADVICE,
        parameters=parameters,
    )


def _normalize_hypertension(data: Any, parameters: dict) -> PredictionOutcome:
    data = _require_object(data)
    if "hypertension" not in data:
        raise PredictionError("Invalid response format")
    return PredictionOutcome(
        result="Hypertension Detected" if data["hypertension"] else "No Hypertension",
        details="" if data.get("message") is None else str(data["message"]),
        parameters=parameters,
    )


def _normalize_ckd(data: Any, parameters: dict) -> PredictionOutcome:
    data = _require_object(data)
    if "prediction" not in data:
        raise PredictionError("Invalid response format")
    # The service labels the healthy class "ckd". Kept literally until product
    # confirms whether the upstream labels are inverted.
    if data["prediction"] == "ckd":
        return PredictionOutcome("No CKD Detected", "No chronic kidney disease detected", parameters)
    return PredictionOutcome(
        "CKD Detected",
        "Chronic kidney disease detected - consult a nephrologist",
        parameters,
    )


# ── Transport ─────────────────────────────────────────────────────────────────

def _post(condition: str, **kwargs) -> Any:
    url = config.PREDICTION_ENDPOINTS[condition]
    headers = {"Accept": "application/json"}
    try:
        resp = requests.post(url, headers=headers, timeout=config.PREDICTION_TIMEOUT, **kwargs)
    except requests.RequestException as exc:
        logger.warning("%s prediction request failed: %s", condition, exc)
        raise PredictionError(str(exc) or "Prediction failed") from exc
    if not 200 <= resp.status_code < 300:
        logger.warning(
            "%s prediction endpoint returned %s: %s",
            condition, resp.status_code, (resp.text or "")[:200],
        )
        raise PredictionError(f"HTTP {resp.status_code}: {resp.text}")
    try:
        return resp.json()
    except ValueError as exc:
        logger.warning("%s prediction endpoint sent invalid JSON", condition)
        raise PredictionError(f"Invalid JSON response: {exc}") from exc


def _persist(condition: str, outcome: PredictionOutcome) -> dict:
    record = {"type": condition, "result": outcome.result}
    if outcome.parameters is not None:
        record["parameters"] = outcome.parameters
    record["details"] = outcome.details
    logger.info("%s prediction: %s", condition, outcome.result)
    saved = save_prediction(record)
    if saved is None:
        # The result is still shown, flagged as not kept in history.
        return dict(record, saved=False)
    return saved


def _image_files(content: bytes, filename: str, content_type: str) -> dict:
    return {"file": (filename or "upload", content, content_type or "application/octet-stream")}


def _check_image(content: Optional[bytes]):
    error = _validate_image(content, config.MAX_IMAGE_SIZE)
    if error:
        raise InvalidInputError(error)


# ── Per-condition entry points ────────────────────────────────────────────────

def predict_skin_disease(content: bytes, filename: str = "", content_type: str = "") -> Optional[dict]:
    """Returns the stored record, or None when the service had nothing to report."""
    _check_image(content)
    data = _post(SKIN_DISEASE, files=_image_files(content, filename, content_type))
    outcome = _normalize_skin_disease(data)
    if outcome is None:
        return None
    return _persist(SKIN_DISEASE, outcome)


def predict_pneumonia(content: bytes, filename: str = "", content_type: str = "") -> dict:
    _check_image(content)
    data = _post(PNEUMONIA, files=_image_files(content, filename, content_type))
    return _persist(PNEUMONIA, _normalize_pneumonia(data))


def predict_lung_cancer(content: bytes, filename: str = "", content_type: str = "") -> dict:
    _check_image(content)
    data = _post(LUNG_CANCER, files=_image_files(content, filename, content_type))
    return _persist(LUNG_CANCER, _normalize_lung_cancer(data))


def predict_diabetes(fields: dict) -> dict:
    error, cleaned = _validate_diabetes(fields or {})
    if error:
        raise InvalidInputError(error)
    # (None, value) tuples make requests encode plain multipart form fields
    data = _post(DIABETES, files={k: (None, v) for k, v in cleaned.items()})
    parameters = {DIABETES_LABELS[k]: v for k, v in cleaned.items()}
    return _persist(DIABETES, _normalize_diabetes(data, parameters))


def predict_hypertension(form: dict) -> dict:
    error, body, parameters = _validate_hypertension(form or {})
    if error:
        raise InvalidInputError(error)
    data = _post(HYPERTENSION, json=body)
    return _persist(HYPERTENSION, _normalize_hypertension(data, parameters))


def predict_ckd(form: dict) -> dict:
    body, parameters = _build_ckd_request(form or {})
    data = _post(CKD, json=body)
    return _persist(CKD, _normalize_ckd(data, parameters))
