import io
from typing import Optional

from fastapi import APIRouter, Body, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from PIL import Image, UnidentifiedImageError

from config import MAX_IMAGE_SIZE
from gateway import (
    NO_PREDICTIONS_MESSAGE,
    InvalidInputError,
    PredictionError,
    predict_ckd,
    predict_diabetes,
    predict_hypertension,
    predict_lung_cancer,
    predict_pneumonia,
    predict_skin_disease,
)
from storage import get_predictions

router = APIRouter()

_IMAGE_PREDICTORS = {
    "skin-disease": predict_skin_disease,
    "pneumonia":    predict_pneumonia,
    "lung-cancer":  predict_lung_cancer,
}


def _detect_image_ext(data: bytes) -> Optional[str]:
    if data.startswith(b"\xff\xd8\xff"):
        return "jpg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    if data.startswith(b"GIF87a") or data.startswith(b"GIF89a"):
        return "gif"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    if data.startswith(b"BM"):
        return "bmp"
    return None


async def _read_limited_upload(upload: UploadFile, max_bytes: int) -> Optional[bytes]:
    chunks = []
    total = 0
    while True:
        chunk = await upload.read(1024 * 1024)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


def _image_error(data: bytes) -> Optional[str]:
    if not data:
        return "Please select an image"
    if not _detect_image_ext(data):
        return "Unsupported image format"
    try:
        Image.open(io.BytesIO(data)).verify()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError):
        return "Could not read image"
    return None


def _respond(record) -> JSONResponse:
    if record is None:
        return JSONResponse({"ok": True, "prediction": None, "message": NO_PREDICTIONS_MESSAGE})
    return JSONResponse({"ok": record.get("saved", True), "prediction": record})


async def _run(fn, *args) -> JSONResponse:
    try:
        record = await run_in_threadpool(fn, *args)
    except InvalidInputError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    except PredictionError as exc:
        return JSONResponse({"error": str(exc)}, status_code=502)
    return _respond(record)


@router.get("/api/predictions")
def api_predictions():
    return JSONResponse({"predictions": get_predictions()})


@router.post("/api/predict/{condition}/image")
async def api_predict_image(condition: str, file: UploadFile = File(None)):
    predictor = _IMAGE_PREDICTORS.get(condition)
    if predictor is None:
        return JSONResponse({"error": "not found"}, status_code=404)
    if file is None:
        return JSONResponse({"error": "Please select an image"}, status_code=400)
    data = await _read_limited_upload(file, MAX_IMAGE_SIZE)
    if data is None:
        return JSONResponse(
            {"error": f"Image must be under {MAX_IMAGE_SIZE // (1024 * 1024)} MB"}, status_code=400
        )
    error = _image_error(data)
    if error:
        return JSONResponse({"error": error}, status_code=400)
    return await _run(predictor, data, file.filename or "upload", file.content_type or "")


@router.post("/api/predict/diabetes")
async def api_predict_diabetes(
    pregnancies: str = Form(""),
    glucose: str = Form(""),
    bloodpressure: str = Form(""),
    skinthickness: str = Form(""),
    insulin: str = Form(""),
    bmi: str = Form(""),
    dpf: str = Form(""),
    age: str = Form(""),
):
    fields = {
        "pregnancies": pregnancies,
        "glucose": glucose,
        "bloodpressure": bloodpressure,
        "skinthickness": skinthickness,
        "insulin": insulin,
        "bmi": bmi,
        "dpf": dpf,
        "age": age,
    }
    return await _run(predict_diabetes, fields)


@router.post("/api/predict/hypertension")
async def api_predict_hypertension(payload: dict = Body(default={})):
    return await _run(predict_hypertension, payload)


@router.post("/api/predict/ckd")
async def api_predict_ckd(payload: dict = Body(default={})):
    return await _run(predict_ckd, payload)
