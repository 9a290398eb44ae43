from fastapi import APIRouter, Form
from fastapi.responses import JSONResponse

from config import MEDICATION_FREQUENCIES
from storage import delete_medication, get_medications, save_medication
from validation import _validate_medication

router = APIRouter()


@router.get("/api/medications")
def api_medications():
    return JSONResponse({"medications": get_medications()})


@router.get("/api/medications/frequencies")
def api_medication_frequencies():
    return JSONResponse({"frequencies": MEDICATION_FREQUENCIES})


@router.post("/api/medications")
def api_medications_create(
    name: str = Form(""),
    dosage: str = Form(""),
    frequency: str = Form("Once daily"),
    time: str = Form("08:00"),
    notes: str = Form(""),
):
    error, medication = _validate_medication(name, dosage, frequency, time, notes)
    if error:
        return JSONResponse({"error": error}, status_code=400)
    saved = save_medication(medication)
    return JSONResponse({"ok": saved is not None, "medication": saved})


@router.post("/api/medications/{record_id}/delete")
def api_medications_delete(record_id: str):
    delete_medication(record_id)
    return JSONResponse({"ok": True})
