from fastapi import APIRouter, Form
from fastapi.responses import JSONResponse

from storage import delete_emergency_contact, get_emergency_contacts, save_emergency_contact
from validation import _validate_contact

router = APIRouter()


@router.get("/api/emergency-contacts")
def api_contacts():
    return JSONResponse({"contacts": get_emergency_contacts()})


@router.post("/api/emergency-contacts")
def api_contacts_create(
    name: str = Form(""),
    relationship: str = Form(""),
    phone: str = Form(""),
    email: str = Form(""),
):
    error, contact = _validate_contact(name, relationship, phone, email)
    if error:
        return JSONResponse({"error": error}, status_code=400)
    saved = save_emergency_contact(contact)
    return JSONResponse({"ok": saved is not None, "contact": saved})


@router.post("/api/emergency-contacts/{record_id}/delete")
def api_contacts_delete(record_id: str):
    delete_emergency_contact(record_id)
    return JSONResponse({"ok": True})
