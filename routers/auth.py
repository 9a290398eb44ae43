from fastapi import APIRouter, Form, Request
from fastapi.responses import JSONResponse

from security import _is_login_allowed
from session import VERIFY_EMAIL_MESSAGE, SessionContext

router = APIRouter()


def _session(request: Request) -> SessionContext:
    return request.app.state.session


@router.get("/api/me")
def api_me(request: Request):
    session = _session(request)
    session.refresh()
    return JSONResponse(session.current_identity())


@router.post("/api/login")
def api_login(request: Request, email: str = Form(""), password: str = Form("")):
    ip = request.client.host if request.client else "unknown"
    if not _is_login_allowed(ip):
        return JSONResponse({"error": "Too many login attempts. Try again later."}, status_code=429)
    if not email.strip() or not password:
        return JSONResponse({"error": "Email and password are required"}, status_code=400)
    error, identity = _session(request).sign_in(email.strip(), password)
    if error:
        return JSONResponse({"error": error}, status_code=401)
    return JSONResponse({"ok": True, "user": identity})


@router.post("/api/signup")
def api_signup(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    name: str = Form(""),
    surname: str = Form(""),
):
    if not email.strip() or not password:
        return JSONResponse({"error": "Email and password are required"}, status_code=400)
    error, identity = _session(request).sign_up(email.strip(), password, name.strip(), surname.strip())
    if error == VERIFY_EMAIL_MESSAGE:
        return JSONResponse({"ok": True, "message": error, "user": identity})
    if error:
        return JSONResponse({"error": error}, status_code=400)
    return JSONResponse({"ok": True, "user": identity})


@router.post("/api/logout")
def api_logout(request: Request):
    _session(request).close()
    request.app.state.session = SessionContext.from_config()
    return JSONResponse({"ok": True})
