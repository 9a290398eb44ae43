import hmac
import secrets
import threading
from collections import defaultdict, deque
from time import monotonic
from urllib.parse import urlsplit

from fastapi import Request

from config import CSRF_COOKIE_NAME, CSRF_HEADER_NAME, LOGIN_ATTEMPT_LIMIT, LOGIN_ATTEMPT_WINDOW

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# Login attempts per client IP, oldest first. Process-local; cleared on restart.
_attempts_lock = threading.Lock()
_login_attempts: dict[str, deque] = defaultdict(deque)


def _is_login_allowed(ip: str) -> bool:
    """Record a login attempt from ``ip``; False once the window is full."""
    now = monotonic()
    with _attempts_lock:
        attempts = _login_attempts[ip]
        while attempts and now - attempts[0] >= LOGIN_ATTEMPT_WINDOW:
            attempts.popleft()
        if len(attempts) >= LOGIN_ATTEMPT_LIMIT:
            return False
        attempts.append(now)
        return True


def _needs_csrf(request: Request) -> bool:
    return request.method in MUTATING_METHODS and request.url.path.startswith("/api/")


def _caller_host(request: Request) -> str:
    source = request.headers.get("origin") or request.headers.get("referer") or ""
    return urlsplit(source).netloc.lower()


def _csrf_ok(request: Request) -> bool:
    """Same-origin caller echoing the CSRF cookie in the request header."""
    host = _caller_host(request)
    if not host or host != request.url.netloc.lower():
        return False
    expected = request.cookies.get(CSRF_COOKIE_NAME, "")
    sent = request.headers.get(CSRF_HEADER_NAME, "")
    return bool(expected) and hmac.compare_digest(expected, sent)


def _ensure_csrf_cookie(request: Request, response):
    if not request.cookies.get(CSRF_COOKIE_NAME):
        response.set_cookie(
            CSRF_COOKIE_NAME,
            secrets.token_urlsafe(32),
            httponly=False,
            samesite="lax",
            secure=request.url.scheme == "https",
        )
    return response
