"""Identity session backed by the external identity provider (Supabase).

One ``SessionContext`` is created when the app starts and closed at logout or
shutdown. It is only used to show who is signed in; storage and predictions
work the same without it.
"""
import logging
from typing import Optional, Tuple

from supabase import create_client

import config

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "User"
VERIFY_EMAIL_MESSAGE = "Check your email to verify your account"


class SessionContext:
    def __init__(self, client=None):
        self.client = client
        self.user = None
        self.closed = False

    @classmethod
    def from_config(cls) -> "SessionContext":
        if not (config.SUPABASE_URL and config.SUPABASE_KEY):
            logger.info("Identity provider not configured; running anonymously")
            return cls(None)
        try:
            client = create_client(config.SUPABASE_URL, config.SUPABASE_KEY)
        except Exception:
            logger.exception("Could not create identity provider client")
            client = None
        return cls(client)

    @property
    def signed_in(self) -> bool:
        return self.user is not None

    def sign_in(self, email: str, password: str) -> Tuple[Optional[str], dict]:
        if self.client is None:
            return ("Identity provider is not configured", self.current_identity())
        try:
            resp = self.client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as exc:
            logger.warning("Sign in failed for %s: %s", email, exc)
            return (str(exc) or "Authentication failed", self.current_identity())
        self.user = getattr(resp, "user", None)
        self.closed = False
        return (None, self.current_identity())

    def sign_up(self, email: str, password: str, name: str = "", surname: str = "") -> Tuple[Optional[str], dict]:
        if self.client is None:
            return ("Identity provider is not configured", self.current_identity())
        metadata = {"name": name, "surname": surname, "full_name": f"{name} {surname}".strip()}
        try:
            resp = self.client.auth.sign_up(
                {"email": email, "password": password, "options": {"data": metadata}}
            )
        except Exception as exc:
            logger.warning("Sign up failed for %s: %s", email, exc)
            return (str(exc) or "Authentication failed", self.current_identity())
        user = getattr(resp, "user", None)
        if user is not None and getattr(resp, "session", None) is None:
            return (VERIFY_EMAIL_MESSAGE, self.current_identity())
        self.user = user
        return (None, self.current_identity())

    def refresh(self):
        """Reload the signed-in user from the provider."""
        if self.client is None or self.closed or self.user is None:
            return
        try:
            resp = self.client.auth.get_user()
        except Exception:
            logger.exception("Could not load current user")
            self.user = None
            return
        self.user = getattr(resp, "user", None) if resp is not None else None

    def current_identity(self) -> dict:
        if self.user is None:
            return {"name": ANONYMOUS_NAME, "email": "", "signed_in": False}
        metadata = getattr(self.user, "user_metadata", None) or {}
        return {
            "name": metadata.get("name") or ANONYMOUS_NAME,
            "email": getattr(self.user, "email", "") or "",
            "signed_in": True,
        }

    def close(self):
        if self.closed:
            return
        if self.client is not None and self.user is not None:
            try:
                self.client.auth.sign_out()
            except Exception:
                logger.exception("Sign out failed")
        self.user = None
        self.closed = True
