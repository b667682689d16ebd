# app/auth/session_context.py

from typing import Optional

from supabase import Client

from app.auth.supabase_auth import AuthUser, verify_access_token
from app.core.errors import AuthError
from app.core.logging import get_logger
from app.services import role_service

logger = get_logger("SESSION")

SIGNED_IN = "SIGNED_IN"
TOKEN_REFRESHED = "TOKEN_REFRESHED"
SIGNED_OUT = "SIGNED_OUT"


class SessionContext:
    """
    The signed-in user, their access token and their active role.

    Built per request (or per client) rather than shared, so nothing leaks
    between users.
    """

    def __init__(self, auth_client: Client, db: Client):
        self.auth_client = auth_client
        self.db = db
        self.access_token: Optional[str] = None
        self.user: Optional[AuthUser] = None
        self.role: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def initialize(self, token: Optional[str]) -> "SessionContext":
        self._load(token)
        self.role = role_service.get_role(self.db, self.user.id)
        return self

    def on_auth_state_change(self, event: str, token: Optional[str] = None) -> None:
        logger.info("Auth state change", auth_event=event)
        if event == SIGNED_OUT:
            self._clear()
        elif event == SIGNED_IN:
            self.initialize(token)
        elif event == TOKEN_REFRESHED:
            previous = self.user.id if self.user else None
            self._load(token)
            if self.user.id != previous:
                self.role = role_service.get_role(self.db, self.user.id)
        else:
            logger.debug("Ignoring auth event", auth_event=event)

    def sign_out(self) -> None:
        if self.access_token:
            try:
                self.db.auth.admin.sign_out(self.access_token)
            except Exception as e:
                # Local state is cleared regardless; the token expires on its own.
                logger.warning("Remote sign out failed", error=str(e))
        self._clear()

    def set_role(self, role: Optional[str]) -> str:
        if not self.user:
            raise AuthError("Authentication required")
        self.role = role_service.assign_role(self.db, self.user.id, role)
        return self.role

    def _load(self, token: Optional[str]) -> None:
        self.user = verify_access_token(token, self.auth_client)
        self.access_token = token

    def _clear(self) -> None:
        self.access_token = None
        self.user = None
        self.role = None
