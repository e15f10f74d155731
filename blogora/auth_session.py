from __future__ import annotations

from typing import Optional

from flask import current_app, g

from blogora.backends import Account, AuthError, AuthTokens, Backend, BackendConnection, BackendError
from blogora.backends.base import SIGNED_OUT

TOKENS_KEY = "auth_tokens"


class AuthSession:
    """Authentication state of the current request.

    Opened before the view runs and closed on teardown. While open it
    follows the backend's session-change stream, so sign in, token refresh
    and sign out all end up in ``tokens`` and from there in the cookie.
    """

    def __init__(self, connection: BackendConnection):
        self.connection = connection
        self.account: Optional[Account] = None
        self.tokens: Optional[AuthTokens] = None
        self.changed = False
        self._subscription = None

    @classmethod
    def open(cls, backend: Backend, stored: Optional[dict]) -> "AuthSession":
        auth = cls(backend.connect())
        auth._subscription = auth.connection.on_auth_state_change(auth._on_auth_change)

        tokens = AuthTokens.from_dict(stored)
        if tokens is None:
            if stored:
                auth.changed = True
            return auth

        auth.tokens = tokens
        try:
            auth.account = auth.connection.restore(tokens)
        except AuthError as exc:
            current_app.logger.info("Dropping stored session: %s", exc)
            auth._forget()
        except BackendError as exc:
            # Signed out for this request only, the stored tokens stay valid
            current_app.logger.warning("Could not restore session: %s", exc)
        return auth

    @property
    def is_authenticated(self) -> bool:
        return self.account is not None

    def _on_auth_change(self, event: str, tokens: Optional[AuthTokens]) -> None:
        if event == SIGNED_OUT:
            tokens = None
        if tokens != self.tokens:
            self.tokens = tokens
            self.changed = True

    def _forget(self) -> None:
        self.account = None
        if self.tokens is not None:
            self.tokens = None
            self.changed = True

    def sign_in(self, email: str, password: str) -> Account:
        self.account = self.connection.sign_in(email, password)
        return self.account

    def sign_up(self, email: str, password: str, username: str) -> Optional[Account]:
        self.account = self.connection.sign_up(email, password, username)
        return self.account

    def sign_out(self) -> None:
        self.connection.sign_out()
        self._forget()

    def persist(self, session) -> None:
        if not self.changed:
            return
        if self.tokens is None:
            session.pop(TOKENS_KEY, None)
        else:
            session[TOKENS_KEY] = self.tokens.as_dict()

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self.connection.close()


def current_auth() -> AuthSession:
    return g.auth_session


def current_repository() -> BackendConnection:
    return g.auth_session.connection
