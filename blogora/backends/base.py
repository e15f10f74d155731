from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from flask_login import UserMixin

# Session-change events, same names the hosted auth service emits
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"


class BackendError(Exception):
    """Any failed call to the backend service."""


class AuthError(BackendError):
    """Rejected credentials or an unusable session."""


@dataclass(frozen=True)
class Account(UserMixin):
    id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class AuthTokens:
    access_token: str
    refresh_token: str

    def as_dict(self) -> Dict[str, str]:
        return {"access_token": self.access_token, "refresh_token": self.refresh_token}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["AuthTokens"]:
        if not data:
            return None
        access = data.get("access_token")
        refresh = data.get("refresh_token")
        if not access or not refresh:
            return None
        return cls(access_token=str(access), refresh_token=str(refresh))


@dataclass(frozen=True)
class Post:
    id: str
    title: str
    content: str
    user_id: str
    created_at: datetime
    image_url: Optional[str] = None
    username: Optional[str] = None


@dataclass(frozen=True)
class Profile:
    id: str
    username: str


@dataclass(frozen=True)
class PostPage:
    items: List[Post]
    total: int
    page: int
    per_page: int

    @property
    def has_more(self) -> bool:
        return self.total > self.page * self.per_page

    @property
    def has_prev(self) -> bool:
        return self.page > 1


AuthCallback = Callable[[str, Optional[AuthTokens]], None]


class Subscription:
    def __init__(self, listeners: List[AuthCallback], callback: AuthCallback):
        self._listeners = listeners
        self.callback = callback

    def unsubscribe(self) -> None:
        if self.callback in self._listeners:
            self._listeners.remove(self.callback)


class PostRepository(ABC):
    """Data access the views need. Ownership is enforced by the backend."""

    @abstractmethod
    def list_posts(self, page: int, per_page: int, query: Optional[str] = None) -> PostPage:
        """Newest first, offset-paginated, with an exact total.

        A non-empty ``query`` keeps posts whose title or author username
        contains it, case-insensitively.
        """

    @abstractmethod
    def get_post(self, post_id: str) -> Optional[Post]:
        ...

    @abstractmethod
    def list_user_posts(self, user_id: str) -> List[Post]:
        ...

    @abstractmethod
    def create_post(self, fields: Mapping[str, Any]) -> Post:
        """Insert ``{title, content, image_url, user_id}`` and return the stored row."""

    @abstractmethod
    def update_post(self, post_id: str, user_id: str, fields: Mapping[str, Any]) -> Post:
        ...

    @abstractmethod
    def delete_post(self, post_id: str) -> None:
        ...

    @abstractmethod
    def get_profile(self, user_id: str) -> Optional[Profile]:
        ...


class AuthGateway(ABC):
    @abstractmethod
    def sign_up(self, email: str, password: str, username: str) -> Optional[Account]:
        """Register an account. Returns None while email confirmation is pending."""

    @abstractmethod
    def sign_in(self, email: str, password: str) -> Account:
        ...

    @abstractmethod
    def restore(self, tokens: AuthTokens) -> Account:
        """Resume a stored session, refreshing it when the access token expired."""

    @abstractmethod
    def sign_out(self) -> None:
        ...

    @abstractmethod
    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        ...


class BackendConnection(PostRepository, AuthGateway):
    """One request's worth of access to the backend."""

    def close(self) -> None:
        pass


class LocalAuthEvents:
    """Session-change stream for backends that do not provide their own."""

    def __init__(self):
        self._auth_listeners: List[AuthCallback] = []

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        self._auth_listeners.append(callback)
        return Subscription(self._auth_listeners, callback)

    def _notify(self, event: str, tokens: Optional[AuthTokens]) -> None:
        for callback in list(self._auth_listeners):
            callback(event, tokens)


class Backend(ABC):
    name = "base"

    def init_app(self, app) -> None:
        pass

    @abstractmethod
    def connect(self) -> BackendConnection:
        ...
