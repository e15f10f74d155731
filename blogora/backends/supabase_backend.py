from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import httpx
from supabase import AuthError as SupabaseAuthError
from supabase import Client, ClientOptions, PostgrestAPIError, create_client

from blogora.backends.base import (
    Account,
    AuthCallback,
    AuthError,
    AuthTokens,
    Backend,
    BackendConnection,
    BackendError,
    Post,
    PostPage,
    Profile,
    Subscription,
)

logger = logging.getLogger(__name__)

POST_COLUMNS = "*, profiles(username)"

_FAILURES = (PostgrestAPIError, SupabaseAuthError, httpx.HTTPError)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _to_post(row: Dict[str, Any]) -> Post:
    author = row.get("profiles") or {}
    return Post(
        id=str(row["id"]),
        title=row["title"],
        content=row["content"],
        image_url=row.get("image_url"),
        user_id=str(row["user_id"]),
        created_at=_parse_timestamp(row["created_at"]),
        username=author.get("username"),
    )


def _to_tokens(session) -> Optional[AuthTokens]:
    if session is None:
        return None
    return AuthTokens(access_token=session.access_token, refresh_token=session.refresh_token)


def _quote(term: str) -> str:
    # Double quotes keep , . : ( ) in the term from breaking the or=() syntax
    escaped = term.replace("\\", "\\\\").replace('"', '\\"')
    return f'"%{escaped}%"'


class _AuthSubscription(Subscription):
    def __init__(self, inner):
        self._inner = inner

    def unsubscribe(self) -> None:
        self._inner.unsubscribe()


class SupabaseConnection(BackendConnection):
    """Wraps one client so auth headers never leak between requests."""

    def __init__(self, client: Client):
        self.client = client

    def _fail(self, message: str, exc: Exception) -> BackendError:
        logger.warning("%s: %s", message, exc)
        return BackendError(message)

    # Posts

    def list_posts(self, page: int, per_page: int, query: Optional[str] = None) -> PostPage:
        start = (page - 1) * per_page
        end = page * per_page - 1
        try:
            request = self.client.table("posts").select(POST_COLUMNS, count="exact")
            if query:
                request = request.or_(self._search_filter(query))
            response = (
                request
                .order("created_at", desc=True)
                .range(start, end)
                .execute()
            )
        except _FAILURES as exc:
            raise self._fail("Could not list posts", exc) from exc

        items = [_to_post(row) for row in response.data or []]
        return PostPage(items=items, total=response.count or 0, page=page, per_page=per_page)

    def _search_filter(self, query: str) -> str:
        # The author name lives on the embedded profiles row, so match it first
        # and fold the ids into the or-filter on posts.
        matched = (
            self.client.table("profiles")
            .select("id")
            .ilike("username", f"%{query}%")
            .execute()
        )
        clauses = [f"title.ilike.{_quote(query)}"]
        author_ids = [str(row["id"]) for row in matched.data or []]
        if author_ids:
            clauses.append(f"user_id.in.({','.join(author_ids)})")
        return ",".join(clauses)

    def get_post(self, post_id: str) -> Optional[Post]:
        try:
            response = (
                self.client.table("posts")
                .select(POST_COLUMNS)
                .eq("id", post_id)
                .limit(1)
                .execute()
            )
        except _FAILURES as exc:
            raise self._fail("Could not load post", exc) from exc
        return _to_post(response.data[0]) if response.data else None

    def list_user_posts(self, user_id: str) -> List[Post]:
        try:
            response = (
                self.client.table("posts")
                .select(POST_COLUMNS)
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .execute()
            )
        except _FAILURES as exc:
            raise self._fail("Could not list user posts", exc) from exc
        return [_to_post(row) for row in response.data or []]

    def create_post(self, fields: Mapping[str, Any]) -> Post:
        try:
            response = self.client.table("posts").insert(dict(fields)).execute()
        except _FAILURES as exc:
            raise self._fail("Could not create post", exc) from exc
        if not response.data:
            raise BackendError("Insert succeeded but returned no data")
        return _to_post(response.data[0])

    def update_post(self, post_id: str, user_id: str, fields: Mapping[str, Any]) -> Post:
        try:
            response = (
                self.client.table("posts")
                .update(dict(fields))
                .eq("id", post_id)
                .eq("user_id", user_id)
                .execute()
            )
        except _FAILURES as exc:
            raise self._fail("Could not update post", exc) from exc
        # Rows hidden by the ownership policy come back as an empty result
        if not response.data:
            raise BackendError("No matching post for this account")
        return _to_post(response.data[0])

    def delete_post(self, post_id: str) -> None:
        try:
            response = self.client.table("posts").delete().eq("id", post_id).execute()
        except _FAILURES as exc:
            raise self._fail("Could not delete post", exc) from exc
        if not response.data:
            raise BackendError("No matching post for this account")

    def get_profile(self, user_id: str) -> Optional[Profile]:
        try:
            response = (
                self.client.table("profiles")
                .select("id, username")
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
        except _FAILURES as exc:
            raise self._fail("Could not load profile", exc) from exc
        if not response.data:
            return None
        row = response.data[0]
        return Profile(id=str(row["id"]), username=row["username"])

    # Auth

    def sign_up(self, email: str, password: str, username: str) -> Optional[Account]:
        try:
            response = self.client.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": {"username": username}},
            })
        except SupabaseAuthError as exc:
            raise AuthError(exc.message) from exc
        except httpx.HTTPError as exc:
            raise self._fail("Could not create account", exc) from exc

        if response.session is None or response.user is None:
            return None
        return Account(id=str(response.user.id), email=response.user.email)

    def sign_in(self, email: str, password: str) -> Account:
        try:
            response = self.client.auth.sign_in_with_password({"email": email, "password": password})
        except SupabaseAuthError as exc:
            raise AuthError(exc.message) from exc
        except httpx.HTTPError as exc:
            raise self._fail("Could not sign in", exc) from exc
        return Account(id=str(response.user.id), email=response.user.email)

    def restore(self, tokens: AuthTokens) -> Account:
        try:
            response = self.client.auth.set_session(tokens.access_token, tokens.refresh_token)
        except SupabaseAuthError as exc:
            raise AuthError(exc.message) from exc
        except httpx.HTTPError as exc:
            raise self._fail("Could not restore session", exc) from exc
        if response.user is None:
            raise AuthError("Session has no user")
        return Account(id=str(response.user.id), email=response.user.email)

    def sign_out(self) -> None:
        try:
            self.client.auth.sign_out()
        except _FAILURES as exc:
            raise self._fail("Could not sign out", exc) from exc

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        def relay(event, session):
            callback(str(event), _to_tokens(session))

        return _AuthSubscription(self.client.auth.on_auth_state_change(relay))


class SupabaseBackend(Backend):
    name = "supabase"

    def __init__(self, url: str = "", key: str = ""):
        self.url = url
        self.key = key

    def init_app(self, app) -> None:
        self.url = self.url or app.config.get("SUPABASE_URL", "")
        self.key = self.key or app.config.get("SUPABASE_KEY", "")
        if not self.url or not self.key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set")

    def create_client(self) -> Client:
        options = ClientOptions(auto_refresh_token=False, persist_session=False)
        return create_client(self.url, self.key, options=options)

    def connect(self) -> SupabaseConnection:
        return SupabaseConnection(self.create_client())
