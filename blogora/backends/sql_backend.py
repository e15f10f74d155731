"""Local stand-in for the hosted backend, built on Flask-SQLAlchemy.

Mirrors the hosted service's contract closely enough for development and
tests: rows come back as plain records, sessions are signed tokens, and
update/delete only touch rows owned by the signed-in account.
"""
from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from blogora.backends.base import (
    SIGNED_IN,
    SIGNED_OUT,
    TOKEN_REFRESHED,
    Account,
    AuthError,
    AuthTokens,
    Backend,
    BackendConnection,
    BackendError,
    LocalAuthEvents,
    Post,
    PostPage,
    Profile,
)
from blogora.extensions import db
from blogora.models import Post as PostRow, Profile as ProfileRow

logger = logging.getLogger(__name__)

ACCESS_SALT = "blogora-access"
REFRESH_SALT = "blogora-refresh"


def _to_post(row: PostRow, username: Optional[str] = None) -> Post:
    if username is None and row.author is not None:
        username = row.author.username
    return Post(
        id=row.id,
        title=row.title,
        content=row.content,
        image_url=row.image_url,
        user_id=row.user_id,
        created_at=row.created_at,
        username=username,
    )


class SqlConnection(LocalAuthEvents, BackendConnection):
    def __init__(self, access_ttl: int, refresh_ttl: int):
        super().__init__()
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.account: Optional[Account] = None

    def _serializer(self, salt: str) -> URLSafeTimedSerializer:
        return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=salt)

    def _issue_tokens(self, account_id: str) -> AuthTokens:
        return AuthTokens(
            access_token=self._serializer(ACCESS_SALT).dumps(account_id),
            refresh_token=self._serializer(REFRESH_SALT).dumps(account_id),
        )

    def _load_account(self, account_id: str) -> Account:
        try:
            row = db.session.get(ProfileRow, account_id)
        except SQLAlchemyError as exc:
            raise BackendError("Could not load account") from exc
        if row is None:
            raise AuthError("Account no longer exists")
        return Account(id=row.id, email=row.email)

    # Posts

    def list_posts(self, page: int, per_page: int, query: Optional[str] = None) -> PostPage:
        q = (
            db.session.query(PostRow, ProfileRow.username)
            .join(ProfileRow, PostRow.user_id == ProfileRow.id)
        )
        if query:
            q = q.filter(or_(
                PostRow.title.icontains(query, autoescape=True),
                ProfileRow.username.icontains(query, autoescape=True),
            ))

        try:
            total = q.order_by(None).count()
            rows = (
                q.order_by(PostRow.created_at.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
                .all()
            )
        except SQLAlchemyError as exc:
            raise BackendError("Could not list posts") from exc

        items = [_to_post(row, username) for row, username in rows]
        return PostPage(items=items, total=total, page=page, per_page=per_page)

    def get_post(self, post_id: str) -> Optional[Post]:
        try:
            row = db.session.get(PostRow, str(post_id))
        except SQLAlchemyError as exc:
            raise BackendError("Could not load post") from exc
        return _to_post(row) if row is not None else None

    def list_user_posts(self, user_id: str) -> List[Post]:
        try:
            rows = (
                PostRow.query
                .filter(PostRow.user_id == user_id)
                .order_by(PostRow.created_at.desc())
                .all()
            )
        except SQLAlchemyError as exc:
            raise BackendError("Could not list user posts") from exc
        return [_to_post(row) for row in rows]

    def create_post(self, fields: Mapping[str, Any]) -> Post:
        if self.account is None or fields.get("user_id") != self.account.id:
            raise BackendError("New row violates row-level security policy for posts")

        row = PostRow(
            title=fields["title"],
            content=fields["content"],
            image_url=fields.get("image_url"),
            user_id=fields["user_id"],
        )
        try:
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise BackendError("Could not create post") from exc
        return _to_post(row)

    def update_post(self, post_id: str, user_id: str, fields: Mapping[str, Any]) -> Post:
        row = self._owned_row(post_id, user_id)
        for name in ("title", "content", "image_url"):
            if name in fields:
                setattr(row, name, fields[name])
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise BackendError("Could not update post") from exc
        return _to_post(row)

    def delete_post(self, post_id: str) -> None:
        acting_id = self.account.id if self.account is not None else None
        row = self._owned_row(post_id, acting_id)
        try:
            db.session.delete(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise BackendError("Could not delete post") from exc

    def _owned_row(self, post_id: str, user_id: Optional[str]) -> PostRow:
        # Same visibility the hosted policy gives: rows of other accounts do not match
        if self.account is None or user_id != self.account.id:
            raise BackendError("No matching post for this account")
        try:
            row = PostRow.query.filter_by(id=str(post_id), user_id=user_id).first()
        except SQLAlchemyError as exc:
            raise BackendError("Could not load post") from exc
        if row is None:
            raise BackendError("No matching post for this account")
        return row

    def get_profile(self, user_id: str) -> Optional[Profile]:
        try:
            row = db.session.get(ProfileRow, user_id)
        except SQLAlchemyError as exc:
            raise BackendError("Could not load profile") from exc
        if row is None:
            return None
        return Profile(id=row.id, username=row.username)

    # Auth

    def sign_up(self, email: str, password: str, username: str) -> Optional[Account]:
        try:
            email_taken = ProfileRow.query.filter_by(email=email).first() is not None
            username_taken = ProfileRow.query.filter_by(username=username).first() is not None
        except SQLAlchemyError as exc:
            raise BackendError("Could not create account") from exc
        if email_taken:
            raise AuthError("User already registered")
        if username_taken:
            raise AuthError("Username already taken")

        row = ProfileRow(email=email, username=username)
        row.set_password(password)
        try:
            db.session.add(row)
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise AuthError("User already registered") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise BackendError("Could not create account") from exc

        logger.info("Registered account %s", row.id)
        return self._start_session(row.id, SIGNED_IN)

    def sign_in(self, email: str, password: str) -> Account:
        try:
            row = ProfileRow.query.filter_by(email=email).first()
        except SQLAlchemyError as exc:
            raise BackendError("Could not sign in") from exc
        if row is None or not row.check_password(password):
            raise AuthError("Invalid login credentials")
        return self._start_session(row.id, SIGNED_IN)

    def restore(self, tokens: AuthTokens) -> Account:
        try:
            account_id = self._serializer(ACCESS_SALT).loads(tokens.access_token, max_age=self.access_ttl)
        except SignatureExpired:
            try:
                account_id = self._serializer(REFRESH_SALT).loads(tokens.refresh_token, max_age=self.refresh_ttl)
            except BadSignature as exc:
                raise AuthError("Session expired") from exc
            return self._start_session(account_id, TOKEN_REFRESHED)
        except BadSignature as exc:
            raise AuthError("Invalid session token") from exc

        self.account = self._load_account(account_id)
        return self.account

    def sign_out(self) -> None:
        self.account = None
        self._notify(SIGNED_OUT, None)

    def _start_session(self, account_id: str, event: str) -> Account:
        self.account = self._load_account(account_id)
        self._notify(event, self._issue_tokens(account_id))
        return self.account


class SqlBackend(Backend):
    name = "sql"

    def __init__(self):
        self.access_ttl = 3600
        self.refresh_ttl = 30 * 24 * 3600

    def init_app(self, app) -> None:
        if not app.config.get("SQLALCHEMY_DATABASE_URI"):
            raise RuntimeError("DATABASE_URL is not set")
        self.access_ttl = int(app.config.get("AUTH_ACCESS_TOKEN_TTL", self.access_ttl))
        self.refresh_ttl = int(app.config.get("AUTH_REFRESH_TOKEN_TTL", self.refresh_ttl))

    def connect(self) -> SqlConnection:
        return SqlConnection(access_ttl=self.access_ttl, refresh_ttl=self.refresh_ttl)
