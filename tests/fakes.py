"""In-memory backend that records every data call it receives."""
import itertools
from datetime import datetime, timedelta, timezone

from blogora.backends.base import (
    SIGNED_IN,
    SIGNED_OUT,
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

EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FakeBackend(Backend):
    name = "fake"

    def __init__(self):
        self.accounts = {}  # email -> (Account, password)
        self.profiles = {}
        self.posts = {}
        self.calls = []
        self.failing = set()
        self._ids = itertools.count(1)

    def add_account(self, email, password, username):
        account = Account(id=f"user-{next(self._ids)}", email=email)
        self.accounts[email] = (account, password)
        self.profiles[account.id] = Profile(id=account.id, username=username)
        return account

    def add_post(self, user_id, title, content, image_url=None, created_at=None):
        post_id = f"post-{next(self._ids)}"
        post = Post(
            id=post_id,
            title=title,
            content=content,
            image_url=image_url,
            user_id=user_id,
            created_at=created_at or EPOCH + timedelta(minutes=len(self.posts)),
        )
        self.posts[post_id] = post
        return post

    def calls_named(self, name):
        return [call for call in self.calls if call[0] == name]

    def connect(self):
        return FakeConnection(self)


class FakeConnection(LocalAuthEvents, BackendConnection):
    def __init__(self, backend):
        super().__init__()
        self.backend = backend
        self.account = None

    def _record(self, name, *args):
        self.backend.calls.append((name,) + args)
        if name in self.backend.failing:
            raise BackendError(f"{name} failed")

    def _with_username(self, post):
        profile = self.backend.profiles.get(post.user_id)
        return Post(**{**post.__dict__, "username": profile.username if profile else None})

    def _newest_first(self, posts):
        return sorted(posts, key=lambda p: p.created_at, reverse=True)

    def list_posts(self, page, per_page, query=None):
        self._record("list_posts", page, per_page, query)
        posts = [self._with_username(p) for p in self.backend.posts.values()]
        if query:
            needle = query.lower()
            posts = [
                p for p in posts
                if needle in p.title.lower() or needle in (p.username or "").lower()
            ]
        posts = self._newest_first(posts)
        start = (page - 1) * per_page
        return PostPage(items=posts[start:start + per_page], total=len(posts), page=page, per_page=per_page)

    def get_post(self, post_id):
        self._record("get_post", post_id)
        post = self.backend.posts.get(post_id)
        return self._with_username(post) if post else None

    def list_user_posts(self, user_id):
        self._record("list_user_posts", user_id)
        posts = [self._with_username(p) for p in self.backend.posts.values() if p.user_id == user_id]
        return self._newest_first(posts)

    def create_post(self, fields):
        self._record("create_post", dict(fields))
        return self.backend.add_post(
            user_id=fields["user_id"],
            title=fields["title"],
            content=fields["content"],
            image_url=fields.get("image_url"),
            created_at=EPOCH + timedelta(days=1, minutes=len(self.backend.posts)),
        )

    def update_post(self, post_id, user_id, fields):
        self._record("update_post", post_id, user_id, dict(fields))
        post = self.backend.posts.get(post_id)
        if post is None or post.user_id != user_id:
            raise BackendError("No matching post for this account")
        updated = Post(**{**post.__dict__, **fields})
        self.backend.posts[post_id] = updated
        return updated

    def delete_post(self, post_id):
        self._record("delete_post", post_id)
        post = self.backend.posts.get(post_id)
        if post is None or self.account is None or post.user_id != self.account.id:
            raise BackendError("No matching post for this account")
        del self.backend.posts[post_id]

    def get_profile(self, user_id):
        self._record("get_profile", user_id)
        return self.backend.profiles.get(user_id)

    def sign_up(self, email, password, username):
        if email in self.backend.accounts:
            raise AuthError("User already registered")
        self.backend.add_account(email, password, username)
        return self.sign_in(email, password)

    def sign_in(self, email, password):
        account, expected = self.backend.accounts.get(email, (None, None))
        if account is None or password != expected:
            raise AuthError("Invalid login credentials")
        self.account = account
        self._notify(SIGNED_IN, AuthTokens(f"access:{account.id}", f"refresh:{account.id}"))
        return account

    def restore(self, tokens):
        if "restore" in self.backend.failing:
            raise BackendError("restore failed")
        account_id = tokens.access_token.partition(":")[2]
        for account, _ in self.backend.accounts.values():
            if account.id == account_id:
                self.account = account
                return account
        raise AuthError("Invalid session token")

    def sign_out(self):
        self.account = None
        self._notify(SIGNED_OUT, None)
