from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Any, Dict, List, Mapping
from urllib.parse import urlparse

from flask import current_app
import cloudinary.uploader

from blogora.backends import Account, BackendError, Post, PostPage, PostRepository

TITLE_MIN_LEN = 5
TITLE_MAX_LEN = 120
CONTENT_MIN_LEN = 50

USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{3,32}$")
PASSWORD_MIN_LEN = 6

# Keeps the row offset inside what the database driver accepts
MAX_PAGE = 100_000

IMAGE_FOLDER = "posts"
IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
MAX_IMAGE_BYTES = 10 * 1024 * 1024


# Cover images

@dataclass(frozen=True)
class ImageUploadResult:
    url: Optional[str]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _stream_size(stream) -> int:
    stream.seek(0, 2)
    size = stream.tell()
    stream.seek(0)
    return size


def upload_post_image(file) -> ImageUploadResult:
    """Store a post cover on Cloudinary and hand back its public URL.

    No file means no cover, which is not an error.
    """
    if not file or not getattr(file, "filename", ""):
        return ImageUploadResult(url=None)

    if getattr(file, "mimetype", None) not in IMAGE_TYPES:
        return ImageUploadResult(url=None, error="Only JPG, PNG, GIF and WebP images are allowed")
    if _stream_size(file.stream) > MAX_IMAGE_BYTES:
        return ImageUploadResult(url=None, error="Image is too large. Maximum size is 10MB")

    try:
        stored = cloudinary.uploader.upload(
            file,
            folder=IMAGE_FOLDER,
            resource_type="image",
            unique_filename=True,
            transformation=[{"width": 1600, "height": 1600, "crop": "limit"}],
        )
    except Exception:
        current_app.logger.exception("Cover upload to Cloudinary failed")
        return ImageUploadResult(url=None, error="Image upload failed")

    url = stored.get("secure_url")
    if not url:
        current_app.logger.error("Cloudinary returned no URL for %s", stored.get("public_id"))
        return ImageUploadResult(url=None, error="Image upload failed")
    return ImageUploadResult(url=url)


def is_valid_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc) and " " not in value


# Post form

@dataclass(frozen=True)
class PostForm:
    title: str = ""
    content: str = ""
    image_url: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PostForm":
        return cls(
            title=data.get("title") or "",
            content=data.get("content") or "",
            image_url=data.get("image_url") or "",
        )

    @classmethod
    def from_post(cls, post: Post) -> "PostForm":
        return cls(title=post.title, content=post.content, image_url=post.image_url or "")

    def validate(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}

        title = self.title.strip()
        if len(title) < TITLE_MIN_LEN:
            errors["title"] = f"Title must be at least {TITLE_MIN_LEN} characters"
        elif len(title) > TITLE_MAX_LEN:
            errors["title"] = f"Title must be less than {TITLE_MAX_LEN} characters"

        if len(self.content.strip()) < CONTENT_MIN_LEN:
            errors["content"] = f"Content must be at least {CONTENT_MIN_LEN} characters"

        image_url = self.image_url.strip()
        if image_url and not is_valid_url(image_url):
            errors["image_url"] = "Invalid URL"

        return errors

    def to_fields(self) -> Dict[str, Any]:
        return {
            "title": self.title.strip(),
            "content": self.content.strip(),
            "image_url": self.image_url.strip() or None,
        }


def is_owner(account: Optional[Account], post: Optional[Post]) -> bool:
    if account is None or post is None:
        return False
    account_id = getattr(account, "id", None)
    return account_id is not None and str(account_id) == str(post.user_id)


# Listing and search

@dataclass(frozen=True)
class ListPostsResult:
    ok: bool
    page: Optional[PostPage]
    query: str


def list_posts(repo: PostRepository, page: int = 1, query: str = "", per_page: Optional[int] = None) -> ListPostsResult:
    try:
        page = min(max(int(page), 1), MAX_PAGE)
    except (TypeError, ValueError):
        page = 1
    per_page = per_page or current_app.config.get("POSTS_PER_PAGE", 9)
    query = (query or "").strip()

    try:
        result = repo.list_posts(page=page, per_page=per_page, query=query or None)
    except BackendError:
        current_app.logger.exception("Error fetching posts")
        return ListPostsResult(ok=False, page=None, query=query)

    return ListPostsResult(ok=True, page=result, query=query)


# Single post

@dataclass(frozen=True)
class PostResult:
    post: Optional[Post]
    reason: str  # "ok" | "not_found" | "forbidden" | "failed"


def get_post(repo: PostRepository, post_id: str) -> PostResult:
    try:
        post = repo.get_post(post_id)
    except BackendError:
        current_app.logger.exception("Error fetching post %s", post_id)
        return PostResult(post=None, reason="failed")

    if post is None:
        return PostResult(post=None, reason="not_found")
    return PostResult(post=post, reason="ok")


def load_post_for_edit(repo: PostRepository, account: Account, post_id: str) -> PostResult:
    result = get_post(repo, post_id)
    if result.post is None:
        return result
    if not is_owner(account, result.post):
        return PostResult(post=None, reason="forbidden")
    return result


# Create / update

@dataclass(frozen=True)
class SavePostResult:
    saved: bool
    post_id: Optional[str]
    reason: str  # "ok" | "invalid" | "not_found" | "forbidden" | "failed"
    errors: Dict[str, str] = field(default_factory=dict)


def _prepare_fields(form: PostForm, image_file) -> tuple[Optional[Dict[str, Any]], Dict[str, str]]:
    errors = form.validate()
    if errors:
        return None, errors

    fields = form.to_fields()
    if image_file is not None and fields["image_url"] is None:
        upload = upload_post_image(image_file)
        if not upload.ok:
            return None, {"image": upload.error}
        fields["image_url"] = upload.url
    return fields, {}


def create_post(repo: PostRepository, account: Account, form: PostForm, image_file=None) -> SavePostResult:
    fields, errors = _prepare_fields(form, image_file)
    if errors:
        return SavePostResult(saved=False, post_id=None, reason="invalid", errors=errors)

    fields["user_id"] = account.id
    try:
        post = repo.create_post(fields)
    except BackendError:
        current_app.logger.exception("Error creating post")
        return SavePostResult(saved=False, post_id=None, reason="failed")

    return SavePostResult(saved=True, post_id=post.id, reason="ok")


def update_post(repo: PostRepository, account: Account, post_id: str, form: PostForm, image_file=None) -> SavePostResult:
    fields, errors = _prepare_fields(form, image_file)
    if errors:
        return SavePostResult(saved=False, post_id=post_id, reason="invalid", errors=errors)

    try:
        post = repo.update_post(post_id, account.id, fields)
    except BackendError:
        current_app.logger.exception("Error updating post %s", post_id)
        return SavePostResult(saved=False, post_id=post_id, reason="failed")

    return SavePostResult(saved=True, post_id=post.id, reason="ok")


# Deletion

@dataclass(frozen=True)
class DeletePostResult:
    deleted: bool
    reason: str  # "ok" | "unconfirmed" | "failed"


def delete_post(repo: PostRepository, post_id: str, confirmed: bool) -> DeletePostResult:
    if not confirmed:
        return DeletePostResult(deleted=False, reason="unconfirmed")

    try:
        repo.delete_post(post_id)
    except BackendError:
        current_app.logger.exception("Error deleting post %s", post_id)
        return DeletePostResult(deleted=False, reason="failed")

    return DeletePostResult(deleted=True, reason="ok")


# Profile

@dataclass(frozen=True)
class ProfilePostsResult:
    ok: bool
    username: str
    posts: List[Post]


def list_profile_posts(repo: PostRepository, account: Account) -> ProfilePostsResult:
    try:
        profile = repo.get_profile(account.id)
        posts = repo.list_user_posts(account.id)
    except BackendError:
        current_app.logger.exception("Error fetching posts of %s", account.id)
        return ProfilePostsResult(ok=False, username="", posts=[])

    if profile is None:
        current_app.logger.error("No profile row for account %s", account.id)
        return ProfilePostsResult(ok=False, username="", posts=[])
    return ProfilePostsResult(ok=True, username=profile.username, posts=posts)


# Accounts

def validate_signup(email: str, username: str, password: str) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    if not email or "@" not in email:
        errors["email"] = "Enter a valid email address"
    if not USERNAME_RE.match(username or ""):
        errors["username"] = "Username must be 3-32 letters, digits or underscores"
    if not password or len(password) < PASSWORD_MIN_LEN:
        errors["password"] = f"Password must be at least {PASSWORD_MIN_LEN} characters"
    return errors
