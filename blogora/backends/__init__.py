from blogora.backends.base import (  # noqa: F401
    Account,
    AuthError,
    AuthTokens,
    Backend,
    BackendConnection,
    BackendError,
    Post,
    PostPage,
    PostRepository,
    Profile,
)

EXTENSION_KEY = "blogora_backend"


def make_backend(config) -> Backend:
    name = (config.get("BLOG_BACKEND") or "supabase").lower()
    if name == "supabase":
        from blogora.backends.supabase_backend import SupabaseBackend
        return SupabaseBackend()
    if name == "sql":
        from blogora.backends.sql_backend import SqlBackend
        return SqlBackend()
    raise RuntimeError(f"Unknown BLOG_BACKEND: {name!r}")
