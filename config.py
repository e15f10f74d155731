import os
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, '.env'))

def _resolve_sqlite_path(uri: str, project_root: str) -> str:
    """Convert relative SQLite URI to absolute path.

    Args:
        uri: SQLite URI like 'sqlite:///instance/blogora.db'
        project_root: Absolute path to project root directory

    Returns:
        Absolute SQLite URI like 'sqlite:////srv/blogora/instance/blogora.db'
    """
    if not uri.startswith('sqlite:///'):
        return uri

    relative_path = uri[10:]  # Remove 'sqlite:///'
    if relative_path in ('', ':memory:'):
        return uri

    absolute_path = os.path.abspath(os.path.join(project_root, relative_path))

    # Ensure instance directory exists BEFORE any SQLAlchemy connection attempt
    instance_dir = os.path.dirname(absolute_path)
    if instance_dir and not os.path.exists(instance_dir):
        os.makedirs(instance_dir, exist_ok=True)

    # SQLite expects forward slashes, also on Windows (sqlite:///E:/path/db.db)
    absolute_path = absolute_path.replace('\\', '/')

    return f'sqlite:///{absolute_path}'


class Config:
    # Compute IS_DEV once
    _env = os.environ.get("FLASK_ENV") or os.environ.get("ENV") or "production"
    IS_DEV = str(_env).lower() in {"development", "dev"}

    # In production SECRET_KEY must be set.
    # In development we allow a fallback to avoid breaking local runs.
    SECRET_KEY = os.environ.get('SECRET_KEY')
    if not SECRET_KEY and IS_DEV:
        SECRET_KEY = "dev-secret-key"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # "supabase" (hosted) or "sql" (local database through SQLAlchemy)
    BLOG_BACKEND = os.environ.get("BLOG_BACKEND", "supabase").lower()

    SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
    SUPABASE_KEY = os.environ.get("SUPABASE_KEY", "")

    SQLALCHEMY_DATABASE_URI = _resolve_sqlite_path(
        os.environ.get('DATABASE_URL', 'sqlite:///instance/blogora.db'),
        basedir,
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    AUTO_CREATE_DB = os.environ.get("AUTO_CREATE_DB", "0") == "1"

    POSTS_PER_PAGE = int(os.environ.get("POSTS_PER_PAGE", "9"))

    # Lifetimes of the signed session tokens issued by the sql backend
    AUTH_ACCESS_TOKEN_TTL = int(os.environ.get("AUTH_ACCESS_TOKEN_TTL", "3600"))
    AUTH_REFRESH_TOKEN_TTL = int(os.environ.get("AUTH_REFRESH_TOKEN_TTL", str(30 * 24 * 3600)))
