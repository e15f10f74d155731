from datetime import datetime, timezone

from flask import Blueprint

bp = Blueprint('routes', __name__)

EXCERPT_LEN = 150


@bp.app_template_filter('excerpt')
def excerpt_filter(text):
    if not text:
        return ''
    return text[:EXCERPT_LEN] + ('...' if len(text) > EXCERPT_LEN else '')


@bp.app_template_filter('paragraphs')
def paragraphs_filter(text):
    """Split post content into the paragraphs it is rendered as, one per line."""
    return (text or '').split('\n')


@bp.app_template_filter('time_ago')
def time_ago_filter(value, now=None):
    if value is None:
        return ''
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)

    seconds = max(int((now - value).total_seconds()), 0)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if seconds < 30:
        return 'less than a minute ago'
    if minutes < 2:
        return '1 minute ago'
    if minutes < 45:
        return f'{minutes} minutes ago'
    if hours < 2:
        return 'about 1 hour ago'
    if hours < 24:
        return f'about {hours} hours ago'
    if days < 2:
        return '1 day ago'
    if days < 30:
        return f'{days} days ago'
    if days < 365:
        months = max(days // 30, 1)
        return 'about 1 month ago' if months == 1 else f'{months} months ago'
    years = days // 365
    return 'about 1 year ago' if years == 1 else f'about {years} years ago'


# Views register themselves on bp, so import them last
from blogora.routes import auth, posts, users  # noqa: E402,F401
