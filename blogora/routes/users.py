from flask import render_template, flash
from flask_login import current_user, login_required

from blogora.routes import bp
from blogora.auth_session import current_repository
from blogora.services import list_profile_posts


@bp.route('/profile')
@login_required
def profile():
    result = list_profile_posts(current_repository(), current_user)
    if not result.ok:
        flash('Failed to load your posts', 'danger')

    return render_template('profile.html', username=result.username, posts=result.posts)
