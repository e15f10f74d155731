from flask import current_app, render_template, flash, redirect, url_for, request
from flask_login import current_user, logout_user, login_required

from blogora.routes import bp
from blogora.extensions import login_manager
from blogora.auth_session import current_auth
from blogora.backends import AuthError, BackendError
from blogora.services import validate_signup

LOGIN_MESSAGES = {
    'routes.create_post': 'Please login to create or edit posts',
    'routes.edit_post': 'Please login to create or edit posts',
    'routes.profile': 'Please login to view your profile',
}


@login_manager.unauthorized_handler
def unauthorized():
    flash(LOGIN_MESSAGES.get(request.endpoint, 'Please login to continue'), 'danger')
    return redirect(url_for('routes.auth', next=request.path))


def _safe_next():
    target = request.args.get('next') or ''
    # only local paths
    if target.startswith('/') and not target.startswith('//'):
        return target
    return url_for('routes.index')


@bp.route('/auth', methods=['GET', 'POST'])
def auth():
    if current_user.is_authenticated:
        return redirect(url_for('routes.index'))

    mode = 'signup' if request.args.get('mode') == 'signup' else 'login'
    errors = {}
    email = (request.form.get('email') or '').strip()
    username = (request.form.get('username') or '').strip()

    if request.method == 'POST':
        password = request.form.get('password') or ''

        if mode == 'signup':
            errors = validate_signup(email, username, password)
            if not errors:
                try:
                    account = current_auth().sign_up(email, password, username)
                except AuthError as exc:
                    flash(str(exc) or 'Failed to sign up', 'danger')
                except BackendError:
                    current_app.logger.exception("Error signing up")
                    flash('Failed to sign up', 'danger')
                else:
                    if account is None:
                        flash('Check your email to confirm your account', 'success')
                        return redirect(url_for('routes.auth'))
                    flash('Account created successfully!', 'success')
                    return redirect(_safe_next())
        else:
            try:
                current_auth().sign_in(email, password)
            except AuthError:
                flash('Invalid email or password', 'danger')
            except BackendError:
                current_app.logger.exception("Error signing in")
                flash('Failed to login', 'danger')
            else:
                flash('Welcome back!', 'success')
                return redirect(_safe_next())

    status = 400 if request.method == 'POST' else 200
    return render_template('auth.html', mode=mode, errors=errors, email=email, username=username), status


@bp.route('/logout')
@login_required
def logout():
    try:
        current_auth().sign_out()
    except BackendError:
        current_app.logger.exception("Error signing out")
        flash('Failed to logout', 'danger')
        return redirect(url_for('routes.index'))

    logout_user()
    flash('Logged out successfully', 'success')
    return redirect(url_for('routes.index'))
