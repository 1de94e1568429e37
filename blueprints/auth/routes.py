"""
Authentication Routes
Login and logout with lockout after repeated failures
"""
from flask import render_template, redirect, url_for, flash, request, session, current_app
from flask_login import login_user, logout_user, current_user
from urllib.parse import urlparse
from . import auth_bp
from .forms import LoginForm
from models.users import User, utcnow
from extensions import limiter


@auth_bp.route('/login', methods=['GET', 'POST'])
@limiter.limit("10 per minute")
def login():
    """Login page"""
    if current_user.is_authenticated:
        return redirect(url_for('dashboard.index'))

    form = LoginForm()

    if form.validate_on_submit():
        email = form.email.data.strip().lower()
        user = User.query.filter_by(email=email).first()

        if user:
            if user.is_locked():
                minutes_left = int((user.locked_until - utcnow()).total_seconds() / 60) + 1
                flash(f'Account temporarily locked due to multiple failed login attempts. Try again in {minutes_left} minutes.', 'danger')
                return render_template('auth/login.html', form=form), 423

            if not user.is_active:
                flash('This account has been deactivated. Please contact your administrator.', 'danger')
                return render_template('auth/login.html', form=form)

            if user.check_password(form.password.data):
                login_user(user, remember=form.remember.data)
                user.update_last_login()
                user.reset_failed_logins()
                session['last_seen'] = utcnow().timestamp()
                current_app.logger.info(f'User {user.id} logged in ({user.role})')

                flash(f'Welcome back, {user.display_name}!', 'success')

                next_page = request.args.get('next')
                if not next_page or urlparse(next_page).netloc != '':
                    next_page = url_for('dashboard.index')
                return redirect(next_page)

            user.record_failed_login()
            current_app.logger.warning(f'Failed login for user {user.id} ({user.failed_login_attempts} attempts)')
            remaining = max(0, current_app.config.get('MAX_LOGIN_ATTEMPTS', 5) - user.failed_login_attempts)
            if remaining > 0:
                flash(f'Invalid email or password. {remaining} attempts remaining before lockout.', 'danger')
            else:
                flash('Account locked due to too many failed attempts.', 'danger')
        else:
            # Generic error to prevent user enumeration
            flash('Invalid email or password.', 'danger')

    return render_template('auth/login.html', form=form)


@auth_bp.route('/logout')
def logout():
    """User logout"""
    logout_user()
    session.pop('last_seen', None)
    flash('You have been logged out.', 'info')
    return redirect(url_for('auth.login'))
