import os
import logging
import click
from logging.handlers import RotatingFileHandler
from flask import Flask, flash, redirect, render_template, request, session, url_for
from flask_login import current_user, logout_user
from flask_wtf.csrf import CSRFError
from config import config
from extensions import db, migrate, login_manager, csrf, limiter


def configure_logging(app):
    """Configure application logging"""
    if not app.debug and not app.testing:
        # Create logs directory if it doesn't exist
        if not os.path.exists('logs'):
            os.mkdir('logs')

        file_handler = RotatingFileHandler(
            'logs/plazafuel.log',
            maxBytes=10240000,  # 10MB
            backupCount=10
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s '
            '[in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)

        app.logger.setLevel(logging.INFO)
        app.logger.info('PlazaFuel startup')
    else:
        # Development logging to console
        app.logger.setLevel(logging.DEBUG)
        app.logger.info('PlazaFuel startup (DEBUG mode)')


def create_app(config_name=None):
    """Application factory pattern"""

    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    config[config_name].init_app(app)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses"""
        headers = app.config.get('SECURITY_HEADERS', {})
        for header, value in headers.items():
            response.headers[header] = value
        return response

    # Configure Flask-Login
    login_manager.login_view = 'auth.login'
    login_manager.login_message = 'Please log in to access this page.'
    login_manager.login_message_category = 'info'

    @login_manager.user_loader
    def load_user(user_id):
        from models.users import User
        user = db.session.get(User, int(user_id))
        if user is not None and not user.is_active:
            return None
        return user

    # Import models to ensure they're registered with SQLAlchemy
    with app.app_context():
        import models

    # Register blueprints
    from blueprints.auth import auth_bp
    from blueprints.dashboard import dashboard_bp
    from blueprints.fuel import fuel_bp
    from blueprints.reports import reports_bp
    from blueprints.manage import manage_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(fuel_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(manage_bp)

    # ── Idle timeout ──────────────────────────────────────────────────────
    @app.before_request
    def enforce_idle_timeout():
        """Log out sessions that have been inactive for longer than IDLE_TIMEOUT."""
        if request.endpoint == 'static' or not current_user.is_authenticated:
            return None
        from models.users import utcnow
        now = utcnow().timestamp()
        last_seen = session.get('last_seen')
        timeout = app.config.get('IDLE_TIMEOUT')
        if last_seen and timeout and now - last_seen > timeout.total_seconds():
            app.logger.info(f'User {current_user.id} logged out after inactivity')
            logout_user()
            session.pop('last_seen', None)
            flash('You were logged out after a period of inactivity.', 'info')
            return redirect(url_for('auth.login'))
        session['last_seen'] = now
        return None

    # ── Section-level access enforcement ──────────────────────────────────
    @app.before_request
    def enforce_section_access():
        """Abort 403 when a role tries to access a forbidden section."""
        from utils.permissions import check_section_access
        check_section_access()

    @app.teardown_request
    def drop_reference_snapshot(exc):
        from services.reference_service import invalidate_reference_snapshot
        invalidate_reference_snapshot()

    @app.template_filter('litres')
    def litres_filter(value):
        """Format a litre amount to 2 decimals, '-' for empty values."""
        if value is None or value == '':
            return '-'
        return f'{float(value):,.2f}'

    @app.template_filter('when')
    def when_filter(value):
        return value.strftime('%Y-%m-%d %H:%M') if value else '-'

    @app.context_processor
    def utility_processor():
        from datetime import date
        from utils.permissions import can_access_section, nav_items
        return dict(
            today=lambda: date.today().strftime('%Y-%m-%d'),
            can_access_section=can_access_section,
            nav_items=nav_items,
        )

    # Create database tables
    with app.app_context():
        db.create_all()

    # Register Flask-Admin (must come after db.init_app and all models are loaded)
    from admin_panel import init_admin
    init_admin(app, db)
    # Flask-Admin generates its own form tokens; exempt its blueprint from
    # Flask-WTF's global CSRF so the two don't conflict.
    csrf.exempt(app.blueprints['admin'])

    register_error_handlers(app)
    register_commands(app)

    return app


def register_error_handlers(app):
    """Register global error handlers"""
    from services.errors import DataUnavailableError

    @app.errorhandler(404)
    def not_found_error(error):
        return render_template('errors/404.html'), 404

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.error(f'Internal Server Error: {error}')
        return render_template('errors/500.html'), 500

    @app.errorhandler(403)
    def forbidden_error(error):
        return render_template('errors/403.html'), 403

    @app.errorhandler(DataUnavailableError)
    def data_unavailable_error(error):
        db.session.rollback()
        app.logger.error(f'{error}: {error.original}')
        flash(f'{error}. Please try again.', 'danger')
        return render_template('errors/503.html', error=error), 503

    @app.errorhandler(CSRFError)
    def handle_csrf_error(error):
        flash('CSRF token validation failed. Please try again.', 'danger')
        return render_template('errors/csrf.html', reason=error.description), 400


def register_commands(app):
    """Register Flask CLI commands."""

    @app.cli.group()
    def users():
        """Manage user accounts and roles."""
        pass

    @users.command('create')
    @click.argument('email')
    @click.argument('name')
    @click.option('--role', type=click.Choice(['admin', 'manager', 'user']), default='user', show_default=True)
    @click.option('--location', 'location_name', default=None, help='Plaza name for managers and users.')
    @click.password_option()
    def create_user(email, name, role, location_name, password):
        """Create an account for EMAIL with full NAME."""
        from models.locations import Location
        from services.errors import ReferenceDataError
        from services.reference_service import ReferenceService

        location_id = None
        if location_name:
            location = Location.query.filter_by(name=location_name).first()
            if not location:
                click.echo(f'ERROR: No plaza named "{location_name}"', err=True)
                return
            location_id = location.id
        try:
            user = ReferenceService.create_user(email, password, name=name, role=role, location_id=location_id)
        except ReferenceDataError as e:
            click.echo(f'ERROR: {e}', err=True)
            return
        click.echo(f'SUCCESS: {user.role} "{user.display_name}" ({user.email}) created.')

    @users.command('set-role')
    @click.argument('email')
    @click.argument('role', type=click.Choice(['admin', 'manager', 'user']))
    def set_role(email, role):
        """Change the ROLE of the user with EMAIL."""
        from models.users import User
        from services.reference_service import ReferenceService
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo(f'ERROR: No user found with email "{email}"', err=True)
            return
        if user.role == role:
            click.echo(f'"{user.display_name}" ({email}) is already {role}.')
            return
        ReferenceService.update_user(user.id, role=role)
        click.echo(f'SUCCESS: "{user.display_name}" ({email}) is now {role}.')

    @users.command('list')
    def list_users():
        """List all user accounts."""
        from models.users import User
        accounts = User.query.order_by(User.email).all()
        if not accounts:
            click.echo('No users found.')
            return
        click.echo(f'{"ID":<5} {"Name":<25} {"Email":<40} {"Role":<8} {"Plaza":<20} {"Active":<8}')
        click.echo('-' * 110)
        for u in accounts:
            plaza = u.location.name if u.location else '-'
            click.echo(f'{u.id:<5} {(u.name or "-"):<25} {u.email:<40} {u.role:<8} {plaza:<20} {str(u.is_active):<8}')


if __name__ == '__main__':
    app = create_app()
    # SECURITY: Only bind to localhost in development
    # Never use 0.0.0.0 with debug mode - it exposes the debugger to the network
    app.run(host='127.0.0.1', port=5000, debug=True)
