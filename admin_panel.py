"""
Flask-Admin panel for PlazaFuel
Accessible at /admin - restricted to users with role='admin'
"""
from flask import redirect, url_for, flash
from flask_admin import Admin, AdminIndexView, expose
from flask_admin.contrib.sqla import ModelView
from flask_admin.theme import Bootstrap4Theme
from flask_login import current_user


def _is_admin():
    return current_user.is_authenticated and current_user.is_admin


# ---------------------------------------------------------------------------
# Base secure views
# ---------------------------------------------------------------------------

class SecureAdminIndexView(AdminIndexView):
    """Admin home page - checks for admin role before rendering."""

    @expose('/')
    def index(self):
        if not _is_admin():
            flash('Admin access required.', 'danger')
            return redirect(url_for('auth.login'))
        return super().index()

    def is_accessible(self):
        return _is_admin()

    def inaccessible_callback(self, name, **kwargs):
        flash('Admin access required.', 'danger')
        return redirect(url_for('auth.login'))


class SecureModelView(ModelView):
    """Full CRUD model view - admin only."""

    can_export = True
    page_size = 50
    column_display_pk = True

    def __init__(self, model, session, **kwargs):
        # Prefix endpoints so they never clash with app blueprints
        if 'endpoint' not in kwargs:
            kwargs['endpoint'] = f'admin_{model.__name__.lower()}'
        super().__init__(model, session, **kwargs)

    def is_accessible(self):
        return _is_admin()

    def inaccessible_callback(self, name, **kwargs):
        flash('Admin access required.', 'danger')
        return redirect(url_for('auth.login'))

    def after_model_change(self, form, model, is_created):
        from services.reference_service import invalidate_reference_snapshot
        invalidate_reference_snapshot()

    def after_model_delete(self, model):
        from services.reference_service import invalidate_reference_snapshot
        invalidate_reference_snapshot()


class ReadOnlyModelView(SecureModelView):
    """Read-only view; rows here change only through the fuel workflow."""

    can_create = False
    can_edit = False
    can_delete = False


# ---------------------------------------------------------------------------
# Customised model views
# ---------------------------------------------------------------------------

class UserAdminView(SecureModelView):
    """Users - hide password hash, show useful columns."""
    column_exclude_list = ['password_hash']
    form_excluded_columns = ['password_hash', 'fuel_transactions']
    column_searchable_list = ['email', 'name']
    column_filters = ['role', 'is_active', 'location_id']
    column_list = [
        'id', 'name', 'email', 'role', 'location', 'is_active',
        'last_login', 'created_at', 'failed_login_attempts', 'locked_until',
    ]


class LocationAdminView(SecureModelView):
    column_searchable_list = ['name']
    form_excluded_columns = ['generators', 'tank', 'users', 'created_at']


class GeneratorAdminView(SecureModelView):
    column_searchable_list = ['name']
    column_filters = ['location_id']
    column_list = ['id', 'name', 'location', 'created_at']
    form_excluded_columns = ['fuel_transactions', 'created_at']


class FuelTransactionAdminView(ReadOnlyModelView):
    column_searchable_list = ['notes', 'delivery_doc_number']
    column_filters = ['transaction_date', 'created_at', 'location_id', 'generator_id', 'user_id']
    column_default_sort = ('created_at', True)


# ---------------------------------------------------------------------------
# Admin factory
# ---------------------------------------------------------------------------

def init_admin(app, db):
    """Create the Flask-Admin instance and register all model views."""

    admin = Admin(
        app,
        name='PlazaFuel Admin',
        theme=Bootstrap4Theme(),
        index_view=SecureAdminIndexView(),
        url='/admin',
    )

    from models.users import User
    from models.locations import Location, LocationTank
    from models.generators import Generator
    from models.fuel_transactions import FuelTransaction

    # Accounts
    admin.add_view(UserAdminView(User, db.session, name='Users', category='Accounts'))

    # Reference data
    admin.add_view(LocationAdminView(Location, db.session, name='Plazas', category='Reference'))
    admin.add_view(GeneratorAdminView(Generator, db.session, name='Generators', category='Reference'))

    # Fuel
    admin.add_view(FuelTransactionAdminView(FuelTransaction, db.session, name='Transactions', category='Fuel'))
    admin.add_view(ReadOnlyModelView(LocationTank, db.session, name='Tanks', category='Fuel'))

    return admin
