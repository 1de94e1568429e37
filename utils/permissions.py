"""
Permission helpers for role-based section access.

Sections map to URL prefixes.  Each role may access a fixed set of sections:

    key            URL prefix(es)                 roles
    ─────────────  ─────────────────────────────  ─────────────────────
    home           /, /dashboard                  user, manager, admin
    transactions   /transactions                  user, manager, admin
    fuel           /fuel                          user
    users          /users                         manager, admin
    reports        /reports                       manager, admin
    exports        /transactions/export,          manager, admin
                   /users/export, /reports/.../export
    manage         /manage, /admin                admin

Unknown paths (auth, static) are not protected here; Flask-Login's
``login_required`` handles anonymous access.
"""
from functools import wraps

from flask import request, abort
from flask_login import current_user

from models.users import ROLE_ADMIN, ROLE_MANAGER, ROLE_USER

# ── Section registry ──────────────────────────────────────────────────────────

# Maps URL path-prefix → section key.
# Longer/more-specific entries must come first so they match before shorter ones.
SECTION_MAP = [
    ('/transactions/export', 'exports'),
    ('/users/export',        'exports'),
    ('/transactions',        'transactions'),
    ('/fuel',                'fuel'),
    ('/users',               'users'),
    ('/reports',             'reports'),
    ('/manage',              'manage'),
    ('/admin',               'manage'),
    ('/dashboard',           'home'),
]

ROLE_SECTIONS = {
    ROLE_USER:    {'home', 'transactions', 'fuel'},
    ROLE_MANAGER: {'home', 'transactions', 'users', 'reports', 'exports'},
    ROLE_ADMIN:   {'home', 'transactions', 'users', 'reports', 'exports', 'manage'},
}

# Navigation entries in display order: (section, endpoint, label)
NAV_ITEMS = [
    ('home',         'dashboard.index',        'Home'),
    ('transactions', 'fuel.transactions',      'Transactions'),
    ('manage',       'manage.locations',       'Plazas'),
    ('manage',       'manage.generators',      'Generators'),
    ('manage',       'manage.users',           'User Management'),
    ('users',        'reports.users',          'Users'),
    ('reports',      'reports.multi_user',     'User Detailed'),
]


def section_for_path(path):
    """Return the section key matching *path*, or ``None`` for un-protected routes."""
    # Export endpoints nested under a report path
    if path.startswith('/reports/') and '/export/' in path:
        return 'exports'
    for prefix, key in SECTION_MAP:
        if path == prefix or path.startswith(prefix + '/'):
            return key
    return None


def role_can_access(role, section_key):
    return section_key in ROLE_SECTIONS.get(role, set())


def check_section_access():
    """Call from a ``before_request`` hook to enforce role restrictions.

    Does nothing for anonymous users (Flask-Login's own ``login_required``
    handles those).  Raises 403 if the role may not use the section.
    """
    if not current_user.is_authenticated:
        return

    section = section_for_path(request.path)
    if section is None:
        return  # dashboard root, static files, auth routes – always allowed

    if not role_can_access(current_user.role, section):
        abort(403)


def can_access_section(section_key):
    """Template-safe helper – returns True/False for the current user.

    Usage in Jinja2::

        {% if can_access_section('reports') %}
            <a href="/reports/multi-user">User Detailed</a>
        {% endif %}
    """
    if not current_user.is_authenticated:
        return False
    return role_can_access(current_user.role, section_key)


def nav_items():
    """Navigation entries visible to the current user."""
    return [(endpoint, label) for section, endpoint, label in NAV_ITEMS if can_access_section(section)]


def roles_required(*roles):
    """Route decorator: abort 403 unless the current user has one of *roles*."""
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated or current_user.role not in roles:
                abort(403)
            return view(*args, **kwargs)
        return wrapped
    return decorator
