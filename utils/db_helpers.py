"""
Database query helpers for role and location scoping.

Every query that lists fuel transactions or users on behalf of the logged-in
user should go through these helpers so that a user never sees another
location's data:

    role      fuel transactions              users
    ────────  ─────────────────────────────  ─────────────────────────────────
    user      own transactions only          nobody
    manager   own location (all if none set)  own location's non-admins, not self
    admin     everything                     everyone

Usage
-----
::

    from utils.db_helpers import scoped_transactions, visible_users

    txns = scoped_transactions().order_by(FuelTransaction.created_at.desc()).all()
    people = visible_users().all()
"""

from flask_login import current_user

from models.fuel_transactions import FuelTransaction
from models.users import User, ROLE_ADMIN, ROLE_USER


# ---------------------------------------------------------------------------
# Core helpers
# ---------------------------------------------------------------------------

def get_viewer():
    """Return the logged-in user, or ``None`` if not authenticated."""
    if current_user and current_user.is_authenticated:
        return current_user
    return None


def scoped_transactions(viewer=None):
    """Return a FuelTransaction query limited to what *viewer* may see."""
    viewer = viewer if viewer is not None else get_viewer()
    query = FuelTransaction.query
    if viewer is None:
        # Return a query that always yields zero rows rather than leaking data
        return query.filter(FuelTransaction.id == -1)
    if viewer.role == ROLE_USER:
        return query.filter(FuelTransaction.user_id == viewer.id)
    if viewer.is_global:
        return query
    return query.filter(FuelTransaction.location_id == viewer.location_id)


def visible_users(viewer=None):
    """Return a User query of the accounts *viewer* may list and report on."""
    viewer = viewer if viewer is not None else get_viewer()
    if viewer is None or viewer.role == ROLE_USER:
        return User.query.filter(User.id == -1)
    if viewer.is_admin:
        return User.query
    query = User.query.filter(User.role != ROLE_ADMIN, User.id != viewer.id)
    if viewer.location_id is not None:
        query = query.filter(User.location_id == viewer.location_id)
    return query


def visible_location_ids(viewer=None):
    """Location ids *viewer* may see metrics for, or ``None`` meaning all."""
    viewer = viewer if viewer is not None else get_viewer()
    if viewer is None:
        return []
    if viewer.is_global:
        return None
    return [viewer.location_id] if viewer.location_id is not None else []


def can_view_user(target, viewer=None):
    """True if *viewer* may open the detail report of *target*."""
    viewer = viewer if viewer is not None else get_viewer()
    if viewer is None or target is None:
        return False
    return visible_users(viewer).filter(User.id == target.id).first() is not None
