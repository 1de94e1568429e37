"""
Reference Service
=================
Locations, generators and user accounts: the read-only lookup snapshot used by
reports, and the admin operations that change that data.

Reference snapshot
------------------
``ReferenceSnapshot`` holds id -> label lookups for locations, generators and
users.  ``get_reference_snapshot()`` loads it at most once per request and keeps
it on ``flask.g``; it is discarded when the request ends.  Any write made
through this service calls ``invalidate_reference_snapshot()`` so later reads in
the same request see the change.

Primary entry points
--------------------
  get_reference_snapshot()  - per-request lookup snapshot
  ReferenceService          - create/delete locations and generators, manage users
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from types import MappingProxyType

from flask import current_app, g, has_app_context
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from models.generators import Generator
from models.locations import Location, LocationTank
from models.users import User, ROLES, ROLE_ADMIN
from services.errors import DataUnavailableError, ReferenceDataError


_SNAPSHOT_KEY = '_reference_snapshot'


@dataclass(frozen=True)
class ReferenceSnapshot:
    """Immutable id -> display-name lookups taken at one point in time."""
    locations: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    generators: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    generator_locations: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    users: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    loaded_at: datetime = None

    @classmethod
    def build(cls, locations=None, generators=None, users=None, generator_locations=None):
        """Convenience constructor from plain dicts."""
        return cls(
            locations=MappingProxyType(dict(locations or {})),
            generators=MappingProxyType(dict(generators or {})),
            generator_locations=MappingProxyType(dict(generator_locations or {})),
            users=MappingProxyType(dict(users or {})),
            loaded_at=datetime.now(timezone.utc).replace(tzinfo=None),
        )

    def location_label(self, location_id):
        if location_id is None:
            return '-'
        return self.locations.get(location_id, '-')

    def generator_label(self, generator_id):
        if generator_id is None:
            return '-'
        return self.generators.get(generator_id, '-')

    def user_label(self, user_id):
        return self.users.get(user_id) or (str(user_id) if user_id is not None else '-')

    def generators_for_location(self, location_id):
        """``[(id, name), ...]`` for a location, sorted by name."""
        return sorted(
            ((gid, self.generators[gid]) for gid, lid in self.generator_locations.items() if lid == location_id),
            key=lambda item: (item[1] or '').lower()
        )


def load_reference_snapshot():
    """Read every location, generator and user label from the database."""
    try:
        locations = {loc.id: loc.name for loc in Location.query.order_by(Location.name).all()}
        generators = Generator.query.order_by(Generator.name).all()
        users = {u.id: u.display_name for u in User.query.all()}
    except SQLAlchemyError as exc:
        current_app.logger.error(f'Reference data load failed: {exc}')
        raise DataUnavailableError('reference data', exc) from exc

    return ReferenceSnapshot.build(
        locations=locations,
        generators={gen.id: gen.name for gen in generators},
        generator_locations={gen.id: gen.location_id for gen in generators},
        users=users,
    )


def get_reference_snapshot():
    """Return this request's snapshot, loading it on first use."""
    snapshot = g.get(_SNAPSHOT_KEY)
    if snapshot is None:
        snapshot = load_reference_snapshot()
        setattr(g, _SNAPSHOT_KEY, snapshot)
    return snapshot


def invalidate_reference_snapshot():
    if has_app_context():
        g.pop(_SNAPSHOT_KEY, None)


def _clean_name(value, what):
    name = (value or '').strip()
    if not name:
        raise ReferenceDataError(f'Provide a {what} name')
    return name


class ReferenceService:
    """Admin operations on locations, generators and user accounts."""

    # ── Locations ─────────────────────────────────────────────────────────

    @staticmethod
    def list_locations():
        try:
            return Location.query.order_by(Location.name).all()
        except SQLAlchemyError as exc:
            raise DataUnavailableError('locations', exc) from exc

    @staticmethod
    def create_location(name):
        """Create a location together with its empty tank."""
        name = _clean_name(name, 'location')
        if Location.query.filter(db.func.lower(Location.name) == name.lower()).first():
            raise ReferenceDataError(f'Location "{name}" already exists')

        location = Location(name=name)
        location.tank = LocationTank(current_balance=Decimal('0.00'))
        db.session.add(location)
        db.session.commit()
        invalidate_reference_snapshot()
        current_app.logger.info(f'Created location {location.id} "{name}"')
        return location

    @staticmethod
    def delete_location(location_id):
        """Delete a location and its generators.

        Refused while fuel transactions or users still reference it, so history
        is never orphaned.
        """
        from models.fuel_transactions import FuelTransaction

        location = db.session.get(Location, location_id)
        if location is None:
            raise ReferenceDataError('Location not found')
        if FuelTransaction.query.filter_by(location_id=location_id).first():
            raise ReferenceDataError(f'Location "{location.name}" has fuel transactions and cannot be deleted')
        if location.users.count():
            raise ReferenceDataError(f'Location "{location.name}" still has assigned users')

        db.session.delete(location)
        db.session.commit()
        invalidate_reference_snapshot()
        current_app.logger.info(f'Deleted location {location_id}')

    # ── Generators ────────────────────────────────────────────────────────

    @staticmethod
    def list_generators(location_id=None):
        try:
            query = Generator.query
            if location_id is not None:
                query = query.filter_by(location_id=location_id)
            return query.order_by(Generator.created_at.desc()).all()
        except SQLAlchemyError as exc:
            raise DataUnavailableError('generators', exc) from exc

    @staticmethod
    def create_generator(location_id, name):
        name = _clean_name(name, 'generator')
        if not location_id or db.session.get(Location, location_id) is None:
            raise ReferenceDataError('Select a location for the generator')

        generator = Generator(location_id=location_id, name=name)
        db.session.add(generator)
        db.session.commit()
        invalidate_reference_snapshot()
        current_app.logger.info(f'Created generator {generator.id} "{name}" at location {location_id}')
        return generator

    @staticmethod
    def delete_generator(generator_id):
        from models.fuel_transactions import FuelTransaction

        generator = db.session.get(Generator, generator_id)
        if generator is None:
            raise ReferenceDataError('Generator not found')
        if FuelTransaction.query.filter_by(generator_id=generator_id).first():
            raise ReferenceDataError(f'Generator "{generator.name}" has fuel transactions and cannot be deleted')

        db.session.delete(generator)
        db.session.commit()
        invalidate_reference_snapshot()
        current_app.logger.info(f'Deleted generator {generator_id}')

    # ── Users ─────────────────────────────────────────────────────────────

    @staticmethod
    def create_user(email, password, name=None, role='user', location_id=None):
        from blueprints.auth.forms import validate_password_strength

        email = (email or '').strip().lower()
        if not email:
            raise ReferenceDataError('Email is required')
        if role not in ROLES:
            raise ReferenceDataError(f'Unknown role "{role}"')
        is_valid, message = validate_password_strength(password or '')
        if not is_valid:
            raise ReferenceDataError(message)
        if location_id is not None and db.session.get(Location, location_id) is None:
            raise ReferenceDataError('Location not found')

        user = User(
            email=email,
            name=(name or '').strip() or None,
            role=role,
            location_id=None if role == ROLE_ADMIN else location_id,
            is_active=True,
        )
        user.set_password(password)
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ReferenceDataError(f'A user with email {email} already exists') from exc

        invalidate_reference_snapshot()
        current_app.logger.info(f'Created {role} account {email}')
        return user

    @staticmethod
    def update_user(user_id, role=None, location_id=None, is_active=None, acting_user=None):
        """Change a user's role, location and/or active flag."""
        user = db.session.get(User, user_id)
        if user is None:
            raise ReferenceDataError('User not found')
        if acting_user is not None and acting_user.id == user.id and (
                (role is not None and role != user.role) or is_active is False):
            raise ReferenceDataError('You cannot change your own role or deactivate yourself')

        if role is not None:
            if role not in ROLES:
                raise ReferenceDataError(f'Unknown role "{role}"')
            user.role = role
        if location_id is not None:
            if location_id and db.session.get(Location, location_id) is None:
                raise ReferenceDataError('Location not found')
            user.location_id = location_id or None
        if user.role == ROLE_ADMIN:
            user.location_id = None
        if is_active is not None:
            user.is_active = bool(is_active)

        db.session.commit()
        invalidate_reference_snapshot()
        current_app.logger.info(
            f'Updated user {user.email}: role={user.role} location={user.location_id} active={user.is_active}'
        )
        return user
