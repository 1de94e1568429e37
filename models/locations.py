"""
Location (plaza) and its shared fuel tank.
"""
from datetime import datetime, timezone
from decimal import Decimal
from extensions import db


class Location(db.Model):
    """A physical site with one shared fuel tank and any number of generators."""
    __tablename__ = 'locations'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None), nullable=False)

    # Relationships
    generators = db.relationship('Generator', back_populates='location', lazy='dynamic',
                                 cascade='all, delete-orphan')
    tank = db.relationship('LocationTank', back_populates='location', uselist=False,
                           cascade='all, delete-orphan')
    users = db.relationship('User', back_populates='location', lazy='dynamic')

    def __repr__(self):
        return f'<Location {self.name}>'


class LocationTank(db.Model):
    """Running balance of the shared reservoir at a location."""
    __tablename__ = 'location_tanks'

    location_id = db.Column(db.Integer, db.ForeignKey('locations.id'), primary_key=True)
    current_balance = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    updated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None),
                           onupdate=lambda: datetime.now(timezone.utc).replace(tzinfo=None))

    location = db.relationship('Location', back_populates='tank')

    def adjust(self, liters):
        """Add *liters* (signed) to the balance."""
        self.current_balance = Decimal(str(self.current_balance or 0)) + Decimal(str(liters))
        self.updated_at = datetime.now(timezone.utc).replace(tzinfo=None)

    def __repr__(self):
        return f'<LocationTank {self.location_id}: {self.current_balance} L>'
