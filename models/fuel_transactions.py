from extensions import db
from datetime import datetime, timezone


class FuelTransaction(db.Model):
    """
    One fuel movement at a location.

    ``fuel_amount`` is signed: positive litres were added to the location tank,
    negative litres were taken from the tank into ``generator_id``.  Additions
    carry no generator and no odometer reading.

    ``transaction_date`` is when the fuel actually moved (user supplied, may be
    back-dated); ``created_at`` is when the row was entered.
    """
    __tablename__ = 'fuel_transactions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey('locations.id'), nullable=False, index=True)
    generator_id = db.Column(db.Integer, db.ForeignKey('generators.id'), nullable=True, index=True)  # NULL = tank
    fuel_amount = db.Column(db.Numeric(10, 2), nullable=False)  # Litres, signed
    transaction_date = db.Column(db.DateTime, nullable=False, index=True)
    odometer_hours = db.Column(db.Numeric(10, 1))  # Generator runtime hours
    notes = db.Column(db.Text)
    delivery_doc_number = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None),
                           nullable=False, index=True)

    # Relationships
    user = db.relationship('User', backref=db.backref('fuel_transactions', lazy='dynamic'))
    location = db.relationship('Location')

    __table_args__ = (
        db.CheckConstraint('fuel_amount != 0', name='ck_fuel_amount_nonzero'),
        db.CheckConstraint('odometer_hours IS NULL OR odometer_hours >= 0', name='ck_odometer_non_negative'),
    )

    @property
    def is_addition(self):
        return self.fuel_amount is not None and self.fuel_amount > 0

    def __repr__(self):
        return f'<FuelTransaction {self.id}: {self.fuel_amount} L @ {self.location_id}>'
