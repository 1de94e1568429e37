from extensions import db
from datetime import datetime, timezone


class Generator(db.Model):
    __tablename__ = 'generators'

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey('locations.id'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None), nullable=False)

    # Relationships
    location = db.relationship('Location', back_populates='generators')
    fuel_transactions = db.relationship('FuelTransaction', backref='generator', lazy=True)

    def __repr__(self):
        return f'<Generator {self.name} @ {self.location_id}>'
