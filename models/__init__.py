# Models package - Import all models for Flask-SQLAlchemy

from models.locations import Location, LocationTank
from models.generators import Generator
from models.fuel_transactions import FuelTransaction
from models.users import User

__all__ = [
    'Location',
    'LocationTank',
    'Generator',
    'FuelTransaction',
    'User',
]
