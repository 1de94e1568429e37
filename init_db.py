"""
Initialize database and create tables
Run once on a fresh install: python init_db.py [plaza name ...]
"""
import sys

from app import create_app
from extensions import db
from services.errors import ReferenceDataError
from services.reference_service import ReferenceService


def init_db(plaza_names=()):
    """Create tables and, optionally, the first plazas with empty tanks"""
    app = create_app('development')

    with app.app_context():
        print("Creating database tables...")
        db.create_all()
        print(f"Database location: {app.config['SQLALCHEMY_DATABASE_URI']}")

        print("\nTables:")
        for table in db.metadata.sorted_tables:
            print(f"  - {table.name}")

        for name in plaza_names:
            try:
                location = ReferenceService.create_location(name)
                print(f"Created plaza {location.name} (id {location.id})")
            except ReferenceDataError as e:
                print(f"Skipped {name}: {e}")


if __name__ == '__main__':
    init_db(sys.argv[1:])
