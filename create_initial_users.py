"""
First admin account
Run from project root: python create_initial_users.py
Further accounts are added from User Management or `flask users create`.
"""
import getpass

from app import create_app
from blueprints.auth.forms import validate_password_strength
from models.users import User, ROLE_ADMIN
from services.errors import ReferenceDataError
from services.reference_service import ReferenceService


def create_initial_admin():
    """Prompt for and create an admin account"""
    app = create_app()

    with app.app_context():
        existing = User.query.filter_by(role=ROLE_ADMIN).count()
        if existing > 0:
            print(f"{existing} admin account(s) already exist.")
            response = input("Create another admin? (y/n): ")
            if response.lower() != 'y':
                return

        print("\n=== Create Admin Account ===")
        print("Password: at least 10 characters with upper and lower case letters,")
        print("a number and a special character (!@#$%^&*(),.?\":{}|<>)\n")

        email = input("Email: ").strip().lower()
        name = input("Full Name: ").strip()

        while True:
            password = getpass.getpass("Password: ").strip()
            is_valid, error_msg = validate_password_strength(password)
            if not is_valid:
                print(f"{error_msg}\n")
                continue
            if password == getpass.getpass("Confirm Password: ").strip():
                break
            print("Passwords don't match. Try again.\n")

        try:
            user = ReferenceService.create_user(email, password, name=name, role=ROLE_ADMIN)
        except ReferenceDataError as e:
            print(f"Error: {e}")
            return

        print(f"\nCreated admin {user.display_name} ({user.email})")
        print("Login at: http://127.0.0.1:5000/login")


if __name__ == '__main__':
    create_initial_admin()
