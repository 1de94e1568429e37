"""
Fuel Service
============
Records fuel movements at a location and keeps the location tank balance in
step with them.

Additions put fuel into the shared tank (positive ``fuel_amount``, no
generator).  Withdrawals take fuel from the tank into one of the location's
generators (negative ``fuel_amount``) and carry the generator's odometer
reading at the time of refuelling.

Primary entry points
--------------------
  record_addition()    - delivery into the location tank
  record_withdrawal()  - refuel a generator from the tank
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models.fuel_transactions import FuelTransaction
from models.generators import Generator
from models.locations import LocationTank
from services.errors import FuelValidationError


def _positive_decimal(value, message):
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise FuelValidationError(message)
    if not amount.is_finite() or amount <= 0:
        raise FuelValidationError(message)
    return amount


def _tank_for(location_id):
    """Location tank row, locked for update where the database supports it."""
    tank = LocationTank.query.filter_by(location_id=location_id).with_for_update().first()
    if tank is None:
        tank = LocationTank(location_id=location_id, current_balance=Decimal('0.00'))
        db.session.add(tank)
    return tank


class FuelService:
    """Tank additions and generator withdrawals."""

    @staticmethod
    def record_addition(user, amount, occurred_at=None, notes=None, delivery_doc_number=None):
        """
        Add fuel to the user's location tank.

        Args:
            user:                the acting user; must be assigned to a location.
            amount:              litres delivered, > 0.
            occurred_at:         when the delivery happened (defaults to now, UTC).
            notes:               free text comment.
            delivery_doc_number: supplier delivery note reference.

        Returns:
            The new FuelTransaction.

        Raises:
            FuelValidationError if the input is rejected.
        """
        if not user.location_id:
            raise FuelValidationError('You are not assigned to a plaza')
        liters = _positive_decimal(amount, 'Enter a valid amount greater than zero')

        transaction = FuelTransaction(
            user_id=user.id,
            location_id=user.location_id,
            generator_id=None,
            fuel_amount=liters,
            transaction_date=occurred_at or datetime.now(timezone.utc).replace(tzinfo=None),
            notes=(notes or '').strip() or None,
            delivery_doc_number=(delivery_doc_number or '').strip() or None,
        )

        try:
            db.session.add(transaction)
            _tank_for(user.location_id).adjust(liters)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f'Fuel addition failed for user {user.id}: {exc}')
            raise

        current_app.logger.info(
            f'User {user.id} added {liters} L to tank at location {user.location_id} (txn {transaction.id})'
        )
        return transaction

    @staticmethod
    def record_withdrawal(user, generator_id, amount, odometer_hours, occurred_at=None, notes=None):
        """
        Take fuel from the user's location tank into a generator.

        The generator must belong to the user's location and the tank must hold
        at least *amount* litres.  When *notes* is empty the comment defaults to
        ``Used <amount> L``.
        """
        if not user.location_id:
            raise FuelValidationError('You are not assigned to a plaza')
        liters = _positive_decimal(amount, 'Enter a valid amount greater than zero')
        if not generator_id:
            raise FuelValidationError('Please select a generator')

        generator = db.session.get(Generator, generator_id)
        if generator is None or generator.location_id != user.location_id:
            raise FuelValidationError('Please select a generator at your plaza')

        odometer = _positive_decimal(odometer_hours, 'Please enter a valid odometer reading')

        tank = _tank_for(user.location_id)
        balance = Decimal(str(tank.current_balance or 0))
        if liters > balance:
            # Release the tank row lock and any tank row created above
            db.session.rollback()
            raise FuelValidationError(f'Insufficient fuel: only {balance} L in the tank')

        transaction = FuelTransaction(
            user_id=user.id,
            location_id=user.location_id,
            generator_id=generator.id,
            fuel_amount=-liters,
            transaction_date=occurred_at or datetime.now(timezone.utc).replace(tzinfo=None),
            odometer_hours=odometer,
            notes=(notes or '').strip() or f'Used {liters} L',
        )

        try:
            db.session.add(transaction)
            tank.adjust(-liters)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f'Fuel withdrawal failed for user {user.id}: {exc}')
            raise

        current_app.logger.info(
            f'User {user.id} took {liters} L into generator {generator.id} at {odometer} hrs (txn {transaction.id})'
        )
        return transaction
