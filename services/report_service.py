"""
Report Service
==============
Data for the transaction log, users list, single-user detail and the combined
multi-user detail report.  Exports of the same data live in export_service.

All queries are scoped to the viewer through ``utils.db_helpers``.  Database
failures surface as ``DataUnavailableError``; an empty list means there really
is nothing to show.

Detail reports
--------------
Detail rows come from ``consumption_service``.  The fallback pool handed to it
is every transaction at the locations the subject user(s) have logged at, so a
user's rows are the same whether the report covers one user or several.

Primary entry points
--------------------
  transaction_log()     - scoped transactions, newest entry first
  users_report()        - accounts visible to the viewer
  user_detail()         - totals and detail rows for one user
  selectable_users()    - accounts that can be picked for the combined report
  multi_user_detail()   - per-user detail rows over a selection of users
"""
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models.fuel_transactions import FuelTransaction
from models.users import User, ROLE_USER
from services.consumption_service import OdometerHistory, compute_detail_rows, compute_rows_by_user
from services.errors import DataUnavailableError
from services.reference_service import get_reference_snapshot
from utils.db_helpers import scoped_transactions, visible_users


def _location_pool(user_ids, extra_location_ids=()):
    """Every transaction at the locations *user_ids* have logged at."""
    location_ids = {
        loc_id for (loc_id,) in FuelTransaction.query.with_entities(FuelTransaction.location_id)
        .filter(FuelTransaction.user_id.in_(user_ids)).distinct().all()
    }
    location_ids.update(loc_id for loc_id in extra_location_ids if loc_id is not None)
    if not location_ids:
        return []
    return FuelTransaction.query.filter(FuelTransaction.location_id.in_(location_ids)).all()


class ReportService:
    """Read-only report queries."""

    @staticmethod
    def transaction_log(viewer=None):
        """
        Scoped transactions, newest ``created_at`` first, as display dicts.

        Keys: id, occurred_at, recorded_at, user, amount, comment, generator,
        location.
        """
        try:
            transactions = scoped_transactions(viewer).order_by(
                FuelTransaction.created_at.desc(), FuelTransaction.id.desc()
            ).all()
            reference = get_reference_snapshot()
        except SQLAlchemyError as exc:
            current_app.logger.error(f'Transaction log load failed: {exc}')
            raise DataUnavailableError('transactions', exc) from exc

        return [
            {
                'id': t.id,
                'occurred_at': t.transaction_date,
                'recorded_at': t.created_at,
                'user': reference.user_label(t.user_id),
                'amount': Decimal(str(t.fuel_amount)),
                'comment': t.notes or '',
                'generator': reference.generator_label(t.generator_id),
                'location': reference.location_label(t.location_id),
            }
            for t in transactions
        ]

    @staticmethod
    def users_report(viewer=None):
        """Visible accounts as dicts with name, email, role and location."""
        try:
            users = visible_users(viewer).order_by(User.email).all()
            reference = get_reference_snapshot()
        except SQLAlchemyError as exc:
            current_app.logger.error(f'Users report load failed: {exc}')
            raise DataUnavailableError('users', exc) from exc

        return [
            {
                'id': u.id,
                'name': u.name or '',
                'email': u.email,
                'role': u.role,
                'location': reference.location_label(u.location_id),
                'is_active': u.is_active,
            }
            for u in users
        ]

    @staticmethod
    def user_detail(user):
        """
        Totals and detail rows for one user.

        Returns:
            dict with ``total_added``, ``total_used``, ``last_activity`` (latest
            ``transaction_date``), ``transaction_count`` and ``rows`` (list of
            DerivedRow, newest entry first).
        """
        try:
            transactions = FuelTransaction.query.filter_by(user_id=user.id).all()
            pool = _location_pool([user.id], [user.location_id])
            reference = get_reference_snapshot()
        except SQLAlchemyError as exc:
            current_app.logger.error(f'User detail load failed for user {user.id}: {exc}')
            raise DataUnavailableError('user details', exc) from exc

        amounts = [Decimal(str(t.fuel_amount)) for t in transactions]
        dates = [t.transaction_date for t in transactions if t.transaction_date]

        return {
            'total_added': sum((a for a in amounts if a > 0), Decimal('0')),
            'total_used': abs(sum((a for a in amounts if a < 0), Decimal('0'))),
            'last_activity': max(dates) if dates else None,
            'transaction_count': len(transactions),
            'rows': compute_detail_rows(transactions, pool, reference),
        }

    @staticmethod
    def selectable_users(viewer=None):
        """Role ``user`` accounts the viewer may include in a combined report."""
        try:
            return visible_users(viewer).filter(User.role == ROLE_USER).order_by(User.email).all()
        except SQLAlchemyError as exc:
            current_app.logger.error(f'Selectable users load failed: {exc}')
            raise DataUnavailableError('users', exc) from exc

    @staticmethod
    def multi_user_detail(user_ids, viewer=None):
        """
        Detail rows for each selected user.

        Ids outside the viewer's selectable users are ignored.  Users are
        returned in the selectable-users order (by email).

        Returns:
            list of ``(user, rows)`` pairs; a user with no transactions has
            an empty rows list.
        """
        wanted = set()
        for uid in user_ids or []:
            try:
                wanted.add(int(uid))
            except (TypeError, ValueError):
                continue
        users = [u for u in ReportService.selectable_users(viewer) if u.id in wanted]
        if not users:
            return []
        ids = [u.id for u in users]

        try:
            transactions = FuelTransaction.query.filter(FuelTransaction.user_id.in_(ids)).all()
            pool = _location_pool(ids, [u.location_id for u in users])
            reference = get_reference_snapshot()
        except SQLAlchemyError as exc:
            current_app.logger.error(f'Multi-user detail load failed: {exc}')
            raise DataUnavailableError('transactions', exc) from exc

        history = OdometerHistory(pool)
        current_app.logger.debug(f'Multi-user report: {len(ids)} users, {len(history)} pooled readings')
        rows_by_user = compute_rows_by_user(transactions, history, reference, user_ids=ids)
        return [(u, rows_by_user.get(u.id, [])) for u in users]
