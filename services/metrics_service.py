"""
Metrics Service
===============
Dashboard figures for the three roles.

User metrics
------------
Tank balance for the user's location plus totals over the user's own
transactions.  "Weekly usage" filters on ``transaction_date`` (when the fuel
moved), not on ``created_at``; detail reports order by ``created_at``.  The
two are deliberately left as they are.

Location summaries
------------------
Added / used / net litres per location with a tank status:
net <= TANK_CRITICAL_LITERS is CRITICAL, net <= TANK_WARNING_LITERS is WARNING,
anything above is NORMAL.

Primary entry points
--------------------
  get_user_metrics()        - home-page figures for a logged-in user
  get_location_summaries()  - per-location overview for managers and admins
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models.fuel_transactions import FuelTransaction
from models.locations import Location, LocationTank
from services.errors import DataUnavailableError


STATUS_CRITICAL = 'CRITICAL'
STATUS_WARNING = 'WARNING'
STATUS_NORMAL = 'NORMAL'


def _dec(value):
    return Decimal(str(value)) if value is not None else Decimal('0')


class MetricsService:
    """Aggregated fuel figures for dashboards."""

    @staticmethod
    def tank_status(net):
        critical = current_app.config.get('TANK_CRITICAL_LITERS', 30)
        warning = current_app.config.get('TANK_WARNING_LITERS', 100)
        if net <= critical:
            return STATUS_CRITICAL
        if net <= warning:
            return STATUS_WARNING
        return STATUS_NORMAL

    @staticmethod
    def get_user_metrics(user, now=None):
        """
        Figures shown on a user's home page.

        Returns:
            dict with balance, tank_updated_at, weekly_usage, total_added,
            total_used, last_activity.  A user with no transactions gets
            zeros, not an error.

        Raises:
            DataUnavailableError if the database cannot be read.
        """
        now = now or datetime.now(timezone.utc).replace(tzinfo=None)
        week_start = now - timedelta(days=current_app.config.get('WEEKLY_USAGE_DAYS', 7))

        try:
            transactions = FuelTransaction.query.filter_by(user_id=user.id).order_by(
                FuelTransaction.transaction_date.desc()
            ).all()
            tank = db.session.get(LocationTank, user.location_id) if user.location_id else None
        except SQLAlchemyError as exc:
            current_app.logger.error(f'User metrics load failed for user {user.id}: {exc}')
            raise DataUnavailableError('metrics', exc) from exc

        amounts = [(_dec(t.fuel_amount), t.transaction_date) for t in transactions]
        weekly_usage = abs(sum(
            (amount for amount, when in amounts if amount < 0 and when and when >= week_start),
            Decimal('0')
        ))
        total_added = sum((amount for amount, _ in amounts if amount > 0), Decimal('0'))
        total_used = abs(sum((amount for amount, _ in amounts if amount < 0), Decimal('0')))

        return {
            'balance': _dec(tank.current_balance) if tank else Decimal('0'),
            'tank_updated_at': tank.updated_at if tank else None,
            'weekly_usage': weekly_usage,
            'total_added': total_added,
            'total_used': total_used,
            'last_activity': transactions[0].transaction_date if transactions else None,
        }

    @staticmethod
    def get_location_summaries(location_ids=None):
        """
        Per-location totals for the overview dashboard.

        Args:
            location_ids: locations to include; ``None`` means every location.

        Returns:
            list of dicts sorted by location name.  Every requested location is
            present, including ones with no transactions.
        """
        added = func.sum(case((FuelTransaction.fuel_amount > 0, FuelTransaction.fuel_amount), else_=0))
        used = func.sum(case((FuelTransaction.fuel_amount < 0, -FuelTransaction.fuel_amount), else_=0))

        try:
            location_query = Location.query
            totals_query = db.session.query(FuelTransaction.location_id, added, used).group_by(
                FuelTransaction.location_id
            )
            if location_ids is not None:
                location_query = location_query.filter(Location.id.in_(location_ids))
                totals_query = totals_query.filter(FuelTransaction.location_id.in_(location_ids))
            locations = location_query.all()
            totals = {loc_id: (_dec(a), _dec(u)) for loc_id, a, u in totals_query.all()}
        except SQLAlchemyError as exc:
            current_app.logger.error(f'Location summary load failed: {exc}')
            raise DataUnavailableError('metrics', exc) from exc

        summaries = []
        for location in locations:
            total_added, total_used = totals.get(location.id, (Decimal('0'), Decimal('0')))
            net = total_added - total_used
            if total_added > 0:
                usage_ratio = (total_used / total_added * 100).quantize(Decimal('0.1'))
                gauge_percent = max(Decimal('0'), min(Decimal('100'), net / total_added * 100)).quantize(Decimal('1'))
            else:
                usage_ratio = Decimal('0.0')
                gauge_percent = Decimal('0')
            summaries.append({
                'location_id': location.id,
                'name': location.name,
                'added': total_added,
                'used': total_used,
                'net': net,
                'usage_ratio': usage_ratio,
                'gauge_percent': gauge_percent,
                'status': MetricsService.tank_status(net),
            })

        summaries.sort(key=lambda s: (s['name'] or '').lower())
        return summaries
