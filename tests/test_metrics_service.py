"""
Tests for MetricsService dashboard figures.
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import T0, make_location, make_txn
from services.errors import DataUnavailableError
from services.metrics_service import MetricsService


class TestUserMetrics:
    def test_totals_and_balance(self, plaza, generator, field_user):
        make_txn(field_user, plaza, 100, occurred=0)
        make_txn(field_user, plaza, -30, occurred=1, generator=generator, odometer=10)
        make_txn(field_user, plaza, -20, occurred=2, generator=generator, odometer=14)

        metrics = MetricsService.get_user_metrics(field_user, now=T0 + timedelta(days=1))

        assert metrics['balance'] == Decimal('500')
        assert metrics['total_added'] == Decimal('100')
        assert metrics['total_used'] == Decimal('50')
        assert metrics['last_activity'] == T0 + timedelta(hours=2)

    def test_weekly_usage_uses_transaction_date(self, plaza, generator, field_user):
        # Recorded recently but back-dated to before the window
        make_txn(field_user, plaza, -40, occurred=0, recorded=24 * 9, generator=generator, odometer=5)
        make_txn(field_user, plaza, -15, occurred=24 * 8, generator=generator, odometer=9)
        make_txn(field_user, plaza, 60, occurred=24 * 8)

        metrics = MetricsService.get_user_metrics(field_user, now=T0 + timedelta(days=10))

        assert metrics['weekly_usage'] == Decimal('15')

    def test_user_without_activity(self, plaza, field_user):
        metrics = MetricsService.get_user_metrics(field_user)
        assert metrics['total_added'] == 0
        assert metrics['weekly_usage'] == 0
        assert metrics['last_activity'] is None

    def test_failure_raises(self, plaza, field_user, monkeypatch):
        from models.fuel_transactions import FuelTransaction

        class BrokenQuery:
            def filter_by(self, **kwargs):
                raise SQLAlchemyError('gone')

        monkeypatch.setattr(FuelTransaction, 'query', BrokenQuery())
        with pytest.raises(DataUnavailableError):
            MetricsService.get_user_metrics(field_user)


class TestLocationSummaries:
    def test_status_thresholds(self, app, field_user):
        critical = make_location('A Critical')
        warning = make_location('B Warning')
        normal = make_location('C Normal')
        make_txn(field_user, critical, 100, occurred=0)
        make_txn(field_user, critical, -70, occurred=1)
        make_txn(field_user, warning, 100, occurred=0)
        make_txn(field_user, normal, 250, occurred=0)

        summaries = {s['name']: s for s in MetricsService.get_location_summaries([critical.id, warning.id, normal.id])}

        assert summaries['A Critical']['status'] == 'CRITICAL'
        assert summaries['A Critical']['net'] == Decimal('30')
        assert summaries['B Warning']['status'] == 'WARNING'
        assert summaries['C Normal']['status'] == 'NORMAL'

    def test_ratio_and_gauge(self, plaza, field_user):
        make_txn(field_user, plaza, 200, occurred=0)
        make_txn(field_user, plaza, -50, occurred=1)

        summary = MetricsService.get_location_summaries([plaza.id])[0]

        assert summary['added'] == Decimal('200')
        assert summary['used'] == Decimal('50')
        assert summary['usage_ratio'] == Decimal('25.0')
        assert summary['gauge_percent'] == Decimal('75')

    def test_gauge_is_clamped_when_overdrawn(self, plaza, field_user):
        make_txn(field_user, plaza, 50, occurred=0)
        make_txn(field_user, plaza, -80, occurred=1)

        summary = MetricsService.get_location_summaries([plaza.id])[0]

        assert summary['net'] == Decimal('-30')
        assert summary['gauge_percent'] == 0

    def test_every_location_present_and_sorted(self, app, field_user):
        zulu = make_location('Zulu')
        alpha = make_location('alpha')
        make_txn(field_user, zulu, 10, occurred=0)

        summaries = MetricsService.get_location_summaries()

        assert [s['name'] for s in summaries] == ['alpha', 'North Plaza', 'Zulu']
        assert summaries[0]['added'] == 0
        assert summaries[0]['status'] == 'CRITICAL'

    def test_scoped_to_requested_locations(self, plaza, other_plaza):
        summaries = MetricsService.get_location_summaries([other_plaza.id])
        assert [s['name'] for s in summaries] == ['South Plaza']
