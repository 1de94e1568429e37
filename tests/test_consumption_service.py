"""
Tests for the odometer / hours-per-litre attribution in consumption_service.

These are pure-function tests: transactions are plain dicts and no database
is involved.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from services.consumption_service import (
    OdometerHistory,
    TransactionKind,
    compute_detail_rows,
    compute_rows_by_user,
    consumption_rate,
    normalize_transactions,
)
from services.reference_service import ReferenceSnapshot


T0 = datetime(2025, 1, 1, 8, 0)


def withdrawal(id, user, liters, occurred, recorded=None, gen=1, loc=1, odo=None):
    return {
        'id': id,
        'user_id': user,
        'location_id': loc,
        'generator_id': gen,
        'fuel_amount': -liters,
        'transaction_date': T0 + timedelta(hours=occurred),
        'created_at': T0 + timedelta(hours=recorded if recorded is not None else occurred),
        'odometer_hours': odo,
    }


def addition(id, user, liters, occurred, recorded=None, loc=1, odo=None):
    return {
        'id': id,
        'user_id': user,
        'location_id': loc,
        'generator_id': None,
        'fuel_amount': liters,
        'transaction_date': T0 + timedelta(hours=occurred),
        'created_at': T0 + timedelta(hours=recorded if recorded is not None else occurred),
        'odometer_hours': odo,
    }


def by_id(rows):
    return {r.transaction_id: r for r in rows}


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

class TestNormalize:
    def test_orders_by_recorded_time_not_occurred_time(self):
        raw = [
            withdrawal(1, 1, 10, occurred=1, recorded=5),
            withdrawal(2, 1, 10, occurred=9, recorded=2),
        ]
        assert [r.id for r in normalize_transactions(raw)] == [2, 1]

    def test_equal_recorded_times_keep_input_order(self):
        raw = [withdrawal(7, 1, 10, occurred=1, recorded=3), withdrawal(3, 1, 10, occurred=2, recorded=3)]
        assert [r.id for r in normalize_transactions(raw)] == [7, 3]

    def test_zero_amount_rows_are_dropped(self):
        raw = [withdrawal(1, 1, 10, occurred=1), withdrawal(2, 1, 0, occurred=2)]
        assert [r.id for r in normalize_transactions(raw)] == [1]

    def test_iso_strings_are_parsed(self):
        raw = [{
            'id': 'abc', 'user_id': 'u1', 'location_id': 'p1', 'generator_id': 'g1',
            'fuel_amount': '-12.5', 'transaction_date': '2025-01-02T10:00:00Z',
            'created_at': '2025-01-02T10:05:00+00:00', 'odometer_hours': '301.4',
        }]
        record = normalize_transactions(raw)[0]
        assert record.fuel_amount == Decimal('-12.5')
        assert record.odometer_hours == Decimal('301.4')
        assert record.occurred_at.hour == 10

    def test_offsets_are_converted_to_naive_utc(self):
        raw = [
            {'id': 1, 'fuel_amount': '5', 'created_at': '2025-01-02T10:00:00'},
            {'id': 2, 'fuel_amount': '5', 'created_at': '2025-01-02T11:00:00+03:00'},
            {'id': 3, 'fuel_amount': '5', 'created_at': '2025-01-01T10:00:00Z'},
        ]
        records = normalize_transactions(raw)
        assert [r.id for r in records] == [3, 2, 1]
        assert records[1].recorded_at == datetime(2025, 1, 2, 8, 0)
        assert all(r.recorded_at.tzinfo is None for r in records)

    def test_mixed_offsets_in_detail_rows(self):
        raw = [
            dict(withdrawal(1, 1, 10, occurred=1, odo=100), created_at='2025-01-01T10:00:00Z'),
            dict(withdrawal(2, 1, 10, occurred=2, odo=104), created_at='2025-01-02T10:00:00'),
        ]
        rows = compute_detail_rows(raw)
        assert [r.transaction_id for r in rows] == [2, 1]
        assert rows[0].odometer_delta == Decimal('4')

    @pytest.mark.parametrize('amount', ['NaN', float('nan'), 'Infinity', '-inf'])
    def test_non_finite_amount_is_dropped(self, amount):
        raw = [withdrawal(1, 1, 10, occurred=1), dict(withdrawal(2, 1, 10, occurred=2), fuel_amount=amount)]
        assert [r.id for r in normalize_transactions(raw)] == [1]

    @pytest.mark.parametrize('odometer', ['NaN', float('nan'), 'Infinity'])
    def test_non_finite_odometer_is_absent(self, odometer):
        raw = [withdrawal(1, 1, 10, occurred=1, odo=100), withdrawal(2, 1, 10, occurred=2, odo=odometer)]
        assert normalize_transactions(raw)[1].odometer_hours is None
        rows = by_id(compute_detail_rows(raw))
        assert rows[2].odometer_reading is None
        assert rows[2].odometer_delta is None

    def test_empty_input(self):
        assert normalize_transactions([]) == []
        assert normalize_transactions(None) == []


# ---------------------------------------------------------------------------
# Detail rows
# ---------------------------------------------------------------------------

class TestDetailRows:
    def test_empty_input_gives_empty_output(self):
        assert compute_detail_rows([]) == []
        assert compute_detail_rows([], [withdrawal(1, 2, 10, occurred=1, odo=100)]) == []

    def test_rate_is_delta_over_litres_used(self):
        rows = by_id(compute_detail_rows([
            withdrawal(1, 1, 10, occurred=1, odo=100),
            withdrawal(2, 1, 20, occurred=2, odo=105),
        ]))
        assert rows[2].odometer_delta == Decimal('5')
        assert rows[2].consumption_rate == Decimal('0.25')

    def test_rate_rounds_half_up(self):
        rows = by_id(compute_detail_rows([
            withdrawal(1, 1, 10, occurred=1, odo=100),
            withdrawal(2, 1, 8, occurred=2, odo=101),
        ]))
        assert rows[2].consumption_rate == Decimal('0.13')

    def test_delta_is_never_negative(self):
        rows = by_id(compute_detail_rows([
            withdrawal(1, 1, 10, occurred=1, odo=100),
            withdrawal(2, 1, 10, occurred=2, odo=90),
        ]))
        assert rows[2].odometer_delta == Decimal('10')

    def test_first_reading_without_history_has_no_delta(self):
        rows = compute_detail_rows([withdrawal(1, 1, 10, occurred=1, odo=100)])
        assert rows[0].odometer_delta is None
        assert rows[0].consumption_rate is None

    def test_exactly_one_of_added_or_used_is_set(self):
        rows = compute_detail_rows([
            addition(1, 1, 200, occurred=1),
            withdrawal(2, 1, 15, occurred=2, odo=50),
        ])
        for row in rows:
            if row.kind is TransactionKind.ADDITION:
                assert row.liters_added > 0 and row.liters_used == 0
            else:
                assert row.liters_used > 0 and row.liters_added == 0

    def test_additions_never_touch_generator_readings(self):
        rows = by_id(compute_detail_rows([
            withdrawal(1, 1, 10, occurred=1, odo=100),
            addition(2, 1, 300, occurred=2, odo=500),
            withdrawal(3, 1, 10, occurred=3, odo=110),
        ]))
        assert rows[2].odometer_delta is None
        assert rows[2].consumption_rate is None
        assert rows[3].odometer_delta == Decimal('10')

    def test_no_rate_without_usage(self):
        rows = compute_detail_rows([addition(1, 1, 50, occurred=1)])
        assert rows[0].consumption_rate is None

    def test_withdrawal_without_reading_has_no_delta_and_keeps_previous(self):
        rows = by_id(compute_detail_rows([
            withdrawal(1, 1, 10, occurred=1, odo=100),
            withdrawal(2, 1, 10, occurred=2, odo=None),
            withdrawal(3, 1, 10, occurred=3, odo=120),
        ]))
        assert rows[2].odometer_delta is None
        assert rows[3].odometer_delta == Decimal('20')

    def test_generators_are_tracked_separately(self):
        rows = by_id(compute_detail_rows([
            withdrawal(1, 1, 10, occurred=1, gen=1, odo=100),
            withdrawal(2, 1, 10, occurred=2, gen=2, odo=900),
            withdrawal(3, 1, 10, occurred=3, gen=1, odo=104),
        ]))
        assert rows[2].odometer_delta is None
        assert rows[3].odometer_delta == Decimal('4')

    def test_rows_are_newest_recorded_first(self):
        rows = compute_detail_rows([
            withdrawal(1, 1, 10, occurred=5, recorded=1),
            withdrawal(2, 1, 10, occurred=1, recorded=3),
            withdrawal(3, 1, 10, occurred=2, recorded=2),
        ])
        assert [r.transaction_id for r in rows] == [2, 3, 1]

    def test_labels_come_from_reference_snapshot(self):
        reference = ReferenceSnapshot.build(generators={1: 'Gen A'}, locations={1: 'North Plaza'})
        rows = by_id(compute_detail_rows(
            [addition(1, 1, 50, occurred=1), withdrawal(2, 1, 10, occurred=2, odo=10)],
            reference=reference,
        ))
        assert rows[1].equipment_label == '-'
        assert rows[2].equipment_label == 'Gen A'
        assert rows[2].location_label == 'North Plaza'

    def test_withdrawal_without_generator_is_not_tracked(self):
        raw = [
            withdrawal(1, 1, 10, occurred=1, gen=None, odo=50),
            withdrawal(2, 1, 10, occurred=2, gen=None, odo=58),
            withdrawal(3, 1, 10, occurred=3, gen=1, odo=100),
        ]
        pool = raw + [withdrawal(4, 2, 10, occurred=0, gen=None, odo=40)]
        rows = by_id(compute_detail_rows(raw, pool))
        assert rows[2].odometer_reading == Decimal('58')
        assert rows[2].odometer_delta is None
        assert rows[2].consumption_rate is None
        assert rows[3].odometer_delta is None


# ---------------------------------------------------------------------------
# Fallback to the wider location history
# ---------------------------------------------------------------------------

class TestFallback:
    def test_previous_reading_from_another_user(self):
        x = withdrawal(1, 'x', 10, occurred=1, odo=100)
        y = withdrawal(2, 'y', 20, occurred=2, odo=140)
        rows = compute_detail_rows([y], [x, y])
        assert rows[0].odometer_delta == Decimal('40')
        assert rows[0].consumption_rate == Decimal('2.00')

    def test_only_strictly_earlier_readings_qualify(self):
        x = withdrawal(1, 'x', 10, occurred=2, odo=100)
        y = withdrawal(2, 'y', 10, occurred=2, recorded=3, odo=140)
        rows = compute_detail_rows([y], [x, y])
        assert rows[0].odometer_delta is None

    def test_latest_earlier_reading_wins(self):
        pool = [
            withdrawal(1, 'x', 10, occurred=1, odo=100),
            withdrawal(2, 'x', 10, occurred=3, odo=120),
            withdrawal(3, 'z', 10, occurred=2, odo=110),
        ]
        y = withdrawal(4, 'y', 10, occurred=4, odo=130)
        rows = compute_detail_rows([y], pool + [y])
        assert rows[0].odometer_delta == Decimal('10')

    def test_back_dated_entry_uses_occurred_time_for_lookup(self):
        later = withdrawal(1, 'x', 10, occurred=10, recorded=1, odo=200)
        earlier = withdrawal(2, 'x', 10, occurred=1, recorded=0, odo=100)
        y = withdrawal(3, 'y', 10, occurred=5, recorded=6, odo=150)
        rows = compute_detail_rows([y], [later, earlier, y])
        assert rows[0].odometer_delta == Decimal('50')

    def test_other_locations_are_ignored(self):
        elsewhere = withdrawal(1, 'x', 10, occurred=1, loc=2, odo=100)
        y = withdrawal(2, 'y', 10, occurred=2, loc=1, odo=140)
        rows = compute_detail_rows([y], [elsewhere, y])
        assert rows[0].odometer_delta is None

    def test_additions_in_pool_are_ignored(self):
        tank = addition(1, 'x', 100, occurred=1, odo=90)
        y = withdrawal(2, 'y', 10, occurred=2, odo=140)
        rows = compute_detail_rows([y], [tank, y])
        assert rows[0].odometer_delta is None

    def test_own_previous_reading_takes_precedence_over_pool(self):
        own_first = withdrawal(1, 'y', 10, occurred=1, odo=100)
        someone_else = withdrawal(2, 'x', 10, occurred=2, odo=120)
        own_second = withdrawal(3, 'y', 10, occurred=3, odo=130)
        rows = by_id(compute_detail_rows([own_first, own_second], [own_first, someone_else, own_second]))
        assert rows[3].odometer_delta == Decimal('30')

    def test_tie_on_occurred_time_goes_to_latest_recorded(self):
        pool = [
            withdrawal(1, 'x', 10, occurred=1, recorded=1, odo=100),
            withdrawal(2, 'z', 10, occurred=1, recorded=2, odo=120),
        ]
        y = withdrawal(3, 'y', 10, occurred=3, odo=150)
        rows = compute_detail_rows([y], pool + [y])
        assert rows[0].odometer_delta == Decimal('30')

    def test_full_tie_goes_to_highest_id(self):
        pool = [
            withdrawal(7, 'z', 10, occurred=1, recorded=1, odo=130),
            withdrawal(5, 'x', 10, occurred=1, recorded=1, odo=100),
        ]
        y = withdrawal(9, 'y', 10, occurred=3, odo=150)
        rows = compute_detail_rows([y], pool + [y])
        assert rows[0].odometer_delta == Decimal('20')

    def test_history_accepts_prebuilt_index(self):
        x = withdrawal(1, 'x', 10, occurred=1, odo=100)
        y = withdrawal(2, 'y', 20, occurred=2, odo=140)
        history = OdometerHistory([x, y])
        assert len(history) == 2
        assert compute_detail_rows([y], history)[0].odometer_delta == Decimal('40')


# ---------------------------------------------------------------------------
# Batch invariance
# ---------------------------------------------------------------------------

class TestBatchInvariance:
    @pytest.fixture
    def shared_generator_log(self):
        return [
            withdrawal(1, 'a', 10, occurred=1, odo=100),
            withdrawal(2, 'b', 20, occurred=2, odo=140),
            addition(3, 'a', 300, occurred=3),
            withdrawal(4, 'a', 15, occurred=4, odo=170),
            withdrawal(5, 'b', 10, occurred=5, odo=185),
            withdrawal(6, 'c', 12, occurred=6, gen=2, odo=40),
        ]

    def test_multi_user_rows_match_single_user_rows(self, shared_generator_log):
        combined = compute_rows_by_user(shared_generator_log, shared_generator_log)
        for uid in ('a', 'b', 'c'):
            own = [t for t in shared_generator_log if t['user_id'] == uid]
            assert combined[uid] == compute_detail_rows(own, shared_generator_log)

    def test_selection_order_and_empty_users(self, shared_generator_log):
        combined = compute_rows_by_user(shared_generator_log, shared_generator_log, user_ids=['b', 'z', 'a'])
        assert list(combined.keys()) == ['b', 'z', 'a']
        assert combined['z'] == []

    def test_user_order_does_not_change_results(self, shared_generator_log):
        forward = compute_rows_by_user(shared_generator_log, shared_generator_log, user_ids=['a', 'b'])
        backward = compute_rows_by_user(shared_generator_log, shared_generator_log, user_ids=['b', 'a'])
        assert forward['a'] == backward['a']
        assert forward['b'] == backward['b']


class TestConsumptionRate:
    def test_none_without_delta(self):
        assert consumption_rate(None, Decimal('10')) is None

    def test_none_without_litres(self):
        assert consumption_rate(Decimal('5'), Decimal('0')) is None

    def test_two_decimal_places(self):
        assert consumption_rate(Decimal('10'), Decimal('3')) == Decimal('3.33')
