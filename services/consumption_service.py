"""
Consumption Service
===================
Turns a fuel transaction log into detail rows carrying generator odometer
deltas and an hours-per-litre (HPL) consumption rate.

How attribution works
---------------------
1. Transactions are ordered by ``created_at`` (entry time), oldest first.  Ties
   keep their input order.
2. One pass walks that sequence keeping the last odometer reading seen per
   generator.  Tank additions never read or write those readings.
3. When a withdrawal has a reading but the pass has not yet seen one for its
   generator, the previous reading is looked up in the wider location history:
   same location, same generator, ``transaction_date`` strictly earlier.  The
   latest ``transaction_date`` wins; equal dates go to the latest
   ``created_at``, then the highest id.
4. HPL = |hours delta| / litres used, rounded half-up to 2 places.
5. Rows are returned newest ``created_at`` first.

The readings map is local to a single ``compute_detail_rows`` call, so a user's
rows are identical whether computed alone or as part of a multi-user batch
that shares the same location history.

Primary entry points
--------------------
  normalize_transactions() - validate and order raw transactions
  compute_detail_rows()    - full pipeline for one user's transactions
  compute_rows_by_user()   - per-user pipeline over a multi-user selection
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Optional


logger = logging.getLogger(__name__)

TANK_KEY = 'tank'
RATE_QUANTUM = Decimal('0.01')


class TransactionKind(Enum):
    ADDITION = 'Addition'
    WITHDRAWAL = 'Withdrawal'


@dataclass(frozen=True)
class TransactionRecord:
    """Canonical, validated form of one fuel transaction."""
    id: object
    user_id: object
    location_id: object
    generator_id: object
    fuel_amount: Decimal
    occurred_at: Optional[datetime]
    recorded_at: datetime
    odometer_hours: Optional[Decimal] = None
    notes: Optional[str] = None

    @property
    def is_addition(self):
        return self.fuel_amount > 0

    @property
    def equipment_key(self):
        return self.generator_id if self.generator_id is not None else TANK_KEY

    @property
    def tracks_odometer(self):
        """Only withdrawals into a real generator take part in odometer tracking."""
        return not self.is_addition and self.generator_id is not None


@dataclass(frozen=True)
class DerivedRow:
    """One display/export-ready line of a detail report."""
    transaction_id: object
    user_id: object
    occurred_at: Optional[datetime]
    recorded_at: datetime
    kind: TransactionKind
    equipment_label: str
    location_label: str
    liters_added: Decimal
    liters_used: Decimal
    odometer_reading: Optional[Decimal] = None
    odometer_delta: Optional[Decimal] = None
    consumption_rate: Optional[Decimal] = None


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

# Accepted field names, canonical first
_FIELD_ALIASES = {
    'occurred_at': ('occurred_at', 'transaction_date'),
    'recorded_at': ('recorded_at', 'created_at'),
}


def _field(raw, name):
    for key in _FIELD_ALIASES.get(name, (name,)):
        if isinstance(raw, dict):
            if raw.get(key) is not None:
                return raw[key]
        else:
            value = getattr(raw, key, None)
            if value is not None:
                return value
    return None


def _to_decimal(value):
    if value is None or value == '':
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def _to_datetime(value):
    """Naive UTC datetime, as stored by the models; offsets are converted."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_record(raw):
    """Coerce an ORM row, mapping or ``TransactionRecord`` into a record.

    Returns ``None`` for rows that cannot take part in a report: a missing or
    zero fuel amount, or no entry timestamp.
    """
    if isinstance(raw, TransactionRecord):
        return raw if raw.fuel_amount else None

    fuel_amount = _to_decimal(_field(raw, 'fuel_amount'))
    if not fuel_amount:
        return None
    recorded_at = _to_datetime(_field(raw, 'recorded_at'))
    if recorded_at is None:
        return None

    odometer = _to_decimal(_field(raw, 'odometer_hours'))
    if odometer is not None and odometer < 0:
        odometer = None

    return TransactionRecord(
        id=_field(raw, 'id'),
        user_id=_field(raw, 'user_id'),
        location_id=_field(raw, 'location_id'),
        generator_id=_field(raw, 'generator_id'),
        fuel_amount=fuel_amount,
        occurred_at=_to_datetime(_field(raw, 'occurred_at')),
        recorded_at=recorded_at,
        odometer_hours=odometer,
        notes=_field(raw, 'notes'),
    )


def normalize_transactions(raw_transactions):
    """Return valid records ordered by entry time, oldest first (stable)."""
    records = []
    for raw in raw_transactions or []:
        record = to_record(raw)
        if record is None:
            logger.debug('Skipping unusable fuel transaction %r', _field(raw, 'id'))
            continue
        records.append(record)
    return sorted(records, key=lambda r: r.recorded_at)


# ---------------------------------------------------------------------------
# Odometer continuity
# ---------------------------------------------------------------------------

class OdometerHistory:
    """Read-only index of past generator readings for fallback lookups.

    Built once from the full same-location transaction pool and safe to share
    between any number of resolver passes.
    """

    def __init__(self, pool=None):
        self._readings = {}
        for raw in pool or []:
            record = to_record(raw)
            if record is None or not record.tracks_odometer:
                continue
            if record.odometer_hours is None or record.occurred_at is None:
                continue
            key = (record.location_id, record.generator_id)
            self._readings.setdefault(key, []).append(record)

    def __len__(self):
        return sum(len(v) for v in self._readings.values())

    def previous_reading(self, record):
        """Latest reading for the record's generator strictly before its ``occurred_at``."""
        if record.occurred_at is None:
            return None
        candidates = [
            r for r in self._readings.get((record.location_id, record.generator_id), [])
            if r.occurred_at < record.occurred_at
        ]
        if not candidates:
            return None
        best = max(candidates, key=lambda r: (r.occurred_at, r.recorded_at, _id_sort_key(r.id)))
        return best


def _id_sort_key(value):
    # Ids may be ints or strings depending on the source
    return (0, value, '') if isinstance(value, int) else (1, 0, str(value))


class OdometerContinuityResolver:
    """Tracks the last reading per generator across one processing pass."""

    def __init__(self, history=None):
        self.history = history or OdometerHistory()
        self._last_reading = {}

    def resolve(self, record):
        """Return the absolute hours delta for *record*, or ``None``."""
        if not record.tracks_odometer:
            return None

        current = record.odometer_hours
        previous = self._last_reading.get(record.equipment_key)

        if previous is None and current is not None:
            earlier = self.history.previous_reading(record)
            if earlier is not None:
                previous = earlier.odometer_hours
                logger.debug(
                    'Transaction %s: previous reading %s taken from transaction %s',
                    record.id, previous, earlier.id
                )

        delta = abs(current - previous) if current is not None and previous is not None else None

        if current is not None:
            self._last_reading[record.equipment_key] = current

        return delta


# ---------------------------------------------------------------------------
# Rate calculation & row assembly
# ---------------------------------------------------------------------------

def consumption_rate(delta, liters_used):
    """Hours per litre, 2 decimal places; ``None`` when it cannot be computed."""
    if delta is None or not liters_used or liters_used <= 0:
        return None
    return (Decimal(delta) / Decimal(liters_used)).quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)


def _assemble_row(record, delta, reference):
    liters_added = record.fuel_amount if record.fuel_amount > 0 else Decimal('0')
    liters_used = abs(record.fuel_amount) if record.fuel_amount < 0 else Decimal('0')
    kind = TransactionKind.ADDITION if record.fuel_amount > 0 else TransactionKind.WITHDRAWAL

    if reference is not None:
        equipment_label = reference.generator_label(record.generator_id)
        location_label = reference.location_label(record.location_id)
    else:
        equipment_label = str(record.generator_id) if record.generator_id is not None else '-'
        location_label = str(record.location_id) if record.location_id is not None else '-'

    return DerivedRow(
        transaction_id=record.id,
        user_id=record.user_id,
        occurred_at=record.occurred_at,
        recorded_at=record.recorded_at,
        kind=kind,
        equipment_label=equipment_label,
        location_label=location_label,
        liters_added=liters_added,
        liters_used=liters_used,
        odometer_reading=record.odometer_hours,
        odometer_delta=delta,
        consumption_rate=consumption_rate(delta, liters_used),
    )


def compute_detail_rows(user_transactions, location_pool=None, reference=None):
    """
    Build detail rows for one user's transactions.

    Args:
        user_transactions: the subject user's transactions (any order).
        location_pool:     wider same-location history used for fallback
                           lookups, as raw transactions or an ``OdometerHistory``.
        reference:         optional ``ReferenceSnapshot`` for labels.

    Returns:
        list of ``DerivedRow``, newest ``recorded_at`` first.
    """
    records = normalize_transactions(user_transactions)
    if not records:
        return []

    history = location_pool if isinstance(location_pool, OdometerHistory) else OdometerHistory(location_pool)
    resolver = OdometerContinuityResolver(history)

    rows = [_assemble_row(record, resolver.resolve(record), reference) for record in records]
    rows.reverse()
    return rows


def compute_rows_by_user(transactions, location_pool=None, reference=None, user_ids=None):
    """
    Run ``compute_detail_rows`` separately for each user in *transactions*.

    Every user gets a fresh readings map; all users share one history built
    from *location_pool*.  Returns an ordered dict ``user_id -> rows`` in
    *user_ids* order when given (users without transactions map to ``[]``),
    otherwise in first-seen order.
    """
    history = location_pool if isinstance(location_pool, OdometerHistory) else OdometerHistory(location_pool)

    by_user = OrderedDict((uid, []) for uid in (user_ids or []))
    for raw in transactions or []:
        uid = _field(raw, 'user_id')
        if user_ids is not None and uid not in by_user:
            continue
        by_user.setdefault(uid, []).append(raw)

    return OrderedDict(
        (uid, compute_detail_rows(user_txs, history, reference))
        for uid, user_txs in by_user.items()
    )
