from datetime import datetime
from flask import render_template, request, redirect, url_for, flash, abort
from flask_login import current_user
from . import fuel_bp
from services.errors import FuelValidationError
from services.export_service import EXPORT_MIMETYPES, send_export, transaction_table
from services.fuel_service import FuelService
from services.report_service import ReportService


def _parse_occurred_at(value):
    """``datetime-local`` form value, or ``None`` to mean now."""
    if not value:
        return None
    for fmt in ('%Y-%m-%dT%H:%M', '%Y-%m-%dT%H:%M:%S', '%Y-%m-%d'):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise FuelValidationError('Invalid date')


@fuel_bp.route('/fuel/add', methods=['POST'])
def add():
    """Log a delivery into the plaza tank"""
    try:
        txn = FuelService.record_addition(
            current_user,
            request.form.get('amount'),
            occurred_at=_parse_occurred_at(request.form.get('transaction_date')),
            notes=request.form.get('notes'),
            delivery_doc_number=request.form.get('delivery_doc_number'),
        )
        flash(f'Added {txn.fuel_amount} L to the tank', 'success')
    except FuelValidationError as e:
        flash(str(e), 'danger')
    return redirect(url_for('dashboard.index'))


@fuel_bp.route('/fuel/use', methods=['POST'])
def use():
    """Log fuel taken from the tank into a generator"""
    try:
        txn = FuelService.record_withdrawal(
            current_user,
            request.form.get('generator_id', type=int),
            request.form.get('amount'),
            request.form.get('odometer_hours'),
            occurred_at=_parse_occurred_at(request.form.get('transaction_date')),
            notes=request.form.get('notes'),
        )
        flash(f'Recorded {abs(txn.fuel_amount)} L taken to generator', 'success')
    except FuelValidationError as e:
        flash(str(e), 'danger')
    return redirect(url_for('dashboard.index'))


@fuel_bp.route('/transactions')
def transactions():
    """Transaction log, scoped to what the viewer may see"""
    entries = ReportService.transaction_log()
    return render_template('fuel/transactions.html', entries=entries)


@fuel_bp.route('/transactions/export/<fmt>')
def export_transactions(fmt):
    if fmt not in EXPORT_MIMETYPES:
        abort(404)
    headers, rows = transaction_table(ReportService.transaction_log())
    return send_export(fmt, headers, rows, 'Fuel Transactions', 'transactions')
