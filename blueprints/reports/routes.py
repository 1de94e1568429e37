from flask import render_template, request, redirect, url_for, flash, abort
from . import reports_bp
from extensions import db
from models.users import User
from services.export_service import (
    EXPORT_MIMETYPES, combined_table, detail_table, send_export, users_table,
)
from services.report_service import ReportService
from utils.db_helpers import can_view_user


def _check_format(fmt):
    if fmt not in EXPORT_MIMETYPES:
        abort(404)


def _visible_user_or_404(user_id):
    user = db.session.get(User, user_id)
    if user is None or not can_view_user(user):
        abort(404)
    return user


def _selected_user_ids():
    return request.args.getlist('user_id', type=int)


@reports_bp.route('/users')
def users():
    """Users visible to the viewer"""
    return render_template('reports/users.html', users=ReportService.users_report())


@reports_bp.route('/users/export/<fmt>')
def export_users(fmt):
    _check_format(fmt)
    headers, rows = users_table(ReportService.users_report())
    return send_export(fmt, headers, rows, 'Users', 'users')


@reports_bp.route('/reports/users/<int:user_id>')
def user_detail(user_id):
    """Totals and odometer/HPL detail rows for one user"""
    user = _visible_user_or_404(user_id)
    detail = ReportService.user_detail(user)
    return render_template('reports/user_detail.html', user=user, detail=detail)


@reports_bp.route('/reports/users/<int:user_id>/export/<fmt>')
def export_user_detail(user_id, fmt):
    _check_format(fmt)
    user = _visible_user_or_404(user_id)
    headers, rows = detail_table(ReportService.user_detail(user)['rows'])
    filename = f'user-{user.id}-details'
    return send_export(fmt, headers, rows, f'Details {user.display_name}', filename)


@reports_bp.route('/reports/multi-user')
def multi_user():
    """Combined detail report over selected users"""
    candidates = ReportService.selectable_users()
    selected_ids = _selected_user_ids()
    results = []
    if 'user_id' in request.args or request.args.get('load'):
        if not selected_ids:
            flash('Please select at least one user', 'danger')
        else:
            results = ReportService.multi_user_detail(selected_ids)
    return render_template(
        'reports/multi_user.html',
        candidates=candidates,
        selected_ids=set(selected_ids),
        results=results,
    )


@reports_bp.route('/reports/multi-user/export/<fmt>')
def export_multi_user(fmt):
    _check_format(fmt)
    selected_ids = _selected_user_ids()
    if not selected_ids:
        flash('Please select at least one user', 'danger')
        return redirect(url_for('reports.multi_user'))
    headers, rows = combined_table(ReportService.multi_user_detail(selected_ids))
    return send_export(fmt, headers, rows, 'Combined Details', 'multi-user-report')
