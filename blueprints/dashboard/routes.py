from flask import render_template
from flask_login import current_user
from . import dashboard_bp
from models.fuel_transactions import FuelTransaction
from models.users import ROLE_USER
from services.metrics_service import MetricsService
from services.reference_service import get_reference_snapshot
from utils.db_helpers import scoped_transactions, visible_location_ids


RECENT_TRANSACTIONS = 10


@dashboard_bp.route('/')
@dashboard_bp.route('/dashboard')
def index():
    """Role home page: fuel forms for users, location overview for managers and admins"""
    if current_user.role == ROLE_USER:
        metrics = MetricsService.get_user_metrics(current_user)
        reference = get_reference_snapshot()
        recent = scoped_transactions().order_by(
            FuelTransaction.created_at.desc()
        ).limit(RECENT_TRANSACTIONS).all()
        return render_template(
            'dashboard/user_home.html',
            metrics=metrics,
            generators=reference.generators_for_location(current_user.location_id),
            location_name=reference.location_label(current_user.location_id),
            recent=recent,
            reference=reference,
        )

    summaries = MetricsService.get_location_summaries(visible_location_ids())
    return render_template('dashboard/overview.html', summaries=summaries)
