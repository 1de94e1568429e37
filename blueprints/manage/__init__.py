from flask import Blueprint
from flask_login import login_required

manage_bp = Blueprint('manage', __name__, url_prefix='/manage')

# Require authentication for all routes in this blueprint
@manage_bp.before_request
@login_required
def require_login():
    pass

from . import routes
