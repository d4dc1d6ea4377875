# pocketplan/blueprints/dashboard.py
from flask import Blueprint, jsonify

from ..logic.dashboard import build_dashboard
from ..services.utils import current_user_identity

bp = Blueprint("dashboard", __name__)


@bp.get("/dashboard")
def dashboard():
    _, user_id = current_user_identity()
    return jsonify(build_dashboard(user_id))
