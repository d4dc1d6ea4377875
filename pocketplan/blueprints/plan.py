# pocketplan/blueprints/plan.py
from flask import Blueprint, abort, current_app, jsonify

from ..logic.plan import generate_financial_plan, latest_plan
from ..services.utils import current_user_identity

bp = Blueprint("plan", __name__)


@bp.get("/plan")
def view_plan():
    _, user_id = current_user_identity()
    plan = latest_plan(user_id)
    if plan is None:
        abort(404, description="No plan generated yet")
    return jsonify(plan)


@bp.post("/plan/generate")
def generate_plan():
    _, user_id = current_user_identity()
    plan = generate_financial_plan(user_id)
    current_app.logger.info("Plan generated user=%s source=%s", user_id, plan.get("source"))
    return jsonify(plan), 201
