# pocketplan/blueprints/debts.py
from flask import Blueprint, current_app, jsonify, request

from ..logic.debt_calculator import payoff_projection, simulate_strategy
from ..models import db, ORIGIN_MANUAL, Debt
from ..services.summary import calculate_financial_summary
from ..services.utils import current_user_identity, to_float

bp = Blueprint("debts", __name__, url_prefix="/debts")


def _required_number(source, key, *, minimum=0.0) -> float:
    v = to_float(source.get(key))
    if v is None:
        raise ValueError(f"{key} must be a number")
    if v < minimum:
        raise ValueError(f"{key} must be >= {minimum:g}")
    return v


@bp.get("")
def list_debts():
    _, user_id = current_user_identity()
    debts = Debt.query.filter_by(user_id=user_id).order_by(Debt.id).all()
    rows = []
    for d in debts:
        row = d.to_dict()
        row["payments"] = [p.to_dict() for p in d.payments]
        rows.append(row)
    return jsonify({"debts": rows})


@bp.post("")
def create_debt():
    _, user_id = current_user_identity()
    body = request.get_json(silent=True) or {}
    if not isinstance(body, dict):
        raise ValueError("Expected a JSON object")
    creditor = (str(body.get("creditor") or "")).strip()
    if not creditor:
        raise ValueError("creditor is required")
    amount = _required_number(body, "amount")
    payment = to_float(body.get("monthly_payment")) or 0.0
    rate = to_float(body.get("interest_rate")) or 0.0
    if payment < 0 or rate < 0:
        raise ValueError("monthly_payment and interest_rate must be >= 0")

    debt = Debt(
        user_id=user_id,
        creditor=creditor,
        original_amount=amount,
        current_balance=amount,
        monthly_payment=payment,
        interest_rate=rate,
        status="active" if amount > 0 else "paid",
        origin=ORIGIN_MANUAL,
    )
    db.session.add(debt)
    try:
        db.session.flush()
        calculate_financial_summary(user_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create debt for user=%s", user_id)
        raise
    return jsonify(debt.to_dict()), 201


@bp.get("/payoff")
def payoff():
    current_user_identity()
    args = request.args
    return jsonify(payoff_projection(
        _required_number(args, "principal"),
        _required_number(args, "annual_rate"),
        _required_number(args, "monthly_payment"),
    ))


@bp.get("/strategy")
def strategy():
    _, user_id = current_user_identity()
    name = (request.args.get("strategy") or "avalanche").lower()
    extra = to_float(request.args.get("extra")) or 0.0
    debts = Debt.query.filter_by(user_id=user_id, status="active").all()
    return jsonify(simulate_strategy(
        [{
            "name": d.creditor,
            "balance": d.current_balance,
            "apr": d.interest_rate,
            "min_payment": d.monthly_payment,
        } for d in debts],
        strategy=name,
        extra=extra,
    ))
