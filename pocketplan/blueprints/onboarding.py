# pocketplan/blueprints/onboarding.py
from flask import Blueprint, current_app, jsonify, request

from ..logic.consolidation import consolidate_user_data
from ..logic.diagnosis import diagnose, repair
from ..models import db, Profile
from ..services.utils import current_user_identity, now_iso, to_float, user_prefix

bp = Blueprint("onboarding", __name__)

NUMBER_FIELDS = ("monthlyIncome", "extraIncome", "monthlyExpenses", "currentSavings", "monthlySavingsCapacity")


def _get_or_create_profile(user_id: str, email=None) -> Profile:
    profile = Profile.query.filter_by(user_id=user_id).first()
    if profile is None:
        profile = Profile(user_id=user_id, email=email, onboarding_data={})
        db.session.add(profile)
        db.session.flush()
    return profile


def normalize_answers(answers: dict) -> dict:
    """
    Cast the questionnaire's loose values: numbers become floats, blanks and
    non-numbers are dropped, list entries without content are skipped.
    """
    out = {}
    for k in NUMBER_FIELDS:
        if k in answers:
            v = to_float(answers[k])
            if v is not None:
                out[k] = v

    if isinstance(answers.get("expenseCategories"), dict):
        cats = {}
        for key, amount in answers["expenseCategories"].items():
            v = to_float(amount)
            if v is not None and str(key).strip():
                cats[str(key).strip().lower()] = v
        out["expenseCategories"] = cats

    if isinstance(answers.get("debts"), list):
        debts = []
        for d in answers["debts"]:
            if not isinstance(d, dict):
                continue
            row = {
                "name": (str(d.get("name") or "")).strip(),
                "amount": to_float(d.get("amount")),
                "monthlyPayment": to_float(d.get("monthlyPayment")),
                "interestRate": to_float(d.get("interestRate")),
            }
            if row["name"] or row["amount"] is not None:
                debts.append(row)
        out["debts"] = debts

    if isinstance(answers.get("financialGoals"), list):
        out["financialGoals"] = [str(g).strip() for g in answers["financialGoals"] if str(g or "").strip()]

    return out


@bp.get("/onboarding")
def onboarding_state():
    email, user_id = current_user_identity()
    profile = Profile.query.filter_by(user_id=user_id).first()
    if profile is None:
        return jsonify({"onboarding_data": {}, "onboarding_step": 0, "onboarding_completed": False})
    return jsonify({
        "onboarding_data": profile.onboarding_data or {},
        "onboarding_step": profile.onboarding_step or 0,
        "onboarding_completed": bool(profile.onboarding_completed),
    })


@bp.post("/onboarding")
def onboarding_submit():
    email, user_id = current_user_identity()
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValueError("Expected a JSON object")

    answers = body.get("answers") or {}
    if not isinstance(answers, dict):
        raise ValueError("answers must be an object")
    answers = normalize_answers(answers)

    step = None
    if body.get("step") is not None:
        try:
            step = int(body["step"])
        except (TypeError, ValueError, OverflowError):
            raise ValueError("step must be an integer")
        if step < 0:
            raise ValueError("step must be >= 0")

    profile = _get_or_create_profile(user_id, email)
    # reassign so the JSON column is marked dirty
    blob = dict(profile.onboarding_data or {})
    blob.update(answers)
    profile.onboarding_data = blob
    if step is not None:
        profile.onboarding_step = step
    db.session.commit()

    snapshot = {"user_id": user_id, "snapshot_at": now_iso(), "onboarding_data": blob, "version": 1}
    ts = snapshot["snapshot_at"].replace(":", "-")
    prefix = user_prefix(user_id)
    current_app.store.write_json(f"{prefix}snapshots/{ts}.json", snapshot)
    current_app.store.write_json(f"{prefix}latest.json", snapshot)

    resp = {"onboarding_data": blob, "onboarding_step": profile.onboarding_step}
    if body.get("complete"):
        resp["consolidation"] = consolidate_user_data(user_id)
    return jsonify(resp)


@bp.post("/onboarding/consolidate")
def onboarding_consolidate():
    _, user_id = current_user_identity()
    body = request.get_json(silent=True) or {}
    if not isinstance(body, dict):
        raise ValueError("Expected a JSON object")
    tables = body.get("tables")
    if tables is not None and not isinstance(tables, list):
        raise ValueError("tables must be a list")
    result = consolidate_user_data(
        user_id,
        tables=tables,
        policy=body.get("policy") or "replace",
        clear_onboarding_data=bool(body.get("clear_onboarding_data")),
    )
    current_app.logger.info("Consolidation user=%s status=%s", user_id, result["status"])
    return jsonify(result), (200 if result["success"] else 500)


@bp.get("/onboarding/diagnosis")
def onboarding_diagnosis():
    _, user_id = current_user_identity()
    return jsonify(diagnose(user_id))


@bp.post("/onboarding/repair")
def onboarding_repair():
    _, user_id = current_user_identity()
    result = repair(user_id)
    return jsonify(result), (200 if result["success"] else 500)
