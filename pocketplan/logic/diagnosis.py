# pocketplan/logic/diagnosis.py
import logging

from flask import current_app

from ..models import Profile
from ..services.utils import to_float
from .consolidation import consolidate_user_data, migrated_thresholds, table_counts

logger = logging.getLogger(__name__)

# repair action -> consolidation target
ACTION_TARGETS = {
    "migrate_incomes": "incomes",
    "migrate_expenses": "expenses",
    "migrate_debts": "debts",
    "migrate_goals": "goals",
}


def _blob_has(data: dict) -> dict:
    def pos(key):
        v = to_float(data.get(key))
        return v is not None and v > 0

    cats = data.get("expenseCategories")
    cat_values = cats.values() if isinstance(cats, dict) else []
    debts = data.get("debts") if isinstance(data.get("debts"), list) else []
    return {
        "incomes": pos("monthlyIncome") or pos("extraIncome"),
        "expenses": pos("monthlyExpenses") or any((to_float(v) or 0) > 0 for v in cat_values),
        "debts": any(isinstance(d, dict) and (to_float(d.get("amount")) or 0) > 0 for d in debts),
        "goals": any(str(g or "").strip() for g in (data.get("financialGoals") or [])),
    }


def diagnose(user_id: str) -> dict:
    """
    Compare the onboarding blob against what the tables already hold and
    decide whether consolidation should run.
    """
    result = {
        "profile_exists": False,
        "onboarding_completed": False,
        "onboarding_data_exists": False,
        "onboarding_data": None,
        "tables_data": table_counts(user_id),
        "needs_repair": False,
        "repair_actions": [],
    }

    profile = Profile.query.filter_by(user_id=user_id).first()
    if profile is None:
        return result

    data = profile.onboarding_data if isinstance(profile.onboarding_data, dict) else {}
    result["profile_exists"] = True
    result["onboarding_completed"] = bool(profile.onboarding_completed)
    result["onboarding_data_exists"] = bool(data)
    result["onboarding_data"] = data or None
    if not data:
        return result

    limits = migrated_thresholds(current_app.config.get("CONSOLIDATION_EXTRA_DEBTS") or [])
    has = _blob_has(data)
    for action, target in ACTION_TARGETS.items():
        if has[target] and result["tables_data"][target] <= limits[target]:
            result["repair_actions"].append(action)

    if not profile.onboarding_completed:
        result["repair_actions"].append("mark_completed")

    result["needs_repair"] = bool(result["repair_actions"])
    logger.info("Diagnosis user=%s tables=%s actions=%s",
                user_id, result["tables_data"], result["repair_actions"])
    return result


def repair(user_id: str) -> dict:
    """Run consolidation for exactly the targets the diagnosis flagged."""
    diag = diagnose(user_id)
    if not diag["needs_repair"]:
        return {
            "success": True,
            "status": "no_migration_needed",
            "migrated_records": {t: 0 for t in ACTION_TARGETS.values()},
            "errors": [],
        }

    targets = [ACTION_TARGETS[a] for a in diag["repair_actions"] if a in ACTION_TARGETS]
    return consolidate_user_data(
        user_id,
        tables=targets,
        mark_completed="mark_completed" in diag["repair_actions"],
    )
