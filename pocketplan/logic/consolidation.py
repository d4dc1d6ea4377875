# pocketplan/logic/consolidation.py
"""
Copy the onboarding blob stored on a profile into the normalized tables.

One routine, one transaction. Rows written here are tagged
origin="onboarding" and reconciled by natural key on every run, so the
routine can be re-run at will: matching rows are updated, new ones are
inserted, onboarding rows that no longer appear in the blob are removed.
Rows the user created elsewhere (chat, API) are never touched.
"""
import logging
import math
import datetime as dt
from typing import Dict, Iterable, List, Optional

from flask import current_app

from ..models import (
    db, ORIGIN_ONBOARDING, Debt, DebtPayment, Expense, Goal, IncomeSource, Profile,
)
from ..services.summary import calculate_financial_summary
from ..services.utils import now_iso, to_float, user_prefix, utcnow

logger = logging.getLogger(__name__)

TARGETS = ("incomes", "expenses", "debts", "goals")
POLICIES = ("replace", "fill")

CATEGORY_NAMES = {
    "food": "Food",
    "transport": "Transportation",
    "housing": "Housing",
    "bills": "Utilities",
    "entertainment": "Entertainment",
    "healthcare": "Healthcare",
    "shopping": "Shopping",
    "other": "Other",
}
BUDGET_SUBCATEGORY = "Monthly Budget"
GENERAL_EXPENSES = "General Expenses"
DEFAULT_GOAL_TARGET = 50000.0


def _positive(v) -> Optional[float]:
    f = to_float(v)
    return f if f is not None and f > 0 else None


def category_name(key: str) -> str:
    return CATEGORY_NAMES.get((key or "").strip().lower(), "Other")


def _debt_row(d: dict, taken: set) -> Optional[dict]:
    if not isinstance(d, dict):
        return None
    amount = _positive(d.get("amount"))
    if not amount:
        return None
    creditor = (str(d.get("name") or "")).strip() or "Creditor"
    # creditor is the natural key; keep same-named debts apart
    base, n = creditor, 2
    while creditor.lower() in taken:
        creditor = f"{base} ({n})"
        n += 1
    taken.add(creditor.lower())
    return {
        "creditor": creditor,
        "original_amount": amount,
        "monthly_payment": max(0.0, to_float(d.get("monthlyPayment")) or 0.0),
        "interest_rate": max(0.0, to_float(d.get("interestRate")) or 0.0),
    }


def derive_rows(
    onboarding_data: dict,
    *,
    today: Optional[dt.date] = None,
    extra_debts: Iterable[dict] = (),
    goal_target: float = DEFAULT_GOAL_TARGET,
) -> Dict[str, List[dict]]:
    """
    Map an onboarding blob to the rows each target table should hold.
    Pure: no database access.
    """
    data = onboarding_data or {}
    today = today or utcnow().date()

    # incomes
    incomes = []
    for key, name in (("monthlyIncome", "Primary Income"), ("extraIncome", "Additional Income")):
        amt = _positive(data.get(key))
        if amt:
            incomes.append({"source_name": name, "amount": amt, "frequency": "monthly", "is_active": True})

    # expenses, one row per display category (unknown keys fold into Other)
    by_cat: Dict[str, float] = {}
    cats = data.get("expenseCategories")
    if isinstance(cats, dict):
        for key, amount in cats.items():
            amt = _positive(amount)
            if amt:
                name = category_name(key)
                by_cat[name] = by_cat.get(name, 0.0) + amt
    expenses = [{
        "category": name,
        "subcategory": BUDGET_SUBCATEGORY,
        "description": f"Monthly expenses for {name}",
        "amount": round(amt, 2),
        "date": today,
        "is_recurring": True,
    } for name, amt in by_cat.items()]

    total = _positive(data.get("monthlyExpenses"))
    if not expenses and total:
        expenses.append({
            "category": GENERAL_EXPENSES,
            "subcategory": BUDGET_SUBCATEGORY,
            "description": "Monthly expenses from onboarding",
            "amount": total,
            "date": today,
            "is_recurring": True,
        })

    # debts
    debts, taken = [], set()
    raw_debts = data.get("debts") if isinstance(data.get("debts"), list) else []
    for d in list(raw_debts) + list(extra_debts or []):
        row = _debt_row(d, taken)
        if row:
            debts.append(row)

    # goals
    titles = []
    for t in data.get("financialGoals") or []:
        t = str(t or "").strip()
        if t and t not in titles:
            titles.append(t)
    savings = max(0.0, to_float(data.get("currentSavings")) or 0.0)
    share = math.floor(savings / len(titles) * 100) / 100 if titles else 0.0
    goals = [{
        "title": t,
        "description": f"Financial goal from onboarding: {t}",
        "target_amount": float(goal_target),
        "current_amount": share,
        "priority": "medium",
        "status": "active",
    } for t in titles]

    return {"incomes": incomes, "expenses": expenses, "debts": debts, "goals": goals}


# ---------------------------------------------------------------------------
# reconciliation
# ---------------------------------------------------------------------------

# set on insert only: an expense keeps its booking date, a goal keeps the
# progress recorded after onboarding
INSERT_ONLY = ("date", "current_amount")


def _apply_plain(obj, row):
    for k, v in row.items():
        if k in INSERT_ONLY and obj.id is not None:
            continue
        setattr(obj, k, v)


def _apply_debt(obj, row):
    paid = 0.0
    if obj.id is not None:
        paid = sum(p.amount for p in DebtPayment.query.filter_by(debt_id=obj.id).all())
    obj.creditor = row["creditor"]
    obj.original_amount = row["original_amount"]
    obj.monthly_payment = row["monthly_payment"]
    obj.interest_rate = row["interest_rate"]
    obj.current_balance = round(max(0.0, row["original_amount"] - paid), 2)
    obj.status = "active" if obj.current_balance > 0 else "paid"


_TARGET_SPECS = {
    "incomes":  (IncomeSource, ("source_name",), _apply_plain),
    "expenses": (Expense, ("category", "subcategory"), _apply_plain),
    "debts":    (Debt, ("creditor",), _apply_debt),
    "goals":    (Goal, ("title",), _apply_plain),
}


def _reconcile(target: str, user_id: str, rows: List[dict]) -> int:
    model, key_fields, apply = _TARGET_SPECS[target]
    by_key = {}
    for obj in model.query.filter_by(user_id=user_id, origin=ORIGIN_ONBOARDING).all():
        k = tuple(getattr(obj, f) for f in key_fields)
        if k in by_key:
            db.session.delete(obj)  # duplicate left by an older run
        else:
            by_key[k] = obj

    for row in rows:
        obj = by_key.pop(tuple(row[f] for f in key_fields), None)
        if obj is None:
            obj = model(user_id=user_id, origin=ORIGIN_ONBOARDING)
            db.session.add(obj)
        apply(obj, row)

    for stale in by_key.values():
        db.session.delete(stale)
    db.session.flush()
    return len(rows)


def table_counts(user_id: str) -> Dict[str, int]:
    return {
        target: model.query.filter_by(user_id=user_id).count()
        for target, (model, _, _) in _TARGET_SPECS.items()
    }


def migrated_thresholds(extra_debts: Iterable[dict] = ()) -> Dict[str, int]:
    """
    A target counts as already migrated when it holds more rows than this.
    Debts appended to every run do not prove a migration happened.
    """
    return {"incomes": 0, "expenses": 0, "debts": len(list(extra_debts or [])), "goals": 0}


def _lock_profile(user_id: str) -> Optional[Profile]:
    # serializes concurrent runs for the same user on databases with row locks
    stmt = db.select(Profile).filter_by(user_id=user_id).with_for_update()
    return db.session.execute(stmt).scalar_one_or_none()


def _archive_blob(profile: Profile) -> None:
    ts = now_iso().replace(":", "-")
    current_app.store.write_json(
        f"{user_prefix(profile.user_id)}snapshots/consolidated-{ts}.json",
        {"user_id": profile.user_id, "archived_at": now_iso(), "onboarding_data": profile.onboarding_data},
    )


def _new_result() -> dict:
    return {
        "success": False,
        "status": None,
        "migrated_records": {t: 0 for t in TARGETS},
        "errors": [],
    }


def consolidate_user_data(
    user_id: str,
    *,
    tables: Optional[Iterable[str]] = None,
    policy: str = "replace",
    mark_completed: bool = True,
    clear_onboarding_data: bool = False,
    today: Optional[dt.date] = None,
) -> dict:
    """
    Fan the profile's onboarding blob out into incomes, expenses, debts and
    goals, recompute the financial summary and flag onboarding as complete.

    policy="replace" reconciles every requested target; policy="fill" only
    writes targets that hold no rows yet. Everything commits together or not
    at all; failures are reported in the result, never raised.
    """
    if policy not in POLICIES:
        raise ValueError(f"Unknown policy: {policy!r}")
    targets = list(TARGETS) if tables is None else [t for t in TARGETS if t in set(tables)]
    unknown = set(tables or ()) - set(TARGETS)
    if unknown:
        raise ValueError(f"Unknown tables: {sorted(unknown)}")

    cfg = current_app.config
    extra_debts = cfg.get("CONSOLIDATION_EXTRA_DEBTS") or []
    goal_target = cfg.get("GOAL_DEFAULT_TARGET") or DEFAULT_GOAL_TARGET

    result = _new_result()
    logger.info("Consolidation start user=%s policy=%s targets=%s", user_id, policy, targets)

    try:
        profile = _lock_profile(user_id)
        if profile is None or not profile.onboarding_data:
            db.session.rollback()
            logger.info("No onboarding data for user=%s, nothing to migrate", user_id)
            result["success"] = True
            result["status"] = "no_migration_needed"
            return result

        rows = derive_rows(profile.onboarding_data, today=today,
                           extra_debts=extra_debts, goal_target=goal_target)

        skip = set()
        if policy == "fill":
            counts = table_counts(user_id)
            limits = migrated_thresholds(extra_debts)
            skip = {t for t in targets if counts[t] > limits[t]}

        for target in targets:
            if target in skip:
                logger.info("Skipping %s for user=%s, rows already present", target, user_id)
                continue
            result["migrated_records"][target] = _reconcile(target, user_id, rows[target])

        calculate_financial_summary(user_id, today=today)

        if mark_completed:
            profile.onboarding_completed = True
            profile.onboarding_step = 0
        if clear_onboarding_data:
            _archive_blob(profile)
            profile.onboarding_data = {}

        db.session.commit()

    except Exception as e:
        db.session.rollback()
        logger.exception("Consolidation failed for user=%s", user_id)
        result["status"] = "failed"
        result["errors"].append(str(e) or e.__class__.__name__)
        return result

    result["success"] = True
    result["status"] = "migrated"
    logger.info("Consolidation done user=%s records=%s", user_id, result["migrated_records"])
    return result
