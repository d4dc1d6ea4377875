# pocketplan/logic/plan.py
import logging
import math
import datetime as dt
from typing import Optional

from flask import current_app

from ..models import db, Debt, Goal
from ..services.summary import calculate_financial_summary
from ..services.utils import add_months, now_iso, user_prefix, utcnow
from .debt_calculator import NEVER_MONTHS, payoff_projection

logger = logging.getLogger(__name__)

PLAN_FUNCTION = "generate-financial-plan"

# 50/30/20 split of monthly income
BUDGET_SPLIT = (("needs", 50), ("lifestyle", 30), ("savings", 20))
EMERGENCY_FUND_MONTHS = 3


def financial_data(user_id: str) -> dict:
    """The payload the plan function expects, built from the user's tables."""
    # recomputed every time: one-off expenses only count in their own month
    summary = calculate_financial_summary(user_id)
    db.session.commit()
    debts = Debt.query.filter_by(user_id=user_id, status="active").order_by(Debt.id).all()
    goals = Goal.query.filter_by(user_id=user_id, status="active").order_by(Goal.id).all()
    return {
        "monthlyIncome": summary.total_monthly_income,
        "monthlyExpenses": summary.total_monthly_expenses,
        "currentSavings": summary.emergency_fund,
        "savingsCapacity": summary.savings_capacity,
        "debts": [{
            "name": d.creditor,
            "amount": d.current_balance,
            "monthlyPayment": d.monthly_payment,
            "interestRate": d.interest_rate,
        } for d in debts],
        "goals": [{"title": g.title, "target": g.target_amount, "current": g.current_amount} for g in goals],
    }


def _date_after_months(today: dt.date, months: Optional[float]) -> Optional[str]:
    if months is None or months >= NEVER_MONTHS:
        return None
    return add_months(today, int(math.ceil(months))).isoformat()


def fallback_plan(data: dict, *, today: Optional[dt.date] = None) -> dict:
    """Deterministic plan used when the hosted function is unavailable."""
    today = today or utcnow().date()
    income = float(data.get("monthlyIncome") or 0)
    expenses = float(data.get("monthlyExpenses") or 0)
    savings = float(data.get("currentSavings") or 0)
    debts = data.get("debts") or []
    total_debt = sum(float(d.get("amount") or 0) for d in debts)
    min_payments = sum(float(d.get("monthlyPayment") or 0) for d in debts)
    capacity = max(0.0, income - expenses - min_payments)

    ef_target = expenses * EMERGENCY_FUND_MONTHS
    ef_monthly = capacity * 0.4
    ef_missing = max(0.0, ef_target - savings)
    ef_months = 0 if ef_missing <= 0 else (ef_missing / ef_monthly if ef_monthly > 0 else None)

    payoff = []
    for d in debts:
        balance = float(d.get("amount") or 0)
        rate = float(d.get("interestRate") or 0)
        current = float(d.get("monthlyPayment") or 0)
        suggested = current if current > 0 else float(math.ceil(balance / 24)) if balance > 0 else 0.0
        proj = payoff_projection(balance, rate, suggested)
        base = payoff_projection(balance, rate, current) if current > 0 else None
        saved = 0.0
        if base and base["months_to_payoff"] < NEVER_MONTHS and proj["months_to_payoff"] < NEVER_MONTHS:
            saved = max(0.0, base["total_interest"] - proj["total_interest"])
        payoff.append({
            "debtName": d.get("name"),
            "currentBalance": round(balance, 2),
            "payoffDate": _date_after_months(today, proj["months_to_payoff"]),
            "monthlyPayment": round(suggested, 2),
            "interestSaved": round(saved, 2),
        })

    return {
        "source": "fallback",
        "currentSnapshot": {
            "monthlyIncome": round(income, 2),
            "monthlyExpenses": round(expenses, 2),
            "totalDebt": round(total_debt, 2),
            "currentSavings": round(savings, 2),
        },
        "projectedSnapshot": {
            "debtIn12Months": round(max(0.0, total_debt - capacity * 0.6 * 12), 2),
            "emergencyFundIn12Months": round(min(ef_target, savings + ef_monthly * 12), 2),
            "netWorthIn12Months": round(savings + capacity * 12 - total_debt, 2),
        },
        "recommendedBudget": {
            name: {"percentage": pct, "amount": round(income * pct / 100, 2)} for name, pct in BUDGET_SPLIT
        },
        "debtPayoffPlan": payoff,
        "emergencyFund": {
            "targetAmount": round(ef_target, 2),
            "currentAmount": round(savings, 2),
            "monthlySaving": round(ef_monthly, 2),
            "completionDate": _date_after_months(today, ef_months),
        },
        "wealthGrowth": {
            "year1": round(capacity * 12, 2),
            "year3": round(capacity * 36 * 1.05, 2),
            "year5": round(capacity * 60 * 1.1, 2),
        },
        "shortTermGoals": {
            "weekly": [{"title": "Review daily spending", "target": 100, "progress": 0, "type": "tracking"}],
            "monthly": [{"title": "Save for emergencies", "target": round(ef_monthly, 2),
                         "progress": 0, "type": "savings"}],
        },
        "actionRoadmap": [
            {"step": 1, "title": "Set a monthly budget",
             "targetDate": (today + dt.timedelta(days=7)).isoformat(), "completed": False,
             "description": "Define spending limits per category"},
            {"step": 2, "title": "Start the emergency fund",
             "targetDate": (today + dt.timedelta(days=14)).isoformat(), "completed": False,
             "description": "Set aside the first monthly saving"},
        ],
    }


def generate_financial_plan(user_id: str) -> dict:
    """
    Ask the hosted plan function for a plan; fall back to the local one when
    it is not configured or fails. The result is archived in the store.
    """
    data = financial_data(user_id)
    functions = current_app.functions
    plan = None
    if functions.configured:
        try:
            plan = functions.invoke(PLAN_FUNCTION, {"financialData": data})
            plan.setdefault("source", "remote")
        except Exception as e:
            logger.warning("Plan function failed for user=%s, using fallback: %s", user_id, e)
    if plan is None:
        plan = fallback_plan(data)

    plan["generated_at"] = now_iso()
    pref = user_prefix(user_id)
    ts = plan["generated_at"].replace(":", "-")
    current_app.store.write_json(f"{pref}plans/{ts}.json", plan)
    current_app.store.write_json(f"{pref}plan-latest.json", plan)
    return plan


def latest_plan(user_id: str) -> Optional[dict]:
    return current_app.store.read_json(f"{user_prefix(user_id)}plan-latest.json")
