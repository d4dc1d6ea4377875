# pocketplan/logic/dashboard.py
from collections import defaultdict
from typing import Optional
import datetime as dt

from ..models import db, Debt, Expense, Goal, IncomeSource
from ..services.summary import calculate_financial_summary
from ..services.utils import month_window, utcnow
from .debt_calculator import payoff_projection
from .diagnosis import diagnose
from .plan import BUDGET_SPLIT


def build_dashboard(user_id: str, *, today: Optional[dt.date] = None) -> dict:
    """Everything the dashboard screen shows, in one document."""
    today = today or utcnow().date()
    start, end = month_window(today)

    summary = calculate_financial_summary(user_id, today=today)
    db.session.commit()

    incomes = IncomeSource.query.filter_by(user_id=user_id).order_by(IncomeSource.id).all()

    # this month's spend: recurring budget rows + one-off rows dated in the month
    by_cat = defaultdict(float)
    for e in Expense.query.filter_by(user_id=user_id).all():
        if e.is_recurring or (e.date is not None and start <= e.date < end):
            by_cat[e.category or "Other"] += e.amount
    expenses_by_category = [
        {"category": c, "amount": round(a, 2)}
        for c, a in sorted(by_cat.items(), key=lambda kv: (-kv[1], kv[0]))
    ]

    income = summary.total_monthly_income
    budget = {
        name: {"percentage": pct, "amount": round(income * pct / 100, 2)} for name, pct in BUDGET_SPLIT
    }

    debts = []
    for d in Debt.query.filter_by(user_id=user_id).all():
        row = d.to_dict()
        row["payoff"] = payoff_projection(d.current_balance, d.interest_rate, d.monthly_payment)
        debts.append(row)
    debts.sort(key=lambda x: (x["status"] != "active", -x["interest_rate"], x["creditor"]))

    goals = [g.to_dict() for g in Goal.query.filter_by(user_id=user_id).order_by(Goal.id).all()]

    return {
        "month": {"start": start.isoformat(), "end": end.isoformat()},
        "summary": summary.to_dict(),
        "budget": budget,
        "incomes": [i.to_dict() for i in incomes],
        "expenses_by_category": expenses_by_category,
        "debts": debts,
        "goals": goals,
        "needs_migration": diagnose(user_id)["needs_repair"],
    }
