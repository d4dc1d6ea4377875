# pocketplan/services/summary.py
import datetime as dt
from typing import Optional

from ..models import db, Debt, Expense, FinancialSummary, Goal, IncomeSource
from .utils import month_window, utcnow

MONTH_FACTORS = {"monthly": 1, "biweekly": 26/12, "weekly": 52/12, "annual": 1/12}


def to_monthly(amount, frequency) -> float:
    if amount is None:
        return 0.0
    return float(amount) * MONTH_FACTORS.get((frequency or "monthly").lower(), 1)


def calculate_financial_summary(user_id: str, *, today: Optional[dt.date] = None) -> FinancialSummary:
    """
    Recompute the aggregate figures for a user and upsert their
    financial_summary row. Flushes but does not commit: the caller owns
    the transaction.
    """
    today = today or utcnow().date()
    start, end = month_window(today)

    incomes = IncomeSource.query.filter_by(user_id=user_id, is_active=True).all()
    income_monthly = sum(to_monthly(i.amount, i.frequency) for i in incomes)

    expenses = Expense.query.filter_by(user_id=user_id).all()
    expenses_monthly = sum(
        e.amount for e in expenses
        if e.is_recurring or (e.date is not None and start <= e.date < end)
    )

    debts = Debt.query.filter_by(user_id=user_id, status="active").all()
    total_debt = sum(d.current_balance or 0.0 for d in debts)
    debt_payments = sum(d.monthly_payment or 0.0 for d in debts)

    goals = Goal.query.filter_by(user_id=user_id, status="active").all()
    emergency_fund = sum(g.current_amount or 0.0 for g in goals)

    summary = FinancialSummary.query.filter_by(user_id=user_id).first()
    if summary is None:
        summary = FinancialSummary(user_id=user_id)
        db.session.add(summary)

    summary.total_monthly_income = round(income_monthly, 2)
    summary.total_monthly_expenses = round(expenses_monthly, 2)
    summary.total_debt = round(total_debt, 2)
    summary.monthly_debt_payments = round(debt_payments, 2)
    summary.savings_capacity = round(max(0.0, income_monthly - expenses_monthly - debt_payments), 2)
    summary.emergency_fund = round(emergency_fund, 2)
    summary.last_calculated = utcnow()
    db.session.flush()
    return summary
