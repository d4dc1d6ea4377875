# tests/test_plan.py
import datetime as dt
from unittest.mock import MagicMock

import pytest
import requests

from pocketplan.logic.consolidation import consolidate_user_data
from pocketplan.logic.plan import fallback_plan, financial_data, generate_financial_plan, latest_plan
from pocketplan.models import db, ORIGIN_CHAT, Expense, FinancialSummary
from pocketplan.services.functions import FunctionsClient
from pocketplan.services.summary import calculate_financial_summary
from pocketplan.services.utils import month_window, utcnow

from .conftest import USER_ID

TODAY = dt.date(2024, 1, 31)


def _remote(app, response=None, error=None):
    session = MagicMock(spec=requests.Session)
    if error is not None:
        session.post.side_effect = error
    else:
        resp = MagicMock()
        resp.json.return_value = response
        session.post.return_value = resp
    app.functions = FunctionsClient("https://functions.example/v1/", "secret", session=session)
    return session


class TestFunctionsClient:

    def test_invoke_posts_with_bearer(self):
        session = MagicMock()
        session.post.return_value.json.return_value = {"ok": True}
        client = FunctionsClient("https://fn.example/", "k", session=session)

        assert client.invoke("generate-financial-plan", {"a": 1}) == {"ok": True}
        args, kwargs = session.post.call_args
        assert args[0] == "https://fn.example/generate-financial-plan"
        assert kwargs["json"] == {"a": 1}
        assert kwargs["headers"]["Authorization"] == "Bearer k"
        assert kwargs["timeout"] == 30
        session.post.return_value.raise_for_status.assert_called_once()

    def test_invoke_rejects_non_object(self):
        session = MagicMock()
        session.post.return_value.json.return_value = ["nope"]
        with pytest.raises(ValueError):
            FunctionsClient("https://fn.example", session=session).invoke("x", {})

    def test_unconfigured(self):
        client = FunctionsClient(None)
        assert client.configured is False
        with pytest.raises(RuntimeError):
            client.invoke("x", {})


class TestFallbackPlan:

    DATA = {
        "monthlyIncome": 4000,
        "monthlyExpenses": 2000,
        "currentSavings": 1000,
        "debts": [
            {"name": "Visa", "amount": 1200, "monthlyPayment": 100, "interestRate": 0},
            {"name": "Loan", "amount": 2400, "monthlyPayment": 0, "interestRate": 0},
        ],
    }

    def test_budget_split(self):
        plan = fallback_plan(self.DATA, today=TODAY)
        assert plan["source"] == "fallback"
        assert plan["recommendedBudget"] == {
            "needs": {"percentage": 50, "amount": 2000.0},
            "lifestyle": {"percentage": 30, "amount": 1200.0},
            "savings": {"percentage": 20, "amount": 800.0},
        }

    def test_emergency_fund(self):
        plan = fallback_plan(self.DATA, today=TODAY)
        ef = plan["emergencyFund"]
        # capacity = 4000 - 2000 - 100 = 1900, 40% goes to the fund
        assert ef["targetAmount"] == 6000
        assert ef["monthlySaving"] == 760
        assert ef["completionDate"] == "2024-08-31"

    def test_debt_payoff_dates(self):
        plan = fallback_plan(self.DATA, today=TODAY)
        visa, loan = plan["debtPayoffPlan"]
        assert visa["payoffDate"] == "2025-01-31"
        assert visa["monthlyPayment"] == 100
        # no payment on file: suggest paying it off over 24 months
        assert loan["monthlyPayment"] == 100
        assert loan["payoffDate"] == "2026-01-31"

    def test_never_amortizing_debt_has_no_date(self):
        plan = fallback_plan({"monthlyIncome": 100, "debts": [
            {"name": "X", "amount": 10000, "monthlyPayment": 10, "interestRate": 30},
        ]}, today=TODAY)
        assert plan["debtPayoffPlan"][0]["payoffDate"] is None

    def test_empty_data(self):
        plan = fallback_plan({}, today=TODAY)
        assert plan["currentSnapshot"]["totalDebt"] == 0
        assert plan["emergencyFund"]["completionDate"] == TODAY.isoformat()


class TestGenerateFinancialPlan:

    def test_financial_data_from_tables(self, make_profile, sample_blob):
        make_profile(sample_blob)
        consolidate_user_data(USER_ID)
        data = financial_data(USER_ID)
        assert data["monthlyIncome"] == 3500
        assert data["currentSavings"] == 1001
        assert {d["name"] for d in data["debts"]} == {"Visa", "Car Loan"}
        assert len(data["goals"]) == 2

    def test_financial_data_recomputes_stale_summary(self, make_profile):
        make_profile({})
        last_month = month_window(utcnow().date())[0] - dt.timedelta(days=1)
        db.session.add(Expense(user_id=USER_ID, category="Food", amount=75, date=last_month,
                               is_recurring=False, origin=ORIGIN_CHAT))
        calculate_financial_summary(USER_ID, today=last_month)
        db.session.commit()
        assert FinancialSummary.query.one().total_monthly_expenses == 75

        assert financial_data(USER_ID)["monthlyExpenses"] == 0
        assert FinancialSummary.query.one().total_monthly_expenses == 0

    def test_unconfigured_uses_fallback_and_archives(self, app, make_profile, sample_blob):
        make_profile(sample_blob)
        consolidate_user_data(USER_ID)

        plan = generate_financial_plan(USER_ID)
        assert plan["source"] == "fallback"
        assert latest_plan(USER_ID) == plan
        assert len(app.store.list_paths(f"profiles/{USER_ID}/plans/")) == 1

    def test_remote_plan(self, app, make_profile, sample_blob):
        make_profile(sample_blob)
        consolidate_user_data(USER_ID)
        session = _remote(app, response={"recommendedBudget": {}})

        plan = generate_financial_plan(USER_ID)
        assert plan["source"] == "remote"
        args, kwargs = session.post.call_args
        assert args[0] == "https://functions.example/v1/generate-financial-plan"
        assert kwargs["json"]["financialData"]["monthlyIncome"] == 3500

    def test_remote_failure_falls_back(self, app, make_profile):
        make_profile({"monthlyIncome": 1000})
        consolidate_user_data(USER_ID)
        _remote(app, error=requests.ConnectionError("down"))

        plan = generate_financial_plan(USER_ID)
        assert plan["source"] == "fallback"
        assert plan["currentSnapshot"]["monthlyIncome"] == 1000

    def test_no_plan_yet(self, app):
        assert latest_plan(USER_ID) is None
