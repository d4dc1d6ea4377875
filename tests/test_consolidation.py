# tests/test_consolidation.py
import datetime as dt
from unittest.mock import patch

import pytest

from pocketplan.logic.consolidation import consolidate_user_data, derive_rows, table_counts
from pocketplan.models import (
    db, ORIGIN_CHAT, ORIGIN_ONBOARDING, Debt, DebtPayment, Expense, FinancialSummary, Goal,
    IncomeSource, Profile,
)

from .conftest import USER_ID

TODAY = dt.date(2024, 3, 15)


class TestDeriveRows:

    def test_single_income(self):
        rows = derive_rows({"monthlyIncome": 1000}, today=TODAY)
        assert rows["incomes"] == [
            {"source_name": "Primary Income", "amount": 1000.0, "frequency": "monthly", "is_active": True}
        ]

    def test_extra_income_adds_second_row(self):
        rows = derive_rows({"monthlyIncome": 1000, "extraIncome": "250"}, today=TODAY)
        assert [r["source_name"] for r in rows["incomes"]] == ["Primary Income", "Additional Income"]
        assert rows["incomes"][1]["amount"] == 250.0

    def test_expense_categories(self):
        rows = derive_rows({"expenseCategories": {"food": 200, "transport": 50}}, today=TODAY)
        assert len(rows["expenses"]) == 2
        assert sum(r["amount"] for r in rows["expenses"]) == 250
        assert {r["category"] for r in rows["expenses"]} == {"Food", "Transportation"}
        assert all(r["is_recurring"] and r["date"] == TODAY for r in rows["expenses"])

    def test_unknown_categories_fold_into_other(self):
        rows = derive_rows({"expenseCategories": {"pets": 30, "other": 20, "food": 0}}, today=TODAY)
        assert rows["expenses"] == [{
            "category": "Other",
            "subcategory": "Monthly Budget",
            "description": "Monthly expenses for Other",
            "amount": 50.0,
            "date": TODAY,
            "is_recurring": True,
        }]

    def test_general_expenses_fallback(self):
        rows = derive_rows({"monthlyExpenses": 1200, "expenseCategories": {}}, today=TODAY)
        assert len(rows["expenses"]) == 1
        assert rows["expenses"][0]["category"] == "General Expenses"
        assert rows["expenses"][0]["amount"] == 1200.0

    def test_debts_skip_empty_and_dedupe_creditors(self):
        rows = derive_rows({"debts": [
            {"name": "Visa", "amount": 100},
            {"name": "visa", "amount": 50, "monthlyPayment": "20", "interestRate": "18.5"},
            {"name": "Nothing", "amount": 0},
            {"amount": 10},
        ]}, today=TODAY)
        assert [d["creditor"] for d in rows["debts"]] == ["Visa", "visa (2)", "Creditor"]
        assert rows["debts"][0]["monthly_payment"] == 0.0
        assert rows["debts"][1]["interest_rate"] == 18.5

    def test_extra_debts_are_appended(self):
        extra = [{"name": "KueskiPay", "amount": 1500, "monthlyPayment": 300, "interestRate": 0}]
        rows = derive_rows({"debts": []}, today=TODAY, extra_debts=extra)
        assert [d["creditor"] for d in rows["debts"]] == ["KueskiPay"]

    def test_goals_split_savings(self):
        rows = derive_rows(
            {"financialGoals": ["A", "B", "B", " ", "C"], "currentSavings": 100},
            today=TODAY, goal_target=1000,
        )
        assert [g["title"] for g in rows["goals"]] == ["A", "B", "C"]
        assert all(g["current_amount"] == 33.33 for g in rows["goals"])
        assert all(g["target_amount"] == 1000.0 for g in rows["goals"])

    def test_empty_blob(self):
        assert derive_rows({}, today=TODAY) == {"incomes": [], "expenses": [], "debts": [], "goals": []}


class TestConsolidateUserData:

    def test_no_profile(self, app):
        result = consolidate_user_data("nobody")
        assert result["success"] is True
        assert result["status"] == "no_migration_needed"
        assert result["migrated_records"] == {"incomes": 0, "expenses": 0, "debts": 0, "goals": 0}

    def test_empty_blob_needs_no_migration(self, make_profile):
        make_profile({})
        assert consolidate_user_data(USER_ID)["status"] == "no_migration_needed"

    def test_single_income_row(self, make_profile):
        make_profile({"monthlyIncome": 1000})
        result = consolidate_user_data(USER_ID)

        assert result["success"] is True
        assert result["status"] == "migrated"
        incomes = IncomeSource.query.filter_by(user_id=USER_ID).all()
        assert len(incomes) == 1
        assert incomes[0].amount == 1000
        assert incomes[0].origin == ORIGIN_ONBOARDING

    def test_two_expense_rows(self, make_profile):
        make_profile({"expenseCategories": {"food": 200, "transport": 50}})
        consolidate_user_data(USER_ID)

        expenses = Expense.query.filter_by(user_id=USER_ID).all()
        assert len(expenses) == 2
        assert sum(e.amount for e in expenses) == 250

    def test_full_blob(self, make_profile, sample_blob):
        make_profile(sample_blob)
        result = consolidate_user_data(USER_ID)

        assert result["migrated_records"] == {"incomes": 2, "expenses": 3, "debts": 2, "goals": 2}
        profile = Profile.query.filter_by(user_id=USER_ID).one()
        assert profile.onboarding_completed is True
        assert profile.onboarding_step == 0
        assert profile.onboarding_data == sample_blob

        summary = FinancialSummary.query.filter_by(user_id=USER_ID).one()
        assert summary.total_monthly_income == 3500
        assert summary.total_monthly_expenses == 1450
        assert summary.total_debt == 10000
        assert summary.monthly_debt_payments == 350
        assert summary.savings_capacity == 1700
        assert summary.emergency_fund == 1001

    def test_rerun_keeps_goal_progress_and_expense_dates(self, make_profile, sample_blob):
        make_profile(sample_blob)
        consolidate_user_data(USER_ID)
        goal = Goal.query.filter_by(title="Vacation").one()
        goal.current_amount = 900
        booked = dt.date(2023, 12, 1)
        for e in Expense.query.all():
            e.date = booked
        db.session.commit()

        consolidate_user_data(USER_ID)
        assert Goal.query.filter_by(title="Vacation").one().current_amount == 900
        assert {e.date for e in Expense.query.all()} == {booked}

    def test_running_twice_is_idempotent(self, make_profile, sample_blob):
        make_profile(sample_blob)
        consolidate_user_data(USER_ID)
        first = table_counts(USER_ID)
        first_debts = sorted((d.creditor, d.current_balance) for d in Debt.query.all())

        consolidate_user_data(USER_ID)
        assert table_counts(USER_ID) == first
        assert sorted((d.creditor, d.current_balance) for d in Debt.query.all()) == first_debts

    def test_edited_blob_removes_stale_rows(self, make_profile, sample_blob):
        profile = make_profile(sample_blob)
        consolidate_user_data(USER_ID)

        blob = dict(sample_blob)
        blob["debts"] = [{"name": "Visa", "amount": 1500, "monthlyPayment": 100, "interestRate": 24}]
        blob.pop("extraIncome")
        profile.onboarding_data = blob
        db.session.commit()
        consolidate_user_data(USER_ID)

        assert [d.creditor for d in Debt.query.all()] == ["Visa"]
        assert Debt.query.one().current_balance == 1500
        assert [i.source_name for i in IncomeSource.query.all()] == ["Primary Income"]

    def test_user_rows_are_kept(self, make_profile):
        make_profile({"monthlyIncome": 1000})
        db.session.add(Expense(user_id=USER_ID, category="Food", amount=12.5,
                               date=dt.date.today(), origin=ORIGIN_CHAT))
        db.session.commit()

        consolidate_user_data(USER_ID)
        consolidate_user_data(USER_ID)
        assert Expense.query.filter_by(origin=ORIGIN_CHAT).count() == 1

    def test_payments_survive_reconsolidation(self, make_profile):
        make_profile({"debts": [{"name": "Visa", "amount": 1000, "monthlyPayment": 50}]})
        consolidate_user_data(USER_ID)
        debt = Debt.query.one()
        db.session.add(DebtPayment(user_id=USER_ID, debt_id=debt.id, amount=200,
                                   payment_date=dt.date.today()))
        db.session.commit()

        consolidate_user_data(USER_ID)
        debt = Debt.query.one()
        assert debt.original_amount == 1000
        assert debt.current_balance == 800
        assert debt.status == "active"

    def test_fill_policy_leaves_populated_tables(self, make_profile):
        make_profile({"monthlyIncome": 1000, "financialGoals": ["House"]})
        db.session.add(IncomeSource(user_id=USER_ID, source_name="Salary", amount=2000, origin=ORIGIN_CHAT))
        db.session.commit()

        result = consolidate_user_data(USER_ID, policy="fill")
        assert result["migrated_records"]["incomes"] == 0
        assert result["migrated_records"]["goals"] == 1
        assert [i.source_name for i in IncomeSource.query.all()] == ["Salary"]

    def test_tables_subset(self, make_profile, sample_blob):
        make_profile(sample_blob)
        result = consolidate_user_data(USER_ID, tables=["goals"], mark_completed=False)
        assert result["migrated_records"] == {"incomes": 0, "expenses": 0, "debts": 0, "goals": 2}
        assert IncomeSource.query.count() == 0
        assert Profile.query.one().onboarding_completed is False

    def test_clear_onboarding_data_archives_blob(self, app, make_profile, sample_blob):
        make_profile(sample_blob)
        consolidate_user_data(USER_ID, clear_onboarding_data=True)

        assert Profile.query.one().onboarding_data == {}
        archived = app.store.list_paths(f"profiles/{USER_ID}/snapshots/")
        assert len(archived) == 1
        assert app.store.read_json(archived[0])["onboarding_data"] == sample_blob

    def test_failure_rolls_back_everything(self, make_profile, sample_blob):
        make_profile(sample_blob)
        with patch("pocketplan.logic.consolidation.calculate_financial_summary",
                   side_effect=RuntimeError("boom")):
            result = consolidate_user_data(USER_ID)

        assert result["success"] is False
        assert result["status"] == "failed"
        assert result["errors"] == ["boom"]
        assert table_counts(USER_ID) == {"incomes": 0, "expenses": 0, "debts": 0, "goals": 0}
        assert Profile.query.one().onboarding_completed is False

    def test_bad_arguments(self, app):
        with pytest.raises(ValueError):
            consolidate_user_data(USER_ID, policy="merge")
        with pytest.raises(ValueError):
            consolidate_user_data(USER_ID, tables=["accounts"])
