# tests/conftest.py
import pytest

from pocketplan import create_app
from pocketplan.models import db, Profile

USER_ID = "test-user"


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "GCS_BUCKET": "",
        "LOCAL_STORE_DIR": str(tmp_path / "store"),
        "FUNCTIONS_URL": "",
        "AUTH_DISABLED": True,
        "USER_ID": USER_ID,
        "EMAIL_MODE": "console",
        "CONSOLIDATION_EXTRA_DEBTS": [],
        "GOAL_DEFAULT_TARGET": 50000.0,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_profile(app):
    def _make(onboarding_data=None, *, user_id=USER_ID, completed=False):
        profile = Profile(
            user_id=user_id,
            email=f"{user_id}@example.com",
            onboarding_data=onboarding_data or {},
            onboarding_completed=completed,
        )
        db.session.add(profile)
        db.session.commit()
        return profile
    return _make


@pytest.fixture
def sample_blob():
    return {
        "monthlyIncome": 3000,
        "extraIncome": 500,
        "monthlyExpenses": 1800,
        "expenseCategories": {"food": 400, "transport": 150, "housing": 900},
        "debts": [
            {"name": "Visa", "amount": 2000, "monthlyPayment": 100, "interestRate": 24},
            {"name": "Car Loan", "amount": 8000, "monthlyPayment": 250, "interestRate": 6},
        ],
        "financialGoals": ["Emergency fund", "Vacation"],
        "currentSavings": 1001,
    }
