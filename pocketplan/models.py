# pocketplan/models.py
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# origin values for consolidated vs user-entered rows
ORIGIN_ONBOARDING = "onboarding"
ORIGIN_CHAT = "chat"
ORIGIN_MANUAL = "manual"


class TimestampMixin:
    created_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now(), nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
        nullable=False,
    )


class Profile(TimestampMixin, db.Model):
    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    first_name = db.Column(db.String(120), nullable=True)
    last_name = db.Column(db.String(120), nullable=True)
    onboarding_data = db.Column(db.JSON, nullable=False, default=dict)
    onboarding_completed = db.Column(db.Boolean, nullable=False, default=False)
    onboarding_step = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "onboarding_data": self.onboarding_data or {},
            "onboarding_completed": bool(self.onboarding_completed),
            "onboarding_step": self.onboarding_step or 0,
        }


class IncomeSource(TimestampMixin, db.Model):
    __tablename__ = "income_sources"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    source_name = db.Column(db.String(120), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    frequency = db.Column(db.String(20), nullable=False, default="monthly")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    origin = db.Column(db.String(20), nullable=False, default=ORIGIN_MANUAL)

    def to_dict(self):
        return {
            "id": self.id,
            "source_name": self.source_name,
            "amount": round(self.amount, 2),
            "frequency": self.frequency,
            "is_active": self.is_active,
            "origin": self.origin,
        }


class Expense(TimestampMixin, db.Model):
    __tablename__ = "expenses"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    category = db.Column(db.String(60), nullable=False, default="Other")
    subcategory = db.Column(db.String(60), nullable=True)
    description = db.Column(db.Text, nullable=True)
    amount = db.Column(db.Float, nullable=False)
    date = db.Column(db.Date, nullable=False, index=True)
    is_recurring = db.Column(db.Boolean, nullable=False, default=False)
    origin = db.Column(db.String(20), nullable=False, default=ORIGIN_MANUAL)

    def to_dict(self):
        return {
            "id": self.id,
            "category": self.category,
            "subcategory": self.subcategory,
            "description": self.description,
            "amount": round(self.amount, 2),
            "date": self.date.isoformat() if self.date else None,
            "is_recurring": self.is_recurring,
            "origin": self.origin,
        }


class Debt(TimestampMixin, db.Model):
    __tablename__ = "debts"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    creditor = db.Column(db.String(120), nullable=False)
    original_amount = db.Column(db.Float, nullable=False)
    current_balance = db.Column(db.Float, nullable=False)
    monthly_payment = db.Column(db.Float, nullable=False, default=0.0)
    interest_rate = db.Column(db.Float, nullable=False, default=0.0)  # annual %
    status = db.Column(db.String(20), nullable=False, default="active")
    origin = db.Column(db.String(20), nullable=False, default=ORIGIN_MANUAL)

    payments = db.relationship("DebtPayment", backref="debt", lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "creditor": self.creditor,
            "original_amount": round(self.original_amount, 2),
            "current_balance": round(self.current_balance, 2),
            "monthly_payment": round(self.monthly_payment or 0.0, 2),
            "interest_rate": self.interest_rate or 0.0,
            "status": self.status,
            "origin": self.origin,
        }


class DebtPayment(TimestampMixin, db.Model):
    __tablename__ = "debt_payments"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    debt_id = db.Column(db.Integer, db.ForeignKey("debts.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "debt_id": self.debt_id,
            "amount": round(self.amount, 2),
            "payment_date": self.payment_date.isoformat(),
            "notes": self.notes,
        }


class Goal(TimestampMixin, db.Model):
    __tablename__ = "goals"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    target_amount = db.Column(db.Float, nullable=False)
    current_amount = db.Column(db.Float, nullable=False, default=0.0)
    priority = db.Column(db.String(10), nullable=False, default="medium")
    status = db.Column(db.String(20), nullable=False, default="active")
    origin = db.Column(db.String(20), nullable=False, default=ORIGIN_MANUAL)

    def to_dict(self):
        target = self.target_amount or 0.0
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "target_amount": round(target, 2),
            "current_amount": round(self.current_amount or 0.0, 2),
            "progress_pct": round(100.0 * (self.current_amount or 0.0) / target, 1) if target > 0 else 0.0,
            "priority": self.priority,
            "status": self.status,
            "origin": self.origin,
        }


class FinancialSummary(db.Model):
    __tablename__ = "financial_summary"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    total_monthly_income = db.Column(db.Float, nullable=False, default=0.0)
    total_monthly_expenses = db.Column(db.Float, nullable=False, default=0.0)
    total_debt = db.Column(db.Float, nullable=False, default=0.0)
    monthly_debt_payments = db.Column(db.Float, nullable=False, default=0.0)
    savings_capacity = db.Column(db.Float, nullable=False, default=0.0)
    emergency_fund = db.Column(db.Float, nullable=False, default=0.0)
    last_calculated = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        return {
            "total_monthly_income": round(self.total_monthly_income, 2),
            "total_monthly_expenses": round(self.total_monthly_expenses, 2),
            "total_debt": round(self.total_debt, 2),
            "monthly_debt_payments": round(self.monthly_debt_payments, 2),
            "savings_capacity": round(self.savings_capacity, 2),
            "emergency_fund": round(self.emergency_fund, 2),
            "last_calculated": (
                self.last_calculated.replace(microsecond=0).isoformat() + "Z" if self.last_calculated else None
            ),
        }
