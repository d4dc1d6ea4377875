# pocketplan/logic/debt_calculator.py
from math import ceil, isfinite, log1p
from typing import Iterable, List

# returned when a payment never amortizes the balance
NEVER_MONTHS = 999
NEVER_AMOUNT = 999999

STRATEGIES = ("avalanche", "snowball", "minimum")
MAX_MONTHS = 600
EPS = 1e-8


def payoff_projection(principal: float, annual_rate: float, monthly_payment: float) -> dict:
    """
    Months to pay off `principal` at `annual_rate` percent with a fixed
    monthly payment, plus total paid and total interest.

    Payments at or below the first month's interest never clear the debt;
    that case returns the sentinels NEVER_MONTHS / NEVER_AMOUNT.
    """
    P = float(principal or 0)
    M = float(monthly_payment or 0)
    r = float(annual_rate or 0) / 100.0 / 12.0

    if P <= 0:
        return {"months_to_payoff": 0, "total_interest": 0.0, "total_payment": 0.0}

    never = {"months_to_payoff": NEVER_MONTHS, "total_interest": NEVER_AMOUNT, "total_payment": NEVER_AMOUNT}
    if M <= 0:
        return never

    if r == 0:
        n = P / M
        if not isfinite(n):
            return never
        n = ceil(n)
        return {"months_to_payoff": n, "total_interest": 0.0, "total_payment": round(P, 2)}

    if M <= P * r:
        return never

    n = -log1p(-(P * r) / M) / log1p(r)
    if not isfinite(n):
        return never
    n = ceil(n)
    total = M * n
    return {
        "months_to_payoff": n,
        "total_interest": round(max(0.0, total - P), 2),
        "total_payment": round(total, 2),
    }


def _order(items: List[dict], strategy: str) -> List[dict]:
    if strategy == "snowball":
        return sorted(items, key=lambda x: (x["balance"], -x["apr"]))
    return sorted(items, key=lambda x: (-x["apr"], x["balance"]))


def simulate_strategy(debts: Iterable[dict], *, strategy: str = "avalanche", extra: float = 0.0) -> dict:
    """
    debts: dicts with name, balance, apr (annual %), min_payment
    strategy: "avalanche" (highest APR first), "snowball" (smallest balance
    first) or "minimum" (minimums only, no extra and no roll-over)

    Each month: interest accrues, every open debt gets its minimum, then
    `extra` plus the minimums freed by debts already cleared go to the first
    open debt in strategy order.
    """
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown strategy: {strategy}")

    items = []
    for d in debts:
        bal = max(0.0, float(d.get("balance") or 0))
        if bal <= 0:
            continue
        items.append({
            "name": d.get("name") or "",
            "starting_balance": round(bal, 2),
            "balance": bal,
            "apr": max(0.0, float(d.get("apr") or 0)),
            "min_payment": max(0.0, float(d.get("min_payment") or 0)),
            "months_to_zero": None,
            "interest_paid": 0.0,
        })

    extra = 0.0 if strategy == "minimum" else max(0.0, float(extra or 0))
    budget = sum(x["min_payment"] for x in items) + extra

    months = 0
    total_interest = 0.0
    while any(x["balance"] > EPS for x in items) and months < MAX_MONTHS:
        months += 1
        open_items = [x for x in items if x["balance"] > EPS]

        for x in open_items:
            interest = x["balance"] * x["apr"] / 100.0 / 12.0
            x["balance"] += interest
            x["interest_paid"] += interest
            total_interest += interest

        spent = 0.0
        for x in open_items:
            pay = min(x["min_payment"], x["balance"])
            x["balance"] -= pay
            spent += pay

        if strategy == "minimum":
            pool = 0.0
        else:
            pool = max(0.0, budget - spent)
        for x in _order([x for x in items if x["balance"] > EPS], strategy):
            if pool <= EPS:
                break
            pay = min(x["balance"], pool)
            x["balance"] -= pay
            pool -= pay

        for x in open_items:
            if x["balance"] <= EPS and x["months_to_zero"] is None:
                x["balance"] = 0.0
                x["months_to_zero"] = months

    finished = all(x["balance"] <= EPS for x in items)
    if strategy == "snowball":
        items.sort(key=lambda x: (x["starting_balance"], -x["apr"]))
    elif strategy == "avalanche":
        items.sort(key=lambda x: (-x["apr"], x["starting_balance"]))

    out = []
    for x in items:
        out.append({
            "name": x["name"],
            "starting_balance": x["starting_balance"],
            "apr": x["apr"],
            "min_payment": round(x["min_payment"], 2),
            "months_to_zero": x["months_to_zero"],
            "interest_paid": round(x["interest_paid"], 2),
        })

    return {
        "strategy": strategy,
        "monthly_extra": round(extra, 2),
        "months_total": months if finished else None,
        "interest_total": round(total_interest, 2),
        "debts": out,
    }
