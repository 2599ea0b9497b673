"""
Plan tiers, AI feature costs and billing arithmetic.

PLAN_LIMITS is the single table both backends read when a trainer's plan
changes, so the local and remote implementations cannot drift apart.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class PlanLimits:
    max_students: int
    ai_credits: int
    fee_percentage: float  # platform fee charged on student payments
    monthly_price: int  # cents
    yearly_price: int  # cents
    features: Tuple[str, ...]


PLAN_LIMITS: Dict[str, PlanLimits] = {
    "free": PlanLimits(
        max_students=3,
        ai_credits=10,
        fee_percentage=1.5,
        monthly_price=0,
        yearly_price=0,
        features=("Basic student management", "Simple scheduling"),
    ),
    "pro": PlanLimits(
        max_students=15,
        ai_credits=100,
        fee_percentage=1.0,
        monthly_price=2900,
        yearly_price=29000,
        features=("Up to 15 students", "AI diet plans", "Workout builder", "Priority support"),
    ),
    "elite": PlanLimits(
        max_students=50,
        ai_credits=500,
        fee_percentage=0.5,
        monthly_price=4900,
        yearly_price=49000,
        features=("Up to 50 students", "500 AI credits", "Advanced reports", "Priority support"),
    ),
}

PLAN_ORDER = ("free", "pro", "elite")

AI_FEATURE_COSTS: Dict[str, int] = {
    "diet_plan": 5,
    "workout_suggestion": 3,
}


def get_plan_limits(plan: str) -> PlanLimits:
    try:
        return PLAN_LIMITS[plan]
    except KeyError:
        raise ValueError(f"Unknown plan: {plan}")


def feature_cost(feature: str) -> int:
    try:
        return AI_FEATURE_COSTS[feature]
    except KeyError:
        raise ValueError(f"Unknown AI feature: {feature}")


def can_afford_feature(credit_balance: int, feature: str) -> bool:
    cost = AI_FEATURE_COSTS.get(feature)
    return cost is not None and credit_balance >= cost


def plan_from_price_id(price_id: str) -> str:
    """Checkout price IDs name their tier; anything not elite is billed as pro."""
    return "elite" if "elite" in (price_id or "").lower() else "pro"


def can_add_student(current_count: int, max_students: int) -> bool:
    return current_count < max_students


def format_price(price_in_cents: int, currency: str = "BRL") -> str:
    """Format cents as a currency string, e.g. 2900 -> 'R$ 29,00'."""
    whole, cents = divmod(abs(int(price_in_cents)), 100)
    sign = "-" if price_in_cents < 0 else ""
    if currency.upper() == "BRL":
        grouped = f"{whole:,}".replace(",", ".")
        return f"{sign}R$ {grouped},{cents:02d}"
    return f"{sign}{currency.upper()} {whole:,}.{cents:02d}"


def yearly_savings(monthly_price: int, yearly_price: int) -> int:
    return monthly_price * 12 - yearly_price


def platform_fee(amount: int, fee_percentage: float) -> int:
    return int(round(amount * (fee_percentage / 100)))


def net_amount(gross_amount: int, fee_percentage: float) -> int:
    return gross_amount - platform_fee(gross_amount, fee_percentage)


def is_active_subscription(status: Optional[str]) -> bool:
    return (status or "").lower() in ("active", "trialing")


def plan_catalog() -> List[dict]:
    """Public view of every tier, cheapest first."""
    catalog = []
    for plan in PLAN_ORDER:
        limits = PLAN_LIMITS[plan]
        catalog.append({
            "plan": plan,
            "max_students": limits.max_students,
            "ai_credits": limits.ai_credits,
            "fee_percentage": limits.fee_percentage,
            "monthly_price": limits.monthly_price,
            "yearly_price": limits.yearly_price,
            "yearly_savings": yearly_savings(limits.monthly_price, limits.yearly_price),
            "features": list(limits.features),
        })
    return catalog
