"""
Plan tiers, AI feature costs and billing arithmetic.
"""
import pytest

from services.plan_limits import (
    PLAN_LIMITS,
    can_add_student,
    can_afford_feature,
    feature_cost,
    format_price,
    get_plan_limits,
    is_active_subscription,
    net_amount,
    plan_catalog,
    plan_from_price_id,
    platform_fee,
    yearly_savings,
)


class TestPlanTable:

    @pytest.mark.parametrize("plan,max_students,credits", [
        ("free", 3, 10),
        ("pro", 15, 100),
        ("elite", 50, 500),
    ])
    def test_tier_values(self, plan, max_students, credits):
        limits = get_plan_limits(plan)
        assert limits.max_students == max_students
        assert limits.ai_credits == credits

    def test_unknown_plan_raises(self):
        with pytest.raises(ValueError):
            get_plan_limits("platinum")

    def test_catalog_is_ordered_cheapest_first(self):
        catalog = plan_catalog()
        assert [p["plan"] for p in catalog] == ["free", "pro", "elite"]
        pro = catalog[1]
        assert pro["yearly_savings"] == PLAN_LIMITS["pro"].monthly_price * 12 - PLAN_LIMITS["pro"].yearly_price


class TestCredits:

    def test_feature_costs(self):
        assert feature_cost("diet_plan") == 5
        assert feature_cost("workout_suggestion") == 3

    def test_unknown_feature_raises(self):
        with pytest.raises(ValueError):
            feature_cost("video_analysis")

    def test_can_afford_is_inclusive(self):
        assert can_afford_feature(5, "diet_plan") is True
        assert can_afford_feature(4, "diet_plan") is False
        assert can_afford_feature(100, "unknown") is False


class TestPlanHelpers:

    def test_plan_from_price_id(self):
        assert plan_from_price_id("price_elite_monthly") == "elite"
        assert plan_from_price_id("price_PRO_yearly") == "pro"
        assert plan_from_price_id("") == "pro"

    def test_can_add_student_below_limit_only(self):
        assert can_add_student(2, 3)
        assert not can_add_student(3, 3)

    def test_active_subscription_statuses(self):
        assert is_active_subscription("active")
        assert is_active_subscription("TRIALING")
        assert not is_active_subscription("canceled")
        assert not is_active_subscription(None)


class TestMoney:

    def test_format_brl(self):
        assert format_price(2900) == "R$ 29,00"
        assert format_price(123456) == "R$ 1.234,56"

    def test_format_other_currency(self):
        assert format_price(4900, "usd") == "USD 49.00"

    def test_fees(self):
        assert platform_fee(10000, 1.5) == 150
        assert net_amount(10000, 1.5) == 9850

    def test_yearly_savings(self):
        assert yearly_savings(2900, 29000) == 5800
