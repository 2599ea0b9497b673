"""AI hooks: diet plans, workout suggestions, usage and credits."""
from typing import Dict, List, Optional

from core.container import AI_SERVICE, container
from hooks.query_client import Mutation, QueryResult, get_query_client
from schemas import (
    AIRequest,
    AIUsageStats,
    CreditTransaction,
    DietPlan,
    GenerateDietPlanRequest,
    GenerateWorkoutRequest,
    WorkoutSuggestion,
)
from services.ai_service import IAIService
from services.plan_limits import can_afford_feature

# Every AI mutation changes the balance, which the dashboard, limits and
# trainer profile views all show
CREDIT_KEYS = (("ai-usage-stats",), ("credit-balance",), ("credit-transactions",), ("ai-requests",),
               ("dashboard",), ("plan-limits",), ("trainer-profile",), ("admin-trainers",))


def _ai() -> IAIService:
    return container.resolve(AI_SERVICE)


def use_diet_plans(trainer_id: Optional[str]) -> QueryResult[List[DietPlan]]:
    return get_query_client().use_query(
        ("diet-plans", trainer_id),
        lambda: _ai().get_diet_plans(trainer_id),
        enabled=bool(trainer_id),
    )


def use_diet_plan(plan_id: Optional[str]) -> QueryResult[Optional[DietPlan]]:
    return get_query_client().use_query(
        ("diet-plan", plan_id),
        lambda: _ai().get_diet_plan(plan_id),
        enabled=bool(plan_id),
    )


def use_generate_diet_plan(trainer_id: str) -> Mutation[DietPlan]:
    def generate(request: GenerateDietPlanRequest) -> DietPlan:
        return _ai().generate_diet_plan(trainer_id, request)

    return get_query_client().use_mutation(
        generate,
        invalidates=(("diet-plans",), *CREDIT_KEYS),
        success_toast="Diet plan generated",
        error_toast="Could not generate diet plan",
    )


def use_workout_suggestions(trainer_id: Optional[str]) -> QueryResult[List[WorkoutSuggestion]]:
    return get_query_client().use_query(
        ("workout-suggestions", trainer_id),
        lambda: _ai().get_workout_suggestions(trainer_id),
        enabled=bool(trainer_id),
    )


def use_generate_workout_suggestion(trainer_id: str) -> Mutation[WorkoutSuggestion]:
    def generate(request: GenerateWorkoutRequest) -> WorkoutSuggestion:
        return _ai().generate_workout_suggestion(trainer_id, request)

    return get_query_client().use_mutation(
        generate,
        invalidates=(("workout-suggestions",), *CREDIT_KEYS),
        success_toast="Workout suggestion generated",
        error_toast="Could not generate workout suggestion",
    )


def use_ai_usage_stats(trainer_id: Optional[str]) -> QueryResult[AIUsageStats]:
    return get_query_client().use_query(
        ("ai-usage-stats", trainer_id),
        lambda: _ai().get_ai_usage_stats(trainer_id),
        enabled=bool(trainer_id),
    )


def use_ai_requests(trainer_id: Optional[str]) -> QueryResult[List[AIRequest]]:
    return get_query_client().use_query(
        ("ai-requests", trainer_id),
        lambda: _ai().get_ai_requests(trainer_id),
        enabled=bool(trainer_id),
    )


def use_credit_balance(trainer_id: Optional[str]) -> QueryResult[int]:
    return get_query_client().use_query(
        ("credit-balance", trainer_id),
        lambda: _ai().get_credit_balance(trainer_id),
        enabled=bool(trainer_id),
    )


def use_credit_transactions(trainer_id: Optional[str]) -> QueryResult[List[CreditTransaction]]:
    return get_query_client().use_query(
        ("credit-transactions", trainer_id),
        lambda: _ai().get_credit_transactions(trainer_id),
        enabled=bool(trainer_id),
    )


def use_add_credits(trainer_id: str) -> Mutation[int]:
    def add(amount: int, type: str = "purchase", description: Optional[str] = None) -> int:
        return _ai().add_credits(trainer_id, amount, type=type, description=description)

    return get_query_client().use_mutation(
        add,
        invalidates=CREDIT_KEYS,
        success_toast="Credits added",
        error_toast="Could not add credits",
    )


def use_can_use_ai(trainer_id: Optional[str], plan: Optional[str] = None) -> Dict[str, object]:
    """Which AI features the trainer can afford right now."""
    balance = use_credit_balance(trainer_id).data or 0
    return {
        "can_use_diet_plan": can_afford_feature(balance, "diet_plan"),
        "can_use_workout_suggestion": can_afford_feature(balance, "workout_suggestion"),
        "has_active_subscription": (plan or "free") in ("pro", "elite"),
        "credit_balance": balance,
    }
