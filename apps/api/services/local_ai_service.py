"""
AI service over the local JSON blob.

Credit reservation, the ledger append and the balance change run in one
locked read-modify-write, so concurrent requests cannot overdraw.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from core.exceptions import InsufficientCreditsError, ProviderError
from schemas import (
    AIRequest,
    AIUsageStats,
    CreditTransaction,
    DietPlan,
    GenerateDietPlanRequest,
    GenerateWorkoutRequest,
    WorkoutSuggestion,
)
from services.ai_generation import diet_plan_content, estimate_tokens, workout_suggestion_content
from services.ai_service import IAIService, most_used_feature, usage_description
from services.local_store import LocalStorageService, new_id, now_iso
from services.plan_limits import feature_cost

logger = logging.getLogger(__name__)


def _newest_first(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(records, key=lambda r: r.get("created_at") or "", reverse=True)


class LocalStorageAIService(IAIService):
    def __init__(self, store: LocalStorageService, generator=None):
        self.store = store
        # Template generation unless a generator (e.g. OpenAIGenerator) is supplied
        self.generator = generator

    # ------------------------------------------------------------------
    # Credits
    # ------------------------------------------------------------------

    def get_credit_balance(self, trainer_id: str) -> int:
        data = self.store.snapshot()
        profile = self.store.find(data, "trainer_profiles", trainer_id)
        return profile["ai_credits"] if profile else 0

    def deduct_credits(self, trainer_id: str, amount: int, request_id: str,
                       description: Optional[str] = None) -> int:
        with self.store.transaction() as data:
            profile = self.store.require(data, "trainer_profiles", trainer_id, "Trainer profile")
            if profile["ai_credits"] < amount:
                raise InsufficientCreditsError(amount, profile["ai_credits"])
            profile["ai_credits"] -= amount
            profile["updated_at"] = now_iso()
            data["credit_transactions"].append({
                "id": new_id(),
                "trainer_id": trainer_id,
                "type": "usage",
                "amount": -amount,
                "description": description or f"AI usage - {amount} credits",
                "ai_request_id": request_id,
                "created_at": now_iso(),
            })
            balance = profile["ai_credits"]
        logger.info(
            "Credits reserved",
            extra={"extra_fields": {"trainer_id": trainer_id, "amount": amount, "balance": balance}},
        )
        return balance

    def add_credits(self, trainer_id: str, amount: int, type: str = "purchase",
                    description: Optional[str] = None, ai_request_id: Optional[str] = None) -> int:
        with self.store.transaction() as data:
            profile = self.store.require(data, "trainer_profiles", trainer_id, "Trainer profile")
            profile["ai_credits"] += amount
            profile["updated_at"] = now_iso()
            data["credit_transactions"].append({
                "id": new_id(),
                "trainer_id": trainer_id,
                "type": type,
                "amount": amount,
                "description": description,
                "ai_request_id": ai_request_id,
                "created_at": now_iso(),
            })
            return profile["ai_credits"]

    def get_credit_transactions(self, trainer_id: str) -> List[CreditTransaction]:
        data = self.store.snapshot()
        records = self.store.where(data, "credit_transactions", trainer_id=trainer_id)
        return [CreditTransaction.model_validate(r) for r in _newest_first(records)]

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _generate(self, feature: str, produce):
        if self.generator is None:
            return None
        try:
            return produce(self.generator)
        except Exception as e:
            logger.error(f"AI {feature} generation failed: {e}")
            raise ProviderError("OpenAI", f"{feature} generation failed") from e

    def _persist(self, collection: str, record: Dict[str, Any], request_id: str, trainer_id: str,
                 type: str, prompt: str, response: str, cost: int) -> None:
        with self.store.transaction() as data:
            data[collection].append(record)
            data["ai_requests"].append({
                "id": request_id,
                "trainer_id": trainer_id,
                "type": type,
                "prompt": prompt,
                "response": response,
                "tokens_used": estimate_tokens(response),
                "cost_credits": cost,
                "created_at": now_iso(),
            })

    def _refund(self, trainer_id: str, amount: int, request_id: str, reason: Exception) -> None:
        self.add_credits(
            trainer_id,
            amount,
            type="refund",
            description=f"Refund for failed AI request ({amount} credits)",
            ai_request_id=request_id,
        )
        logger.warning(f"Refunded {amount} credits to trainer {trainer_id} after failed generation: {reason}")

    def generate_diet_plan(self, trainer_id: str, request: GenerateDietPlanRequest) -> DietPlan:
        cost = feature_cost("diet_plan")
        request_id = new_id()
        self.deduct_credits(trainer_id, cost, request_id, usage_description("diet_plan", cost))
        try:
            meals = self._generate("diet_plan", lambda g: g.diet_meals(request))
            content = diet_plan_content(request, meals)
            for meal in content["meals"]:
                meal["id"] = new_id()
            plan = DietPlan.model_validate({
                "id": new_id(),
                "trainer_id": trainer_id,
                "created_at": now_iso(),
                **content,
            })
            self._persist("diet_plans", plan.model_dump(mode="json"), request_id, trainer_id,
                          "diet_plan", request.model_dump_json(), plan.model_dump_json(), cost)
        except Exception as e:
            self._refund(trainer_id, cost, request_id, e)
            raise
        logger.info(f"Diet plan generated: {plan.id} for trainer {trainer_id}")
        return plan

    def generate_workout_suggestion(self, trainer_id: str, request: GenerateWorkoutRequest) -> WorkoutSuggestion:
        cost = feature_cost("workout_suggestion")
        request_id = new_id()
        self.deduct_credits(trainer_id, cost, request_id, usage_description("workout_suggestion", cost))
        try:
            exercises = self._generate("workout_suggestion", lambda g: g.workout_exercises(request))
            suggestion = WorkoutSuggestion.model_validate({
                "id": new_id(),
                "trainer_id": trainer_id,
                "created_at": now_iso(),
                **workout_suggestion_content(request, exercises),
            })
            self._persist("workout_suggestions", suggestion.model_dump(mode="json"), request_id, trainer_id,
                          "workout_suggestion", request.model_dump_json(), suggestion.model_dump_json(), cost)
        except Exception as e:
            self._refund(trainer_id, cost, request_id, e)
            raise
        logger.info(f"Workout suggestion generated: {suggestion.id} for trainer {trainer_id}")
        return suggestion

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_diet_plans(self, trainer_id: str) -> List[DietPlan]:
        data = self.store.snapshot()
        plans = self.store.where(data, "diet_plans", trainer_id=trainer_id)
        return [DietPlan.model_validate(p) for p in _newest_first(plans)]

    def get_diet_plan(self, plan_id: str) -> Optional[DietPlan]:
        data = self.store.snapshot()
        plan = self.store.find(data, "diet_plans", plan_id)
        return DietPlan.model_validate(plan) if plan else None

    def get_workout_suggestions(self, trainer_id: str) -> List[WorkoutSuggestion]:
        data = self.store.snapshot()
        suggestions = self.store.where(data, "workout_suggestions", trainer_id=trainer_id)
        return [WorkoutSuggestion.model_validate(s) for s in _newest_first(suggestions)]

    def get_ai_requests(self, trainer_id: str) -> List[AIRequest]:
        data = self.store.snapshot()
        records = self.store.where(data, "ai_requests", trainer_id=trainer_id)
        return [AIRequest.model_validate(r) for r in _newest_first(records)]

    def get_ai_usage_stats(self, trainer_id: str) -> AIUsageStats:
        data = self.store.snapshot()
        requests = self.store.where(data, "ai_requests", trainer_id=trainer_id)
        usage = self.store.where(data, "credit_transactions", trainer_id=trainer_id, type="usage")
        profile = self.store.find(data, "trainer_profiles", trainer_id)
        return AIUsageStats(
            total_requests=len(requests),
            credits_used=sum(abs(t["amount"]) for t in usage),
            credits_remaining=profile["ai_credits"] if profile else 0,
            most_used_feature=most_used_feature([r["type"] for r in requests]),
            success_rate=100,
        )
