"""
AI diet plans, workout suggestions and the credit ledger.

Every generation is credit-gated:

    1. reserve  - atomically debit the feature cost and append a usage
                  transaction; nothing changes when the balance is short
    2. generate - OpenAI (when configured) or the template generator
    3. persist  - store the artifact and the AIRequest record

If step 2 or 3 fails, a compensating refund restores the balance and is
appended to the ledger, so the ledger always explains the balance.
"""
from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, update

import models
from core.database import SessionFactory, SessionLocal, session_scope
from core.exceptions import InsufficientCreditsError, NotFoundError, ProviderError
from schemas import (
    AIRequest,
    AIUsageStats,
    CreditTransaction,
    DietPlan,
    GenerateDietPlanRequest,
    GenerateWorkoutRequest,
    WorkoutSuggestion,
)
from services.ai_generation import (
    OpenAIGenerator,
    diet_plan_content,
    estimate_tokens,
    workout_suggestion_content,
)
from services.plan_limits import feature_cost

logger = logging.getLogger(__name__)


def usage_description(feature: str, amount: int) -> str:
    return f"AI usage - {feature} ({amount} credits)"


def most_used_feature(types: List[str]) -> str:
    if not types:
        return "none"
    return Counter(types).most_common(1)[0][0]


class IAIService(ABC):
    @abstractmethod
    def generate_diet_plan(self, trainer_id: str, request: GenerateDietPlanRequest) -> DietPlan: ...

    @abstractmethod
    def get_diet_plans(self, trainer_id: str) -> List[DietPlan]: ...

    @abstractmethod
    def get_diet_plan(self, plan_id: str) -> Optional[DietPlan]: ...

    @abstractmethod
    def generate_workout_suggestion(self, trainer_id: str, request: GenerateWorkoutRequest) -> WorkoutSuggestion: ...

    @abstractmethod
    def get_workout_suggestions(self, trainer_id: str) -> List[WorkoutSuggestion]: ...

    @abstractmethod
    def get_ai_usage_stats(self, trainer_id: str) -> AIUsageStats: ...

    @abstractmethod
    def get_ai_requests(self, trainer_id: str) -> List[AIRequest]: ...

    @abstractmethod
    def get_credit_balance(self, trainer_id: str) -> int: ...

    @abstractmethod
    def deduct_credits(self, trainer_id: str, amount: int, request_id: str,
                       description: Optional[str] = None) -> int:
        """Atomically debit ``amount``; returns the new balance or raises InsufficientCreditsError."""

    @abstractmethod
    def add_credits(self, trainer_id: str, amount: int, type: str = "purchase",
                    description: Optional[str] = None, ai_request_id: Optional[str] = None) -> int:
        """Credit ``amount`` with a ledger entry of ``type``; returns the new balance."""

    @abstractmethod
    def get_credit_transactions(self, trainer_id: str) -> List[CreditTransaction]: ...


class OpenAIService(IAIService):
    """Remote AI service: SQL ledger plus OpenAI generation."""

    def __init__(self, session_factory: SessionFactory = SessionLocal,
                 generator: Optional[OpenAIGenerator] = None):
        self._session_factory = session_factory
        self.generator = generator
        if generator is None:
            logger.warning("OPENAI_API_KEY not configured; AI features use template generation")

    # ------------------------------------------------------------------
    # Credits
    # ------------------------------------------------------------------

    def get_credit_balance(self, trainer_id: str) -> int:
        with session_scope(self._session_factory) as db:
            balance = (
                db.query(models.TrainerProfile.ai_credits)
                .filter(models.TrainerProfile.id == trainer_id)
                .scalar()
            )
            return balance or 0

    def deduct_credits(self, trainer_id: str, amount: int, request_id: str,
                       description: Optional[str] = None) -> int:
        with session_scope(self._session_factory) as db:
            # Conditional decrement: concurrent reservations cannot overdraw
            result = db.execute(
                update(models.TrainerProfile)
                .where(models.TrainerProfile.id == trainer_id)
                .where(models.TrainerProfile.ai_credits >= amount)
                .values(ai_credits=models.TrainerProfile.ai_credits - amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                available = (
                    db.query(models.TrainerProfile.ai_credits)
                    .filter(models.TrainerProfile.id == trainer_id)
                    .scalar()
                )
                if available is None:
                    raise NotFoundError("Trainer profile", trainer_id)
                raise InsufficientCreditsError(amount, available)

            db.add(models.CreditTransaction(
                trainer_id=trainer_id,
                type="usage",
                amount=-amount,
                description=description or f"AI usage - {amount} credits",
                ai_request_id=request_id,
                created_at=datetime.now(timezone.utc),
            ))
            db.flush()
            balance = (
                db.query(models.TrainerProfile.ai_credits)
                .filter(models.TrainerProfile.id == trainer_id)
                .scalar()
            )
        logger.info(
            "Credits reserved",
            extra={"extra_fields": {"trainer_id": trainer_id, "amount": amount, "balance": balance}},
        )
        return balance

    def add_credits(self, trainer_id: str, amount: int, type: str = "purchase",
                    description: Optional[str] = None, ai_request_id: Optional[str] = None) -> int:
        with session_scope(self._session_factory) as db:
            result = db.execute(
                update(models.TrainerProfile)
                .where(models.TrainerProfile.id == trainer_id)
                .values(ai_credits=models.TrainerProfile.ai_credits + amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError("Trainer profile", trainer_id)
            db.add(models.CreditTransaction(
                trainer_id=trainer_id,
                type=type,
                amount=amount,
                description=description,
                ai_request_id=ai_request_id,
                created_at=datetime.now(timezone.utc),
            ))
            db.flush()
            return (
                db.query(models.TrainerProfile.ai_credits)
                .filter(models.TrainerProfile.id == trainer_id)
                .scalar()
            )

    def get_credit_transactions(self, trainer_id: str) -> List[CreditTransaction]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(models.CreditTransaction)
                .filter(models.CreditTransaction.trainer_id == trainer_id)
                .order_by(models.CreditTransaction.created_at.desc())
                .all()
            )
            return [CreditTransaction.model_validate(row) for row in rows]

    def _refund(self, trainer_id: str, amount: int, request_id: str, reason: Exception) -> None:
        self.add_credits(
            trainer_id,
            amount,
            type="refund",
            description=f"Refund for failed AI request ({amount} credits)",
            ai_request_id=request_id,
        )
        logger.warning(f"Refunded {amount} credits to trainer {trainer_id} after failed generation: {reason}")

    def _generate(self, feature: str, produce):
        if self.generator is None:
            return None
        try:
            return produce(self.generator)
        except Exception as e:
            logger.error(f"OpenAI {feature} generation failed: {e}")
            raise ProviderError("OpenAI", f"{feature} generation failed") from e

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_diet_plan(self, trainer_id: str, request: GenerateDietPlanRequest) -> DietPlan:
        cost = feature_cost("diet_plan")
        request_id = str(uuid.uuid4())
        self.deduct_credits(trainer_id, cost, request_id, usage_description("diet_plan", cost))
        try:
            meals = self._generate("diet_plan", lambda g: g.diet_meals(request))
            content = diet_plan_content(request, meals)
            with session_scope(self._session_factory) as db:
                row = models.DietPlan(
                    trainer_id=trainer_id,
                    created_at=datetime.now(timezone.utc),
                    **content,
                )
                db.add(row)
                db.flush()
                plan = DietPlan.model_validate(row)
                self._record_request(db, request_id, trainer_id, "diet_plan",
                                     request.model_dump_json(), plan.model_dump_json(), cost)
        except Exception as e:
            self._refund(trainer_id, cost, request_id, e)
            raise
        logger.info(f"Diet plan generated: {plan.id} for trainer {trainer_id}")
        return plan

    def generate_workout_suggestion(self, trainer_id: str, request: GenerateWorkoutRequest) -> WorkoutSuggestion:
        cost = feature_cost("workout_suggestion")
        request_id = str(uuid.uuid4())
        self.deduct_credits(trainer_id, cost, request_id, usage_description("workout_suggestion", cost))
        try:
            exercises = self._generate("workout_suggestion", lambda g: g.workout_exercises(request))
            content = workout_suggestion_content(request, exercises)
            with session_scope(self._session_factory) as db:
                row = models.WorkoutSuggestion(
                    trainer_id=trainer_id,
                    created_at=datetime.now(timezone.utc),
                    **content,
                )
                db.add(row)
                db.flush()
                suggestion = WorkoutSuggestion.model_validate(row)
                self._record_request(db, request_id, trainer_id, "workout_suggestion",
                                     request.model_dump_json(), suggestion.model_dump_json(), cost)
        except Exception as e:
            self._refund(trainer_id, cost, request_id, e)
            raise
        logger.info(f"Workout suggestion generated: {suggestion.id} for trainer {trainer_id}")
        return suggestion

    @staticmethod
    def _record_request(db, request_id: str, trainer_id: str, type: str,
                        prompt: str, response: str, cost: int) -> None:
        db.add(models.AIRequest(
            id=request_id,
            trainer_id=trainer_id,
            type=type,
            prompt=prompt,
            response=response,
            tokens_used=estimate_tokens(response),
            cost_credits=cost,
            created_at=datetime.now(timezone.utc),
        ))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_diet_plans(self, trainer_id: str) -> List[DietPlan]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(models.DietPlan)
                .filter(models.DietPlan.trainer_id == trainer_id)
                .order_by(models.DietPlan.created_at.desc())
                .all()
            )
            return [DietPlan.model_validate(row) for row in rows]

    def get_diet_plan(self, plan_id: str) -> Optional[DietPlan]:
        with session_scope(self._session_factory) as db:
            row = db.get(models.DietPlan, plan_id)
            return DietPlan.model_validate(row) if row else None

    def get_workout_suggestions(self, trainer_id: str) -> List[WorkoutSuggestion]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(models.WorkoutSuggestion)
                .filter(models.WorkoutSuggestion.trainer_id == trainer_id)
                .order_by(models.WorkoutSuggestion.created_at.desc())
                .all()
            )
            return [WorkoutSuggestion.model_validate(row) for row in rows]

    def get_ai_requests(self, trainer_id: str) -> List[AIRequest]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(models.AIRequest)
                .filter(models.AIRequest.trainer_id == trainer_id)
                .order_by(models.AIRequest.created_at.desc())
                .all()
            )
            return [AIRequest.model_validate(row) for row in rows]

    def get_ai_usage_stats(self, trainer_id: str) -> AIUsageStats:
        with session_scope(self._session_factory) as db:
            types = [
                t for (t,) in db.query(models.AIRequest.type)
                .filter(models.AIRequest.trainer_id == trainer_id)
                .all()
            ]
            credits_used = (
                db.query(func.coalesce(func.sum(func.abs(models.CreditTransaction.amount)), 0))
                .filter(models.CreditTransaction.trainer_id == trainer_id)
                .filter(models.CreditTransaction.type == "usage")
                .scalar()
            )
        return AIUsageStats(
            total_requests=len(types),
            credits_used=int(credits_used),
            credits_remaining=self.get_credit_balance(trainer_id),
            most_used_feature=most_used_feature(types),
            success_rate=100,
        )
