"""
AI generation endpoints.

Diet plans cost 5 credits and workout suggestions 3. A generation that
cannot be paid for answers 402 and leaves the balance untouched.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from typing import List
import logging

from core.auth import ensure_student_access, require_trainer
from hooks import use_ai, use_auth
from schemas import (
    AIRequest,
    AIUsageStats,
    CreditTransaction,
    DietPlan,
    GenerateDietPlanRequest,
    GenerateWorkoutRequest,
    Profile,
    WorkoutSuggestion,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/ai", tags=["ai"])


class CreditBalanceResponse(BaseModel):
    trainer_id: str
    balance: int


class CanUseAIResponse(BaseModel):
    can_use_diet_plan: bool
    can_use_workout_suggestion: bool
    has_active_subscription: bool
    credit_balance: int


@router.post("/diet-plans", response_model=DietPlan, status_code=status.HTTP_201_CREATED)
def generate_diet_plan(body: GenerateDietPlanRequest, trainer: Profile = Depends(require_trainer)):
    ensure_student_access(trainer, body.student_id)
    return use_ai.use_generate_diet_plan(trainer.id).mutate_or_raise(body)


@router.get("/diet-plans", response_model=List[DietPlan])
def list_diet_plans(trainer: Profile = Depends(require_trainer)):
    return use_ai.use_diet_plans(trainer.id).unwrap()


@router.get("/diet-plans/{plan_id}", response_model=DietPlan)
def get_diet_plan(plan_id: str, trainer: Profile = Depends(require_trainer)):
    plan = use_ai.use_diet_plan(plan_id).unwrap()
    if plan is None or plan.trainer_id != trainer.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Diet plan not found")
    return plan


@router.post("/workout-suggestions", response_model=WorkoutSuggestion, status_code=status.HTTP_201_CREATED)
def generate_workout_suggestion(body: GenerateWorkoutRequest, trainer: Profile = Depends(require_trainer)):
    return use_ai.use_generate_workout_suggestion(trainer.id).mutate_or_raise(body)


@router.get("/workout-suggestions", response_model=List[WorkoutSuggestion])
def list_workout_suggestions(trainer: Profile = Depends(require_trainer)):
    return use_ai.use_workout_suggestions(trainer.id).unwrap()


@router.get("/usage", response_model=AIUsageStats)
def usage_stats(trainer: Profile = Depends(require_trainer)):
    return use_ai.use_ai_usage_stats(trainer.id).unwrap()


@router.get("/requests", response_model=List[AIRequest])
def list_requests(trainer: Profile = Depends(require_trainer)):
    return use_ai.use_ai_requests(trainer.id).unwrap()


@router.get("/credits", response_model=CreditBalanceResponse)
def credit_balance(trainer: Profile = Depends(require_trainer)):
    return CreditBalanceResponse(trainer_id=trainer.id, balance=use_ai.use_credit_balance(trainer.id).unwrap())


@router.get("/credits/transactions", response_model=List[CreditTransaction])
def credit_transactions(trainer: Profile = Depends(require_trainer)):
    return use_ai.use_credit_transactions(trainer.id).unwrap()


@router.get("/can-use", response_model=CanUseAIResponse)
def can_use_ai(trainer: Profile = Depends(require_trainer)):
    """Which AI features the current balance covers."""
    trainer_profile = use_auth.use_trainer_profile(trainer.id).data
    plan = trainer_profile.plan if trainer_profile else None
    return use_ai.use_can_use_ai(trainer.id, plan)
