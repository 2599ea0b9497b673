"""
Workout endpoints: exercise library, workout plans and workout sessions.

Trainers build and assign plans; students read the plans assigned to them.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from typing import List
import logging

from core.auth import ensure_student_access, get_current_user, require_trainer
from hooks import use_workouts
from schemas import (
    Exercise,
    NewExercise,
    NewWorkoutPlan,
    NewWorkoutSession,
    Profile,
    WorkoutPlan,
    WorkoutSession,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/workouts", tags=["workouts"])


class AssignWorkoutRequest(BaseModel):
    student_id: str


def _owned_plan(plan_id: str, user: Profile) -> WorkoutPlan:
    plan = use_workouts.use_workout_plan(plan_id).unwrap()
    if plan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workout plan not found")
    if user.role == "trainer" and plan.trainer_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    if user.role == "student" and plan.student_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return plan


@router.get("/exercises", response_model=List[Exercise])
def list_exercises(current_user: Profile = Depends(get_current_user)):
    """Public exercises plus the trainer's own."""
    trainer_id = current_user.id if current_user.role == "trainer" else None
    return use_workouts.use_exercises(trainer_id).unwrap()


@router.post("/exercises", response_model=Exercise, status_code=status.HTTP_201_CREATED)
def create_exercise(body: NewExercise, trainer: Profile = Depends(require_trainer)):
    return use_workouts.use_create_exercise(trainer.id).mutate_or_raise(body)


@router.get("/plans", response_model=List[WorkoutPlan])
def list_plans(current_user: Profile = Depends(get_current_user)):
    if current_user.role == "student":
        return use_workouts.use_student_workout_plans(current_user.id).unwrap()
    return use_workouts.use_workout_plans(current_user.id).unwrap()


@router.get("/plans/{plan_id}", response_model=WorkoutPlan)
def get_plan(plan_id: str, current_user: Profile = Depends(get_current_user)):
    return _owned_plan(plan_id, current_user)


@router.post("/plans", response_model=WorkoutPlan, status_code=status.HTTP_201_CREATED)
def create_plan(body: NewWorkoutPlan, trainer: Profile = Depends(require_trainer)):
    if body.student_id:
        ensure_student_access(trainer, body.student_id)
    return use_workouts.use_create_workout_plan(trainer.id).mutate_or_raise(body)


@router.post("/plans/{plan_id}/assign", response_model=WorkoutPlan, status_code=status.HTTP_201_CREATED)
def assign_plan(plan_id: str, body: AssignWorkoutRequest, trainer: Profile = Depends(require_trainer)):
    """Copy a template plan (with its exercises) to a student."""
    _owned_plan(plan_id, trainer)
    ensure_student_access(trainer, body.student_id)
    return use_workouts.use_assign_workout_to_student(trainer.id).mutate_or_raise(plan_id, body.student_id)


@router.delete("/plans/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_plan(plan_id: str, trainer: Profile = Depends(require_trainer)):
    _owned_plan(plan_id, trainer)
    use_workouts.use_delete_workout_plan().mutate_or_raise(plan_id)


@router.get("/sessions", response_model=List[WorkoutSession])
def list_workout_sessions(trainer: Profile = Depends(require_trainer)):
    return use_workouts.use_workout_sessions(trainer.id).unwrap()


@router.post("/sessions", response_model=WorkoutSession, status_code=status.HTTP_201_CREATED)
def create_workout_session(body: NewWorkoutSession, trainer: Profile = Depends(require_trainer)):
    ensure_student_access(trainer, body.student_id)
    return use_workouts.use_create_workout_session(trainer.id).mutate_or_raise(body)
