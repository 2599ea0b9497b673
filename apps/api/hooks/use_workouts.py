"""Workout hooks: exercise library, plans, assignment and workout sessions."""
from typing import List, Optional

from core.container import WORKOUT_SERVICE, container
from hooks.query_client import Mutation, QueryResult, get_query_client
from schemas import Exercise, NewExercise, NewWorkoutPlan, NewWorkoutSession, WorkoutPlan, WorkoutSession
from services.workout_service import IWorkoutService


def _workouts() -> IWorkoutService:
    return container.resolve(WORKOUT_SERVICE)


def use_exercises(trainer_id: Optional[str] = None) -> QueryResult[List[Exercise]]:
    return get_query_client().use_query(
        ("exercises", trainer_id),
        lambda: _workouts().get_exercises(trainer_id),
    )


def use_create_exercise(trainer_id: str) -> Mutation[Exercise]:
    return get_query_client().use_mutation(
        lambda exercise: _workouts().create_exercise(trainer_id, exercise),
        invalidates=(("exercises",),),
        success_toast="Exercise created",
        error_toast="Could not create exercise",
    )


def use_workout_plans(trainer_id: Optional[str]) -> QueryResult[List[WorkoutPlan]]:
    return get_query_client().use_query(
        ("workout-plans", trainer_id),
        lambda: _workouts().get_workout_plans(trainer_id),
        enabled=bool(trainer_id),
    )


def use_student_workout_plans(student_id: Optional[str]) -> QueryResult[List[WorkoutPlan]]:
    return get_query_client().use_query(
        ("workout-plans", "student", student_id),
        lambda: _workouts().get_student_workout_plans(student_id),
        enabled=bool(student_id),
    )


def use_workout_plan(plan_id: Optional[str]) -> QueryResult[Optional[WorkoutPlan]]:
    return get_query_client().use_query(
        ("workout-plan", plan_id),
        lambda: _workouts().get_workout_plan(plan_id),
        enabled=bool(plan_id),
    )


def use_create_workout_plan(trainer_id: str) -> Mutation[WorkoutPlan]:
    def create(plan: NewWorkoutPlan) -> WorkoutPlan:
        return _workouts().create_workout_plan(trainer_id, plan)

    return get_query_client().use_mutation(
        create,
        invalidates=(("workout-plans",), ("dashboard",)),
        success_toast="Workout plan created",
        error_toast="Could not create workout plan",
    )


def use_assign_workout_to_student(trainer_id: str) -> Mutation[WorkoutPlan]:
    def assign(template_id: str, student_id: str) -> WorkoutPlan:
        return _workouts().assign_workout_to_student(template_id, student_id, trainer_id)

    return get_query_client().use_mutation(
        assign,
        invalidates=(("workout-plans",), ("dashboard",)),
        success_toast="Workout assigned to student",
        error_toast="Could not assign workout",
    )


def use_delete_workout_plan() -> Mutation[None]:
    return get_query_client().use_mutation(
        lambda plan_id: _workouts().delete_workout_plan(plan_id),
        invalidates=(("workout-plans",), ("workout-plan",), ("dashboard",)),
        success_toast="Workout plan deleted",
        error_toast="Could not delete workout plan",
    )


def use_workout_sessions(trainer_id: Optional[str]) -> QueryResult[List[WorkoutSession]]:
    return get_query_client().use_query(
        ("workout-sessions", trainer_id),
        lambda: _workouts().get_workout_sessions(trainer_id),
        enabled=bool(trainer_id),
    )


def use_create_workout_session(trainer_id: str) -> Mutation[WorkoutSession]:
    def create(session: NewWorkoutSession) -> WorkoutSession:
        return _workouts().create_workout_session(trainer_id, session)

    return get_query_client().use_mutation(
        create,
        invalidates=(("workout-sessions",),),
        success_toast="Workout session created",
        error_toast="Could not create workout session",
    )
