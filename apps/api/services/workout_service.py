"""
Exercise library, workout plans and logged workout sessions.

Plans own an ordered list of WorkoutPlanExercise rows. A template plan
(is_template=True) is never handed to a student directly:
``assign_workout_to_student`` copies it, exercises included, into a new
plan bound to the student.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy import or_

import models
from core.database import SessionFactory, SessionLocal, session_scope
from core.exceptions import NotFoundError
from schemas import (
    Exercise,
    NewExercise,
    NewWorkoutPlan,
    NewWorkoutSession,
    WorkoutPlan,
    WorkoutSession,
)

logger = logging.getLogger(__name__)


class IWorkoutService(ABC):
    @abstractmethod
    def get_exercises(self, trainer_id: Optional[str] = None) -> List[Exercise]: ...

    @abstractmethod
    def create_exercise(self, trainer_id: str, exercise: NewExercise) -> Exercise: ...

    @abstractmethod
    def get_workout_plans(self, trainer_id: str) -> List[WorkoutPlan]: ...

    @abstractmethod
    def get_student_workout_plans(self, student_id: str) -> List[WorkoutPlan]: ...

    @abstractmethod
    def get_workout_plan(self, plan_id: str) -> Optional[WorkoutPlan]: ...

    @abstractmethod
    def create_workout_plan(self, trainer_id: str, plan: NewWorkoutPlan) -> WorkoutPlan: ...

    @abstractmethod
    def assign_workout_to_student(self, template_id: str, student_id: str, trainer_id: str) -> WorkoutPlan: ...

    @abstractmethod
    def get_workout_sessions(self, trainer_id: str) -> List[WorkoutSession]: ...

    @abstractmethod
    def create_workout_session(self, trainer_id: str, session: NewWorkoutSession) -> WorkoutSession: ...

    @abstractmethod
    def delete_workout_plan(self, plan_id: str) -> None: ...


class SqlWorkoutService(IWorkoutService):
    def __init__(self, session_factory: SessionFactory = SessionLocal):
        self._session_factory = session_factory

    def get_exercises(self, trainer_id: Optional[str] = None) -> List[Exercise]:
        """Public exercises plus the trainer's own, sorted by name."""
        with session_scope(self._session_factory) as db:
            query = db.query(models.Exercise)
            if trainer_id:
                query = query.filter(or_(models.Exercise.is_public.is_(True), models.Exercise.trainer_id == trainer_id))
            else:
                query = query.filter(models.Exercise.is_public.is_(True))
            return [Exercise.model_validate(row) for row in query.order_by(models.Exercise.name).all()]

    def create_exercise(self, trainer_id: str, exercise: NewExercise) -> Exercise:
        with session_scope(self._session_factory) as db:
            row = models.Exercise(trainer_id=trainer_id, **exercise.model_dump())
            db.add(row)
            db.flush()
            db.refresh(row)
            logger.info(f"Exercise created: {row.id} by trainer {trainer_id}")
            return Exercise.model_validate(row)

    def get_workout_plans(self, trainer_id: str) -> List[WorkoutPlan]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(models.WorkoutPlan)
                .filter(models.WorkoutPlan.trainer_id == trainer_id)
                .order_by(models.WorkoutPlan.created_at.desc())
                .all()
            )
            return [WorkoutPlan.model_validate(row) for row in rows]

    def get_student_workout_plans(self, student_id: str) -> List[WorkoutPlan]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(models.WorkoutPlan)
                .filter(models.WorkoutPlan.student_id == student_id)
                .order_by(models.WorkoutPlan.created_at.desc())
                .all()
            )
            return [WorkoutPlan.model_validate(row) for row in rows]

    def get_workout_plan(self, plan_id: str) -> Optional[WorkoutPlan]:
        with session_scope(self._session_factory) as db:
            row = db.query(models.WorkoutPlan).filter(models.WorkoutPlan.id == plan_id).first()
            return WorkoutPlan.model_validate(row) if row else None

    def create_workout_plan(self, trainer_id: str, plan: NewWorkoutPlan) -> WorkoutPlan:
        with session_scope(self._session_factory) as db:
            row = models.WorkoutPlan(
                trainer_id=trainer_id,
                **plan.model_dump(exclude={"exercises"}),
            )
            for position, item in enumerate(plan.exercises, start=1):
                if db.get(models.Exercise, item.exercise_id) is None:
                    raise NotFoundError("Exercise", item.exercise_id)
                fields = item.model_dump()
                fields["order_in_workout"] = item.order_in_workout or position
                row.exercises.append(models.WorkoutPlanExercise(**fields))
            db.add(row)
            db.flush()
            db.refresh(row)
            logger.info(f"Workout plan created: {row.id} ({len(plan.exercises)} exercises)")
            return WorkoutPlan.model_validate(row)

    def assign_workout_to_student(self, template_id: str, student_id: str, trainer_id: str) -> WorkoutPlan:
        with session_scope(self._session_factory) as db:
            template = db.query(models.WorkoutPlan).filter(models.WorkoutPlan.id == template_id).first()
            if template is None:
                raise NotFoundError("Workout plan", template_id)
            copy = models.WorkoutPlan(
                trainer_id=trainer_id,
                student_id=student_id,
                name=template.name,
                description=template.description,
                difficulty_level=template.difficulty_level,
                estimated_duration_minutes=template.estimated_duration_minutes,
                muscle_groups=list(template.muscle_groups or []),
                is_template=False,
            )
            for item in template.exercises:
                copy.exercises.append(models.WorkoutPlanExercise(
                    exercise_id=item.exercise_id,
                    order_in_workout=item.order_in_workout,
                    target_sets=item.target_sets,
                    target_reps=item.target_reps,
                    target_weight_kg=item.target_weight_kg,
                    rest_seconds=item.rest_seconds,
                    notes=item.notes,
                ))
            db.add(copy)
            db.flush()
            db.refresh(copy)
            logger.info(f"Workout plan {template_id} assigned to student {student_id} as {copy.id}")
            return WorkoutPlan.model_validate(copy)

    def get_workout_sessions(self, trainer_id: str) -> List[WorkoutSession]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(models.WorkoutSession)
                .filter(models.WorkoutSession.trainer_id == trainer_id)
                .order_by(models.WorkoutSession.created_at.desc())
                .all()
            )
            return [WorkoutSession.model_validate(row) for row in rows]

    def create_workout_session(self, trainer_id: str, session: NewWorkoutSession) -> WorkoutSession:
        with session_scope(self._session_factory) as db:
            row = models.WorkoutSession(trainer_id=trainer_id, **session.model_dump())
            db.add(row)
            db.flush()
            db.refresh(row)
            return WorkoutSession.model_validate(row)

    def delete_workout_plan(self, plan_id: str) -> None:
        with session_scope(self._session_factory) as db:
            row = db.query(models.WorkoutPlan).filter(models.WorkoutPlan.id == plan_id).first()
            if row is None:
                raise NotFoundError("Workout plan", plan_id)
            db.delete(row)
        logger.info(f"Workout plan deleted: {plan_id}")
