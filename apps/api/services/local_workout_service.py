"""
Workout service over the local JSON blob.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from core.exceptions import NotFoundError
from schemas import (
    Exercise,
    NewExercise,
    NewWorkoutPlan,
    NewWorkoutSession,
    WorkoutPlan,
    WorkoutSession,
)
from services.local_store import LocalStorageService, new_id, now_iso
from services.workout_service import IWorkoutService

logger = logging.getLogger(__name__)


def _enrich_plan(data: Dict[str, Any], plan: Dict[str, Any]) -> WorkoutPlan:
    """Join a plan record with its exercises (in workout order) and their library entries."""
    items = sorted(
        LocalStorageService.where(data, "workout_plan_exercises", workout_plan_id=plan["id"]),
        key=lambda e: e["order_in_workout"],
    )
    exercises = [
        {**item, "exercise": LocalStorageService.find(data, "exercises", item["exercise_id"])}
        for item in items
    ]
    return WorkoutPlan.model_validate({**plan, "exercises": exercises})


def _newest_first(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(records, key=lambda r: r.get("created_at") or "", reverse=True)


class LocalStorageWorkoutService(IWorkoutService):
    def __init__(self, store: LocalStorageService):
        self.store = store

    def get_exercises(self, trainer_id: Optional[str] = None) -> List[Exercise]:
        data = self.store.snapshot()
        visible = [
            e for e in data["exercises"]
            if e.get("is_public") or (trainer_id and e.get("trainer_id") == trainer_id)
        ]
        return [Exercise.model_validate(e) for e in sorted(visible, key=lambda e: e["name"])]

    def create_exercise(self, trainer_id: str, exercise: NewExercise) -> Exercise:
        record = {
            "id": new_id(),
            "trainer_id": trainer_id,
            "created_at": now_iso(),
            **exercise.model_dump(),
        }
        with self.store.transaction() as data:
            data["exercises"].append(record)
        logger.info(f"Exercise created: {record['id']} by trainer {trainer_id}")
        return Exercise.model_validate(record)

    def get_workout_plans(self, trainer_id: str) -> List[WorkoutPlan]:
        data = self.store.snapshot()
        plans = self.store.where(data, "workout_plans", trainer_id=trainer_id)
        return [_enrich_plan(data, p) for p in _newest_first(plans)]

    def get_student_workout_plans(self, student_id: str) -> List[WorkoutPlan]:
        data = self.store.snapshot()
        plans = self.store.where(data, "workout_plans", student_id=student_id)
        return [_enrich_plan(data, p) for p in _newest_first(plans)]

    def get_workout_plan(self, plan_id: str) -> Optional[WorkoutPlan]:
        data = self.store.snapshot()
        plan = self.store.find(data, "workout_plans", plan_id)
        return _enrich_plan(data, plan) if plan else None

    def create_workout_plan(self, trainer_id: str, plan: NewWorkoutPlan) -> WorkoutPlan:
        now = now_iso()
        record = {
            "id": new_id(),
            "trainer_id": trainer_id,
            "created_at": now,
            "updated_at": now,
            **plan.model_dump(exclude={"exercises"}),
        }
        with self.store.transaction() as data:
            for position, item in enumerate(plan.exercises, start=1):
                self.store.require(data, "exercises", item.exercise_id, "Exercise")
                fields = item.model_dump()
                fields["order_in_workout"] = item.order_in_workout or position
                data["workout_plan_exercises"].append({
                    "id": new_id(),
                    "workout_plan_id": record["id"],
                    **fields,
                })
            data["workout_plans"].append(record)
            result = _enrich_plan(data, record)
        logger.info(f"Workout plan created: {record['id']} ({len(plan.exercises)} exercises)")
        return result

    def assign_workout_to_student(self, template_id: str, student_id: str, trainer_id: str) -> WorkoutPlan:
        now = now_iso()
        with self.store.transaction() as data:
            template = self.store.require(data, "workout_plans", template_id, "Workout plan")
            copy = {
                **template,
                "id": new_id(),
                "trainer_id": trainer_id,
                "student_id": student_id,
                "is_template": False,
                "muscle_groups": list(template.get("muscle_groups") or []),
                "created_at": now,
                "updated_at": now,
            }
            for item in self.store.where(data, "workout_plan_exercises", workout_plan_id=template_id):
                data["workout_plan_exercises"].append({**item, "id": new_id(), "workout_plan_id": copy["id"]})
            data["workout_plans"].append(copy)
            result = _enrich_plan(data, copy)
        logger.info(f"Workout plan {template_id} assigned to student {student_id} as {copy['id']}")
        return result

    def get_workout_sessions(self, trainer_id: str) -> List[WorkoutSession]:
        data = self.store.snapshot()
        sessions = self.store.where(data, "workout_sessions", trainer_id=trainer_id)
        return [WorkoutSession.model_validate(s) for s in _newest_first(sessions)]

    def create_workout_session(self, trainer_id: str, session: NewWorkoutSession) -> WorkoutSession:
        record = {
            "id": new_id(),
            "trainer_id": trainer_id,
            "created_at": now_iso(),
            **session.model_dump(mode="json"),
        }
        with self.store.transaction() as data:
            data["workout_sessions"].append(record)
        return WorkoutSession.model_validate(record)

    def delete_workout_plan(self, plan_id: str) -> None:
        with self.store.transaction() as data:
            plan = self.store.require(data, "workout_plans", plan_id, "Workout plan")
            data["workout_plans"].remove(plan)
            data["workout_plan_exercises"] = [
                e for e in data["workout_plan_exercises"] if e["workout_plan_id"] != plan_id
            ]
        logger.info(f"Workout plan deleted: {plan_id}")
