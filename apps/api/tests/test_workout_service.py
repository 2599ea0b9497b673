"""
Exercise library and workout plans, run against both backends.
"""
import pytest

from core.container import AUTH_SERVICE, WORKOUT_SERVICE
from core.exceptions import NotFoundError
from schemas import NewExercise, NewWorkoutPlan, NewWorkoutPlanExercise, NewWorkoutSession, SignUpData

PASSWORD = "Str0ng!Pass"


@pytest.fixture(params=["local", "remote"])
def backend(request):
    return request.getfixturevalue(f"{request.param}_container")


@pytest.fixture
def people(backend):
    auth = backend.resolve(AUTH_SERVICE)
    trainer = auth.sign_up("coach@example.com", PASSWORD,
                           SignUpData(first_name="Rita", last_name="Lima", role="trainer")).user.id
    other = auth.sign_up("rival@example.com", PASSWORD,
                         SignUpData(first_name="Otto", last_name="Reis", role="trainer")).user.id
    student = auth.sign_up("pupil@example.com", PASSWORD,
                           SignUpData(first_name="Leo", last_name="Dias", role="student",
                                      trainer_id=trainer)).user.id
    return trainer, other, student


@pytest.fixture
def workouts(backend):
    return backend.resolve(WORKOUT_SERVICE)


def _exercise(workouts, trainer_id, name, public=False):
    return workouts.create_exercise(
        trainer_id, NewExercise(name=name, muscle_groups=["legs"], is_public=public),
    )


class TestExercises:

    def test_visibility_is_public_plus_own(self, workouts, people):
        trainer, other, _ = people
        _exercise(workouts, trainer, "Zercher Squat")
        _exercise(workouts, other, "Secret Lunge")
        _exercise(workouts, other, "Air Squat", public=True)

        mine = {e.name for e in workouts.get_exercises(trainer)}
        assert "Zercher Squat" in mine
        assert "Air Squat" in mine
        assert "Secret Lunge" not in mine

        anonymous = {e.name for e in workouts.get_exercises()}
        assert "Air Squat" in anonymous
        assert "Zercher Squat" not in anonymous

    def test_sorted_by_name(self, workouts, people):
        trainer, _, _ = people
        _exercise(workouts, trainer, "Bb Row")
        _exercise(workouts, trainer, "Aa Press")
        names = [e.name for e in workouts.get_exercises(trainer)]
        assert names == sorted(names)


class TestPlans:

    def test_create_plan_orders_exercises(self, workouts, people):
        trainer, _, _ = people
        first = _exercise(workouts, trainer, "Front Squat")
        second = _exercise(workouts, trainer, "Deadlift")
        plan = workouts.create_workout_plan(trainer, NewWorkoutPlan(
            name="Leg Day",
            exercises=[
                NewWorkoutPlanExercise(exercise_id=first.id),
                NewWorkoutPlanExercise(exercise_id=second.id, target_sets=5),
            ],
        ))

        assert plan.is_template is True
        assert [e.order_in_workout for e in plan.exercises] == [1, 2]
        assert plan.exercises[0].exercise.name == "Front Squat"
        assert plan.exercises[1].target_sets == 5
        assert workouts.get_workout_plan(plan.id).name == "Leg Day"

    def test_unknown_exercise_creates_nothing(self, workouts, people):
        trainer, _, _ = people
        with pytest.raises(NotFoundError):
            workouts.create_workout_plan(trainer, NewWorkoutPlan(
                name="Broken", exercises=[NewWorkoutPlanExercise(exercise_id="missing")],
            ))
        assert workouts.get_workout_plans(trainer) == []

    def test_assign_copies_template(self, workouts, people):
        trainer, _, student = people
        exercise = _exercise(workouts, trainer, "Front Squat")
        template = workouts.create_workout_plan(trainer, NewWorkoutPlan(
            name="Leg Day", muscle_groups=["legs"],
            exercises=[NewWorkoutPlanExercise(exercise_id=exercise.id)],
        ))

        assigned = workouts.assign_workout_to_student(template.id, student, trainer)

        assert assigned.id != template.id
        assert assigned.student_id == student
        assert assigned.is_template is False
        assert [e.exercise_id for e in assigned.exercises] == [exercise.id]
        assert workouts.get_workout_plan(template.id).is_template is True
        assert [p.id for p in workouts.get_student_workout_plans(student)] == [assigned.id]
        assert {p.id for p in workouts.get_workout_plans(trainer)} == {template.id, assigned.id}

    def test_assign_unknown_template(self, workouts, people):
        trainer, _, student = people
        with pytest.raises(NotFoundError):
            workouts.assign_workout_to_student("missing", student, trainer)

    def test_delete_plan(self, workouts, people):
        trainer, _, _ = people
        exercise = _exercise(workouts, trainer, "Front Squat")
        plan = workouts.create_workout_plan(trainer, NewWorkoutPlan(
            name="Leg Day", exercises=[NewWorkoutPlanExercise(exercise_id=exercise.id)],
        ))
        workouts.delete_workout_plan(plan.id)
        assert workouts.get_workout_plan(plan.id) is None
        with pytest.raises(NotFoundError):
            workouts.delete_workout_plan(plan.id)


class TestSessions:

    def test_log_session(self, workouts, people):
        trainer, other, student = people
        logged = workouts.create_workout_session(trainer, NewWorkoutSession(
            student_id=student, status="completed", duration_minutes=50, rating=4,
        ))
        assert logged.trainer_id == trainer
        assert [s.id for s in workouts.get_workout_sessions(trainer)] == [logged.id]
        assert workouts.get_workout_sessions(other) == []


def test_demo_library_is_public(local_container):
    exercises = local_container.resolve(WORKOUT_SERVICE).get_exercises()
    assert len(exercises) == 6
    assert all(e.is_public for e in exercises)
