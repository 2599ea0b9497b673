"""
Credit-gated AI generation, run against both backends.

A generation reserves its cost up front. Short balances are rejected
without side effects, and a failed generation is refunded.
"""
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.orm import sessionmaker

from core.container import AI_SERVICE, AUTH_SERVICE, PAYMENT_SERVICE, container
from core.database import build_engine, init_db
from core.modules import setup_modules
from core.exceptions import InsufficientCreditsError, NotFoundError, ProviderError
from schemas import GenerateDietPlanRequest, GenerateWorkoutRequest, SignUpData

PASSWORD = "Str0ng!Pass"


@pytest.fixture(params=["local", "remote"])
def backend(request):
    return request.getfixturevalue(f"{request.param}_container")


@pytest.fixture
def accounts(backend):
    """A free-plan trainer (10 credits) with one student."""
    auth = backend.resolve(AUTH_SERVICE)
    trainer = auth.sign_up("coach@example.com", PASSWORD,
                           SignUpData(first_name="Rita", last_name="Lima", role="trainer"))
    student = auth.sign_up("pupil@example.com", PASSWORD,
                           SignUpData(first_name="Leo", last_name="Dias", role="student",
                                      trainer_id=trainer.user.id))
    return trainer.user.id, student.user.id


def _diet_request(student_id):
    return GenerateDietPlanRequest(student_id=student_id, target_calories=2000, duration_days=7)


def _workout_request():
    return GenerateWorkoutRequest(difficulty_level=2, duration_minutes=45, muscle_groups=["legs"])


class FailingGenerator:
    def diet_meals(self, request):
        raise RuntimeError("model overloaded")

    def workout_exercises(self, request):
        raise RuntimeError("model overloaded")


class TestReservation:

    def test_short_balance_is_rejected_without_side_effects(self, backend, accounts):
        trainer_id, student_id = accounts
        ai = backend.resolve(AI_SERVICE)
        ai.deduct_credits(trainer_id, 6, "setup")
        assert ai.get_credit_balance(trainer_id) == 4
        ledger_before = len(ai.get_credit_transactions(trainer_id))

        with pytest.raises(InsufficientCreditsError) as exc:
            ai.generate_diet_plan(trainer_id, _diet_request(student_id))

        assert exc.value.required == 5
        assert exc.value.available == 4
        assert exc.value.status_code == 402
        assert ai.get_credit_balance(trainer_id) == 4
        assert len(ai.get_credit_transactions(trainer_id)) == ledger_before
        assert ai.get_diet_plans(trainer_id) == []
        assert ai.get_ai_requests(trainer_id) == []

    def test_elite_trainer_pays_five_for_a_diet_plan(self, backend, accounts):
        trainer_id, student_id = accounts
        backend.resolve(PAYMENT_SERVICE).update_trainer_plan(trainer_id, "elite")
        ai = backend.resolve(AI_SERVICE)
        assert ai.get_credit_balance(trainer_id) == 500

        plan = ai.generate_diet_plan(trainer_id, _diet_request(student_id))

        assert ai.get_credit_balance(trainer_id) == 495
        usage = [t for t in ai.get_credit_transactions(trainer_id) if t.type == "usage"]
        assert len(usage) == 1
        assert usage[0].amount == -5
        assert [p.id for p in ai.get_diet_plans(trainer_id)] == [plan.id]
        assert ai.get_diet_plan(plan.id).target_calories == 2000

        requests = ai.get_ai_requests(trainer_id)
        assert len(requests) == 1
        assert requests[0].cost_credits == 5
        assert requests[0].id == usage[0].ai_request_id

    def test_workout_suggestion_costs_three(self, backend, accounts):
        trainer_id, _ = accounts
        ai = backend.resolve(AI_SERVICE)
        suggestion = ai.generate_workout_suggestion(trainer_id, _workout_request())
        assert ai.get_credit_balance(trainer_id) == 7
        assert suggestion.estimated_duration_minutes == 45
        assert suggestion.exercises
        assert [s.id for s in ai.get_workout_suggestions(trainer_id)] == [suggestion.id]

    def test_exact_balance_can_be_spent(self, backend, accounts):
        trainer_id, student_id = accounts
        ai = backend.resolve(AI_SERVICE)
        ai.deduct_credits(trainer_id, 5, "setup")
        ai.generate_diet_plan(trainer_id, _diet_request(student_id))
        assert ai.get_credit_balance(trainer_id) == 0

    def test_unknown_trainer_cannot_reserve(self, backend):
        ai = backend.resolve(AI_SERVICE)
        with pytest.raises(NotFoundError):
            ai.deduct_credits("nobody", 5, "r1")
        assert ai.get_credit_balance("nobody") == 0


class TestRefund:

    def test_failed_generation_is_refunded(self, backend, accounts):
        trainer_id, student_id = accounts
        ai = backend.resolve(AI_SERVICE)
        ai.generator = FailingGenerator()

        with pytest.raises(ProviderError) as exc:
            ai.generate_diet_plan(trainer_id, _diet_request(student_id))

        assert exc.value.status_code == 502
        assert ai.get_credit_balance(trainer_id) == 10
        amounts = sorted(t.amount for t in ai.get_credit_transactions(trainer_id))
        assert amounts == [-5, 5]
        refund = next(t for t in ai.get_credit_transactions(trainer_id) if t.type == "refund")
        usage = next(t for t in ai.get_credit_transactions(trainer_id) if t.type == "usage")
        assert refund.ai_request_id == usage.ai_request_id
        assert ai.get_diet_plans(trainer_id) == []

    def test_failed_suggestion_is_refunded(self, backend, accounts):
        trainer_id, _ = accounts
        ai = backend.resolve(AI_SERVICE)
        ai.generator = FailingGenerator()
        with pytest.raises(ProviderError):
            ai.generate_workout_suggestion(trainer_id, _workout_request())
        assert ai.get_credit_balance(trainer_id) == 10


class TestLedger:

    def test_add_credits_appends_purchase(self, backend, accounts):
        trainer_id, _ = accounts
        ai = backend.resolve(AI_SERVICE)
        assert ai.add_credits(trainer_id, 50, description="Top-up") == 60
        (purchase,) = ai.get_credit_transactions(trainer_id)
        assert purchase.type == "purchase"
        assert purchase.amount == 50

    def test_add_credits_to_unknown_trainer(self, backend):
        with pytest.raises(NotFoundError):
            backend.resolve(AI_SERVICE).add_credits("nobody", 5)

    def test_usage_stats(self, backend, accounts):
        trainer_id, student_id = accounts
        ai = backend.resolve(AI_SERVICE)
        ai.generate_workout_suggestion(trainer_id, _workout_request())
        ai.generate_workout_suggestion(trainer_id, _workout_request())

        stats = ai.get_ai_usage_stats(trainer_id)
        assert stats.total_requests == 2
        assert stats.credits_used == 6
        assert stats.credits_remaining == 4
        assert stats.most_used_feature == "workout_suggestion"

    def test_usage_stats_without_requests(self, backend, accounts):
        trainer_id, _ = accounts
        stats = backend.resolve(AI_SERVICE).get_ai_usage_stats(trainer_id)
        assert stats.total_requests == 0
        assert stats.most_used_feature == "none"
        assert stats.credits_remaining == 10


@pytest.fixture(params=["local", "remote"])
def threaded_backend(request, tmp_path):
    """A backend that tolerates concurrent callers: the remote one gets a file database."""
    container.clear()
    engine = None
    if request.param == "local":
        setup_modules(container, "local", storage_dir=str(tmp_path / "app"))
    else:
        engine = build_engine(f"sqlite:///{tmp_path / 'fitcoach.db'}")
        init_db(engine)
        factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
        setup_modules(container, "remote", session_factory=factory)
    yield container
    container.clear()
    if engine is not None:
        engine.dispose()


class TestConcurrentReservations:

    def test_parallel_generations_never_overspend(self, threaded_backend):
        auth = threaded_backend.resolve(AUTH_SERVICE)
        trainer_id = auth.sign_up("coach@example.com", PASSWORD,
                                  SignUpData(first_name="Rita", last_name="Lima", role="trainer")).user.id
        student_id = auth.sign_up("pupil@example.com", PASSWORD,
                                  SignUpData(first_name="Leo", last_name="Dias", role="student",
                                             trainer_id=trainer_id)).user.id
        ai = threaded_backend.resolve(AI_SERVICE)

        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(ai.generate_diet_plan, trainer_id, _diet_request(student_id))
                       for _ in range(8)]
            errors = [f.exception() for f in futures]

        # 10 credits cover exactly two plans at 5 each
        assert errors.count(None) == 2
        assert all(isinstance(e, InsufficientCreditsError) for e in errors if e is not None)
        assert ai.get_credit_balance(trainer_id) == 0
        usage = [t for t in ai.get_credit_transactions(trainer_id) if t.type == "usage"]
        assert len(usage) == 2
        assert len(ai.get_diet_plans(trainer_id)) == 2
