"""
End-to-end tests over the HTTP surface with the local demo dataset.
"""
from types import SimpleNamespace

import stripe

from core.container import AUTH_SERVICE
from schemas import SignUpData
from services.demo_data import DEMO_STUDENT_ID, DEMO_TRAINER_ID

PASSWORD = "Str0ng!Pass"


def _register(client, email="newcoach@example.com", role="trainer", **extra):
    response = client.post("/v1/auth/register", json={
        "email": email, "password": PASSWORD, "first_name": "Rita", "last_name": "Lima",
        "role": role, **extra,
    })
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["data_source"] == "local"

    def test_ping(self, client):
        assert client.get("/ping").json() == {"pong": True}


class TestAuthEndpoints:

    def test_register_then_login(self, client):
        headers = _register(client)
        me = client.get("/v1/auth/me", headers=headers).json()
        assert me["profile"]["role"] == "trainer"
        assert me["trainer_profile"]["plan"] == "free"

        response = client.post("/v1/auth/login", json={"email": "newcoach@example.com", "password": PASSWORD})
        assert response.status_code == 200
        assert response.json()["user"]["email"] == "newcoach@example.com"

    def test_weak_password_is_rejected(self, client):
        response = client.post("/v1/auth/register", json={
            "email": "weak@example.com", "password": "abc", "first_name": "W", "last_name": "K",
        })
        assert response.status_code == 422

    def test_duplicate_email(self, client):
        _register(client)
        response = client.post("/v1/auth/register", json={
            "email": "NewCoach@example.com", "password": PASSWORD, "first_name": "R", "last_name": "L",
        })
        assert response.status_code == 409
        assert response.json()["error_code"] == "USER_EXISTS"

    def test_student_registration_checks_the_trainer(self, client):
        response = client.post("/v1/auth/register", json={
            "email": "orphan@example.com", "password": PASSWORD, "first_name": "O", "last_name": "P",
            "role": "student", "trainer_id": "nobody",
        })
        assert response.status_code == 404

    def test_student_registration_respects_trainer_plan_limit(self, client, local_container):
        trainer_id = client.get("/v1/auth/me", headers=_register(client)).json()["profile"]["id"]
        auth = local_container.resolve(AUTH_SERVICE)
        for n in range(3):
            auth.sign_up(f"pupil{n}@example.com", PASSWORD,
                         SignUpData(first_name="P", last_name=str(n), role="student", trainer_id=trainer_id))
        response = client.post("/v1/auth/register", json={
            "email": "pupil3@example.com", "password": PASSWORD, "first_name": "P", "last_name": "3",
            "role": "student", "trainer_id": trainer_id,
        })
        assert response.status_code == 403
        assert response.json()["error_code"] == "PLAN_LIMIT_EXCEEDED"

    def test_wrong_password_is_logged(self, client, admin_headers):
        response = client.post("/v1/auth/login", json={"email": "trainer@fitcoach.com", "password": "nope"})
        assert response.status_code == 401

        logs = client.get("/v1/admin/security/logs?event_type=failed_login", headers=admin_headers).json()
        assert len(logs) == 1
        assert logs[0]["details"]["email"] == "trainer@fitcoach.com"

    def test_demo_password_login(self, client):
        response = client.post("/v1/auth/login", json={"email": "trainer@fitcoach.com", "password": "trainer123"})
        assert response.status_code == 200
        assert response.json()["user"]["id"] == DEMO_TRAINER_ID

    def test_missing_token(self, client):
        assert client.get("/v1/trainer/students").status_code == 401

    def test_session_endpoint(self, client, trainer_headers):
        response = client.get("/v1/auth/session", headers=trainer_headers)
        assert response.status_code == 200
        assert response.json()["user"]["id"] == DEMO_TRAINER_ID

    def test_password_strength(self, client):
        body = client.post("/v1/auth/password-strength", json={"password": PASSWORD}).json()
        assert body["is_strong"] is True
        assert body["requirements"]

    def test_login_rate_limit(self, client):
        credentials = {"email": "trainer@fitcoach.com", "password": "wrong"}
        statuses = [client.post("/v1/auth/login", json=credentials).status_code for _ in range(11)]
        assert statuses[:10] == [401] * 10
        assert statuses[10] == 429

        response = client.post("/v1/auth/login", json=credentials)
        assert response.status_code == 429
        assert response.headers["X-RateLimit-Limit"] == "10"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert int(response.headers["Retry-After"]) >= 1

    def test_rate_limit_headers_on_success(self, client):
        response = client.get("/v1/billing/plans")
        assert response.headers["X-RateLimit-Limit"] == "100"
        assert response.headers["X-RateLimit-Remaining"] == "99"


class TestRoles:

    def test_student_cannot_manage_roster(self, client, student_headers):
        assert client.get("/v1/trainer/students", headers=student_headers).status_code == 403

    def test_trainer_is_not_admin(self, client, trainer_headers):
        assert client.get("/v1/admin/trainers", headers=trainer_headers).status_code == 403


class TestTrainerEndpoints:

    def test_demo_dashboard(self, client, trainer_headers):
        stats = client.get("/v1/trainer/dashboard", headers=trainer_headers).json()
        assert stats["total_students"] == 4
        assert stats["plan"] == "pro"
        assert stats["max_students"] == 15

    def test_free_plan_student_limit(self, client):
        headers = _register(client)
        for n in range(3):
            response = client.post("/v1/trainer/students", headers=headers, json={
                "email": f"s{n}@example.com", "first_name": "S", "last_name": str(n),
            })
            assert response.status_code == 201
        response = client.post("/v1/trainer/students", headers=headers, json={
            "email": "s3@example.com", "first_name": "S", "last_name": "3",
        })
        assert response.status_code == 403
        assert response.json()["error_code"] == "PLAN_LIMIT_EXCEEDED"

        limits = client.get("/v1/billing/limits", headers=headers).json()
        assert limits["current_students"] == 3
        assert limits["can_add_students"] is False


class TestWorkoutEndpoints:

    def test_assign_template(self, client, trainer_headers):
        response = client.post("/v1/workouts/plans/workout_plan_1/assign",
                               headers=trainer_headers, json={"student_id": "student_1"})
        assert response.status_code == 201
        assert response.json()["student_id"] == "student_1"
        assert response.json()["is_template"] is False

    def test_students_see_only_their_plans(self, client, student_headers):
        assert client.get("/v1/workouts/plans/workout_plan_2", headers=student_headers).status_code == 200
        assert client.get("/v1/workouts/plans/workout_plan_1", headers=student_headers).status_code == 403
        plans = client.get("/v1/workouts/plans", headers=student_headers).json()
        assert {p["student_id"] for p in plans} == {DEMO_STUDENT_ID}

    def test_other_trainer_cannot_touch_plan(self, client):
        headers = _register(client)
        assert client.delete("/v1/workouts/plans/workout_plan_1", headers=headers).status_code == 403

    def test_delete_plan(self, client, trainer_headers):
        assert client.delete("/v1/workouts/plans/workout_plan_1", headers=trainer_headers).status_code == 204
        assert client.get("/v1/workouts/plans/workout_plan_1", headers=trainer_headers).status_code == 404

    def test_exercise_library(self, client, student_headers):
        exercises = client.get("/v1/workouts/exercises", headers=student_headers).json()
        assert len(exercises) == 6


class TestAIEndpoints:

    def test_credits_run_out(self, client, trainer_headers):
        body = {"student_id": DEMO_STUDENT_ID, "target_calories": 2000}
        for _ in range(5):
            assert client.post("/v1/ai/diet-plans", headers=trainer_headers, json=body).status_code == 201

        response = client.post("/v1/ai/diet-plans", headers=trainer_headers, json=body)
        assert response.status_code == 402
        assert response.json()["error_code"] == "INSUFFICIENT_CREDITS"
        assert "required: 5, available: 0" in response.json()["detail"]

        assert client.get("/v1/ai/credits", headers=trainer_headers).json() == {
            "trainer_id": DEMO_TRAINER_ID, "balance": 0,
        }
        can_use = client.get("/v1/ai/can-use", headers=trainer_headers).json()
        assert can_use["can_use_diet_plan"] is False

    def test_diet_plan_for_someone_elses_student(self, client):
        headers = _register(client)
        response = client.post("/v1/ai/diet-plans", headers=headers,
                               json={"student_id": DEMO_STUDENT_ID, "target_calories": 2000})
        assert response.status_code == 403

    def test_diet_plans_are_private_to_their_trainer(self, client, trainer_headers):
        assert client.get("/v1/ai/diet-plans/diet_plan_1", headers=trainer_headers).status_code == 200
        headers = _register(client)
        assert client.get("/v1/ai/diet-plans/diet_plan_1", headers=headers).status_code == 404

    def test_workout_suggestion(self, client, trainer_headers):
        response = client.post("/v1/ai/workout-suggestions", headers=trainer_headers, json={
            "difficulty_level": 2, "duration_minutes": 45, "muscle_groups": ["legs", "back"],
        })
        assert response.status_code == 201
        assert len(response.json()["exercises"]) == 2
        assert client.get("/v1/ai/credits", headers=trainer_headers).json()["balance"] == 22

    def test_spent_credits_show_in_every_view(self, client, trainer_headers, admin_headers):
        def views():
            return (
                client.get("/v1/trainer/dashboard", headers=trainer_headers).json()["ai_credits"],
                client.get("/v1/billing/limits", headers=trainer_headers).json()["ai_credits"],
                client.get("/v1/auth/me", headers=trainer_headers).json()["trainer_profile"]["ai_credits"],
                client.get("/v1/admin/trainers", headers=admin_headers).json()[0]["ai_credits"],
            )

        assert views() == (25, 25, 25, 25)
        client.post("/v1/ai/workout-suggestions", headers=trainer_headers, json={
            "difficulty_level": 1, "duration_minutes": 30, "muscle_groups": ["legs"],
        })
        assert views() == (22, 22, 22, 22)


class TestBillingEndpoints:

    def test_plans_are_public(self, client):
        plans = client.get("/v1/billing/plans").json()
        assert [p["plan"] for p in plans] == ["free", "pro", "elite"]
        assert plans[0]["monthly_price_display"] == "R$ 0,00"

    def test_demo_limits(self, client, trainer_headers):
        limits = client.get("/v1/billing/limits", headers=trainer_headers).json()
        assert limits["plan"] == "pro"
        assert limits["current_students"] == 4


class TestAdminEndpoints:

    def test_grant_credits(self, client, admin_headers, trainer_headers):
        response = client.post(f"/v1/admin/trainers/{DEMO_TRAINER_ID}/credits",
                               headers=admin_headers, json={"amount": 50})
        assert response.json() == {"trainer_id": DEMO_TRAINER_ID, "balance": 75}
        transactions = client.get("/v1/ai/credits/transactions", headers=trainer_headers).json()
        assert any(t["type"] == "bonus" and t["amount"] == 50 for t in transactions)

    def test_grant_credits_to_unknown_trainer(self, client, admin_headers):
        response = client.post("/v1/admin/trainers/nobody/credits", headers=admin_headers, json={"amount": 5})
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_change_plan(self, client, admin_headers):
        response = client.put(f"/v1/admin/trainers/{DEMO_TRAINER_ID}/plan",
                              headers=admin_headers, json={"plan": "elite"})
        assert response.status_code == 200
        assert response.json()["max_students"] == 50
        trainers = client.get("/v1/admin/trainers?plan=elite", headers=admin_headers).json()
        assert [t["id"] for t in trainers] == [DEMO_TRAINER_ID]

    def test_data_variation(self, client, admin_headers, trainer_headers):
        response = client.post("/v1/admin/local-data/variation",
                               headers=admin_headers, json={"variation": "empty"})
        assert response.status_code == 200
        assert response.json()["counts"]["sessions"] == 0
        assert client.get("/v1/trainer/sessions/upcoming", headers=trainer_headers).json() == []

    def test_demo_credentials(self, client, admin_headers):
        creds = client.get("/v1/admin/local-data/demo-credentials", headers=admin_headers).json()
        assert creds["trainer"]["email"] == "trainer@fitcoach.com"

    def test_export_hides_password_hashes(self, client, admin_headers):
        exported = client.get("/v1/admin/local-data/export", headers=admin_headers).json()
        assert exported["users"]
        assert all("password_hash" not in user for user in exported["users"])

    def test_search_matches_email(self, client, admin_headers):
        trainers = client.get("/v1/admin/trainers?search=TRAINER@fitcoach", headers=admin_headers).json()
        assert [t["id"] for t in trainers] == [DEMO_TRAINER_ID]
        assert client.get("/v1/admin/trainers?search=@gym.com", headers=admin_headers).json() == []

    def test_payments_and_stats(self, client, admin_headers):
        payments = client.get("/v1/admin/payments", headers=admin_headers).json()
        assert len(payments) == 3
        assert payments[0]["created_at"] > payments[-1]["created_at"]
        assert {p["trainer_name"] for p in payments} == {"Personal Trainer"}
        succeeded = client.get("/v1/admin/payments?status=succeeded", headers=admin_headers).json()
        assert [p["platform_fee"] for p in succeeded] == [150, 150]

        stats = client.get("/v1/admin/payments/stats", headers=admin_headers).json()
        assert stats["total_payments"] == 3
        assert stats["succeeded_amount"] == 30000
        assert stats["pending_payments"] == 1
        assert stats["platform_fees"] == 300

    def test_payments_need_admin(self, client, trainer_headers):
        assert client.get("/v1/admin/payments", headers=trainer_headers).status_code == 403

    def test_update_setting(self, client, admin_headers):
        settings = {s["key"]: s["value"] for s in client.get("/v1/admin/settings", headers=admin_headers).json()}
        assert settings["maintenance_mode"] == "false"
        assert settings["support_email"] == "suporte@fitcoach.com.br"

        response = client.put("/v1/admin/settings/maintenance_mode", headers=admin_headers, json={"value": "true"})
        assert response.status_code == 200
        assert response.json()["value"] == "true"
        settings = {s["key"]: s["value"] for s in client.get("/v1/admin/settings", headers=admin_headers).json()}
        assert settings["maintenance_mode"] == "true"

        response = client.put("/v1/admin/settings/platform_commission", headers=admin_headers, json={"value": "50"})
        assert response.status_code == 404

    def test_platform_report_follows_new_students(self, client, admin_headers, trainer_headers):
        report = client.get("/v1/admin/reports", headers=admin_headers).json()
        assert report["total_trainers"] == 1
        assert report["plan_distribution"] == {"pro": 1}
        assert report["total_revenue"] == 30000
        assert sum(m["revenue"] for m in report["monthly_revenue"]) == 30000

        client.post("/v1/trainer/students", headers=trainer_headers,
                    json={"email": "nova@example.com", "first_name": "Nova", "last_name": "Aluna"})
        refreshed = client.get("/v1/admin/reports", headers=admin_headers).json()
        assert refreshed["total_students"] == report["total_students"] + 1


class TestPrivacyEndpoints:

    def test_consent_and_export(self, client, student_headers):
        response = client.post("/v1/privacy/consents", headers=student_headers,
                               json={"consent_type": "data_processing", "consented": True})
        assert response.status_code == 201

        export = client.post("/v1/privacy/export", headers=student_headers)
        assert export.status_code == 202
        assert export.json()["status"] == "completed"

        data = client.get("/v1/privacy/export/data", headers=student_headers).json()
        assert data["profile"]["id"] == DEMO_STUDENT_ID
        assert [c["consent_type"] for c in data["consents"]] == ["data_processing"]
        assert len(data["data_requests"]["exports"]) == 1

    def test_deletion_request(self, client, student_headers):
        response = client.post("/v1/privacy/deletion", headers=student_headers, json={"reason": "moving"})
        assert response.status_code == 202
        assert response.json()["status"] == "pending"

        dashboard = client.get("/v1/privacy/dashboard", headers=student_headers).json()
        assert dashboard["pending_data_requests"] == 1


class TestRemoteBackend:

    def test_quick_login_needs_local_data(self, remote_client):
        response = remote_client.post("/v1/auth/quick-login/trainer")
        assert response.status_code == 400
        assert response.json()["error_code"] == "UNSUPPORTED_OPERATION"

    def test_register_and_dashboard(self, remote_client):
        headers = _register(remote_client)
        stats = remote_client.get("/v1/trainer/dashboard", headers=headers).json()
        assert stats["total_students"] == 0
        assert stats["ai_credits"] == 10

    def test_health_reports_remote(self, remote_client):
        assert remote_client.get("/health").json()["status"] == "healthy"

    def test_stripe_checkout_webhook_upgrades_plan(self, remote_client, monkeypatch):
        headers = _register(remote_client)
        trainer_id = remote_client.get("/v1/auth/me", headers=headers).json()["profile"]["id"]
        assert remote_client.get("/v1/billing/limits", headers=headers).json()["plan"] == "free"

        monkeypatch.setattr("services.payment_service.settings.STRIPE_SECRET_KEY", "sk_test_dummy")
        monkeypatch.setattr("services.payment_service.settings.STRIPE_WEBHOOK_SECRET", "whsec_test")
        event = SimpleNamespace(
            id="evt_api_1", type="checkout.session.completed", created=1700000000,
            data=SimpleNamespace(object=SimpleNamespace(
                client_reference_id=trainer_id, customer="cus_api", subscription="sub_api",
                metadata={"trainer_id": trainer_id, "plan": "elite"},
            )),
        )
        monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig_header, secret: event)

        response = remote_client.post("/v1/billing/webhooks/stripe", content=b"{}",
                                      headers={"Stripe-Signature": "t=1,v1=abc"})
        assert response.status_code == 200
        assert response.json()["result"]["plan"] == "elite"

        limits = remote_client.get("/v1/billing/limits", headers=headers).json()
        assert limits["plan"] == "elite"
        assert limits["max_students"] == 50
        assert remote_client.get("/v1/billing/subscription", headers=headers).json()["status"] == "active"

    def test_stripe_webhook_needs_signature(self, remote_client):
        response = remote_client.post("/v1/billing/webhooks/stripe", content=b"{}")
        assert response.status_code == 400


def test_stripe_webhook_is_refused_with_local_data(client):
    response = client.post("/v1/billing/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"})
    assert response.status_code == 400
    assert response.json()["error_code"] == "UNSUPPORTED_OPERATION"
