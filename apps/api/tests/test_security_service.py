"""
Rate limiters, LGPD consent and privacy records, security logs and the
compliance report.
"""
import pytest
from redis.exceptions import RedisError

from core.container import AUTH_SERVICE, SECURITY_SERVICE
from schemas import PrivacySettingsUpdate, SignUpData
from services.security_service import (
    ENDPOINT_LIMITS,
    FixedWindowRateLimiter,
    RedisRateLimiter,
    build_compliance_report,
    compliance_score,
    user_from_identifier,
)

PASSWORD = "Str0ng!Pass"


class FakeClock:
    def __init__(self):
        self.now = 5000.0

    def __call__(self):
        return self.now


class FakePipeline:
    def __init__(self, store):
        self.store = store
        self.ops = []

    def incr(self, key):
        self.ops.append(("incr", key))

    def expire(self, key, window, nx=False):
        self.ops.append(("expire", key, window))

    def ttl(self, key):
        self.ops.append(("ttl", key))

    def get(self, key):
        self.ops.append(("get", key))

    def execute(self):
        results = []
        for op in self.ops:
            if op[0] == "incr":
                self.store[op[1]] = self.store.get(op[1], 0) + 1
                results.append(self.store[op[1]])
            elif op[0] == "expire":
                results.append(True)
            elif op[0] == "ttl":
                results.append(42)
            else:
                results.append(self.store.get(op[1]))
        return results


class FakeRedis:
    def __init__(self):
        self.store = {}

    def pipeline(self, transaction=True):
        return FakePipeline(self.store)


class BrokenRedis:
    def pipeline(self, transaction=True):
        raise RedisError("connection refused")


class TestFixedWindow:

    def test_blocks_after_limit_until_window_resets(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(limit=3, window=60, endpoint_limits={}, clock=clock)
        statuses = [limiter.hit("ip:1", "/v1/x")[0] for _ in range(4)]
        assert [s.is_blocked for s in statuses] == [False, False, False, True]
        assert statuses[2].remaining == 0

        clock.now += 60
        status, count = limiter.hit("ip:1", "/v1/x")
        assert count == 1
        assert not status.is_blocked

    def test_keys_are_per_identifier_and_endpoint(self):
        limiter = FixedWindowRateLimiter(limit=1, window=60, endpoint_limits={})
        limiter.hit("ip:1", "/v1/x")
        assert not limiter.hit("ip:2", "/v1/x")[0].is_blocked
        assert not limiter.hit("ip:1", "/v1/y")[0].is_blocked
        assert limiter.hit("ip:1", "/v1/x")[0].is_blocked

    def test_check_does_not_count(self):
        limiter = FixedWindowRateLimiter(limit=2, window=60, endpoint_limits={})
        limiter.check("ip:1", "/v1/x")
        limiter.check("ip:1", "/v1/x")
        assert limiter.check("ip:1", "/v1/x").remaining == 2
        limiter.hit("ip:1", "/v1/x")
        limiter.hit("ip:1", "/v1/x")
        assert limiter.check("ip:1", "/v1/x").is_blocked

    def test_endpoint_ceilings_match_by_prefix(self):
        limiter = FixedWindowRateLimiter(limit=100, window=60)
        assert limiter.limit_for("/v1/auth/login") == ENDPOINT_LIMITS["/v1/auth/login"]
        assert limiter.limit_for("/v1/ai/diet-plans/abc") == 20
        assert limiter.limit_for("/v1/trainer/students") == 100

    def test_reset(self):
        limiter = FixedWindowRateLimiter(limit=1, window=60, endpoint_limits={})
        limiter.hit("ip:1", "/v1/x")
        limiter.reset()
        assert limiter.check("ip:1", "/v1/x").remaining == 1


class TestRedisLimiter:

    def test_counts_in_redis(self):
        client = FakeRedis()
        limiter = RedisRateLimiter(client, limit=2, window=60, endpoint_limits={}, clock=FakeClock())
        limiter.hit("user:u1", "/v1/x")
        status, count = limiter.hit("user:u1", "/v1/x")
        assert count == 2
        assert status.reset_time == 5042.0
        assert client.store == {"rate_limit:user:u1:/v1/x": 2}
        assert limiter.check("user:u1", "/v1/x").is_blocked

    def test_falls_back_to_process_window_on_redis_errors(self):
        limiter = RedisRateLimiter(BrokenRedis(), limit=1, window=60, endpoint_limits={})
        assert not limiter.hit("ip:1", "/v1/x")[0].is_blocked
        assert limiter.hit("ip:1", "/v1/x")[0].is_blocked
        assert limiter.check("ip:1", "/v1/x").is_blocked


class TestComplianceReport:

    def test_score_formula(self):
        assert compliance_score(100, 0, 0) == 100
        assert round(compliance_score(25, 1, 2)) == 67

    def test_report_counts(self):
        report = build_compliance_report(
            "2026-01-01", "2026-01-31", total_users=4,
            consents=[("u1", "marketing", True), ("u1", "analytics", True), ("u2", "marketing", False)],
            data_requests=2, incidents=1, event_types=["login", "login", "rate_limit_exceeded"],
        )
        assert report.summary.consent_rate == 25
        assert report.summary.compliance_score == 67
        assert report.details["consents_by_type"] == {"marketing": 2, "analytics": 1}
        assert report.details["security_events_summary"] == {"login": 2, "rate_limit_exceeded": 1}

    def test_no_users_means_full_consent_rate(self):
        report = build_compliance_report("a", "b", 0, [], 0, 0, [])
        assert report.summary.consent_rate == 100
        assert report.summary.compliance_score == 100


def test_user_from_identifier():
    assert user_from_identifier("user:abc") == "abc"
    assert user_from_identifier("ip:127.0.0.1") is None


@pytest.fixture(params=["local", "remote"])
def backend(request):
    return request.getfixturevalue(f"{request.param}_container")


@pytest.fixture
def user_id(backend):
    return backend.resolve(AUTH_SERVICE).sign_up(
        "coach@example.com", PASSWORD, SignUpData(first_name="Rita", last_name="Lima", role="trainer"),
    ).user.id


@pytest.fixture
def security(backend):
    return backend.resolve(SECURITY_SERVICE)


class TestPrivacyRecords:

    def test_consents_are_append_only(self, security, user_id):
        security.record_consent(user_id, "marketing", True, ip_address="10.0.0.1")
        security.record_consent(user_id, "marketing", False)
        consents = security.get_consents(user_id)
        assert [c.consented for c in consents] == [True, False]
        assert consents[0].version == "1.0"

    def test_privacy_settings_merge_over_defaults(self, security, user_id):
        assert security.get_privacy_settings(user_id) is None
        settings = security.update_privacy_settings(user_id, PrivacySettingsUpdate(marketing_consent=True))
        assert settings.marketing_consent is True
        assert settings.profile_visibility == "private"
        assert settings.data_retention_days == 365

        again = security.update_privacy_settings(user_id, PrivacySettingsUpdate(profile_visibility="public"))
        assert again.marketing_consent is True
        assert security.get_privacy_settings(user_id).profile_visibility == "public"

    def test_data_requests(self, security, user_id):
        export = security.request_data_export(user_id)
        assert export.status == "completed"
        assert export.download_url.endswith(user_id)
        deletion = security.request_data_deletion(user_id, reason="leaving")
        assert deletion.status == "pending"
        assert (deletion.scheduled_for - deletion.requested_at).days == 30

        requests = security.get_data_requests(user_id)
        assert [r.id for r in requests.exports] == [export.id]
        assert [r.id for r in requests.deletions] == [deletion.id]


class TestLogs:

    def test_security_log_filters(self, security, user_id):
        security.log_security_event("login", user_id=user_id)
        security.log_security_event("password_change", user_id=user_id, risk_level="medium")
        security.log_security_event("login")

        assert len(security.get_security_logs(user_id=user_id)) == 2
        assert {log.event_type for log in security.get_security_logs(event_type="login")} == {"login"}

    def test_rate_limit_violation_is_logged_once(self, security, user_id):
        security.rate_limiter = FixedWindowRateLimiter(limit=2, window=60, endpoint_limits={})
        for _ in range(5):
            security.hit(f"user:{user_id}", "/v1/trainer/students")
        logs = security.get_security_logs(event_type="rate_limit_exceeded")
        assert len(logs) == 1
        assert logs[0].user_id == user_id
        assert logs[0].risk_level == "medium"
        assert logs[0].details["limit"] == 2

    def test_record_request_counts_without_logging(self, security):
        security.rate_limiter = FixedWindowRateLimiter(limit=1, window=60, endpoint_limits={})
        security.record_request("ip:1", "/v1/x")
        security.record_request("ip:1", "/v1/x")
        assert security.check_rate_limit("ip:1", "/v1/x").is_blocked
        assert security.get_security_logs(event_type="rate_limit_exceeded") == []

    def test_audit_trail(self, security, user_id):
        security.log_audit_event(user_id, "update", "trainer_profile",
                                 old_values={"plan": "free"}, new_values={"plan": "pro"})
        (entry,) = security.get_audit_logs(user_id)
        assert entry.new_values == {"plan": "pro"}

    def test_alerts_feed_compliance_incidents(self, security, user_id):
        security.create_security_alert("brute_force", "high", "Many failed logins", user_id=user_id)
        security.create_security_alert("odd_login", "low", "New device")
        report = security.generate_compliance_report("2026-01-01", "2026-12-31")
        assert report.summary.security_incidents == 1
        assert report.summary.total_users >= 1


def test_demo_store_trims_security_logs(local_container, monkeypatch):
    monkeypatch.setattr("services.local_security_service.MAX_SECURITY_LOGS", 3)
    security = local_container.resolve(SECURITY_SERVICE)
    for i in range(5):
        security.log_security_event(f"event_{i}")
    assert {log.event_type for log in security.get_security_logs()} == {"event_2", "event_3", "event_4"}
