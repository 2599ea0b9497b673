"""
JSON log records: service context and credential masking.
"""
import json
import logging

from core.logging import JSONFormatter, mask_sensitive


def _record(**extra_fields):
    record = logging.LogRecord("services.auth_service", logging.INFO, __file__, 10, "signed in", None, None)
    record.extra_fields = extra_fields
    return record


def test_json_record_carries_service_context():
    payload = json.loads(JSONFormatter().format(_record(user_id="trainer_123")))
    assert payload["service"] == "fitcoach-api"
    assert payload["data_source"] == "local"
    assert payload["message"] == "signed in"
    assert payload["user_id"] == "trainer_123"


def test_credentials_are_masked():
    payload = json.loads(JSONFormatter().format(_record(password="hunter2", Authorization="Bearer x")))
    assert payload["password"] == "***"
    assert payload["Authorization"] == "***"


def test_missing_values_stay_visible():
    assert mask_sensitive({"access_token": None, "email": "a@b.c"}) == {"access_token": None, "email": "a@b.c"}
