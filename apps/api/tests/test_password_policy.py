"""
Tests for Password Policy Validation

Sign-up must reject weak credentials; the strength meter must score them.
"""
import pytest
from core.password_policy import (
    get_password_requirements_text,
    score_password_strength,
    validate_password,
)


class TestPasswordValidation:
    """Tests for validate_password function"""

    def test_valid_strong_password(self):
        valid, errors = validate_password("SecureP@ss123")
        assert valid is True
        assert errors == []

    def test_reject_short_password(self):
        valid, errors = validate_password("Ab1@xyz")
        assert valid is False
        assert any("at least 8 characters" in e for e in errors)

    def test_reject_long_password(self):
        """Longer than the 72-byte bcrypt limit"""
        valid, errors = validate_password("Ab1@" + "x" * 70)
        assert valid is False
        assert any("72 characters" in e for e in errors)

    @pytest.mark.parametrize("password,fragment", [
        ("secure@pass123", "uppercase"),
        ("SECURE@PASS123", "lowercase"),
        ("Secure@Password", "digit"),
        ("SecurePass123", "special character"),
    ])
    def test_reject_missing_character_class(self, password, fragment):
        valid, errors = validate_password(password)
        assert valid is False
        assert any(fragment in e for e in errors)

    def test_reject_common_password(self):
        valid, errors = validate_password("trainer123")
        assert valid is False
        assert any("too common" in e for e in errors)

    def test_reject_repeated_characters(self):
        valid, errors = validate_password("Secuuure@1X")
        assert valid is False
        assert any("repeated" in e for e in errors)

    def test_requirements_text_lists_rules(self):
        text = get_password_requirements_text()
        assert "8-72 characters" in text
        assert "special character" in text


class TestPasswordStrength:

    def test_strong_password_scores_high(self):
        result = score_password_strength("Str0ng!Pass")
        assert result["score"] == 90
        assert result["is_strong"] is True
        assert result["feedback"] == []

    def test_weak_password_gets_feedback(self):
        result = score_password_strength("abc")
        assert result["is_strong"] is False
        assert "Use at least 8 characters" in result["feedback"]
        assert "Avoid sequences and common words" in result["feedback"]
