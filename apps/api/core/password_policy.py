"""
Password Policy Validation

Sign-up rejects weak credentials before anything is written.

Requirements:
- Minimum 8 characters
- Maximum 72 characters (bcrypt limit)
- At least 1 uppercase letter, 1 lowercase letter and 1 digit
- At least 1 special character
- Not in common password blocklist

score_password_strength() is the softer 0-100 meter shown next to the form.
"""
import re
from typing import Tuple, List, Dict, Any

SPECIAL_CHARS = r'[!@#$%^&*()_+\-=\[\]{};\':"\\|,.<>\/?`~]'

# Common weak passwords to block
COMMON_PASSWORDS = {
    "password", "password1", "password123", "123456", "12345678", "1234567890",
    "qwerty", "qwerty123", "abc123", "letmein", "welcome", "monkey", "dragon",
    "master", "login", "admin", "admin123", "root", "pass", "test",
    "guest", "iloveyou", "princess", "sunshine", "football", "baseball",
    "passw0rd", "p@ssw0rd", "p@ssword", "trustno1", "starwars", "whatever",
    "summer", "winter", "spring", "autumn", "monday",
    "fitcoach", "fitcoach123", "trainer", "trainer123", "student", "student123",
    "fitness", "workout", "gym123", "personal", "academia",
}

SEQUENCE_PATTERN = re.compile(r"123|abc|qwe|password", re.IGNORECASE)
REPEAT_PATTERN = re.compile(r"(.)\1{2,}")


def validate_password(password: str) -> Tuple[bool, List[str]]:
    """
    Validate password against security policy.

    Returns:
        Tuple of (is_valid, list_of_error_messages)
    """
    errors = []

    if len(password) < 8:
        errors.append("Password must be at least 8 characters")

    if len(password) > 72:
        errors.append("Password must not exceed 72 characters (bcrypt limit)")

    if not re.search(r'[A-Z]', password):
        errors.append("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        errors.append("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        errors.append("Password must contain at least one digit")

    if not re.search(SPECIAL_CHARS, password):
        errors.append("Password must contain at least one special character (!@#$%^&*...)")

    if password.lower() in COMMON_PASSWORDS:
        errors.append("Password is too common, please choose a stronger password")

    if REPEAT_PATTERN.search(password):
        errors.append("Password must not contain more than 2 repeated characters in a row")

    return len(errors) == 0, errors


def score_password_strength(password: str) -> Dict[str, Any]:
    """
    Score a password from 0 to 100 with feedback for each missing trait.

    A score of 70 or more counts as strong.
    """
    feedback: List[str] = []
    score = 0

    if len(password) >= 8:
        score += 20
    else:
        feedback.append("Use at least 8 characters")
    if len(password) >= 12:
        score += 10

    if re.search(r"[a-z]", password):
        score += 10
    else:
        feedback.append("Add lowercase letters")
    if re.search(r"[A-Z]", password):
        score += 10
    else:
        feedback.append("Add uppercase letters")
    if re.search(r"\d", password):
        score += 10
    else:
        feedback.append("Add numbers")
    if re.search(SPECIAL_CHARS, password):
        score += 20
    else:
        feedback.append("Add special symbols")

    if not REPEAT_PATTERN.search(password):
        score += 10
    else:
        feedback.append("Avoid repeating the same character")
    if not SEQUENCE_PATTERN.search(password):
        score += 10
    else:
        feedback.append("Avoid sequences and common words")

    return {"score": score, "feedback": feedback, "is_strong": score >= 70}


def get_password_requirements_text() -> str:
    """Return human-readable password requirements."""
    return """Password requirements:
• 8-72 characters
• At least one uppercase letter (A-Z)
• At least one lowercase letter (a-z)
• At least one digit (0-9)
• At least one special character (!@#$%^&*...)
• Must not be a commonly used password"""
