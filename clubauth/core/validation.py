"""Input rules shared by registration, profile updates and password changes.

Every operation validates once, here, and gets back either cleaned values or a
``ValidationError`` carrying a ``[{"field", "message"}]`` list.
"""
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from email_validator import EmailNotValidError, validate_email

from clubauth.core.errors import ValidationError, WeakPassword
from clubauth.core.security import MAX_PASSWORD_BYTES, password_bytes

PASSWORD_MIN_LENGTH = 8
SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'

_TAG_RE = re.compile(r"<[^>]*>")
_NAME_RE = re.compile(r"^[A-Za-z\s'-]+$")
_PHONE_RE = re.compile(r"^\+?[\d\s\-()]+$")
_NAME_MESSAGE = "must contain only letters, spaces, hyphens, and apostrophes"


@dataclass(frozen=True)
class FieldRule:
    label: str
    max_length: int
    pattern: Optional[re.Pattern] = None
    pattern_message: Optional[str] = None
    required_on_register: bool = False


PROFILE_FIELDS: Dict[str, FieldRule] = {
    "first_name": FieldRule("First name", 50, _NAME_RE, _NAME_MESSAGE, True),
    "last_name": FieldRule("Last name", 50, _NAME_RE, _NAME_MESSAGE, True),
    "preferred_name": FieldRule("Preferred name", 50, _NAME_RE, _NAME_MESSAGE),
    "phone": FieldRule("Phone number", 30, _PHONE_RE, "format is invalid"),
    "pronouns": FieldRule("Pronouns", 20),
    "school_name": FieldRule("School name", 100),
    "user_linkedin": FieldRule("LinkedIn URL", 200),
    "user_github": FieldRule("GitHub URL", 200),
}


def password_violations(password: str) -> List[str]:
    if not isinstance(password, str):
        return ["Password is required"]
    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"
        )
    if password_bytes(password) > MAX_PASSWORD_BYTES:
        errors.append(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one digit")
    if not any(ch in SPECIAL_CHARACTERS for ch in password):
        errors.append("Password must contain at least one special character")
    return errors


def ensure_strong_password(password: str) -> None:
    errors = password_violations(password)
    if errors:
        raise WeakPassword(errors=errors)


def sanitize_text(value: Any) -> Any:
    """Strip markup and surrounding whitespace from free text."""
    if not isinstance(value, str):
        return value
    return _TAG_RE.sub("", value).strip()


def normalize_email(email: str) -> str:
    if not isinstance(email, str):
        raise ValidationError(
            errors=[{"field": "email", "message": "Valid email is required"}]
        )
    candidate = sanitize_text(email)
    try:
        validate_email(candidate, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(
            errors=[{"field": "email", "message": "Valid email is required"}]
        ) from exc
    return candidate.lower()


def clean_profile(
    fields: Mapping[str, Any], *, registering: bool = False
) -> Dict[str, Optional[str]]:
    errors = []
    cleaned: Dict[str, Optional[str]] = {}

    for name in fields:
        if name not in PROFILE_FIELDS:
            errors.append({"field": name, "message": "Field cannot be updated"})

    for name, rule in PROFILE_FIELDS.items():
        if name not in fields:
            if registering and rule.required_on_register:
                errors.append({"field": name, "message": f"{rule.label} is required"})
            continue
        raw = fields[name]
        if raw is not None and not isinstance(raw, str):
            errors.append({"field": name, "message": f"{rule.label} must be text"})
            continue
        value = sanitize_text(raw) or None
        if value is None:
            if rule.required_on_register:
                errors.append({"field": name, "message": f"{rule.label} is required"})
            else:
                cleaned[name] = None
            continue
        if len(value) > rule.max_length:
            errors.append(
                {
                    "field": name,
                    "message": f"{rule.label} must be at most {rule.max_length} characters",
                }
            )
            continue
        if rule.pattern is not None and not rule.pattern.match(value):
            errors.append(
                {"field": name, "message": f"{rule.label} {rule.pattern_message}"}
            )
            continue
        cleaned[name] = value

    if errors:
        raise ValidationError(errors=errors)
    return cleaned
