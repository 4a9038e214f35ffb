"""
Field validation helpers for request payloads and feed items.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from shared.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# bcrypt only reads the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def is_number(value: Any) -> bool:
    """Finite int/float; booleans are not numbers."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # An int too large for a float
        return False


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def clean_text(value: Any) -> Optional[str]:
    """Trimmed string, or None when value is not a non-blank string."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def require_text(data: Dict[str, Any], field: str, min_length: int = 1) -> str:
    value = clean_text(data.get(field))
    if value is None:
        raise ValidationError(f"{field} is required", details={"field": field})
    if len(value) < min_length:
        raise ValidationError(f"{field} must be at least {min_length} characters", details={"field": field})
    return value


def optional_number(data: Dict[str, Any], field: str) -> Optional[float]:
    """A finite number, or None when the field is absent or null."""
    value = data.get(field)
    if value is None:
        return None
    if not is_number(value):
        raise ValidationError(f"{field} must be a number", details={"field": field})
    return float(value)


def require_number(data: Dict[str, Any], field: str) -> float:
    value = optional_number(data, field)
    if value is None:
        raise ValidationError(f"{field} is required", details={"field": field})
    return value


def require_instant(data: Dict[str, Any], field: str) -> datetime:
    parsed = parse_instant(data.get(field))
    if parsed is None:
        raise ValidationError(f"{field} is not a valid ISO-8601 date", details={"field": field})
    return parsed


def optional_instant(data: Dict[str, Any], field: str) -> Optional[datetime]:
    if data.get(field) is None:
        return None
    return require_instant(data, field)


def is_valid_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_email(value: Any, field: str = "email") -> str:
    email = clean_text(value)
    if email is None or not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format", details={"field": field})
    return email


def validate_password(value: Any, min_length: int = 6) -> str:
    if not isinstance(value, str) or len(value) < min_length:
        raise ValidationError(f"password must be at least {min_length} characters", details={"field": "password"})
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"password must be at most {MAX_PASSWORD_BYTES} bytes",
            details={"field": "password"}
        )
    return value


def normalize_page(value: Any) -> int:
    try:
        page = int(value)
    except (TypeError, ValueError):
        return 1
    return page if page > 0 else 1


def normalize_limit(value: Any, default: int, maximum: int) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return default
    return limit if 0 < limit <= maximum else default
