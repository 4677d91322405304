import math
import re
import unicodedata
from typing import Any, Dict, Optional
from uuid import uuid4

from flask import request

email_regex = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

TRUE_STRINGS = {"true", "1", "yes", "on"}
FALSE_STRINGS = {"false", "0", "no", "off"}


def get_json_payload() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def normalize_email(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def is_valid_email(value: Optional[str]) -> bool:
    normalized = normalize_email(value)
    return bool(normalized and email_regex.match(normalized))


def normalize_text(value) -> str:
    if value is None:
        return ""
    condensed = " ".join(str(value).split())
    return condensed.strip()


def slugify(value: Optional[str]) -> str:
    normalized_name = normalize_text(value).lower()
    ascii_name = (
        unicodedata.normalize("NFKD", normalized_name)
        .encode("ascii", "ignore")
        .decode("ascii")
    )
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_name).strip("-")
    if not slug:
        slug = uuid4().hex
    return slug


def is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_int(value, minimum: Optional[int] = None, maximum: Optional[int] = None):
    """Coerce a request value to an int.

    Returns None when the value is missing, not a whole number, or outside
    the inclusive ``minimum``/``maximum`` bounds. Booleans are rejected even
    though Python treats them as ints.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        number = int(value)
    else:
        try:
            number = int(str(value).strip())
        except (TypeError, ValueError):
            return None
    if minimum is not None and number < minimum:
        return None
    if maximum is not None and number > maximum:
        return None
    return number


def parse_float(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if math.isfinite(numeric):
        return numeric
    return None


def parse_bool(value) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return None if value not in (0, 1) else bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    return None


def isoformat_or_none(value) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat() + "Z"
