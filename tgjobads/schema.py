from datetime import date, datetime
from typing import Any, Dict, List

REQUIRED_STR_FIELDS = ["id", "text"]
OPTIONAL_STR_FIELDS = [
    "message_ref",
]


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _valid_date(v: Any) -> bool:
    if isinstance(v, date):
        return True
    if not isinstance(v, str):
        return False
    try:
        datetime.strptime(v.strip()[:10], "%Y-%m-%d")
        return True
    except ValueError:
        return False


def validate_ad(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    Checks the ingestion shape of an ad before it is stored.
    """
    errors: List[str] = []

    # Required string fields
    for f in REQUIRED_STR_FIELDS:
        if f not in data:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    # Date: a date object or an ISO string
    if "date" not in data:
        errors.append("Missing required field: date")
    elif not _valid_date(data["date"]):
        errors.append("Field 'date' must be a date or an ISO date string (YYYY-MM-DD)")

    # Optional strings: if present, must be strings
    for f in OPTIONAL_STR_FIELDS:
        if f in data and data[f] is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    return errors
