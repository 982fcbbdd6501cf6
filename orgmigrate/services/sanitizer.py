"""Record sanitizing applied between query, transform and materialization."""

import re
from typing import Any, Dict, List

# Bookkeeping keys the query layer injects into every record.
SYSTEM_FIELDS = ("attributes", "height")

NULL_TOKEN = "null"

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


def is_null_token(value: Any) -> bool:
    """True for None and the literal null token, including color-coded renderings."""
    if value is None:
        return True
    if isinstance(value, str):
        return _ANSI_ESCAPE.sub("", value).strip() == NULL_TOKEN
    return False


def handle_null_values(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace null values with empty strings.

    Runs on every record right after a query so transforms never see the
    null token. Returns a new record.
    """
    result = {}
    for key, value in record.items():
        if isinstance(value, dict):
            result[key] = handle_null_values(value)
        elif is_null_token(value):
            result[key] = ""
        else:
            result[key] = value
    return result


def prep_for_csv(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Make a record safe to write as a quote-wrapped CSV row.

    - drops SYSTEM_FIELDS
    - drops None, "null" and "" values
    - doubles embedded double quotes, also inside list values
    - recurses into nested objects, dropping those left empty

    Runs after user transforms. Returns a new record; the input is untouched.
    """
    result = {}
    for key, value in record.items():
        if key in SYSTEM_FIELDS:
            continue
        if isinstance(value, dict):
            nested = prep_for_csv(value)
            if nested:
                result[key] = nested
            continue
        if value is None or value == "" or is_null_token(value):
            continue
        if isinstance(value, (list, tuple)):
            value = [_escape_quotes(v) for v in value if not is_null_token(v)]
            if not value:
                continue
        result[key] = _escape_quotes(value)
    return result


def _escape_quotes(value: Any) -> Any:
    if isinstance(value, str):
        return value.replace('"', '""')
    return value


def handle_null_values_all(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [handle_null_values(r) for r in records]


def prep_for_csv_all(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [prep_for_csv(r) for r in records]
