"""Per-step execution context handed to transforms and generators."""

import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from ..models.plan import PlanDefaults
from .random_data import RandomData


@dataclass
class TransformContext:
    """
    Helpers available to user transforms as ``ctx.utils``.

    Attributes:
        random: random values for generated and anonymized data
    """
    random: RandomData = field(default_factory=RandomData)

    @staticmethod
    def sha1(text: Any) -> str:
        """Hex SHA-1 of a value's string form."""
        return hashlib.sha1(str(text).encode("utf-8")).hexdigest()

    @staticmethod
    def get_prop(data: Any, path: str, default: Any = None) -> Any:
        """
        Get a nested value using dot notation.

        Supports list indexes as ``items[0]`` or ``items.0``. Returns
        ``default`` when any part of the path is missing.
        """
        value = data
        for part in path.split("."):
            if value is None:
                return default

            array_match = re.match(r"^(\w+)\[(\d+)\]$", part)
            if array_match:
                key, index = array_match.groups()
                if isinstance(value, dict):
                    value = value.get(key)
                if isinstance(value, list) and int(index) < len(value):
                    value = value[int(index)]
                else:
                    return default
            elif isinstance(value, dict):
                if part not in value:
                    return default
                value = value[part]
            elif isinstance(value, list) and part.isdigit():
                idx = int(part)
                if idx >= len(value):
                    return default
                value = value[idx]
            else:
                return default

        return value

    @staticmethod
    def parse_date(value: Any) -> Optional[datetime]:
        """Parse a date string in any common format; None when it is not a date."""
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return value
        try:
            return date_parser.parse(str(value))
        except (ValueError, OverflowError):
            return None

    @staticmethod
    def now() -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class ExecutionContext:
    """
    Everything a step's callables can see.

    Rebuilt for every step and discarded when the step finishes.

    Attributes:
        step: name of the step being executed
        defaults: run-level defaults after overrides
        utils: transform helpers
        references: records of referenced steps, keyed by step name
        values: values bound by the step's calculate_flags hook
    """
    step: str
    defaults: PlanDefaults
    utils: TransformContext = field(default_factory=TransformContext)
    references: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    values: Dict[str, Any] = field(default_factory=dict)

    def reference(self, name: str) -> List[Dict[str, Any]]:
        """Records of a referenced step (empty when it was not declared)."""
        return self.references.get(name, [])

    def find_reference(self, name: str, key: str, value: Any) -> Optional[Dict[str, Any]]:
        """First record of a referenced step whose ``key`` (dotted path) equals ``value``."""
        for record in self.reference(name):
            if self.utils.get_prop(record, key) == value:
                return record
        return None
