"""Wildcard query expansion against object schemas."""

import logging
import re
from typing import List, Optional

from ..models.schema import SchemaField
from .schema_cache import SchemaCache

logger = logging.getLogger(__name__)

WILDCARD = "*"

# Queries wider than this hit the org's query length limits.
MAX_UNFILTERED_FIELDS = 100

_FROM_PATTERN = re.compile(r"\bFROM\s+([A-Za-z_][A-Za-z0-9_]*)", re.IGNORECASE)


def parse_object_name(query: str) -> Optional[str]:
    """Return the object named in the query's FROM clause."""
    match = _FROM_PATTERN.search(query)
    return match.group(1) if match else None


def select_fields(fields: List[SchemaField], creatable_only: bool = True) -> List[str]:
    """
    Pick the field names a wildcard expands to.

    Objects with more than MAX_UNFILTERED_FIELDS fields are always filtered.
    """
    if creatable_only or len(fields) > MAX_UNFILTERED_FIELDS:
        return [f.name for f in fields if f.is_insertable]
    return [f.name for f in fields]


class QueryExpander:
    """Rewrites `SELECT * FROM Object` into an explicit field list."""

    def __init__(self, schema_cache: SchemaCache):
        self.schema_cache = schema_cache

    def expand(self, query: str, target: str, creatable_only: bool = True) -> str:
        """
        Expand the wildcard in a query.

        Queries without the wildcard are returned unchanged, as are queries
        whose object has no field left after filtering.

        Raises:
            SchemaUnavailable: the object's fields could not be resolved
        """
        if WILDCARD not in query:
            return query

        object_name = parse_object_name(query)
        if not object_name:
            logger.warning(f"Cannot find object name in query, leaving it as is: {query}")
            return query

        fields = self.schema_cache.get_fields(object_name, target)
        names = select_fields(fields, creatable_only)

        if not names:
            logger.debug(f"No {object_name} fields left after filtering, wildcard not expanded")
            return query

        expanded = query.replace(WILDCARD, ", ".join(names), 1)
        logger.debug(f"Expanded {object_name} wildcard to {len(names)} fields")
        return expanded
