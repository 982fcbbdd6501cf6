"""Service layer for the migration engine."""

from .schema_cache import SchemaCache
from .query_expander import QueryExpander
from .references import ReferenceResolver
from .context import ExecutionContext, TransformContext
from .random_data import RandomData
from .sanitizer import handle_null_values, prep_for_csv

__all__ = [
    "SchemaCache",
    "QueryExpander",
    "ReferenceResolver",
    "ExecutionContext",
    "TransformContext",
    "RandomData",
    "handle_null_values",
    "prep_for_csv",
]
