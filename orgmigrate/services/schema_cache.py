"""Schema cache resolving object names to their field lists."""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..clients.base import OrgClient
from ..errors import MigrationError, SchemaUnavailable
from ..models.schema import ObjectSchema, SchemaField

logger = logging.getLogger(__name__)


class SchemaCache:
    """
    Resolves an object's fields for wildcard expansion.

    Resolution order:
    - <cache_dir>/<Object>.json if present (describe payload or bare field list)
    - the client's describe operation

    Cache files are only ever read. Results are memoized per (object, org)
    for the lifetime of the cache.
    """

    def __init__(self, client: Optional[OrgClient] = None, cache_dir: Optional[str] = None):
        """
        Initialize the schema cache.

        Args:
            client: Org client used when no cache file exists
            cache_dir: Directory containing cached describe JSON files
        """
        self.client = client
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self._schemas: Dict[Tuple[str, str], ObjectSchema] = {}

    def cache_file(self, object_name: str) -> Optional[Path]:
        """Path of the local cache file for an object, if a cache dir is set."""
        if not self.cache_dir:
            return None
        return self.cache_dir / f"{object_name}.json"

    def get_schema(self, object_name: str, target: str) -> ObjectSchema:
        """
        Get an object's schema.

        Raises:
            SchemaUnavailable: no cache file and describe failed or returned no fields
        """
        key = (object_name.lower(), target or "")
        if key in self._schemas:
            return self._schemas[key]

        schema = self._load_cached(object_name)
        if schema is None:
            schema = self._describe(object_name, target)

        self._schemas[key] = schema
        return schema

    def get_fields(self, object_name: str, target: str) -> List[SchemaField]:
        """Get an object's field list."""
        return self.get_schema(object_name, target).fields

    def _load_cached(self, object_name: str) -> Optional[ObjectSchema]:
        path = self.cache_file(object_name)
        if path is None or not path.exists():
            return None

        try:
            schema = ObjectSchema.from_json_file(object_name, str(path))
        except (OSError, ValueError) as e:
            raise SchemaUnavailable(f"Failed to read schema cache {path}: {e}") from e

        logger.debug(f"Loaded {len(schema.fields)} {object_name} fields from {path}")
        return schema

    def _describe(self, object_name: str, target: str) -> ObjectSchema:
        if self.client is None:
            raise SchemaUnavailable(f"No cached schema for {object_name} and no client to describe it")

        try:
            fields = self.client.describe_schema(object_name, target)
        except SchemaUnavailable:
            raise
        except MigrationError as e:
            raise SchemaUnavailable(f"Describe of {object_name} failed: {e}", payload=e.payload) from e

        if not fields:
            raise SchemaUnavailable(f"Describe of {object_name} returned no fields")

        logger.debug(f"Described {len(fields)} {object_name} fields in {target}")
        return ObjectSchema(name=object_name, fields=list(fields))
