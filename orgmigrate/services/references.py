"""Resolution of step references to previously materialized records."""

import logging
from typing import Any, Dict, Iterable, List

from ..errors import ReferenceNotFound
from ..loaders.artifacts import ArtifactStore

logger = logging.getLogger(__name__)


class ReferenceResolver:
    """Loads the JSON artifacts a step declares in ``references``."""

    def __init__(self, store: ArtifactStore):
        self.store = store

    def resolve(self, references: Iterable[str]) -> Dict[str, List[Dict[str, Any]]]:
        """
        Load each referenced step's records, keyed by reference name.

        Raises:
            ReferenceNotFound: an artifact is missing or unreadable
        """
        resolved: Dict[str, List[Dict[str, Any]]] = {}
        for name in references:
            path = self.store.json_path(name)
            if not path.exists():
                raise ReferenceNotFound(name, str(path))

            try:
                resolved[name] = self.store.read_json(name)
            except (OSError, ValueError) as e:
                raise ReferenceNotFound(name, str(path)) from e

            logger.debug(f"Bound reference {name} ({len(resolved[name])} records)")
        return resolved
