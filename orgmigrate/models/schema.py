"""Schema models for org object descriptions."""

from dataclasses import dataclass, field
from typing import Any, Dict, List
import json


REFERENCE_TYPE = "reference"


@dataclass(frozen=True)
class SchemaField:
    """Definition of a field on an org object."""
    name: str
    type: str = "string"
    createable: bool = False
    updateable: bool = False
    defaulted_on_create: bool = False
    label: str = ""
    reference_to: List[str] = field(default_factory=list)

    @property
    def is_reference(self) -> bool:
        return self.type.lower() == REFERENCE_TYPE

    @property
    def is_insertable(self) -> bool:
        """
        True when the field can be safely re-inserted through an upsert.

        Excludes non-createable fields, lookups, and fields the org defaults
        on create unless they may also be updated afterwards.
        """
        if not self.createable or self.is_reference:
            return False
        if self.defaulted_on_create and not self.updateable:
            return False
        return True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchemaField":
        """Create from a describe payload entry (camelCase or snake_case keys)."""
        return cls(
            name=data.get("name", ""),
            type=data.get("type", "string") or "string",
            createable=bool(data.get("createable", False)),
            updateable=bool(data.get("updateable", False)),
            defaulted_on_create=bool(
                data.get("defaultedOnCreate", data.get("defaulted_on_create", False))
            ),
            label=data.get("label", "") or "",
            reference_to=list(data.get("referenceTo", data.get("reference_to", [])) or []),
        )


@dataclass
class ObjectSchema:
    """Field list of a single org object."""
    name: str
    fields: List[SchemaField] = field(default_factory=list)

    @classmethod
    def from_payload(cls, name: str, data: Any) -> "ObjectSchema":
        """
        Build from a describe payload.

        Accepts either the full describe result ({"name": ..., "fields": [...]})
        or a bare list of field entries.
        """
        if isinstance(data, dict):
            entries = data.get("fields") or []
            name = data.get("name") or name
        elif isinstance(data, list):
            entries = data
        else:
            entries = []

        fields = [SchemaField.from_dict(e) for e in entries if isinstance(e, dict)]
        return cls(name=name, fields=fields)

    @classmethod
    def from_json_file(cls, name: str, file_path: str) -> "ObjectSchema":
        """Load a cached describe result from a JSON file."""
        with open(file_path, 'r', encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_payload(name, data)
