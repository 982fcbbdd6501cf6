"""Materialized step artifacts: CSV load files and JSON reference files."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

DATA_DIR = "data"
REFERENCE_DIR = "reference"


def flatten_record(record: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested objects into dotted keys (e.g. Account.Name)."""
    flat: Dict[str, Any] = {}
    for key, value in record.items():
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            flat.update(flatten_record(value, path))
        else:
            flat[path] = value
    return flat


def format_cell(value: Any) -> str:
    """Render a value for a quote-wrapped CSV cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ";".join(format_cell(v) for v in value)
    return str(value)


def to_csv(records: List[Dict[str, Any]]) -> str:
    """
    Render records as CSV with every cell wrapped in double quotes.

    Headers are the union of all keys in first-seen order. Values are
    written verbatim: quotes must already be doubled by prep_for_csv.
    """
    rows = [flatten_record(r) for r in records]

    headers: List[str] = []
    seen = set()
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                headers.append(key)

    lines = [",".join(f'"{h}"' for h in headers)]
    for row in rows:
        lines.append(",".join(f'"{format_cell(row.get(h))}"' for h in headers))
    return "\n".join(lines)


class ArtifactStore:
    """
    File layout for a plan's artifacts.

    <base_dir>/data/<step>.csv        load-ready records
    <base_dir>/reference/<step>.json  records later steps reference
    """

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)
        self.data_dir = self.base_dir / DATA_DIR
        self.reference_dir = self.base_dir / REFERENCE_DIR

    def csv_path(self, step_name: str) -> Path:
        return self.data_dir / f"{step_name}.csv"

    def json_path(self, step_name: str) -> Path:
        return self.reference_dir / f"{step_name}.json"

    def write_csv(self, step_name: str, records: List[Dict[str, Any]]) -> Path:
        """Write a step's load artifact."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self.csv_path(step_name)
        with open(path, 'w', encoding="utf-8", newline="") as f:
            f.write(to_csv(records))
        logger.debug(f"Wrote {len(records)} records to {path}")
        return path

    def write_json(self, step_name: str, records: List[Dict[str, Any]]) -> Path:
        """Write a step's reference artifact."""
        self.reference_dir.mkdir(parents=True, exist_ok=True)
        path = self.json_path(step_name)
        with open(path, 'w', encoding="utf-8") as f:
            json.dump(records, f, default=str)
        logger.debug(f"Wrote {len(records)} reference records to {path}")
        return path

    def read_json(self, step_name: str) -> List[Dict[str, Any]]:
        """Read a step's reference artifact."""
        with open(self.json_path(step_name), 'r', encoding="utf-8") as f:
            return json.load(f)
