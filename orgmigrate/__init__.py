"""
Org Migration Tool

Runs declarative migration plans that move records between two orgs.

Supports:
- Wildcard query expansion from cached or live object describes
- Per-record and per-batch transforms with references to earlier steps
- Generated test data
- Bulk upsert/delete jobs with status polling
- Anonymous script execution as a plan step
"""

__version__ = "0.1.0"
