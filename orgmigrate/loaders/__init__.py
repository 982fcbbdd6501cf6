"""Artifact writers and bulk job loading."""

from .artifacts import ArtifactStore
from .bulk_poller import BulkJobPoller

__all__ = [
    "ArtifactStore",
    "BulkJobPoller",
]
