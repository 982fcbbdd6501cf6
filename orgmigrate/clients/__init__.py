"""Clients for remote orgs."""

from .base import OrgClient
from .rest_client import RestOrgClient

__all__ = [
    "OrgClient",
    "RestOrgClient",
]
