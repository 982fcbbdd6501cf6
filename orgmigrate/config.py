"""Settings for the migration tool, loaded from .orgmigrate/settings.json."""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import MigrationError

logger = logging.getLogger(__name__)

SETTINGS_FILE = ".orgmigrate/settings.json"
DEFAULT_PLAN_FILE = "migration_plan.py"
SCHEMA_CACHE_DIR = ".orgmigrate/schema"
DEFAULT_API_VERSION = "59.0"


class OrgSettings(BaseModel):
    """Connection details for one org alias."""
    model_config = ConfigDict(populate_by_name=True)

    instance_url: Optional[str] = Field(default=None, alias="instanceUrl")
    access_token: Optional[str] = Field(default=None, alias="accessToken")
    api_version: str = Field(default=DEFAULT_API_VERSION, alias="apiVersion")


class MigrateSettings(BaseModel):
    """Project-level settings for migration runs."""
    model_config = ConfigDict(populate_by_name=True)

    migrate_base_path: Optional[str] = Field(default=None, alias="migrateBasePath")
    ignore_error: Optional[bool] = Field(default=None, alias="ignoreError")
    bulk_status_retries: Optional[int] = Field(default=None, alias="bulkStatusRetries", ge=1)
    bulk_status_interval: Optional[float] = Field(default=None, alias="bulkStatusInterval", gt=0)
    orgs: Dict[str, OrgSettings] = Field(default_factory=dict)

    def org(self, alias: str) -> OrgSettings:
        """
        Resolve connection details for an org alias.

        Environment variables ORGMIGRATE_<ALIAS>_INSTANCE_URL and
        ORGMIGRATE_<ALIAS>_ACCESS_TOKEN fill in whatever the settings file
        leaves unset.
        """
        configured = self.orgs.get(alias) or OrgSettings()
        env_prefix = "ORGMIGRATE_" + "".join(c if c.isalnum() else "_" for c in alias).upper()
        return OrgSettings(
            instance_url=configured.instance_url or os.environ.get(f"{env_prefix}_INSTANCE_URL"),
            access_token=configured.access_token or os.environ.get(f"{env_prefix}_ACCESS_TOKEN"),
            api_version=configured.api_version,
        )

    def resolve_plan_path(self, file_path: Optional[str]) -> str:
        """Plan path as given, falling back to migrateBasePath when it does not exist."""
        file_path = file_path or DEFAULT_PLAN_FILE
        if not os.path.exists(file_path) and self.migrate_base_path:
            candidate = str(Path(self.migrate_base_path) / file_path)
            logger.debug(f"Plan not found at {file_path}, trying {candidate}")
            return candidate
        return file_path


def load_settings(path: Optional[str] = None) -> MigrateSettings:
    """
    Load settings from a JSON file.

    Returns empty settings when the file does not exist.
    """
    path = path or SETTINGS_FILE
    if not os.path.exists(path):
        return MigrateSettings()

    try:
        with open(path, 'r', encoding="utf-8") as f:
            data = json.load(f)
        settings = MigrateSettings.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise MigrationError(f"Invalid settings file {path}: {e}") from e

    logger.debug(f"Loaded settings from {path}")
    return settings
