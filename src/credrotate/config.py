"""Configuration for credrotate.

Values come from, in increasing priority: defaults, ``CREDROTATE_*``
environment variables (and a ``.env`` file), an optional YAML config file,
then explicit overrides from the command line.

Example config file:

    credrotate:
      profile: deploy
      credentials_file: ~/.aws/credentials
      period: 90days
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "CREDROTATE_CONFIG_FILE"
CONFIG_SECTION = "credrotate"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="CREDROTATE_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Profile in the shared credentials file whose key is rotated
    profile: str = "default"
    credentials_file: str = "~/.aws/credentials"
    # BackupRecord and lock default to siblings of the credentials file
    backup_file: Optional[str] = None
    lock_file: Optional[str] = None

    # IAM is global; STS needs a region to resolve an endpoint
    region: str = "us-east-1"
    # IAM user whose keys are managed; the caller's own user when unset
    user_name: Optional[str] = None

    # Default rotation period for `rotate` when none is given
    period: Optional[str] = None

    log_dir: str = "~/.credrotate/logs"
    log_level: str = "INFO"
    # JSON lines carrying the run id instead of plain text
    log_json: bool = False

    @property
    def credentials_path(self) -> Path:
        return Path(self.credentials_file).expanduser()

    @property
    def backup_path(self) -> Path:
        if self.backup_file:
            return Path(self.backup_file).expanduser()
        path = self.credentials_path
        return path.with_name(f"{path.name}.{self.profile}.bak")

    @property
    def lock_path(self) -> Path:
        if self.lock_file:
            return Path(self.lock_file).expanduser()
        path = self.credentials_path
        return path.with_name(f"{path.name}.{self.profile}.lock")

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir).expanduser()


def load_config_file(path: Optional[Path]) -> dict[str, Any]:
    """Load the ``credrotate`` section of a YAML config file.

    A missing or malformed file is logged and treated as empty.
    """
    if path is None:
        return {}

    path = Path(path).expanduser()
    if not path.exists():
        logger.warning(f"Config file {path} not found, using defaults")
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Error loading {path}: {e}, using defaults")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Config file {path} is not a mapping, using defaults")
        return {}

    section = data.get(CONFIG_SECTION, data)
    if not isinstance(section, dict):
        logger.warning(f"No '{CONFIG_SECTION}' mapping in {path}, using defaults")
        return {}

    known = set(Settings.model_fields)
    unknown = set(section) - known
    if unknown:
        logger.warning(f"Ignoring unknown keys in {path}: {sorted(unknown)}")
    return {k: v for k, v in section.items() if k in known}


def load_settings(config_file: Optional[str] = None, **overrides: Any) -> Settings:
    """Build settings from environment, config file and overrides.

    Args:
        config_file: YAML config file (defaults to $CREDROTATE_CONFIG_FILE)
        **overrides: Explicit values; None entries are ignored

    Returns:
        Settings instance
    """
    config_file = config_file or os.getenv(CONFIG_FILE_ENV)
    values = load_config_file(Path(config_file) if config_file else None)
    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)
