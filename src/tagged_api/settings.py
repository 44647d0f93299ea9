"""
Settings loaded from YAML files and the environment.

Example ``config/server.yaml``::

    tagged_api:
      endpoint: https://example.com/api/
      query:
        application_id: user
        format: JSON
      timeout_ms: 5000
      max_queue_size: 25

Secrets are better kept in the environment (``TAGGED_API_CLIENT_ID``,
``TAGGED_API_SECRET``), optionally loaded from a ``.env`` file.
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from .config import DEFAULT_TIMEOUT_MS, ApiConfig
from .errors import ConfigurationError

logger = logging.getLogger("tagged_api.settings")

ENV_OVERRIDES = {
    "TAGGED_API_ENDPOINT": "endpoint",
    "TAGGED_API_CLIENT_ID": "client_id",
    "TAGGED_API_SECRET": "secret",
    "TAGGED_API_TIMEOUT_MS": "timeout_ms",
}


class ApiSettings(BaseModel):
    """Validated client settings."""

    endpoint: str = Field(min_length=1)
    query: Dict[str, Union[str, int, float, bool]] = Field(default_factory=dict)
    params: Dict[str, Any] = Field(default_factory=dict)
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    client_id: Optional[str] = None
    secret: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    max_queue_size: Optional[int] = Field(default=None, ge=1)
    batch_delay_seconds: float = Field(default=0.0, ge=0)

    def to_config(
        self,
        cookies: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> ApiConfig:
        """Build an ApiConfig, adding per-request cookies and headers."""
        return ApiConfig(
            endpoint=self.endpoint,
            query=dict(self.query),
            params=dict(self.params),
            timeout_ms=self.timeout_ms,
            client_id=self.client_id,
            secret=self.secret,
            cookies=cookies,
            headers={**self.headers, **(headers or {})},
            max_queue_size=self.max_queue_size,
            batch_delay_seconds=self.batch_delay_seconds,
        )


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(data)
    for env_name, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            logger.debug(f"Using {env_name} for {key}")
            result[key] = value
    return result


def load_settings(
    path: Union[str, Path],
    section: str = "tagged_api",
    env_file: Optional[Union[str, Path]] = None,
) -> ApiSettings:
    """
    Load settings from a YAML file.

    Args:
        path: YAML file to read.
        section: Top-level key holding the settings. The whole document is
            used when the key is absent.
        env_file: Optional ``.env`` file loaded before environment
            overrides are applied.

    Raises:
        ConfigurationError: The file is missing, not valid YAML, or the
            settings do not validate.
    """
    if env_file is not None:
        load_dotenv(env_file)

    file_path = Path(path)
    try:
        logger.debug(f"Parsing YAML file: {file_path}")
        raw = yaml.safe_load(file_path.read_text()) or {}
    except FileNotFoundError as e:
        logger.error(f"Settings file does not exist: {file_path}")
        raise ConfigurationError(f"Settings file does not exist: {file_path}") from e
    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in {file_path}: {e}")
        raise ConfigurationError(f"YAML parsing error in {file_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Settings file must contain a mapping: {file_path}")

    data = raw.get(section, raw)
    if not isinstance(data, dict):
        raise ConfigurationError(f"Section {section!r} must be a mapping in {file_path}")

    try:
        settings = ApiSettings.model_validate(_apply_env_overrides(data))
    except ValidationError as e:
        logger.error(f"Invalid settings in {file_path}: {e}")
        raise ConfigurationError(f"Invalid settings in {file_path}: {e}") from e

    logger.info(f"Loaded tagged_api settings from: {file_path}")
    return settings
