from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
from omegaconf import MISSING, OmegaConf
from omegaconf.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080
DEFAULT_REQUEST_TIMEOUT = 120.0
BUCKET_SUFFIX = "-basic-app"

# Environment variable -> Settings field, for the optional values.
OPTIONAL_VARIABLES = {
    "APS_BASE_URL": "base_url",
    "APS_REGION": "region",
    "REQUEST_TIMEOUT": "request_timeout",
    "STATIC_DIR": "static_dir",
    "UPLOAD_DIR": "upload_dir",
    "LOG_LEVEL": "log_level",
}


class ConfigurationError(RuntimeError):
    """Raised when the process environment cannot produce usable settings."""


@dataclass
class Settings:
    client_id: str = MISSING
    client_secret: str = MISSING
    bucket: str = MISSING
    port: int = DEFAULT_PORT
    base_url: str = "https://developer.api.autodesk.com"
    region: str = "US"
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    static_dir: str = "wwwroot"
    upload_dir: str = str(Path(tempfile.gettempdir()) / "aps-viewer-uploads")
    log_level: str = "INFO"


def default_bucket_name(client_id: str) -> str:
    """
    Derive the bucket key used when APS_BUCKET is not configured.

    Bucket keys are global across APS, so the client id keeps them unique.

    Example:
        >>> default_bucket_name("AbC123")
        "abc123-basic-app"
    """
    return f"{client_id.lower()}{BUCKET_SUFFIX}"


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build the process-wide settings from environment variables.

    Args:
        environ: Mapping to read from. Defaults to ``os.environ`` after loading
            a ``.env`` file, if one is present.

    Returns:
        A validated Settings instance

    Raises:
        ConfigurationError: If the client credentials are missing or a value
            has the wrong type (e.g. a non-numeric PORT)
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    client_id = environ.get("APS_CLIENT_ID")
    client_secret = environ.get("APS_CLIENT_SECRET")
    if not client_id or not client_secret:
        raise ConfigurationError("Missing some of the environment variables.")

    overrides: Dict[str, Any] = {
        "client_id": client_id,
        "client_secret": client_secret,
        "bucket": environ.get("APS_BUCKET") or default_bucket_name(client_id),
    }
    if environ.get("PORT"):
        overrides["port"] = environ["PORT"]
    for variable, field_name in OPTIONAL_VARIABLES.items():
        if environ.get(variable):
            overrides[field_name] = environ[variable]

    schema = OmegaConf.structured(Settings)
    try:
        merged = OmegaConf.merge(schema, overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    settings = OmegaConf.to_object(merged)
    logger.debug(f"Loaded settings for bucket {settings.bucket} on port {settings.port}")
    return settings  # type: ignore[return-value]
