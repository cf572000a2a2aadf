"""Configuration and secrets management for Cloud Images.

Reads Cloudinary credentials from the environment, a .env file or
secrets.json, and validates that all three are present.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping

from dotenv import dotenv_values

from .models import CloudinaryConfig

logger = logging.getLogger(__name__)

# Environment variable for each credential field
ENV_VARS = {
    "cloud_name": "CLOUDINARY_CLOUD_NAME",
    "api_key": "CLOUDINARY_API_KEY",
    "api_secret": "CLOUDINARY_API_SECRET",
}


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


def get_config_dir() -> Path:
    """Get or create the config directory.

    Returns:
        Path to config directory (~/.config/cloud-images/)
    """
    config_dir = Path.home() / ".config" / "cloud-images"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def load_secrets(secrets_path: Path | None = None) -> dict[str, Any]:
    """Load secrets.json.

    Searches for secrets.json in the following order:
    1. Explicit path if provided
    2. ~/.config/cloud-images/secrets.json (recommended)
    3. ./secrets.json (current directory)

    Args:
        secrets_path: Optional explicit path to secrets.json

    Returns:
        Dictionary containing all secrets, empty if no file was found
        and no explicit path was given

    Raises:
        ConfigError: If an explicit path is missing or the JSON is invalid
    """
    if secrets_path is not None:
        if not secrets_path.exists():
            raise ConfigError(f"secrets.json not found at {secrets_path}")
        found_path = secrets_path
    else:
        config_path = get_config_dir() / "secrets.json"
        local_path = Path("secrets.json")

        if config_path.exists():
            found_path = config_path
        elif local_path.exists():
            found_path = local_path
        else:
            return {}

    try:
        with open(found_path) as f:
            secrets = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {found_path}: {e}")

    if not isinstance(secrets, dict):
        raise ConfigError(f"Expected a JSON object in {found_path}")

    logger.debug("Loaded secrets from %s", found_path)
    return secrets


def validate_config(values: Mapping[str, Any]) -> None:
    """Validate that all three credentials are present.

    Args:
        values: Mapping with cloud_name, api_key and api_secret

    Raises:
        ConfigError: Listing every missing field
    """
    missing = [ENV_VARS[name] for name in ENV_VARS if not values.get(name)]
    if missing:
        raise ConfigError(
            "Cloudinary credentials are not properly configured. "
            f"Missing: {', '.join(missing)}"
        )


def get_cloudinary_config(values: Mapping[str, Any]) -> CloudinaryConfig:
    """Build a CloudinaryConfig from validated values.

    Args:
        values: Mapping with cloud_name, api_key, api_secret and
            optionally secure

    Returns:
        CloudinaryConfig dataclass with credentials
    """
    validate_config(values)
    return CloudinaryConfig(
        cloud_name=values["cloud_name"],
        api_key=str(values["api_key"]),
        api_secret=values["api_secret"],
        secure=bool(values.get("secure", True)),
    )


def load_config(
    secrets_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    env_file: Path | None = None,
) -> CloudinaryConfig:
    """Load Cloudinary credentials.

    Each credential is looked up in order:
    1. Environment variables
    2. A .env file (./.env unless env_file is given)
    3. The "cloudinary" section of secrets.json

    Args:
        secrets_path: Optional explicit path to secrets.json
        environ: Environment mapping (defaults to os.environ)
        env_file: Optional path to a .env file

    Returns:
        CloudinaryConfig

    Raises:
        ConfigError: If credentials are missing or secrets.json is invalid
    """
    if environ is None:
        environ = os.environ
    if env_file is None:
        env_file = Path(".env")

    # A missing .env file reads as empty
    dotenv = dotenv_values(env_file)

    values: dict[str, Any] = {
        name: environ.get(var) or dotenv.get(var) for name, var in ENV_VARS.items()
    }

    if secrets_path is not None or not all(values.values()):
        section = load_secrets(secrets_path).get("cloudinary", {})
        if not isinstance(section, dict):
            raise ConfigError("Expected a JSON object for 'cloudinary' in secrets.json")
        for name in ENV_VARS:
            if not values[name]:
                values[name] = section.get(name)
        if "secure" in section:
            values["secure"] = section["secure"]

    for name, var in ENV_VARS.items():
        logger.debug("%s: %s", var, "set" if values.get(name) else "missing")

    return get_cloudinary_config(values)
