"""
Configuration management using Pydantic models loaded from YAML.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_BASE_URL = "https://api.mindbodyonline.com/public/v6"

# Environment variable -> (section, key)
ENV_OVERRIDES: Dict[str, Tuple[str, str]] = {
    "BOOKABLESLOTS_API_KEY": ("upstream", "api_key"),
    "BOOKABLESLOTS_SITE_ID": ("upstream", "site_id"),
    "BOOKABLESLOTS_USERNAME": ("credentials", "username"),
    "BOOKABLESLOTS_PASSWORD": ("credentials", "password"),
}


class UpstreamConfig(BaseModel):
    """Scheduling API connection settings."""
    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    site_id: str = ""
    timeout_seconds: float = 30.0

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("site_id", mode="before")
    @classmethod
    def coerce_site_id(cls, value: Any) -> str:
        """Site ids are numeric in YAML but sent as a header string."""
        return "" if value is None else str(value)

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout_seconds must be greater than zero")
        return value


class CredentialsConfig(BaseModel):
    """Staff credentials used to issue user tokens."""
    username: str = ""
    password: str = ""
    token_ttl_minutes: int = 60

    @field_validator("token_ttl_minutes")
    @classmethod
    def validate_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("token_ttl_minutes must be greater than zero")
        return value


class DefaultsConfig(BaseModel):
    """Default settings for searches."""
    days_ahead: int = 7
    limit: Optional[int] = None

    @field_validator("days_ahead")
    @classmethod
    def validate_days_ahead(cls, value: int) -> int:
        if value < 1:
            raise ValueError("days_ahead must be at least 1")
        return value

    @field_validator("limit")
    @classmethod
    def validate_limit(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise ValueError("limit must not be negative")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Environment variables listed in ``ENV_OVERRIDES`` take precedence
        over values in the file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**apply_env_overrides(data))

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build a configuration from defaults and environment variables only."""
        return cls(**apply_env_overrides({}))


def apply_env_overrides(data: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Return a copy of ``data`` with any set override variables applied."""
    environ = os.environ if environ is None else environ
    merged = dict(data)

    for variable, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(variable)
        if not value:
            continue
        section_data = dict(merged.get(section) or {})
        section_data[key] = value
        merged[section] = section_data

    return merged


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
