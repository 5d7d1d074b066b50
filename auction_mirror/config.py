#!/usr/bin/env python3
"""
Configuration management for the auction mirror.
Settings come from the environment (and .env), optionally overlaid by a YAML
file whose ${VARS} are expanded before parsing.
"""

import os
import logging
from typing import Dict, List, Optional, Any

import yaml
from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings

from .errors import MissingConfigurationError

# Load environment variables
load_dotenv()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Keys the listener cannot start without
REQUIRED_KEYS = ("ws_url", "nft_contract", "auction_factory")


class Settings(BaseSettings):
    """Service settings with environment-based configuration"""

    # Chain connectivity
    ws_url: Optional[str] = None
    nft_contract: Optional[str] = None
    auction_factory: Optional[str] = None
    private_key: Optional[str] = None

    # Database settings
    database_url: str = "postgresql://postgres@localhost:5432/auction"
    sql_debug: bool = False

    # Listener pacing and retry
    attach_delay: float = 1.0
    max_retries: int = 3
    retry_delay: float = 1.0
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 60.0
    listener_enabled: bool = True

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    cors_origins: str = "http://localhost:3001"

    log_level: str = "INFO"

    @field_validator('ws_url', 'nft_contract', 'auction_factory', 'private_key', mode='before')
    @classmethod
    def blank_to_none(cls, v):
        """Treat empty strings (unset ${VARS}) as missing"""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def async_database_url(self) -> str:
        """Database URL with the asyncpg driver selected"""
        if self.database_url.startswith("postgresql://"):
            return self.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return self.database_url

    def get_cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def require_listener_config(self) -> None:
        """Raise MissingConfigurationError naming every unset required key"""
        missing = [key.upper() for key in REQUIRED_KEYS if not getattr(self, key)]
        if missing:
            raise MissingConfigurationError(f"Environment validation error: {', '.join(missing)} not set")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "case_sensitive": False, "extra": "ignore"}


def _load_yaml(config_path: str) -> Dict[str, Any]:
    """Load and expand environment variables in a YAML config file"""
    with open(config_path, 'r') as f:
        config_content = os.path.expandvars(f.read())

    data = yaml.safe_load(config_content) or {}
    if not isinstance(data, dict):
        raise MissingConfigurationError(f"{config_path} must contain a mapping")

    # Sections are flattened: {"listener": {"attach_delay": 2}} -> {"attach_delay": 2}
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value
    return flat


def load_settings(config_path: Optional[str] = None) -> Settings:
    """Build settings from the environment, overlaid by an optional YAML file"""
    overrides = _load_yaml(config_path) if config_path else {}
    return Settings(**overrides)


def setup_logging(level: str = "INFO") -> None:
    level_value = getattr(logging, str(level).upper(), logging.INFO)
    logging.basicConfig(level=level_value, format=LOG_FORMAT)
    logging.getLogger().setLevel(level_value)
