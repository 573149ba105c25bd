"""
Configuration module for the chat reconciler.

This module provides functions for loading configuration settings from YAML
files, overriding credentials from the environment and creating a default
configuration file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from chat_reconciler.constants import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_RESULT_LIMIT,
    MAX_PAGE_SIZE,
)
from chat_reconciler.exceptions import ConfigError
from chat_reconciler.utils.api import RetryConfig
from chat_reconciler.utils.logging import log_with_context

DEFAULT_SOURCE_BASE_URL = "https://chat.twilio.com/v2"


@dataclass
class SourceConfig:
    """Credentials and address of the source chat service."""

    account_sid: str = ""
    auth_token: str = ""
    service_sid: str = ""
    base_url: str = DEFAULT_SOURCE_BASE_URL

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SourceConfig:
        if not data:
            return cls()
        return cls(
            account_sid=str(data.get("account_sid") or ""),
            auth_token=str(data.get("auth_token") or ""),
            service_sid=str(data.get("service_sid") or ""),
            base_url=data.get("base_url") or DEFAULT_SOURCE_BASE_URL,
        )


@dataclass
class TargetConfig:
    """Credentials and address of the target chat service."""

    app_id: str = ""
    api_token: str = ""
    # Derived from app_id when empty
    base_url: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TargetConfig:
        if not data:
            return cls()
        return cls(
            app_id=str(data.get("app_id") or ""),
            api_token=str(data.get("api_token") or ""),
            base_url=data.get("base_url"),
        )


# Environment variable -> (section, attribute)
ENV_OVERRIDES = {
    "SOURCE_ACCOUNT_SID": ("source", "account_sid"),
    "SOURCE_AUTH_TOKEN": ("source", "auth_token"),
    "SOURCE_SERVICE_SID": ("source", "service_sid"),
    "TARGET_APP_ID": ("target", "app_id"),
    "TARGET_API_TOKEN": ("target", "api_token"),
}


@dataclass
class ReconcilerConfig:
    """Typed configuration for the reconciler.

    All fields have defaults; credentials must be supplied either in the
    YAML file or through the environment.
    """

    source: SourceConfig = field(default_factory=SourceConfig)
    target: TargetConfig = field(default_factory=TargetConfig)

    # Paging
    page_size: int = DEFAULT_PAGE_SIZE
    result_limit: int = DEFAULT_RESULT_LIMIT

    # Retry
    max_retries: int = 3
    retry_delay: int = 2
    request_timeout: int = 30

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReconcilerConfig:
        """Create a ReconcilerConfig from a raw config dictionary."""
        return cls(
            source=SourceConfig.from_dict(data.get("source")),
            target=TargetConfig.from_dict(data.get("target")),
            page_size=data.get("page_size", DEFAULT_PAGE_SIZE),
            result_limit=data.get("result_limit", DEFAULT_RESULT_LIMIT),
            max_retries=data.get("max_retries", 3),
            retry_delay=data.get("retry_delay", 2),
            request_timeout=data.get("request_timeout", 30),
        )

    @property
    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            timeout=self.request_timeout,
        )

    def apply_env_overrides(self, environ: dict[str, str] | None = None) -> None:
        """Override credentials with any matching environment variables."""
        env = os.environ if environ is None else environ
        for name, (section, attribute) in ENV_OVERRIDES.items():
            value = env.get(name)
            if value:
                setattr(getattr(self, section), attribute, value)
                log_with_context(
                    logging.DEBUG, f"Using {name} from the environment"
                )

    def validate(self, require_target: bool = True) -> None:
        """Check the configuration is usable.

        Args:
            require_target: Whether target credentials are needed (migration
                runs need them, blocking runs do not).

        Raises:
            ConfigError: On missing credentials or out-of-range paging values.
        """
        missing = [
            name
            for name, value in (
                ("source.account_sid", self.source.account_sid),
                ("source.auth_token", self.source.auth_token),
                ("source.service_sid", self.source.service_sid),
            )
            if not value
        ]
        if require_target:
            missing += [
                name
                for name, value in (
                    ("target.app_id", self.target.app_id),
                    ("target.api_token", self.target.api_token),
                )
                if not value
            ]
        if missing:
            raise ConfigError(
                f"Missing required configuration: {', '.join(missing)}"
            )

        if not 0 < self.page_size <= MAX_PAGE_SIZE:
            raise ConfigError(
                f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {self.page_size}"
            )
        if self.result_limit < 0:
            raise ConfigError(
                f"result_limit must be 0 (no limit) or positive, got {self.result_limit}"
            )


def load_config(config_path: Path) -> ReconcilerConfig:
    """
    Load configuration from YAML file and apply default values.

    Loads the configuration from the specified YAML file, applies default
    values for any missing options and then environment overrides. If the
    file doesn't exist, a warning is logged and defaults are used.

    Args:
        config_path: Path to the config YAML file

    Returns:
        ReconcilerConfig with all necessary defaults applied

    Raises:
        ConfigError: If the file exists but cannot be parsed.
    """
    raw: dict[str, Any] = {}

    if config_path.exists():
        try:
            with open(config_path) as f:
                loaded_config = yaml.safe_load(f)
        except (yaml.YAMLError, OSError) as e:
            raise ConfigError(f"Failed to load config file {config_path}: {e}") from e
        # Handle None result from empty file
        if loaded_config is not None:
            if not isinstance(loaded_config, dict):
                raise ConfigError(f"Config file {config_path} must contain a mapping")
            raw = loaded_config
        log_with_context(logging.INFO, f"Loaded configuration from {config_path}")
    else:
        log_with_context(
            logging.WARNING,
            f"Config file {config_path} not found, using default settings",
        )

    config = ReconcilerConfig.from_dict(raw)
    config.apply_env_overrides()
    return config


def create_default_config(output_path: Path) -> bool:
    """
    Create a default configuration file with placeholder credentials.

    The function will not overwrite an existing configuration file.

    Args:
        output_path: Path where the default config should be saved

    Returns:
        True if the config file was created successfully, False otherwise
    """
    if output_path.exists():
        log_with_context(
            logging.WARNING,
            f"Config file {output_path} already exists, not overwriting",
        )
        return False

    default_config = {
        "source": {
            "account_sid": "ACXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXX",
            "auth_token": "",
            "service_sid": "ISXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXX",
        },
        "target": {"app_id": "", "api_token": ""},
        # Paging options
        "page_size": DEFAULT_PAGE_SIZE,
        "result_limit": DEFAULT_RESULT_LIMIT,
        # Retry options
        "max_retries": 3,
        "retry_delay": 2,
        "request_timeout": 30,
    }

    try:
        with open(output_path, "w") as f:
            yaml.safe_dump(default_config, f, default_flow_style=False, sort_keys=False)
        log_with_context(logging.INFO, f"Created default config file at {output_path}")
        return True
    except OSError as e:
        log_with_context(logging.ERROR, f"Failed to create default config file: {e}")
        return False
