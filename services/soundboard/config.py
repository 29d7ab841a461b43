"""Soundboard service configuration entrypoint using the shared config library."""

from __future__ import annotations

from services.common.config import ConfigBuilder, Environment, ServiceConfig
from services.common.service_configs import (
    AudioConfig,
    DiscordConfig,
    HttpConfig,
    LoggingConfig,
    StorageConfig,
)


SERVICE_NAME = "soundboard"


def load_config(environment: Environment = Environment.DEVELOPMENT) -> ServiceConfig:
    """Load and validate every configuration section from the environment."""
    config = (
        ConfigBuilder.for_service(SERVICE_NAME, environment)
        .add_config("discord", DiscordConfig)
        .add_config("audio", AudioConfig)
        .add_config("storage", StorageConfig)
        .add_config("logging", LoggingConfig)
        .add_config("http", HttpConfig)
        .load()
    )
    config.validate()
    return config


__all__ = ["SERVICE_NAME", "load_config"]
