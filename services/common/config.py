"""Typed, environment-driven configuration for the soundboard services.

A configuration *section* is a :class:`BaseConfig` subclass that lists its
fields as :class:`FieldDefinition` objects. :class:`ConfigBuilder` loads each
section from environment variables and bundles them in a
:class:`ServiceConfig`, which exposes every section as an attribute::

    config = (
        ConfigBuilder.for_service("soundboard")
        .add_config("logging", LoggingConfig)
        .load()
    )
    config.validate()
    config.logging.level
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from services.common.structured_logging import get_logger


logger = get_logger(__name__)

ConfigT = TypeVar("ConfigT", bound="BaseConfig")

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


class ConfigError(Exception):
    """Base exception for configuration-related errors."""


class ValidationError(ConfigError):
    """A field holds a value its definition does not allow."""

    def __init__(self, field_name: str, value: Any, message: str) -> None:
        self.field = field_name
        self.value = value
        self.message = message
        super().__init__(f"Invalid value for '{field_name}': {message}")


class RequiredFieldError(ConfigError):
    """A required field has no value."""

    def __init__(self, field_name: str) -> None:
        self.field = field_name
        super().__init__(f"Missing required configuration field '{field_name}'")


class Environment(Enum):
    """Deployment environment a configuration is loaded for."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


@dataclass
class FieldDefinition:
    """One configuration field: type, default, bounds and source variable."""

    name: str
    field_type: type[Any]
    default: Any = None
    required: bool = False
    description: str = ""
    validator: Callable[[Any], bool] | None = None
    env_var: str | None = None
    choices: list[Any] | None = None
    min_value: int | float | None = None
    max_value: int | float | None = None

    def __post_init__(self) -> None:
        if self.required and self.default is not None:
            raise ValueError(f"Required field '{self.name}' cannot declare a default")
        if self.choices and self.default is not None and self.default not in self.choices:
            raise ValueError(f"Default of '{self.name}' is not one of its choices")

    def problem(self, value: Any) -> str | None:
        """Describe why ``value`` is not acceptable, or return None."""
        accepted: tuple[type[Any], ...] = (self.field_type,)
        if self.field_type is float:
            accepted = (float, int)
        # bool is an int subclass; only bool fields take bools
        if not isinstance(value, accepted) or (
            isinstance(value, bool) and self.field_type is not bool
        ):
            return f"expected {self.field_type.__name__}, got {type(value).__name__}"
        if self.choices and value not in self.choices:
            return f"must be one of {self.choices}"
        if self.min_value is not None and value < self.min_value:
            return f"must be >= {self.min_value}"
        if self.max_value is not None and value > self.max_value:
            return f"must be <= {self.max_value}"
        if self.validator is not None and not self.validator(value):
            return "rejected by custom validator"
        return None


class BaseConfig(ABC):
    """A configuration section.

    Attributes are created from :meth:`get_field_definitions`; keyword
    arguments override the declared defaults.
    """

    def __init__(self, **values: Any) -> None:
        definitions = self.get_field_definitions()
        known = {definition.name for definition in definitions}
        unknown = sorted(set(values) - known)
        if unknown:
            raise TypeError(f"{type(self).__name__} has no fields {unknown}")
        for definition in definitions:
            setattr(self, definition.name, values.get(definition.name, definition.default))

    @classmethod
    @abstractmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        """Fields of this section."""

    def validate(self) -> None:
        for definition in self.get_field_definitions():
            value = getattr(self, definition.name, None)
            if value is None:
                if definition.required:
                    raise RequiredFieldError(definition.name)
                continue
            message = definition.problem(value)
            if message is not None:
                raise ValidationError(definition.name, value, message)

    def to_dict(self) -> dict[str, Any]:
        values = {
            definition.name: getattr(self, definition.name, None)
            for definition in self.get_field_definitions()
        }
        return {name: value for name, value in values.items() if value is not None}

    def __repr__(self) -> str:
        fields = ", ".join(f"{name}={value!r}" for name, value in self.to_dict().items())
        return f"{type(self).__name__}({fields})"


class EnvironmentLoader:
    """Reads section fields from environment variables.

    A field's ``env_var`` wins; otherwise the variable is
    ``<PREFIX>_<FIELD_NAME>`` in upper case.
    """

    def __init__(self, prefix: str = "", environ: Mapping[str, str] | None = None) -> None:
        self.prefix = f"{prefix.upper()}_" if prefix else ""
        self._environ = environ

    def variable_for(self, field_def: FieldDefinition) -> str:
        return field_def.env_var or f"{self.prefix}{field_def.name.upper()}"

    def load_field(self, field_def: FieldDefinition) -> Any:
        environ = os.environ if self._environ is None else self._environ
        variable = self.variable_for(field_def)
        raw_value = environ.get(variable)
        if raw_value is None:
            if field_def.required:
                raise RequiredFieldError(field_def.name)
            return field_def.default
        try:
            return self._convert_value(raw_value, field_def.field_type)
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                field_def.name, raw_value, f"cannot parse {variable}: {exc}"
            ) from exc

    @staticmethod
    def _convert_value(raw_value: str, target_type: type[Any]) -> Any:
        if target_type is bool:
            return raw_value.strip().lower() in _TRUE_VALUES
        if target_type is list:
            return [item.strip() for item in raw_value.split(",") if item.strip()]
        return target_type(raw_value)

    def load_config(self, config_class: type[ConfigT]) -> ConfigT:
        values = {}
        for field_def in config_class.get_field_definitions():
            try:
                values[field_def.name] = self.load_field(field_def)
            except ConfigError as exc:
                logger.error(
                    "config.load_field_failed",
                    field=field_def.name,
                    env_var=self.variable_for(field_def),
                    error=str(exc),
                )
                raise
        return config_class(**values)


class ConfigBuilder:
    """Collects the sections of one service."""

    def __init__(
        self,
        service_name: str,
        environment: Environment = Environment.DEVELOPMENT,
        loader: EnvironmentLoader | None = None,
    ) -> None:
        self.service_name = service_name
        self.environment = environment
        self.loader = loader or EnvironmentLoader(service_name)
        self._sections: dict[str, BaseConfig] = {}

    @classmethod
    def for_service(
        cls, service_name: str, environment: Environment = Environment.DEVELOPMENT
    ) -> ConfigBuilder:
        return cls(service_name, environment)

    def add_config(self, name: str, config_class: type[BaseConfig]) -> ConfigBuilder:
        self._sections[name] = self.loader.load_config(config_class)
        return self

    def load(self) -> ServiceConfig:
        return ServiceConfig(
            service_name=self.service_name,
            environment=self.environment,
            configs=dict(self._sections),
        )


@dataclass
class ServiceConfig:
    """All sections of a service, reachable as attributes (``config.audio``)."""

    service_name: str
    environment: Environment
    configs: Mapping[str, BaseConfig]

    def get_config(self, name: str) -> BaseConfig:
        try:
            return self.configs[name]
        except KeyError:
            raise KeyError(f"Configuration section '{name}' not found") from None

    def validate(self) -> None:
        for name, section in self.configs.items():
            try:
                section.validate()
            except ConfigError as exc:
                logger.error(
                    "config.section_invalid",
                    service=self.service_name,
                    section=name,
                    error=str(exc),
                )
                raise
        logger.debug(
            "config.validated",
            service=self.service_name,
            sections=sorted(self.configs),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_name": self.service_name,
            "environment": self.environment.value,
            "configs": {name: section.to_dict() for name, section in self.configs.items()},
        }

    def __getattr__(self, name: str) -> BaseConfig:
        # only reached for names that are not dataclass fields
        if name.startswith("__") or name == "configs":
            raise AttributeError(name)
        try:
            return self.get_config(name)
        except KeyError as exc:
            raise AttributeError(name) from exc


def create_field_definition(name: str, field_type: type[Any], **options: Any) -> FieldDefinition:
    """Shorthand for :class:`FieldDefinition` with keyword options."""
    return FieldDefinition(name=name, field_type=field_type, **options)


def validate_port(value: int) -> bool:
    return 1 <= value <= 65535


def validate_non_empty(value: str) -> bool:
    return bool(value.strip())


__all__ = [
    "BaseConfig",
    "ConfigBuilder",
    "ConfigError",
    "Environment",
    "EnvironmentLoader",
    "FieldDefinition",
    "RequiredFieldError",
    "ServiceConfig",
    "ValidationError",
    "create_field_definition",
    "validate_non_empty",
    "validate_port",
]
