"""Sink configuration.

Settings can come from three places:

* the ``OpenTelemetrySink`` section of the host's infrastructure config,
* a YAML file loaded with :func:`load_config_file`,
* the standard ``OTEL_EXPORTER_OTLP_*`` environment variables.

Keys written in the host's PascalCase style (``Endpoint``, ``Protocol``,
``TimeoutMilliseconds``) are accepted alongside snake_case keys. Invalid values
raise :class:`~loadstats_sink.configuration_error.ConfigurationError` instead of
falling back to defaults.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .configuration_error import ConfigurationError

__all__ = [
    "CONFIG_SECTION",
    "DEFAULT_GRPC_ENDPOINT",
    "DEFAULT_HTTP_ENDPOINT",
    "SinkConfig",
    "load_config_file",
]

logger = logging.getLogger(__name__)

CONFIG_SECTION = "OpenTelemetrySink"
DEFAULT_GRPC_ENDPOINT = "http://localhost:4317"
DEFAULT_HTTP_ENDPOINT = "http://localhost:4318/v1/metrics"

PROTOCOL_GRPC = "grpc"
PROTOCOL_HTTP_PROTOBUF = "http/protobuf"

_PROTOCOL_ALIASES = {
    "grpc": PROTOCOL_GRPC,
    "http/protobuf": PROTOCOL_HTTP_PROTOBUF,
    "httpprotobuf": PROTOCOL_HTTP_PROTOBUF,
    "http_protobuf": PROTOCOL_HTTP_PROTOBUF,
    "http": PROTOCOL_HTTP_PROTOBUF,
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

# OTLP exporter options hosts keep in the same section that have no effect here.
_IGNORED_HOST_KEYS = frozenset(
    {"export_processor_type", "batch_export_processor_options", "http_client_factory"}
)

OTLP_METRICS_PATH = "/v1/metrics"


class SinkConfig(BaseModel):
    """Validated settings for the sink and the backend it drives."""

    backend: str = Field(
        default="opentelemetry",
        description="Backend type: opentelemetry, prometheus, logging, json_file, memory or composite.",
    )
    endpoint: Optional[str] = Field(
        default=None,
        description="OTLP collector URL. Defaults to the local collector for the chosen protocol.",
    )
    protocol: str = Field(default=PROTOCOL_GRPC, description="OTLP transport: grpc or http/protobuf.")
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=10.0, gt=0)
    insecure: Optional[bool] = Field(default=None)
    service_name: str = Field(default="loadstats-sink", min_length=1)

    prometheus_host: str = Field(default="0.0.0.0")
    prometheus_port: int = Field(default=9464, ge=0, le=65535)
    prometheus_path: str = Field(default="/metrics")

    log_level: Union[str, int] = Field(default="INFO")
    file_path: str = Field(default="metrics.json")

    backends: List["SinkConfig"] = Field(
        default_factory=list,
        description="Child backend configurations used by the composite backend.",
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("backend", mode="before")
    @classmethod
    def _normalise_backend(cls, value: Any) -> str:
        return str(value).strip().lower()

    @field_validator("protocol", mode="before")
    @classmethod
    def _normalise_protocol(cls, value: Any) -> str:
        key = str(value).strip().lower()
        if key not in _PROTOCOL_ALIASES:
            raise ValueError(f"unsupported OTLP protocol '{value}', expected grpc or http/protobuf")
        return _PROTOCOL_ALIASES[key]

    @field_validator("endpoint", mode="before")
    @classmethod
    def _validate_endpoint(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError(f"endpoint must be a string, got {type(value).__name__}")
        endpoint = value.strip()
        if not endpoint:
            return None
        parts = urlsplit(endpoint)
        if parts.scheme not in {"http", "https"} or not parts.hostname:
            raise ValueError(f"endpoint '{value}' is not a valid http(s) URL")
        # Accessing .port validates it.
        _ = parts.port
        return endpoint

    @field_validator("headers", mode="before")
    @classmethod
    def _parse_headers(cls, value: Any) -> Dict[str, str]:
        if value is None:
            return {}
        if isinstance(value, str):
            return _parse_header_string(value)
        if isinstance(value, Mapping):
            return {str(key): str(item) for key, item in value.items()}
        raise ValueError("headers must be a mapping or a 'key=value,key2=value2' string")

    @property
    def resolved_endpoint(self) -> str:
        """Return the configured endpoint or the default for the protocol."""
        if self.endpoint:
            return self.endpoint
        if self.protocol == PROTOCOL_HTTP_PROTOBUF:
            return DEFAULT_HTTP_ENDPOINT
        return DEFAULT_GRPC_ENDPOINT

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SinkConfig":
        """Build a config from a mapping, wrapping validation failures."""
        if not isinstance(data, Mapping):
            raise ConfigurationError(
                f"Sink configuration must be a mapping, got {type(data).__name__}"
            )
        try:
            return cls.model_validate(_normalise_keys(data))
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid sink configuration: {exc}") from exc

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SinkConfig":
        """Build a config from the standard OTLP exporter environment variables."""
        env = os.environ if environ is None else environ
        data: Dict[str, Any] = {}

        protocol = env.get("OTEL_EXPORTER_OTLP_METRICS_PROTOCOL") or env.get("OTEL_EXPORTER_OTLP_PROTOCOL")
        if protocol:
            data["protocol"] = protocol
        signal_endpoint = env.get("OTEL_EXPORTER_OTLP_METRICS_ENDPOINT")
        base_endpoint = env.get("OTEL_EXPORTER_OTLP_ENDPOINT")
        if signal_endpoint:
            data["endpoint"] = signal_endpoint
        elif base_endpoint:
            if _PROTOCOL_ALIASES.get(str(protocol or "").strip().lower()) == PROTOCOL_HTTP_PROTOBUF:
                base_endpoint = _append_metrics_path(base_endpoint)
            data["endpoint"] = base_endpoint
        headers = env.get("OTEL_EXPORTER_OTLP_METRICS_HEADERS") or env.get("OTEL_EXPORTER_OTLP_HEADERS")
        if headers:
            data["headers"] = headers
        timeout = env.get("OTEL_EXPORTER_OTLP_METRICS_TIMEOUT") or env.get("OTEL_EXPORTER_OTLP_TIMEOUT")
        if timeout:
            data["timeout_milliseconds"] = timeout
        service_name = env.get("OTEL_SERVICE_NAME")
        if service_name:
            data["service_name"] = service_name

        return cls.from_mapping(data)

    @classmethod
    def from_infra_config(
        cls,
        infra_config: Optional[Mapping[str, Any]],
        section: str = CONFIG_SECTION,
    ) -> Optional["SinkConfig"]:
        """Return the config stored under ``section``, or ``None`` when absent."""
        if infra_config is None:
            return None
        if not isinstance(infra_config, Mapping):
            raise ConfigurationError(
                f"Infrastructure configuration must be a mapping, got {type(infra_config).__name__}"
            )
        if section not in infra_config:
            return None
        section_data = infra_config[section]
        if section_data is None:
            return None
        if not isinstance(section_data, Mapping):
            raise ConfigurationError(f"Configuration section '{section}' must be a mapping")
        logger.debug("Loaded sink configuration from section %s", section)
        return cls.from_mapping(section_data)


SinkConfig.model_rebuild()


def load_config_file(path: Union[str, Path], section: str = CONFIG_SECTION) -> SinkConfig:
    """Load a sink configuration from a YAML file.

    The file may either hold the settings at its root or nest them under
    ``section``.

    Raises:
        ConfigurationError: If the file cannot be read or does not validate.
    """
    file_path = Path(path)
    try:
        with open(file_path, "r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Failed to load configuration file {file_path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Invalid configuration format in {file_path}")

    logger.debug("Loaded configuration from %s", file_path)
    if section in raw:
        loaded = SinkConfig.from_infra_config(raw, section=section)
        return loaded if loaded is not None else SinkConfig()
    return SinkConfig.from_mapping(raw)


def _snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key.strip()).lower()


def _normalise_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert host-style keys to field names and fold millisecond timeouts."""
    normalised: Dict[str, Any] = {}
    for key, value in data.items():
        name = _snake_case(str(key))
        if name in _IGNORED_HOST_KEYS:
            logger.debug("Ignoring host exporter option %s", key)
            continue
        if name == "timeout_milliseconds":
            try:
                normalised["timeout_seconds"] = float(value) / 1000.0
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"TimeoutMilliseconds must be numeric, got {value!r}") from exc
            continue
        if name == "backends" and isinstance(value, list):
            value = [_normalise_keys(item) if isinstance(item, Mapping) else item for item in value]
        normalised[name] = value
    return normalised


def _parse_header_string(raw: str) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for item in raw.split(","):
        if not item.strip():
            continue
        key, separator, value = item.partition("=")
        if not separator or not key.strip():
            raise ValueError(f"header entry '{item}' is not in key=value form")
        headers[key.strip()] = value.strip()
    return headers


def _append_metrics_path(endpoint: str) -> str:
    """Turn a base ``OTEL_EXPORTER_OTLP_ENDPOINT`` into the HTTP metrics URL."""
    trimmed = endpoint.strip().rstrip("/")
    if trimmed.endswith(OTLP_METRICS_PATH):
        return trimmed
    return trimmed + OTLP_METRICS_PATH
