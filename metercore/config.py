"""Configuration models using Pydantic for validation."""
from typing import Any, Dict, List, Literal, Mapping, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator
import os

from metercore.series import ValueType

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class MetricOptions(BaseModel):
    """Options accepted when creating a metric.

    ``monotonic`` and ``absolute`` left unset take the default of the metric
    kind they are applied to.
    """
    model_config = ConfigDict(frozen=True)

    description: str = ""
    unit: str = "1"
    disabled: bool = False
    value_type: ValueType = ValueType.DOUBLE
    label_keys: List[str] = Field(default_factory=list)
    monotonic: Optional[bool] = None
    absolute: Optional[bool] = None


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}")
        return level


class ExportConfig(BaseModel):
    """Periodic collection and export settings."""
    exporter: Literal["console", "prometheus"] = "console"
    interval_s: float = Field(default=10.0, gt=0)
    prefix: str = ""


class ProviderConfig(BaseModel):
    """Root configuration model."""
    model_config = ConfigDict(populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    resource: Dict[str, str] = Field(default_factory=dict)
    export: ExportConfig = Field(default_factory=ExportConfig)
    meters: List[str] = Field(default_factory=list)

    @field_validator('meters')
    @classmethod
    def validate_meters(cls, v):
        """Meter names must be unique."""
        if len(v) != len(set(v)):
            raise ValueError("Meter names must be unique")
        return v


def resolve_options(
    options: Optional[Union[MetricOptions, Mapping[str, Any]]] = None,
    **overrides
) -> MetricOptions:
    """Merge an options object or dict with keyword overrides."""
    if isinstance(options, MetricOptions):
        if not overrides:
            return options
        merged = options.model_dump()
    else:
        merged = dict(options or {})
    merged.update(overrides)
    return MetricOptions(**merged)


def parse_resource_attributes(raw: str) -> Dict[str, str]:
    """Parse ``k=v,k2=v2`` attribute lists as used by OTEL_RESOURCE_ATTRIBUTES."""
    attributes = {}
    for pair in raw.split(","):
        if "=" in pair:
            k, v = pair.split("=", 1)
            if k.strip():
                attributes[k.strip()] = v.strip()
    return attributes


def load_config(config_path: str) -> ProviderConfig:
    """Load and validate configuration from YAML file."""
    import yaml

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    # Apply environment variable overrides
    if env_attributes := os.getenv('OTEL_RESOURCE_ATTRIBUTES'):
        resource = dict(raw_config.get('resource') or {})
        resource.update(parse_resource_attributes(env_attributes))
        raw_config['resource'] = resource

    if env_log_level := os.getenv('LOG_LEVEL'):
        if 'global' not in raw_config:
            raw_config['global'] = {}
        raw_config['global']['log_level'] = env_log_level

    try:
        config = ProviderConfig(**raw_config)
        return config
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
