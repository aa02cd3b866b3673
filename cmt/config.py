"""Configuration models using Pydantic for validation."""
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
import os


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"


class WatchConfig(BaseModel):
    """Sampling loop configuration."""
    targets: List[str] = Field(default_factory=list)
    interval: int = 15  # in base units
    base_unit_s: float = 1.0
    snapshot_path: str = "data"
    socket_timeout_s: Optional[float] = None

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v):
        if v < 1:
            raise ValueError("interval must be at least one base unit")
        return v

    @field_validator("base_unit_s")
    @classmethod
    def validate_base_unit(cls, v):
        if v <= 0:
            raise ValueError("base_unit_s must be positive")
        return v


class DecoderConfig(BaseModel):
    """Metric dump decoding policy."""
    # None keeps the histogram count under the metric's own key
    histogram_count_label: Optional[str] = None


class SelfMetricsConfig(BaseModel):
    """Prometheus endpoint for the sampler's own metrics."""
    enabled: bool = False
    port: int = 9464
    bind_address: str = "127.0.0.1"
    prefix: str = "cmt_"


class ControlAPIConfig(BaseModel):
    """Control API for a running watch."""
    enabled: bool = False
    port: int = 8081
    bind_address: str = "127.0.0.1"


class Config(BaseModel):
    """Root configuration model."""
    model_config = ConfigDict(populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    watch: WatchConfig = Field(default_factory=WatchConfig)
    decoder: DecoderConfig = Field(default_factory=DecoderConfig)
    self_metrics: SelfMetricsConfig = Field(default_factory=SelfMetricsConfig)
    control_api: ControlAPIConfig = Field(default_factory=ControlAPIConfig)


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate configuration from a YAML file, or use defaults."""
    import yaml

    raw_config = {}
    if config_path is not None:
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

    if not isinstance(raw_config, dict):
        raise ValueError(f"Configuration must be a mapping: {config_path}")

    # Apply environment variable overrides
    if env_log_level := os.getenv('CMT_LOG_LEVEL'):
        raw_config.setdefault('global', {})['log_level'] = env_log_level

    if env_snapshot := os.getenv('CMT_SNAPSHOT_PATH'):
        raw_config.setdefault('watch', {})['snapshot_path'] = env_snapshot

    try:
        return Config(**raw_config)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
