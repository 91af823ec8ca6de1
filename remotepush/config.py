"""Configuration models using Pydantic for validation."""
from typing import Dict, List, Optional, Literal
from pydantic import BaseModel, Field, field_validator, model_validator
import os
import socket
from urllib.parse import urlsplit


class BasicAuthConfig(BaseModel):
    """HTTP Basic credentials."""
    username: str
    password: str = ""


class AuthConfig(BaseModel):
    """Authentication for the remote-write endpoint. At most one mode."""
    basic: Optional[BasicAuthConfig] = None
    bearer_token: Optional[str] = None
    bearer_token_file: Optional[str] = None

    @model_validator(mode='after')
    def validate_single_mode(self):
        """Ensure only one authentication mode is configured."""
        modes = [
            name for name, value in (
                ("basic", self.basic),
                ("bearer_token", self.bearer_token),
                ("bearer_token_file", self.bearer_token_file),
            )
            if value
        ]
        if len(modes) > 1:
            raise ValueError(f"Only one auth mode may be configured, got {modes}")
        return self

    @property
    def mode(self) -> Optional[str]:
        if self.basic:
            return "basic"
        if self.bearer_token or self.bearer_token_file:
            return "bearer"
        return None


class RemoteWriteConfig(BaseModel):
    """Remote-write endpoint and identity labels."""
    url: str
    job: str
    instance: str = Field(default_factory=socket.gethostname)
    timeout_s: float = Field(default=30.0, gt=0)
    freshness_window_s: int = Field(default=3600, gt=0)
    headers: Dict[str, str] = Field(default_factory=dict)
    auth: AuthConfig = Field(default_factory=AuthConfig)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Remote-write URL must be http(s), got '{v}'")
        if not urlsplit(v).netloc:
            raise ValueError(f"Remote-write URL has no host: '{v}'")
        return v

    @field_validator('job', 'instance')
    @classmethod
    def validate_identity(cls, v):
        if not v:
            raise ValueError("Identity labels must not be empty")
        return v


class StaticValue(BaseModel):
    """A fixed observation declared in the config file."""
    name: str
    value: float
    labels: Dict[str, str] = Field(default_factory=dict)


class SourceConfig(BaseModel):
    """Configuration for a single metric source."""
    name: str
    type: Literal["system", "stats_file", "directory_scan", "static", "registry"]
    enabled: bool = True
    prefix: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)

    # stats_file / directory_scan
    path: Optional[str] = None

    # directory_scan
    pattern: str = "*"
    recursive: bool = True

    # system
    mountpoints: List[str] = Field(default_factory=lambda: ["/"])
    per_cpu_mode: bool = True
    cpu_interval_s: float = Field(default=0.5, ge=0)

    # static
    values: Optional[List[StaticValue]] = None

    @model_validator(mode='after')
    def validate_type_fields(self):
        """Check the fields each source type needs."""
        if self.type in ("stats_file", "directory_scan") and not self.path:
            raise ValueError(f"Source '{self.name}' of type {self.type} requires 'path'")
        if self.type == "static" and self.values is None:
            raise ValueError(f"Source '{self.name}' of type static requires 'values'")
        return self


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"


class Config(BaseModel):
    """Root configuration model."""
    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    remote_write: RemoteWriteConfig
    sources: List[SourceConfig] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @field_validator('sources')
    @classmethod
    def validate_sources(cls, v):
        """Source names must be unique."""
        names = [s.name for s in v]
        if len(names) != len(set(names)):
            raise ValueError("Source names must be unique")
        return v


def _apply_env_overrides(raw_config: Dict) -> Dict:
    """Fold environment overrides into the raw config, once, at load time."""
    remote_write = raw_config.setdefault('remote_write', {}) or {}
    raw_config['remote_write'] = remote_write

    if env_url := os.getenv('REMOTE_WRITE_URL'):
        remote_write['url'] = env_url

    if env_user := os.getenv('REMOTE_WRITE_USERNAME'):
        remote_write['auth'] = {
            'basic': {
                'username': env_user,
                'password': os.getenv('REMOTE_WRITE_PASSWORD', ''),
            }
        }
    elif env_token := os.getenv('REMOTE_WRITE_BEARER_TOKEN'):
        remote_write['auth'] = {'bearer_token': env_token}

    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config.setdefault('global', {})
        raw_config['global']['log_level'] = env_log_level

    return raw_config


def load_config(config_path: str) -> Config:
    """Load and validate configuration from YAML file."""
    import yaml

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    raw_config = _apply_env_overrides(raw_config)

    try:
        config = Config(**raw_config)
        return config
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
