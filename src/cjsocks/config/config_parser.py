"""Configuration parsing and normalization helpers for cjsocks.

Brief:
  This module contains the configuration-parsing utilities used by the CLI
  entrypoint. It centralizes:
    - reading YAML config files
    - merging environment variables and CLI overrides
    - validation into typed pydantic models

Inputs:
  - YAML config paths, environment mappings and CLI override values

Outputs:
  - AppConfig instances
"""

from __future__ import annotations

import os
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, validator

from ..monitor import DEFAULT_NETWORK_NAME
from ..naming import DEFAULT_BASE_DOMAIN

# Environment variable -> dotted config path.
ENV_OVERRIDES: Dict[str, str] = {
    "CJ_BASE_DOMAIN": "base_domain",
    "CJ_AUTO_ADD": "network.auto_attach",
    "CJ_NETWORK": "network.name",
    "CJ_DOCKER_URL": "docker.url",
    "CJ_LOG_LEVEL": "logging.level",
}


def _normalize_domain(value: Any) -> str:
    """Brief: Normalize a domain so it has no empty labels or outer dots.

    Inputs:
      - value: Raw domain value (any type; None allowed).

    Outputs:
      - str: Lowercased domain such as "docker.local", or "" when empty.
    """

    raw = str(value or "").strip().strip(".")
    parts = [p for p in raw.split(".") if p]
    return ".".join(parts).lower()


class NetworkConfig(BaseModel):
    """Brief: Connectivity network settings.

    Inputs:
      - name: Network shared by the proxy and workloads.
      - auto_attach: Connect newly created workloads to the network.
      - create: Create the network at startup when it does not exist.
    """

    name: str = DEFAULT_NETWORK_NAME
    auto_attach: bool = False
    create: bool = True

    @validator("name", pre=True)
    def _strip_name(cls, v):  # noqa: N805
        text = str(v or "").strip()
        return text or DEFAULT_NETWORK_NAME


class DockerConfig(BaseModel):
    url: Optional[str] = None
    timeout_s: float = Field(default=60.0, gt=0)


class MonitorConfig(BaseModel):
    backoff_initial_s: float = Field(default=1.0, ge=0)
    backoff_max_s: float = Field(default=30.0, ge=0)


class ResolverConfig(BaseModel):
    timeout_ms: int = Field(default=2000, ge=0)
    cache_ttl: int = Field(default=0, ge=0)
    workers: int = Field(default=8, ge=1)


class AppConfig(BaseModel):
    """Brief: Typed top-level configuration.

    Inputs:
      - base_domain: Default base domain appended to workload names.
      - network/docker/monitor/resolver: Section models.
      - logging: Mapping passed to init_logging().

    Outputs:
      - AppConfig instance with normalized values.
    """

    base_domain: str = DEFAULT_BASE_DOMAIN
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    docker: DockerConfig = Field(default_factory=DockerConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    logging: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "forbid"

    @validator("base_domain", pre=True)
    def _normalize_base_domain(cls, v):  # noqa: N805
        return _normalize_domain(v) or DEFAULT_BASE_DOMAIN


def _parse_yaml_value(text: str) -> Any:
    """Brief: Parse an environment/CLI value as YAML.

    Inputs:
      - text: String containing a YAML scalar.

    Outputs:
      - Any: Parsed value (falls back to the original string on parse errors).
    """

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def _set_path(cfg: Dict[str, Any], dotted: str, value: Any) -> None:
    """Set cfg[a][b] = value for dotted path "a.b", creating mappings as needed."""

    parts = dotted.split(".")
    node = cfg
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value


def load_config_file(config_path: Optional[str]) -> Dict[str, Any]:
    """Brief: Read a YAML configuration file.

    Inputs:
      - config_path: Path to the YAML file, or None for an empty config.

    Outputs:
      - dict: Parsed mapping.

    Raises:
      - ValueError: When the file is not valid YAML or its root is not a
        mapping.
      - OSError: When the file cannot be read.
    """

    if not config_path:
        return {}
    with open(config_path, "r") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc
    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")
    return cfg


def apply_environment(
    cfg: Dict[str, Any], environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """Brief: Overlay CJ_* environment variables onto a raw config mapping.

    Inputs:
      - cfg: Raw config mapping (mutated in-place).
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - dict: The same cfg mapping.

    Notes:
      - Empty values are ignored so CJ_BASE_DOMAIN="" keeps the default.
      - Values are parsed as YAML so CJ_AUTO_ADD=true yields a boolean.
    """

    env = os.environ if environ is None else environ
    for key, path in ENV_OVERRIDES.items():
        raw = env.get(key)
        if raw is None or not str(raw).strip():
            continue
        if path == "network.auto_attach":
            _set_path(cfg, path, _parse_yaml_value(str(raw)))
        else:
            _set_path(cfg, path, str(raw).strip())
    return cfg


def apply_overrides(
    cfg: Dict[str, Any],
    *,
    base_domain: Optional[str] = None,
    auto_attach: Optional[bool] = None,
    network: Optional[str] = None,
    docker_url: Optional[str] = None,
) -> Dict[str, Any]:
    """Overlay CLI values that were explicitly given onto cfg (in-place)."""

    if base_domain:
        _set_path(cfg, "base_domain", base_domain)
    if auto_attach is not None:
        _set_path(cfg, "network.auto_attach", bool(auto_attach))
    if network:
        _set_path(cfg, "network.name", network)
    if docker_url:
        _set_path(cfg, "docker.url", docker_url)
    return cfg


def build_config(cfg: Mapping[str, Any]) -> AppConfig:
    """Brief: Validate a raw mapping into an AppConfig.

    Inputs:
      - cfg: Raw configuration mapping.

    Outputs:
      - AppConfig.

    Raises:
      - ValueError: With a readable message when validation fails.
    """

    try:
        return AppConfig(**dict(cfg))
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def parse_config(
    config_path: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> AppConfig:
    """Brief: Load, merge and validate configuration.

    Inputs:
      - config_path: Optional YAML file path.
      - environ: Optional environment mapping (defaults to os.environ).
      - overrides: CLI values accepted by apply_overrides().

    Outputs:
      - AppConfig.

    Precedence:
      - CLI overrides environment overrides the config file overrides
        built-in defaults.

    Example:
      >>> parse_config(environ={"CJ_BASE_DOMAIN": "Docker."}).base_domain
      'docker'
    """

    cfg = load_config_file(config_path)
    apply_environment(cfg, environ)
    apply_overrides(cfg, **overrides)
    return build_config(cfg)
