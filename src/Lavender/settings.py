# === NAVMAP v1 ===
# {
#   "module": "Lavender.settings",
#   "purpose": "Configuration models for hosts, clusters, fsck policies and logging, plus YAML loading and env overrides",
#   "sections": [
#     {"id": "policies", "name": "AggregatePolicy / GcPolicy / HashTool", "anchor": "POL", "kind": "api"},
#     {"id": "loggingconfiguration", "name": "LoggingConfiguration", "anchor": "class-loggingconfiguration", "kind": "class"},
#     {"id": "hostsettings", "name": "HostSettings", "anchor": "class-hostsettings", "kind": "class"},
#     {"id": "docrootsettings", "name": "DocrootSettings", "anchor": "class-docrootsettings", "kind": "class"},
#     {"id": "clustersettings", "name": "ClusterSettings", "anchor": "class-clustersettings", "kind": "class"},
#     {"id": "fscksettings", "name": "FsckSettings", "anchor": "class-fscksettings", "kind": "class"},
#     {"id": "lavenderconfig", "name": "LavenderConfig", "anchor": "class-lavenderconfig", "kind": "class"},
#     {"id": "environmentoverrides", "name": "EnvironmentOverrides", "anchor": "class-environmentoverrides", "kind": "class"},
#     {"id": "load-config", "name": "load_config", "anchor": "function-load-config", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models, YAML parsing, and environment overrides.

A configuration file lists the hosts that carry docroot replicas, groups them
into clusters together with the docroots they serve, and sets fsck policy::

    hosts:
      - name: web1
        transport: ssh
        login: wwwrun
      - name: staging
        transport: local
        root: /srv/lavender
    clusters:
      - name: prod
        hosts: [web1, web2]
        docroots:
          - name: web
            docroot: home/wwwrun/htdocs/web
            indexes: home/wwwrun/indexes/web
    fsck:
      md5check: true
      hash_tool: md5sum

Environment variables prefixed with ``LAVENDER_`` override the ``fsck`` and
``logging`` sections.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .docroot import Cluster, Docroot, layout_conflict
from .errors import ConfigError

__all__ = [
    "AggregatePolicy",
    "ClusterSettings",
    "DocrootSettings",
    "EnvironmentOverrides",
    "FsckSettings",
    "GcPolicy",
    "HashTool",
    "HostSettings",
    "LavenderConfig",
    "LoggingConfiguration",
    "MAX_BATCH_SIZE",
    "apply_env_overrides",
    "load_config",
    "load_raw_yaml",
]

MAX_BATCH_SIZE = 500
LOG_DIR = Path.home() / ".lavender" / "logs"


class AggregatePolicy(str, Enum):
    """What a mismatching ``.all.idx`` means for the run."""

    PROBLEM = "problem"
    QUARANTINE = "quarantine"
    REPAIR = "repair"


class GcPolicy(str, Enum):
    """Which open problems forbid garbage collection on a replica."""

    DOCROOT = "docroot"
    REPLICA = "replica"


class HashTool(str, Enum):
    """Digest tool available on the hosts."""

    MD5SUM = "md5sum"
    MD5 = "md5"


class LoggingConfiguration(BaseModel):
    """Logging-related configuration for fsck runs."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=100, gt=0, description="Maximum size of rotated log files")
    retention_days: int = Field(default=30, ge=1, description="Retention period for log files")
    log_dir: Optional[Path] = Field(default=None, description="Directory for JSON log files")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = {"validate_assignment": True}


class HostSettings(BaseModel):
    """One host carrying docroot replicas."""

    name: str = Field(min_length=1)
    transport: str = Field(default="ssh", description="'local' or 'ssh'")
    root: str = Field(default="/", description="Directory docroot paths are relative to")
    login: Optional[str] = None
    port: Optional[int] = Field(default=None, gt=0, le=65535)
    ssh_options: List[str] = Field(default_factory=lambda: ["BatchMode=yes"])
    timeout_sec: Optional[float] = Field(default=None, gt=0)

    model_config = {"extra": "forbid"}


class DocrootSettings(BaseModel):
    """A docroot as laid out on every host of a cluster."""

    name: str = Field(min_length=1)
    docroot: str = Field(description="Relative path of the asset tree")
    indexes: str = Field(description="Relative path of the index directory")

    @field_validator("docroot", "indexes")
    @classmethod
    def normalize_relative(cls, value: str) -> str:
        """Strip surrounding slashes; paths are relative to the host root."""
        stripped = value.strip().strip("/")
        if not stripped:
            raise ValueError("path must not be empty")
        if ".." in stripped.split("/"):
            raise ValueError("path must not contain '..'")
        return stripped

    @model_validator(mode="after")
    def check_layout(self) -> "DocrootSettings":
        """Index directories must stay outside the asset tree."""
        problem = layout_conflict(self.docroot, self.indexes)
        if problem is not None:
            raise ValueError(problem)
        return self

    def to_docroot(self) -> Docroot:
        return Docroot(name=self.name, docroot=self.docroot, indexes=self.indexes)

    model_config = {"extra": "forbid"}


class ClusterSettings(BaseModel):
    """Hosts that replicate the same set of docroots."""

    name: str = Field(min_length=1)
    hosts: List[str] = Field(min_length=1)
    docroots: List[DocrootSettings] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


class FsckSettings(BaseModel):
    """Checks and policies applied by ``lavender fsck``."""

    md5check: bool = Field(default=False, description="Re-hash published files")
    hash_tool: HashTool = Field(default=HashTool.MD5SUM)
    gc: bool = Field(default=False, description="Delete unreferenced files")
    gc_dry_run: bool = Field(default=False, description="Report what gc would delete")
    aggregate_policy: AggregatePolicy = Field(default=AggregatePolicy.PROBLEM)
    gc_policy: GcPolicy = Field(default=GcPolicy.DOCROOT)
    batch_size: int = Field(default=MAX_BATCH_SIZE, ge=1, le=MAX_BATCH_SIZE)
    workers: int = Field(default=1, ge=1, le=32, description="Docroots checked concurrently")
    max_connections: int = Field(default=4, ge=1, le=64)

    model_config = {"validate_assignment": True, "extra": "forbid"}


class LavenderConfig(BaseModel):
    """Root configuration document."""

    hosts: List[HostSettings] = Field(default_factory=list)
    clusters: List[ClusterSettings] = Field(default_factory=list)
    fsck: FsckSettings = Field(default_factory=FsckSettings)
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def check_references(self) -> "LavenderConfig":
        """Every cluster host must be declared, names must be unique."""
        known = [host.name for host in self.hosts]
        if len(set(known)) != len(known):
            raise ValueError("host names must be unique")
        names = [cluster.name for cluster in self.clusters]
        if len(set(names)) != len(names):
            raise ValueError("cluster names must be unique")
        for cluster in self.clusters:
            missing = [name for name in cluster.hosts if name not in known]
            if missing:
                raise ValueError(f"cluster '{cluster.name}' references unknown hosts: {missing}")
        return self

    def host(self, name: str) -> HostSettings:
        for host in self.hosts:
            if host.name == name:
                return host
        raise ConfigError(f"unknown host: {name}")

    def cluster(self, name: str) -> Cluster:
        """Resolve cluster ``name`` into its hosts and docroots."""
        for cluster in self.clusters:
            if cluster.name == name:
                return Cluster(
                    name=cluster.name,
                    hosts=tuple(self.host(host) for host in cluster.hosts),
                    docroots=tuple(docroot.to_docroot() for docroot in cluster.docroots),
                )
        raise ConfigError(
            f"unknown cluster: {name} (known: {', '.join(c.name for c in self.clusters) or 'none'})"
        )


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    md5check: Optional[bool] = None
    hash_tool: Optional[HashTool] = None
    gc: Optional[bool] = None
    workers: Optional[int] = None
    max_connections: Optional[int] = None
    log_level: Optional[str] = None
    log_dir: Optional[Path] = None

    model_config = SettingsConfigDict(env_prefix="LAVENDER_", case_sensitive=False, extra="ignore")


def apply_env_overrides(config: LavenderConfig) -> Dict[str, object]:
    """Mutate ``config`` in-place from ``LAVENDER_*`` variables; return what changed."""

    env = EnvironmentOverrides()
    applied = env.model_dump(exclude_none=True)
    logger = logging.getLogger("Lavender")
    for key, value in applied.items():
        if key == "log_level":
            config.logging.level = str(value)
        elif key == "log_dir":
            config.logging.log_dir = Path(value)
        else:
            setattr(config.fsck, key, value)
        logger.debug("config override from environment", extra={"extra_fields": {"key": key}})
    return applied


def load_raw_yaml(config_path: Path) -> Mapping[str, Any]:
    """Read ``config_path`` and return its top-level mapping."""

    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Configuration file '{config_path}' contains invalid YAML") from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError("Configuration file must contain a mapping at the root")
    return data


def load_config(config_path: Path, *, env_overrides: bool = True) -> LavenderConfig:
    """Load and validate a configuration file."""

    raw = load_raw_yaml(config_path)
    try:
        config = LavenderConfig.model_validate(raw)
    except PydanticValidationError as exc:
        raise ConfigError(f"Configuration file '{config_path}' is invalid:\n{exc}") from exc
    if env_overrides:
        try:
            apply_env_overrides(config)
        except PydanticValidationError as exc:
            raise ConfigError(f"Invalid LAVENDER_* environment override:\n{exc}") from exc
    return config
