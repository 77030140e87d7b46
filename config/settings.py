"""
Settings Module
Loads discovery service and host usage configuration from YAML
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from metrics.host_usage import HostUsage, create_host_usage
from router.instance_registry import (
    BrokerEndpoint,
    HttpInstanceRegistry,
    InstanceRegistry,
    JsonFileInstanceRegistry,
    StaticInstanceRegistry,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/discovery.yaml"


@dataclass
class HostUsageConfig:
    check_interval_minutes: float = 1
    read_timeout_seconds: float = 30.0
    proc_root: str = "/proc"
    net_root: str = "/sys/class/net"


@dataclass
class DiscoveryConfig:
    bind_address: str = "0.0.0.0"
    bind_on_localhost: bool = False
    web_service_port: int = 8080
    web_service_port_tls: int = 8443
    tls_enabled: bool = False
    tls_certificate_file: Optional[str] = None
    tls_key_file: Optional[str] = None

    @property
    def host(self) -> str:
        return "127.0.0.1" if self.bind_on_localhost else self.bind_address


@dataclass
class RegistryConfig:
    type: str = "static"
    brokers: List[Dict[str, Any]] = field(default_factory=list)
    path: str = "config/brokers.json"
    url: Optional[str] = None
    refresh_interval_seconds: float = 5.0


@dataclass
class ServiceConfig:
    host_usage: HostUsageConfig = field(default_factory=HostUsageConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)


def _section(cls, values: Optional[Dict[str, Any]]):
    """Build a config dataclass, ignoring unknown keys"""
    values = values or {}
    known = {k: v for k, v in values.items() if k in cls.__dataclass_fields__}
    unknown = set(values) - set(known)
    if unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**known)


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> ServiceConfig:
    """Load configuration, falling back to defaults when the file is missing"""
    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning(f"Config not found at {config_path}, using defaults")
        data = {}

    return ServiceConfig(
        host_usage=_section(HostUsageConfig, data.get("host_usage")),
        discovery=_section(DiscoveryConfig, data.get("discovery")),
        registry=_section(RegistryConfig, data.get("registry")),
    )


def create_registry(config: RegistryConfig) -> InstanceRegistry:
    """Instantiate the registry named by ``config.type``"""
    if config.type == "static":
        return StaticInstanceRegistry(
            [BrokerEndpoint.from_dict(item) for item in config.brokers]
        )
    if config.type == "file":
        return JsonFileInstanceRegistry(
            config.path, refresh_interval=config.refresh_interval_seconds
        )
    if config.type == "http":
        if not config.url:
            raise ValueError("registry.url is required for the http registry")
        return HttpInstanceRegistry(
            config.url, refresh_interval=config.refresh_interval_seconds
        )
    raise ValueError(f"Unknown registry type: {config.type}")


def create_sampler(config: HostUsageConfig) -> HostUsage:
    return create_host_usage({"proc_root": config.proc_root, "net_root": config.net_root})
