# Router Module
# Round-robin broker discovery and the registries it reads from

from .discovery_router import (
    BackendUnavailable,
    DiscoveryError,
    InboundRequest,
    NoInstanceAvailable,
    RoundRobinRouter,
)
from .instance_registry import (
    BrokerEndpoint,
    HttpInstanceRegistry,
    InstanceRegistry,
    JsonFileInstanceRegistry,
    PollingInstanceRegistry,
    StaticInstanceRegistry,
)

__all__ = [
    "BackendUnavailable",
    "BrokerEndpoint",
    "DiscoveryError",
    "HttpInstanceRegistry",
    "InboundRequest",
    "InstanceRegistry",
    "JsonFileInstanceRegistry",
    "NoInstanceAvailable",
    "PollingInstanceRegistry",
    "RoundRobinRouter",
    "StaticInstanceRegistry",
]
