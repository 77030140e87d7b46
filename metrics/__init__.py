# Metrics Module
# Host resource usage sampling from OS counters

from .host_usage import (
    GenericHostUsage,
    HostUsage,
    LinuxHostUsage,
    ResourceUsage,
    SystemResourceUsage,
    create_host_usage,
)
from .scheduler import HostUsageScheduler

__all__ = [
    "GenericHostUsage",
    "HostUsage",
    "HostUsageScheduler",
    "LinuxHostUsage",
    "ResourceUsage",
    "SystemResourceUsage",
    "create_host_usage",
]
