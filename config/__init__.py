# Configuration Module
# YAML backed settings for the discovery service and host usage sampler

from .settings import ServiceConfig, create_registry, create_sampler, load_config

__all__ = ["ServiceConfig", "create_registry", "create_sampler", "load_config"]
