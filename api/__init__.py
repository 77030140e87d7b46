# API Module
# HTTP redirect surface of the discovery service

from .discovery_api import create_app, run_api

__all__ = ["create_app", "run_api"]
