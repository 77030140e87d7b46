"""
Discovery Service Runner
Starts the round-robin redirect server on the plain and, if enabled, TLS port
"""

import asyncio
import argparse
import logging

import uvicorn

from api.discovery_api import create_app
from config.settings import DEFAULT_CONFIG_PATH, ServiceConfig, create_registry, load_config
from router.discovery_router import RoundRobinRouter

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def build_servers(config: ServiceConfig):
    """uvicorn servers sharing one app and one round-robin cursor"""
    router = RoundRobinRouter(create_registry(config.registry))
    app = create_app(router)
    discovery = config.discovery

    servers = [
        uvicorn.Server(
            uvicorn.Config(
                app, host=discovery.host, port=discovery.web_service_port, log_level="info"
            )
        )
    ]

    if discovery.tls_enabled:
        if not discovery.tls_certificate_file or not discovery.tls_key_file:
            raise ValueError("tls_certificate_file and tls_key_file are required for TLS")
        # lifespan runs on the plain server only, the registry is started once
        servers.append(
            uvicorn.Server(
                uvicorn.Config(
                    app,
                    host=discovery.host,
                    port=discovery.web_service_port_tls,
                    ssl_certfile=discovery.tls_certificate_file,
                    ssl_keyfile=discovery.tls_key_file,
                    lifespan="off",
                    log_level="info",
                )
            )
        )

    return servers


async def serve(config: ServiceConfig):
    servers = build_servers(config)
    for server in servers:
        logger.info(f"Starting discovery server on port {server.config.port}")
    await asyncio.gather(*(server.serve() for server in servers))


def main():
    parser = argparse.ArgumentParser(description="Broker Discovery Service")
    parser.add_argument(
        "--config", type=str, default=DEFAULT_CONFIG_PATH, help="Path to YAML config"
    )
    parser.add_argument("--port", type=int, help="Override the plain HTTP port")
    args = parser.parse_args()

    config = load_config(args.config)
    if args.port:
        config.discovery.web_service_port = args.port

    asyncio.run(serve(config))


if __name__ == "__main__":
    main()
