"""
Instance Registry Module
Sources of the live list of brokers the discovery router can redirect to
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BrokerEndpoint:
    """Plain and TLS web service URLs of one broker"""

    web_service_url: Optional[str]
    web_service_url_tls: Optional[str] = None
    broker_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BrokerEndpoint":
        """Accepts both snake_case and load-report camelCase keys"""
        return cls(
            web_service_url=data.get("web_service_url", data.get("webServiceUrl")),
            web_service_url_tls=data.get(
                "web_service_url_tls", data.get("webServiceUrlTls")
            ),
            broker_id=data.get("broker_id", data.get("name")),
        )


def parse_brokers(payload: Any) -> List[BrokerEndpoint]:
    """Accepts a bare list or a ``{"brokers": [...]}`` document"""
    if isinstance(payload, dict):
        payload = payload.get("brokers", [])
    if not isinstance(payload, list):
        raise ValueError(f"Expected a list of brokers, got {type(payload).__name__}")
    return [BrokerEndpoint.from_dict(item) for item in payload]


class InstanceRegistry(ABC):
    """Live list of healthy brokers"""

    @abstractmethod
    def list_healthy_instances(self) -> List[BrokerEndpoint]:
        """Current brokers, possibly empty. Must not block."""

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


class StaticInstanceRegistry(InstanceRegistry):
    """In-memory registry, updated by whoever owns it"""

    def __init__(self, instances: Optional[List[BrokerEndpoint]] = None):
        self._instances: List[BrokerEndpoint] = list(instances or [])

    def set_instances(self, instances: List[BrokerEndpoint]) -> None:
        # replace the reference so readers never see a half-built list
        self._instances = list(instances)

    def list_healthy_instances(self) -> List[BrokerEndpoint]:
        return self._instances


class PollingInstanceRegistry(StaticInstanceRegistry):
    """
    Refreshes the cached broker list every ``refresh_interval`` seconds in a
    background task. A failed refresh keeps the previous list.
    """

    def __init__(self, refresh_interval: float = 5.0):
        super().__init__()
        self.refresh_interval = refresh_interval
        self.running = False
        self._task: Optional[asyncio.Task] = None

    @abstractmethod
    async def refresh(self) -> bool:
        """Refresh the broker list once, returns whether the cache was updated"""

    @property
    def source(self) -> str:
        return type(self).__name__

    async def _poll(self) -> None:
        while self.running:
            await self.refresh()
            await asyncio.sleep(self.refresh_interval)

    async def start(self) -> None:
        """Start polling in the background"""
        self.running = True
        self._task = asyncio.create_task(self._poll())
        logger.info(f"Polling broker list from {self.source}")

    async def stop(self) -> None:
        """Stop polling"""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


class JsonFileInstanceRegistry(PollingInstanceRegistry):
    """
    Registry backed by a JSON file. The file is read once on construction
    and re-read every ``refresh_interval`` seconds while started, so edits
    to the broker list are picked up without a restart.
    """

    def __init__(self, path: str, refresh_interval: float = 5.0):
        super().__init__(refresh_interval)
        self.path = path
        self.reload()

    @property
    def source(self) -> str:
        return self.path

    def reload(self) -> bool:
        """Re-read the file, returns whether the cache was updated"""
        try:
            with open(self.path, "r") as f:
                brokers = parse_brokers(json.load(f))
        except FileNotFoundError:
            logger.warning(f"Broker list not found at {self.path}, no brokers available")
            brokers = []
        except OSError as e:
            logger.warning(f"Cannot read broker list {self.path}, no brokers available: {e}")
            brokers = []
        except (ValueError, AttributeError) as e:
            logger.error(f"Invalid broker list in {self.path}: {e}")
            return False

        if brokers == self._instances:
            logger.debug(f"Broker list in {self.path} unchanged")
        else:
            logger.info(f"Loaded {len(brokers)} brokers from {self.path}")
        self.set_instances(brokers)
        return True

    async def refresh(self) -> bool:
        return self.reload()


class HttpInstanceRegistry(PollingInstanceRegistry):
    """Polls a JSON endpoint for the broker list and serves the cached result"""

    def __init__(self, url: str, refresh_interval: float = 5.0, timeout: float = 5.0):
        super().__init__(refresh_interval)
        self.url = url
        self.timeout = timeout
        self._http_session: Optional[aiohttp.ClientSession] = None

    @property
    def source(self) -> str:
        return self.url

    async def refresh(self) -> bool:
        """Fetch the broker list once, returns whether the cache was updated"""
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()

        try:
            async with self._http_session.get(
                self.url, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status != 200:
                    logger.warning(
                        f"Broker list request to {self.url} returned {response.status}"
                    )
                    return False
                brokers = parse_brokers(await response.json())
        except asyncio.TimeoutError:
            logger.warning(f"Broker list request to {self.url} timed out")
            return False
        except (aiohttp.ClientError, ValueError, AttributeError) as e:
            logger.error(f"Failed to refresh broker list from {self.url}: {e}")
            return False

        self.set_instances(brokers)
        logger.debug(f"Refreshed {len(brokers)} brokers from {self.url}")
        return True

    async def stop(self) -> None:
        """Stop polling and close the HTTP session"""
        await super().stop()
        if self._http_session and not self._http_session.closed:
            await self._http_session.close()
