"""
pytest configuration and fixtures.
"""

import os
from pathlib import Path
from typing import Dict, Optional
from unittest.mock import MagicMock, patch

import pytest

from router.instance_registry import BrokerEndpoint, StaticInstanceRegistry

MB = 1024 * 1024


class FakeHost:
    """procfs/sysfs tree under a temporary directory"""

    def __init__(self, root: Path):
        self.root = root
        self.proc_root = root / "proc"
        self.net_root = root / "sys" / "class" / "net"
        self.devices = root / "sys" / "devices"
        self.proc_root.mkdir(parents=True)
        self.net_root.mkdir(parents=True)

    def add_nic(
        self,
        name: str,
        speed: Optional[int] = 1000,
        tx_bytes: int = 0,
        rx_bytes: int = 0,
        virtual: bool = False,
    ) -> Path:
        parent = "virtual" if virtual else "pci0000:00/0000:00:03.0"
        device = self.devices / parent / "net" / name
        (device / "statistics").mkdir(parents=True)
        if speed is not None:
            (device / "speed").write_text(f"{speed}\n")
        os.symlink(device, self.net_root / name)
        self.set_bytes(name, tx_bytes=tx_bytes, rx_bytes=rx_bytes)
        return device

    def set_bytes(self, name: str, tx_bytes: int, rx_bytes: int) -> None:
        statistics = self.net_root / name / "statistics"
        (statistics / "tx_bytes").write_text(f"{tx_bytes}\n")
        (statistics / "rx_bytes").write_text(f"{rx_bytes}\n")

    def set_cpu(self, user: int, system: int, idle: int, iowait: int = 0) -> None:
        (self.proc_root / "stat").write_text(
            f"cpu  {user} 0 {system} {idle} {iowait} 0 0 0 0 0\n"
            f"cpu0 {user} 0 {system} {idle} {iowait} 0 0 0 0 0\n"
            "intr 12345\n"
        )

    def remove_cpu(self) -> None:
        (self.proc_root / "stat").unlink()


@pytest.fixture
def fake_host(tmp_path: Path) -> FakeHost:
    return FakeHost(tmp_path)


@pytest.fixture
def mock_psutil():
    """4 processors, 8 GB total with 2 GB free"""
    with patch("metrics.host_usage.psutil") as psutil_mock:
        psutil_mock.cpu_count.return_value = 4
        psutil_mock.virtual_memory.return_value = MagicMock(
            total=8192 * MB, free=2048 * MB
        )
        yield psutil_mock


@pytest.fixture
def clock():
    """Controllable ``time.time`` for the sampler"""
    state: Dict[str, float] = {"now": 1_000_000.0}

    with patch("metrics.host_usage.time") as time_mock:
        time_mock.time.side_effect = lambda: state["now"]
        yield state


@pytest.fixture
def brokers():
    return [
        BrokerEndpoint(
            web_service_url=f"http://broker-{name}.example.com:8080",
            web_service_url_tls=f"https://broker-{name}.example.com:8443",
            broker_id=name,
        )
        for name in ("a", "b", "c")
    ]


@pytest.fixture
def registry(brokers) -> StaticInstanceRegistry:
    return StaticInstanceRegistry(brokers)
