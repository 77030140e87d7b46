"""
Host Usage Module
Samples CPU, memory and NIC utilization of the local host from OS counters
"""

import os
import time
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import psutil

logger = logging.getLogger(__name__)

BYTES_TO_KILOBITS = 8 / 1024
MEGABYTE = 1024 * 1024


@dataclass(frozen=True)
class ResourceUsage:
    """A used/limit pair for one resource"""

    usage: float = 0.0
    limit: float = 0.0

    def percent_usage(self) -> float:
        if self.limit <= 0:
            return 0.0
        return self.usage / self.limit * 100


@dataclass(frozen=True)
class SystemResourceUsage:
    """
    Immutable usage snapshot published once per sampling cycle.

    CPU is in percentage-equivalent units (100 per processor), memory in
    megabytes and bandwidth in kbit/s. ``usage <= limit`` is best effort only.
    """

    cpu: ResourceUsage = field(default_factory=ResourceUsage)
    memory: ResourceUsage = field(default_factory=ResourceUsage)
    bandwidth_in: ResourceUsage = field(default_factory=ResourceUsage)
    bandwidth_out: ResourceUsage = field(default_factory=ResourceUsage)

    @property
    def cpu_used(self) -> float:
        return self.cpu.usage

    @property
    def cpu_limit(self) -> float:
        return self.cpu.limit

    @property
    def memory_used(self) -> float:
        return self.memory.usage

    @property
    def memory_limit(self) -> float:
        return self.memory.limit

    @property
    def network_in_used(self) -> float:
        return self.bandwidth_in.usage

    @property
    def network_in_limit(self) -> float:
        return self.bandwidth_in.limit

    @property
    def network_out_used(self) -> float:
        return self.bandwidth_out.usage

    @property
    def network_out_limit(self) -> float:
        return self.bandwidth_out.limit

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        """Export snapshot as JSON-serializable dict"""
        return {
            name: {"usage": value.usage, "limit": value.limit}
            for name, value in (
                ("cpu", self.cpu),
                ("memory", self.memory),
                ("bandwidth_in", self.bandwidth_in),
                ("bandwidth_out", self.bandwidth_out),
            )
        }


@dataclass(frozen=True)
class CpuStat:
    """Cumulative CPU cycle counters"""

    total_time: int
    usage: int


@dataclass
class HostUsageCounters:
    """Raw counters of the previous cycle, used to compute deltas"""

    last_collection: Optional[float] = None
    last_total_nic_tx_kb: float = 0.0
    last_total_nic_rx_kb: float = 0.0
    last_cpu_stat: Optional[CpuStat] = None


def rate_per_second(current: float, previous: float, elapsed_seconds: float) -> float:
    """Counter delta divided by elapsed time; zero when no time elapsed"""
    if elapsed_seconds <= 0:
        return 0.0
    return (current - previous) / elapsed_seconds


def cpu_usage_between(previous: CpuStat, current: CpuStat, cpu_limit: float) -> float:
    """Busy fraction between two CPU samples scaled to the CPU limit"""
    time_diff = current.total_time - previous.total_time
    if time_diff == 0:
        return 0.0
    usage_diff = current.usage - previous.usage
    return (usage_diff / time_diff) * cpu_limit


class HostUsage(ABC):
    """
    Base sampler. Subclasses provide the raw counter reads, the cycle
    arithmetic lives here.

    Counters are assumed monotonically increasing between two cycles; a
    64-bit counter wrapping around between samples is not detected.
    """

    def __init__(self):
        self.counters = HostUsageCounters()
        self.cpu_limit = float(100 * (psutil.cpu_count() or 1))
        self._usage = SystemResourceUsage(cpu=ResourceUsage(0.0, self.cpu_limit))

    def get_host_usage(self) -> SystemResourceUsage:
        """Most recently published snapshot"""
        return self._usage

    @abstractmethod
    def get_nics(self) -> List[str]:
        """Physical NIC names to account for"""

    @abstractmethod
    def get_total_nic_limit_kbps(self, nics: List[str]) -> float:
        """Aggregate link capacity in kbit/s"""

    @abstractmethod
    def get_total_nic_usage_kb(self, nics: List[str]) -> Tuple[float, float]:
        """Cumulative (tx, rx) kilobits summed across NICs"""

    @abstractmethod
    def get_total_cpu_usage(self) -> Optional[CpuStat]:
        """System-wide CPU counters, None when unreadable"""

    def get_memory_usage(self) -> ResourceUsage:
        """Physical memory used/total in megabytes"""
        try:
            memory = psutil.virtual_memory()
        except Exception as e:
            logger.error(f"Failed to read physical memory size: {e}")
            return ResourceUsage(0.0, 0.0)

        total = memory.total / MEGABYTE
        free = memory.free / MEGABYTE
        return ResourceUsage(total - free, total)

    def calculate_host_usage(self) -> SystemResourceUsage:
        """Run one sampling cycle and publish the resulting snapshot"""
        try:
            usage = self._compute_usage()
        except Exception:
            logger.exception("Host usage cycle failed, keeping previous snapshot")
            return self._usage

        self._usage = usage
        return usage

    def _compute_usage(self) -> SystemResourceUsage:
        nics = self.get_nics()
        total_nic_limit = self.get_total_nic_limit_kbps(nics)
        total_nic_tx_kb, total_nic_rx_kb = self.get_total_nic_usage_kb(nics)
        cpu_stat = self.get_total_cpu_usage()
        memory = self.get_memory_usage()
        now = time.time()

        counters = self.counters
        if counters.last_collection is None:
            usage = SystemResourceUsage(
                cpu=ResourceUsage(0.0, self.cpu_limit),
                memory=memory,
                bandwidth_in=ResourceUsage(0.0, total_nic_limit),
                bandwidth_out=ResourceUsage(0.0, total_nic_limit),
            )
        else:
            elapsed_seconds = now - counters.last_collection
            nic_usage_tx = rate_per_second(
                total_nic_tx_kb, counters.last_total_nic_tx_kb, elapsed_seconds
            )
            nic_usage_rx = rate_per_second(
                total_nic_rx_kb, counters.last_total_nic_rx_kb, elapsed_seconds
            )

            # Two non-null samples are needed, otherwise keep the last CPU figure
            cpu = self._usage.cpu
            if cpu_stat is not None and counters.last_cpu_stat is not None:
                cpu = ResourceUsage(
                    cpu_usage_between(counters.last_cpu_stat, cpu_stat, self.cpu_limit),
                    self.cpu_limit,
                )

            usage = SystemResourceUsage(
                cpu=cpu,
                memory=memory,
                bandwidth_in=ResourceUsage(nic_usage_rx, total_nic_limit),
                bandwidth_out=ResourceUsage(nic_usage_tx, total_nic_limit),
            )

        counters.last_total_nic_tx_kb = total_nic_tx_kb
        counters.last_total_nic_rx_kb = total_nic_rx_kb
        counters.last_cpu_stat = cpu_stat
        counters.last_collection = now
        return usage


class LinuxHostUsage(HostUsage):
    """Reads counters from procfs and sysfs"""

    def __init__(self, proc_root: str = "/proc", net_root: str = "/sys/class/net"):
        super().__init__()
        self.proc_root = Path(proc_root)
        self.net_root = Path(net_root)

    def get_nics(self) -> List[str]:
        try:
            entries = sorted(self.net_root.iterdir())
        except OSError as e:
            logger.error(f"Failed to find NICs under {self.net_root}: {e}")
            return []

        return [path.name for path in entries if self._is_physical_nic(path)]

    def _is_physical_nic(self, path: Path) -> bool:
        try:
            target = Path(os.readlink(path)) if path.is_symlink() else path
        except OSError as e:
            logger.error(f"Failed to read link target for NIC {path}: {e}")
            return False

        if "/virtual/" in target.as_posix():
            return False

        try:
            (path / "speed").read_bytes()
        except OSError:
            # wireless nics don't report speed
            return False
        return True

    def _read_nic_value(self, nic: str, relative: str) -> float:
        path = self.net_root / nic / relative
        try:
            return float(path.read_text().strip())
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read {relative} for NIC {nic}: {e}")
            return 0.0

    def get_total_nic_limit_kbps(self, nics: List[str]) -> float:
        # speed is reported in Mbit/s, -1 when the link is down
        speeds = [self._read_nic_value(nic, "speed") for nic in nics]
        return sum(max(0.0, speed) for speed in speeds) * 1024

    def get_total_nic_usage_kb(self, nics: List[str]) -> Tuple[float, float]:
        tx = sum(self._read_nic_value(nic, "statistics/tx_bytes") for nic in nics)
        rx = sum(self._read_nic_value(nic, "statistics/rx_bytes") for nic in nics)
        return tx * BYTES_TO_KILOBITS, rx * BYTES_TO_KILOBITS

    def get_total_cpu_usage(self) -> Optional[CpuStat]:
        """
        Parse the aggregate line of /proc/stat:

            cpu  user   nice system idle    iowait irq softirq steal guest guest_nice
            cpu  317808 128  58637  2503692 7634   0   13472   0     0     0

        Total is the sum of every field, busy is total minus idle, so iowait,
        irq and steal count as busy time.
        """
        stat_path = self.proc_root / "stat"
        try:
            with open(stat_path, "r") as f:
                words = f.readline().split()
            values = [int(word) for word in words if "cpu" not in word]
            total = sum(values)
            idle = values[3]
        except (OSError, ValueError, IndexError) as e:
            logger.error(f"Failed to read CPU usage from {stat_path}: {e}")
            return None

        return CpuStat(total_time=total, usage=total - idle)


class GenericHostUsage(HostUsage):
    """psutil based sampler for hosts without procfs"""

    def get_nics(self) -> List[str]:
        try:
            stats = psutil.net_if_stats()
        except Exception as e:
            logger.error(f"Failed to find NICs: {e}")
            return []

        return sorted(
            name
            for name, stat in stats.items()
            if stat.speed > 0 and not name.startswith("lo")
        )

    def get_total_nic_limit_kbps(self, nics: List[str]) -> float:
        try:
            stats = psutil.net_if_stats()
        except Exception as e:
            logger.error(f"Failed to read NIC speeds: {e}")
            return 0.0
        return sum(stats[nic].speed for nic in nics if nic in stats) * 1024

    def get_total_nic_usage_kb(self, nics: List[str]) -> Tuple[float, float]:
        try:
            counters = psutil.net_io_counters(pernic=True)
        except Exception as e:
            logger.error(f"Failed to read NIC counters: {e}")
            return 0.0, 0.0

        tx = sum(counters[nic].bytes_sent for nic in nics if nic in counters)
        rx = sum(counters[nic].bytes_recv for nic in nics if nic in counters)
        return tx * BYTES_TO_KILOBITS, rx * BYTES_TO_KILOBITS

    def get_total_cpu_usage(self) -> Optional[CpuStat]:
        try:
            times = psutil.cpu_times()
        except Exception as e:
            logger.error(f"Failed to read CPU times: {e}")
            return None

        # psutil reports seconds, keep integer resolution in hundredths
        total = int(sum(times) * 100)
        idle = int(times.idle * 100)
        return CpuStat(total_time=total, usage=total - idle)


def create_host_usage(config: Optional[Dict[str, Any]] = None) -> HostUsage:
    """Pick the procfs sampler when available, psutil otherwise"""
    config = config or {}
    proc_root = config.get("proc_root", "/proc")
    net_root = config.get("net_root", "/sys/class/net")

    if os.path.exists(os.path.join(proc_root, "stat")):
        logger.info(f"Using Linux host usage sampler ({proc_root}, {net_root})")
        return LinuxHostUsage(proc_root=proc_root, net_root=net_root)

    logger.info("procfs not available, using generic host usage sampler")
    return GenericHostUsage()
