"""
System resource sampling with psutil.

Each sample reads process memory, system memory, process CPU utilization and
disk usage, writes the values into the gauge store and hands the percentages
to the AlertManager for threshold checks.

Process memory uses RSS, VMS and shared memory as the resident, reserved and
external figures. CPU utilization is measured by diffing the process CPU times
across a 100 ms window and is capped at 100. Disk readings fall back to zero
when the platform cannot report them.
"""

import asyncio
import os
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import psutil

from opsmonitor.monitoring.counters import GaugeStore
from opsmonitor.monitoring.logging import get_logger

logger = get_logger(__name__)

CPU_SAMPLE_WINDOW_SECONDS = 0.1


@dataclass
class SystemSnapshot:
    """One resource sample."""

    memory_rss: int
    memory_vms: int
    memory_shared: int
    memory_usage_percent: float
    cpu_usage_percent: float
    disk_usage_percent: float
    disk_free_space: int
    uptime: float
    timestamp: datetime

    def to_gauges(self) -> Dict[str, float]:
        return {
            'memory.rss': self.memory_rss,
            'memory.vms': self.memory_vms,
            'memory.shared': self.memory_shared,
            'memory.usage_percent': self.memory_usage_percent,
            'cpu.usage_percent': self.cpu_usage_percent,
            'disk.usage_percent': self.disk_usage_percent,
            'disk.free_space': self.disk_free_space,
            'uptime': self.uptime,
        }

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['timestamp'] = self.timestamp.isoformat()
        return result


class SystemResourceSampler:
    """
    Samples process and host resources.

    Args:
        gauges: Gauge store receiving the sampled values
        alert_manager: Optional AlertManager for memory/CPU/disk threshold checks
        disk_path: Filesystem path whose volume is measured
        start_time: Process start in epoch seconds, used for uptime
        clock: Callable returning epoch seconds
        summary_log_interval: Minimum seconds between resource summary log lines
    """

    def __init__(
        self,
        gauges: GaugeStore,
        alert_manager: Any = None,
        disk_path: Optional[str] = None,
        start_time: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        summary_log_interval: float = 300.0
    ):
        self.gauges = gauges
        self.alert_manager = alert_manager
        self.disk_path = disk_path or os.getcwd()
        self._clock = clock
        self.start_time = start_time if start_time is not None else clock()
        self.summary_log_interval = summary_log_interval
        self._process = psutil.Process()
        self._last_summary_log: Optional[float] = None
        self.last_snapshot: Optional[SystemSnapshot] = None

    async def sample(self) -> SystemSnapshot:
        """Take a resource sample, store it as gauges and run threshold checks."""
        memory_info = self._process.memory_info()
        memory_usage = self._system_memory_percent()
        cpu_usage = await self._cpu_percent()
        disk_usage, disk_free = self._disk_usage()

        now = self._clock()
        snapshot = SystemSnapshot(
            memory_rss=memory_info.rss,
            memory_vms=memory_info.vms,
            memory_shared=getattr(memory_info, 'shared', 0),
            memory_usage_percent=round(memory_usage, 2),
            cpu_usage_percent=round(cpu_usage, 2),
            disk_usage_percent=round(disk_usage, 2),
            disk_free_space=disk_free,
            uptime=max(0.0, now - self.start_time),
            timestamp=datetime.now(timezone.utc),
        )

        self.gauges.update(snapshot.to_gauges())
        self.last_snapshot = snapshot

        if self.alert_manager is not None:
            self.alert_manager.check_system(
                memory=snapshot.memory_usage_percent,
                cpu=snapshot.cpu_usage_percent,
                disk=snapshot.disk_usage_percent
            )

        self._maybe_log_summary(snapshot, now)
        return snapshot

    @staticmethod
    def _system_memory_percent() -> float:
        memory = psutil.virtual_memory()
        if not memory.total:
            return 0.0
        return (memory.total - memory.available) / memory.total * 100

    async def _cpu_percent(self) -> float:
        before = self._process.cpu_times()
        started = time.perf_counter()
        await asyncio.sleep(CPU_SAMPLE_WINDOW_SECONDS)
        after = self._process.cpu_times()
        elapsed = time.perf_counter() - started

        if elapsed <= 0:
            return 0.0
        busy = (after.user - before.user) + (after.system - before.system)
        return min(100.0, max(0.0, busy / elapsed * 100))

    def _disk_usage(self):
        try:
            usage = psutil.disk_usage(self.disk_path)
        except (OSError, NotImplementedError) as e:
            logger.debug("Disk usage unavailable", path=self.disk_path, error=str(e))
            return 0.0, 0

        if not usage.total:
            return 0.0, usage.free
        return (usage.total - usage.free) / usage.total * 100, usage.free

    def _maybe_log_summary(self, snapshot: SystemSnapshot, now: float) -> None:
        if self._last_summary_log is not None and now - self._last_summary_log < self.summary_log_interval:
            return

        self._last_summary_log = now
        logger.info(
            "System resources sampled",
            memory_usage_percent=snapshot.memory_usage_percent,
            memory_rss_mb=round(snapshot.memory_rss / 1024 / 1024, 2),
            cpu_usage_percent=snapshot.cpu_usage_percent,
            disk_usage_percent=snapshot.disk_usage_percent,
            uptime_seconds=round(snapshot.uptime)
        )


__all__ = ['SystemSnapshot', 'SystemResourceSampler', 'CPU_SAMPLE_WINDOW_SECONDS']
