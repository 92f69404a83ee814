"""
Health Check Registry and Built-in Probes

Pluggable health probes run concurrently on the asyncio event loop. Each probe
returns a HealthCheckResult with a typed details record; a probe that raises or
exceeds the registry timeout becomes an ``error`` result for that probe only and
never affects the other probes.

Built-in probes:
- DatabaseProbe: writes a canary document and reads it back within a short deadline
- MemoryProbe: process resident memory as a share of physical memory, healthy below 90%
- UptimeProbe: always healthy, reports process uptime and start time

The overall status is ``unhealthy`` when at least one probe is not ``healthy``.
The last report is cached for the metrics snapshot.
"""

import asyncio
import inspect
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import psutil

from opsmonitor.monitoring.exceptions import DocumentStoreError, ProbeTimeoutError
from opsmonitor.monitoring.logging import get_logger
from opsmonitor.utils.formatting import format_bytes, format_uptime, utc_timestamp

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 100


class HealthStatus(Enum):
    """Health states reported by probes and by the registry."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    ERROR = "error"


def _truncate(message: str) -> str:
    return message[:MAX_ERROR_LENGTH]


def _compact(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


@dataclass
class DatabaseProbeDetails:
    latency: Optional[float] = None
    error: Optional[str] = None
    details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(asdict(self))


@dataclass
class MemoryProbeDetails:
    usage: float
    rss: int
    total: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'usage': f"{self.usage:.2f}%",
            'rss': format_bytes(self.rss),
            'total': format_bytes(self.total),
        }


@dataclass
class UptimeProbeDetails:
    uptime: float
    start_time: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'uptime': format_uptime(self.uptime),
            'startTime': utc_timestamp(self.start_time),
        }


@dataclass
class ProbeErrorDetails:
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {'error': self.error}


ProbeDetails = Union[DatabaseProbeDetails, MemoryProbeDetails, UptimeProbeDetails, ProbeErrorDetails]


@dataclass
class HealthCheckResult:
    """Outcome of one probe run."""

    status: HealthStatus
    details: Optional[ProbeDetails] = None
    duration_ms: Optional[float] = None

    @property
    def is_healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        """Flatten to ``{status, **details}`` for JSON serialization."""
        result = {'status': self.status.value}
        if self.details is not None:
            result.update(self.details.to_dict())
        return result


@dataclass
class HealthReport:
    """Aggregated result of a registry run."""

    status: HealthStatus
    checks: Dict[str, HealthCheckResult] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def failed_checks(self) -> List[str]:
        return [name for name, result in self.checks.items() if not result.is_healthy]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': utc_timestamp(self.timestamp),
            'status': self.status.value,
            'checks': {name: result.to_dict() for name, result in self.checks.items()},
        }


class HealthProbe(ABC):
    """Base class for health probes."""

    name: str = 'probe'

    @abstractmethod
    async def check(self) -> HealthCheckResult:
        """Run the probe."""

    async def __call__(self) -> HealthCheckResult:
        return await self.check()


ProbeCallable = Callable[[], Union[HealthCheckResult, Awaitable[HealthCheckResult]]]


class DatabaseProbe(HealthProbe):
    """
    Canary write/read round trip against the document store.

    Args:
        store: Object with async ``write(collection, id, doc)`` and ``read(collection, id)``
        name: Probe name reported under ``checks``
        collection: Canary collection
        document_id: Canary document id
        deadline: Seconds allowed for the round trip
    """

    def __init__(
        self,
        store: Any,
        name: str = 'firebase',
        collection: str = '_health',
        document_id: str = 'test',
        deadline: float = 0.5
    ):
        self.store = store
        self.name = name
        self.collection = collection
        self.document_id = document_id
        self.deadline = deadline

    async def _round_trip(self) -> None:
        await self.store.write(self.collection, self.document_id, {
            'timestamp': utc_timestamp(),
            'status': 'ok',
        })
        document = await self.store.read(self.collection, self.document_id)
        if document is None:
            raise DocumentStoreError("Canary document missing after write", operation='read')

    async def check(self) -> HealthCheckResult:
        started = time.perf_counter()
        try:
            await asyncio.wait_for(self._round_trip(), timeout=self.deadline)
        except asyncio.TimeoutError:
            error = ProbeTimeoutError(self.name, self.deadline)
            return self._failure(error.message, started)
        except Exception as e:
            return self._failure(str(e), started)

        latency = round((time.perf_counter() - started) * 1000, 2)
        return HealthCheckResult(
            status=HealthStatus.HEALTHY,
            details=DatabaseProbeDetails(latency=latency),
            duration_ms=latency
        )

    def _failure(self, message: str, started: float) -> HealthCheckResult:
        logger.warning("Database health probe failed", probe=self.name, error=_truncate(message))
        return HealthCheckResult(
            status=HealthStatus.UNHEALTHY,
            details=DatabaseProbeDetails(
                error='Database connection failed',
                details=_truncate(message)
            ),
            duration_ms=round((time.perf_counter() - started) * 1000, 2)
        )


class MemoryProbe(HealthProbe):
    """Resident memory (heap used) as a percentage of virtual memory (heap total)."""

    name = 'memory'

    def __init__(self, limit_percent: float = 90.0, process: Optional[psutil.Process] = None):
        self.limit_percent = limit_percent
        self.process = process or psutil.Process()

    async def check(self) -> HealthCheckResult:
        memory_info = self.process.memory_info()
        usage = memory_info.rss * 100 / memory_info.vms if memory_info.vms else 0.0
        details = MemoryProbeDetails(
            usage=round(usage, 2),
            rss=memory_info.rss,
            total=memory_info.vms
        )
        status = HealthStatus.HEALTHY if usage <= self.limit_percent else HealthStatus.UNHEALTHY
        return HealthCheckResult(status=status, details=details)


class UptimeProbe(HealthProbe):
    """Reports process uptime. Always healthy."""

    name = 'uptime'

    def __init__(self, start_time: float, clock: Callable[[], float] = time.time):
        self.start_time = start_time
        self._clock = clock

    async def check(self) -> HealthCheckResult:
        return HealthCheckResult(
            status=HealthStatus.HEALTHY,
            details=UptimeProbeDetails(
                uptime=max(0.0, self._clock() - self.start_time),
                start_time=self.start_time
            )
        )


class HealthCheckRegistry:
    """
    Named probes executed concurrently.

    Args:
        probe_timeout: Seconds a single probe may run before it is reported as ``error``
        clock: Callable returning epoch seconds for report timestamps
    """

    def __init__(self, probe_timeout: float = 5.0, clock: Callable[[], float] = time.time):
        self.probe_timeout = probe_timeout
        self._clock = clock
        self._probes: Dict[str, ProbeCallable] = {}
        self._last_report: Optional[HealthReport] = None
        self._lock = threading.RLock()
        self._run_lock: Optional[asyncio.Lock] = None
        self._run_lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def register(self, name: str, probe: ProbeCallable) -> None:
        with self._lock:
            if name in self._probes:
                logger.info("Replacing health probe", probe=name)
            self._probes[name] = probe

    def unregister(self, name: str) -> None:
        with self._lock:
            self._probes.pop(name, None)

    def probe_names(self) -> List[str]:
        with self._lock:
            return list(self._probes)

    @property
    def last_report(self) -> Optional[HealthReport]:
        with self._lock:
            return self._last_report

    async def _invoke(self, probe: ProbeCallable) -> HealthCheckResult:
        result = probe()
        if inspect.isawaitable(result):
            result = await result
        if not isinstance(result, HealthCheckResult):
            raise TypeError(f"Health probe returned {type(result).__name__}, expected HealthCheckResult")
        return result

    async def _run_probe(self, name: str, probe: ProbeCallable) -> HealthCheckResult:
        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(self._invoke(probe), timeout=self.probe_timeout)
        except asyncio.TimeoutError:
            result = HealthCheckResult(
                status=HealthStatus.ERROR,
                details=ProbeErrorDetails(error=_truncate(ProbeTimeoutError(name, self.probe_timeout).message))
            )
        except Exception as e:
            logger.error("Health probe raised", probe=name, error=str(e), error_type=type(e).__name__)
            result = HealthCheckResult(
                status=HealthStatus.ERROR,
                details=ProbeErrorDetails(error=_truncate(str(e) or type(e).__name__))
            )

        if result.duration_ms is None:
            result.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        return result

    def _get_run_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._run_lock is None or self._run_lock_loop is not loop:
                self._run_lock = asyncio.Lock()
                self._run_lock_loop = loop
            return self._run_lock

    async def run_all(self) -> HealthReport:
        """
        Run every registered probe concurrently and cache the report.

        Runs on the same event loop are serialized; a call made while another
        is in flight waits for it and then runs its own probes.
        """
        async with self._get_run_lock():
            return await self._run_all()

    async def _run_all(self) -> HealthReport:
        with self._lock:
            probes = list(self._probes.items())

        results = await asyncio.gather(*(self._run_probe(name, probe) for name, probe in probes))
        checks = dict(zip((name for name, _ in probes), results))

        status = (
            HealthStatus.HEALTHY
            if all(result.is_healthy for result in checks.values())
            else HealthStatus.UNHEALTHY
        )
        report = HealthReport(status=status, checks=checks, timestamp=self._clock())

        with self._lock:
            self._last_report = report

        if status is not HealthStatus.HEALTHY:
            logger.warning("Health check failed", failed_checks=report.failed_checks)
        else:
            logger.debug("Health check passed", checks=list(checks))

        return report


__all__ = [
    'HealthStatus',
    'HealthCheckResult',
    'HealthReport',
    'HealthProbe',
    'DatabaseProbe',
    'MemoryProbe',
    'UptimeProbe',
    'HealthCheckRegistry',
    'DatabaseProbeDetails',
    'MemoryProbeDetails',
    'UptimeProbeDetails',
    'ProbeErrorDetails',
]
