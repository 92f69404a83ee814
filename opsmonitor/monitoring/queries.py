"""
Query monitoring for data access code.

QueryMonitor tracks the queries issued during one unit of work (typically a
request): how many ran, how many documents they returned, which failed and how
long they took. monitor_query() wraps an async data access function with a
fresh QueryMonitor and, when a monitoring engine is available, records each
execution in the engine's counters and latency windows.
"""

import time
import uuid
from dataclasses import asdict, dataclass, field
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

from flask import current_app, has_app_context

from opsmonitor.monitoring.engine import EXTENSION_KEY
from opsmonitor.monitoring.logging import get_logger

logger = get_logger(__name__)


@dataclass
class QueryInfo:
    query_id: str
    collection: str
    started_at: float
    filters: Dict[str, Any] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class QueryError:
    query_id: str
    error: str
    execution_time_ms: float


@dataclass
class QueryReport:
    request_id: str
    total_queries: int
    total_documents_read: int
    total_execution_time_ms: float
    average_query_time_ms: float
    error_count: int
    success_rate: float
    queries_per_second: int
    documents_per_second: int
    errors: List[QueryError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _document_count(results: Any) -> int:
    if isinstance(results, (list, tuple)):
        return len(results)
    return 0


def _per_second(amount: int, elapsed_ms: float) -> int:
    if elapsed_ms <= 0:
        return 0
    return int(round(amount / (elapsed_ms / 1000)))


class QueryMonitor:
    """
    Per unit-of-work query tracker.

    Args:
        request_id: Identifier used in query ids and logs, generated when omitted
        clock: Monotonic clock in seconds
    """

    def __init__(self, request_id: Optional[str] = None, clock: Callable[[], float] = time.perf_counter):
        self.request_id = request_id or f"monitor_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
        self._clock = clock
        self.started_at = clock()
        self.query_count = 0
        self.total_documents_read = 0
        self.errors: List[QueryError] = []

    def start_query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None
    ) -> QueryInfo:
        self.query_count += 1
        info = QueryInfo(
            query_id=f"{self.request_id}_query_{self.query_count}",
            collection=collection,
            started_at=self._clock(),
            filters=filters or {},
            options=options or {}
        )
        logger.debug(
            "Query started",
            request_id=self.request_id,
            query_id=info.query_id,
            collection=collection,
            filters=info.filters
        )
        return info

    def end_query(self, info: QueryInfo, results: Any = None, error: Optional[BaseException] = None) -> float:
        """
        Close a query started with start_query().

        Returns:
            Execution time in milliseconds
        """
        execution_ms = round((self._clock() - info.started_at) * 1000, 2)
        documents = _document_count(results)
        self.total_documents_read += documents

        if error is not None:
            self.errors.append(QueryError(
                query_id=info.query_id,
                error=str(error),
                execution_time_ms=execution_ms
            ))
            logger.error(
                "Query failed",
                request_id=self.request_id,
                query_id=info.query_id,
                collection=info.collection,
                error=str(error),
                execution_time_ms=execution_ms
            )
        else:
            logger.info(
                "Query completed",
                request_id=self.request_id,
                query_id=info.query_id,
                collection=info.collection,
                document_count=documents,
                execution_time_ms=execution_ms,
                documents_per_second=_per_second(documents, execution_ms)
            )

        return execution_ms

    def generate_report(self) -> QueryReport:
        total_ms = round((self._clock() - self.started_at) * 1000, 2)
        count = self.query_count
        report = QueryReport(
            request_id=self.request_id,
            total_queries=count,
            total_documents_read=self.total_documents_read,
            total_execution_time_ms=total_ms,
            average_query_time_ms=round(total_ms / count, 2) if count else 0.0,
            error_count=len(self.errors),
            success_rate=round((count - len(self.errors)) / count * 100, 2) if count else 0.0,
            queries_per_second=_per_second(count, total_ms),
            documents_per_second=_per_second(self.total_documents_read, total_ms),
            errors=list(self.errors)
        )
        logger.info("Query monitor report", **{k: v for k, v in report.to_dict().items() if k != 'errors'})
        return report


def _resolve_engine(engine: Any) -> Any:
    if engine is not None:
        return engine
    if has_app_context():
        return current_app.extensions.get(EXTENSION_KEY)
    return None


def monitor_query(collection: str, operation: str = 'find', engine: Any = None):
    """
    Decorator for monitoring async data access functions.

    The first positional argument, when it is a dict, is logged as the query
    filters. Exceptions are recorded and re-raised.

    Args:
        collection: Collection name
        operation: Operation type (find, insert, update, ...)
        engine: MonitoringEngine receiving the execution; defaults to the one
            registered on the current Flask application
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            monitor = QueryMonitor()
            filters = args[0] if args and isinstance(args[0], dict) else {}
            info = monitor.start_query(collection, filters)
            target = _resolve_engine(engine)

            try:
                results = await func(*args, **kwargs)
            except Exception as e:
                duration_ms = monitor.end_query(info, error=e)
                if target is not None:
                    target.record_query(collection, operation, duration_ms, success=False)
                raise
            else:
                duration_ms = monitor.end_query(info, results)
                if target is not None:
                    target.record_query(
                        collection,
                        operation,
                        duration_ms,
                        success=True,
                        document_count=_document_count(results)
                    )
                return results
            finally:
                monitor.generate_report()

        return wrapper
    return decorator


__all__ = ['QueryInfo', 'QueryError', 'QueryReport', 'QueryMonitor', 'monitor_query']
