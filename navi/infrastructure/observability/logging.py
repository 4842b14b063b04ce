import structlog
import logging
import sys
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import os


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "navi-core"
) -> None:
    """Setup structured logging configuration"""

    # Configure Python logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_service_context,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development"),
        version=os.getenv("SERVICE_VERSION", "unknown")
    )


def add_service_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service context to all log entries"""

    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

    # Sync pass and user identity, when bound by the caller
    sync_id = structlog.contextvars.get_contextvars().get("sync_id")
    if sync_id:
        event_dict["sync_id"] = sync_id

    user_id = structlog.contextvars.get_contextvars().get("user_id")
    if user_id:
        event_dict["user_id"] = user_id

    return event_dict


class SyncLogger:
    """Specialized logger for memory and sync operations"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_sync_attempt(
        self,
        operation: str,
        user_id: str,
        outcome: str,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
        **kwargs
    ):
        """Log a push/pull attempt against the remote service"""

        self.logger.info(
            "sync_attempt",
            operation=operation,
            user_id=user_id,
            outcome=outcome,
            duration_ms=duration_ms,
            error=error,
            **kwargs
        )

    def log_backend_transition(
        self,
        available: bool,
        reason: str,
        retry_count: int
    ):
        """Log backend availability changes"""

        self.logger.info(
            "backend_transition",
            backend_available=available,
            reason=reason,
            retry_count=retry_count
        )

    def log_compaction(
        self,
        input_counts: Dict[str, int],
        block_count: int,
        detail_count: int,
        compression_runs: Optional[int] = None
    ):
        """Log a long-term memory compaction pass"""

        self.logger.info(
            "memory_compaction",
            input_counts=input_counts,
            block_count=block_count,
            detail_count=detail_count,
            compression_runs=compression_runs
        )


sync_logger = SyncLogger("navi")


class SyncMetrics:
    """Per-operation outcome counters, latencies and gauges for the sync and memory paths"""

    SUCCESS_OUTCOMES = frozenset({"success", "loaded", "empty"})

    def __init__(self):
        self.outcomes: Dict[str, Dict[str, int]] = {}
        self.latencies: Dict[str, Dict[str, float]] = {}
        self.gauges: Dict[str, float] = {}

    def record_outcome(self, operation: str, outcome: str, duration_ms: Optional[float] = None):
        """Count one attempt of `operation` ending in `outcome`"""

        counts = self.outcomes.setdefault(operation, {})
        counts[outcome] = counts.get(outcome, 0) + 1
        if duration_ms is not None:
            self.record_latency(operation, duration_ms)

        sync_logger.logger.debug("metric", metric_type="outcome", operation=operation, outcome=outcome)

    def record_latency(self, operation: str, duration_ms: float):
        stats = self.latencies.setdefault(operation, {"count": 0, "sum": 0.0, "min": float('inf'), "max": 0.0})
        stats["count"] += 1
        stats["sum"] += duration_ms
        stats["min"] = min(stats["min"], duration_ms)
        stats["max"] = max(stats["max"], duration_ms)

    def set_gauge(self, name: str, value: float):
        self.gauges[name] = value
        sync_logger.logger.debug("metric", metric_type="gauge", name=name, value=value)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Attempts, outcome breakdown, success rate and latency per operation, plus gauges"""

        operations: Dict[str, Any] = {}
        for operation in sorted(set(self.outcomes) | set(self.latencies)):
            counts = dict(self.outcomes.get(operation, {}))
            attempts = sum(counts.values())
            succeeded = sum(n for outcome, n in counts.items() if outcome in self.SUCCESS_OUTCOMES)
            entry: Dict[str, Any] = {
                "attempts": attempts,
                "outcomes": counts,
                "success_rate": succeeded / attempts if attempts else None,
            }
            latency = self.latencies.get(operation)
            if latency:
                entry["latency_ms"] = {
                    "count": latency["count"],
                    "avg": latency["sum"] / latency["count"],
                    "min": latency["min"],
                    "max": latency["max"],
                }
            operations[operation] = entry

        return {"operations": operations, "gauges": dict(self.gauges)}

    def reset(self):
        self.outcomes.clear()
        self.latencies.clear()
        self.gauges.clear()


# Global metrics collector
metrics = SyncMetrics()
