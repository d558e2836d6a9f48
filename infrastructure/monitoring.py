"""
Monitoring Infrastructure: Structured Logging and Prometheus Metrics

Provides JSON-based structured logging for the process entry point and a
Prometheus collector for backend calls, cache effectiveness, batch flushes
and scheduled runs.
"""

import logging
import sys
from typing import Dict, Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server


def configure_structlog(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure structlog for production logging.

    Sets up processors for:
    - Timestamping (ISO 8601)
    - Log level formatting
    - Exception formatting with stack traces
    - JSON rendering (or console rendering for local runs)
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structlog logger instance bound with a name context.

    Args:
        name: Logger name (typically module __name__)
    """
    return structlog.get_logger(name)


class MetricsCollector:
    """
    Prometheus metrics collector for the generation engine.

    Every instance owns its own registry so several engines (or tests) can
    coexist in one process.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        # LLM API metrics
        self.llm_api_requests_total = Counter(
            "llm_api_requests_total",
            "Total LLM API requests",
            labelnames=["model", "provider", "status"],
            registry=self.registry,
        )

        self.llm_api_tokens_total = Counter(
            "llm_api_tokens_total",
            "Total tokens consumed",
            labelnames=["model", "provider", "token_type"],
            registry=self.registry,
        )

        self.llm_api_latency_seconds = Histogram(
            "llm_api_latency_seconds",
            "LLM API request latency",
            buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
            labelnames=["model", "provider"],
            registry=self.registry,
        )

        # Cache metrics
        self.cache_hits_total = Counter(
            "cache_hits_total", "Total cache hits", labelnames=["cache_type"], registry=self.registry
        )

        self.cache_misses_total = Counter(
            "cache_misses_total",
            "Total cache misses",
            labelnames=["cache_type"],
            registry=self.registry,
        )

        self.cache_entries = Gauge(
            "cache_entries", "Current number of cache entries", labelnames=["cache_type"],
            registry=self.registry,
        )

        # Batch metrics
        self.batch_flushes_total = Counter(
            "batch_flushes_total",
            "Total batch flushes",
            labelnames=["reason"],
            registry=self.registry,
        )

        self.batch_size = Histogram(
            "batch_size",
            "Requests per flushed batch",
            buckets=[1, 2, 5, 10, 20, 50],
            registry=self.registry,
        )

        self.batch_duration_seconds = Histogram(
            "batch_duration_seconds",
            "Batch processing time",
            buckets=[0.5, 1, 5, 10, 30, 60, 120, 300],
            registry=self.registry,
        )

        self.generation_cost_total = Counter(
            "generation_cost_total", "Estimated generation cost (USD)", registry=self.registry
        )

        self.queue_size = Gauge(
            "batch_queue_size", "Requests waiting for the next flush", registry=self.registry
        )

        # Schedule metrics
        self.schedule_runs_total = Counter(
            "schedule_runs_total",
            "Total scheduled runs",
            labelnames=["status"],
            registry=self.registry,
        )

        self.schedule_run_duration_seconds = Histogram(
            "schedule_run_duration_seconds",
            "Scheduled run execution time",
            buckets=[1, 5, 10, 30, 60, 120, 300, 600],
            registry=self.registry,
        )

        log = get_logger(__name__)
        log.info("metrics_collector_initialized", metrics_type="prometheus")

    def record_llm_call(
        self,
        provider: str,
        model: str,
        status: str,
        duration_seconds: float,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
    ) -> None:
        """
        Record one backend call.

        Args:
            provider: Provider name (e.g., "openai")
            model: Model identifier
            status: "success" or "error"
            duration_seconds: Request latency
            prompt_tokens: Input tokens consumed
            completion_tokens: Output tokens produced
        """
        self.llm_api_requests_total.labels(model=model, provider=provider, status=status).inc()
        if prompt_tokens:
            self.llm_api_tokens_total.labels(
                model=model, provider=provider, token_type="prompt"
            ).inc(prompt_tokens)
        if completion_tokens:
            self.llm_api_tokens_total.labels(
                model=model, provider=provider, token_type="completion"
            ).inc(completion_tokens)
        if status == "success":
            self.llm_api_latency_seconds.labels(model=model, provider=provider).observe(
                duration_seconds
            )

    def record_cache_hit(self, cache_type: str) -> None:
        self.cache_hits_total.labels(cache_type=cache_type).inc()

    def record_cache_miss(self, cache_type: str) -> None:
        self.cache_misses_total.labels(cache_type=cache_type).inc()

    def update_cache_size(self, cache_type: str, entries: int) -> None:
        self.cache_entries.labels(cache_type=cache_type).set(entries)

    def record_batch_flush(
        self, reason: str, size: int, duration_seconds: float, cost: float
    ) -> None:
        """Record a completed flush."""
        self.batch_flushes_total.labels(reason=reason).inc()
        self.batch_size.observe(size)
        self.batch_duration_seconds.observe(duration_seconds)
        if cost > 0:
            self.generation_cost_total.inc(cost)

    def update_queue_size(self, size: int) -> None:
        self.queue_size.set(size)

    def record_schedule_run(self, status: str, duration_seconds: float) -> None:
        self.schedule_runs_total.labels(status=status).inc()
        self.schedule_run_duration_seconds.observe(duration_seconds)

    def start_server(self, port: int) -> None:
        """Expose /metrics on a background HTTP thread."""
        start_http_server(port, registry=self.registry)

    def get_metric_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Read a single sample back from the registry."""
        return self.registry.get_sample_value(name, labels or {})


__all__ = ["configure_structlog", "get_logger", "MetricsCollector"]
