"""Self-monitoring metrics for the sampler, exported with prometheus_client."""
import logging

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

from cmt.config import SelfMetricsConfig

logger = logging.getLogger(__name__)


class SelfMetrics:
    """Counters and timings of the watch loop."""

    def __init__(self, registry=None, prefix=""):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.samples_total = Counter(
            f"{prefix}samples_total",
            "Total number of samples stored",
            ["target"],
            registry=registry
        )

        self.sample_errors_total = Counter(
            f"{prefix}sample_errors_total",
            "Total number of samples dropped because of an error",
            ["target", "error"],
            registry=registry
        )

        self.tick_duration_seconds = Histogram(
            f"{prefix}tick_duration_seconds",
            "Duration of sampling all targets once",
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
            registry=registry
        )

        self.columns = Gauge(
            f"{prefix}columns",
            "Number of columns stored per target",
            ["target"],
            registry=registry
        )

    def record_sample(self, target: str, columns: int):
        """Record a stored sample."""
        self.samples_total.labels(target=target).inc()
        self.columns.labels(target=target).set(columns)

    def record_error(self, target: str, error: Exception):
        """Record a dropped sample."""
        self.sample_errors_total.labels(target=target, error=type(error).__name__).inc()

    def record_tick_duration(self, duration: float):
        """Record tick duration."""
        self.tick_duration_seconds.observe(duration)


def start_self_metrics(config: SelfMetricsConfig) -> SelfMetrics:
    """Create self-metrics and serve them over HTTP when enabled."""
    metrics = SelfMetrics(prefix=config.prefix)
    if config.enabled:
        start_http_server(config.port, addr=config.bind_address, registry=metrics.registry)
        logger.info(f"Self-metrics available on {config.bind_address}:{config.port}")
    return metrics
