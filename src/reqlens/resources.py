"""Process resource sampling for log metrics and default gauges."""

import psutil

from reqlens.core.metrics import MetricsRegistry

_process = psutil.Process()


def memory_usage_mb() -> float:
    """Resident set size of this process in MiB, rounded to 2 places."""
    return round(_process.memory_info().rss / 1024 / 1024, 2)


def cpu_user_seconds() -> float:
    """User CPU time consumed by this process, in seconds."""
    return _process.cpu_times().user


def register_process_metrics(registry: MetricsRegistry) -> None:
    """Register scrape-time process gauges on the registry."""
    registry.gauge(
        "process_resident_memory_bytes",
        "Resident memory size in bytes",
        lambda: float(_process.memory_info().rss),
    )
    registry.gauge(
        "process_cpu_user_seconds_total",
        "Total user CPU time spent in seconds",
        cpu_user_seconds,
    )
