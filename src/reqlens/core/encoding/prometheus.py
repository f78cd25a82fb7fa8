"""Prometheus text exposition encoder for a metrics registry."""

import math

from reqlens.core.metrics import MetricsRegistry
from reqlens.core.models import MetricSample

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return repr(float(value))


def _format_labels(labels: dict[str, str]) -> str:
    if not labels:
        return ""
    # "le" goes last, matching the usual exposition layout for buckets
    keys = sorted(k for k in labels if k != "le")
    if "le" in labels:
        keys.append("le")
    pairs = ",".join(f'{k}="{_escape_label_value(labels[k])}"' for k in keys)
    return "{" + pairs + "}"


def encode_sample(sample: MetricSample) -> str:
    """Encode one sample as an exposition line (without trailing newline)."""
    return f"{sample.name}{_format_labels(sample.labels)} {_format_value(sample.value)}"


def encode_metrics(registry: MetricsRegistry) -> str:
    """Encode every metric in the registry to Prometheus text format.

    Output is deterministic for a given registry state: families ordered by
    name, each introduced by ``# HELP`` and ``# TYPE`` lines.

    Args:
        registry: Registry to snapshot.

    Returns:
        Exposition text ending with a newline, or an empty string if the
        registry holds no metrics.
    """
    lines: list[str] = []
    for metric in registry.families():
        lines.append(f"# HELP {metric.name} {_escape_help(metric.help)}")
        lines.append(f"# TYPE {metric.name} {metric.kind}")
        lines.extend(encode_sample(sample) for sample in metric.collect())
    if not lines:
        return ""
    return "\n".join(lines) + "\n"
