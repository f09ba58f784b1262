"""Prometheus exposition of the Kuberhealthy health state."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, BinaryIO, Protocol

from kuberhealthy.durations import parse_duration
from kuberhealthy.health import State
from kuberhealthy.khstate import WorkloadDetails

log = logging.getLogger(__name__)

Metric = list[dict[str, Any]]
"""A batch of metrics: each mapping holds metric names and their values."""


class Client(Protocol):
    """Anything that can push metrics to a custom provider."""

    def push(self, points: Metric, tags: dict[str, str]) -> None:
        """Send the points with the given tags."""


@dataclass(frozen=True)
class PromMetricsConfig:
    """Options for the Prometheus output.

    When the error label is not suppressed, its value is cut to
    ``error_label_max_length`` bytes if that is positive.
    """

    suppress_error_label: bool = False
    error_label_max_length: int = 0


def _metric_name(
    config: PromMetricsConfig,
    kind: str,
    name: str,
    namespace: str,
    status: str,
    errors: list[str],
) -> str:
    metric = f'kuberhealthy_{kind}{{check="{name}",namespace="{namespace}",status="{status}"'
    if config.suppress_error_label:
        return metric + "}"
    label = "|".join(errors).replace('"', "'")
    limit = config.error_label_max_length
    if limit > 0:
        raw = label.encode("utf-8")
        if len(raw) > limit:
            label = raw[:limit].decode("utf-8", errors="ignore")
    return metric + f',error="{label}"}}'


def _run_seconds(details: WorkloadDetails, metric_name: str) -> float:
    # A workload that never ran has no duration yet; it counts as zero.
    text = details.run_duration or "0s"
    try:
        return parse_duration(text).total_seconds()
    except ValueError as exc:
        log.error(
            "Error parsing run duration: %s for metric: %s error: %s", text, metric_name, exc
        )
        return 0.0


def _workload_metrics(
    config: PromMetricsConfig, kind: str, details: dict[str, WorkloadDetails]
) -> tuple[dict[str, str], dict[str, str]]:
    states: dict[str, str] = {}
    durations: dict[str, str] = {}
    for name, detail in details.items():
        status = "1" if detail.ok else "0"
        metric_name = _metric_name(config, kind, name, detail.namespace, status, detail.errors)
        duration_name = (
            f'kuberhealthy_{kind}_duration_seconds{{check="{name}",namespace="{detail.namespace}"}}'
        )
        states[metric_name] = status
        durations[duration_name] = f"{_run_seconds(detail, metric_name):f}"
    return states, durations


def _section(name: str, help_text: str, values: dict[str, str]) -> list[str]:
    lines = [f"# HELP {name} {help_text}\n", f"# TYPE {name} gauge\n"]
    lines.extend(f"{metric} {value}\n" for metric, value in values.items())
    return lines


def generate_metrics(state: State, config: PromMetricsConfig | None = None) -> str:
    """Render the state in the Prometheus text format."""
    config = config or PromMetricsConfig()
    health_status = "1" if state.ok else "0"
    lines = [
        "# HELP kuberhealthy_running Shows if kuberhealthy is running error free\n",
        "# TYPE kuberhealthy_running gauge\n",
        f'kuberhealthy_running{{current_master="{state.current_master}"}} 1\n',
        "# HELP kuberhealthy_cluster_state Shows the status of the cluster\n",
        "# TYPE kuberhealthy_cluster_state gauge\n",
        f"kuberhealthy_cluster_state {health_status}\n",
    ]
    check_states, check_durations = _workload_metrics(config, "check", state.check_details)
    job_states, job_durations = _workload_metrics(config, "job", state.job_details)

    # Each HELP and TYPE pair is followed directly by its own samples.
    lines += _section(
        "kuberhealthy_check", "Shows the status of a Kuberhealthy check", check_states
    )
    lines += _section(
        "kuberhealthy_check_duration_seconds",
        "Shows the check run duration of a Kuberhealthy check",
        check_durations,
    )
    lines += _section("kuberhealthy_job", "Shows the status of a Kuberhealthy job", job_states)
    lines += _section(
        "kuberhealthy_job_duration_seconds",
        "Shows the job run duration of a Kuberhealthy job",
        job_durations,
    )
    return "".join(lines)


def error_state_metrics(state: State) -> str:
    """Metrics that report Kuberhealthy itself as not running error free."""
    return (
        "# HELP kuberhealthy_running Shows if kuberhealthy is running error free\n"
        "# TYPE kuberhealthy_running gauge\n"
        f'kuberhealthy_running{{currentMaster="{state.current_master}"}} 0'
    )


def write_metric_error(writer: BinaryIO, state: State) -> None:
    """Write the error-state metrics to a byte stream."""
    try:
        writer.write(error_state_metrics(state).encode("utf-8"))
    except OSError as exc:
        log.warning("Error writing health check results to caller: %s", exc)
        raise