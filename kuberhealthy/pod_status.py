"""Check that pods older than a grace period are in a healthy phase."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any

from kuberhealthy.durations import parse_duration
from kuberhealthy.kube import Reporter

log = logging.getLogger(__name__)

_SELECTOR = "app!=kuberhealthy-check,source!=kuberhealthy"
_HEALTHY = {"Running", "Succeeded"}
_UNHEALTHY = {"Pending", "Failed", "Unknown"}


def find_pods_not_running(
    client: Any,
    namespace: str,
    skip_duration: timedelta,
    now: datetime | None = None,
) -> list[str]:
    """Return a message for each pod past the grace period in an unhealthy phase.

    An empty namespace means all namespaces.
    """
    if namespace:
        log.info("looking for pods in namespace %s", namespace)
    else:
        log.info("looking for pods across all namespaces, this requires a cluster role")
    pods = client.list_pods(namespace, label_selector=_SELECTOR)
    skip_barrier = (now or datetime.now(timezone.utc)) - skip_duration

    failures: list[str] = []
    for pod in pods:
        created = pod.creation_timestamp
        if created is not None and created > skip_barrier:
            log.info("skipping checks on pod because it is too young: %s", pod.name)
            continue
        if pod.phase in _HEALTHY:
            continue
        if pod.phase in _UNHEALTHY:
            failures.append(
                f"pod: {pod.name} in namespace: {pod.namespace} "
                f"is in pod status phase {pod.phase} "
            )
        else:
            log.info(
                "pod: %s in namespace: %s is not in one of the five possible pod status "
                "phases %s",
                pod.name,
                pod.namespace,
                pod.phase,
            )
    return failures


def run_pod_status_check(
    client: Any,
    reporter: Reporter,
    namespace: str | None = None,
    skip_duration: timedelta | str | None = None,
) -> list[str]:
    """Run the check and report to Kuberhealthy; returns the failures reported.

    The namespace and skip duration default to TARGET_NAMESPACE and SKIP_DURATION.
    An unparsable skip duration is reported and then raised as ValueError.
    """
    if namespace is None:
        namespace = os.environ.get("TARGET_NAMESPACE", "")
    if skip_duration is None:
        skip_duration = os.environ.get("SKIP_DURATION", "")
    if isinstance(skip_duration, str):
        try:
            skip_duration = parse_duration(skip_duration)
        except ValueError as exc:
            log.error("failed to parse skip duration: %s", exc)
            reporter.report_failure([f"failed to parse skip duration: {exc}"])
            raise

    try:
        failures = find_pods_not_running(client, namespace, skip_duration)
    except Exception as exc:  # any listing failure becomes the check's failure
        failures = [str(exc)]
        reporter.report_failure(failures)
        return failures

    if failures:
        log.info("Amount of failures found: %d", len(failures))
        reporter.report_failure(failures)
        return failures
    log.info("Reporting Success, no unhealthy pods found.")
    reporter.report_success()
    return []