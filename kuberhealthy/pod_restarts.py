"""Check for pods that keep backing off after restarts."""

from __future__ import annotations

import logging
import os
import queue
import re
import threading
from datetime import timedelta
from typing import Any

from kuberhealthy.kube import Reporter, is_not_found

log = logging.getLogger(__name__)

DEFAULT_MAX_FAILURES_ALLOWED = 10
DEFAULT_CHECK_TIMEOUT = timedelta(minutes=10)
TIMEOUT_MESSAGE = "Failed to complete Pod Restart check in time! Timeout was reached."

_INT32_MIN = -(1 << 31)
_INT32_MAX = (1 << 31) - 1
_INTEGER = re.compile(r"^[+-]?\d+$")


def _parse_max_failures(text: str) -> int:
    if not text:
        return DEFAULT_MAX_FAILURES_ALLOWED
    if not _INTEGER.match(text):
        log.error("Error converting maxFailuresAllowed: %s to int", text)
        return 0
    value = int(text)
    if not _INT32_MIN <= value <= _INT32_MAX:
        log.error("Error converting maxFailuresAllowed: %s to int, value out of range", text)
        return max(_INT32_MIN, min(_INT32_MAX, value))
    return value


class PodRestartsChecker:
    """Finds pods with more BackOff warning events than allowed."""

    def __init__(
        self,
        client: Any,
        namespace: str | None = None,
        max_failures_allowed: int | None = None,
        check_timeout: timedelta = DEFAULT_CHECK_TIMEOUT,
    ) -> None:
        if namespace is None:
            namespace = os.environ.get("POD_NAMESPACE", "")
        if max_failures_allowed is None:
            max_failures_allowed = _parse_max_failures(os.environ.get("MAX_FAILURES_ALLOWED", ""))
        if namespace:
            log.info("Looking for pods in namespace: %s", namespace)
        else:
            log.info("Looking for pods across all namespaces, this requires a cluster role")
        self.client = client
        self.namespace = namespace
        self.max_failures_allowed = max_failures_allowed
        self.check_timeout = check_timeout
        self.bad_pods: dict[str, str] = {}

    def do_checks(self) -> None:
        """Record pods whose BackOff count exceeds the limit and that still exist."""
        log.info("Checking for pod BackOff events for all pods in the namespace: %s", self.namespace)
        events = self.client.list_events(self.namespace, field_selector="type=Warning")
        for event in events:
            if (
                event.involved_kind == "Pod"
                and event.reason == "BackOff"
                and event.count > self.max_failures_allowed
            ):
                message = (
                    f"Found: {event.count} `BackOff` events for pod: {event.involved_name} "
                    f"in namespace: {event.namespace}"
                )
                log.info(message)
                # Keys carry the namespace because all namespaces may be searched.
                self.bad_pods[f"{event.involved_namespace}/{event.involved_name}"] = message

        for pod in list(self.bad_pods):
            self._verify_bad_pod_exists(pod)

    def _verify_bad_pod_exists(self, pod: str) -> None:
        namespace, _, name = pod.partition("/")
        try:
            self.client.get_pod(namespace, name)
        except Exception as exc:
            if is_not_found(exc) or "not found" in str(exc):
                log.info("Bad Pod: %s no longer exists. Removing from bad pods map", name)
                self.bad_pods.pop(pod, None)
                return
            log.info("Error getting bad pod: %s %s", name, exc)
            raise

    def run(self, reporter: Reporter) -> None:
        """Run the checks within the time limit and report the outcome."""
        log.info("Running Pod Restarts checker")
        outcome: queue.Queue[BaseException | None] = queue.Queue(maxsize=1)

        def work() -> None:
            try:
                self.do_checks()
            except Exception as exc:  # handed back to the waiting caller
                outcome.put(exc)
            else:
                outcome.put(None)

        threading.Thread(target=work, daemon=True).start()
        try:
            error = outcome.get(timeout=self.check_timeout.total_seconds())
        except queue.Empty:
            reporter.report_failure([TIMEOUT_MESSAGE])
            return

        messages: list[str] = []
        if error is not None:
            log.error("%s", error)
            messages.append(str(error))
        messages.extend(self.bad_pods.values())
        if messages:
            reporter.report_failure(messages)
        else:
            reporter.report_success()