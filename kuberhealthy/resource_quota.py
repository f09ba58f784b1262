"""Check that resource quota usage stays below a threshold in every targeted namespace."""

from __future__ import annotations

import logging
import math
import os
import queue
import threading
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from kuberhealthy.durations import parse_duration
from kuberhealthy.kube import Reporter

log = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.9
DEFAULT_CHECK_TIME_LIMIT = timedelta(minutes=5)
TIMEOUT_MESSAGE = "Check took too long and timed out."

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _parse_bool(text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"invalid boolean {text!r}")


@dataclass
class ResourceQuotaSettings:
    """Which namespaces to look at, the alert threshold and the time limit."""

    blacklist: list[str] = field(default_factory=list)
    whitelist: list[str] = field(default_factory=list)
    threshold: float = DEFAULT_THRESHOLD
    check_time_limit: timedelta = DEFAULT_CHECK_TIME_LIMIT
    debug: bool = False

    def namespace_targeted(self, namespace: str) -> bool:
        """Tell whether a namespace is examined; the blacklist wins over the whitelist."""
        if self.blacklist and namespace in self.blacklist:
            log.info("Skipping %s namespace (Blacklist).", namespace)
            return False
        if self.whitelist and namespace not in self.whitelist:
            log.info("Skipping %s namespace (Whitelist).", namespace)
            return False
        return True


def parse_settings(env: Mapping[str, str] | None = None) -> ResourceQuotaSettings:
    """Read DEBUG, BLACKLIST, WHITELIST, THRESHOLD and CHECK_TIME_LIMIT.

    Raises ValueError when a value cannot be parsed. A threshold above 0.99
    or at most 0 falls back to the default.
    """
    env = os.environ if env is None else env
    settings = ResourceQuotaSettings()

    debug_text = env.get("DEBUG", "")
    if debug_text:
        try:
            settings.debug = _parse_bool(debug_text)
        except ValueError as exc:
            raise ValueError(f"failed to parse DEBUG environment variable: {exc}") from exc
    if settings.debug:
        log.info("Debug logging enabled.")
        logging.getLogger("kuberhealthy").setLevel(logging.DEBUG)

    blacklist_text = env.get("BLACKLIST", "")
    if blacklist_text:
        settings.blacklist = blacklist_text.split(",")
        log.info("Parsed BLACKLIST: %s", settings.blacklist)
    whitelist_text = env.get("WHITELIST", "")
    if whitelist_text:
        settings.whitelist = whitelist_text.split(",")
        log.info("Parsed WHITELIST: %s", settings.whitelist)

    threshold_text = env.get("THRESHOLD", "")
    if threshold_text:
        try:
            settings.threshold = float(threshold_text)
        except ValueError as exc:
            raise ValueError(f"error occurred attempting to parse THRESHOLD: {exc}") from exc
        log.info("Parsed THRESHOLD: %s", settings.threshold)
    if settings.threshold > 0.99:
        log.info(
            "Given THRESHOLD is greater than 0.99, setting to default of %s", DEFAULT_THRESHOLD
        )
        settings.threshold = DEFAULT_THRESHOLD
    if settings.threshold <= 0:
        log.info(
            "Threshold is less than or equal to 0, setting to default of %s", DEFAULT_THRESHOLD
        )
        settings.threshold = DEFAULT_THRESHOLD
    log.info("Usage threshold set to: %s", settings.threshold)

    limit_text = env.get("CHECK_TIME_LIMIT", "")
    if limit_text:
        settings.check_time_limit = parse_duration(limit_text)
    log.info("Check time limit set to: %s", settings.check_time_limit)
    return settings


def _ratio(used: int, hard: int) -> float:
    if hard:
        return used / hard
    if used > 0:
        return math.inf
    if used < 0:
        return -math.inf
    return math.nan


def _format_percent(value: float) -> str:
    if math.isinf(value):
        return f"{'+Inf' if value > 0 else '-Inf':>6}"
    return f"{value:6.3f}"


def examine_namespace(client: Any, namespace: str, threshold: float) -> list[str]:
    """Return a message for each CPU or memory quota at or above the threshold."""
    log.info("Looking at resource quotas for %s namespace.", namespace)
    try:
        quotas = client.list_resource_quotas(namespace)
    except Exception as exc:  # a listing failure is reported as a check error
        return [f"error occurred listing resource quotas for {namespace} namespace {exc}"]

    messages: list[str] = []
    for quota in quotas:
        log.debug(
            "Current used for %s CPU: %d Memory: %d",
            namespace,
            quota.used_cpu_milli,
            quota.used_memory_milli,
        )
        log.debug(
            "Limits for %s CPU: %d Memory: %d",
            namespace,
            quota.hard_cpu_milli,
            quota.hard_memory_milli,
        )
        for resource, used, hard in (
            ("cpu", quota.used_cpu_milli, quota.hard_cpu_milli),
            ("memory", quota.used_memory_milli, quota.hard_memory_milli),
        ):
            percent = _ratio(used, hard)
            if percent >= threshold:
                messages.append(
                    f"{resource} for {namespace} namespace has reached threshold of "
                    f"{threshold:4.2f}: USED: {used} LIMIT: {hard} "
                    f"PERCENT_USED: {_format_percent(percent)}"
                )
    return messages


def examine_resource_quotas(
    client: Any, namespaces: Iterable[str], settings: ResourceQuotaSettings
) -> list[str]:
    """Examine every targeted namespace concurrently and gather all messages."""
    targets = [namespace for namespace in namespaces if settings.namespace_targeted(namespace)]
    if not targets:
        return []
    with ThreadPoolExecutor(max_workers=min(32, len(targets))) as pool:
        results = list(
            pool.map(lambda ns: examine_namespace(client, ns, settings.threshold), targets)
        )
    return [message for result in results for message in result]


def run_resource_quota_check(
    client: Any, reporter: Reporter, settings: ResourceQuotaSettings | None = None
) -> list[str]:
    """Run the check within its time limit and report; returns the failures reported."""
    settings = settings if settings is not None else parse_settings()
    try:
        namespaces = client.list_namespaces()
    except Exception as exc:  # reported to Kuberhealthy instead of crashing
        message = f"error occurred listing namespaces from the cluster: {exc}"
        reporter.report_failure([message])
        return [message]
    log.info("%d namespaces to look at.", len(namespaces))

    outcome: queue.Queue[list[str] | BaseException] = queue.Queue(maxsize=1)

    def work() -> None:
        try:
            outcome.put(examine_resource_quotas(client, namespaces, settings))
        except Exception as exc:  # handed back to the waiting caller
            outcome.put(exc)

    threading.Thread(target=work, daemon=True).start()
    try:
        result = outcome.get(timeout=settings.check_time_limit.total_seconds())
    except queue.Empty:
        log.info("Reporting failure to kuberhealthy.")
        reporter.report_failure([TIMEOUT_MESSAGE])
        return [TIMEOUT_MESSAGE]

    if isinstance(result, BaseException):
        failures = [str(result)]
        reporter.report_failure(failures)
        return failures
    if result:
        log.info("This check created %d errors and warnings.", len(result))
        for message in result:
            log.debug("%s", message)
        log.info("Reporting failures to kuberhealthy.")
        reporter.report_failure(result)
        return result
    log.info("No errors or warnings were created during this check!")
    log.info("Reporting success to kuberhealthy.")
    reporter.report_success()
    return []