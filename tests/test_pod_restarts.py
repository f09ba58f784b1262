import threading
from datetime import timedelta

import pytest

from kuberhealthy.kube import Event, KubeApiError, NotFoundError, Pod
from kuberhealthy.pod_restarts import TIMEOUT_MESSAGE, PodRestartsChecker


def backoff(name, count, namespace="test-namespace", kind="Pod", reason="BackOff"):
    return Event(
        name=f"{name}.event",
        namespace=namespace,
        type="Warning",
        reason=reason,
        count=count,
        involved_kind=kind,
        involved_name=name,
        involved_namespace=namespace,
    )


class FakeClient:
    def __init__(self, events, existing=(), pod_error=None, list_error=None, gate=None):
        self.events = events
        self.existing = set(existing)
        self.pod_error = pod_error
        self.list_error = list_error
        self.gate = gate
        self.event_calls = []

    def list_events(self, namespace="", field_selector=""):
        self.event_calls.append((namespace, field_selector))
        if self.gate is not None:
            self.gate.wait()
        if self.list_error:
            raise self.list_error
        return self.events

    def get_pod(self, namespace, name):
        if self.pod_error:
            raise self.pod_error
        if f"{namespace}/{name}" not in self.existing:
            raise NotFoundError(f'pods "{name}" not found', 404)
        return Pod(name=name, namespace=namespace, phase="Running")


class FakeReporter:
    def __init__(self):
        self.successes = 0
        self.failures = []

    def report_success(self):
        self.successes += 1

    def report_failure(self, errors):
        self.failures.append(list(errors))


def test_backoff_over_limit_is_reported():
    client = FakeClient([backoff("p1", 11)], existing=["test-namespace/p1"])
    checker = PodRestartsChecker(client, namespace="test-namespace", max_failures_allowed=10)
    checker.do_checks()
    assert checker.bad_pods == {
        "test-namespace/p1": "Found: 11 `BackOff` events for pod: p1 in namespace: test-namespace"
    }
    assert client.event_calls == [("test-namespace", "type=Warning")]


def test_events_at_limit_or_unrelated_are_ignored():
    events = [
        backoff("p1", 10),
        backoff("p2", 50, kind="Node"),
        backoff("p3", 50, reason="Failed"),
    ]
    client = FakeClient(events, existing=["test-namespace/p1", "test-namespace/p2", "test-namespace/p3"])
    checker = PodRestartsChecker(client, namespace="", max_failures_allowed=10)
    reporter = FakeReporter()
    checker.run(reporter)
    assert checker.bad_pods == {}
    assert reporter.successes == 1


def test_deleted_pods_are_dropped():
    client = FakeClient([backoff("gone", 30), backoff("here", 30)], existing=["test-namespace/here"])
    checker = PodRestartsChecker(client, namespace="", max_failures_allowed=5)
    checker.do_checks()
    assert list(checker.bad_pods) == ["test-namespace/here"]


def test_not_found_text_counts_as_missing():
    client = FakeClient([backoff("p1", 30)], pod_error=RuntimeError("pod p1 not found"))
    checker = PodRestartsChecker(client, namespace="", max_failures_allowed=5)
    checker.do_checks()
    assert checker.bad_pods == {}


def test_run_reports_bad_pods():
    client = FakeClient([backoff("p1", 30)], existing=["test-namespace/p1"])
    reporter = FakeReporter()
    PodRestartsChecker(client, namespace="", max_failures_allowed=5).run(reporter)
    assert reporter.failures == [
        ["Found: 30 `BackOff` events for pod: p1 in namespace: test-namespace"]
    ]
    assert reporter.successes == 0


def test_run_reports_lookup_error_with_bad_pods():
    client = FakeClient([backoff("p1", 30)], pod_error=KubeApiError("forbidden", 403))
    reporter = FakeReporter()
    PodRestartsChecker(client, namespace="", max_failures_allowed=5).run(reporter)
    assert reporter.failures == [
        ["forbidden", "Found: 30 `BackOff` events for pod: p1 in namespace: test-namespace"]
    ]


def test_do_checks_raises_listing_error():
    client = FakeClient([], list_error=KubeApiError("boom"))
    checker = PodRestartsChecker(client, namespace="", max_failures_allowed=5)
    with pytest.raises(KubeApiError, match="boom"):
        checker.do_checks()


def test_run_times_out():
    gate = threading.Event()
    client = FakeClient([], gate=gate)
    reporter = FakeReporter()
    checker = PodRestartsChecker(
        client, namespace="", max_failures_allowed=5, check_timeout=timedelta(milliseconds=50)
    )
    try:
        checker.run(reporter)
    finally:
        gate.set()
    assert reporter.failures == [[TIMEOUT_MESSAGE]]


@pytest.mark.parametrize("raw, expected", [("3", 3), ("abc", 0), ("99999999999", (1 << 31) - 1)])
def test_max_failures_from_environment(monkeypatch, raw, expected):
    monkeypatch.setenv("MAX_FAILURES_ALLOWED", raw)
    checker = PodRestartsChecker(FakeClient([]), namespace="")
    assert checker.max_failures_allowed == expected


def test_defaults_from_environment(monkeypatch):
    monkeypatch.delenv("MAX_FAILURES_ALLOWED", raising=False)
    monkeypatch.setenv("POD_NAMESPACE", "watched")
    checker = PodRestartsChecker(FakeClient([]))
    assert checker.max_failures_allowed == 10
    assert checker.namespace == "watched"