import io

import pytest

from kuberhealthy.health import State
from kuberhealthy.khstate import WorkloadDetails
from kuberhealthy.metrics import (
    PromMetricsConfig,
    error_state_metrics,
    generate_metrics,
    write_metric_error,
)


def parse_metrics(output):
    metrics = {}
    for line in output.split("\n"):
        if not line or line.startswith("#"):
            continue
        name, value = line.split(" ")[:2]
        metrics[name] = value
    return metrics


def test_empty_state_is_running_but_unhealthy():
    metrics = parse_metrics(generate_metrics(State(), PromMetricsConfig()))
    assert metrics['kuberhealthy_running{current_master=""}'] == "1"
    assert metrics["kuberhealthy_cluster_state"] != "1"


def test_ok_state():
    metrics = parse_metrics(generate_metrics(State(ok=True), PromMetricsConfig()))
    assert metrics['kuberhealthy_running{current_master=""}'] == "1"
    assert metrics["kuberhealthy_cluster_state"] == "1"


def test_not_ok_state():
    metrics = parse_metrics(generate_metrics(State(ok=False), PromMetricsConfig()))
    assert metrics['kuberhealthy_running{current_master=""}'] == "1"
    assert metrics["kuberhealthy_cluster_state"] == "0"


def test_state_with_master():
    metrics = parse_metrics(generate_metrics(State(current_master="testMaster"), PromMetricsConfig()))
    assert metrics['kuberhealthy_running{current_master="testMaster"}'] == "1"
    assert metrics["kuberhealthy_cluster_state"] != "1"


def test_checks_good_and_bad():
    state = State(
        check_details={
            "good": WorkloadDetails(ok=True),
            "bad": WorkloadDetails(ok=False),
            "": WorkloadDetails(ok=True),
        }
    )
    metrics = parse_metrics(generate_metrics(state, PromMetricsConfig()))
    assert metrics['kuberhealthy_running{current_master=""}'] == "1"
    assert metrics["kuberhealthy_cluster_state"] != "1"
    assert metrics['kuberhealthy_check{check="good",namespace="",status="1",error=""}'] == "1"
    assert metrics['kuberhealthy_check{check="bad",namespace="",status="0",error=""}'] == "0"
    assert metrics['kuberhealthy_check{check="",namespace="",status="1",error=""}'] == "1"


@pytest.fixture
def bad_state():
    return State(check_details={"bad": WorkloadDetails(errors=["12345678910"])})


def test_error_label_present(bad_state):
    metrics = parse_metrics(generate_metrics(bad_state, PromMetricsConfig()))
    assert metrics['kuberhealthy_check{check="bad",namespace="",status="0",error="12345678910"}'] == "0"


def test_error_label_suppressed(bad_state):
    metrics = parse_metrics(generate_metrics(bad_state, PromMetricsConfig(suppress_error_label=True)))
    assert metrics['kuberhealthy_check{check="bad",namespace="",status="0"}'] == "0"


def test_error_label_truncated(bad_state):
    config = PromMetricsConfig(suppress_error_label=False, error_label_max_length=4)
    metrics = parse_metrics(generate_metrics(bad_state, config))
    assert metrics['kuberhealthy_check{check="bad",namespace="",status="0",error="1234"}'] == "0"


def test_error_label_shorter_than_limit():
    state = State(check_details={"bad": WorkloadDetails(errors=["123"])})
    config = PromMetricsConfig(suppress_error_label=False, error_label_max_length=10)
    metrics = parse_metrics(generate_metrics(state, config))
    assert metrics['kuberhealthy_check{check="bad",namespace="",status="0",error="123"}'] == "0"


def test_multiple_errors_joined_and_quotes_replaced():
    state = State(check_details={"c": WorkloadDetails(errors=["a", 'say"x'])})
    output = generate_metrics(state)
    assert 'error="a|say\'x"' in output


def test_durations_for_checks_and_jobs():
    state = State(
        check_details={"c": WorkloadDetails(ok=True, namespace="ns", run_duration="1m30s")},
        job_details={"j": WorkloadDetails(namespace="ns")},
    )
    metrics = parse_metrics(generate_metrics(state))
    assert metrics['kuberhealthy_check_duration_seconds{check="c",namespace="ns"}'] == "90.000000"
    assert metrics['kuberhealthy_job_duration_seconds{check="j",namespace="ns"}'] == "0.000000"
    assert metrics['kuberhealthy_job{check="j",namespace="ns",status="0",error=""}'] == "0"


def test_unparseable_duration_counts_as_zero():
    state = State(check_details={"c": WorkloadDetails(run_duration="soon")})
    metrics = parse_metrics(generate_metrics(state))
    assert metrics['kuberhealthy_check_duration_seconds{check="c",namespace=""}'] == "0.000000"


def test_help_lines_precede_samples():
    state = State(check_details={"c": WorkloadDetails(ok=True)})
    lines = generate_metrics(state).split("\n")
    type_index = lines.index("# TYPE kuberhealthy_check gauge")
    assert lines[type_index + 1].startswith("kuberhealthy_check{")


def test_error_state_metrics():
    lines = error_state_metrics(State(current_master="testMaster")).split("\n")
    assert lines[2] == 'kuberhealthy_running{currentMaster="testMaster"} 0'
    assert lines[2].split(" ")[1] == "0"

    lines = error_state_metrics(State()).split("\n")
    assert lines[2] == 'kuberhealthy_running{currentMaster=""} 0'
    assert lines[2].split(" ")[1] == "0"


@pytest.mark.parametrize("state", [State(current_master="testMaster"), State()])
def test_write_metric_error(state):
    buffer = io.BytesIO()
    write_metric_error(buffer, state)
    assert buffer.getvalue().decode("utf-8") == error_state_metrics(state)


def test_write_metric_error_raises_on_write_failure():
    class Broken(io.RawIOBase):
        def write(self, data):
            raise OSError("closed")

    with pytest.raises(OSError):
        write_metric_error(Broken(), State())