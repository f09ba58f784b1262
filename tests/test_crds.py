import json

import pytest

from kuberhealthy.crds import (
    CheckConfig,
    JobConfig,
    JobPhase,
    KuberhealthyCheck,
    KuberhealthyCheckList,
    KuberhealthyJob,
    KuberhealthyJobList,
    new_kuberhealthy_check,
    new_kuberhealthy_job,
)


@pytest.fixture
def check_spec():
    return CheckConfig(
        run_interval="5m",
        timeout="2m",
        pod_spec={"containers": [{"name": "probe", "image": "probe:latest"}]},
        extra_annotations={"team": "infra"},
        extra_labels={"tier": "ops"},
    )


def test_new_check_sets_fields(check_spec):
    check = new_kuberhealthy_check("dns", "kuberhealthy", check_spec)
    assert check.name == "dns"
    assert check.namespace == "kuberhealthy"
    assert check.spec is check_spec


def test_check_to_dict_layout(check_spec):
    data = new_kuberhealthy_check("dns", "kuberhealthy", check_spec).to_dict()
    assert data["metadata"] == {"name": "dns", "namespace": "kuberhealthy"}
    assert data["spec"]["runInterval"] == "5m"
    assert data["spec"]["timeout"] == "2m"
    assert data["spec"]["podSpec"] == check_spec.pod_spec
    assert data["spec"]["extraAnnotations"] == {"team": "infra"}
    assert data["spec"]["extraLabels"] == {"tier": "ops"}
    assert "kind" not in data


def test_check_to_dict_is_json_serialisable_and_independent(check_spec):
    check = new_kuberhealthy_check("dns", "kuberhealthy", check_spec)
    data = check.to_dict()
    data["spec"]["extraLabels"]["tier"] = "changed"
    assert check.spec.extra_labels["tier"] == "ops"
    assert json.loads(json.dumps(check.to_dict())) == check.to_dict()


def test_empty_check_metadata_omitted():
    data = KuberhealthyCheck(kind="KuberhealthyCheck", api_version="comcast.github.io/v1").to_dict()
    assert data["metadata"] == {}
    assert data["kind"] == "KuberhealthyCheck"
    assert data["apiVersion"] == "comcast.github.io/v1"


def test_job_phase_values():
    assert JobPhase.RUNNING.value == "Running"
    assert JobPhase.COMPLETED.value == "Completed"
    assert JobPhase("Completed") is JobPhase.COMPLETED


def test_new_job_to_dict():
    spec = JobConfig(phase=JobPhase.RUNNING, timeout="10m", extra_labels={"run": "once"})
    job = new_kuberhealthy_job("deploy", "kh", spec)
    data = job.to_dict()
    assert job.name == "deploy"
    assert job.namespace == "kh"
    assert data["metadata"] == {"name": "deploy", "namespace": "kh"}
    assert data["spec"]["phase"] == "Running"
    assert data["spec"]["timeout"] == "10m"
    assert data["spec"]["extraLabels"] == {"run": "once"}


def test_job_without_phase_serialises_blank_phase():
    assert KuberhealthyJob(name="j").to_dict()["spec"]["phase"] == ""


def test_lists_hold_items(check_spec):
    checks = KuberhealthyCheckList(items=[new_kuberhealthy_check("a", "ns", check_spec)])
    jobs = KuberhealthyJobList()
    assert [item.name for item in checks.items] == ["a"]
    assert jobs.items == []