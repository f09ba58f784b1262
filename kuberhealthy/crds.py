"""Check and job resources that tell Kuberhealthy which pods to run."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def _metadata(name: str, namespace: str) -> dict[str, Any]:
    metadata: dict[str, Any] = {}
    if name:
        metadata["name"] = name
    if namespace:
        metadata["namespace"] = namespace
    return metadata


def _resource(
    api_version: str, kind: str, name: str, namespace: str, spec: dict[str, Any]
) -> dict[str, Any]:
    data: dict[str, Any] = {}
    if kind:
        data["kind"] = kind
    if api_version:
        data["apiVersion"] = api_version
    data["metadata"] = _metadata(name, namespace)
    data["spec"] = spec
    return data


@dataclass
class CheckConfig:
    """How an external check runs: its interval, timeout and pod spec."""

    run_interval: str = ""
    timeout: str = ""
    pod_spec: dict[str, Any] = field(default_factory=dict)
    extra_annotations: dict[str, str] = field(default_factory=dict)
    extra_labels: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the resource's JSON field layout."""
        return {
            "runInterval": self.run_interval,
            "timeout": self.timeout,
            "podSpec": dict(self.pod_spec),
            "extraAnnotations": dict(self.extra_annotations),
            "extraLabels": dict(self.extra_labels),
        }


@dataclass
class KuberhealthyCheck:
    """A check resource."""

    name: str = ""
    namespace: str = ""
    spec: CheckConfig = field(default_factory=CheckConfig)
    api_version: str = ""
    kind: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the resource's JSON layout."""
        return _resource(self.api_version, self.kind, self.name, self.namespace, self.spec.to_dict())


@dataclass
class KuberhealthyCheckList:
    """A list of check resources."""

    items: list[KuberhealthyCheck] = field(default_factory=list)


class JobPhase(str, Enum):
    """The phase a job is in."""

    RUNNING = "Running"
    COMPLETED = "Completed"


@dataclass
class JobConfig:
    """How an external job runs: its phase, timeout and pod spec."""

    phase: JobPhase | None = None
    timeout: str = ""
    pod_spec: dict[str, Any] = field(default_factory=dict)
    extra_annotations: dict[str, str] = field(default_factory=dict)
    extra_labels: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the resource's JSON field layout."""
        return {
            "phase": self.phase.value if self.phase is not None else "",
            "timeout": self.timeout,
            "podSpec": dict(self.pod_spec),
            "extraAnnotations": dict(self.extra_annotations),
            "extraLabels": dict(self.extra_labels),
        }


@dataclass
class KuberhealthyJob:
    """A job resource."""

    name: str = ""
    namespace: str = ""
    spec: JobConfig = field(default_factory=JobConfig)
    api_version: str = ""
    kind: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the resource's JSON layout."""
        return _resource(self.api_version, self.kind, self.name, self.namespace, self.spec.to_dict())


@dataclass
class KuberhealthyJobList:
    """A list of job resources."""

    items: list[KuberhealthyJob] = field(default_factory=list)


def new_kuberhealthy_check(name: str, namespace: str, spec: CheckConfig) -> KuberhealthyCheck:
    """Create a check resource with the given name, namespace and spec."""
    return KuberhealthyCheck(name=name, namespace=namespace, spec=spec)


def new_kuberhealthy_job(name: str, namespace: str, spec: JobConfig) -> KuberhealthyJob:
    """Create a job resource with the given name, namespace and spec."""
    return KuberhealthyJob(name=name, namespace=namespace, spec=spec)