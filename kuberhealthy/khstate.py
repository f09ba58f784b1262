"""Kuberhealthy state resources: per-workload status details and a cached store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class WorkloadKind(str, Enum):
    """The kinds of workload Kuberhealthy manages."""

    KH_CHECK = "KHCheck"
    KH_JOB = "KHJob"


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_time(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class WorkloadDetails:
    """Current status of a single check or job."""

    ok: bool = False
    errors: list[str] = field(default_factory=list)
    run_duration: str = ""
    namespace: str = ""
    node: str = ""
    last_run: datetime | None = None
    authoritative_pod: str = ""
    current_uuid: str = ""
    kh_workload: WorkloadKind | None = None

    @property
    def workload(self) -> WorkloadKind:
        """The workload kind; raises ValueError when it was never set."""
        if not self.kh_workload:
            raise ValueError("workload details have a blank workload type")
        return self.kh_workload

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the resource's JSON field layout."""
        data: dict[str, Any] = {
            "OK": self.ok,
            "Errors": list(self.errors),
            "RunDuration": self.run_duration,
            "Namespace": self.namespace,
            "Node": self.node,
        }
        if self.last_run is not None:
            data["LastRun"] = _format_time(self.last_run)
        data["AuthoritativePod"] = self.authoritative_pod
        data["uuid"] = self.current_uuid
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkloadDetails:
        """Build details from the resource's JSON field layout."""
        last_run = data.get("LastRun")
        return cls(
            ok=bool(data.get("OK", False)),
            errors=list(data.get("Errors") or []),
            run_duration=data.get("RunDuration", "") or "",
            namespace=data.get("Namespace", "") or "",
            node=data.get("Node", "") or "",
            last_run=_parse_time(last_run) if last_run else None,
            authoritative_pod=data.get("AuthoritativePod", "") or "",
            current_uuid=data.get("uuid", "") or "",
        )


@dataclass
class KuberhealthyState:
    """A named state resource holding workload details."""

    name: str = ""
    namespace: str = ""
    spec: WorkloadDetails = field(default_factory=WorkloadDetails)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the resource's JSON layout."""
        metadata: dict[str, Any] = {"name": self.name}
        if self.namespace:
            metadata["namespace"] = self.namespace
        return {"metadata": metadata, "spec": self.spec.to_dict()}


@dataclass
class KuberhealthyStateList:
    """A list of state resources."""

    items: list[KuberhealthyState] = field(default_factory=list)


@dataclass
class CachedStateStore:
    """Serves state lookups from a locally cached list of objects."""

    items: list[object] = field(default_factory=list)
    namespace: str = ""

    def get(self, name: str) -> KuberhealthyState:
        """Return the cached state with this name in the store's namespace."""
        for item in self.items:
            if not isinstance(item, KuberhealthyState):
                continue
            if item.namespace == self.namespace and item.name == name:
                return item
        raise KeyError("Not found")

    def list(self) -> KuberhealthyStateList:
        """Return every cached state resource, skipping foreign objects."""
        return KuberhealthyStateList(
            items=[item for item in self.items if isinstance(item, KuberhealthyState)]
        )


def new_workload_details(workload_type: WorkloadKind | str) -> WorkloadDetails:
    """Create empty details for a workload of the given kind."""
    if not workload_type:
        raise ValueError("cannot create workload details with an empty workload type")
    return WorkloadDetails(errors=[], kh_workload=WorkloadKind(workload_type))


def new_kuberhealthy_state(name: str, spec: WorkloadDetails) -> KuberhealthyState:
    """Create a state resource with the given name and details."""
    return KuberhealthyState(name=name, spec=spec)