"""Read access to the Kubernetes API for the checks, plus the objects they inspect."""

from __future__ import annotations

import base64
import json
import logging
import math
import os
import re
import ssl
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from datetime import datetime, timezone
from fractions import Fraction
from pathlib import Path
from typing import Any, Protocol

log = logging.getLogger(__name__)

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")


class KubeApiError(RuntimeError):
    """A request to the Kubernetes API failed."""

    def __init__(self, message: str, status: int = 0) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(KubeApiError):
    """The requested object does not exist."""


class ConfigError(RuntimeError):
    """No usable cluster configuration could be loaded."""


def is_not_found(error: BaseException) -> bool:
    """Tell whether an error means the requested object does not exist."""
    return isinstance(error, NotFoundError)


class Reporter(Protocol):
    """Receives the outcome of a check run; raises when a report cannot be sent."""

    def report_success(self) -> None:
        """Report that the check passed."""

    def report_failure(self, errors: list[str]) -> None:
        """Report that the check failed with these messages."""


@dataclass
class Pod:
    """The parts of a pod the checks look at."""

    name: str = ""
    namespace: str = ""
    phase: str = ""
    creation_timestamp: datetime | None = None
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class Event:
    """The parts of an event the checks look at."""

    name: str = ""
    namespace: str = ""
    type: str = ""
    reason: str = ""
    count: int = 0
    involved_kind: str = ""
    involved_name: str = ""
    involved_namespace: str = ""


@dataclass
class ResourceQuota:
    """CPU and memory limits and usage of a quota, in thousandths of a unit."""

    name: str = ""
    namespace: str = ""
    hard_cpu_milli: int = 0
    hard_memory_milli: int = 0
    used_cpu_milli: int = 0
    used_memory_milli: int = 0


_QUANTITY = re.compile(r"^([+-]?(?:\d+\.?\d*|\.\d+))(.*)$")
_EXPONENT = re.compile(r"^[eE][+-]?\d+$")
_BINARY_SUFFIXES = {
    "Ki": 2**10,
    "Mi": 2**20,
    "Gi": 2**30,
    "Ti": 2**40,
    "Pi": 2**50,
    "Ei": 2**60,
}
_DECIMAL_SUFFIXES: dict[str, Fraction] = {
    "n": Fraction(1, 10**9),
    "u": Fraction(1, 10**6),
    "m": Fraction(1, 1000),
    "": Fraction(1),
    "k": Fraction(10**3),
    "M": Fraction(10**6),
    "G": Fraction(10**9),
    "T": Fraction(10**12),
    "P": Fraction(10**15),
    "E": Fraction(10**18),
}


def _milli_value(text: str | None) -> int:
    if not text:
        return 0
    match = _QUANTITY.match(text.strip())
    if not match:
        raise ValueError(f"invalid quantity {text!r}")
    number = Fraction(match.group(1))
    suffix = match.group(2)
    if suffix in _BINARY_SUFFIXES:
        scale = Fraction(_BINARY_SUFFIXES[suffix])
    elif suffix in _DECIMAL_SUFFIXES:
        scale = _DECIMAL_SUFFIXES[suffix]
    elif _EXPONENT.match(suffix):
        scale = Fraction(10) ** int(suffix[1:])
    else:
        raise ValueError(f"invalid quantity suffix in {text!r}")
    return math.ceil(number * scale * 1000)


def _parse_time(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _pod_from_json(item: dict[str, Any]) -> Pod:
    meta = item.get("metadata") or {}
    status = item.get("status") or {}
    created = meta.get("creationTimestamp")
    return Pod(
        name=meta.get("name", ""),
        namespace=meta.get("namespace", ""),
        phase=status.get("phase", ""),
        creation_timestamp=_parse_time(created) if created else None,
        labels=dict(meta.get("labels") or {}),
    )


def _event_from_json(item: dict[str, Any]) -> Event:
    meta = item.get("metadata") or {}
    involved = item.get("involvedObject") or {}
    return Event(
        name=meta.get("name", ""),
        namespace=meta.get("namespace", ""),
        type=item.get("type", ""),
        reason=item.get("reason", ""),
        count=int(item.get("count") or 0),
        involved_kind=involved.get("kind", ""),
        involved_name=involved.get("name", ""),
        involved_namespace=involved.get("namespace", ""),
    )


def _quota_from_json(item: dict[str, Any]) -> ResourceQuota:
    meta = item.get("metadata") or {}
    status = item.get("status") or {}
    hard = status.get("hard") or {}
    used = status.get("used") or {}
    return ResourceQuota(
        name=meta.get("name", ""),
        namespace=meta.get("namespace", ""),
        hard_cpu_milli=_milli_value(hard.get("cpu")),
        hard_memory_milli=_milli_value(hard.get("memory")),
        used_cpu_milli=_milli_value(used.get("cpu")),
        used_memory_milli=_milli_value(used.get("memory")),
    )


def _ssl_context(
    ca_file: str | None,
    ca_data: str | None,
    insecure: bool,
    client_cert: str | None,
    client_key: str | None,
) -> ssl.SSLContext:
    context = ssl.create_default_context(cafile=ca_file, cadata=ca_data)
    if insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    if client_cert:
        context.load_cert_chain(client_cert, client_key)
    return context


class KubeClient:
    """A small read-only client for the core Kubernetes API."""

    def __init__(
        self,
        server: str,
        *,
        token: str = "",
        ca_file: str | None = None,
        ca_data: str | None = None,
        insecure: bool = False,
        client_cert: str | None = None,
        client_key: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.server = server.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._context: ssl.SSLContext | None = None
        if self.server.startswith("https://"):
            self._context = _ssl_context(ca_file, ca_data, insecure, client_cert, client_key)

    @classmethod
    def create(
        cls, kube_config_file: str = "", service_account_dir: Path | str = SERVICE_ACCOUNT_DIR
    ) -> KubeClient:
        """Use the in-cluster service account, or fall back to a kubeconfig file."""
        try:
            return cls.in_cluster(service_account_dir)
        except ConfigError as exc:
            log.debug("Not using in-cluster configuration: %s", exc)
        return cls.from_kubeconfig(kube_config_file)

    @classmethod
    def in_cluster(cls, service_account_dir: Path | str = SERVICE_ACCOUNT_DIR) -> KubeClient:
        """Build a client from the pod's service account and service environment."""
        host = os.environ.get("KUBERNETES_SERVICE_HOST", "")
        port = os.environ.get("KUBERNETES_SERVICE_PORT", "")
        if not host or not port:
            raise ConfigError(
                "unable to load in-cluster configuration, KUBERNETES_SERVICE_HOST and "
                "KUBERNETES_SERVICE_PORT must be defined"
            )
        account = Path(service_account_dir)
        try:
            token = (account / "token").read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"reading service account token: {exc}") from exc
        ca_path = account / "ca.crt"
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        return cls(
            f"https://{host}:{port}",
            token=token,
            ca_file=str(ca_path) if ca_path.exists() else None,
        )

    @classmethod
    def from_kubeconfig(cls, path: str | os.PathLike[str]) -> KubeClient:
        """Build a client from the current context of a kubeconfig file in JSON form."""
        if not path:
            raise ConfigError("no kubeconfig file given and not running inside a cluster")
        config_path = Path(path)
        try:
            config = json.loads(config_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigError(f"reading kubeconfig {config_path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"kubeconfig {config_path} is not JSON: {exc}") from exc

        def named(section: str, name: str) -> dict[str, Any]:
            kind = section[:-1]
            for entry in config.get(section) or []:
                if entry.get("name") == name:
                    return entry.get(kind) or {}
            raise ConfigError(f"{kind} {name!r} not found in kubeconfig {config_path}")

        context = named("contexts", config.get("current-context", ""))
        cluster = named("clusters", context.get("cluster", ""))
        user = named("users", context["user"]) if context.get("user") else {}
        server = cluster.get("server")
        if not server:
            raise ConfigError(f"cluster in kubeconfig {config_path} has no server")

        base = config_path.parent

        def resolve(value: str | None) -> str | None:
            return str(base / value) if value else None

        token = user.get("token", "")
        if not token and user.get("tokenFile"):
            token = (base / user["tokenFile"]).read_text(encoding="utf-8").strip()
        ca_data = cluster.get("certificate-authority-data")
        return cls(
            server,
            token=token,
            ca_file=resolve(cluster.get("certificate-authority")),
            ca_data=base64.b64decode(ca_data).decode("ascii") if ca_data else None,
            insecure=bool(cluster.get("insecure-skip-tls-verify")),
            client_cert=resolve(user.get("client-certificate")),
            client_key=resolve(user.get("client-key")),
        )

    def _get(self, path: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        query = {key: value for key, value in (params or {}).items() if value}
        url = self.server + path
        if query:
            url += "?" + urllib.parse.urlencode(query)
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        request = urllib.request.Request(url, headers=headers)
        try:
            with urllib.request.urlopen(
                request, timeout=self.timeout, context=self._context
            ) as response:
                return json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            try:
                message = json.loads(body).get("message") or body
            except (json.JSONDecodeError, AttributeError):
                message = body or str(exc)
            if exc.code == 404:
                raise NotFoundError(message, 404) from exc
            raise KubeApiError(message, exc.code) from exc
        except urllib.error.URLError as exc:
            raise KubeApiError(str(exc.reason)) from exc

    @staticmethod
    def _collection(kind: str, namespace: str) -> str:
        if namespace:
            return f"/api/v1/namespaces/{urllib.parse.quote(namespace)}/{kind}"
        return f"/api/v1/{kind}"

    def list_pods(
        self, namespace: str = "", label_selector: str = "", field_selector: str = ""
    ) -> list[Pod]:
        """List pods in a namespace, or in all namespaces when it is empty."""
        data = self._get(
            self._collection("pods", namespace),
            {"labelSelector": label_selector, "fieldSelector": field_selector},
        )
        return [_pod_from_json(item) for item in data.get("items") or []]

    def get_pod(self, namespace: str, name: str) -> Pod:
        """Fetch one pod; raises NotFoundError when it does not exist."""
        path = f"{self._collection('pods', namespace)}/{urllib.parse.quote(name)}"
        return _pod_from_json(self._get(path))

    def list_events(self, namespace: str = "", field_selector: str = "") -> list[Event]:
        """List events in a namespace, or in all namespaces when it is empty."""
        data = self._get(
            self._collection("events", namespace), {"fieldSelector": field_selector}
        )
        return [_event_from_json(item) for item in data.get("items") or []]

    def list_namespaces(self) -> list[str]:
        """Return the names of all namespaces."""
        data = self._get("/api/v1/namespaces")
        return [(item.get("metadata") or {}).get("name", "") for item in data.get("items") or []]

    def list_resource_quotas(self, namespace: str) -> list[ResourceQuota]:
        """List the resource quotas of a namespace."""
        data = self._get(self._collection("resourcequotas", namespace))
        return [_quota_from_json(item) for item in data.get("items") or []]