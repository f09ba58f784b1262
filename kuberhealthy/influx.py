"""Pushing metrics to an InfluxDB 1.x server over its HTTP write API."""

from __future__ import annotations

import base64
import http.client
import math
import socket
import ssl
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode, urlsplit

from kuberhealthy.metrics import Metric

_DEFAULT_USER_AGENT = "InfluxDBClient"


class InfluxWriteError(RuntimeError):
    """The server refused a write."""


@dataclass
class InfluxConfig:
    """Connection settings; ``timeout`` is in seconds."""

    url: str = ""
    unix_socket: str = ""
    username: str = ""
    password: str = ""
    user_agent: str = ""
    timeout: float | None = None
    precision: str = ""
    write_consistency: str = ""
    unsafe_ssl: bool = False


def _escape_measurement(name: str) -> str:
    return name.replace(",", "\\,").replace(" ", "\\ ")


def _escape_tag(text: str) -> str:
    return text.replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError(f"unsupported field value {value!r}")
        return format(Decimal(repr(value)).normalize(), "f")
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    raise TypeError(f"unsupported field value type {type(value).__name__}")


def format_line(measurement: str, value: Any, tags: dict[str, str] | None = None) -> str:
    """Render one point with a single ``value`` field in line protocol."""
    if not measurement:
        raise ValueError("missing measurement")
    parts = [_escape_measurement(measurement)]
    for key, tag_value in sorted((tags or {}).items()):
        if not key or not tag_value:
            continue
        parts.append(f"{_escape_tag(key)}={_escape_tag(tag_value)}")
    return f"{','.join(parts)} value={_format_value(value)}"


class _UnixHTTPConnection(http.client.HTTPConnection):
    def __init__(self, path: str, timeout: float | None) -> None:
        super().__init__("localhost", timeout=timeout)
        self._socket_path = path

    def connect(self) -> None:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        if self.timeout is not None:
            sock.settimeout(self.timeout)
        sock.connect(self._socket_path)
        self.sock = sock


class InfluxClient:
    """Writes metric batches into one InfluxDB database."""

    def __init__(self, database: str, config: InfluxConfig) -> None:
        if not config.unix_socket:
            parts = urlsplit(config.url)
            if parts.scheme not in ("http", "https") or not parts.hostname:
                raise ValueError(f"unsupported InfluxDB URL {config.url!r}")
        self.database = database
        self.config = config

    def push(self, points: Metric, tags: dict[str, str] | None = None) -> None:
        """Write each name/value pair as a point, with spaces in names made underscores."""
        lines = [
            format_line(name.replace(" ", "_"), value, tags)
            for point in points
            for name, value in point.items()
        ]
        self._write("".join(f"{line}\n" for line in lines).encode("utf-8"))

    def _connection(self) -> tuple[http.client.HTTPConnection, str]:
        config = self.config
        parts = urlsplit(config.url)
        base_path = parts.path.rstrip("/")
        if config.unix_socket:
            return _UnixHTTPConnection(config.unix_socket, config.timeout), base_path
        if parts.scheme == "https":
            context = ssl.create_default_context()
            if config.unsafe_ssl:
                context.check_hostname = False
                context.verify_mode = ssl.CERT_NONE
            connection: http.client.HTTPConnection = http.client.HTTPSConnection(
                parts.hostname, parts.port, timeout=config.timeout, context=context
            )
        else:
            connection = http.client.HTTPConnection(
                parts.hostname, parts.port, timeout=config.timeout
            )
        return connection, base_path

    def _write(self, body: bytes) -> None:
        config = self.config
        params = {"db": self.database}
        if config.precision:
            params["precision"] = config.precision
        if config.write_consistency:
            params["consistency"] = config.write_consistency
        headers = {
            "Content-Type": "text/plain",
            "User-Agent": config.user_agent or _DEFAULT_USER_AGENT,
        }
        if config.username:
            credentials = f"{config.username}:{config.password}".encode("utf-8")
            headers["Authorization"] = "Basic " + base64.b64encode(credentials).decode("ascii")

        connection, base_path = self._connection()
        try:
            connection.request("POST", f"{base_path}/write?{urlencode(params)}", body, headers)
            response = connection.getresponse()
            payload = response.read()
        finally:
            connection.close()
        if response.status not in (200, 204):
            message = payload.decode("utf-8", errors="replace").strip()
            raise InfluxWriteError(f"write failed with status {response.status}: {message}")