"""Check that a network endpoint accepts connections."""

from __future__ import annotations

import logging
import queue
import socket
import threading
from datetime import timedelta

from kuberhealthy.kube import Reporter

log = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Failed to complete network connection check in time! Timeout was reached."
DEFAULT_TIMEOUT = timedelta(seconds=20)

_FAMILIES = {
    "tcp": (socket.AF_UNSPEC, socket.SOCK_STREAM),
    "tcp4": (socket.AF_INET, socket.SOCK_STREAM),
    "tcp6": (socket.AF_INET6, socket.SOCK_STREAM),
    "udp": (socket.AF_UNSPEC, socket.SOCK_DGRAM),
    "udp4": (socket.AF_INET, socket.SOCK_DGRAM),
    "udp6": (socket.AF_INET6, socket.SOCK_DGRAM),
}


def split_address(full_address: str) -> tuple[str, str]:
    """Split "proto://host:port" into protocol and address; the protocol defaults to tcp."""
    network, sep, address = full_address.partition("://")
    if sep:
        return network, address
    return "tcp", full_address


def _split_host_port(address: str) -> tuple[str, str]:
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise OSError(f"address {address}: missing ']' in address")
        host, rest = address[1:end], address[end + 1 :]
        if not rest.startswith(":"):
            raise OSError(f"address {address}: missing port in address")
        return host, rest[1:]
    host, sep, port = address.rpartition(":")
    if not sep:
        raise OSError(f"address {address}: missing port in address")
    if ":" in host:
        raise OSError(f"address {address}: too many colons in address")
    return host, port


def _resolve_port(port: str, socktype: int) -> int:
    if port.isdigit():
        return int(port)
    protocol = "tcp" if socktype == socket.SOCK_STREAM else "udp"
    return socket.getservbyname(port, protocol)


def _dial(network: str, address: str, timeout: float) -> None:
    if network not in _FAMILIES:
        raise OSError(f"dial {network}: unknown network {network}")
    family, socktype = _FAMILIES[network]
    host, port_text = _split_host_port(address)
    port = _resolve_port(port_text, socktype)
    infos = socket.getaddrinfo(host or None, port, family, socktype)
    last_error: OSError | None = None
    for af, kind, proto, _, sockaddr in infos:
        sock = socket.socket(af, kind, proto)
        try:
            sock.settimeout(timeout)
            sock.connect(sockaddr)
            return
        except OSError as exc:
            last_error = exc
        finally:
            sock.close()
    raise last_error or OSError(f"dial {network} {address}: no addresses found")


def check_connection(target: str, timeout: timedelta | float = DEFAULT_TIMEOUT) -> None:
    """Open and close a connection to the target; raises ConnectionError when it is down."""
    seconds = timeout.total_seconds() if isinstance(timeout, timedelta) else float(timeout)
    network, address = split_address(target)
    try:
        _dial(network, address, seconds)
    except OSError as exc:
        message = f"Network connection check determined that {target} is DOWN: {exc}"
        log.error(message)
        raise ConnectionError(message) from exc


class NetworkConnectionChecker:
    """Reports whether a target is reachable, or expected to be unreachable."""

    def __init__(
        self,
        target: str,
        target_unreachable: bool = False,
        timeout: timedelta = DEFAULT_TIMEOUT,
    ) -> None:
        self.target = target
        self.target_unreachable = target_unreachable
        self.timeout = timeout

    def run(self, reporter: Reporter) -> None:
        """Run the connection check within the time limit and report the outcome."""
        log.info("Running network connection checker")
        outcome: queue.Queue[BaseException | None] = queue.Queue(maxsize=1)

        def work() -> None:
            try:
                check_connection(self.target, self.timeout)
            except Exception as exc:  # handed back to the waiting caller
                outcome.put(exc)
            else:
                outcome.put(None)

        threading.Thread(target=work, daemon=True).start()
        try:
            error = outcome.get(timeout=self.timeout.total_seconds())
        except queue.Empty:
            log.info("Cancelling check and shutting down due to timeout.")
            reporter.report_failure([TIMEOUT_MESSAGE])
            return
        if error is not None and not self.target_unreachable:
            reporter.report_failure([str(error)])
            return
        reporter.report_success()