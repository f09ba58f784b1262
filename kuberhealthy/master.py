"""Choosing the master pod among several Kuberhealthy pods."""

from __future__ import annotations

import logging
import os
from typing import Any

log = logging.getLogger(__name__)


class MasterCalculator:
    """Picks the running Kuberhealthy pod whose name sorts first as master."""

    def __init__(
        self,
        client: Any,
        namespace: str | None = None,
        pod_name: str | None = None,
        force_master: bool = False,
    ) -> None:
        self.client = client
        self.namespace = os.environ.get("POD_NAMESPACE", "") if namespace is None else namespace
        self.pod_name = pod_name
        self.force_master = force_master

    def calculate_master(self) -> str:
        """Return the name of the pod that should act as master."""
        log.debug("Calculating current master...")
        pods = self.client.list_pods(
            self.namespace,
            label_selector="app=kuberhealthy",
            field_selector="status.phase=Running",
        )
        names = sorted(pod.name for pod in pods)
        if not names:
            raise LookupError("Failed to retrieve list of Kuberhealthy pods")
        master = names[0]
        log.debug("Calculated master as %s", master)
        return master

    def i_am_master(self) -> bool:
        """Tell whether this pod, named by POD_NAME, is the master."""
        if self.force_master:
            return True
        master = self.calculate_master()
        my_pod = self.pod_name if self.pod_name is not None else os.environ.get("POD_NAME", "")
        log.debug("My pod hostname is: %s", my_pod)
        if not my_pod:
            message = "Could not retrieve environment variable, or it had no content. POD_NAME"
            log.error(message)
            raise ValueError(message)
        if my_pod.lower() == master.lower():
            log.debug("I am master")
            return True
        log.debug("I am NOT master")
        return False