"""Top-level health state shown on the Kuberhealthy status page."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, BinaryIO

from kuberhealthy.khstate import WorkloadDetails

log = logging.getLogger(__name__)


@dataclass
class State:
    """Results of all managed checks and jobs with an overall OK flag."""

    ok: bool = False
    errors: list[str] = field(default_factory=list)
    check_details: dict[str, WorkloadDetails] = field(default_factory=dict)
    job_details: dict[str, WorkloadDetails] = field(default_factory=dict)
    current_master: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    def add_error(self, *args: str) -> None:
        """Append non-blank error messages."""
        for message in args:
            if not message:
                log.warning("add_error was called with a blank error; skipped.")
                continue
            log.debug("Appending error: %s", message)
            self.errors.append(message)

    def _as_dict(self) -> dict[str, Any]:
        return {
            "OK": self.ok,
            "Errors": list(self.errors),
            "CheckDetails": {k: v.to_dict() for k, v in sorted(self.check_details.items())},
            "JobDetails": {k: v.to_dict() for k, v in sorted(self.job_details.items())},
            "CurrentMaster": self.current_master,
            "Metadata": dict(sorted(self.metadata.items())),
        }

    def to_json(self) -> str:
        """Render the state as indented JSON."""
        return json.dumps(self._as_dict(), indent=2, ensure_ascii=False)

    def write_http_status_response(self, writer: BinaryIO) -> None:
        """Write the JSON state to a byte stream."""
        body = self.to_json().encode("utf-8")
        try:
            writer.write(body)
        except OSError as exc:
            log.error("Error writing response to caller: %s", exc)
            raise


def new_state() -> State:
    """Create a fresh, healthy state."""
    return State(ok=True)