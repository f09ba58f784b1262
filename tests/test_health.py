import io
import json

import pytest

from kuberhealthy.health import State, new_state
from kuberhealthy.khstate import WorkloadDetails


def test_new_state():
    s = new_state()
    assert s.ok is True
    assert s.errors == []


def test_add_error():
    s = new_state()
    s.add_error("my error message")
    s.add_error("my another error message")
    assert "my error message" in s.errors
    assert "my another error message" in s.errors


def test_add_error_skips_blank_and_accepts_many():
    s = new_state()
    s.add_error("one", "", "two")
    assert s.errors == ["one", "two"]


def test_default_state_is_not_ok():
    assert State().ok is False


def test_to_json_contains_fields():
    s = new_state()
    s.current_master = "kh-0"
    s.check_details["b"] = WorkloadDetails(ok=True)
    s.check_details["a"] = WorkloadDetails(ok=False, errors=["x"])
    data = json.loads(s.to_json())
    assert data["OK"] is True
    assert data["CurrentMaster"] == "kh-0"
    assert list(data["CheckDetails"]) == ["a", "b"]
    assert data["CheckDetails"]["a"]["Errors"] == ["x"]
    assert data["JobDetails"] == {}


def test_write_http_status_response():
    s = new_state()
    s.add_error("bad")
    buffer = io.BytesIO()
    s.write_http_status_response(buffer)
    assert buffer.getvalue().decode("utf-8") == s.to_json()


class _BrokenWriter:
    def write(self, data):
        raise OSError("closed")


def test_write_http_status_response_propagates_errors():
    with pytest.raises(OSError):
        new_state().write_http_status_response(_BrokenWriter())