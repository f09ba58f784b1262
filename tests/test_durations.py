from datetime import timedelta

import pytest

from kuberhealthy.durations import format_duration, parse_duration


def test_parse_skip_duration():
    assert parse_duration("10m") == timedelta(minutes=10)


def test_zero_formats_as_zero_seconds():
    assert format_duration(timedelta(0)) == "0s"


def test_bare_zero_parses():
    assert parse_duration("0") == timedelta(0)


@pytest.mark.parametrize(
    "text", ["1h2m3s", "1.5s", "500ms", "250\u00b5s", "2h0m0s", "-3m4s", "45s"]
)
def test_canonical_round_trip(text):
    assert format_duration(parse_duration(text)) == text


def test_components_add_up():
    assert parse_duration("90s") == parse_duration("1m30s")
    assert parse_duration("1.5h") == parse_duration("90m")


def test_signs():
    assert parse_duration("+5s") == parse_duration("5s")
    assert parse_duration("-5s") == -parse_duration("5s")


def test_microsecond_spellings_agree():
    assert parse_duration("1us") == parse_duration("1\u00b5s") == parse_duration("1\u03bcs")


def test_format_is_inverse_of_parse_for_timedelta():
    delta = timedelta(hours=3, minutes=7, seconds=11, milliseconds=250)
    assert parse_duration(format_duration(delta)) == delta


@pytest.mark.parametrize("text", ["", "-", "10", "1x", ".s", "1.2.3s", "s"])
def test_invalid_durations(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_overflow_rejected():
    with pytest.raises(ValueError):
        parse_duration("9999999999h")