"""Tests for moa/stop.py."""

import pytest

from moa.errors import ConfigurationError
from moa.stop import (
    CallableStop,
    ContainsTextStop,
    MaxResponsesStop,
    UnchangedStop,
    build_stop_condition,
)
from tests.conftest import responses


def test_contains_checks_latest_aggregate_only():
    stop = ContainsTextStop("DONE")
    assert stop.should_stop(responses("working", "all done here"))
    assert not stop.should_stop(responses("DONE", "still going"))
    assert not stop.should_stop([])


def test_contains_requires_text():
    with pytest.raises(ConfigurationError):
        ContainsTextStop("")


def test_max_responses():
    stop = MaxResponsesStop(2)
    assert not stop.should_stop(responses("a"))
    assert stop.should_stop(responses("a", "b"))
    assert stop.should_stop(responses("a", "b", "c"))


def test_max_responses_rejects_zero():
    with pytest.raises(ConfigurationError, match=">= 1"):
        MaxResponsesStop(0)


def test_unchanged_compares_last_two():
    stop = UnchangedStop()
    assert not stop.should_stop(responses("same"))
    assert stop.should_stop(responses("other", "same", "same\n"))
    assert not stop.should_stop(responses("same", "same", "different"))


def test_callable_stop_wraps_predicate():
    stop = CallableStop(lambda history: len(history) > 1)
    assert not stop.should_stop(responses("a"))
    assert stop.should_stop(responses("a", "b"))


@pytest.mark.parametrize(
    "raw, expected_type",
    [
        ({"type": "contains", "value": "FINAL"}, ContainsTextStop),
        ({"type": "max_responses", "value": "3"}, MaxResponsesStop),
        ({"type": "unchanged"}, UnchangedStop),
    ],
)
def test_build_stop_condition(raw, expected_type):
    assert isinstance(build_stop_condition(raw), expected_type)


@pytest.mark.parametrize(
    "raw",
    [
        {"type": "sentiment"},
        {"type": "max_responses", "value": "many"},
        {"type": "contains"},
        ["contains", "x"],
    ],
)
def test_build_stop_condition_rejects_bad_config(raw):
    with pytest.raises(ConfigurationError):
        build_stop_condition(raw)
