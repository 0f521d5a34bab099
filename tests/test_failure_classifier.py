from __future__ import annotations

import allure

from sessionhub.recovery.failure_classifier import ERROR_CLASSIFIER_VERSION, classify_error
from sessionhub.recovery.models import ErrorCategory

pytestmark = [
    allure.epic("Error Recovery"),
    allure.feature("Failure Classification"),
]


def test_classifier_version_is_stable() -> None:
    assert ERROR_CLASSIFIER_VERSION == 1


def test_classifier_maps_network_messages() -> None:
    classified = classify_error("Connection reset by peer")
    assert classified.category == ErrorCategory.NETWORK
    assert classified.matched_rule == "network"
    assert classified.matched_pattern == "connection"

    assert classify_error("Request timed out").matched_pattern == "timed out"


def test_classifier_prefers_network_over_validation() -> None:
    classified = classify_error(ValueError("invalid connection string"))

    assert classified.category == ErrorCategory.NETWORK


def test_classifier_maps_validation_execution_and_fatal() -> None:
    assert classify_error("Schema constraint violated").category == ErrorCategory.VALIDATION
    assert classify_error(RuntimeError("runtime hiccup")).category == ErrorCategory.EXECUTION
    assert classify_error("Unit b failed: execution failed for b").category == (
        ErrorCategory.EXECUTION
    )
    assert classify_error("worker crash").category == ErrorCategory.FATAL


def test_classifier_falls_back_to_exception_type() -> None:
    timeout = classify_error(TimeoutError())
    assert timeout.category == ErrorCategory.NETWORK
    assert timeout.matched_rule == "network_exception_type"
    assert timeout.matched_pattern is None

    assert classify_error(MemoryError()).category == ErrorCategory.FATAL


def test_classifier_unknown_error() -> None:
    classified = classify_error("something odd happened")

    assert classified.category == ErrorCategory.UNKNOWN
    assert classified.matched_rule == "fallback_unknown"


def test_event_details_payload() -> None:
    details = classify_error("network down").to_event_details(session_id="s1", phase="build")

    assert details == {
        "classifier_version": 1,
        "session_id": "s1",
        "phase": "build",
        "category": "network",
        "matched_rule": "network",
        "matched_pattern": "network",
    }
