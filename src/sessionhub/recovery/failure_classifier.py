"""Deterministic error classification for the recovery policy."""

from __future__ import annotations

from dataclasses import dataclass

from sessionhub.recovery.models import ErrorCategory

ERROR_CLASSIFIER_VERSION = 1

_NETWORK_PATTERNS: tuple[str, ...] = (
    "network",
    "timeout",
    "timed out",
    "connection",
)
_VALIDATION_PATTERNS: tuple[str, ...] = (
    "validation",
    "invalid",
    "constraint",
)
_EXECUTION_PATTERNS: tuple[str, ...] = (
    "execution",
    "runtime",
    "process",
)
_FATAL_PATTERNS: tuple[str, ...] = (
    "fatal",
    "crash",
    "out of memory",
)


@dataclass(slots=True)
class ErrorClassification:
    """Normalized error classification result."""

    category: ErrorCategory
    matched_rule: str
    matched_pattern: str | None

    def to_event_details(self, *, session_id: str, phase: str) -> dict[str, object]:
        """Serialize classifier diagnostics for logs and workflow events."""

        return {
            "classifier_version": ERROR_CLASSIFIER_VERSION,
            "session_id": session_id,
            "phase": phase,
            "category": self.category.value,
            "matched_rule": self.matched_rule,
            "matched_pattern": self.matched_pattern,
        }


def classify_error(error: BaseException | str) -> ErrorClassification:
    """Classify an error by its message; first matching category wins."""

    haystack = _normalize_text(error)
    rules = (
        (ErrorCategory.NETWORK, _NETWORK_PATTERNS),
        (ErrorCategory.VALIDATION, _VALIDATION_PATTERNS),
        (ErrorCategory.EXECUTION, _EXECUTION_PATTERNS),
        (ErrorCategory.FATAL, _FATAL_PATTERNS),
    )
    for category, patterns in rules:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return ErrorClassification(
                category=category,
                matched_rule=category.value,
                matched_pattern=pattern,
            )
    if isinstance(error, TimeoutError | ConnectionError):
        return ErrorClassification(
            category=ErrorCategory.NETWORK,
            matched_rule="network_exception_type",
            matched_pattern=None,
        )
    if isinstance(error, MemoryError):
        return ErrorClassification(
            category=ErrorCategory.FATAL,
            matched_rule="fatal_exception_type",
            matched_pattern=None,
        )
    return ErrorClassification(
        category=ErrorCategory.UNKNOWN,
        matched_rule="fallback_unknown",
        matched_pattern=None,
    )


def _normalize_text(error: BaseException | str) -> str:
    return str(error).lower()


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
