"""Timezone-aware timestamps shared by checkpoints, workflows and patterns."""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string written by ``datetime.isoformat``.

    Naive values are read as UTC so that comparisons with ``utc_now`` never
    mix aware and naive datetimes.
    """

    return as_utc(datetime.fromisoformat(value))


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive values (SQLite drops tzinfo on read)."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
