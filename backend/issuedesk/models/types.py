"""Column types translating between stored strings and the status registry."""
from __future__ import annotations
from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

from issuedesk.constants.statuses import normalize, resolve


class StatusType(TypeDecorator):
    """Reads canonical values and legacy aliases; always writes the canonical value.

    Raw values nothing can resolve are a data error and raise ``UnknownStatus`` on read.
    """
    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return normalize(value).value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return normalize(value)

    def coerce_compared_value(self, op, value):
        # Comparisons against plain strings go through the same translation.
        return self


class OptionalStatusType(StatusType):
    """Like ``StatusType`` but unreadable legacy values load as None."""
    cache_ok = True

    def process_result_value(self, value, dialect):
        return resolve(value)


__all__ = ['StatusType', 'OptionalStatusType']
