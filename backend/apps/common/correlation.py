"""
Correlation id propagation.

One id per inbound request or task; every log record emitted while it is set
carries it (see logging_utils.CorrelationIdFilter).
"""
from contextvars import ContextVar
from typing import Optional

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def set_correlation_id(value: Optional[str]) -> None:
    _correlation_id.set(value)
