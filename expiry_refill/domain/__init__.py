"""
Domain package for Expiry Refill.

Exports the events, records and outcomes shared by the adapters, the worker and
the runner. Keep this package focused on data definitions.
"""

from expiry_refill.domain.models import (
    ExpirationEvent,
    Found,
    NotFound,
    Record,
    RefillOutcome,
)

__all__ = [
    "ExpirationEvent",
    "Found",
    "NotFound",
    "Record",
    "RefillOutcome",
]
