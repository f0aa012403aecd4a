"""
Domain models for Expiry Refill.

`ExpirationEvent` and `Record` describe data crossing the adapter boundaries and
are validated with Pydantic. `Found` and `NotFound` are the two outcomes of a
refill; they are plain frozen dataclasses and are never persisted.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from pydantic import BaseModel, Field


class ExpirationEvent(BaseModel):
    """
    A single key-expiration notification as delivered by the cache.

    An empty `key` is representable so the worker can reject it explicitly.
    """

    channel: str = Field(..., description="Pub/sub channel the notification arrived on.")
    key: str = Field(..., description="The expired cache key.")

    model_config = {
        "frozen": True,
    }


class Record(BaseModel):
    """
    Authoritative value for a cache key, as held by the record store.
    """

    id: str = Field(..., description="Store-internal document identifier.")
    key: str = Field(..., description="Value of the indexed key field.")
    value: str = Field(..., description="Value to publish into the cache.")

    model_config = {
        "frozen": True,
    }


@dataclass(frozen=True)
class Found:
    key: str
    value: str


@dataclass(frozen=True)
class NotFound:
    key: str


RefillOutcome = Union[Found, NotFound]


__all__ = ["ExpirationEvent", "Record", "Found", "NotFound", "RefillOutcome"]
