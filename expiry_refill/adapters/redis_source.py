"""Redis keyspace-notification source.

Subscribes to the cache's expiration channel via pub/sub and yields each
notification as an `ExpirationEvent` from an async generator.

With keyevent notifications (`__keyevent@<db>__:expired`) the message payload
is the expired key name. Glob channels such as `__keyevent@*__:expired` are
subscribed with PSUBSCRIBE so several databases can feed one worker.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional, Union

from redis.asyncio import Redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError, ResponseError

from expiry_refill.domain.models import ExpirationEvent
from expiry_refill.errors import InvalidEvent

# Keyspace-event classes required for expiration notifications: E (keyevent) and x (expired).
_REQUIRED_FLAGS = "Ex"
_MESSAGE_TYPES = ("message", "pmessage")


def is_pattern(channel: str) -> bool:
    """Whether `channel` contains glob characters and needs PSUBSCRIBE."""
    return any(ch in channel for ch in "*?[")


def merge_notify_flags(current: str, required: str = _REQUIRED_FLAGS) -> str:
    """
    Add `required` keyspace-event flags to `current`, keeping the ones already set.

    `A` is an alias for every event class, including `x`.
    """
    merged = current
    for flag in required:
        if flag in merged or (flag == "x" and "A" in merged):
            continue
        merged += flag
    return merged


def _decode(value: Union[bytes, str]) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class RedisNotificationSource:
    """Redis pub/sub implementation of the NotificationSource protocol.

    Attributes:
        _redis: Async Redis client instance.
        channel: Channel (or glob pattern) carrying expiration events.
        configure_notifications: Whether to enable keyspace notifications on
            the server before subscribing.
    """

    def __init__(
        self,
        redis_client: Redis,
        channel: str,
        configure_notifications: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._redis = redis_client
        self.channel = channel
        self.configure_notifications = configure_notifications
        self._logger = logger or logging.getLogger(__name__)

    async def ensure_notifications_enabled(self) -> str:
        """Merge the expiration flags into `notify-keyspace-events` and return the result.

        Managed Redis offerings often disable CONFIG; that case is logged and
        the current flags are returned unchanged.
        """
        try:
            current = await self._redis.config_get("notify-keyspace-events")
            raw = current.get(b"notify-keyspace-events", current.get("notify-keyspace-events", b""))
            flags = _decode(raw)
            merged = merge_notify_flags(flags)
            if merged != flags:
                await self._redis.config_set("notify-keyspace-events", merged)
                self._logger.info(
                    "Enabled keyspace notifications",
                    extra={"previous_flags": flags, "flags": merged},
                )
            return merged
        except ResponseError as e:
            self._logger.warning(
                "Could not configure keyspace notifications; configure them on the server",
                extra={"error": str(e)},
            )
            return ""

    def parse_message(self, message: dict) -> ExpirationEvent:
        """Convert a raw pub/sub message into an ExpirationEvent.

        Raises:
            InvalidEvent: If the key is not valid UTF-8.
        """
        channel = _decode(message.get("channel", self.channel))
        try:
            key = _decode(message["data"])
        except UnicodeDecodeError as e:
            raise InvalidEvent(f"Undecodable key on channel '{channel}': {e}") from e
        return ExpirationEvent(channel=channel, key=key)

    async def events(self) -> AsyncIterator[ExpirationEvent]:
        """Subscribe and yield expiration events as they arrive.

        Yields:
            ExpirationEvent: One per expiration notification.

        Raises:
            RedisError: If the subscription connection fails.
        """
        if self.configure_notifications:
            await self.ensure_notifications_enabled()

        pubsub: PubSub = self._redis.pubsub()
        pattern = is_pattern(self.channel)

        try:
            if pattern:
                await pubsub.psubscribe(self.channel)
            else:
                await pubsub.subscribe(self.channel)

            self._logger.info(
                "Subscribed to expiration events",
                extra={"channel": self.channel, "pattern": pattern},
            )

            async for message in pubsub.listen():
                if message["type"] not in _MESSAGE_TYPES:
                    continue

                try:
                    yield self.parse_message(message)
                except InvalidEvent as e:
                    self._logger.warning(
                        "Dropping invalid expiration notification",
                        extra={"error": str(e)},
                    )

        except asyncio.CancelledError:
            self._logger.debug("Expiration subscription cancelled", extra={"channel": self.channel})
            raise
        finally:
            try:
                if pattern:
                    await pubsub.punsubscribe(self.channel)
                else:
                    await pubsub.unsubscribe(self.channel)
                await pubsub.aclose()
            except RedisError as e:
                self._logger.warning(
                    "Error cleaning up expiration subscription",
                    extra={"error": str(e)},
                )


__all__ = ["RedisNotificationSource", "is_pattern", "merge_notify_flags"]
