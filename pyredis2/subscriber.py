# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Publish/subscribe subscriber.

A Subscriber owns a dedicated connection bound to exactly one channel or one
glob pattern. Every subscriber to a channel receives every message published
to it; messages are not queued for subscribers that are not connected.

Example:
    >>> subscriber = Subscriber("localhost", channel="news")
    >>> for message in subscriber.listen():
    ...     print(message.channel, message.decode())

    >>> subscriber = Subscriber("localhost", pattern="news.*", handler=print)
    >>> subscriber.start()
    >>> # ... later
    >>> subscriber.stop()
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from typing import Any

from .client import Redis2Client
from .exceptions import ConnectionError, ServerError, SubscriptionError
from .models import SubscriberConfig
from .types import Array, BulkString, ErrorReply, PubSubMessage, Reply

logger = logging.getLogger(__name__)


def _text(reply: Reply) -> str | None:
    if isinstance(reply, BulkString) and reply.data is not None:
        return reply.data.decode("utf-8", "replace")
    return None


class Subscriber:
    """
    Subscriber for a single channel or pattern.

    Messages can be consumed three ways: iterate listen(), call start() with
    a handler to dispatch from a background thread, or wrap the subscriber
    in a ReactiveSubscriber.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        *,
        channel: str | None = None,
        pattern: str | None = None,
        handler: Callable[[PubSubMessage], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        config: SubscriberConfig | None = None,
        **kwargs: Any,
    ) -> None:
        """
        Initialize subscriber. The connection is opened by subscribe().

        Args:
            host: Server host name or address.
            port: Server port.
            channel: Channel to subscribe to.
            pattern: Glob pattern of channels to subscribe to.
            handler: Message callback used by start().
            on_error: Called with the exception that ended the receive loop.
            config: Optional SubscriberConfig object.
            **kwargs: Override config options.

        Raises:
            ValueError: Unless exactly one of channel or pattern is given.
        """
        overrides = {
            key: value
            for key, value in (("host", host), ("port", port), ("channel", channel), ("pattern", pattern))
            if value is not None
        }
        overrides.update(kwargs)

        if config is None:
            config = SubscriberConfig(**overrides)
        else:
            config = config.model_validate({**config.model_dump(), **overrides})

        self._config = config
        self._handler = handler
        self._on_error = on_error
        self._client: Redis2Client | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._running = False
        self._closed = False

    @property
    def channel(self) -> str | None:
        """Get subscribed channel."""
        return self._config.channel

    @property
    def pattern(self) -> str | None:
        """Get subscribed pattern."""
        return self._config.pattern

    @property
    def config(self) -> SubscriberConfig:
        """Get the subscriber configuration."""
        return self._config

    @property
    def subscribed(self) -> bool:
        """Check if the subscription is confirmed and open."""
        return self._client is not None and self._client.is_connected

    @property
    def running(self) -> bool:
        """Check if the background receive loop is running."""
        return self._running

    def subscribe(self) -> None:
        """
        Connect and subscribe.

        Raises:
            SubscriptionError: If the server rejects the subscription or
                confirms it with an unexpected reply.
            NoAvailableServerError: If the connection cannot be opened.
            AuthenticationError: If the password is rejected.
        """
        with self._lock:
            if self._closed:
                raise SubscriptionError("Subscriber is closed")
            if self._client is not None:
                return

            client = Redis2Client(config=self._config)
            kind = "psubscribe" if self._config.pattern else "subscribe"
            target = self._config.target
            try:
                reply = client.execute([kind.upper(), target])
                if isinstance(reply, ErrorReply):
                    raise SubscriptionError(reply.message)
                if not self._confirms(reply, kind, target):
                    raise SubscriptionError("Unexpected response to [P]SUBSCRIBE command")
            except Exception:
                client.close()
                raise

            self._client = client
            logger.info("Subscribed to %s %r on %s", "pattern" if kind == "psubscribe" else "channel", target, self._config.address)

    @staticmethod
    def _confirms(reply: Reply, kind: str, target: str) -> bool:
        if not isinstance(reply, Array) or reply.items is None or len(reply.items) < 2:
            return False
        return _text(reply.items[0]) == kind and _text(reply.items[1]) == target

    @staticmethod
    def _to_message(reply: Reply) -> PubSubMessage | None:
        """Convert a push to a message, or None for pushes that carry none."""
        if isinstance(reply, ErrorReply):
            raise ServerError(reply.message)
        if not isinstance(reply, Array) or reply.items is None or not reply.items:
            logger.debug("Ignoring unexpected push: %r", reply)
            return None

        items = reply.items
        kind = _text(items[0])
        if kind == "message" and len(items) == 3 and isinstance(items[2], BulkString):
            return PubSubMessage(channel=_text(items[1]) or "", data=items[2].data or b"")
        if kind == "pmessage" and len(items) == 4 and isinstance(items[3], BulkString):
            return PubSubMessage(
                channel=_text(items[2]) or "",
                data=items[3].data or b"",
                pattern=_text(items[1]),
            )

        logger.debug("Ignoring %s push", kind)
        return None

    def listen(self) -> Iterator[PubSubMessage]:
        """
        Yield messages as they arrive, subscribing first if needed.

        The iterator ends when the subscriber is closed.

        Raises:
            ConnectionError: If the connection fails while open.
        """
        if not self._closed and self._client is None:
            self.subscribe()
        while not self._closed:
            client = self._client
            if client is None:
                return
            try:
                reply = client.receive()
            except ConnectionError:
                if self._closed:
                    return
                raise
            message = self._to_message(reply)
            if message is not None:
                yield message

    def start(self) -> None:
        """Subscribe and dispatch messages to the handler on a background thread."""
        if self._running:
            return
        if self._handler is None:
            raise ValueError("start() requires a handler")

        self.subscribe()
        self._running = True
        self._thread = threading.Thread(target=self._receive_loop, name="pyredis2-subscriber", daemon=True)
        self._thread.start()

    def _receive_loop(self) -> None:
        """Background receive loop."""
        handler = self._handler
        try:
            for message in self.listen():
                try:
                    handler(message)
                except Exception:
                    logger.exception("Message handler failed for channel %r", message.channel)
        except Exception as e:
            if self._on_error:
                self._on_error(e)
            else:
                logger.error("Subscriber on %s stopped: %s", self._config.address, e)
        finally:
            self._running = False

    def stop(self, timeout: float = 10.0) -> None:
        """
        Stop the background loop and close the connection.

        Args:
            timeout: Maximum time to wait for the thread to exit.
        """
        self.close()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def close(self) -> None:
        """Close the connection. Reusing a closed subscriber is not supported."""
        self._closed = True
        self._running = False
        client = self._client
        self._client = None
        if client is not None:
            client.close()

    def __enter__(self) -> Subscriber:
        """Context manager entry."""
        self.subscribe()
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.stop()


def subscribe(
    host: str = "localhost",
    port: int = 6379,
    *,
    channel: str | None = None,
    pattern: str | None = None,
    **kwargs: Any,
) -> Subscriber:
    """
    Create a subscriber and confirm its subscription.

    Examples:
        >>> subscriber = subscribe("localhost", channel="z")
        >>> subscriber = subscribe("localhost", pattern="chan_*", password="secret")
    """
    subscriber = Subscriber(host, port, channel=channel, pattern=pattern, **kwargs)
    subscriber.subscribe()
    return subscriber
