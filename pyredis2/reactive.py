# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Reactive Streams support for pyredis2 subscribers.

Exposes publish/subscribe messages as RxPY Observable streams so they can be
filtered, mapped, buffered and merged with other streams.
"""

from __future__ import annotations

import threading
from typing import Any

from reactivex import Observable, Subject, operators as ops
from reactivex.scheduler import ThreadPoolScheduler

from .subscriber import Subscriber
from .types import PubSubMessage


class ReactiveSubscriber:
    """
    Reactive wrapper around a Subscriber.

    Example:
        >>> subscriber = Subscriber("localhost", pattern="sensor.*")
        >>> reactive = ReactiveSubscriber(subscriber)
        >>> reactive.messages().pipe(
        ...     ops.filter(lambda m: m.channel.endswith(".temp")),
        ...     ops.map(lambda m: float(m.decode())),
        ...     ops.buffer_with_count(10),
        ... ).subscribe(on_next=process_batch)
        >>> reactive.start()
    """

    def __init__(self, subscriber: Subscriber, max_workers: int = 4) -> None:
        """
        Initialize reactive subscriber.

        Args:
            subscriber: Subscriber to read messages from.
            max_workers: Size of the thread pool observers run on.
        """
        self._subscriber = subscriber
        self._running = False
        self._subject: Subject[PubSubMessage] = Subject()
        self._scheduler = ThreadPoolScheduler(max_workers=max_workers)
        self._thread: threading.Thread | None = None

    @property
    def subscriber(self) -> Subscriber:
        """Get the wrapped subscriber."""
        return self._subscriber

    def start(self) -> None:
        """Subscribe and start pushing messages into the stream."""
        if self._running:
            return

        self._subscriber.subscribe()
        self._running = True

        def receive_loop() -> None:
            try:
                for message in self._subscriber.listen():
                    self._subject.on_next(message)
            except Exception as e:
                self._running = False
                self._subject.on_error(e)
                return
            self._running = False
            self._subject.on_completed()

        self._thread = threading.Thread(target=receive_loop, name="pyredis2-reactive", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 10.0) -> None:
        """Stop receiving; the stream completes once the loop exits."""
        self._subscriber.close()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._running = False

    def messages(self) -> Observable[PubSubMessage]:
        """
        Get observable stream of messages.

        Returns:
            Observable stream of PubSubMessage objects.
        """
        return self._subject.pipe(ops.observe_on(self._scheduler))

    def __enter__(self) -> ReactiveSubscriber:
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()


def from_subscriber(subscriber: Subscriber) -> Observable[PubSubMessage]:
    """
    Create an Observable from a subscriber and start it.

    Args:
        subscriber: Subscriber bound to a channel or pattern.

    Returns:
        Observable stream of received messages.
    """
    reactive = ReactiveSubscriber(subscriber)
    stream = reactive.messages()
    reactive.start()
    return stream
