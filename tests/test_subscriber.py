# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Tests for Subscriber and the reactive adapter."""

import threading

import pytest

from conftest import ScriptedServer, array, bulk, integer, simple
from pyredis2 import ReactiveSubscriber, Subscriber, from_subscriber, subscribe
from pyredis2.exceptions import SubscriptionError
from pyredis2.types import PubSubMessage


def message(channel: str, data: str) -> bytes:
    return array(bulk("message"), bulk(channel), bulk(data))


def pmessage(pattern: str, channel: str, data: str) -> bytes:
    return array(bulk("pmessage"), bulk(pattern), bulk(channel), bulk(data))


class TestSubscribe:
    """Tests for the subscription handshake."""

    def test_channel_subscription(self, server: ScriptedServer) -> None:
        """Test SUBSCRIBE and its confirmation."""
        with Subscriber(server.host, server.port, channel="news") as subscriber:
            assert subscriber.subscribed
            assert subscriber.channel == "news"
            assert subscriber.pattern is None
        assert server.commands[-1] == [b"SUBSCRIBE", b"news"]
        assert not subscriber.subscribed

    def test_pattern_subscription(self, server: ScriptedServer) -> None:
        """Test PSUBSCRIBE and its confirmation."""
        subscriber = subscribe(server.host, server.port, pattern="news.*")
        try:
            assert subscriber.subscribed
        finally:
            subscriber.close()
        assert server.commands[-1] == [b"PSUBSCRIBE", b"news.*"]

    def test_subscribe_is_idempotent(self, server: ScriptedServer) -> None:
        """Test that a second subscribe() does not resubscribe."""
        with Subscriber(server.host, server.port, channel="news") as subscriber:
            subscriber.subscribe()
        assert server.commands.count([b"SUBSCRIBE", b"news"]) == 1

    def test_missing_target(self) -> None:
        """Test that channel or pattern is required."""
        with pytest.raises(ValueError, match="Missing channel/pattern"):
            Subscriber("localhost")

    def test_both_targets(self) -> None:
        """Test that channel and pattern are exclusive."""
        with pytest.raises(ValueError, match="Both pattern and channel specified"):
            Subscriber("localhost", channel="a", pattern="b*")

    def test_rejected_subscription(self, server: ScriptedServer) -> None:
        """Test that an error confirmation raises SubscriptionError."""
        subscriber = Subscriber(server.host, server.port, channel="forbidden")
        with pytest.raises(SubscriptionError, match="NOPERM"):
            subscriber.subscribe()
        assert not subscriber.subscribed

    def test_unexpected_confirmation(self, server: ScriptedServer) -> None:
        """Test that a wrong confirmation raises SubscriptionError."""
        subscriber = Subscriber(server.host, server.port, channel="confused")
        with pytest.raises(SubscriptionError, match="Unexpected response"):
            subscriber.subscribe()

    def test_non_array_confirmation(self, make_server) -> None:
        """Test a scalar reply to SUBSCRIBE."""
        server = make_server(lambda args: simple("OK"))
        subscriber = Subscriber(server.host, server.port, channel="news")
        with pytest.raises(SubscriptionError):
            subscriber.subscribe()

    def test_closed_subscriber(self, server: ScriptedServer) -> None:
        """Test that a closed subscriber cannot resubscribe."""
        subscriber = Subscriber(server.host, server.port, channel="news")
        subscriber.close()
        with pytest.raises(SubscriptionError, match="closed"):
            subscriber.subscribe()


class TestListen:
    """Tests for iterating over messages."""

    def test_channel_messages(self, server: ScriptedServer) -> None:
        """Test message pushes on a channel."""
        with Subscriber(server.host, server.port, channel="news") as subscriber:
            server.push(message("news", "one") + message("news", "two"))
            messages = subscriber.listen()
            first = next(messages)
            second = next(messages)
        assert first == PubSubMessage(channel="news", data=b"one")
        assert first.pattern is None
        assert second.decode() == "two"

    def test_pattern_messages(self, server: ScriptedServer) -> None:
        """Test pmessage pushes carry the matched pattern."""
        with Subscriber(server.host, server.port, pattern="news.*") as subscriber:
            server.push(pmessage("news.*", "news.sport", "goal"))
            received = next(subscriber.listen())
        assert received.channel == "news.sport"
        assert received.pattern == "news.*"
        assert received.data == b"goal"

    def test_other_pushes_ignored(self, server: ScriptedServer) -> None:
        """Test that non-message pushes are skipped."""
        with Subscriber(server.host, server.port, channel="news") as subscriber:
            server.push(
                array(bulk("subscribe"), bulk("news"), integer(1))
                + integer(5)
                + message("news", "after")
            )
            received = next(subscriber.listen())
        assert received.data == b"after"

    def test_listen_ends_on_close(self, server: ScriptedServer) -> None:
        """Test that close() from another thread ends the iterator."""
        subscriber = Subscriber(server.host, server.port, channel="news")
        subscriber.subscribe()
        received: list[PubSubMessage] = []
        done = threading.Event()

        def consume() -> None:
            received.extend(subscriber.listen())
            done.set()

        threading.Thread(target=consume, daemon=True).start()
        server.push(message("news", "x"))
        threading.Timer(0.2, subscriber.close).start()
        assert done.wait(5)
        assert [m.data for m in received] == [b"x"]


class TestBackgroundDispatch:
    """Tests for start()/stop()."""

    def test_handler_receives_messages(self, server: ScriptedServer) -> None:
        """Test dispatch to a handler on a background thread."""
        received: list[PubSubMessage] = []
        got_two = threading.Event()

        def handler(msg: PubSubMessage) -> None:
            received.append(msg)
            if len(received) == 2:
                got_two.set()

        subscriber = Subscriber(server.host, server.port, channel="news", handler=handler)
        subscriber.start()
        assert subscriber.running
        server.push(message("news", "a") + message("news", "b"))
        assert got_two.wait(5)
        subscriber.stop()
        assert not subscriber.running
        assert [m.data for m in received] == [b"a", b"b"]

    def test_handler_errors_do_not_stop_loop(self, server: ScriptedServer) -> None:
        """Test that a failing handler is logged and the loop continues."""
        received: list[bytes] = []
        done = threading.Event()

        def handler(msg: PubSubMessage) -> None:
            if msg.data == b"bad":
                raise RuntimeError("boom")
            received.append(msg.data)
            done.set()

        subscriber = Subscriber(server.host, server.port, channel="news", handler=handler)
        subscriber.start()
        server.push(message("news", "bad") + message("news", "good"))
        assert done.wait(5)
        subscriber.stop()
        assert received == [b"good"]

    def test_on_error_called(self, server: ScriptedServer) -> None:
        """Test that a connection failure is passed to on_error."""
        errors: list[Exception] = []
        failed = threading.Event()

        def on_error(e: Exception) -> None:
            errors.append(e)
            failed.set()

        subscriber = Subscriber(
            server.host, server.port, channel="news", handler=lambda m: None, on_error=on_error
        )
        subscriber.start()
        server.drop_connections()
        assert failed.wait(5)
        subscriber.stop()
        assert len(errors) == 1

    def test_start_requires_handler(self, server: ScriptedServer) -> None:
        """Test start() without a handler."""
        subscriber = Subscriber(server.host, server.port, channel="news")
        with pytest.raises(ValueError, match="handler"):
            subscriber.start()


class TestReactive:
    """Tests for the reactive adapter."""

    def test_reactive_stream(self, server: ScriptedServer) -> None:
        """Test messages flow through the observable."""
        received: list[PubSubMessage] = []
        done = threading.Event()

        def on_next(msg: PubSubMessage) -> None:
            received.append(msg)
            if len(received) == 2:
                done.set()

        subscriber = Subscriber(server.host, server.port, channel="news")
        reactive = ReactiveSubscriber(subscriber)
        reactive.messages().subscribe(on_next=on_next)
        with reactive:
            server.push(message("news", "1") + message("news", "2"))
            assert done.wait(5)
        assert [m.decode() for m in received] == ["1", "2"]

    def test_stream_completes_on_stop(self, server: ScriptedServer) -> None:
        """Test that stop() completes the stream."""
        completed = threading.Event()
        subscriber = Subscriber(server.host, server.port, channel="news")
        reactive = ReactiveSubscriber(subscriber)
        reactive.messages().subscribe(on_completed=completed.set)
        reactive.start()
        reactive.stop()
        assert completed.wait(5)

    def test_from_subscriber(self, server: ScriptedServer) -> None:
        """Test the from_subscriber helper."""
        received = threading.Event()
        subscriber = Subscriber(server.host, server.port, pattern="news.*")
        stream = from_subscriber(subscriber)
        stream.subscribe(on_next=lambda m: received.set())
        server.push(pmessage("news.*", "news.a", "x"))
        assert received.wait(5)
        subscriber.close()
