#!/usr/bin/env python3
"""
02_pubsub.py - Publish/Subscribe Example

What this example demonstrates:
- A Subscriber on one channel with a background handler
- A pattern Subscriber consumed with listen()
- Reactive streams with ReactiveSubscriber

Key Concepts:
- A subscriber owns its own connection bound to one channel or pattern
- Messages published while nobody is subscribed are not delivered

Prerequisites:
    - Redis-compatible server running on localhost:6379
    - pyredis2 installed

Run with:
    python 02_pubsub.py
"""

import threading
import time

from reactivex import operators as ops

from pyredis2 import ReactiveSubscriber, Subscriber, connect


def handler_example(client):
    print("=== Channel subscriber with handler ===")
    done = threading.Event()

    def on_message(message):
        print(f"  [{message.channel}] {message.decode()}")
        done.set()

    subscriber = Subscriber("localhost", channel="news", handler=on_message)
    subscriber.start()
    try:
        receivers = client.publish("news", "hello subscribers")
        print(f"Published to {receivers} receiver(s)")
        done.wait(5)
    finally:
        subscriber.stop()


def listen_example(client):
    print("\n=== Pattern subscriber with listen() ===")
    with Subscriber("localhost", pattern="sensor.*") as subscriber:
        def publish_later():
            time.sleep(0.2)
            client.publish("sensor.temp", "21.5")

        threading.Thread(target=publish_later).start()
        for message in subscriber.listen():
            print(f"  {message.pattern} matched {message.channel}: {message.decode()}")
            break


def reactive_example(client):
    print("\n=== Reactive stream ===")
    done = threading.Event()
    reactive = ReactiveSubscriber(Subscriber("localhost", pattern="sensor.*"))
    reactive.messages().pipe(
        ops.map(lambda m: float(m.decode())),
        ops.buffer_with_count(3),
    ).subscribe(on_next=lambda batch: (print(f"  Average: {sum(batch) / len(batch):.1f}"), done.set()))

    with reactive:
        for value in ("20.0", "21.0", "22.0"):
            client.publish("sensor.temp", value)
        done.wait(5)


def main():
    with connect("localhost", 6379) as client:
        handler_example(client)
        listen_example(client)
        reactive_example(client)


if __name__ == "__main__":
    main()
