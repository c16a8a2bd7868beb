#!/usr/bin/env python3
"""
03_error_handling.py - Error Handling Patterns

This example demonstrates:
- Connection error handling
- Server error replies (the connection stays usable)
- Pipelines that return errors in place
- Using the codec directly and handling framing errors

Prerequisites:
    - Redis-compatible server running on localhost:6379
    - pyredis2 installed

Run with:
    python 03_error_handling.py
"""

from pyredis2 import Malformed, Ready, ReplyDecoder, connect, decode_replies
from pyredis2.exceptions import (
    ConnectionError,
    NoAvailableServerError,
    ProtocolFramingError,
    ServerError,
)


def connection_error_handling():
    """Handling connection errors"""
    print("Connection Error Handling")
    print("-" * 50)

    try:
        print("Attempting to connect to an unused port...")
        client = connect("localhost", 19999, max_retries=2, retry_delay_ms=100)
        client.close()
    except NoAvailableServerError as e:
        print(f"✓ Gave up after {e.attempts} attempts: {e.errors[-1]}")
    except ConnectionError as e:
        print(f"✓ Caught connection error: {e}")


def server_error_handling():
    """Handling error replies"""
    print("\nServer Error Handling")
    print("-" * 50)

    with connect() as client:
        client.set("plain-string", "value")
        try:
            client.query("LPUSH", "plain-string", "x")
        except ServerError as e:
            print(f"✓ Server rejected command ({e.code}): {e.message}")

        # Still connected
        print(f"✓ PING after error -> {client.ping()}")

        results = client.pipeline(
            [["PING"], ["LPUSH", "plain-string", "x"], ["GET", "plain-string"]],
            raise_on_error=False,
        )
        for result in results:
            label = "error" if isinstance(result, ServerError) else "ok"
            print(f"  {label}: {result!r}")


def codec_error_handling():
    """Driving the decoder by hand"""
    print("\nCodec Error Handling")
    print("-" * 50)

    decoder = ReplyDecoder()
    buffer = bytearray(b"*2\r\n$3\r\nfoo")
    print(f"Partial input -> {decoder.decode(buffer)}")
    buffer += b"\r\n:7\r\n"
    outcome = decoder.decode(buffer)
    if isinstance(outcome, Ready):
        print(f"✓ Complete -> {outcome.value.to_python()}")

    outcome = decoder.decode(bytearray(b"!oops\r\n"))
    if isinstance(outcome, Malformed):
        print(f"✓ Malformed -> {outcome.message}")
    decoder.reset()

    try:
        decode_replies(b"+OK\r\n$5\r\nab")
    except ProtocolFramingError as e:
        print(f"✓ Truncated stream: {e}")


if __name__ == "__main__":
    connection_error_handling()
    server_error_handling()
    codec_error_handling()
