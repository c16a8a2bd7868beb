#!/usr/bin/env python3
"""
01_basic_commands.py - pyredis2 Basic Commands Example

What this example demonstrates:
- Using connect() for one-liner connection
- SET/GET with str and binary values
- Integer and array replies as plain Python values
- Pipelining several commands in one round trip

Prerequisites:
    - Redis-compatible server running on localhost:6379
    - pyredis2 installed: pip install pyredis2

Expected Output:
    Connecting to localhost:6379...
    PING -> PONG
    GET greeting -> b'hello'
    INCR visits -> 1
    LRANGE queue -> [b'job-1', b'job-2']
    Pipeline -> ['OK', 2, b'2']

Run with:
    python 01_basic_commands.py
"""

from pyredis2 import connect


def main():
    print("Connecting to localhost:6379...")
    with connect("localhost", 6379, client_name="example-basic") as client:
        print(f"PING -> {client.ping()}")

        client.set("greeting", "hello", ex=60)
        print(f"GET greeting -> {client.get('greeting')!r}")

        client.delete("visits", "queue")
        print(f"INCR visits -> {client.query('INCR', 'visits')}")

        client.send_command("RPUSH", "queue", "job-1", "job-2")
        print(f"LRANGE queue -> {client.query('LRANGE', 'queue', 0, -1)}")

        # One write, replies read back in order
        results = client.pipeline([
            ["SET", "counter", "1"],
            ["INCR", "counter"],
            ["GET", "counter"],
        ])
        print(f"Pipeline -> {results}")


if __name__ == "__main__":
    main()
