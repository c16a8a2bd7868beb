# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Shared fixtures: a scripted in-process server speaking RESP."""

from __future__ import annotations

import socket
import threading
from collections.abc import Callable, Iterator

import pytest

from pyredis2.protocol import Ready, ReplyDecoder

Handler = Callable[[list[bytes]], "bytes | None"]


def simple(text: str) -> bytes:
    return f"+{text}\r\n".encode()


def error(text: str) -> bytes:
    return f"-{text}\r\n".encode()


def integer(value: int) -> bytes:
    return f":{value}\r\n".encode()


def bulk(data: bytes | str | None) -> bytes:
    if data is None:
        return b"$-1\r\n"
    if isinstance(data, str):
        data = data.encode()
    return b"$%d\r\n%s\r\n" % (len(data), data)


def array(*parts: bytes) -> bytes:
    return b"*%d\r\n" % len(parts) + b"".join(parts)


class FakeRedis:
    """Just enough command handling to exercise the clients."""

    def __init__(self, password: str | None = None) -> None:
        self.password = password
        self.store: dict[bytes, bytes] = {}
        self._lock = threading.Lock()

    def __call__(self, args: list[bytes]) -> bytes | None:
        name = args[0].upper()
        with self._lock:
            return self._dispatch(name, args[1:])

    def _dispatch(self, name: bytes, args: list[bytes]) -> bytes | None:
        if name == b"PING":
            return simple("PONG")
        if name == b"AUTH":
            if self.password is not None and args[-1].decode() == self.password:
                return simple("OK")
            return error("ERR invalid password")
        if name == b"CLIENT":
            return simple("OK")
        if name == b"SET":
            if b"NX" in args[2:] and args[0] in self.store:
                return bulk(None)
            self.store[args[0]] = args[1]
            return simple("OK")
        if name == b"GET":
            return bulk(self.store.get(args[0]))
        if name == b"DEL":
            return integer(sum(1 for key in args if self.store.pop(key, None) is not None))
        if name == b"INCR":
            try:
                value = int(self.store.get(args[0], b"0")) + 1
            except ValueError:
                return error("ERR value is not an integer or out of range")
            self.store[args[0]] = str(value).encode()
            return integer(value)
        if name == b"LRANGE":
            return array(bulk("a"), bulk("b"), bulk(None))
        if name == b"MIXED":
            # Error in the middle of an array, followed by a declared sibling
            return array(simple("a"), error("ERR nested"), simple("b"))
        if name == b"LPUSH":
            return error("WRONGTYPE Operation against a key holding the wrong kind of value")
        if name == b"PUBLISH":
            return integer(1)
        if name in (b"SUBSCRIBE", b"PSUBSCRIBE"):
            target = args[0]
            if target == b"forbidden":
                return error("NOPERM this user has no permissions to access the channel")
            if target == b"confused":
                return array(bulk("unsubscribe"), bulk(target), integer(0))
            return array(bulk(name.lower()), bulk(target), integer(1))
        if name == b"GARBAGE":
            return b"?what\r\n"
        if name == b"SLOW":
            return None
        return error(f"ERR unknown command '{name.decode()}'")


class ScriptedServer:
    """TCP server on 127.0.0.1 answering each request through a handler."""

    def __init__(self, handler: Handler) -> None:
        self._handler = handler
        self._sock = socket.create_server(("127.0.0.1", 0))
        self.host = "127.0.0.1"
        self.port = self._sock.getsockname()[1]
        self.commands: list[list[bytes]] = []
        self.connections: list[socket.socket] = []
        self._accepted = threading.Condition()
        self._thread = threading.Thread(target=self._accept_loop, daemon=True)

    def start(self) -> ScriptedServer:
        self._thread.start()
        return self

    def _accept_loop(self) -> None:
        while True:
            try:
                conn, _ = self._sock.accept()
            except OSError:
                return
            with self._accepted:
                self.connections.append(conn)
                self._accepted.notify_all()
            threading.Thread(target=self._serve, args=(conn,), daemon=True).start()

    def _serve(self, conn: socket.socket) -> None:
        buffer = bytearray()
        decoder = ReplyDecoder()
        with conn:
            while True:
                outcome = decoder.decode(buffer)
                if isinstance(outcome, Ready):
                    args = [item.data for item in outcome.value.items]
                    self.commands.append(args)
                    response = self._handler(args)
                    if response:
                        try:
                            conn.sendall(response)
                        except OSError:
                            return
                    continue
                try:
                    chunk = conn.recv(4096)
                except OSError:
                    return
                if not chunk:
                    return
                buffer += chunk

    def push(self, data: bytes) -> None:
        """Send unsolicited bytes on the most recent connection."""
        self.connections[-1].sendall(data)

    def wait_for_connections(self, count: int, timeout: float = 5.0) -> bool:
        """Block until at least count connections have been accepted."""
        with self._accepted:
            return self._accepted.wait_for(lambda: len(self.connections) >= count, timeout)

    def drop_connections(self) -> None:
        for conn in list(self.connections):
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

    def close(self) -> None:
        self._sock.close()
        self.drop_connections()


@pytest.fixture
def make_server() -> Iterator[Callable[..., ScriptedServer]]:
    """Factory for servers with a custom handler or password."""
    servers: list[ScriptedServer] = []

    def factory(handler: Handler | None = None, *, password: str | None = None) -> ScriptedServer:
        server = ScriptedServer(handler or FakeRedis(password)).start()
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.close()


@pytest.fixture
def server(make_server: Callable[..., ScriptedServer]) -> ScriptedServer:
    """A started server backed by FakeRedis."""
    return make_server()


@pytest.fixture
def unused_port() -> int:
    """A port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
