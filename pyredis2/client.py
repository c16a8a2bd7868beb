# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
pyredis2 blocking client.

A thread-safe client for Redis-compatible servers built on the RESP codec
in :mod:`pyredis2.protocol`.

Usage Patterns:

    # Pattern 1: Simple usage (recommended for scripts)
    from pyredis2 import connect
    client = connect("localhost", 6379)
    client.set("greeting", "hello")

    # Pattern 2: Context manager (recommended for applications)
    from pyredis2 import Redis2Client
    with Redis2Client("localhost", 6379) as client:
        value = client.query("GET", "greeting")
    # Connection auto-closes when exiting the block

    # Pattern 3: Explicit command dispatch
    client = Redis2Client("localhost")
    try:
        length = client.send_command("LPUSH", "queue", "job-1")
    finally:
        client.close()
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from .exceptions import (
    AuthenticationError,
    ConnectionClosedError,
    ConnectionError,
    ConnectionTimeoutError,
    InvalidRequestError,
    NoAvailableServerError,
    ProtocolFramingError,
    ServerError,
)
from .models import ClientConfig
from .protocol import (
    SUBSCRIPTION_COMMANDS,
    Malformed,
    Ready,
    ReplyDecoder,
    encode_request,
)
from .types import ErrorReply, Reply

logger = logging.getLogger(__name__)

Arg = bytes | str | int | float


def _command_name(args: Sequence[Arg]) -> str:
    if not args:
        return ""
    name = args[0]
    if isinstance(name, (bytes, bytearray, memoryview)):
        return bytes(name).decode("utf-8", "replace").upper()
    return str(name).upper()


def check_not_subscription(args: Sequence[Arg]) -> None:
    """Reject commands that switch the connection into subscriber mode."""
    if _command_name(args) in SUBSCRIPTION_COMMANDS:
        raise InvalidRequestError(
            "Subscriptions not supported on a plain client",
            hint="Use pyredis2.Subscriber instead",
        )


def unwrap(reply: Reply) -> Any:
    """
    Convert a reply to a plain Python value.

    Raises:
        ServerError: If the reply is an error reply.
    """
    if isinstance(reply, ErrorReply):
        raise ServerError(reply.message)
    return reply.to_python()


class Redis2Client:
    """
    Redis client with automatic reconnection and pipelining.

    The client automatically handles:
    - Connection retries with a configurable delay
    - Keep-alive and no-delay socket options
    - Password authentication right after connecting
    - Reconnection on the next call after an I/O failure
    - Thread-safe operations

    Example:
        >>> client = Redis2Client("localhost", 6379)
        >>> client.set("key", "value")
        True
        >>> client.get("key")
        b'value'
        >>> client.close()
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        *,
        config: ClientConfig | None = None,
        on_connect: Callable[[str, int], None] | None = None,
        **kwargs: Any,
    ) -> None:
        """
        Initialize the client and connect.

        Args:
            host: Server host name or address.
            port: Server port (default 6379).
            config: Optional ClientConfig object.
            on_connect: Called with (host, port) after every successful
                connect and authentication.
            **kwargs: Override config options (password, connect_timeout_ms, etc.)
        """
        if host is not None:
            kwargs["host"] = host
        if port is not None:
            kwargs["port"] = port

        if config is None:
            config = ClientConfig(**kwargs)
        else:
            config = config.model_copy()
            for key, value in kwargs.items():
                if key in ClientConfig.model_fields:
                    setattr(config, key, value)

        self._config = config
        self._on_connect = on_connect
        self._sock: socket.socket | None = None
        self._buffer = bytearray()
        self._decoder = ReplyDecoder()
        self._lock = threading.RLock()
        self._closed = False

        self._connect()

    @property
    def config(self) -> ClientConfig:
        """Get the client configuration."""
        return self._config

    @property
    def is_connected(self) -> bool:
        """Check if the client holds an open socket."""
        return self._sock is not None

    # =========================================================================
    # Connection Management
    # =========================================================================

    def _connect(self) -> None:
        """Connect to the server, retrying on failure."""
        errors: list[str] = []

        for attempt in range(self._config.max_retries):
            try:
                self._connect_to_server()
                self._handshake()
            except (AuthenticationError, ServerError, ProtocolFramingError):
                self._reset_connection()
                raise
            except ConnectionError as e:
                self._reset_connection()
                errors.append(str(e).split("\n", 1)[0])
                logger.debug(
                    "Connect attempt %d/%d to %s failed: %s",
                    attempt + 1,
                    self._config.max_retries,
                    self._config.address,
                    errors[-1],
                )
                if attempt < self._config.max_retries - 1:
                    time.sleep(self._config.retry_delay_ms / 1000.0)
                continue

            logger.info("Connected to %s", self._config.address)
            if self._on_connect:
                self._on_connect(self._config.host, self._config.port)
            return

        raise NoAvailableServerError(self._config.address, self._config.max_retries, errors)

    def _connect_to_server(self) -> None:
        """Open a socket, trying every resolved address."""
        host, port = self._config.host, self._config.port
        address = self._config.address

        try:
            addrs = socket.getaddrinfo(host, port, socket.AF_UNSPEC, socket.SOCK_STREAM)
        except socket.gaierror as e:
            raise ConnectionError(f"Failed to resolve {host}: {e}", host, port) from e

        last_error: ConnectionError | None = None
        for family, socktype, proto, _canonname, sockaddr in addrs:
            sock = None
            try:
                sock = socket.socket(family, socktype, proto)
                sock.settimeout(self._config.connect_timeout_ms / 1000.0)
                sock.connect(sockaddr)

                if self._config.keepalive:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
                if self._config.no_delay:
                    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                timeout_ms = self._config.request_timeout_ms
                sock.settimeout(timeout_ms / 1000.0 if timeout_ms is not None else None)

                self._sock = sock
                self._buffer.clear()
                self._decoder.reset()
                return
            except socket.timeout:
                last_error = ConnectionTimeoutError(f"Connection to {address} timed out", host, port)
                if sock:
                    sock.close()
            except OSError as e:
                last_error = ConnectionError(f"Failed to connect to {address}: {e}", host, port)
                if sock:
                    sock.close()

        if last_error:
            raise last_error
        raise ConnectionError(f"No addresses found for {address}", host, port)

    def _handshake(self) -> None:
        """Authenticate and name the connection as configured."""
        if self._config.password is not None:
            (reply,) = self._roundtrip(encode_request([b"AUTH", self._config.password]), 1)
            if isinstance(reply, ErrorReply):
                raise AuthenticationError(reply.message)

        if self._config.client_name:
            (reply,) = self._roundtrip(
                encode_request([b"CLIENT", b"SETNAME", self._config.client_name]), 1
            )
            unwrap(reply)

    def _ensure_connected(self) -> None:
        """Ensure we have an active connection."""
        if self._closed:
            raise ConnectionClosedError("Client is closed")
        if self._sock is None:
            self._connect()

    def _reset_connection(self) -> None:
        """Drop the socket and any half-read reply."""
        sock, self._sock = self._sock, None
        if sock is not None:
            try:
                # Wakes up a thread blocked in recv() on this socket
                sock.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug("Socket shutdown failed: %s", e)
            try:
                sock.close()
            except OSError as e:
                logger.warning("Error closing socket: %s", e)
        self._buffer.clear()
        self._decoder.reset()

    @contextmanager
    def _io_errors(self) -> Iterator[None]:
        """Map socket failures to client exceptions and drop the socket."""
        host, port = self._config.host, self._config.port
        try:
            yield
        except socket.timeout as e:
            self._reset_connection()
            raise ConnectionTimeoutError(
                f"Timed out waiting for {self._config.address}", host, port
            ) from e
        except OSError as e:
            self._reset_connection()
            raise ConnectionError(str(e), host, port) from e

    # =========================================================================
    # Request/Response
    # =========================================================================

    def _read_reply(self) -> Reply:
        """Read from the socket until one full reply is decoded."""
        sock = self._sock
        if sock is None:
            raise ConnectionClosedError("Connection lost")
        while True:
            outcome = self._decoder.decode(self._buffer)
            if isinstance(outcome, Ready):
                return outcome.value
            if isinstance(outcome, Malformed):
                self._reset_connection()
                raise ProtocolFramingError(outcome.message)

            chunk = sock.recv(self._config.read_size)
            if not chunk:
                self._reset_connection()
                raise ConnectionClosedError()
            self._buffer += chunk

    def _roundtrip(self, payload: bytes, count: int) -> list[Reply]:
        """Write payload and read count replies."""
        sock = self._sock
        if sock is None:
            raise ConnectionClosedError("Connection lost")
        with self._io_errors():
            sock.sendall(payload)
            return [self._read_reply() for _ in range(count)]

    def execute(self, args: Sequence[Arg]) -> Reply:
        """
        Send one request and return its raw reply.

        Error replies are returned as ErrorReply, not raised.

        Args:
            args: Command name followed by its arguments.

        Returns:
            The decoded reply.

        Raises:
            InvalidRequestError: If args cannot be encoded.
            ProtocolFramingError: If the reply stream is malformed.
            ConnectionError: If the connection fails.
        """
        payload = encode_request(args)
        with self._lock:
            self._ensure_connected()
            logger.debug("-> %s (%d args)", _command_name(args), len(args) - 1)
            (reply,) = self._roundtrip(payload, 1)
            return reply

    def query(self, *args: Arg) -> Any:
        """
        Send a command and return its reply as a Python value.

        Simple strings become str, integers int, bulk strings bytes (or
        None), arrays lists (or None).

        Example:
            >>> client.query("SET", "key", "value")
            'OK'
            >>> client.query("LRANGE", "list", 0, -1)
            [b'a', b'b']

        Raises:
            ServerError: If the server replies with an error.
            InvalidRequestError: For subscription commands or bad arguments.
        """
        check_not_subscription(args)
        return unwrap(self.execute(args))

    def send_command(self, name: str, *args: Arg) -> Any:
        """Send ``name`` with ``args``; same result handling as query()."""
        return self.query(name, *args)

    def pipeline(
        self,
        commands: Iterable[Sequence[Arg]],
        *,
        raise_on_error: bool = True,
    ) -> list[Any]:
        """
        Send several commands in one write and read their replies in order.

        Args:
            commands: Iterable of argument sequences.
            raise_on_error: Raise the first ServerError after all replies are
                read. When False, errors are returned in place as ServerError
                instances.

        Returns:
            One Python value per command.
        """
        commands = list(commands)
        if not commands:
            return []
        for cmd in commands:
            check_not_subscription(cmd)
        payload = b"".join(encode_request(cmd) for cmd in commands)

        with self._lock:
            self._ensure_connected()
            logger.debug("-> pipeline of %d command(s)", len(commands))
            replies = self._roundtrip(payload, len(commands))

        results: list[Any] = []
        for reply in replies:
            if isinstance(reply, ErrorReply):
                error = ServerError(reply.message)
                if raise_on_error:
                    raise error
                results.append(error)
            else:
                results.append(reply.to_python())
        return results

    def receive(self) -> Reply:
        """
        Read the next reply without sending anything.

        Used on connections that receive server pushes (subscribers). The
        client lock is not taken, so close() from another thread interrupts
        a blocked receive().
        """
        if self._closed:
            raise ConnectionClosedError("Client is closed")
        with self._io_errors():
            return self._read_reply()

    # =========================================================================
    # Common Commands
    # =========================================================================

    def auth(self, password: str) -> None:
        """
        Authenticate the current connection.

        The password is remembered and replayed after reconnects.

        Raises:
            AuthenticationError: If the server rejects the password.
        """
        with self._lock:
            reply = self.execute([b"AUTH", password])
            if isinstance(reply, ErrorReply):
                raise AuthenticationError(reply.message)
            self._config.password = password

    def ping(self) -> str:
        """Send PING; returns ``"PONG"``."""
        return self.query("PING")

    def get(self, key: Arg) -> bytes | None:
        """Get the value of key, or None if it does not exist."""
        return self.query("GET", key)

    def set(
        self,
        key: Arg,
        value: Arg,
        *,
        ex: int | None = None,
        px: int | None = None,
        nx: bool = False,
        xx: bool = False,
    ) -> bool:
        """
        Set key to value.

        Args:
            key: Key name.
            value: Value to store.
            ex: Expire time in seconds.
            px: Expire time in milliseconds.
            nx: Only set if the key does not exist.
            xx: Only set if the key already exists.

        Returns:
            True if the key was set, False if an NX/XX condition blocked it.
        """
        args: list[Arg] = ["SET", key, value]
        if ex is not None:
            args += ["EX", ex]
        if px is not None:
            args += ["PX", px]
        if nx:
            args.append("NX")
        if xx:
            args.append("XX")
        return self.query(*args) is not None

    def delete(self, *keys: Arg) -> int:
        """Delete keys; returns the number of keys removed."""
        return self.query("DEL", *keys)

    def publish(self, channel: str, message: Arg) -> int:
        """Publish message to channel; returns the number of receivers."""
        return self.query("PUBLISH", channel, message)

    def close(self) -> None:
        """Close the client connection."""
        with self._lock:
            self._closed = True
            if self._sock is not None:
                logger.info("Disconnected from %s", self._config.address)
            self._reset_connection()

    def __enter__(self) -> Redis2Client:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()


def connect(
    host: str = "localhost",
    port: int = 6379,
    *,
    password: str | None = None,
    **kwargs: Any,
) -> Redis2Client:
    """
    Create and connect a client.

    This is the simplest way to get a working client.

    Args:
        host: Server host name or address.
        port: Server port.
        password: Optional password sent as AUTH after connecting.
        **kwargs: Additional configuration options (see ClientConfig).

    Returns:
        Connected Redis2Client instance.

    Raises:
        NoAvailableServerError: If every connection attempt fails.
        AuthenticationError: If the password is rejected.

    Examples:
        >>> client = connect()
        >>> client.ping()
        'PONG'

        >>> client = connect("redis.internal", 6380, password="secret")
    """
    return Redis2Client(host, port, password=password, **kwargs)
