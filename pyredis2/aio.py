# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
asyncio client for pyredis2.

Drives the same ReplyDecoder from an event loop. Every request pushes a
future onto a FIFO queue and a single reader task resolves the futures in
order, so concurrent awaits on one client are pipelined on one connection.

Example:
    >>> async with AsyncRedis2Client("localhost", 6379) as client:
    ...     await client.set("key", "value")
    ...     results = await asyncio.gather(client.get("key"), client.ping())
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections import deque
from collections.abc import Iterable, Sequence
from typing import Any

from .client import Arg, check_not_subscription, unwrap
from .exceptions import (
    AuthenticationError,
    ConnectionClosedError,
    ConnectionError,
    ConnectionTimeoutError,
    NoAvailableServerError,
    ProtocolFramingError,
    Redis2Error,
    ServerError,
)
from .models import ClientConfig
from .protocol import Malformed, Ready, ReplyDecoder, encode_request
from .types import ErrorReply, Reply

logger = logging.getLogger(__name__)


class AsyncRedis2Client:
    """
    Redis client for asyncio applications.

    Use ``await AsyncRedis2Client.create(...)`` or ``async with`` to connect.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        *,
        config: ClientConfig | None = None,
        **kwargs: Any,
    ) -> None:
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
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._pending: deque[asyncio.Future[Reply]] = deque()
        self._write_lock = asyncio.Lock()
        self._connect_lock = asyncio.Lock()
        self._closed = False

    @classmethod
    async def create(
        cls,
        host: str | None = None,
        port: int | None = None,
        **kwargs: Any,
    ) -> AsyncRedis2Client:
        """Create a client and connect it."""
        client = cls(host, port, **kwargs)
        await client.connect()
        return client

    @property
    def config(self) -> ClientConfig:
        """Get the client configuration."""
        return self._config

    @property
    def is_connected(self) -> bool:
        """Check if the client holds an open connection."""
        return self._writer is not None

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self) -> None:
        """
        Connect to the server, retrying on failure.

        Raises:
            NoAvailableServerError: If every attempt fails.
            AuthenticationError: If the password is rejected.
        """
        async with self._connect_lock:
            if self._closed:
                raise ConnectionClosedError("Client is closed")
            if self._writer is not None:
                return

            errors: list[str] = []
            for attempt in range(self._config.max_retries):
                try:
                    await self._open()
                    await self._handshake()
                except (AuthenticationError, ServerError, ProtocolFramingError):
                    await self._drop(ConnectionClosedError("Handshake failed"))
                    raise
                except ConnectionError as e:
                    await self._drop(e)
                    errors.append(str(e).split("\n", 1)[0])
                    logger.debug("Connect attempt %d to %s failed: %s", attempt + 1, self._config.address, errors[-1])
                    if attempt < self._config.max_retries - 1:
                        await asyncio.sleep(self._config.retry_delay_ms / 1000.0)
                    continue

                logger.info("Connected to %s", self._config.address)
                return

            raise NoAvailableServerError(self._config.address, self._config.max_retries, errors)

    async def _open(self) -> None:
        host, port = self._config.host, self._config.port
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self._config.connect_timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError as e:
            raise ConnectionTimeoutError(f"Connection to {self._config.address} timed out", host, port) from e
        except OSError as e:
            raise ConnectionError(f"Failed to connect to {self._config.address}: {e}", host, port) from e

        sock = writer.get_extra_info("socket")
        if sock is not None:
            if self._config.keepalive:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            if self._config.no_delay:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        self._reader = reader
        self._writer = writer
        self._reader_task = asyncio.create_task(self._read_loop(reader))

    async def _handshake(self) -> None:
        if self._config.password is not None:
            reply = await self._send(encode_request([b"AUTH", self._config.password]))
            if isinstance(reply, ErrorReply):
                raise AuthenticationError(reply.message)
        if self._config.client_name:
            unwrap(await self._send(encode_request([b"CLIENT", b"SETNAME", self._config.client_name])))

    async def _ensure_connected(self) -> None:
        if self._closed:
            raise ConnectionClosedError("Client is closed")
        if self._writer is None:
            await self.connect()

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        """Decode replies and hand them to pending futures in order."""
        buffer = bytearray()
        decoder = ReplyDecoder()
        try:
            while True:
                outcome = decoder.decode(buffer)
                if isinstance(outcome, Ready):
                    if not self._pending:
                        logger.warning("Discarding unsolicited reply: %r", outcome.value)
                        continue
                    future = self._pending.popleft()
                    if not future.done():
                        future.set_result(outcome.value)
                    continue
                if isinstance(outcome, Malformed):
                    raise ProtocolFramingError(outcome.message)

                chunk = await reader.read(self._config.read_size)
                if not chunk:
                    raise ConnectionClosedError()
                buffer += chunk
        except asyncio.CancelledError:
            raise
        except (Redis2Error, OSError) as e:
            if not isinstance(e, Redis2Error):
                e = ConnectionError(str(e), self._config.host, self._config.port)
            logger.info("Connection to %s lost: %s", self._config.address, str(e).split("\n", 1)[0])
            self._reader_task = None
            await self._drop(e)

    async def _drop(self, exc: Exception) -> None:
        """Close the transport and fail every pending request with exc."""
        task = self._reader_task
        self._reader_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as e:
                logger.warning("Error closing connection: %s", e)

        while self._pending:
            future = self._pending.popleft()
            if not future.done():
                future.set_exception(exc)

    # =========================================================================
    # Request/Response
    # =========================================================================

    async def _send(self, payload: bytes) -> Reply:
        (reply,) = await self._send_many(payload, 1)
        return reply

    async def _send_many(self, payload: bytes, count: int) -> list[Reply]:
        """Write payload and await its count replies."""
        loop = asyncio.get_running_loop()
        futures = [loop.create_future() for _ in range(count)]

        async with self._write_lock:
            if self._writer is None:
                raise ConnectionClosedError("Connection lost before the request was sent")
            self._pending.extend(futures)
            try:
                self._writer.write(payload)
                await self._writer.drain()
            except OSError as e:
                error = ConnectionError(str(e), self._config.host, self._config.port)
                await self._drop(error)
                raise error from e

        timeout = self._config.request_timeout_ms / 1000.0
        try:
            return list(await asyncio.wait_for(asyncio.gather(*futures), timeout=timeout))
        except asyncio.TimeoutError:
            error = ConnectionTimeoutError(
                f"Timed out waiting for {self._config.address}",
                self._config.host,
                self._config.port,
            )
            await self._drop(error)
            raise error from None

    async def execute(self, args: Sequence[Arg]) -> Reply:
        """Send one request and return its raw reply (errors are not raised)."""
        payload = encode_request(args)
        await self._ensure_connected()
        return await self._send(payload)

    async def query(self, *args: Arg) -> Any:
        """Send a command and return its reply as a Python value."""
        check_not_subscription(args)
        return unwrap(await self.execute(args))

    async def send_command(self, name: str, *args: Arg) -> Any:
        """Send ``name`` with ``args``; same result handling as query()."""
        return await self.query(name, *args)

    async def pipeline(
        self,
        commands: Iterable[Sequence[Arg]],
        *,
        raise_on_error: bool = True,
    ) -> list[Any]:
        """Send several commands in one write and collect their replies in order."""
        commands = list(commands)
        if not commands:
            return []
        for cmd in commands:
            check_not_subscription(cmd)
        payload = b"".join(encode_request(cmd) for cmd in commands)

        await self._ensure_connected()
        replies = await self._send_many(payload, len(commands))

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

    # =========================================================================
    # Common Commands
    # =========================================================================

    async def ping(self) -> str:
        return await self.query("PING")

    async def get(self, key: Arg) -> bytes | None:
        return await self.query("GET", key)

    async def set(self, key: Arg, value: Arg, *, ex: int | None = None) -> bool:
        args: list[Arg] = ["SET", key, value]
        if ex is not None:
            args += ["EX", ex]
        return await self.query(*args) is not None

    async def delete(self, *keys: Arg) -> int:
        return await self.query("DEL", *keys)

    async def publish(self, channel: str, message: Arg) -> int:
        return await self.query("PUBLISH", channel, message)

    async def close(self) -> None:
        """Close the connection and fail outstanding requests."""
        self._closed = True
        if self._writer is not None:
            logger.info("Disconnected from %s", self._config.address)
        await self._drop(ConnectionClosedError("Client is closed"))

    async def __aenter__(self) -> AsyncRedis2Client:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
