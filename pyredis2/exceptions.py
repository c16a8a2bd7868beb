# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Custom exceptions for the pyredis2 client.

All exceptions inherit from Redis2Error, making it easy to catch every
client-related error with a single except clause:

    try:
        client.query("INCR", "counter")
    except Redis2Error as e:
        print(f"Redis error: {e}")

For more granular error handling, catch specific exception types:

    try:
        client.query("LPUSH", "string-key", "x")
    except ServerError as e:
        print(f"Server rejected command ({e.code}): {e.message}")
    except ConnectionError as e:
        print(f"Connection failed to {e.host}:{e.port}")
"""

from __future__ import annotations


class Redis2Error(Exception):
    """
    Base exception for all pyredis2 errors.

    All pyredis2 exceptions inherit from this class, allowing you to catch
    all client-related errors with a single except clause.
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        self.hint = hint
        if hint:
            message = f"{message}\n\n  Hint: {hint}"
        super().__init__(message)


class InvalidRequestError(Redis2Error):
    """
    Raised when a request cannot be encoded or must not be sent.

    Common causes:
    - No arguments given (a request needs at least the command name)
    - An argument that is not bytes, str, int or float
    - A subscription command sent through a plain client
    """


class ProtocolFramingError(Redis2Error):
    """
    Raised when the reply stream cannot be interpreted.

    This is fatal for the connection: the client drops the socket and
    reconnects on the next call.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            message,
            hint="Check that you're connecting to a Redis-compatible server on the correct port",
        )


class ServerError(Redis2Error):
    """
    Raised when the server returns an error reply.

    The connection stays usable. The error code is the leading upper-case
    word of the reply (``ERR``, ``WRONGTYPE``, ``NOAUTH``, ...).
    """

    def __init__(self, message: str) -> None:
        self.message = message
        head = message.split(" ", 1)[0]
        self.code = head if head.isupper() else None
        super().__init__(message)


class ConnectionError(Redis2Error):
    """
    Raised when connection to the server fails.

    Common causes:
    - Server is not running
    - Wrong host or port
    - Firewall blocking connection
    - Network issues
    """

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | None = None,
        *,
        hint: str | None = None,
    ) -> None:
        self.host = host
        self.port = port
        if hint is None and host:
            hint = f"Check that the server is running on {host}:{port}"
        super().__init__(message, hint=hint)


class ConnectionClosedError(ConnectionError):
    """
    Raised when the connection is unexpectedly closed.

    This typically happens when:
    - Server was shut down
    - Network connection was interrupted
    - Server closed an idle connection
    """

    def __init__(self, message: str = "Connection closed by server") -> None:
        super().__init__(message, hint="The server may have been restarted. Try reconnecting.")


class ConnectionTimeoutError(ConnectionError):
    """
    Raised when connecting or waiting for a reply times out.
    """

    def __init__(self, message: str, host: str | None = None, port: int | None = None) -> None:
        super().__init__(
            message,
            host,
            port,
            hint="Try increasing connect_timeout_ms / request_timeout_ms or check network connectivity",
        )


class NoAvailableServerError(ConnectionError):
    """Raised when every connection attempt has failed."""

    def __init__(self, address: str, attempts: int, errors: list[str] | None = None) -> None:
        self.address = address
        self.attempts = attempts
        self.errors = errors or []
        message = f"Could not connect to {address} after {attempts} attempt(s)"
        if self.errors:
            message += f": {self.errors[-1]}"
        super().__init__(
            message,
            hint="Check that the server is running and accessible",
        )


class AuthenticationError(Redis2Error):
    """
    Raised when the server rejects the configured password.
    """

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(
            message,
            hint="Check the password passed to the client (password=...)",
        )


class SubscriptionError(Redis2Error):
    """
    Raised when a SUBSCRIBE/PSUBSCRIBE is rejected or confirmed with an
    unexpected reply.
    """
