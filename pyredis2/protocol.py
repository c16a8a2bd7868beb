# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Redis Serialization Protocol (RESP) codec.

Request Format (array of bulk strings):
    *<argc>\\r\\n
    $<byte length>\\r\\n<bytes>\\r\\n      (repeated argc times)

Reply Markers:
    +<text>\\r\\n          Simple string
    -<text>\\r\\n          Error
    :<digits>\\r\\n        Integer
    $<len>\\r\\n<bytes>\\r\\n Bulk string ($-1\\r\\n is null)
    *<count>\\r\\n...      Array of <count> replies (*-1\\r\\n is null)

The decoder never performs I/O. It reads a caller-owned bytearray in
place, deletes the bytes of every unit it has folded into its progress
state, and reports INCOMPLETE when the next unit is not fully buffered.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import Union

from .exceptions import InvalidRequestError, ProtocolFramingError
from .types import Array, BulkString, ErrorReply, Integer, Reply, SimpleString

logger = logging.getLogger(__name__)

# Protocol constants
CRLF: bytes = b"\r\n"
MAX_BULK_LENGTH: int = 512 * 1024 * 1024  # 512MB
MAX_ARRAY_LENGTH: int = 2**32 - 1
MAX_LINE_LENGTH: int = 64 * 1024
INT64_MIN: int = -(2**63)
INT64_MAX: int = 2**63 - 1

_DECIMAL = re.compile(rb"-?[0-9]+")


class Marker(IntEnum):
    """Leading byte of a reply unit."""

    SIMPLE_STRING = 0x2B  # +
    ERROR = 0x2D  # -
    INTEGER = 0x3A  # :
    BULK_STRING = 0x24  # $
    ARRAY = 0x2A  # *


_MARKERS = frozenset(Marker)

SUBSCRIPTION_COMMANDS = frozenset({"SUBSCRIBE", "PSUBSCRIBE", "UNSUBSCRIBE", "PUNSUBSCRIBE"})


# =============================================================================
# Request encoding
# =============================================================================

def _encode_arg(arg: object, index: int) -> bytes:
    if isinstance(arg, (bytes, bytearray, memoryview)):
        return bytes(arg)
    if isinstance(arg, str):
        return arg.encode("utf-8")
    # bool is an int subclass and is rejected
    if isinstance(arg, (int, float)) and not isinstance(arg, bool):
        return str(arg).encode("ascii")
    raise InvalidRequestError(
        f"Invalid argument at position {index}: {type(arg).__name__}",
        hint="Arguments must be bytes, str, int or float",
    )


def encode_request(args: Sequence[bytes | str | int | float]) -> bytes:
    """
    Encode a request as an array of bulk strings.

    Args:
        args: Command name followed by its arguments.

    Returns:
        Wire bytes ready to be written to the socket.

    Raises:
        InvalidRequestError: If args is empty or holds an unsupported type.
    """
    if isinstance(args, (str, bytes, bytearray)):
        raise InvalidRequestError(
            "Request arguments must be a sequence, not a single string",
            hint="Pass a list such as ['GET', 'key']",
        )
    args = list(args)
    if not args:
        raise InvalidRequestError("Missing args", hint="A request needs at least the command name")

    parts = [b"*%d\r\n" % len(args)]
    for index, arg in enumerate(args):
        data = _encode_arg(arg, index)
        parts.append(b"$%d\r\n" % len(data))
        parts.append(data)
        parts.append(CRLF)
    return b"".join(parts)


def encode_command(name: str | bytes, *args: bytes | str | int | float) -> bytes:
    """Encode ``name`` and ``args`` as one request."""
    return encode_request([name, *args])


# =============================================================================
# Decode outcomes
# =============================================================================

class Incomplete:
    """More bytes are needed before the next unit can be parsed."""

    _instance: Incomplete | None = None

    def __new__(cls) -> Incomplete:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "INCOMPLETE"


INCOMPLETE = Incomplete()


@dataclass(frozen=True)
class Ready:
    """One complete top-level reply was parsed and trimmed from the buffer."""

    value: Reply


@dataclass(frozen=True)
class Malformed:
    """The stream violates the framing rules. Fatal for the connection."""

    message: str


DecodeOutcome = Union[Incomplete, Ready, Malformed]


# =============================================================================
# Reply decoding
# =============================================================================

class _FramingViolation(ValueError):
    pass


@dataclass(frozen=True)
class _ArrayHeader:
    count: int


class _Frame:
    """An array whose elements are still arriving."""

    __slots__ = ("remaining", "items")

    def __init__(self, count: int) -> None:
        self.remaining = count
        self.items: list[Reply] = []


def _parse_decimal(raw: bytes, what: str) -> int:
    # 20 characters covers every signed 64-bit value
    if len(raw) > 20 or not _DECIMAL.fullmatch(raw):
        raise _FramingViolation(f"Invalid {what}: {raw[:32]!r}")
    value = int(raw)
    if not INT64_MIN <= value <= INT64_MAX:
        raise _FramingViolation(f"Invalid {what}: {value} is out of 64-bit range")
    return value


def _read_line(buffer: bytearray, start: int) -> tuple[bytes, int] | None:
    """Return the text from start up to CRLF and the offset past CRLF."""
    lf = buffer.find(b"\n", start, start + MAX_LINE_LENGTH + 2)
    if lf == -1:
        if len(buffer) - start > MAX_LINE_LENGTH + 1:
            raise _FramingViolation(f"Line longer than {MAX_LINE_LENGTH} bytes")
        return None
    if buffer[lf - 1] != 0x0D:
        raise _FramingViolation("Line terminated by bare LF")
    return bytes(buffer[start:lf - 1]), lf + 1


def _parse_unit(buffer: bytearray, pos: int) -> tuple[int, Reply | _ArrayHeader] | None:
    """
    Parse one atomic unit starting at pos.

    A unit is a scalar reply, a bulk string with its payload, or the header
    of a non-empty array. Returns the offset past the unit and the parsed
    value, or None when the unit is not fully buffered.
    """
    if pos >= len(buffer):
        return None

    marker = buffer[pos]
    if marker not in _MARKERS:
        raise _FramingViolation(f"Unknown reply marker {bytes([marker])!r}")

    line = _read_line(buffer, pos + 1)
    if line is None:
        return None
    text, end = line

    if marker == Marker.SIMPLE_STRING:
        return end, SimpleString(text.decode("utf-8", "replace"))
    if marker == Marker.ERROR:
        return end, ErrorReply(text.decode("utf-8", "replace"))
    if marker == Marker.INTEGER:
        return end, Integer(_parse_decimal(text, "integer reply"))

    length = _parse_decimal(text, "length")
    if length < -1:
        raise _FramingViolation(f"Invalid negative length: {length}")

    if marker == Marker.BULK_STRING:
        if length == -1:
            return end, BulkString(None)
        if length > MAX_BULK_LENGTH:
            raise _FramingViolation(
                f"Bulk string too large: {length} bytes, maximum is {MAX_BULK_LENGTH} bytes"
            )
        # Header and payload are consumed together
        stop = end + length
        if len(buffer) < stop + 2:
            return None
        if buffer[stop:stop + 2] != CRLF:
            raise _FramingViolation("Bulk string payload not terminated by CRLF")
        return stop + 2, BulkString(bytes(buffer[end:stop]))

    if length == -1:
        return end, Array(None)
    if length > MAX_ARRAY_LENGTH:
        raise _FramingViolation(f"Array too large: {length} elements")
    if length == 0:
        return end, Array(())
    return end, _ArrayHeader(length)


class ReplyDecoder:
    """
    Resumable reply parser for one byte stream.

    Call decode() after every read with the same bytearray. Units that have
    been folded into the decoder's state are deleted from the front of the
    buffer, so an array split across many reads is never re-scanned.

    Example:
        >>> decoder = ReplyDecoder()
        >>> buffer = bytearray(b"*2\\r\\n$3\\r\\nfoo\\r\\n$3\\r")
        >>> decoder.decode(buffer)
        INCOMPLETE
        >>> buffer += b"\\nbar\\r\\n"
        >>> decoder.decode(buffer)
        Ready(value=Array(items=(BulkString(data=b'foo'), BulkString(data=b'bar'))))
    """

    def __init__(self) -> None:
        self._frames: list[_Frame] = []
        self._discard = 0
        self._fatal: str | None = None

    @property
    def pending(self) -> bool:
        """True while an array reply is partially parsed."""
        return bool(self._frames)

    @property
    def draining(self) -> bool:
        """True while siblings of an aborted array are still to be skipped."""
        return self._discard > 0

    @property
    def failed(self) -> bool:
        """True once a framing error was seen."""
        return self._fatal is not None

    def reset(self) -> None:
        """Discard all progress state, including a previous framing error."""
        self._frames.clear()
        self._discard = 0
        self._fatal = None

    def decode(self, buffer: bytearray) -> DecodeOutcome:
        """
        Try to extract one complete reply from the front of buffer.

        Args:
            buffer: Caller-owned bytes received so far. Parsed bytes are
                removed from its front.

        Returns:
            INCOMPLETE, Ready(reply) or Malformed(message).
        """
        if self._fatal is not None:
            return Malformed(self._fatal)

        pos = 0
        try:
            outcome, pos = self._decode(buffer)
        except _FramingViolation as e:
            self._frames.clear()
            self._discard = 0
            self._fatal = str(e)
            logger.debug("Framing error: %s", e)
            return Malformed(self._fatal)

        if pos:
            del buffer[:pos]
        return outcome

    def _decode(self, buffer: bytearray) -> tuple[DecodeOutcome, int]:
        pos = 0

        while self._discard:
            unit = _parse_unit(buffer, pos)
            if unit is None:
                return INCOMPLETE, pos
            pos, value = unit
            self._discard -= 1
            if isinstance(value, _ArrayHeader):
                self._discard += value.count

        while True:
            unit = _parse_unit(buffer, pos)
            if unit is None:
                return INCOMPLETE, pos
            pos, value = unit

            if isinstance(value, _ArrayHeader):
                self._frames.append(_Frame(value.count))
                continue

            if isinstance(value, ErrorReply) and self._frames:
                # Abort the whole reply; skip the declared siblings later
                self._discard = sum(frame.remaining - 1 for frame in self._frames)
                self._frames.clear()
                if self._discard:
                    logger.debug("Array aborted by error; %d unit(s) left to skip", self._discard)
                return Ready(value), pos

            completed = self._fold(value)
            if completed is not None:
                return Ready(completed), pos

    def _fold(self, value: Reply) -> Reply | None:
        """Append value to the innermost frame, closing frames that fill up."""
        while self._frames:
            frame = self._frames[-1]
            frame.items.append(value)
            frame.remaining -= 1
            if frame.remaining > 0:
                return None
            self._frames.pop()
            value = Array(tuple(frame.items))
        return value


def decode_replies(data: bytes) -> list[Reply]:
    """
    Decode every reply in a complete byte string.

    Args:
        data: Wire bytes holding zero or more whole replies.

    Returns:
        Parsed replies in stream order.

    Raises:
        ProtocolFramingError: If the data is malformed or ends mid-reply.
    """
    buffer = bytearray(data)
    decoder = ReplyDecoder()
    replies: list[Reply] = []

    while True:
        outcome = decoder.decode(buffer)
        if isinstance(outcome, Ready):
            replies.append(outcome.value)
        elif isinstance(outcome, Malformed):
            raise ProtocolFramingError(outcome.message)
        else:
            if buffer or decoder.pending or decoder.draining:
                raise ProtocolFramingError("Data ends in the middle of a reply")
            return replies
