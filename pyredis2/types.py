# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Reply value types for the pyredis2 client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class SimpleString:
    """Status reply (``+OK``). Never null, never binary-safe."""

    text: str

    def to_python(self) -> str:
        return self.text


@dataclass(frozen=True)
class Integer:
    """Integer reply (``:42``)."""

    value: int

    def to_python(self) -> int:
        return self.value


@dataclass(frozen=True)
class ErrorReply:
    """Error reply (``-ERR ...``), either top-level or nested in an array."""

    message: str

    @property
    def code(self) -> str | None:
        """Leading upper-case word of the message, e.g. ``WRONGTYPE``."""
        head = self.message.split(" ", 1)[0]
        return head if head.isupper() else None

    def to_python(self) -> str:
        return self.message


@dataclass(frozen=True)
class BulkString:
    """Binary-safe string reply. ``data is None`` is the null bulk string."""

    data: bytes | None

    @property
    def is_null(self) -> bool:
        return self.data is None

    def decode(self, encoding: str = "utf-8") -> str | None:
        """Decode payload as string."""
        return self.data.decode(encoding) if self.data is not None else None

    def to_python(self) -> bytes | None:
        return self.data


@dataclass(frozen=True)
class Array:
    """Multi-bulk reply. ``items is None`` is the null array."""

    items: tuple[Reply, ...] | None

    @property
    def is_null(self) -> bool:
        return self.items is None

    def __len__(self) -> int:
        return len(self.items) if self.items is not None else 0

    def to_python(self) -> list[Any] | None:
        if self.items is None:
            return None
        return [item.to_python() for item in self.items]


Reply = Union[SimpleString, Integer, ErrorReply, BulkString, Array]


@dataclass(frozen=True)
class PubSubMessage:
    """A message pushed to a subscribed connection."""

    channel: str
    data: bytes
    pattern: str | None = None

    @property
    def value(self) -> bytes:
        """Alias for data."""
        return self.data

    def decode(self, encoding: str = "utf-8") -> str:
        """Decode message data as string."""
        return self.data.decode(encoding)
