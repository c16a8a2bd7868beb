# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
pyredis2 - RESP codec and client for Redis-compatible servers.

A small client library built around an incremental protocol codec:
- Request encoder and resumable reply decoder (no I/O inside the codec)
- Blocking, thread-safe client with reconnection and pipelining
- asyncio client with FIFO reply pairing
- Publish/subscribe subscriber for a channel or pattern
- Reactive (RxPY) message streams

Codec Only:
    >>> from pyredis2 import ReplyDecoder, Ready, encode_request
    >>>
    >>> wire = encode_request(["SET", "key", "value"])
    >>> decoder = ReplyDecoder()
    >>> buffer = bytearray(b"+OK\\r\\n")
    >>> decoder.decode(buffer)
    Ready(value=SimpleString(text='OK'))

Client:
    >>> from pyredis2 import connect
    >>>
    >>> with connect("localhost", 6379) as client:
    ...     client.set("key", "value")
    ...     print(client.get("key"))
    b'value'

Publish/Subscribe:
    >>> from pyredis2 import Subscriber
    >>>
    >>> subscriber = Subscriber("localhost", channel="news")
    >>> for message in subscriber.listen():
    ...     print(message.channel, message.decode())

asyncio:
    >>> async with AsyncRedis2Client("localhost") as client:
    ...     await client.set("key", "value")
"""

from .aio import AsyncRedis2Client
from .client import Redis2Client, connect
from .exceptions import (
    AuthenticationError,
    ConnectionClosedError,
    ConnectionError,
    ConnectionTimeoutError,
    InvalidRequestError,
    NoAvailableServerError,
    ProtocolFramingError,
    Redis2Error,
    ServerError,
    SubscriptionError,
)
from .models import ClientConfig, SubscriberConfig
from .protocol import (
    INCOMPLETE,
    DecodeOutcome,
    Incomplete,
    Malformed,
    Ready,
    ReplyDecoder,
    decode_replies,
    encode_command,
    encode_request,
)
from .reactive import ReactiveSubscriber, from_subscriber
from .subscriber import Subscriber, subscribe
from .types import (
    Array,
    BulkString,
    ErrorReply,
    Integer,
    PubSubMessage,
    Reply,
    SimpleString,
)

__version__ = "0.3.0"
__license__ = "Apache-2.0"

__all__ = [
    # Codec
    "encode_request",
    "encode_command",
    "ReplyDecoder",
    "decode_replies",
    "DecodeOutcome",
    "Incomplete",
    "INCOMPLETE",
    "Ready",
    "Malformed",
    # Reply values
    "Reply",
    "SimpleString",
    "Integer",
    "ErrorReply",
    "BulkString",
    "Array",
    "PubSubMessage",
    # Clients
    "Redis2Client",
    "AsyncRedis2Client",
    "connect",
    # Publish/subscribe
    "Subscriber",
    "subscribe",
    "ReactiveSubscriber",
    "from_subscriber",
    # Configuration
    "ClientConfig",
    "SubscriberConfig",
    # Exceptions
    "Redis2Error",
    "InvalidRequestError",
    "ProtocolFramingError",
    "ServerError",
    "ConnectionError",
    "ConnectionClosedError",
    "ConnectionTimeoutError",
    "NoAvailableServerError",
    "AuthenticationError",
    "SubscriptionError",
]
