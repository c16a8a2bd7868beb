# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Pydantic configuration models for the pyredis2 client.

Provides validated configuration for plain clients and subscribers.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_PORT: int = 6379


class ClientConfig(BaseModel):
    """Configuration for Redis2Client and AsyncRedis2Client."""

    model_config = ConfigDict(validate_assignment=True)

    host: str = Field(default="localhost", min_length=1)
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)

    # Sent as AUTH right after connecting
    password: str | None = None

    connect_timeout_ms: int = Field(default=10000, ge=100, le=300000)
    request_timeout_ms: int = Field(default=30000, ge=100, le=300000)
    max_retries: int = Field(default=3, ge=1, le=100)
    retry_delay_ms: int = Field(default=1000, ge=0, le=60000)

    # Socket options
    keepalive: bool = True
    no_delay: bool = True
    read_size: int = Field(default=65536, ge=1, description="Bytes requested per socket read")

    # Sent as CLIENT SETNAME after authentication
    client_name: str | None = None

    @field_validator("client_name")
    @classmethod
    def validate_client_name(cls, v: str | None) -> str | None:
        if v is not None and (not v or any(c.isspace() for c in v)):
            raise ValueError("Client name must be non-empty and contain no spaces")
        return v

    @property
    def address(self) -> str:
        """host:port string used in log and error messages."""
        return f"{self.host}:{self.port}"


class SubscriberConfig(ClientConfig):
    """Configuration for Subscriber. Exactly one of channel or pattern."""

    # Subscribers block on reads indefinitely by default
    request_timeout_ms: int | None = Field(default=None, ge=100)

    channel: str | None = None
    pattern: str | None = None

    @model_validator(mode="after")
    def check_target(self) -> SubscriberConfig:
        if not self.channel and not self.pattern:
            raise ValueError("Missing channel/pattern")
        if self.channel and self.pattern:
            raise ValueError("Both pattern and channel specified")
        return self

    @property
    def target(self) -> str:
        """The subscribed channel or pattern."""
        return self.channel or self.pattern or ""
