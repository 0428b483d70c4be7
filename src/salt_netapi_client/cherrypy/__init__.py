"""Salt NetAPI rest_cherrypy client package.

Provides a lightweight HTTP client for the rest_cherrypy module of a Salt
master: login/logout, authorized requests, and decoding of JSON responses
into pydantic models, dicts, lists or byte sinks.

Exports:
    Client: HTTP client with token authentication and response decoding.
    RequestError: Raised for non-2xx responses.
    types: Module containing Pydantic models for API payloads.
"""

from . import types
from .client import (
    AUTH_TOKEN_HEADER,
    AuthenticationError,
    Client,
    ClientConfig,
    Credentials,
    MinionNotFoundError,
    RequestError,
    SaltApiError,
    decode_into,
    encode_body,
)

__all__ = [
    "AUTH_TOKEN_HEADER",
    "AuthenticationError",
    "Client",
    "ClientConfig",
    "Credentials",
    "MinionNotFoundError",
    "RequestError",
    "SaltApiError",
    "decode_into",
    "encode_body",
    "types",
]
