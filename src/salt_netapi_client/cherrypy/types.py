"""Request and response types for the Salt NetAPI rest_cherrypy module.

Pydantic models mirroring the JSON documents exchanged with rest_cherrypy.
Every response wraps its payload in a ``return`` list, exposed here as the
``return_`` field since ``return`` is a Python keyword.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class LoginResult(BaseModel):
    """Session details issued by ``POST /login``."""

    token: str = ""
    expire: float = 0.0
    start: float = 0.0
    user: str = ""
    eauth: str = ""
    perms: list[Any] = Field(default_factory=list)


class LoginResponse(BaseModel):
    """Envelope returned by ``POST /login``."""

    model_config = ConfigDict(populate_by_name=True)

    return_: list[LoginResult] = Field(default_factory=list, alias="return")


class Minion(BaseModel):
    """A single minion and its grains."""

    id: str
    grains: dict[str, Any] = Field(default_factory=dict)


class MinionsResponse(BaseModel):
    """Envelope returned by ``GET /minions`` and ``GET /minions/<id>``.

    Minions that did not answer are reported with ``false`` instead of a
    grains mapping.
    """

    model_config = ConfigDict(populate_by_name=True)

    return_: list[dict[str, dict[str, Any] | bool]] = Field(
        default_factory=list,
        alias="return",
    )


class LocalCommand(BaseModel):
    """Lowstate chunk for the ``local`` client (``salt <tgt> <fun>``)."""

    client: str = "local"
    tgt: str
    fun: str
    arg: list[Any] = Field(default_factory=list)
    kwarg: dict[str, Any] = Field(default_factory=dict)
    tgt_type: str = "glob"


class CommandResponse(BaseModel):
    """Envelope returned when posting lowstate to the service root."""

    model_config = ConfigDict(populate_by_name=True)

    return_: list[dict[str, Any]] = Field(default_factory=list, alias="return")
