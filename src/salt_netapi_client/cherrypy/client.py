"""Salt NetAPI rest_cherrypy client.

Provides an HTTP client with token-based authentication, thread-local
connection handling, and decoding of JSON responses into caller-supplied
targets or raw byte sinks.
"""

import json
import threading
from typing import Any, Protocol

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from . import types

AUTH_TOKEN_HEADER = "X-Auth-Token"


class DiagnosticLogger(Protocol):
    """Leveled sink for request/response traces (structlog compatible)."""

    def debug(self, event: str, **kw: Any) -> Any: ...

    def info(self, event: str, **kw: Any) -> Any: ...


class SaltApiError(Exception):
    """Base class for errors raised by this client."""


class RequestError(SaltApiError):
    """Raised when rest_cherrypy answers with a non-2xx status.

    Attributes:
        status_code: Numeric HTTP status code.
        status: Status line text, e.g. ``"500 Internal Server Error"``.
        body: Raw response body, possibly partial if reading it failed.
    """

    def __init__(self, status_code: int, status: str, body: bytes):
        super().__init__(f"HTTP request failed: {status}")
        self.status_code = status_code
        self.status = status
        self.body = body


class AuthenticationError(SaltApiError):
    """Raised when a login succeeds at the HTTP level but yields no token."""


class MinionNotFoundError(SaltApiError, LookupError):
    """Raised when the master has no grains for the requested minion."""

    def __init__(self, minion_id: str):
        super().__init__(f"Minion not found: {minion_id}")
        self.minion_id = minion_id


class ClientConfig(BaseModel):
    """Connection settings, fixed for the lifetime of a client."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(min_length=1)
    skip_verify: bool = False


class Credentials(BaseModel):
    """External authentication (eauth) credentials used by login."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: str = Field(repr=False)
    backend: str


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def encode_body(body: Any) -> bytes:
    """Serialize a request body to UTF-8 JSON.

    Characters such as ``<``, ``>`` and ``&`` and any non-ASCII text are
    written literally. Pydantic models may appear anywhere in ``body`` and
    are dumped using their field aliases.

    Raises:
        TypeError: If ``body`` holds a value JSON cannot represent.
        ValueError: If ``body`` contains a circular reference or a
            non-finite float.
    """
    return json.dumps(body, ensure_ascii=False, default=_json_default).encode("utf-8")


def decode_into(target: Any, content: bytes) -> None:
    """Decode a JSON document into ``target`` in place.

    ``target`` may be a pydantic model instance (fields present in the
    document are validated and assigned), a ``dict`` (updated with a JSON
    object) or a ``list`` (contents replaced by a JSON array). An empty
    document or a JSON ``null`` leaves ``target`` untouched. Frozen models
    cannot be decoded into.

    Raises:
        TypeError: If ``target`` is not a supported type or the document's
            shape does not match it.
        json.JSONDecodeError: If ``content`` is not valid JSON.
        pydantic.ValidationError: If the document does not fit the model.
    """
    if not isinstance(target, BaseModel | dict | list):
        msg = f"Unsupported decode target: {type(target).__name__}"
        raise TypeError(msg)
    if isinstance(target, BaseModel) and target.model_config.get("frozen"):
        msg = f"Unsupported decode target: frozen model {type(target).__name__}"
        raise TypeError(msg)

    if not content.strip():
        return

    data = json.loads(content)
    if data is None:
        return

    if isinstance(target, BaseModel):
        decoded = type(target).model_validate(data)
        for name in decoded.model_fields_set:
            setattr(target, name, getattr(decoded, name))
    elif isinstance(target, dict):
        if not isinstance(data, dict):
            msg = f"Cannot decode JSON {type(data).__name__} into dict"
            raise TypeError(msg)
        target.update(data)
    else:
        if not isinstance(data, list):
            msg = f"Cannot decode JSON {type(data).__name__} into list"
            raise TypeError(msg)
        target[:] = data


class Client:
    """HTTP client for Salt NetAPI's rest_cherrypy module.

    Example::

        with Client("http://master:8000", "admin", "password", "pam") as client:
            client.login()
            try:
                minion = client.minion("minion1")
            finally:
                client.logout()

    Thread-safe through thread-local storage of httpx.Client instances and a
    lock around the session token. Can be used as a context manager for
    automatic cleanup.
    """

    def __init__(
        self,
        address: str,
        username: str,
        password: str,
        backend: str,
        skip_verify: bool = False,
        *,
        timeout: float | None = None,
        logger: DiagnosticLogger | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            address: URL of the rest_cherrypy instance on a master
                (e.g., "https://salt-master:8000").
            username: eauth user name.
            password: eauth password.
            backend: eauth backend name (e.g., "pam").
            skip_verify: Disable TLS certificate verification, for masters
                with self-signed certificates.
            timeout: Default request timeout in seconds; None waits forever.
            logger: Diagnostic sink for request traces. Defaults to this
                module's structlog logger.
            transport: Optional httpx transport for every thread's client.

        Raises:
            pydantic.ValidationError: If address is empty.
            ValueError: If timeout is not positive.
        """
        if timeout is not None and timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)

        self.config = ClientConfig(address=address, skip_verify=skip_verify)
        self._credentials = Credentials(
            username=username,
            password=password,
            backend=backend,
        )
        self._timeout = timeout
        self._transport = transport
        self._logger: DiagnosticLogger = (
            logger if logger is not None else structlog.get_logger(__name__)
        )

        self._token = ""
        self._token_lock = threading.Lock()

        # Use thread-local storage for httpx.Client (thread safety)
        self._local = threading.local()

    @property
    def address(self) -> str:
        """Base URL of the rest_cherrypy instance."""
        return self.config.address

    @property
    def token(self) -> str:
        """Current session token, empty when not logged in."""
        with self._token_lock:
            return self._token

    @token.setter
    def token(self, value: str) -> None:
        with self._token_lock:
            self._token = value

    @property
    def client(self) -> httpx.Client:
        """Get or create thread-local httpx client.

        Each thread gets its own httpx.Client instance for thread safety.
        Clients are created lazily and reused within the same thread.

        Returns:
            Thread-local httpx.Client instance.
        """
        if not hasattr(self._local, "client") or self._local.client.is_closed:
            self._local.client = httpx.Client(
                verify=not self.config.skip_verify,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._local.client

    def __enter__(self):
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager and cleanup resources."""
        self.close()

    def close(self):
        """Close the thread-local HTTP client if open."""
        if hasattr(self._local, "client") and not self._local.client.is_closed:
            self._local.client.close()

    def build_request(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        *,
        timeout: Any = httpx.USE_CLIENT_DEFAULT,
    ) -> httpx.Request:
        """Build a request against the rest_cherrypy instance.

        The URL is the client address and ``endpoint`` joined by a single
        slash; ``endpoint`` is used as given, without a leading slash.

        Args:
            method: HTTP method.
            endpoint: Path relative to the client address (e.g., "minions/id1").
            body: Optional JSON-serializable request body.
            timeout: Timeout for this request only; defaults to the client's.

        Returns:
            Request carrying JSON content headers and, when logged in, the
            session token.

        Raises:
            TypeError: If body cannot be serialized.
            ValueError: If body cannot be serialized.
            httpx.InvalidURL: If the resulting URL is malformed.
        """
        url = f"{self.address}/{endpoint}"

        content = encode_body(body) if body is not None else None

        self._logger.debug("Creating request", method=method, url=url)

        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        token = self.token
        if token:
            headers[AUTH_TOKEN_HEADER] = token

        return self.client.build_request(
            method,
            url,
            content=content,
            headers=headers,
            timeout=timeout,
        )

    def send(self, request: httpx.Request, target: Any = None) -> httpx.Response:
        """Send a request and interpret the response.

        On a 2xx response the body is written to ``target`` verbatim when it
        has a ``write`` method, decoded into it as JSON otherwise (see
        :func:`decode_into`), or discarded when ``target`` is None. The
        response is always closed before returning.

        Args:
            request: Request built by :meth:`build_request`.
            target: Optional byte sink or decode target.

        Returns:
            The closed httpx.Response.

        Raises:
            RequestError: If the status is outside 200-299.
            httpx.TransportError: If the request could not be completed.
            json.JSONDecodeError: If a 2xx body is not valid JSON.
            pydantic.ValidationError: If a 2xx body does not fit the model.
            TypeError: If target is unsupported or mismatches the body.
        """
        response = self.client.send(request, stream=True)
        try:
            self._logger.debug(
                "Received response",
                status_code=response.status_code,
                url=str(request.url),
            )

            if not 200 <= response.status_code <= 299:  # noqa: PLR2004
                raise RequestError(
                    status_code=response.status_code,
                    status=f"{response.status_code} {response.reason_phrase}",
                    body=self._read_best_effort(response),
                )

            if target is None:
                self._read_best_effort(response)
            elif hasattr(target, "write"):
                for chunk in response.iter_bytes():
                    target.write(chunk)
            else:
                decode_into(target, response.read())

            return response
        finally:
            response.close()

    def _read_best_effort(self, response: httpx.Response) -> bytes:
        """Read as much of a response body as possible.

        Used for failure bodies and for discarded success bodies, where a
        read error must not mask the status.
        """
        chunks: list[bytes] = []
        try:
            for chunk in response.iter_bytes():
                chunks.append(chunk)
        except httpx.HTTPError as exc:
            self._logger.debug(
                "Failed to read response body",
                status_code=response.status_code,
                error=str(exc),
                bytes_read=sum(len(c) for c in chunks),
            )
        return b"".join(chunks)

    def login(self) -> types.LoginResult:
        """Authenticate against the master and store the session token.

        Returns:
            Session details issued by the master.

        Raises:
            RequestError: If the master rejects the credentials.
            AuthenticationError: If the response carries no token.
        """
        request = self.build_request(
            "POST",
            "login",
            body={
                "username": self._credentials.username,
                "password": self._credentials.password,
                "eauth": self._credentials.backend,
            },
        )
        response = types.LoginResponse()
        self.send(request, response)

        if not response.return_ or not response.return_[0].token:
            msg = f"No token returned for user {self._credentials.username}"
            raise AuthenticationError(msg)

        session = response.return_[0]
        self.token = session.token
        self._logger.info(
            "Logged in",
            user=session.user,
            eauth=session.eauth,
            expire=session.expire,
        )
        return session

    def logout(self) -> None:
        """Invalidate the session on the master and forget the token."""
        self.send(self.build_request("POST", "logout"))
        self.token = ""
        self._logger.info("Logged out", address=self.address)

    def minion(self, minion_id: str) -> types.Minion:
        """Fetch the grains of a single minion.

        Raises:
            MinionNotFoundError: If the master returns no grains for it.
        """
        response = types.MinionsResponse()
        self.send(self.build_request("GET", f"minions/{minion_id}"), response)

        grains = response.return_[0].get(minion_id) if response.return_ else None
        if not isinstance(grains, dict):
            raise MinionNotFoundError(minion_id)
        return types.Minion(id=minion_id, grains=grains)

    def minions(self) -> list[types.Minion]:
        """Fetch every minion known to the master that returned grains."""
        response = types.MinionsResponse()
        self.send(self.build_request("GET", "minions"), response)

        minions = []
        for entry in response.return_:
            for minion_id, grains in entry.items():
                if isinstance(grains, dict):
                    minions.append(types.Minion(id=minion_id, grains=grains))
        return minions

    def local(
        self,
        tgt: str,
        fun: str,
        arg: list[Any] | None = None,
        kwarg: dict[str, Any] | None = None,
        tgt_type: str = "glob",
    ) -> dict[str, Any]:
        """Run an execution module function on the targeted minions.

        Args:
            tgt: Target expression (e.g., "web*").
            fun: Function to run (e.g., "test.ping").
            arg: Positional arguments for the function.
            kwarg: Keyword arguments for the function.
            tgt_type: Targeting mode (e.g., "glob", "list", "grain").

        Returns:
            Mapping of minion id to the function's return value.
        """
        command = types.LocalCommand(
            tgt=tgt,
            fun=fun,
            arg=list(arg or []),
            kwarg=dict(kwarg or {}),
            tgt_type=tgt_type,
        )
        response = types.CommandResponse()
        self.send(self.build_request("POST", "", body=[command]), response)
        return response.return_[0] if response.return_ else {}
