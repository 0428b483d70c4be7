"""Tests for login, logout and resource calls built on the client core."""

import json

import pytest

from salt_netapi_client.cherrypy import client, types

BASE_URL = "http://master:8000"

LOGIN_RESPONSE = {
    "return": [
        {
            "token": "abc123",
            "expire": 1700043200.5,
            "start": 1700000000.5,
            "user": "admin",
            "eauth": "pam",
            "perms": [".*", "@wheel"],
        },
    ],
}


@pytest.fixture
def api_client() -> client.Client:
    """Client for a test master using the pam backend."""
    return client.Client(BASE_URL, "admin", "s3cret", "pam")


@pytest.fixture
def logged_in_client(api_client: client.Client) -> client.Client:
    """Client that already holds a session token."""
    api_client.token = "abc123"
    return api_client


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


def test_login_posts_credentials(httpx_mock, api_client: client.Client):
    """Login sends username, password and eauth backend as JSON."""
    httpx_mock.add_response(method="POST", url=f"{BASE_URL}/login", json=LOGIN_RESPONSE)

    api_client.login()

    request = httpx_mock.get_request()
    assert json.loads(request.content) == {
        "username": "admin",
        "password": "s3cret",
        "eauth": "pam",
    }
    assert client.AUTH_TOKEN_HEADER not in request.headers


def test_login_stores_token(httpx_mock, api_client: client.Client):
    """The issued token becomes the session token."""
    httpx_mock.add_response(method="POST", url=f"{BASE_URL}/login", json=LOGIN_RESPONSE)

    session = api_client.login()

    assert api_client.token == "abc123"
    assert session.user == "admin"
    assert session.eauth == "pam"
    assert session.perms == [".*", "@wheel"]
    assert session.expire == pytest.approx(1700043200.5)


def test_requests_after_login_carry_token(httpx_mock, api_client: client.Client):
    """Every request after login sends the session token."""
    httpx_mock.add_response(method="POST", url=f"{BASE_URL}/login", json=LOGIN_RESPONSE)
    httpx_mock.add_response(
        method="GET",
        url=f"{BASE_URL}/minions/minion1",
        json={"return": [{"minion1": {"os": "Debian"}}]},
    )

    api_client.login()
    api_client.minion("minion1")

    login_request, minion_request = httpx_mock.get_requests()
    assert client.AUTH_TOKEN_HEADER not in login_request.headers
    assert minion_request.headers[client.AUTH_TOKEN_HEADER] == "abc123"


def test_login_rejected_raises_request_error(httpx_mock, api_client: client.Client):
    """Rejected credentials surface as RequestError and leave no token."""
    httpx_mock.add_response(
        method="POST",
        url=f"{BASE_URL}/login",
        status_code=401,
        content=b"Could not authenticate using provided credentials",
    )

    with pytest.raises(client.RequestError) as exc_info:
        api_client.login()

    assert exc_info.value.status_code == 401
    assert api_client.token == ""


@pytest.mark.parametrize(
    "payload",
    [
        {"return": []},
        {"return": [{"user": "admin"}]},
        {},
    ],
)
def test_login_without_token_raises(httpx_mock, api_client: client.Client, payload):
    """A 2xx login response without a token is an authentication error."""
    httpx_mock.add_response(method="POST", url=f"{BASE_URL}/login", json=payload)

    with pytest.raises(client.AuthenticationError, match="admin"):
        api_client.login()

    assert api_client.token == ""


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


def test_logout_clears_token(httpx_mock, logged_in_client: client.Client):
    """A successful logout forgets the token."""
    httpx_mock.add_response(
        method="POST",
        url=f"{BASE_URL}/logout",
        json={"return": "Your token has been cleared"},
    )

    logged_in_client.logout()

    assert logged_in_client.token == ""
    request = httpx_mock.get_request()
    assert request.headers[client.AUTH_TOKEN_HEADER] == "abc123"


def test_logout_failure_keeps_token(httpx_mock, logged_in_client: client.Client):
    """The token is only cleared after the master accepts the logout."""
    httpx_mock.add_response(method="POST", url=f"{BASE_URL}/logout", status_code=500)

    with pytest.raises(client.RequestError):
        logged_in_client.logout()

    assert logged_in_client.token == "abc123"


# ---------------------------------------------------------------------------
# Minions
# ---------------------------------------------------------------------------


def test_minion_returns_grains(httpx_mock, logged_in_client: client.Client):
    """A single minion lookup returns its grains."""
    httpx_mock.add_response(
        method="GET",
        url=f"{BASE_URL}/minions/id1",
        json={"return": [{"id1": {"os": "Ubuntu", "num_cpus": 4}}]},
    )

    minion = logged_in_client.minion("id1")

    assert minion == types.Minion(id="id1", grains={"os": "Ubuntu", "num_cpus": 4})


@pytest.mark.parametrize(
    "payload",
    [
        {"return": [{}]},
        {"return": [{"id1": False}]},
        {"return": []},
    ],
)
def test_minion_missing_raises(httpx_mock, logged_in_client: client.Client, payload):
    """An unknown or unresponsive minion raises MinionNotFoundError."""
    httpx_mock.add_response(method="GET", url=f"{BASE_URL}/minions/id1", json=payload)

    with pytest.raises(client.MinionNotFoundError) as exc_info:
        logged_in_client.minion("id1")

    assert exc_info.value.minion_id == "id1"
    assert isinstance(exc_info.value, LookupError)


def test_minions_skips_unresponsive(httpx_mock, logged_in_client: client.Client):
    """Minions reported as false are left out of the listing."""
    httpx_mock.add_response(
        method="GET",
        url=f"{BASE_URL}/minions",
        json={
            "return": [
                {
                    "web1": {"os": "Debian"},
                    "web2": False,
                    "db1": {"os": "CentOS"},
                },
            ],
        },
    )

    minions = logged_in_client.minions()

    assert [m.id for m in minions] == ["web1", "db1"]
    assert minions[1].grains == {"os": "CentOS"}


def test_minions_empty(httpx_mock, logged_in_client: client.Client):
    """A master without minions yields an empty list."""
    httpx_mock.add_response(method="GET", url=f"{BASE_URL}/minions", json={"return": [{}]})
    assert logged_in_client.minions() == []


# ---------------------------------------------------------------------------
# Local client
# ---------------------------------------------------------------------------


def test_local_posts_lowstate_to_root(httpx_mock, logged_in_client: client.Client):
    """Commands are posted to the service root as a lowstate list."""
    httpx_mock.add_response(
        method="POST",
        url=f"{BASE_URL}/",
        json={"return": [{"web1": True, "web2": True}]},
    )

    result = logged_in_client.local("web*", "test.ping")

    assert result == {"web1": True, "web2": True}
    request = httpx_mock.get_request()
    assert json.loads(request.content) == [
        {
            "client": "local",
            "tgt": "web*",
            "fun": "test.ping",
            "arg": [],
            "kwarg": {},
            "tgt_type": "glob",
        },
    ]


def test_local_passes_arguments(httpx_mock, logged_in_client: client.Client):
    """Positional, keyword and targeting arguments are forwarded."""
    httpx_mock.add_response(
        method="POST",
        url=f"{BASE_URL}/",
        json={"return": [{"web1": "<html> & more"}]},
    )

    result = logged_in_client.local(
        "web1,web2",
        "cmd.run",
        arg=["echo '<html> & more'"],
        kwarg={"shell": "/bin/bash"},
        tgt_type="list",
    )

    assert result == {"web1": "<html> & more"}
    request = httpx_mock.get_request()
    assert b"echo '<html> & more'" in request.content
    chunk = json.loads(request.content)[0]
    assert chunk["kwarg"] == {"shell": "/bin/bash"}
    assert chunk["tgt_type"] == "list"


def test_local_empty_return(httpx_mock, logged_in_client: client.Client):
    """An empty return list yields an empty mapping."""
    httpx_mock.add_response(method="POST", url=f"{BASE_URL}/", json={"return": []})
    assert logged_in_client.local("nomatch*", "test.ping") == {}
