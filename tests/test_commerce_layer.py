"""
Tests for the Commerce Layer HTTP adapters: grant exchanges and the
per-session resource client. HTTP is mocked at the requests.Session level.
"""

import datetime
import json
from typing import Any
from unittest.mock import MagicMock

import pytest
import requests

from commerce_bot.core.commerce_layer import CommerceClient, CommerceLayerAuthClient
from commerce_bot.core.exceptions import AuthError, NotFoundError, TransientError
from commerce_bot.core.models import GrantType, Session
from commerce_bot.core.settings import OrganizationMode

ISSUED_AT = 1_760_000_000


def make_response(status_code: int, body: Any) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(body).encode() if body is not None else b"not json"
    return response


@pytest.fixture
def http() -> MagicMock:
    return MagicMock(spec=requests.Session)


def make_session(**overrides: Any) -> Session:
    values: dict[str, Any] = {
        "access_token": "session-token",
        "base_endpoint": "https://acme.commercelayer.io",
        "organization_slug": "acme",
        "organization_mode": OrganizationMode.TEST,
        "expires_at": datetime.datetime.now(datetime.UTC) + datetime.timedelta(hours=1),
    }
    values.update(overrides)
    return Session(**values)


def test_exchange_returns_grant(http: MagicMock) -> None:
    http.post.return_value = make_response(
        200,
        {
            "access_token": "new-access",
            "refresh_token": "new-refresh",
            "token_type": "bearer",
            "expires_in": 7200,
            "scope": "market:all",
            "created_at": ISSUED_AT,
        },
    )
    client = CommerceLayerAuthClient(http=http)

    grant = client.exchange(
        GrantType.REFRESH_TOKEN,
        {"refresh_token": "old-refresh", "client_id": "cid", "client_secret": None, "slug": "acme"},
    )

    assert grant.access_token == "new-access"
    assert grant.refresh_token == "new-refresh"
    assert grant.expires_at == datetime.datetime.fromtimestamp(
        ISSUED_AT + 7200, tz=datetime.UTC
    )
    payload = http.post.call_args.kwargs["json"]
    assert payload == {
        "grant_type": "refresh_token",
        "refresh_token": "old-refresh",
        "client_id": "cid",
    }


def test_exchange_formats_organization_endpoint(http: MagicMock) -> None:
    http.post.return_value = make_response(200, {"access_token": "a", "expires_in": 60})
    client = CommerceLayerAuthClient(
        auth_endpoint="https://{slug}.commercelayer.io/oauth/token", http=http
    )

    client.exchange(GrantType.CLIENT_CREDENTIALS, {"client_id": "cid", "slug": "acme"})

    assert http.post.call_args.args[0] == "https://acme.commercelayer.io/oauth/token"


def test_exchange_without_issue_time_uses_clock(http: MagicMock) -> None:
    now = datetime.datetime(2026, 1, 1, tzinfo=datetime.UTC)
    http.post.return_value = make_response(200, {"access_token": "a", "expires_in": 60})
    client = CommerceLayerAuthClient(http=http, clock=lambda: now)

    grant = client.exchange(GrantType.CLIENT_CREDENTIALS, {"client_id": "cid"})

    assert grant.expires_at == now + datetime.timedelta(seconds=60)
    assert grant.refresh_token is None


@pytest.mark.parametrize("status_code", [400, 401, 403])
def test_rejection_is_auth_error(http: MagicMock, status_code: int) -> None:
    http.post.return_value = make_response(
        status_code, {"error": "invalid_client", "error_description": "bad secret"}
    )
    client = CommerceLayerAuthClient(http=http)

    with pytest.raises(AuthError) as exc_info:
        client.exchange(GrantType.CLIENT_CREDENTIALS, {"client_id": "cid"})

    assert exc_info.value.error_code == "invalid_client"


@pytest.mark.parametrize("status_code", [429, 500, 503])
def test_server_failure_is_transient(http: MagicMock, status_code: int) -> None:
    http.post.return_value = make_response(status_code, {"errors": []})
    client = CommerceLayerAuthClient(http=http)

    with pytest.raises(TransientError):
        client.exchange(GrantType.CLIENT_CREDENTIALS, {"client_id": "cid"})


def test_timeout_is_transient(http: MagicMock) -> None:
    http.post.side_effect = requests.Timeout("read timed out")
    client = CommerceLayerAuthClient(http=http, timeout=2.5)

    with pytest.raises(TransientError):
        client.exchange(GrantType.REFRESH_TOKEN, {"refresh_token": "r", "client_id": "cid"})

    assert http.post.call_args.kwargs["timeout"] == 2.5


def test_connection_error_is_transient(http: MagicMock) -> None:
    http.post.side_effect = requests.ConnectionError("refused")
    client = CommerceLayerAuthClient(http=http)

    with pytest.raises(TransientError):
        client.exchange(GrantType.CLIENT_CREDENTIALS, {"client_id": "cid"})


def test_malformed_body_is_transient(http: MagicMock) -> None:
    http.post.return_value = make_response(200, None)
    client = CommerceLayerAuthClient(http=http)

    with pytest.raises(TransientError):
        client.exchange(GrantType.CLIENT_CREDENTIALS, {"client_id": "cid"})


def test_commerce_client_sends_session_token(http: MagicMock) -> None:
    http.headers = {}
    http.get.return_value = make_response(200, {"data": {"id": "ord_1"}})

    with CommerceClient(make_session(), http=http) as client:
        order = client.retrieve_order("ord_1")

    assert order["data"]["id"] == "ord_1"
    assert http.headers["Authorization"] == "Bearer session-token"
    assert http.get.call_args.args[0] == "https://acme.commercelayer.io/api/orders/ord_1"
    assert "payment_method" in http.get.call_args.kwargs["params"]["include"]
    http.close.assert_called_once()


def test_last_return_filters_by_status(http: MagicMock) -> None:
    http.headers = {}
    http.get.return_value = make_response(
        200, {"data": [{"id": "ret_2"}], "included": [{"id": "ord_1"}]}
    )
    client = CommerceClient(make_session(), http=http)

    latest = client.last_return("approved")

    params = http.get.call_args.kwargs["params"]
    assert params["filter[q][status_eq]"] == "approved"
    assert params["sort"] == "-approved_at"
    assert latest == {"data": {"id": "ret_2"}, "included": [{"id": "ord_1"}]}


def test_requested_returns_sort_by_creation(http: MagicMock) -> None:
    http.headers = {}
    http.get.return_value = make_response(200, {"data": [{"id": "ret_1"}]})
    client = CommerceClient(make_session(), http=http)

    client.last_return("requested")

    assert http.get.call_args.kwargs["params"]["sort"] == "-created_at"


def test_empty_listing_is_not_found(http: MagicMock) -> None:
    http.headers = {}
    http.get.return_value = make_response(200, {"data": []})
    client = CommerceClient(make_session(), http=http)

    with pytest.raises(NotFoundError):
        client.last_order()


def test_expired_session_token_is_auth_error(http: MagicMock) -> None:
    http.headers = {}
    http.get.return_value = make_response(401, {"errors": [{"code": "INVALID_TOKEN"}]})
    client = CommerceClient(make_session(), http=http)

    with pytest.raises(AuthError) as exc_info:
        client.retrieve_return("ret_1")

    assert exc_info.value.error_code == "INVALID_TOKEN"


def test_missing_resource_is_not_found(http: MagicMock) -> None:
    http.headers = {}
    http.get.return_value = make_response(404, {"errors": [{"code": "RECORD_NOT_FOUND"}]})
    client = CommerceClient(make_session(), http=http)

    with pytest.raises(NotFoundError):
        client.retrieve_order("missing")
