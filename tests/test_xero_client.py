"""Unit tests for XeroClient with the HTTP layer patched out."""

from datetime import date, datetime
from unittest.mock import MagicMock, patch

import pytest
import requests

from app.config import SyncConfig, XeroConfig
from app.core.exceptions import ConfigurationError, RemoteApiError
from app.services.xero_client import XeroClient, parse_bank_statement_report


def _response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = payload if payload is not None else {}
    response.text = text
    return response


def _client(page_size=100, max_pages=10):
    return XeroClient(
        config=XeroConfig(client_id="client-id", client_secret="client-secret"),
        sync_config=SyncConfig(page_size=page_size, max_pages=max_pages),
    )


def _page(count, start=0):
    return {"BankTransactions": [{"BankTransactionID": f"tx-{start + i}"} for i in range(count)]}


def test_authorization_url_contains_state_and_scopes():
    url = _client().get_authorization_url("user:abc")

    assert url.startswith("https://login.xero.com/identity/connect/authorize?")
    assert "state=user%3Aabc" in url
    assert "response_type=code" in url
    assert "offline_access" in url


def test_authorization_url_requires_client_id():
    client = XeroClient(config=XeroConfig(client_id=None, client_secret=None))

    with pytest.raises(ConfigurationError):
        client.get_authorization_url("state")


@patch("app.services.xero_client.requests.request")
def test_refresh_sends_basic_auth_and_returns_tokens(mock_request):
    mock_request.return_value = _response(payload={"access_token": "a", "refresh_token": "r", "expires_in": 1800})

    tokens = _client().refresh_access_token("old-refresh")

    assert tokens["refresh_token"] == "r"
    args, kwargs = mock_request.call_args
    assert args == ("post", "https://identity.xero.com/connect/token")
    assert kwargs["auth"] == ("client-id", "client-secret")
    assert kwargs["data"] == {"grant_type": "refresh_token", "refresh_token": "old-refresh"}
    assert kwargs["timeout"] == 30


@patch("app.services.xero_client.requests.request")
def test_token_failure_raises_remote_api_error(mock_request):
    mock_request.return_value = _response(400, text='{"error":"invalid_grant"}' + "x" * 500)

    with pytest.raises(RemoteApiError) as exc_info:
        _client().refresh_access_token("old-refresh")

    assert exc_info.value.status_code == 400
    assert len(exc_info.value.body) == 200


@patch("app.services.xero_client.requests.request")
def test_transport_error_is_wrapped(mock_request):
    mock_request.side_effect = requests.exceptions.ConnectionError("boom")

    with pytest.raises(RemoteApiError):
        _client().get_connections("token")


@patch("app.services.xero_client.requests.request")
def test_bank_accounts_filters_inactive(mock_request):
    mock_request.return_value = _response(payload={"Accounts": [
        {"AccountID": "a1", "Name": "Everyday", "Status": "ACTIVE"},
        {"AccountID": "a2", "Name": "Old", "Status": "ARCHIVED"},
    ]})

    accounts = _client().get_bank_accounts("token", "tenant-1")

    assert [a["AccountID"] for a in accounts] == ["a1"]
    _, kwargs = mock_request.call_args
    assert kwargs["params"] == {"where": 'Type=="BANK"'}
    assert kwargs["headers"]["Xero-Tenant-Id"] == "tenant-1"
    assert kwargs["headers"]["Authorization"] == "Bearer token"


@patch("app.services.xero_client.requests.request")
def test_bank_transactions_request_shape(mock_request):
    mock_request.return_value = _response(payload=_page(1))

    _client().get_bank_transactions(
        "token", "tenant-1", bank_account_id="acc-1", modified_since=datetime(2026, 2, 1), page=2
    )

    _, kwargs = mock_request.call_args
    assert kwargs["params"]["where"] == 'Status=="AUTHORISED" AND BankAccount.AccountID==guid("acc-1")'
    assert kwargs["params"]["page"] == 2
    assert kwargs["params"]["order"] == "Date DESC"
    assert kwargs["headers"]["If-Modified-Since"] == "Sun, 01 Feb 2026 00:00:00 GMT"


@patch("app.services.xero_client.requests.request")
def test_first_page_omits_page_param(mock_request):
    mock_request.return_value = _response(payload=_page(1))

    _client().get_bank_transactions("token", "tenant-1")

    _, kwargs = mock_request.call_args
    assert "page" not in kwargs["params"]
    assert "If-Modified-Since" not in kwargs["headers"]


@patch("app.services.xero_client.requests.request")
def test_not_modified_returns_empty(mock_request):
    mock_request.return_value = _response(304)

    assert _client().get_bank_transactions("token", "tenant-1", modified_since=datetime(2026, 2, 1)) == []


@patch("app.services.xero_client.requests.request")
def test_pagination_stops_on_short_page(mock_request):
    mock_request.side_effect = [_response(payload=_page(3)), _response(payload=_page(1, start=3))]
    stats = {}

    transactions = _client(page_size=3).get_all_bank_transactions("token", "tenant-1", stats=stats)

    assert len(transactions) == 4
    assert mock_request.call_count == 2
    assert stats["api_calls"] == 2


@patch("app.services.xero_client.requests.request")
def test_pagination_stops_on_empty_page(mock_request):
    mock_request.side_effect = [_response(payload=_page(2)), _response(payload=_page(0))]

    transactions = _client(page_size=2).get_all_bank_transactions("token", "tenant-1")

    assert len(transactions) == 2
    assert mock_request.call_count == 2


@patch("app.services.xero_client.requests.request")
def test_pagination_respects_page_cap(mock_request):
    mock_request.side_effect = lambda *args, **kwargs: _response(payload=_page(2))

    transactions = _client(page_size=2).get_all_bank_transactions("token", "tenant-1", max_pages=3)

    assert len(transactions) == 6
    assert mock_request.call_count == 3


@patch("app.services.xero_client.requests.request")
def test_statement_lines_invalid_json_is_empty(mock_request):
    response = _response()
    response.json.side_effect = ValueError("not json")
    mock_request.return_value = response

    lines = _client().get_bank_statement_lines(
        "token", "tenant-1", "acc-1", from_date=date(2026, 1, 1), to_date=date(2026, 1, 31)
    )

    assert lines == []
    _, kwargs = mock_request.call_args
    assert kwargs["params"] == {"bankAccountID": "acc-1", "fromDate": "2026-01-01", "toDate": "2026-01-31"}


ENDPOINTS = {
    "token": lambda client: client.refresh_access_token("old-refresh"),
    "connections": lambda client: client.get_connections("token"),
    "accounts": lambda client: client.get_bank_accounts("token", "tenant-1"),
    "transactions": lambda client: client.get_bank_transactions("token", "tenant-1", "acc-1"),
}


@pytest.mark.parametrize("endpoint", sorted(ENDPOINTS))
@patch("app.services.xero_client.requests.request")
def test_non_json_body_raises_remote_api_error(mock_request, endpoint):
    response = _response(text="<html>maintenance</html>")
    response.json.side_effect = requests.JSONDecodeError("Expecting value", "<html>", 0)
    mock_request.return_value = response

    with pytest.raises(RemoteApiError) as exc_info:
        ENDPOINTS[endpoint](_client())

    assert exc_info.value.status_code == 200


@pytest.mark.parametrize("endpoint,payload", [
    ("token", ["unexpected"]),
    ("connections", {"unexpected": True}),
    ("accounts", ["unexpected"]),
    ("transactions", ["unexpected"]),
])
@patch("app.services.xero_client.requests.request")
def test_unexpected_json_shape_raises_remote_api_error(mock_request, endpoint, payload):
    mock_request.return_value = _response(payload=payload)

    with pytest.raises(RemoteApiError):
        ENDPOINTS[endpoint](_client())


def _row(*values):
    return {"RowType": "Row", "Cells": [{"Value": v} for v in values]}


def test_parse_bank_statement_report():
    payload = {"Reports": [{"Rows": [
        {"RowType": "Header", "Cells": [{"Value": "Date"}]},
        {"RowType": "Section", "Rows": [
            _row("2026-01-05", "Coffee", "REF1", "Yes", "Bank feed", "-4.50", "995.50"),
            _row("2026-01-06", "Salary", "", "No", "Bank feed", "2000", "2995.50"),
        ]},
    ]}]}

    lines = parse_bank_statement_report(payload)

    assert len(lines) == 2
    assert lines[0].description == "Coffee"
    assert lines[0].reconciled is True
    assert lines[0].amount == -4.5
    assert lines[1].reconciled is False
    assert lines[1].balance == 2995.5


def test_parse_bank_statement_report_skips_malformed_parts():
    payload = {"Reports": [{"Rows": [
        {"RowType": "Section", "Rows": "not a list"},
        {"RowType": "Section", "Rows": [
            {"RowType": "Row", "Cells": [{"Value": "2026-01-05"}]},
            _row("2026-01-07", "Bad", "", "No", "Bank feed", "abc", "1"),
            _row("2026-01-08", "Good", "", "No", "Bank feed", "10", "20"),
        ]},
        "junk",
    ]}]}

    lines = parse_bank_statement_report(payload)

    assert [line.description for line in lines] == ["Good"]


@pytest.mark.parametrize("payload", [None, [], {}, {"Reports": []}, {"Reports": [{"Rows": None}]}])
def test_parse_bank_statement_report_degrades_to_empty(payload):
    assert parse_bank_statement_report(payload) == []
