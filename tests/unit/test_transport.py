"""Tests for the async REST/Tooling client."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from migready.errors import AuthenticationError, TransportError
from migready.transport.client import Credentials, QueryPage, SalesforceClient


def run_async(coro):
    """Helper to run async functions in sync tests."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


CREDS = Credentials(instance_url="https://acme.my.salesforce.com", access_token="tok")


def _client(handler) -> SalesforceClient:
    return SalesforceClient(CREDS, transport=httpx.MockTransport(handler))


class TestQuery:
    def test_rest_query_sends_soql_and_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["q"] = request.url.params["q"]
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(
                200, json={"totalSize": 1, "done": True, "records": [{"Id": "001"}]}
            )

        page = run_async(_client(handler).query("SELECT Id FROM Account"))
        assert seen["path"] == "/services/data/v60.0/query"
        assert seen["q"] == "SELECT Id FROM Account"
        assert seen["auth"] == "Bearer tok"
        assert page.records == [{"Id": "001"}]
        assert page.total_size == 1
        assert page.next_page_token is None

    def test_tooling_query_uses_tooling_endpoint(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/services/data/v60.0/tooling/query"
            return httpx.Response(200, json={"totalSize": 7, "done": True, "records": []})

        page = run_async(_client(handler).query("SELECT COUNT() FROM ApexClass", True))
        assert page.total_size == 7

    def test_next_page_cursor(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/query"):
                return httpx.Response(
                    200,
                    json={
                        "totalSize": 2,
                        "done": False,
                        "nextRecordsUrl": "/services/data/v60.0/query/01g-2000",
                        "records": [{"Id": "1"}],
                    },
                )
            assert request.url.path == "/services/data/v60.0/query/01g-2000"
            return httpx.Response(200, json={"totalSize": 2, "done": True, "records": [{"Id": "2"}]})

        client = _client(handler)
        first = run_async(client.query("SELECT Id FROM Lead"))
        assert first.next_page_token == "/services/data/v60.0/query/01g-2000"
        second = run_async(client.query_more(first.next_page_token))
        assert second.records == [{"Id": "2"}]
        assert second.done


class TestErrors:
    def test_401_is_authentication_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json=[{"message": "Session expired", "errorCode": "INVALID_SESSION_ID"}])

        with pytest.raises(AuthenticationError) as exc_info:
            run_async(_client(handler).query("SELECT Id FROM Account"))
        assert exc_info.value.status_code == 401

    def test_other_errors_carry_status_and_message(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400,
                json=[{"message": "sObject type 'Foo' is not supported.", "errorCode": "INVALID_TYPE"}],
            )

        with pytest.raises(TransportError) as exc_info:
            run_async(_client(handler).query("SELECT Id FROM Foo"))
        err = exc_info.value
        assert not isinstance(err, AuthenticationError)
        assert err.status_code == 400
        assert err.error_code == "INVALID_TYPE"
        assert "not supported" in str(err)
        assert "HTTP 400" in str(err)

    def test_network_failure_is_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError):
            run_async(_client(handler).get("/services/data/v60.0/limits"))

    def test_invalid_json_is_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(TransportError, match="not valid JSON"):
            run_async(_client(handler).get("/services/data/v60.0/limits"))


def test_limits_returns_mapping():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/services/data/v60.0/limits"
        return httpx.Response(200, json={"DailyApiRequests": {"Max": 100, "Remaining": 90}})

    assert run_async(_client(handler).limits())["DailyApiRequests"]["Max"] == 100


def test_query_page_from_non_mapping():
    assert QueryPage.from_payload(None).records == []


def test_credentials_repr_hides_token():
    assert "tok" not in repr(CREDS)
