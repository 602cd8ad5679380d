"""Tests for the query cascade executor."""

from __future__ import annotations

import asyncio

import pytest

from migready.errors import AuthenticationError, TransportError
from migready.inventory.cascade import (
    CascadeHit,
    Strategy,
    Unavailable,
    count_only,
    fetch_all_pages,
    query_or_empty,
    run_cascade,
)
from migready.transport.client import QueryPage


def run_async(coro):
    """Helper to run async functions in sync tests."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


RICH = Strategy(name="rich", soql="SELECT Id, Name, Extra FROM Thing", tooling=True)
MINIMAL = Strategy(name="minimal", soql="SELECT Id FROM Thing", tooling=True)
REST = Strategy(name="rest", soql="SELECT Id FROM Thing")


class TestRunCascade:
    def test_first_non_empty_result_wins(self, make_client):
        client = make_client(
            queries={
                (RICH.soql, True): [{"Id": "1"}],
                (MINIMAL.soql, True): [{"Id": "2"}],
            }
        )
        hit = run_async(run_cascade(client, [RICH, MINIMAL]))
        assert hit == CascadeHit(strategy="rich", records=[{"Id": "1"}])
        assert not client.queried(MINIMAL.soql)

    def test_failure_falls_through_in_order(self, make_client):
        client = make_client(queries={(REST.soql, False): [{"Id": "9"}]})
        hit = run_async(run_cascade(client, [RICH, MINIMAL, REST]))
        assert isinstance(hit, CascadeHit)
        assert hit.strategy == "rest"
        assert [c[1] for c in client.calls] == [RICH.soql, MINIMAL.soql, REST.soql]

    def test_empty_result_falls_through(self, make_client):
        client = make_client(
            queries={(RICH.soql, True): [], (MINIMAL.soql, True): [{"Id": "2"}]}
        )
        hit = run_async(run_cascade(client, [RICH, MINIMAL]))
        assert hit.strategy == "minimal"

    def test_all_empty_returns_first_empty_success(self, make_client):
        client = make_client(queries={(RICH.soql, True): [], (MINIMAL.soql, True): []})
        hit = run_async(run_cascade(client, [RICH, MINIMAL]))
        assert isinstance(hit, CascadeHit)
        assert hit.strategy == "rich"
        assert hit.records == []

    def test_all_failing_is_unavailable_with_reason(self, make_client):
        hit = run_async(run_cascade(make_client(), [RICH, MINIMAL], label="things"))
        assert isinstance(hit, Unavailable)
        assert not hit.available
        assert "minimal" in hit.reason
        assert "not supported" in hit.note

    def test_authentication_error_is_never_absorbed(self, make_client):
        client = make_client(
            queries={
                (RICH.soql, True): AuthenticationError(),
                (MINIMAL.soql, True): [{"Id": "2"}],
            }
        )
        with pytest.raises(AuthenticationError):
            run_async(run_cascade(client, [RICH, MINIMAL]))
        assert not client.queried(MINIMAL.soql)

    def test_timed_out_attempt_falls_through(self, make_client):
        async def stall(_client):
            await asyncio.sleep(5)
            return [{"Id": "late"}]

        client = make_client(queries={(MINIMAL.soql, True): [{"Id": "2"}]})
        slow = Strategy(name="slow", loader=stall, timeout=0.01)
        hit = run_async(run_cascade(client, [slow, MINIMAL]))
        assert hit.strategy == "minimal"

    def test_timeout_reason_is_reported(self, make_client):
        async def stall(_client):
            await asyncio.sleep(5)
            return []

        hit = run_async(
            run_cascade(make_client(), [Strategy(name="slow", loader=stall, timeout=0.01)])
        )
        assert isinstance(hit, Unavailable)
        assert "slow timed out" in hit.reason

    def test_malformed_payload_falls_through(self, make_client):
        async def broken(_client):
            return [{}][0]["missing"]

        async def good(_client):
            return [{"Id": "1"}]

        hit = run_async(
            run_cascade(
                make_client(),
                [Strategy(name="broken", loader=broken), Strategy(name="good", loader=good)],
            )
        )
        assert hit == CascadeHit(strategy="good", records=[{"Id": "1"}])

    def test_malformed_payload_reason_is_reported(self, make_client):
        async def broken(_client):
            raise AttributeError("'NoneType' object has no attribute 'get'")

        hit = run_async(run_cascade(make_client(), [Strategy(name="broken", loader=broken)]))
        assert isinstance(hit, Unavailable)
        assert "broken: AttributeError" in hit.reason

    def test_accessibility_check_accepts_empty(self, make_client):
        client = make_client(queries={(RICH.soql, True): [], (MINIMAL.soql, True): [{"Id": "1"}]})
        hit = run_async(run_cascade(client, [RICH, MINIMAL], require_records=False))
        assert hit.strategy == "rich"
        assert not client.queried(MINIMAL.soql)


class TestPagination:
    def test_follows_cursor(self, make_client):
        client = make_client(
            queries={
                "SELECT Id FROM Lead": QueryPage(
                    records=[{"Id": "1"}], total_size=3, done=False, next_page_token="p2"
                )
            },
            pages={
                "p2": QueryPage(records=[{"Id": "2"}], total_size=3, done=False, next_page_token="p3"),
                "p3": QueryPage(records=[{"Id": "3"}], total_size=3, done=True),
            },
        )
        records = run_async(fetch_all_pages(client, "SELECT Id FROM Lead"))
        assert [r["Id"] for r in records] == ["1", "2", "3"]

    def test_page_cap_stops_without_failing(self, make_client):
        client = make_client(
            queries={
                "SELECT Id FROM Lead": QueryPage(
                    records=[{"Id": "1"}], done=False, next_page_token="loop"
                )
            },
            pages={"loop": QueryPage(records=[{"Id": "x"}], done=False, next_page_token="loop")},
        )
        records = run_async(fetch_all_pages(client, "SELECT Id FROM Lead", max_pages=3))
        assert len(records) == 3


class TestCountOnly:
    def test_both_counts(self, make_client):
        client = make_client(
            queries={
                ("SELECT COUNT() FROM ValidationRule", True): 40,
                ("SELECT COUNT() FROM ValidationRule WHERE Active = true", True): 22,
            }
        )
        counts = run_async(
            count_only(
                client,
                "SELECT COUNT() FROM ValidationRule",
                "SELECT COUNT() FROM ValidationRule WHERE Active = true",
                label="ValidationRule",
            )
        )
        assert (counts.total, counts.active, counts.available) == (40, 22, True)
        assert not counts.is_detailed
        assert counts.items == ()

    def test_unavailable_has_note(self, make_client):
        counts = run_async(
            count_only(make_client(), "SELECT COUNT() FROM X", "SELECT COUNT() FROM Y", label="X")
        )
        assert not counts.available
        assert counts.total is None
        assert counts.note.startswith("X not accessible")


def test_query_or_empty_degrades(make_client):
    assert run_async(query_or_empty(make_client(), "SELECT Id FROM Nope")) == []


def test_query_or_empty_propagates_auth(make_client):
    client = make_client(queries={"SELECT Id FROM Account": TransportError("boom")})
    assert run_async(query_or_empty(client, "SELECT Id FROM Account")) == []
    client = make_client(queries={"SELECT Id FROM Account": AuthenticationError()})
    with pytest.raises(AuthenticationError):
        run_async(query_or_empty(client, "SELECT Id FROM Account"))
