"""Query cascade — ordered fallback strategies for unreliable metadata queries.

No single query surface exposes every metadata category reliably, so each
category declares an ordered list of :class:`Strategy` descriptors, ranked
richest-first:

  1. rich field set via the primary API
  2. minimal field set via the primary API
  3. rich field set via the secondary API
  4. minimal field set via the secondary API
  5. a structurally different (relationship-based) query

:func:`run_cascade` tries them strictly in order and stops at the first one
that yields records. Each attempt can carry its own timeout; a timed-out
attempt is cancelled and treated like any other failure. Authentication
errors are never absorbed here.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from migready.errors import AuthenticationError, TimeoutExceeded, TransportError
from migready.inventory.models import CountOnly
from migready.transport.client import SalesforceClient

logger = logging.getLogger(__name__)

# Raw query rows, or already-normalized items when a loader builds them
Records = list[Any]
Loader = Callable[[SalesforceClient], Awaitable[Records]]

# Runaway-loop guard for cursor pagination.
DEFAULT_MAX_PAGES = 100


@dataclass(frozen=True)
class CascadeOptions:
    """Tuning shared by every fetcher in one scan."""

    timeout: float = 10.0
    max_pages: int = DEFAULT_MAX_PAGES
    concurrency: int = 5


@dataclass(frozen=True)
class Strategy:
    """One (query shape, API surface) pair.

    Either ``soql`` is run on the REST or Tooling surface, or ``loader`` is
    awaited for strategies that need more than a single query.
    """

    name: str
    soql: str = ""
    tooling: bool = False
    timeout: float | None = None
    paginate: bool = False
    loader: Loader | None = field(default=None, compare=False)


@dataclass(frozen=True)
class CascadeHit:
    """The strategy that won and the records it returned."""

    strategy: str
    records: Records


@dataclass(frozen=True)
class Unavailable:
    """Every strategy failed; ``reason`` explains the last failures."""

    reason: str

    available = False

    @property
    def note(self) -> str:
        return self.reason


async def fetch_all_pages(
    client: SalesforceClient,
    soql: str,
    tooling: bool = False,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> Records:
    """Follow the cursor of a query, accumulating every page."""
    page = await client.query(soql, use_tooling_api=tooling)
    records = list(page.records)
    pages = 1
    while page.next_page_token and not page.done:
        if pages >= max_pages:
            logger.warning(
                "Pagination cap of %d pages hit; returning %d records for: %s",
                max_pages,
                len(records),
                soql,
            )
            break
        page = await client.query_more(page.next_page_token, use_tooling_api=tooling)
        records.extend(page.records)
        pages += 1
    return records


async def run_cascade(
    client: SalesforceClient,
    strategies: Sequence[Strategy],
    *,
    label: str = "",
    require_records: bool = True,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> CascadeHit | Unavailable:
    """Try strategies in order until one produces a usable result.

    With ``require_records`` an empty result falls through to the next
    strategy; without it the first strategy that does not error wins. When
    strategies only ever return empty results the first empty success is
    returned, so a genuinely empty category is not reported as unavailable.
    """
    label = label or "cascade"
    errors: list[str] = []
    first_empty: CascadeHit | None = None

    for strategy in strategies:
        try:
            records = await _attempt(client, strategy, max_pages)
        except AuthenticationError:
            raise
        except TimeoutExceeded as exc:
            logger.debug("%s: %s", label, exc)
            errors.append(str(exc))
            continue
        except TransportError as exc:
            logger.debug("%s: strategy '%s' failed: %s", label, strategy.name, exc)
            errors.append(f"{strategy.name}: {exc}")
            continue
        except Exception as exc:
            # Unexpected payload shapes fail this strategy only
            logger.warning(
                "%s: strategy '%s' raised %s: %s", label, strategy.name, type(exc).__name__, exc
            )
            errors.append(f"{strategy.name}: {type(exc).__name__}: {exc}")
            continue

        if records or not require_records:
            logger.info(
                "%s: strategy '%s' returned %d records",
                label,
                strategy.name,
                len(records),
            )
            return CascadeHit(strategy=strategy.name, records=records)

        logger.debug("%s: strategy '%s' returned no records", label, strategy.name)
        if first_empty is None:
            first_empty = CascadeHit(strategy=strategy.name, records=[])

    if first_empty is not None:
        return first_empty

    reason = "; ".join(errors[-2:]) or "no strategies configured"
    logger.warning("%s unavailable after %d strategies: %s", label, len(strategies), reason)
    return Unavailable(reason=reason)


async def _attempt(
    client: SalesforceClient, strategy: Strategy, max_pages: int
) -> Records:
    if strategy.loader is not None:
        work = strategy.loader(client)
    elif strategy.paginate:
        work = fetch_all_pages(client, strategy.soql, strategy.tooling, max_pages)
    else:
        work = _single_page(client, strategy.soql, strategy.tooling)

    if strategy.timeout is None:
        return await work
    try:
        return await asyncio.wait_for(work, timeout=strategy.timeout)
    except asyncio.TimeoutError as exc:
        raise TimeoutExceeded(strategy.name, strategy.timeout) from exc


async def _single_page(client: SalesforceClient, soql: str, tooling: bool) -> Records:
    page = await client.query(soql, use_tooling_api=tooling)
    return page.records


async def query_or_empty(
    client: SalesforceClient, soql: str, tooling: bool = False, label: str = ""
) -> Records:
    """Single query that degrades to an empty list on non-auth failure."""
    try:
        return await _single_page(client, soql, tooling)
    except AuthenticationError:
        raise
    except TransportError as exc:
        logger.debug("%s query failed, using empty result: %s", label or soql, exc)
        return []


async def safe_count(
    client: SalesforceClient, soql: str, tooling: bool = True
) -> tuple[int | None, str | None]:
    """Run a ``COUNT()`` query; returns (count, error)."""
    try:
        page = await client.query(soql, use_tooling_api=tooling)
    except AuthenticationError:
        raise
    except TransportError as exc:
        return None, str(exc)
    return page.total_size, None


async def count_only(
    client: SalesforceClient,
    total_soql: str,
    active_soql: str,
    *,
    label: str,
    tooling: bool = True,
) -> CountOnly:
    """Fetch ``{total, active}`` through two independent aggregate queries."""
    (total, total_err), (active, active_err) = await asyncio.gather(
        safe_count(client, total_soql, tooling),
        safe_count(client, active_soql, tooling),
    )
    available = total is not None or active is not None
    note = None
    if not available:
        note = f"{label} not accessible: {total_err or active_err}"
    return CountOnly(total=total, active=active, available=available, note=note)
