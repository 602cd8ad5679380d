"""Async REST/Tooling API client.

The client is stateless apart from the pooled ``httpx.AsyncClient`` and is
safe to share across concurrently running fetchers. It performs no retries:
fallback behaviour belongs to the query cascade.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from migready.errors import AuthenticationError, TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """Connection details supplied by the external auth/session layer."""

    instance_url: str
    access_token: str = field(repr=False)
    api_version: str = "v60.0"


@dataclass(frozen=True)
class QueryPage:
    """One page of a SOQL query result."""

    records: list[dict[str, Any]]
    total_size: int = 0
    done: bool = True
    next_page_token: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> QueryPage:
        if not isinstance(payload, dict):
            return cls(records=[])
        records = payload.get("records") or []
        return cls(
            records=[r for r in records if isinstance(r, dict)],
            total_size=int(payload.get("totalSize") or 0),
            done=bool(payload.get("done", True)),
            next_page_token=payload.get("nextRecordsUrl") or None,
        )


class SalesforceClient:
    """Issues authenticated GET and SOQL calls against one org."""

    def __init__(
        self,
        credentials: Credentials,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.credentials = credentials
        self._http = httpx.AsyncClient(
            base_url=credentials.instance_url,
            headers={
                "Authorization": f"Bearer {credentials.access_token}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @property
    def api_version(self) -> str:
        return self.credentials.api_version

    @property
    def instance_url(self) -> str:
        return self.credentials.instance_url

    def data_path(self, suffix: str) -> str:
        """Versioned REST path, e.g. ``data_path("limits")``."""
        return f"/services/data/{self.api_version}/{suffix.lstrip('/')}"

    async def __aenter__(self) -> SalesforceClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def get(self, path: str, params: dict[str, str] | None = None) -> Any:
        """GET a path and return the decoded JSON body."""
        try:
            response = await self._http.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise TransportError(f"Request timed out: {exc}", path=path) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Request failed: {exc}", path=path) from exc

        if response.status_code == 401:
            logger.warning("Upstream rejected credentials path=%s", path)
            raise AuthenticationError(path=path)

        if response.is_error:
            message, error_code = _error_detail(response)
            logger.debug(
                "API error status=%s path=%s error=%s",
                response.status_code,
                path,
                message,
            )
            raise TransportError(
                message,
                status_code=response.status_code,
                path=path,
                error_code=error_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(
                "Response was not valid JSON",
                status_code=response.status_code,
                path=path,
            ) from exc

    async def query(self, soql: str, use_tooling_api: bool = False) -> QueryPage:
        """Run one SOQL query (first page only)."""
        suffix = "tooling/query" if use_tooling_api else "query"
        payload = await self.get(self.data_path(suffix), params={"q": soql})
        return QueryPage.from_payload(payload)

    async def query_more(
        self, next_page_token: str, use_tooling_api: bool = False
    ) -> QueryPage:
        """Fetch the page identified by a previous page's cursor."""
        if next_page_token.startswith("/"):
            path = next_page_token
        else:
            suffix = "tooling/query" if use_tooling_api else "query"
            path = self.data_path(f"{suffix}/{next_page_token}")
        return QueryPage.from_payload(await self.get(path))

    async def limits(self) -> dict[str, Any]:
        """Current org limit usage."""
        payload = await self.get(self.data_path("limits"))
        return payload if isinstance(payload, dict) else {}


def _error_detail(response: httpx.Response) -> tuple[str, str]:
    """Extract (message, errorCode) from an upstream error body."""
    fallback = f"HTTP {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return (response.text[:200] or fallback), ""

    if isinstance(body, list) and body and isinstance(body[0], dict):
        body = body[0]
    if isinstance(body, dict):
        message = body.get("message") or body.get("error_description") or fallback
        return str(message), str(body.get("errorCode") or body.get("error") or "")
    return fallback, ""
