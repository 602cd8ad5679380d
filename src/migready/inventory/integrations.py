"""Integration fetcher — connected apps, named credentials, remote sites, auth providers."""

from __future__ import annotations

import asyncio
import logging

from migready.inventory.cascade import query_or_empty
from migready.inventory.models import (
    AuthProvider,
    ConnectedApp,
    IntegrationIndex,
    NamedCredential,
    RemoteSiteSetting,
)
from migready.transport.client import SalesforceClient

logger = logging.getLogger(__name__)


async def fetch_integrations(client: SalesforceClient) -> IntegrationIndex:
    apps, credentials, sites, providers = await asyncio.gather(
        query_or_empty(
            client,
            "SELECT Id, DeveloperName, CreatedDate FROM ConnectedApplication",
            tooling=True,
            label="ConnectedApplication",
        ),
        query_or_empty(
            client,
            "SELECT Id, FullName, Endpoint FROM NamedCredential",
            tooling=True,
            label="NamedCredential",
        ),
        query_or_empty(
            client,
            "SELECT Id, FullName, Url FROM RemoteSiteSetting",
            tooling=True,
            label="RemoteSiteSetting",
        ),
        query_or_empty(
            client,
            "SELECT Id, FullName, ProviderType FROM AuthProvider",
            tooling=True,
            label="AuthProvider",
        ),
    )
    index = IntegrationIndex(
        connected_apps=tuple(
            ConnectedApp(
                id=row.get("Id", ""),
                name=row.get("DeveloperName") or "",
                created_date=row.get("CreatedDate"),
            )
            for row in apps
        ),
        named_credentials=tuple(
            NamedCredential(
                id=row.get("Id", ""),
                full_name=row.get("FullName") or "",
                endpoint=row.get("Endpoint"),
            )
            for row in credentials
        ),
        remote_site_settings=tuple(
            RemoteSiteSetting(
                id=row.get("Id", ""), full_name=row.get("FullName") or "", url=row.get("Url")
            )
            for row in sites
        ),
        auth_providers=tuple(
            AuthProvider(
                id=row.get("Id", ""),
                full_name=row.get("FullName") or "",
                provider_type=row.get("ProviderType"),
            )
            for row in providers
        ),
    )
    logger.info(
        "Integration index fetched connected_apps=%d named_credentials=%d "
        "remote_sites=%d auth_providers=%d",
        len(index.connected_apps),
        len(index.named_credentials),
        len(index.remote_site_settings),
        len(index.auth_providers),
    )
    return index
