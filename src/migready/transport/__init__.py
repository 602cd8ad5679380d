"""Authenticated HTTP access to the upstream org API."""

from migready.transport.client import Credentials, QueryPage, SalesforceClient

__all__ = ["Credentials", "QueryPage", "SalesforceClient"]
