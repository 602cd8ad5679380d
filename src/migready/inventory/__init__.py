"""Category fetchers that build an :class:`InventorySnapshot` from an org."""

from migready.inventory.automation import fetch_automation
from migready.inventory.cascade import CascadeOptions, run_cascade
from migready.inventory.code import fetch_code
from migready.inventory.integrations import fetch_integrations
from migready.inventory.models import InventorySnapshot
from migready.inventory.org import fetch_org_profile
from migready.inventory.ownership import fetch_ownership
from migready.inventory.packages import fetch_packages
from migready.inventory.reporting import fetch_reporting
from migready.inventory.schema import fetch_objects
from migready.inventory.security import fetch_security

__all__ = [
    "CascadeOptions",
    "InventorySnapshot",
    "fetch_automation",
    "fetch_code",
    "fetch_integrations",
    "fetch_objects",
    "fetch_org_profile",
    "fetch_ownership",
    "fetch_packages",
    "fetch_reporting",
    "fetch_security",
    "run_cascade",
]
