"""Migration readiness scanner for CRM org configuration."""

__version__ = "0.1.0"
