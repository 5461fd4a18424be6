"""Provider backend adapters."""

from .http_client import HttpProviderClient

__all__ = ["HttpProviderClient"]
