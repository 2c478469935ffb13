"""API routes for the proxy."""

from .messages import messages_endpoint
from .providers import list_providers

__all__ = [
    "list_providers",
    "messages_endpoint",
]
