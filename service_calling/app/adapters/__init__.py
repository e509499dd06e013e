"""
Adapters package for the Calling Service.

Contains the HTTP client wrapper for the downstream customer service. It
encapsulates the base URL, the bearer header, and the mapping of transport
and status failures to shared errors. No retries are performed.
"""

from .customer_client import CustomerClient, CustomerResponse

__all__ = [
    "CustomerClient",
    "CustomerResponse",
]
