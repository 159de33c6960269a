"""HTTP client service package.

Provides the shared HTTP client used to talk to the execution backend.
"""

from apihost.services.http.client import (
    HTTPClientManager,
    get_http_client,
    http_client_manager,
    lifespan_http_client,
)

__all__ = [
    "HTTPClientManager",
    "get_http_client",
    "http_client_manager",
    "lifespan_http_client",
]
