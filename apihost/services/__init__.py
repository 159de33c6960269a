"""Services package."""

from apihost.services.api_key import ApiKeyService, IssuedKey
from apihost.services.executions import ExecutionLog, ExecutionStats
from apihost.services.marketplace import MarketplaceIndex
from apihost.services.sandbox_gateway import ExecutionGateway
from apihost.services.users import UserService

__all__ = [
    "ApiKeyService",
    "ExecutionGateway",
    "ExecutionLog",
    "ExecutionStats",
    "IssuedKey",
    "MarketplaceIndex",
    "UserService",
]
