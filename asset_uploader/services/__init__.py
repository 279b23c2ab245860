"""Services for asset_uploader module."""
from .api_client import HTTPAPIClient
from .retry import RetryingGateway
from .storage_gateway import StorageGateway

__all__ = [
    "HTTPAPIClient",
    "RetryingGateway",
    "StorageGateway",
]
