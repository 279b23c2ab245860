"""
asset_uploader - batch uploads to object storage through presigned URLs.

Each file goes through grant -> transfer -> confirm on its own task; per-file
progress and failures are tracked in an UploadItemStore and a
CompletionWatcher signals once the whole batch is terminal.

Usage:
    from asset_uploader import UploadOrchestrator, UploadConfig

    async with UploadOrchestrator(UploadConfig(api_url=url), on_complete=done) as uploader:
        items = await uploader.upload([Path("cover.png"), Path("take1.wav")])
        for item in items:
            print(item.file_name, item.status.value, item.error_message)
        await uploader.wait_complete()
"""
from .exceptions import ConfirmError, GrantError, TransferError, UploadError
from .models import ConfirmMetadata, FileRef, ItemStatus, PresignGrant, UploadConfig, UploadItem
from .orchestrator import CompletionWatcher, UploadCoordinator, UploadItemStore, UploadOrchestrator
from .services import HTTPAPIClient, RetryingGateway, StorageGateway

__version__ = "0.1.0"
__all__ = [
    # Main
    "UploadOrchestrator",
    "UploadCoordinator",
    "UploadItemStore",
    "CompletionWatcher",
    # Models
    "ConfirmMetadata",
    "FileRef",
    "ItemStatus",
    "PresignGrant",
    "UploadConfig",
    "UploadItem",
    # Errors
    "UploadError",
    "GrantError",
    "TransferError",
    "ConfirmError",
    # Services
    "HTTPAPIClient",
    "RetryingGateway",
    "StorageGateway",
]
