"""Orchestrator package - coordinates batch upload sessions."""
from .coordinator import UploadCoordinator
from .core import UploadOrchestrator
from .store import UploadItemStore
from .watcher import CompletionWatcher

__all__ = ["UploadOrchestrator", "UploadCoordinator", "UploadItemStore", "CompletionWatcher"]
