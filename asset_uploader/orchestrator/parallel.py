"""Parallel upload utilities."""
import os
from typing import Optional


def get_parallel_limit(max_concurrency: Optional[int] = None) -> Optional[int]:
    """
    Get the number of items allowed in flight at once.

    An explicit limit wins, then ASSET_UPLOAD_MAX_PARALLEL. None means
    unbounded: every submitted item starts immediately.
    """
    limit = max_concurrency
    if not limit:
        env_value = os.getenv("ASSET_UPLOAD_MAX_PARALLEL")
        limit = int(env_value) if env_value else None

    if limit is not None and limit > 0:
        return limit
    return None
