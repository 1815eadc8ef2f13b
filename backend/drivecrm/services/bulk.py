"""Per-item processing for bulk lead operations.

Each item runs independently under a concurrency bound. Item-level errors are
collected as failures; store outages propagate.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Tuple

from pymongo.errors import ConnectionFailure, PyMongoError

from drivecrm.errors import CRMError
from drivecrm.models.lead import BulkFailure

logger = logging.getLogger(__name__)


def is_systemic(error: Exception) -> bool:
    """Store unreachable or timed out."""
    if isinstance(error, ConnectionFailure):
        return True
    return isinstance(error, PyMongoError) and getattr(error, "timeout", False)


async def run_per_item(
    items: Iterable[Any],
    handler: Callable[[Any], Awaitable[Any]],
    concurrency: int = 10,
) -> Tuple[List[Any], List[BulkFailure]]:
    """Run ``handler`` for each distinct item.

    Returns the non-None handler results and the per-item failures. A handler
    returning None means the item was skipped (nothing to do).
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _one(item):
        async with semaphore:
            try:
                return await handler(item), None
            except CRMError as e:
                return None, BulkFailure(lead_id=str(item), error=e.kind, message=e.message)
            except Exception as e:
                if is_systemic(e):
                    raise
                logger.error(f"Bulk item {item} failed: {e}", exc_info=True)
                return None, BulkFailure(lead_id=str(item), error="INTERNAL_ERROR", message=str(e))

    unique_items = list(dict.fromkeys(str(i) for i in items))
    outcomes = await asyncio.gather(*(_one(i) for i in unique_items))

    results = [r for r, _ in outcomes if r is not None]
    failures = [f for _, f in outcomes if f is not None]
    return results, failures
