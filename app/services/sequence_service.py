"""
app/services/sequence_service.py

Purpose: Atomic sequence counters

- One document per sequence key in the `counters` collection
- Increment-and-read in a single server-side operation
- Optional seed: a floor derived from existing data, applied with $max so
  the counter never issues a value at or below one already in use
"""

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.db.mongo import get_counters_collection
from app.core.logging import get_logger

logger = get_logger(__name__)


async def next_sequence(key: str, seed: int = 0, session=None) -> int:
    """
    Returns the next value for a sequence key.

    Args:
        key: Counter key (e.g. "invoice:B202526")
        seed: Highest value already issued outside the counter
        session: Optional Motor session (transactional callers)

    Returns:
        The incremented value (1 for a fresh key without seed)
    """
    counters = get_counters_collection()

    # Two concurrent upserts on a missing key can race on _id; the loser retries
    for attempt in range(2):
        try:
            if seed > 0:
                await counters.update_one(
                    {"_id": key},
                    {"$max": {"value": seed}},
                    upsert=True,
                    session=session,
                )

            doc = await counters.find_one_and_update(
                {"_id": key},
                {"$inc": {"value": 1}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            value = int(doc["value"])
            logger.debug(f"Sequence {key} -> {value}")
            return value

        except DuplicateKeyError:
            if attempt:
                raise
            logger.warning(f"Concurrent counter creation for {key}, retrying")


async def current_sequence(key: str) -> int:
    """
    Returns the last issued value for a key without incrementing (0 if unused).
    """
    doc = await get_counters_collection().find_one({"_id": key})
    return int(doc["value"]) if doc else 0
