"""
Commit helper for multi-row writes guarded by version counters.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from dispatch_backend.app.core.exceptions import ConcurrencyConflictError

logger = logging.getLogger("dispatch.transactions")


async def commit_or_conflict(db: AsyncSession) -> None:
    """
    Commit the session as one unit.

    Raises:
        ConcurrencyConflictError: If a version counter shows that another
            request changed one of the rows first; nothing is written
    """
    try:
        await db.commit()
    except StaleDataError as e:
        await db.rollback()
        logger.warning("Concurrent modification detected: %s", e)
        raise ConcurrencyConflictError()
