"""Purge expired guest verification records.

Standalone script for a cron job or scheduler. Safe to run at any
frequency; it only removes rows whose validity has already ended.

Usage:
    cd backend && python -m scripts.purge_guest_auth_records
"""

import asyncio
import logging

from guest_access.core.database import async_session_factory, engine
from guest_access.services.retention_cleanup import (
    CleanupResult,
    RetentionCleanupService,
)

logger = logging.getLogger(__name__)


async def purge() -> CleanupResult:
    """Run one cleanup pass against the configured database."""
    try:
        async with async_session_factory() as session:
            return await RetentionCleanupService(session).run()
    finally:
        await engine.dispose()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    result = asyncio.run(purge())
    logger.info(
        "Done: %d challenges, %d action tokens, %d revocations",
        result.otp_challenges,
        result.action_tokens,
        result.revoked_sessions,
    )


if __name__ == "__main__":
    main()
