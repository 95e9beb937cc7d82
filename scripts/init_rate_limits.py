"""Create the ``api_limits`` system config record with default values.

Existing records are left alone unless ``--force`` is given.
"""
from __future__ import annotations

import argparse
import asyncio
import logging

from ecotrack.application.services.limits_config import API_LIMITS_CONFIG_ID
from ecotrack.core.clock import utcnow
from ecotrack.core.logging import configure_logging
from ecotrack.core.settings import get_settings
from ecotrack.domain.limits import DEFAULT_QUOTAS, DEFAULT_RATE_LIMITS
from ecotrack.infrastructure.db import create_engine, create_schema, create_session_factory
from ecotrack.infrastructure.repositories.system_config import SqlAlchemySystemConfigRepository

logger = logging.getLogger("init_rate_limits")


async def init_rate_limits(force: bool) -> None:
    settings = get_settings()
    engine = create_engine(settings.database_url)
    try:
        await create_schema(engine)
        session_factory = create_session_factory(engine)
        async with session_factory() as session:
            repo = SqlAlchemySystemConfigRepository(session)
            if await repo.get(API_LIMITS_CONFIG_ID) is not None and not force:
                logger.info("Rate limit config already exists; pass --force to overwrite")
                return
            await repo.upsert(
                API_LIMITS_CONFIG_ID,
                rate_limits=DEFAULT_RATE_LIMITS.model_dump(
                    mode="json",
                    by_alias=True,
                    exclude={"last_updated"},
                ),
                quotas=DEFAULT_QUOTAS.model_dump(mode="json", by_alias=True),
                updated_by="system",
                when=utcnow(),
            )
        logger.info("Rate limit config initialised with defaults")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--force", action="store_true", help="overwrite an existing record")
    args = parser.parse_args()

    configure_logging(json=False)
    asyncio.run(init_rate_limits(args.force))
