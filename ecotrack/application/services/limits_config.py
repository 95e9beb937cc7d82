"""Cached access to the global rate-limit and quota configuration.

Both sections live in a single ``system_config`` record (``api_limits``), so
one read refreshes both caches. Values are held for ``ttl_s`` seconds; an
administrative update calls :meth:`LimitsConfigProvider.invalidate_cache`
so the next read goes to the database.

When the record is missing the hardcoded defaults apply. When the read
itself fails the last cached value is served, or the defaults if nothing was
cached yet. Serving defaults on failure keeps the service up but may admit
more traffic than an operator configured; every fallback is logged and
counted.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecotrack.core.clock import Clock, utcnow
from ecotrack.core.errors import ValidationError
from ecotrack.core.logging import get_logger
from ecotrack.domain.limits import (
    DEFAULT_QUOTAS,
    DEFAULT_RATE_LIMITS,
    Operation,
    QuotaConfig,
    RateLimitConfig,
    RateLimitWindow,
    merge_section,
)
from ecotrack.infrastructure.repositories.system_config import SqlAlchemySystemConfigRepository
from ecotrack.monitoring.metrics import LIMITS_CACHE_TOTAL

logger = get_logger(__name__)

API_LIMITS_CONFIG_ID = "api_limits"


@dataclass(slots=True)
class _CachedLimits:
    rate_limits: RateLimitConfig
    quotas: QuotaConfig
    loaded_at: float


def describe_validation_error(exc: PydanticValidationError) -> str:
    """Render the first pydantic error as ``Invalid <field> for <section>``."""

    first = exc.errors()[0]
    loc = [str(part) for part in first.get("loc", ())]
    ctx = first.get("ctx") or {}
    if "ge" in ctx:
        reason = f"must be >= {ctx['ge']}"
    else:
        reason = str(first.get("msg", "invalid value")).lower()
    if len(loc) >= 2:
        return f"Invalid {loc[-1]} for {loc[-2]}: {reason}"
    if loc:
        return f"Invalid {loc[-1]}: {reason}"
    return f"Invalid configuration: {reason}"


class LimitsConfigProvider:
    """TTL cache in front of the ``api_limits`` configuration record."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        ttl_s: float = 300,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._ttl_s = ttl_s
        self._clock = clock
        self._wall_clock = wall_clock
        self._cache: _CachedLimits | None = None

    async def get_rate_limit_config(self, force_refresh: bool = False) -> RateLimitConfig:
        return (await self._get(force_refresh)).rate_limits

    async def get_quota_config(self, force_refresh: bool = False) -> QuotaConfig:
        return (await self._get(force_refresh)).quotas

    async def get_rate_limit_for_operation(
        self,
        operation: Operation,
        window: RateLimitWindow = RateLimitWindow.MINUTE,
    ) -> int:
        config = await self.get_rate_limit_config()
        return config.for_operation(operation).for_window(window)

    def invalidate_cache(self) -> None:
        self._cache = None
        logger.info("Limits config cache invalidated")

    def cache_status(self) -> dict[str, Any]:
        if self._cache is None:
            return {"cached": False, "ageSeconds": None, "ttlSeconds": self._ttl_s}
        age = self._clock() - self._cache.loaded_at
        return {
            "cached": age < self._ttl_s,
            "ageSeconds": round(age, 3),
            "ttlSeconds": self._ttl_s,
        }

    async def update(
        self,
        *,
        rate_limits: Mapping[str, Any] | None = None,
        quotas: Mapping[str, Any] | None = None,
        updated_by: str | None = None,
    ) -> tuple[RateLimitConfig, QuotaConfig]:
        """Merge partial sections into the stored record and persist it.

        Raises:
            ValidationError: if nothing was supplied or a merged value is out
                of range (rates must be >= 1, quotas >= -1).
        """

        if not rate_limits and not quotas:
            raise ValidationError(
                "No updates provided. Include rateLimits or quotas in request body.",
            )

        current = await self._get(force_refresh=True)
        try:
            new_rate_limits = RateLimitConfig.model_validate(
                merge_section(current.rate_limits, rate_limits),
            )
            new_quotas = QuotaConfig.model_validate(merge_section(current.quotas, quotas))
        except PydanticValidationError as exc:
            raise ValidationError(describe_validation_error(exc)) from exc

        async with self._session_factory() as session:
            repo = SqlAlchemySystemConfigRepository(session)
            await repo.upsert(
                API_LIMITS_CONFIG_ID,
                rate_limits=new_rate_limits.model_dump(
                    mode="json",
                    by_alias=True,
                    exclude={"last_updated"},
                ),
                quotas=new_quotas.model_dump(mode="json", by_alias=True),
                updated_by=updated_by,
                when=self._wall_clock(),
            )

        logger.info(
            "Limits config updated",
            extra={"eco_extra": {"updated_by": updated_by}},
        )
        self.invalidate_cache()
        fresh = await self._get(force_refresh=False)
        return fresh.rate_limits, fresh.quotas

    async def _get(self, force_refresh: bool) -> _CachedLimits:
        now = self._clock()
        cached = self._cache
        if not force_refresh and cached is not None and now - cached.loaded_at < self._ttl_s:
            LIMITS_CACHE_TOTAL.labels(outcome="hit").inc()
            return cached

        try:
            loaded = await self._load(now)
        except (SQLAlchemyError, OSError, PydanticValidationError) as exc:
            LIMITS_CACHE_TOTAL.labels(outcome="fallback").inc()
            logger.warning(
                "Limits config read failed, serving %s",
                "last cached value" if cached is not None else "defaults",
                extra={"eco_extra": {"error": str(exc)}},
            )
            if cached is not None:
                return cached
            return _CachedLimits(
                rate_limits=DEFAULT_RATE_LIMITS,
                quotas=DEFAULT_QUOTAS,
                loaded_at=now,
            )

        LIMITS_CACHE_TOTAL.labels(outcome="miss").inc()
        self._cache = loaded
        return loaded

    async def _load(self, now: float) -> _CachedLimits:
        async with self._session_factory() as session:
            record = await SqlAlchemySystemConfigRepository(session).get(API_LIMITS_CONFIG_ID)

        if record is None:
            logger.debug("No api_limits record, using defaults")
            return _CachedLimits(
                rate_limits=DEFAULT_RATE_LIMITS,
                quotas=DEFAULT_QUOTAS,
                loaded_at=now,
            )

        rate_limits = merge_section(DEFAULT_RATE_LIMITS, record.rate_limits)
        rate_limits["lastUpdated"] = record.updated_at
        return _CachedLimits(
            rate_limits=RateLimitConfig.model_validate(rate_limits),
            quotas=QuotaConfig.model_validate(merge_section(DEFAULT_QUOTAS, record.quotas)),
            loaded_at=now,
        )
