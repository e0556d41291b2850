"""Health check module with dependency verification."""

from __future__ import annotations

import asyncio
import time
from typing import Any

from .errors import VenueSearchError
from .settings import settings
from .storage import VenueStore


def _is_configured(value: str | None) -> bool:
    """Return True when a config string is non-empty after trimming."""
    if value is None:
        return False
    return bool(value.strip())


class HealthChecker:
    """Health checker for the venue store and the error-reporting setup."""

    def __init__(self, timeout: float = 5.0) -> None:
        self._timeout = timeout

    async def check_all(self, store: VenueStore) -> dict[str, Any]:
        """
        Check health of all dependencies.

        Returns:
            Dict with overall status and individual component checks
        """
        checks = {
            "database": await self._check_database(store),
            "sentry": self._check_sentry(),
        }
        all_ok = all(check.get("status") in {"ok", "disabled"} for check in checks.values())
        return {
            "status": "healthy" if all_ok else "degraded",
            "timestamp": time.time(),
            "checks": checks,
        }

    async def _check_database(self, store: VenueStore) -> dict[str, Any]:
        """Check the venue store answers a trivial query in time."""
        started = time.perf_counter()
        try:
            await asyncio.wait_for(store.ping(), timeout=self._timeout)
        except asyncio.TimeoutError:
            return {"status": "error", "error": "query_timeout"}
        except VenueSearchError as exc:
            return {"status": "error", "error": exc.category}
        return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}

    def _check_sentry(self) -> dict[str, Any]:
        """Check if Sentry is configured (doesn't actually test connectivity)."""
        if not _is_configured(settings.SENTRY_DSN):
            return {"status": "disabled"}
        dsn = settings.SENTRY_DSN or ""
        if "@" in dsn and "//" in dsn:
            return {"status": "ok", "environment": settings.SENTRY_ENVIRONMENT}
        return {"status": "error", "error": "Invalid SENTRY_DSN format"}


# Global health checker instance
health_checker = HealthChecker()


__all__ = ["health_checker", "HealthChecker"]
