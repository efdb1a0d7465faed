"""Per-key rate limiting for OTP requests and verifications.

Built on the ``limits`` library (the engine underneath slowapi).  Limits are
expressed as rate strings such as ``"5/15 minutes"`` and enforced with a
moving window.  The storage URI decides where counters live: ``memory://``
for a single process, ``redis://...`` to share counters across instances.

This limiter bounds request *rate* per email or IP; the per-record attempt
cap in the OTP store is a separate control.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import StrEnum

from limits import RateLimitItem, parse
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter

from otp_auth.exceptions import RateLimitedError

logger = logging.getLogger(__name__)


class RateLimitAction(StrEnum):
    REQUEST_OTP = "request-otp"
    VERIFY_OTP = "verify-otp"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: float = 0.0


class RateLimiter:
    """Moving-window limiter keyed by ``(key, action)``."""

    def __init__(
        self,
        limits: dict[RateLimitAction, str],
        storage_uri: str = "memory://",
    ) -> None:
        self._items: dict[RateLimitAction, RateLimitItem] = {
            RateLimitAction(action): parse(rate) for action, rate in limits.items()
        }
        self._storage = storage_from_string(storage_uri)
        self._strategy = MovingWindowRateLimiter(self._storage)

    def allow(self, key: str, action: RateLimitAction) -> RateLimitDecision:
        """Record one hit for *key* and report whether it fits the window."""
        return self.allow_all([key], action)

    def allow_all(self, keys: list[str], action: RateLimitAction) -> RateLimitDecision:
        """Record one hit on every key, or on none if any key is exhausted.

        A request denied by one key leaves the others' budgets untouched.
        """
        action = RateLimitAction(action)
        item = self._items.get(action)
        if item is None:
            return RateLimitDecision(allowed=True)

        for key in keys:
            if not self._strategy.test(item, action.value, key):
                stats = self._strategy.get_window_stats(item, action.value, key)
                retry_after = max(0.0, stats.reset_time - time.time())
                logger.warning(
                    "Rate limit hit for %s on %s (retry in %.0fs)", key, action, retry_after
                )
                return RateLimitDecision(allowed=False, retry_after=retry_after)

        for key in keys:
            self._strategy.hit(item, action.value, key)
        return RateLimitDecision(allowed=True)

    def check(self, key: str, action: RateLimitAction) -> None:
        """Like :pymethod:`allow` but raises ``RateLimitedError`` when denied."""
        self.check_all([key], action)

    def check_all(self, keys: list[str], action: RateLimitAction) -> None:
        """Like :pymethod:`allow_all` but raises ``RateLimitedError`` when denied."""
        decision = self.allow_all(keys, action)
        if not decision.allowed:
            raise RateLimitedError(decision.retry_after)

    def reset(self) -> None:
        """Forget all counters."""
        self._storage.reset()
