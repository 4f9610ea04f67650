from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..errors import BackendDecodeError, BackendError, RateLimitedError, TransientBackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    Retry/backoff applied uniformly to every backend call.

    Transient failures (network, timeout, 5xx, 429) and decode failures are
    counted separately; each kind may use up to ``max_attempts`` attempts.
    Any other ``BackendError`` is raised immediately.
    """
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 30.0
    jitter: float = 0.25
    timeout: Optional[float] = None

    @classmethod
    def from_config(cls, cfg: Any) -> "RetryPolicy":
        return cls(
            max_attempts=cfg.retries,
            base_delay=cfg.backoff_base,
            max_delay=cfg.backoff_max,
            jitter=cfg.backoff_jitter,
            timeout=cfg.request_timeout,
        )

    def compute_backoff(self, attempt: int, error: Optional[BaseException] = None) -> float:
        """Capped exponential backoff for the given attempt (1-based), plus jitter."""
        delay = min(self.base_delay * (2 ** max(0, attempt - 1)), self.max_delay)
        if isinstance(error, RateLimitedError) and error.retry_after:
            delay = max(delay, min(error.retry_after, self.max_delay))
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return delay

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, label: str = "", **kwargs: Any) -> T:
        transient_failures = 0
        decode_failures = 0
        label = label or getattr(fn, "__name__", "call")
        while True:
            try:
                if self.timeout:
                    return await asyncio.wait_for(fn(*args, **kwargs), timeout=self.timeout)
                return await fn(*args, **kwargs)
            except asyncio.TimeoutError as exc:
                error: BackendError = TransientBackendError(f"{label} timed out after {self.timeout}s")
                error.__cause__ = exc
                transient_failures += 1
                failures = transient_failures
            except BackendDecodeError as exc:
                error = exc
                decode_failures += 1
                failures = decode_failures
            except TransientBackendError as exc:
                error = exc
                transient_failures += 1
                failures = transient_failures

            if failures >= self.max_attempts:
                logger.debug("%s giving up after %s attempts: %r", label, failures, error)
                raise error
            delay = self.compute_backoff(failures, error)
            logger.debug("%s attempt %s failed: %r; retrying in %.2fs", label, failures, error, delay)
            await asyncio.sleep(delay)
