"""Rate-limited, retrying execution of remote calls.

Every remote call in notionpatch goes through a ResilientCaller:

    caller = ResilientCaller()
    page = await caller.with_retry(lambda: client.pages.retrieve(page_id=pid), "pages.retrieve")

``with_retry`` retries every transient failure; ``with_rate_limit`` only
retries when the API reports throttling. Both pace each attempt through the
shared limiter. A call made of several remote steps must wrap each step on
its own: retrying is only safe for a single request.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from notionpatch.errors import RetriesExhaustedError
from notionpatch.resilience.classify import Classification, classify_error
from notionpatch.resilience.limiter import SlidingWindowLimiter
from notionpatch.resilience.policy import CallState, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

Call = Callable[[], Awaitable[T]]
Classifier = Callable[[BaseException], Classification]
Sleep = Callable[[float], Awaitable[None]]
RetryCallback = Callable[[CallState, BaseException, float], None]


class ResilientCaller:
    """Run zero-argument coroutine factories under rate limiting and retry."""

    def __init__(
        self,
        limiter: Optional[SlidingWindowLimiter] = None,
        policy: Optional[RetryPolicy] = None,
        classifier: Classifier = classify_error,
        sleep: Sleep = asyncio.sleep,
        on_retry: Optional[RetryCallback] = None,
    ) -> None:
        self.limiter = limiter or SlidingWindowLimiter()
        self.policy = policy or RetryPolicy()
        self.classifier = classifier
        self.sleep = sleep
        self.on_retry = on_retry

    @classmethod
    def from_config(cls, config: Any, **kwargs: Any) -> "ResilientCaller":
        """Build from a loaded NotionPatchConfig."""
        limiter = SlidingWindowLimiter(
            max_calls=config.rate_limit.max_calls,
            window_seconds=config.rate_limit.window_seconds,
        )
        policy = RetryPolicy(
            max_attempts=config.retry.max_attempts,
            base_delay=config.retry.base_delay,
            max_delay=config.retry.max_delay,
            multiplier=config.retry.multiplier,
            jitter=config.retry.jitter,
        )
        return cls(limiter=limiter, policy=policy, **kwargs)

    async def with_rate_limit(self, call: Call[T], label: str) -> T:
        """Run *call*, retrying only when the API throttles it."""
        return await self._run(call, label, rate_limit_only=True)

    async def with_retry(self, call: Call[T], label: str) -> T:
        """Run *call*, retrying every transient failure."""
        return await self._run(call, label, rate_limit_only=False)

    async def _run(self, call: Call[T], label: str, *, rate_limit_only: bool) -> T:
        state = CallState(label=label)

        while True:
            await self.limiter.acquire(label)
            state.attempts += 1
            try:
                return await call()
            except Exception as exc:
                state.record_failure(exc)
                verdict = self.classifier(exc)

                eligible = verdict.rate_limited if rate_limit_only else verdict.retryable
                if not eligible:
                    raise

                if not self.policy.allows_another(state.attempts):
                    logger.warning(
                        "%s failed after %d attempt(s) (%s); giving up.",
                        label, state.attempts, verdict.reason,
                    )
                    raise RetriesExhaustedError(
                        label, state.attempts, exc, state=state
                    ) from exc

                delay = self.policy.next_delay(
                    state.attempts - 1, retry_after=verdict.retry_after
                )
                state.delays.append(delay)
                logger.warning(
                    "%s attempt %d/%d failed (%s); retrying in %.2fs.",
                    label, state.attempts, self.policy.max_attempts,
                    verdict.reason, delay,
                )
                if self.on_retry is not None:
                    self.on_retry(state, exc, delay)
                await self.sleep(delay)


# --- Process-wide default ---

_default_caller: Optional[ResilientCaller] = None


def get_default_caller() -> ResilientCaller:
    global _default_caller
    if _default_caller is None:
        _default_caller = ResilientCaller()
    return _default_caller


def configure_default_caller(caller: ResilientCaller) -> ResilientCaller:
    """Replace the shared caller (CLI start-up, tests)."""
    global _default_caller
    _default_caller = caller
    return caller


def reset_default_caller() -> None:
    global _default_caller
    _default_caller = None


async def with_rate_limit(call: Call[T], label: str) -> T:
    return await get_default_caller().with_rate_limit(call, label)


async def with_retry(call: Call[T], label: str) -> T:
    return await get_default_caller().with_retry(call, label)
