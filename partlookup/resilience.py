"""
Bounded retry with exponential backoff for outbound HTTP calls.

Every collaborator call (search, corrections, live vendor search, LLM) goes
through ``call_with_retry``. Only rate-limited responses are retried; any
other failure is surfaced to the caller straight away.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx
from loguru import logger

from . import config
from .errors import RetryExhausted, UpstreamError


def is_rate_limited(response: httpx.Response) -> bool:
    return response.status_code == 429


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    raw = response.headers.get("retry-after")
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        # HTTP-date form is not worth parsing; fall back to our own schedule
        return None


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = config.RETRY_MAX_ATTEMPTS
    base_delay: float = config.RETRY_BASE_DELAY
    multiplier: float = config.RETRY_MULTIPLIER
    max_delay: float = config.RETRY_MAX_DELAY
    retryable: Callable[[httpx.Response], bool] = field(default=is_rate_limited)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay_for(self, attempt: int) -> float:
        """Backoff before attempt ``attempt + 1`` (``attempt`` is 1-based)."""
        return min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)


DEFAULT_RETRY_POLICY = RetryPolicy()


def _body_excerpt(response: httpx.Response, limit: int = 300) -> str:
    return response.text[:limit].replace("\n", " ")


def call_with_retry(
    send: Callable[[], httpx.Response],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    service: str = "upstream",
    sleep: Callable[[float], None] = time.sleep,
) -> httpx.Response:
    """
    Run ``send`` until it returns a success or a non-retryable response.

    Raises:
        UpstreamError: transport failure or non-success, non-retryable status
        RetryExhausted: still rate-limited after ``policy.max_attempts`` calls
    """
    last: Optional[httpx.Response] = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            response = send()
        except httpx.HTTPError as e:
            logger.warning("{} request failed: {}", service, e)
            raise UpstreamError(f"{service} request failed: {e}", service=service) from e

        if response.is_success:
            return response

        if not policy.retryable(response):
            logger.warning(
                "{} returned HTTP {}: {}", service, response.status_code, _body_excerpt(response)
            )
            raise UpstreamError(
                f"{service} returned HTTP {response.status_code}",
                service=service,
                status_code=response.status_code,
            )

        last = response
        if attempt < policy.max_attempts:
            delay = policy.delay_for(attempt)
            hinted = _retry_after_seconds(response)
            if hinted is not None and hinted > delay:
                delay = min(hinted, policy.max_delay)
            logger.info(
                "{} rate-limited (attempt {}/{}); retrying in {:.1f}s",
                service, attempt, policy.max_attempts, delay,
            )
            sleep(delay)

    logger.warning("{} still rate-limited after {} attempts", service, policy.max_attempts)
    raise RetryExhausted(
        f"{service} rate limit: gave up after {policy.max_attempts} attempts"
        + (f" (last status {last.status_code})" if last is not None else ""),
        service=service,
        attempts=policy.max_attempts,
    )
