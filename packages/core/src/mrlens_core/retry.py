"""Retry policy shared by every remote call (GitLab API and model providers).

The policy depends on what the remote side answered:

  429         wait the server's Retry-After hint (or base_delay) and retry;
              RateLimited once the attempts run out.
  5xx         wait base_delay * attempt and retry;
              TransientRemoteFailure once the attempts run out.
  other 4xx   ClientError straight away, never retried.
  anything    wait base_delay * 2 ** (attempt - 1) and retry; the last
  else        exception is re-raised as-is once the attempts run out.

Transports report HTTP outcomes by raising RemoteCallError; exceptions of
any other type fall into the last row.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from mrlens_core.errors import ClientError, RateLimited, RemoteCallError, TransientRemoteFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TOO_MANY_REQUESTS = 429


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    *,
    label: str = "remote call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await operation() until it succeeds or the retry policy gives up."""
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    for attempt in range(1, max_attempts + 1):
        last_attempt = attempt == max_attempts
        try:
            return await operation()
        except ClientError:
            raise
        except RemoteCallError as e:
            if e.status == _TOO_MANY_REQUESTS:
                if last_attempt:
                    raise RateLimited(
                        f"{label}: rate limited on all {max_attempts} attempts", max_attempts
                    ) from e
                delay = e.retry_after if e.retry_after is not None else base_delay
                logger.warning(
                    "%s: rate limited (attempt %d/%d). Retrying in %.1fs...",
                    label,
                    attempt,
                    max_attempts,
                    delay,
                )
            elif e.status >= 500:
                if last_attempt:
                    raise TransientRemoteFailure(
                        f"{label}: server error {e.status} on all {max_attempts} attempts",
                        max_attempts,
                        status=e.status,
                        payload=e.payload,
                    ) from e
                delay = base_delay * attempt
                logger.warning(
                    "%s: server error %d (attempt %d/%d). Retrying in %.1fs...",
                    label,
                    e.status,
                    attempt,
                    max_attempts,
                    delay,
                )
            elif e.status >= 400:
                raise ClientError(e.status, e.payload, source=e.source) from e
            else:
                if last_attempt:
                    raise
                delay = base_delay * 2 ** (attempt - 1)
                logger.warning(
                    "%s: unexpected status %d (attempt %d/%d). Retrying in %.1fs...",
                    label,
                    e.status,
                    attempt,
                    max_attempts,
                    delay,
                )
        except Exception as e:
            if last_attempt:
                logger.error("%s failed after %d attempts: %s", label, max_attempts, e)
                raise
            delay = base_delay * 2 ** (attempt - 1)
            logger.warning(
                "%s error (attempt %d/%d): %s. Retrying in %.1fs...",
                label,
                attempt,
                max_attempts,
                e,
                delay,
            )
        await sleep(delay)

    # The loop always returns or raises; this keeps type checkers satisfied.
    raise AssertionError("unreachable")
