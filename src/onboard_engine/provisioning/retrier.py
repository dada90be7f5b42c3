"""Forced provisioning of the per-user drive.

The provider creates a new principal's drive lazily, minutes after the account
exists. Reading the drive endpoint nudges that creation along; this module polls
it with a throttled, capped backoff until the drive answers, the attempt or
wall-clock budget runs out, or the caller cancels.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

import httpx

from onboard_engine.identity.http import bearer, parse_error_envelope
from onboard_engine.models.provisioning import (
    Failed,
    NotYetAvailable,
    ProvisioningOutcome,
    Ready,
    TimedOut,
)

logger = logging.getLogger(__name__)

BACKOFF_STEP_SECONDS = 10
BACKOFF_CAP_SECONDS = 30

_NOT_PROVISIONED_SIGNATURES = ("not be set up yet", "Try again in a few minutes")


def backoff_delay(attempt: int) -> int:
    """Seconds to wait after ``attempt`` before the next one."""
    return min(attempt * BACKOFF_STEP_SECONDS, BACKOFF_CAP_SECONDS)


def is_not_provisioned(response: httpx.Response) -> bool:
    if response.status_code != 404:
        return False
    error = parse_error_envelope(response)
    if error is None:
        return False
    return any(signature in error.message for signature in _NOT_PROVISIONED_SIGNATURES)


class ForcedProvisioningRetrier:
    def __init__(
        self,
        graph_base_url: str,
        client: httpx.AsyncClient,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._base = graph_base_url.rstrip("/")
        self._client = client
        self._sleep = sleep
        self._clock = clock

    async def force_ready(
        self,
        principal_id: str,
        access_token: str,
        *,
        max_wait_seconds: float,
        max_attempts: int,
        cancel: asyncio.Event | None = None,
    ) -> ProvisioningOutcome:
        """Poll the principal's drive until it is ready or the budget is spent.

        Never raises for provider or transport faults; they become ``Failed`` or
        ``TimedOut`` with elapsed time attached. Only reads are issued, so calling
        this repeatedly for the same principal is safe.
        """
        start = self._clock()
        url = f"{self._base}/users/{principal_id}/drive"
        attempt = 0
        logger.info("Starting forced provisioning for principal %s", principal_id)

        for attempt in range(1, max_attempts + 1):
            if cancel is not None and cancel.is_set():
                return self._cancelled(start, attempt - 1)

            final = attempt == max_attempts
            try:
                response = await self._client.get(url, headers=bearer(access_token))
                if response.is_success:
                    payload = response.json()
                    elapsed = self._elapsed(start)
                    logger.info(
                        "Drive ready for %s in %.1fs (attempt %d)", principal_id, elapsed, attempt
                    )
                    return Ready(
                        resource_url=str(payload.get("webUrl", "")),
                        elapsed_seconds=elapsed,
                        attempts=attempt,
                    )
            except (httpx.HTTPError, ValueError, AttributeError) as exc:
                logger.warning("Provisioning attempt %d for %s failed: %s", attempt, principal_id, exc)
                if final:
                    return Failed(
                        elapsed_seconds=self._elapsed(start), attempts=attempt, cause=str(exc)
                    )
            else:
                if is_not_provisioned(response):
                    logger.info("Drive not set up yet for %s (attempt %d)", principal_id, attempt)
                    if attempt == 1:
                        return NotYetAvailable(
                            elapsed_seconds=self._elapsed(start),
                            attempts=attempt,
                            new_principal_likely=True,
                        )
                else:
                    cause = _describe(response)
                    logger.warning(
                        "Provisioning attempt %d for %s failed: %s", attempt, principal_id, cause
                    )
                    if final:
                        return Failed(
                            elapsed_seconds=self._elapsed(start), attempts=attempt, cause=cause
                        )

            if final:
                break
            if self._elapsed(start) > max_wait_seconds:
                break
            delay = backoff_delay(attempt)
            logger.info("Drive not ready, waiting %ss before attempt %d", delay, attempt + 1)
            if await self._pause(delay, cancel):
                return self._cancelled(start, attempt)

        elapsed = self._elapsed(start)
        logger.info("Forced provisioning for %s timed out after %.1fs", principal_id, elapsed)
        return TimedOut(elapsed_seconds=elapsed, attempts=attempt)

    async def _pause(self, delay: float, cancel: asyncio.Event | None) -> bool:
        """Sleep for ``delay`` seconds. Returns True if the wait was cancelled."""
        if cancel is None:
            await self._sleep(delay)
            return False
        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            waiter.cancel()
        return cancel.is_set()

    def _cancelled(self, start: float, attempts: int) -> TimedOut:
        logger.info("Forced provisioning cancelled after %d attempt(s)", attempts)
        return TimedOut(elapsed_seconds=self._elapsed(start), attempts=attempts, cancelled=True)

    def _elapsed(self, start: float) -> float:
        return self._clock() - start


def _describe(response: httpx.Response) -> str:
    error = parse_error_envelope(response)
    if error is not None:
        return str(error)
    return f"HTTP {response.status_code}"
