"""Bounded polling of an HTTP health endpoint."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

logger = logging.getLogger("sampleapp.health")


@dataclass
class HealthCheckResult:
    url: str
    healthy: bool
    attempts: int
    status_code: Optional[int] = None
    last_error: Optional[str] = None


class HealthPoller:
    """Poll ``url`` until it answers with a non-error status or attempts run out.

    Any response with a status below 400 counts as healthy. Connection errors
    and error statuses count as failed attempts. ``sleep`` is only called
    between attempts, so a fully failed run waits
    ``(max_attempts - 1) * interval`` seconds in total.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 30,
        interval: float = 2.0,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if interval < 0:
            raise ValueError("interval must not be negative")
        self._max_attempts = max_attempts
        self._interval = interval
        self._timeout = timeout
        self._client = client
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def interval(self) -> float:
        return self._interval

    def wait_until_healthy(
        self,
        url: str,
        *,
        on_attempt: Callable[[int, Optional[str]], None] | None = None,
    ) -> HealthCheckResult:
        if self._client is not None:
            return self._poll(self._client, url, on_attempt)
        with httpx.Client(timeout=self._timeout) as client:
            return self._poll(client, url, on_attempt)

    def _poll(
        self,
        client: httpx.Client,
        url: str,
        on_attempt: Callable[[int, Optional[str]], None] | None,
    ) -> HealthCheckResult:
        last_error: Optional[str] = None
        status_code: Optional[int] = None

        for attempt in range(1, self._max_attempts + 1):
            try:
                response = client.get(url, timeout=self._timeout)
            except httpx.HTTPError as exc:
                status_code = None
                last_error = str(exc) or exc.__class__.__name__
            else:
                status_code = response.status_code
                if status_code < 400:
                    logger.info("Health check passed for %s after %d attempt(s)", url, attempt)
                    return HealthCheckResult(url=url, healthy=True, attempts=attempt, status_code=status_code)
                last_error = f"HTTP {status_code}"

            if on_attempt is not None:
                on_attempt(attempt, last_error)

            if attempt < self._max_attempts:
                logger.info(
                    "Health check attempt %d/%d failed (%s), retrying in %s seconds...",
                    attempt,
                    self._max_attempts,
                    last_error,
                    self._interval,
                )
                self._sleep(self._interval)

        logger.error("Health check failed after %d attempts", self._max_attempts)
        return HealthCheckResult(
            url=url,
            healthy=False,
            attempts=self._max_attempts,
            status_code=status_code,
            last_error=last_error,
        )


__all__ = ["HealthCheckResult", "HealthPoller"]
