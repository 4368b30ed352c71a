from __future__ import annotations

import httpx
import pytest

from sample_app.health import HealthPoller

URL = "http://localhost:3001/health"


class FlakyEndpoint:
    """Fails until the ``healthy_on`` request, then answers 200."""

    def __init__(self, healthy_on: int | None, *, refuse: bool = False) -> None:
        self.healthy_on = healthy_on
        self.refuse = refuse
        self.requests = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1
        if self.healthy_on is not None and self.requests >= self.healthy_on:
            return httpx.Response(200, json={"status": "healthy"})
        if self.refuse:
            raise httpx.ConnectError("Connection refused", request=request)
        return httpx.Response(503, json={"status": "starting"})


def make_poller(endpoint: FlakyEndpoint, sleeps: list[float], **kwargs) -> HealthPoller:
    client = httpx.Client(transport=httpx.MockTransport(endpoint))
    return HealthPoller(client=client, sleep=sleeps.append, **kwargs)


def test_immediately_healthy_endpoint_needs_one_attempt() -> None:
    endpoint = FlakyEndpoint(healthy_on=1)
    sleeps: list[float] = []

    result = make_poller(endpoint, sleeps).wait_until_healthy(URL)

    assert result.healthy is True
    assert result.attempts == 1
    assert result.status_code == 200
    assert sleeps == []


@pytest.mark.parametrize("k", [2, 7, 30])
def test_success_is_reported_after_exactly_k_attempts(k: int) -> None:
    endpoint = FlakyEndpoint(healthy_on=k)
    sleeps: list[float] = []

    result = make_poller(endpoint, sleeps).wait_until_healthy(URL)

    assert result.healthy is True
    assert result.attempts == k
    assert endpoint.requests == k
    assert sleeps == [2.0] * (k - 1)


def test_never_healthy_endpoint_exhausts_all_attempts() -> None:
    endpoint = FlakyEndpoint(healthy_on=None)
    sleeps: list[float] = []
    seen: list[int] = []

    result = make_poller(endpoint, sleeps).wait_until_healthy(
        URL, on_attempt=lambda number, error: seen.append(number)
    )

    assert result.healthy is False
    assert result.attempts == 30
    assert endpoint.requests == 30
    assert seen == list(range(1, 31))
    assert sleeps == [2.0] * 29
    assert result.last_error == "HTTP 503"


def test_connection_errors_count_as_failed_attempts() -> None:
    endpoint = FlakyEndpoint(healthy_on=3, refuse=True)
    sleeps: list[float] = []

    result = make_poller(endpoint, sleeps, max_attempts=5, interval=0.25).wait_until_healthy(URL)

    assert result.healthy is True
    assert result.attempts == 3
    assert sleeps == [0.25, 0.25]


def test_connection_refused_until_exhaustion() -> None:
    endpoint = FlakyEndpoint(healthy_on=None, refuse=True)
    sleeps: list[float] = []

    result = make_poller(endpoint, sleeps, max_attempts=4, interval=1.0).wait_until_healthy(URL)

    assert result.healthy is False
    assert result.status_code is None
    assert "Connection refused" in (result.last_error or "")


def test_invalid_parameters_are_rejected() -> None:
    with pytest.raises(ValueError):
        HealthPoller(max_attempts=0)
    with pytest.raises(ValueError):
        HealthPoller(interval=-0.1)
