"""Shared fixtures for the failover reconciler tests."""
from __future__ import annotations

import httpx
import pytest

from dns_failover.core.config import DomainConfig
from dns_failover.services.dns_provider import InMemoryDnsProvider

PRIMARY_DNS = "k8s-ingress-eu.elb.amazonaws.com"
SECONDARY_DNS = "k8s-ingress-us.elb.amazonaws.com"


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeHealthEndpoints:
    """Health endpoints keyed by host. Values are a status code or an exception to raise."""

    def __init__(self):
        self.outcomes: dict[str, object] = {}
        self.calls: list[str] = []

    def set(self, host: str, outcome) -> None:
        self.outcomes[host] = outcome

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url.host)
        outcome = self.outcomes.get(request.url.host, 200)
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, text="ok" if outcome == 200 else "down")


@pytest.fixture
def health():
    return FakeHealthEndpoints()


@pytest.fixture
async def client(health):
    async with httpx.AsyncClient(transport=httpx.MockTransport(health.handler)) as c:
        yield c


def make_domain(**overrides) -> DomainConfig:
    data = {
        "domain_name": "app.example.com",
        "targets": [
            {"region_id": "eu", "health_check_url": "http://eu.internal/healthz", "dns_value": PRIMARY_DNS, "priority": "primary"},
            {"region_id": "us", "health_check_url": "http://us.internal/healthz", "dns_value": SECONDARY_DNS, "priority": "secondary"},
        ],
        "fail_threshold": 3,
        "recover_threshold": 5,
        "probe_interval_s": 0.01,
        "probe_timeout_s": 0.5,
    }
    data.update(overrides)
    return DomainConfig.model_validate(data)


@pytest.fixture
def domain() -> DomainConfig:
    return make_domain()


@pytest.fixture
def provider() -> InMemoryDnsProvider:
    return InMemoryDnsProvider({"app.example.com": PRIMARY_DNS})
