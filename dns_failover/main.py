"""Failover reconciler FastAPI application.

Loads configuration, starts one reconciliation loop per domain, and exposes
status and Prometheus metrics endpoints.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List

import httpx
from fastapi import FastAPI

from dns_failover.api.routes import router
from dns_failover.core.config import DomainConfig, Settings, load_domains, load_settings
from dns_failover.core.logging import setup_logging
from dns_failover.metrics.prometheus import metrics_router
from dns_failover.services.dns_provider import DnsProvider, InMemoryDnsProvider, Route53Provider
from dns_failover.services.loop import FailoverService

log = logging.getLogger("failover")


def build_provider(settings: Settings, domains: List[DomainConfig]) -> DnsProvider:
    """Create the DNS provider selected by DNS_PROVIDER."""
    if settings.dns_provider == "memory":
        log.warning("Using in-memory DNS provider; no real records will change")
        return InMemoryDnsProvider()
    zones = {d.domain_name: d.hosted_zone_id for d in domains if d.hosted_zone_id}
    return Route53Provider(zones, region_name=settings.aws_region)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan.

    Configuration errors surface here and abort startup. On shutdown the
    service is stopped before the shared HTTP client closes, so the last tick
    completes.
    """
    setup_logging()
    settings = load_settings()
    domains = load_domains(settings.config_file)
    async with httpx.AsyncClient(follow_redirects=False) as client:
        service = FailoverService(domains, client, build_provider(settings, domains), settings.history_limit)
        app.state.service = service
        service.start()
        try:
            yield
        finally:
            await service.stop()


app = FastAPI(title="DNS Failover Reconciler", version="0.1.0", lifespan=lifespan)
app.include_router(router)
app.include_router(metrics_router)
