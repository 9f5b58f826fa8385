"""Health prober.

Polls each region's health URL and turns the answer into a `HealthVerdict`.
Errors, timeouts and unexpected statuses are all the same signal: unhealthy.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from time import monotonic
from typing import Collection, Iterable, Mapping, Optional

import httpx

from dns_failover.core.errors import ProbeError
from dns_failover.models.schemas import EndpointTarget, HealthVerdict

log = logging.getLogger("failover.prober")


def fold_verdict(
    previous: Optional[HealthVerdict],
    region_id: str,
    healthy: bool,
    *,
    observed_at: datetime,
    latency_s: float = 0.0,
    status_code: Optional[int] = None,
    error: Optional[str] = None,
) -> HealthVerdict:
    """Build the next verdict for a region, carrying consecutive counters forward."""
    failures = previous.consecutive_failure_count if previous else 0
    successes = previous.consecutive_success_count if previous else 0
    if healthy:
        successes, failures = successes + 1, 0
    else:
        successes, failures = 0, failures + 1
    return HealthVerdict(
        region_id=region_id,
        observed_at=observed_at,
        healthy=healthy,
        latency_s=latency_s,
        consecutive_failure_count=failures,
        consecutive_success_count=successes,
        status_code=status_code,
        error=error,
    )


async def _check(
    client: httpx.AsyncClient,
    url: str,
    timeout_s: float,
    success_statuses: Collection[int],
    expected_body: Optional[str],
) -> int:
    try:
        # httpx timeouts are per phase; wait_for bounds the whole request.
        r = await asyncio.wait_for(client.get(url, timeout=timeout_s), timeout=timeout_s)
    except asyncio.TimeoutError as e:
        raise ProbeError(f"timeout after {timeout_s}s") from e
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise ProbeError(f"{type(e).__name__}: {e}") from e
    except Exception as e:
        # Any other client failure still only marks this region unhealthy.
        raise ProbeError(f"{type(e).__name__}: {e}") from e
    if r.status_code not in success_statuses:
        raise ProbeError(f"unexpected status {r.status_code}", status_code=r.status_code)
    if expected_body and expected_body.lower() not in (r.text or "").lower():
        raise ProbeError(f"body does not contain {expected_body!r}", status_code=r.status_code)
    return r.status_code


async def probe(
    client: httpx.AsyncClient,
    target: EndpointTarget,
    previous: Optional[HealthVerdict] = None,
    *,
    timeout_s: float = 5.0,
    success_statuses: Collection[int] = (200,),
    expected_body: Optional[str] = None,
) -> HealthVerdict:
    """GET the target's health URL and return its new verdict.

    Never raises for probe failures; they come back as `healthy=False`.
    """
    started = monotonic()
    status_code: Optional[int] = None
    error: Optional[str] = None
    try:
        status_code = await _check(
            client, str(target.health_check_url), timeout_s, success_statuses, expected_body
        )
        healthy = True
    except ProbeError as e:
        healthy = False
        status_code = e.status_code
        error = str(e)
        log.debug("probe %s failed: %s", target.region_id, error)
    return fold_verdict(
        previous,
        target.region_id,
        healthy,
        observed_at=datetime.now(timezone.utc),
        latency_s=monotonic() - started,
        status_code=status_code,
        error=error,
    )


async def probe_all(
    client: httpx.AsyncClient,
    targets: Iterable[EndpointTarget],
    previous: Mapping[str, HealthVerdict],
    **kwargs,
) -> dict[str, HealthVerdict]:
    """Probe every target concurrently; the slowest probe bounds the call."""
    targets = list(targets)
    verdicts = await asyncio.gather(
        *(probe(client, t, previous.get(t.region_id), **kwargs) for t in targets)
    )
    return {v.region_id: v for v in verdicts}
