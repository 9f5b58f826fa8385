"""Reconciliation loop.

Each `DomainLoop` owns one domain's state and drives probe -> advance ->
reconcile on a fixed interval. `FailoverService` runs one loop per domain and
stops them gracefully: the stop event is only checked between ticks, so a tick
that is writing DNS always finishes.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from time import monotonic
from typing import Iterable, Optional

import httpx

from dns_failover.core.config import DomainConfig
from dns_failover.core.errors import DnsReadError, DnsWriteError
from dns_failover.metrics.prometheus import (
    ACTIVE_REGION,
    DNS_UPDATES,
    PROBE_LATENCY,
    PROBES,
    TICK_ERRORS,
    TRANSITIONS,
)
from dns_failover.models.schemas import (
    Action,
    DnsRecordObservation,
    DomainStatus,
    FailoverState,
    HealthVerdict,
    TransitionEvent,
    UpdateRecord,
)
from dns_failover.services.dns_provider import DnsProvider
from dns_failover.services.prober import probe_all
from dns_failover.services.reconciler import reconcile
from dns_failover.services.state_machine import advance, initial_state, state_from_record

log = logging.getLogger("failover.loop")


class DomainLoop:
    """Single owner of one domain's FailoverState."""

    def __init__(
        self,
        config: DomainConfig,
        client: httpx.AsyncClient,
        provider: DnsProvider,
        history_limit: int = 100,
    ):
        self.config = config
        self._client = client
        self._provider = provider
        self._state: FailoverState = initial_state(config.domain_name, config.targets)
        self._verdicts: dict[str, HealthVerdict] = {}
        self._history: deque[TransitionEvent] = deque(maxlen=history_limit)
        self._reset_history()
        # Not seeded until the published record has been read once.
        self._seeded = False
        self._last_tick_at: Optional[datetime] = None
        self._last_action: Optional[Action] = None
        self._last_error: Optional[str] = None
        # Serializes scheduled ticks with ticks requested through the API.
        self._tick_lock = asyncio.Lock()
        self._set_active_gauge()

    @property
    def domain_name(self) -> str:
        return self.config.domain_name

    @property
    def state(self) -> FailoverState:
        return self._state

    @property
    def verdicts(self) -> dict[str, HealthVerdict]:
        return dict(self._verdicts)

    @property
    def history(self) -> list[TransitionEvent]:
        return list(self._history)

    def status(self) -> DomainStatus:
        """Snapshot for observability; callers cannot mutate loop state through it."""
        return DomainStatus(
            domain_name=self.domain_name,
            active_region_id=self._state.active_region_id,
            dns_value=self.config.target(self._state.active_region_id).dns_value,
            last_transition_at=self._state.last_transition_at,
            transition_reason=self._state.transition_reason,
            verdicts=dict(self._verdicts),
            history=list(self._history),
            last_tick_at=self._last_tick_at,
            last_action=self._last_action,
            last_error=self._last_error,
        )

    def _reset_history(self) -> None:
        self._history.clear()
        self._history.append(
            TransitionEvent(
                to_region=self._state.active_region_id,
                reason=self._state.transition_reason,
                at=self._state.last_transition_at,
            )
        )

    def _seed(self, observed: Optional[DnsRecordObservation]) -> None:
        self._state = state_from_record(self.domain_name, self.config.targets, observed)
        self._seeded = True
        self._reset_history()
        self._set_active_gauge()
        log.info(
            "%s: starting on %s (%s)", self.domain_name, self._state.active_region_id, self._state.transition_reason
        )

    def _set_active_gauge(self) -> None:
        for t in self.config.targets:
            ACTIVE_REGION.labels(domain=self.domain_name, region=t.region_id).set(
                1 if t.region_id == self._state.active_region_id else 0
            )

    async def tick(self) -> DomainStatus:
        """Run one probe -> advance -> reconcile pass and return the new status."""
        async with self._tick_lock:
            await self._tick()
        return self.status()

    async def _tick(self) -> None:
        cfg = self.config
        self._verdicts = await probe_all(
            self._client,
            cfg.targets,
            self._verdicts,
            timeout_s=cfg.probe_timeout_s,
            success_statuses=cfg.success_statuses,
            expected_body=cfg.expected_body,
        )
        for v in self._verdicts.values():
            PROBES.labels(domain=cfg.domain_name, region=v.region_id, result="healthy" if v.healthy else "unhealthy").inc()
            PROBE_LATENCY.labels(domain=cfg.domain_name, region=v.region_id).observe(v.latency_s)
        self._last_tick_at = datetime.now(timezone.utc)

        try:
            observed = await self._provider.get_record(
                cfg.domain_name, cfg.record_type, set_identifier=cfg.set_identifier
            )
        except DnsReadError as e:
            self._last_error = str(e)
            TICK_ERRORS.labels(domain=cfg.domain_name).inc()
            log.error("%s: %s; retrying next tick", cfg.domain_name, e)
            return

        if not self._seeded:
            self._seed(observed)

        previous = self._state
        self._state = advance(previous, self._verdicts, cfg.targets, cfg.thresholds)
        if self._state.active_region_id != previous.active_region_id:
            self._history.append(
                TransitionEvent(
                    from_region=previous.active_region_id,
                    to_region=self._state.active_region_id,
                    reason=self._state.transition_reason,
                    at=self._state.last_transition_at,
                )
            )
            TRANSITIONS.labels(
                domain=cfg.domain_name, from_region=previous.active_region_id, to_region=self._state.active_region_id
            ).inc()
            self._set_active_gauge()

        action = reconcile(cfg.domain_name, self._state, observed, cfg.targets)
        self._last_action = action
        try:
            if isinstance(action, UpdateRecord):
                await self._provider.upsert_record(
                    cfg.domain_name,
                    cfg.record_type,
                    action.new_value,
                    cfg.ttl,
                    action.region_id,
                    alias_hosted_zone_id=cfg.target(action.region_id).alias_hosted_zone_id,
                    set_identifier=cfg.set_identifier,
                    weight=cfg.weight,
                )
                DNS_UPDATES.labels(domain=cfg.domain_name, result="ok").inc()
            self._last_error = None
        except DnsWriteError as e:
            self._last_error = str(e)
            DNS_UPDATES.labels(domain=cfg.domain_name, result="error").inc()
            log.error("%s: %s; retrying next tick", cfg.domain_name, e)

    async def run(self, stop: asyncio.Event) -> None:
        """Tick every `probe_interval_s` until `stop` is set."""
        log.info(
            "%s: loop started (active=%s, interval=%ss)",
            self.domain_name, self._state.active_region_id, self.config.probe_interval_s,
        )
        while not stop.is_set():
            started = monotonic()
            try:
                await self.tick()
            except Exception:
                # A broken tick must never end the loop.
                TICK_ERRORS.labels(domain=self.domain_name).inc()
                log.exception("%s: tick failed", self.domain_name)
            delay = max(0.0, self.config.probe_interval_s - (monotonic() - started))
            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        log.info("%s: loop stopped", self.domain_name)


class FailoverService:
    """Runs one independent DomainLoop per configured domain."""

    def __init__(
        self,
        domains: Iterable[DomainConfig],
        client: httpx.AsyncClient,
        provider: DnsProvider,
        history_limit: int = 100,
    ):
        self.loops: dict[str, DomainLoop] = {
            d.domain_name: DomainLoop(d, client, provider, history_limit) for d in domains
        }
        self._stop = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    def start(self) -> None:
        self._stop.clear()
        self._tasks = [
            asyncio.create_task(loop.run(self._stop), name=f"failover:{name}")
            for name, loop in self.loops.items()
        ]
        log.info("Started %d domain loop(s)", len(self._tasks))

    async def stop(self) -> None:
        """Let in-flight ticks finish, then return."""
        self._stop.set()
        if self._tasks:
            await asyncio.gather(*self._tasks)
        self._tasks = []

    def get(self, domain_name: str) -> Optional[DomainLoop]:
        return self.loops.get(domain_name)

    def status(self) -> list[DomainStatus]:
        return [loop.status() for loop in self.loops.values()]
