"""Failover state machine.

One `FailoverState` per domain. `advance` is pure: it takes the current state
and the latest verdicts and returns the next state, never mutating its input.

Failing away from the active region needs `fail_threshold` consecutive
failures. Returning to the highest-priority region needs `recover_threshold`
consecutive successes there. The asymmetry keeps a flapping primary from
churning the published record.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Mapping, Optional, Sequence

from dns_failover.models.schemas import (
    DnsRecordObservation,
    EndpointTarget,
    FailoverState,
    HealthVerdict,
    Thresholds,
)
from dns_failover.services.reconciler import normalize_value

log = logging.getLogger("failover.state")

REASON_INITIAL = "initial"
REASON_ACTIVE_UNHEALTHY = "active region unhealthy"
REASON_PRIMARY_RECOVERED = "primary recovered"
REASON_OBSERVED = "observed"


def by_priority(targets: Sequence[EndpointTarget]) -> list[EndpointTarget]:
    """Targets ordered from most to least preferred."""
    return sorted(targets, key=lambda t: t.priority, reverse=True)


def initial_state(
    domain_name: str, targets: Sequence[EndpointTarget], now: Optional[datetime] = None
) -> FailoverState:
    """Start on the highest-priority target."""
    return FailoverState(
        domain_name=domain_name,
        active_region_id=by_priority(targets)[0].region_id,
        last_transition_at=now or datetime.now(timezone.utc),
        transition_reason=REASON_INITIAL,
    )


def state_from_record(
    domain_name: str,
    targets: Sequence[EndpointTarget],
    observed: Optional[DnsRecordObservation],
    now: Optional[datetime] = None,
) -> FailoverState:
    """Resume on whichever target the published record already points at.

    Falls back to `initial_state` when the record is missing or matches no target.
    """
    if observed is not None:
        value = normalize_value(observed.current_target_value)
        for t in targets:
            if normalize_value(t.dns_value) == value:
                return FailoverState(
                    domain_name=domain_name,
                    active_region_id=t.region_id,
                    last_transition_at=now or datetime.now(timezone.utc),
                    transition_reason=REASON_OBSERVED,
                )
    return initial_state(domain_name, targets, now)


def _switch(current: FailoverState, region_id: str, reason: str, now: Optional[datetime]) -> FailoverState:
    log.warning(
        "%s: switching %s -> %s (%s)", current.domain_name, current.active_region_id, region_id, reason
    )
    return current.model_copy(
        update={
            "active_region_id": region_id,
            "last_transition_at": now or datetime.now(timezone.utc),
            "transition_reason": reason,
        }
    )


def advance(
    current: FailoverState,
    verdicts: Mapping[str, HealthVerdict],
    targets: Sequence[EndpointTarget],
    thresholds: Thresholds,
    now: Optional[datetime] = None,
) -> FailoverState:
    """Return the next state for `current` given the latest verdicts."""
    ordered = by_priority(targets)
    active = verdicts.get(current.active_region_id)

    if active is not None and active.consecutive_failure_count >= thresholds.fail_threshold:
        for t in ordered:
            if t.region_id == current.active_region_id:
                continue
            v = verdicts.get(t.region_id)
            if v is not None and v.healthy:
                return _switch(current, t.region_id, REASON_ACTIVE_UNHEALTHY, now)
        # Nothing healthy to move to; DNS cannot publish "no record", so stay put.
        log.error("%s: %s unhealthy and no healthy alternative", current.domain_name, current.active_region_id)
        return current

    top = ordered[0]
    if current.active_region_id != top.region_id:
        v = verdicts.get(top.region_id)
        if v is not None and v.consecutive_success_count >= thresholds.recover_threshold:
            return _switch(current, top.region_id, REASON_PRIMARY_RECOVERED, now)

    return current
