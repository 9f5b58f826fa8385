"""Record reconciler: decides whether the published record needs rewriting."""
from __future__ import annotations

from typing import Optional, Sequence

from dns_failover.models.schemas import (
    Action,
    DnsRecordObservation,
    EndpointTarget,
    FailoverState,
    NoOp,
    UpdateRecord,
)


def normalize_value(value: str) -> str:
    """DNS names compare case-insensitively and with or without the trailing dot."""
    return value.strip().rstrip(".").lower()


def reconcile(
    domain_name: str,
    desired: FailoverState,
    observed: Optional[DnsRecordObservation],
    targets: Sequence[EndpointTarget],
) -> Action:
    """Compare the desired active region with what the provider serves.

    A missing record (`observed is None`) always needs a write. The write
    itself is left to the caller.
    """
    if desired.domain_name != domain_name:
        raise ValueError(f"state for {desired.domain_name} passed for {domain_name}")
    target = next((t for t in targets if t.region_id == desired.active_region_id), None)
    if target is None:
        raise ValueError(f"{domain_name}: active region {desired.active_region_id} is not a configured target")
    if observed is not None and normalize_value(observed.current_target_value) == normalize_value(target.dns_value):
        return NoOp()
    return UpdateRecord(new_value=target.dns_value, region_id=target.region_id)
