"""Pydantic models used by the failover reconciler."""
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

# Label -> numeric priority. Higher numbers are preferred.
PRIORITY_LABELS = {"primary": 300, "secondary": 200, "tertiary": 100}


class EndpointTarget(BaseModel):
    """One region that can serve a domain, reachable at `dns_value`."""

    model_config = ConfigDict(frozen=True)

    region_id: str = Field(min_length=1)
    health_check_url: HttpUrl
    dns_value: str = Field(min_length=1)  # e.g. the region's load-balancer hostname
    priority: int
    # Set for Route 53 alias records, e.g. the load balancer's canonical hosted zone.
    alias_hosted_zone_id: Optional[str] = None

    @field_validator("priority", mode="before")
    @classmethod
    def _priority_from_label(cls, value):
        if isinstance(value, str) and value.strip().lower() in PRIORITY_LABELS:
            return PRIORITY_LABELS[value.strip().lower()]
        return value


class Thresholds(BaseModel):
    """Debounce thresholds: fail fast, recover cautiously."""

    model_config = ConfigDict(frozen=True)

    fail_threshold: int = Field(default=3, ge=1)
    recover_threshold: int = Field(default=5, ge=1)


class HealthVerdict(BaseModel):
    """Latest probe outcome for one region plus its consecutive counters."""

    model_config = ConfigDict(frozen=True)

    region_id: str
    observed_at: datetime
    healthy: bool
    latency_s: float = 0.0
    consecutive_failure_count: int = 0
    consecutive_success_count: int = 0
    status_code: Optional[int] = None
    error: Optional[str] = None


class FailoverState(BaseModel):
    """Which region currently serves a domain, and why."""

    model_config = ConfigDict(frozen=True)

    domain_name: str
    active_region_id: str
    last_transition_at: datetime
    transition_reason: str


class DnsRecordObservation(BaseModel):
    """Snapshot of a record as currently published by the DNS provider."""

    domain_name: str
    current_target_value: str
    record_type: str = "CNAME"


class NoOp(BaseModel):
    """The published record already points at the active region."""

    kind: Literal["noop"] = "noop"


class UpdateRecord(BaseModel):
    """The published record must be rewritten to `new_value`."""

    kind: Literal["update"] = "update"
    new_value: str
    region_id: str


Action = Union[NoOp, UpdateRecord]


class TransitionEvent(BaseModel):
    """One entry of a domain's transition history."""

    from_region: Optional[str] = None
    to_region: str
    reason: str
    at: datetime


class DomainStatus(BaseModel):
    """Read-only view of one domain loop, served by the status API."""

    domain_name: str
    active_region_id: str
    dns_value: str
    last_transition_at: datetime
    transition_reason: str
    verdicts: dict[str, HealthVerdict] = {}
    history: list[TransitionEvent] = []
    last_tick_at: Optional[datetime] = None
    last_action: Optional[Action] = None
    last_error: Optional[str] = None
