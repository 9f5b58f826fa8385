"""Configuration for the failover reconciler.

Process settings come from environment variables (see `load_settings`). The
domains to manage, their endpoint targets and thresholds come from a YAML file
loaded by `load_domains`. Any problem found here is a `ConfigurationError`,
raised at startup and never afterwards.
"""

from __future__ import annotations

import ipaddress
import os
from typing import Any, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from dns_failover.core.errors import ConfigurationError
from dns_failover.models.schemas import EndpointTarget, Thresholds

ALIAS_RECORD_TYPES = ("A", "AAAA")


def _is_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


class Settings(BaseModel):
    """Pydantic settings for the reconciler process."""

    config_file: str = "failover.yaml"
    dns_provider: Literal["route53", "memory"] = "route53"
    aws_region: str = "us-east-1"
    history_limit: int = Field(default=100, ge=1)


def load_settings() -> Settings:
    """Load settings from environment variables and return a Settings object."""
    try:
        return Settings(
            config_file=os.getenv("FAILOVER_CONFIG_FILE", "failover.yaml"),
            dns_provider=os.getenv("DNS_PROVIDER", "route53").lower(),
            aws_region=os.getenv("AWS_REGION", "us-east-1"),
            history_limit=int(os.getenv("HISTORY_LIMIT", "100")),
        )
    except (ValidationError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


class DomainConfig(BaseModel):
    """One logical DNS name and the regions that can serve it."""

    domain_name: str = Field(min_length=1)
    hosted_zone_id: Optional[str] = None
    record_type: str = "CNAME"
    ttl: int = Field(default=60, ge=0)
    targets: List[EndpointTarget]
    fail_threshold: int = Field(default=3, ge=1)
    recover_threshold: int = Field(default=5, ge=1)
    probe_interval_s: float = Field(default=30.0, gt=0)
    probe_timeout_s: float = Field(default=5.0, gt=0)
    success_statuses: List[int] = [200]
    expected_body: Optional[str] = None
    # Route 53 weighted record identity; unset means a simple record.
    set_identifier: Optional[str] = None
    weight: int = Field(default=100, ge=0, le=255)

    @model_validator(mode="after")
    def _check_targets(self) -> "DomainConfig":
        if not self.targets:
            raise ValueError(f"{self.domain_name}: at least one target is required")
        regions = [t.region_id for t in self.targets]
        if len(set(regions)) != len(regions):
            raise ValueError(f"{self.domain_name}: region_id values must be unique")
        priorities = [t.priority for t in self.targets]
        if len(set(priorities)) != len(priorities):
            raise ValueError(f"{self.domain_name}: target priorities must be unique")
        if not self.success_statuses:
            raise ValueError(f"{self.domain_name}: success_statuses must not be empty")
        aliased = [t.region_id for t in self.targets if t.alias_hosted_zone_id]
        if aliased and self.record_type not in ALIAS_RECORD_TYPES:
            raise ValueError(f"{self.domain_name}: alias targets need record_type A or AAAA, not {self.record_type}")
        if self.record_type in ALIAS_RECORD_TYPES:
            for t in self.targets:
                if not t.alias_hosted_zone_id and not _is_ip(t.dns_value):
                    raise ValueError(
                        f"{self.domain_name}: {t.region_id} needs alias_hosted_zone_id or an IP dns_value "
                        f"for a {self.record_type} record"
                    )
        return self

    @property
    def thresholds(self) -> Thresholds:
        return Thresholds(fail_threshold=self.fail_threshold, recover_threshold=self.recover_threshold)

    def target(self, region_id: str) -> EndpointTarget:
        for t in self.targets:
            if t.region_id == region_id:
                return t
        raise KeyError(region_id)


class FailoverConfig(BaseModel):
    """Top-level shape of the domain file."""

    defaults: dict[str, Any] = {}
    domains: List[DomainConfig]

    @model_validator(mode="before")
    @classmethod
    def _apply_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        defaults = data.get("defaults") or {}
        domains = data.get("domains") or []
        if isinstance(domains, list):
            data = dict(data)
            data["domains"] = [
                {**defaults, **d} if isinstance(d, dict) else d for d in domains
            ]
        return data

    @model_validator(mode="after")
    def _check_domains(self) -> "FailoverConfig":
        if not self.domains:
            raise ValueError("at least one domain is required")
        names = [d.domain_name for d in self.domains]
        if len(set(names)) != len(names):
            raise ValueError("domain_name values must be unique")
        return self


def parse_domains(data: Any) -> List[DomainConfig]:
    """Validate an already-decoded domain document."""
    try:
        return FailoverConfig.model_validate(data).domains
    except ValidationError as e:
        raise ConfigurationError(f"Invalid domain configuration: {e}") from e


def load_domains(path: str) -> List[DomainConfig]:
    """Load and validate the YAML domain file at `path`."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read domain file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Domain file {path} is not valid YAML: {e}") from e
    if data is None:
        raise ConfigurationError(f"Domain file {path} is empty")
    return parse_domains(data)
