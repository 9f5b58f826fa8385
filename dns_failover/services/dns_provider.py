"""DNS provider clients.

The reconciler only decides what to write; these classes do the reading and
writing. `Route53Provider` talks to AWS Route 53 through boto3.
`InMemoryDnsProvider` keeps records in a dict for dry runs and tests.
"""
from __future__ import annotations

import abc
import asyncio
import logging
from typing import Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from dns_failover.core.errors import DnsReadError, DnsWriteError
from dns_failover.models.schemas import DnsRecordObservation
from dns_failover.services.reconciler import normalize_value

log = logging.getLogger("failover.dns")


class DnsProvider(abc.ABC):
    """Read and idempotently upsert a single record per domain."""

    name = "base"

    @abc.abstractmethod
    async def get_record(
        self, domain_name: str, record_type: str, set_identifier: Optional[str] = None
    ) -> Optional[DnsRecordObservation]:
        """Return the published record, or None when it does not exist."""

    @abc.abstractmethod
    async def upsert_record(
        self,
        domain_name: str,
        record_type: str,
        value: str,
        ttl: int,
        region_id: str,
        *,
        alias_hosted_zone_id: Optional[str] = None,
        set_identifier: Optional[str] = None,
        weight: int = 100,
    ) -> None:
        """Create or replace the record so it points at `value`."""


def _record_name(name: str) -> str:
    # Route 53 returns "*" as an octal escape.
    return normalize_value(name.replace("\\052", "*"))


def _alias_name(name: str) -> str:
    # ELB aliases are published as dualstack.<load balancer hostname>.
    value = normalize_value(name)
    return value[len("dualstack."):] if value.startswith("dualstack.") else value


class Route53Provider(DnsProvider):
    """Route 53 backed provider. boto3 calls run in a worker thread."""

    name = "route53"

    def __init__(self, hosted_zones: Optional[Mapping[str, str]] = None, client=None, region_name: str = "us-east-1"):
        self._route53 = client or boto3.client("route53", region_name=region_name)
        self._zones = {normalize_value(k): v.split("/")[-1] for k, v in (hosted_zones or {}).items() if v}

    async def _zone_id(self, domain_name: str) -> str:
        key = normalize_value(domain_name)
        if key in self._zones:
            return self._zones[key]
        labels = key.lstrip("*.").split(".")
        # Closest enclosing zone wins: app.eu.example.com, eu.example.com, example.com
        for i in range(len(labels) - 1):
            candidate = ".".join(labels[i:])
            resp = await asyncio.to_thread(
                self._route53.list_hosted_zones_by_name, DNSName=candidate, MaxItems="1"
            )
            for zone in resp.get("HostedZones", []):
                if normalize_value(zone["Name"]) == candidate:
                    zone_id = zone["Id"].split("/")[-1]
                    log.info("Found hosted zone %s for %s", zone_id, domain_name)
                    self._zones[key] = zone_id
                    return zone_id
        raise LookupError(f"no hosted zone found for {domain_name}")

    async def get_record(
        self, domain_name: str, record_type: str, set_identifier: Optional[str] = None
    ) -> Optional[DnsRecordObservation]:
        try:
            zone_id = await self._zone_id(domain_name)
            # Several sets can share a name and type (weighted/failover); fetch them all.
            resp = await asyncio.to_thread(
                self._route53.list_resource_record_sets,
                HostedZoneId=zone_id,
                StartRecordName=domain_name,
                StartRecordType=record_type,
                MaxItems="100",
            )
        except (ClientError, BotoCoreError, LookupError) as e:
            raise DnsReadError(f"Failed to read {record_type} {domain_name}: {e}") from e

        for rrs in resp.get("ResourceRecordSets", []):
            if _record_name(rrs["Name"]) != normalize_value(domain_name) or rrs["Type"] != record_type:
                continue
            if rrs.get("SetIdentifier") != set_identifier:
                continue
            if "AliasTarget" in rrs:
                value = _alias_name(rrs["AliasTarget"]["DNSName"])
            else:
                values = rrs.get("ResourceRecords") or []
                if not values:
                    return None
                value = values[0]["Value"]
            return DnsRecordObservation(
                domain_name=domain_name, current_target_value=value, record_type=record_type
            )
        return None

    async def upsert_record(
        self,
        domain_name: str,
        record_type: str,
        value: str,
        ttl: int,
        region_id: str,
        *,
        alias_hosted_zone_id: Optional[str] = None,
        set_identifier: Optional[str] = None,
        weight: int = 100,
    ) -> None:
        rrs = {"Name": domain_name, "Type": record_type}
        if alias_hosted_zone_id:
            rrs["AliasTarget"] = {
                "HostedZoneId": alias_hosted_zone_id,
                "DNSName": value,
                "EvaluateTargetHealth": False,
            }
        else:
            rrs["TTL"] = ttl
            rrs["ResourceRecords"] = [{"Value": value}]
        if set_identifier:
            rrs["SetIdentifier"] = set_identifier
            rrs["Weight"] = weight
        try:
            zone_id = await self._zone_id(domain_name)
            resp = await asyncio.to_thread(
                self._route53.change_resource_record_sets,
                HostedZoneId=zone_id,
                ChangeBatch={
                    "Comment": f"failover: active region {region_id}",
                    "Changes": [{"Action": "UPSERT", "ResourceRecordSet": rrs}],
                },
            )
        except (ClientError, BotoCoreError, LookupError) as e:
            raise DnsWriteError(f"Failed to upsert {record_type} {domain_name} -> {value}: {e}") from e
        log.info(
            "Upserted %s %s -> %s (region %s, change %s)",
            record_type, domain_name, value, region_id, resp["ChangeInfo"]["Id"],
        )


class InMemoryDnsProvider(DnsProvider):
    """Dict-backed provider. Set `fail_reads`/`fail_writes` to simulate an outage."""

    name = "memory"

    def __init__(self, records: Optional[Mapping[str, str]] = None, record_type: str = "CNAME"):
        self._records: dict[tuple[str, str], str] = {
            (normalize_value(d), record_type): v for d, v in (records or {}).items()
        }
        self.writes: list[tuple[str, str, str]] = []
        self.fail_reads = False
        self.fail_writes = False

    async def get_record(
        self, domain_name: str, record_type: str, set_identifier: Optional[str] = None
    ) -> Optional[DnsRecordObservation]:
        if self.fail_reads:
            raise DnsReadError(f"simulated read failure for {domain_name}")
        value = self._records.get((normalize_value(domain_name), record_type))
        if value is None:
            return None
        return DnsRecordObservation(domain_name=domain_name, current_target_value=value, record_type=record_type)

    async def upsert_record(
        self,
        domain_name: str,
        record_type: str,
        value: str,
        ttl: int,
        region_id: str,
        *,
        alias_hosted_zone_id: Optional[str] = None,
        set_identifier: Optional[str] = None,
        weight: int = 100,
    ) -> None:
        if self.fail_writes:
            raise DnsWriteError(f"simulated write failure for {domain_name}")
        self._records[(normalize_value(domain_name), record_type)] = value
        self.writes.append((domain_name, record_type, value))
        log.info("Upserted %s %s -> %s (region %s, in memory)", record_type, domain_name, value, region_id)
