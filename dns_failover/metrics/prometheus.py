from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, generate_latest

metrics_router = APIRouter()

# Standalone registry for the reconciler's own metrics
registry = CollectorRegistry()

PROBES = Counter(
    "failover_probes_total", "Health probes by outcome", ["domain", "region", "result"], registry=registry
)
PROBE_LATENCY = Histogram(
    "failover_probe_latency_seconds", "Health probe latency seconds", ["domain", "region"], registry=registry
)
TRANSITIONS = Counter(
    "failover_transitions_total", "Active region changes", ["domain", "from_region", "to_region"], registry=registry
)
DNS_UPDATES = Counter(
    "failover_dns_updates_total", "DNS record upserts by outcome", ["domain", "result"], registry=registry
)
ACTIVE_REGION = Gauge(
    "failover_active_region", "1 for the region currently published, else 0", ["domain", "region"], registry=registry
)
TICK_ERRORS = Counter(
    "failover_tick_errors_total", "Reconciliation ticks that ended in an error", ["domain"], registry=registry
)


@metrics_router.get("/metrics")
async def metrics():
    data = generate_latest(registry)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
