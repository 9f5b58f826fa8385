"""Status API for the failover reconciler.

Read-only views of each domain loop, plus an endpoint that runs one
reconciliation pass out of schedule.
"""
from __future__ import annotations

from logging import getLogger
from typing import List

from fastapi import APIRouter, HTTPException, Request

from dns_failover.models.schemas import DomainStatus, TransitionEvent
from dns_failover.services.loop import DomainLoop, FailoverService

log = getLogger("failover.api")
router = APIRouter()


def _service(request: Request) -> FailoverService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="reconciler not started")
    return service


def _loop(request: Request, domain_name: str) -> DomainLoop:
    loop = _service(request).get(domain_name)
    if loop is None:
        raise HTTPException(status_code=404, detail="domain not found")
    return loop


@router.get("/health")
async def health_check():
    """Liveness of the reconciler process itself."""
    return {"status": "ok"}


@router.get("/status", response_model=List[DomainStatus])
async def list_status(request: Request):
    return _service(request).status()


@router.get("/status/{domain_name}", response_model=DomainStatus)
async def domain_status(domain_name: str, request: Request):
    return _loop(request, domain_name).status()


@router.get("/status/{domain_name}/history", response_model=List[TransitionEvent])
async def domain_history(domain_name: str, request: Request):
    return _loop(request, domain_name).history


@router.post("/status/{domain_name}/reconcile", response_model=DomainStatus)
async def reconcile_now(domain_name: str, request: Request):
    """Run one probe/advance/reconcile pass now and return the resulting status."""
    loop = _loop(request, domain_name)
    log.info("manual reconcile requested for %s", domain_name)
    return await loop.tick()
