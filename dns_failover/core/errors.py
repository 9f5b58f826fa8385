"""Error types raised by the failover reconciler."""
from __future__ import annotations

from typing import Optional


class FailoverError(Exception):
    """Base class for reconciler errors."""


class ProbeError(FailoverError):
    """A health probe did not get a healthy answer.

    Never leaves the prober: it is folded into an unhealthy verdict.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DnsReadError(FailoverError):
    """Reading the current record from the DNS provider failed."""


class DnsWriteError(FailoverError):
    """Upserting a record at the DNS provider failed. Retried next tick."""


class ConfigurationError(FailoverError, RuntimeError):
    """Invalid configuration. Only raised at startup."""
