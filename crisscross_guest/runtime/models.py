"""Pydantic models for the cache service runtime state."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field

from crisscross_guest.models import TransportState


class ServiceState(str, Enum):
    """Where a :class:`CacheService` is in its life.

    ``ERROR`` means the initial load failed; the service may be started
    again or stopped from there.  ``STOPPED`` is final.
    """

    PENDING = "pending"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


_VALID_TRANSITIONS: Dict[ServiceState, frozenset[ServiceState]] = {
    ServiceState.PENDING: frozenset({ServiceState.STARTING}),
    ServiceState.STARTING: frozenset({ServiceState.RUNNING, ServiceState.ERROR}),
    ServiceState.RUNNING: frozenset({ServiceState.STOPPING}),
    ServiceState.STOPPING: frozenset({ServiceState.STOPPED}),
    ServiceState.STOPPED: frozenset(),
    ServiceState.ERROR: frozenset({ServiceState.STARTING, ServiceState.STOPPING}),
}


def is_valid_transition(current: ServiceState, target: ServiceState) -> bool:
    """Return ``True`` if *current* may move to *target*."""
    return target in _VALID_TRANSITIONS.get(current, frozenset())


class CacheStatus(BaseModel):
    """Point-in-time snapshot of the cache service."""

    state: ServiceState = ServiceState.PENDING
    host: Optional[str] = None
    port: Optional[int] = None
    transport: TransportState = TransportState.UNKNOWN
    server_count: int = 0
    pending_callbacks: int = 0
    refresh_timer_running: bool = False
    cache_ttl: float = 0.0
    push_requests: int = 0
    pull_requests: int = 0
    started_at: Optional[datetime] = None
    uptime_seconds: Optional[float] = None
    error_message: Optional[str] = None
    last_close: Optional[Dict[str, object]] = Field(
        default=None, description="Code and reason of the last push transport closure."
    )

    def compute_uptime(self) -> None:
        """Fill in ``uptime_seconds`` from ``started_at``."""
        if self.started_at is not None:
            delta = datetime.now(timezone.utc) - self.started_at
            self.uptime_seconds = delta.total_seconds()
