"""Runtime status models derived from the container engine.

Nothing here is persisted; every value is recomputed on each query.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

STATE_RUNNING = "running"
STATE_STOPPED = "stopped"

HEALTH_HEALTHY = "healthy"
HEALTH_PARTIAL = "partial"
HEALTH_UNHEALTHY = "unhealthy"
HEALTH_UNKNOWN = "unknown"


@dataclass
class ServiceStatus:
    """Observed state of one compose service container."""
    id: str
    name: str
    service: str
    state: str
    status: str = ""
    health: Optional[str] = None  # healthy / unhealthy / starting, None without healthcheck
    ports: List[str] = field(default_factory=list)  # host:container/proto
    created: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self.state == STATE_RUNNING

    @property
    def healthy(self) -> bool:
        """Running and either passing its healthcheck or having none."""
        if not self.running:
            return False
        return self.health is None or self.health == HEALTH_HEALTHY


def aggregate_services(services: Iterable[ServiceStatus]) -> Tuple[str, str]:
    """Fold per-service state into an aggregate ``(status, health)`` pair.

    No running service means ``("stopped", "unknown")``. Otherwise health is
    ``healthy`` when every service is healthy, ``partial`` when some are and
    ``unhealthy`` when none are.
    """
    services = list(services)
    running = [s for s in services if s.running]
    if not running:
        return STATE_STOPPED, HEALTH_UNKNOWN

    healthy = sum(1 for s in services if s.healthy)
    if healthy == len(services):
        return STATE_RUNNING, HEALTH_HEALTHY
    if healthy > 0:
        return STATE_RUNNING, HEALTH_PARTIAL
    return STATE_RUNNING, HEALTH_UNHEALTHY


@dataclass
class ProviderStatus:
    """Aggregate status of one template's project as seen by a provider."""
    project_name: str
    services: Dict[str, ServiceStatus] = field(default_factory=dict)
    message: str = ""

    @property
    def state(self) -> str:
        return aggregate_services(self.services.values())[0]

    @property
    def health(self) -> str:
        return aggregate_services(self.services.values())[1]

    @property
    def running(self) -> bool:
        return self.state == STATE_RUNNING

    @property
    def healthy(self) -> bool:
        return self.health == HEALTH_HEALTHY

    @property
    def ports(self) -> List[str]:
        ports: List[str] = []
        for service in self.services.values():
            ports.extend(service.ports)
        return ports

    def summary(self) -> str:
        """Short human readable form, e.g. ``running (partial)``."""
        if not self.running:
            return STATE_STOPPED
        return f"{STATE_RUNNING} ({self.health})"


def endpoints_from_ports(ports: Iterable[str]) -> List[str]:
    """Turn ``host:container/proto`` bindings into local URLs."""
    endpoints = []
    for port in ports:
        parts = port.split(":")
        if len(parts) >= 2 and parts[0]:
            endpoints.append(f"http://127.0.0.1:{parts[0]}")
    return endpoints
