"""Collects live status of every catalog template for the monitor."""
import threading
import time
from datetime import datetime, timezone
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import List, Optional

from vulntarget.core.errors import RuntimeUnavailableError, VTError
from vulntarget.core.logger import get_logger
from vulntarget.core.template_loader import TemplateCatalog
from vulntarget.models.status import (
    HEALTH_UNKNOWN,
    STATE_STOPPED,
    ProviderStatus,
    endpoints_from_ports,
)
from vulntarget.models.template import Template
from vulntarget.services.providers.registry import ProviderRegistry

logger = get_logger(__name__)

STATE_UNKNOWN = "unknown"

SHORT_PROVIDER_NAMES = {"docker-compose": "dc"}


def short_provider_name(name: str) -> str:
    return SHORT_PROVIDER_NAMES.get(name, name)


@dataclass
class TargetStatus:
    """One row of the monitor: a template on one provider."""
    template: Template
    provider_name: str
    status: Optional[ProviderStatus] = None
    error: str = ""
    checked_at: Optional[datetime] = None

    @property
    def template_id(self) -> str:
        return self.template.id

    @property
    def key(self) -> str:
        return f"{self.provider_name}:{self.template.id}"

    @property
    def state(self) -> str:
        if self.error:
            return STATE_UNKNOWN
        return self.status.state if self.status else STATE_STOPPED

    @property
    def health(self) -> str:
        if self.error or self.status is None:
            return HEALTH_UNKNOWN
        return self.status.health

    @property
    def running(self) -> bool:
        return self.state == "running"

    @property
    def container_count(self) -> int:
        return len(self.status.services) if self.status else 0

    @property
    def ports(self) -> List[str]:
        return self.status.ports if self.status else []

    @property
    def endpoints(self) -> List[str]:
        return endpoints_from_ports(self.ports)


@dataclass
class Snapshot:
    """Result of one collection pass."""
    targets: List[TargetStatus] = field(default_factory=list)
    runtime_available: bool = True
    cancelled: bool = False


class StatusCollector:
    """Queries every provider for every listable template.

    Each query is bounded by ``timeout``. An unreachable runtime yields an
    empty snapshot rather than an error.
    """

    def __init__(self, catalog: TemplateCatalog, registry: ProviderRegistry, timeout: float = 2.0):
        self.catalog = catalog
        self.registry = registry
        self.timeout = timeout

    def targets(self) -> List[TargetStatus]:
        """Rows without any live data, in display order."""
        rows: List[TargetStatus] = []
        for template in sorted(self.catalog.listable(), key=lambda t: t.id):
            for provider_name in sorted(template.providers):
                if provider_name in self.registry:
                    rows.append(TargetStatus(template=template, provider_name=provider_name))
        return rows

    def collect(self, cancel: Optional[threading.Event] = None,
                deadline: Optional[float] = None) -> Snapshot:
        """Collect a snapshot.

        Args:
            cancel: Event checked between templates; set it to stop early
            deadline: ``time.monotonic()`` value after which collection stops

        Returns:
            Snapshot of every row collected before cancellation
        """
        snapshot = Snapshot()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vt-status")
        try:
            for row in self.targets():
                if (cancel is not None and cancel.is_set()) or \
                        (deadline is not None and time.monotonic() >= deadline):
                    snapshot.cancelled = True
                    break
                try:
                    row.status = self._query(executor, row)
                except RuntimeUnavailableError as e:
                    logger.debug(f"Container runtime unavailable: {e}")
                    return Snapshot(runtime_available=False)
                except FutureTimeout:
                    row.error = f"status query timed out after {self.timeout}s"
                    # A hung worker would block the next query
                    executor.shutdown(wait=False)
                    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vt-status")
                except VTError as e:
                    row.error = str(e)
                row.checked_at = datetime.now(timezone.utc)
                snapshot.targets.append(row)
        finally:
            executor.shutdown(wait=False)
        return snapshot

    def _query(self, executor: ThreadPoolExecutor, row: TargetStatus) -> ProviderStatus:
        provider = self.registry.require(row.provider_name)
        future = executor.submit(provider.status, row.template)
        return future.result(timeout=self.timeout)

