"""
Docker Compose security analyzer.

Inspects a loaded project and reports risky settings:
- Privileged services
- Host network mode
- Dangerous capabilities
- Services with neither image nor build
- Bind mounts of sensitive host paths

Findings are warnings only. Vulnerable labs are expected to be risky, so
nothing here blocks a start.
"""
import posixpath
from dataclasses import dataclass, field
from typing import Dict, List

from vulntarget.core.logger import get_logger
from vulntarget.services.docker_compose.project import ComposeProject, ServiceConfig

logger = get_logger(__name__)

DANGEROUS_CAPABILITIES = {"SYS_ADMIN", "NET_ADMIN", "SYS_PTRACE", "SYS_MODULE", "DAC_READ_SEARCH", "ALL"}
SENSITIVE_HOST_PATHS = {"/", "/etc", "/sys", "/proc", "/dev", "/var/run/docker.sock"}


@dataclass
class SecurityFinding:
    """One risky setting found in a service."""
    service: str
    kind: str  # privileged / host-network / capability / no-image / sensitive-mount
    message: str

    def __str__(self) -> str:
        return f"service '{self.service}': {self.message}"


@dataclass
class SecurityReport:
    """All findings for a project."""
    project: str
    findings: List[SecurityFinding] = field(default_factory=list)

    def add(self, service: str, kind: str, message: str):
        self.findings.append(SecurityFinding(service=service, kind=kind, message=message))

    def by_kind(self, kind: str) -> List[SecurityFinding]:
        return [f for f in self.findings if f.kind == kind]

    @property
    def clean(self) -> bool:
        return not self.findings

    def to_dict(self) -> Dict[str, List[str]]:
        """Group finding messages by service (for CLI/debugging)."""
        grouped: Dict[str, List[str]] = {}
        for finding in self.findings:
            grouped.setdefault(finding.service, []).append(finding.message)
        return grouped


class ComposeAnalyzer:
    """Analyzes compose projects for settings that weaken host isolation."""

    def analyze(self, project: ComposeProject) -> SecurityReport:
        """Collect findings for every service of the project."""
        report = SecurityReport(project=project.name)
        for name in project.service_names():
            self._check_service(project.services[name], report)
        return report

    def analyze_and_log(self, project: ComposeProject) -> SecurityReport:
        """Analyze and emit one warning per finding."""
        report = self.analyze(project)
        for finding in report.findings:
            logger.warning(f"[{project.name}] {finding}")
        return report

    def _check_service(self, service: ServiceConfig, report: SecurityReport):
        if service.privileged:
            report.add(service.name, "privileged", "runs in privileged mode")

        if service.network_mode == "host":
            report.add(service.name, "host-network", "uses host network mode")

        for cap in service.cap_add:
            normalized = cap.upper()
            if normalized.startswith("CAP_"):
                normalized = normalized[4:]
            if normalized in DANGEROUS_CAPABILITIES:
                report.add(service.name, "capability", f"adds dangerous capability {cap}")

        if not service.image and service.build is None:
            report.add(service.name, "no-image", "has neither image nor build configuration")

        for volume in service.volumes:
            if not volume.is_bind or not volume.source:
                continue
            source = posixpath.normpath(volume.source)
            if source in SENSITIVE_HOST_PATHS:
                report.add(service.name, "sensitive-mount",
                           f"mounts sensitive host path {volume.source}")
