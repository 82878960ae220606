"""Structured representation of a loaded Docker Compose project."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

# Labels understood by the compose CLI; reused so `docker compose ls` sees our projects
LABEL_PROJECT = "com.docker.compose.project"
LABEL_SERVICE = "com.docker.compose.service"
LABEL_WORKING_DIR = "com.docker.compose.project.working_dir"
LABEL_CONFIG_FILES = "com.docker.compose.project.config_files"
LABEL_ONEOFF = "com.docker.compose.oneoff"
LABEL_CONTAINER_NUMBER = "com.docker.compose.container-number"
LABEL_NETWORK = "com.docker.compose.network"
LABEL_VOLUME = "com.docker.compose.volume"

# Labels identifying vulntarget-managed resources
LABEL_TEMPLATE = "vulnerable-target.template"
LABEL_AUTHOR = "vulnerable-target.author"
LABEL_MANAGED = "vulnerable-target.managed"

DEFAULT_NETWORK = "default"


@dataclass
class PortBinding:
    """A published port: host -> container."""
    target: int
    published: Optional[int] = None
    host_ip: str = ""
    protocol: str = "tcp"

    @property
    def container_port(self) -> str:
        return f"{self.target}/{self.protocol}"


@dataclass
class ServiceVolume:
    """A mount declared by a service."""
    type: str  # bind / volume / tmpfs
    target: str
    source: str = ""
    read_only: bool = False

    @property
    def is_bind(self) -> bool:
        return self.type == "bind"


@dataclass
class BuildConfig:
    context: str
    dockerfile: Optional[str] = None
    args: Dict[str, str] = field(default_factory=dict)


@dataclass
class HealthcheckConfig:
    test: List[str] = field(default_factory=list)
    interval: Optional[int] = None  # nanoseconds, as the engine API expects
    timeout: Optional[int] = None
    retries: Optional[int] = None
    start_period: Optional[int] = None
    disable: bool = False


@dataclass
class ServiceConfig:
    """One service of a compose project."""
    name: str
    image: Optional[str] = None
    build: Optional[BuildConfig] = None
    command: Optional[List[str]] = None
    entrypoint: Optional[List[str]] = None
    environment: Dict[str, str] = field(default_factory=dict)
    ports: List[PortBinding] = field(default_factory=list)
    volumes: List[ServiceVolume] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    networks: Dict[str, List[str]] = field(default_factory=dict)  # network -> aliases
    network_mode: Optional[str] = None
    privileged: bool = False
    cap_add: List[str] = field(default_factory=list)
    cap_drop: List[str] = field(default_factory=list)
    depends_on: List[str] = field(default_factory=list)
    restart: Optional[str] = None
    healthcheck: Optional[HealthcheckConfig] = None
    container_name: Optional[str] = None
    hostname: Optional[str] = None
    user: Optional[str] = None
    working_dir: Optional[str] = None
    tty: bool = False
    stdin_open: bool = False
    extra_hosts: Dict[str, str] = field(default_factory=dict)

    @property
    def has_healthcheck(self) -> bool:
        return self.healthcheck is not None and not self.healthcheck.disable


@dataclass
class NetworkConfig:
    name: str
    driver: str = "bridge"
    external: bool = False
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class VolumeConfig:
    name: str
    driver: Optional[str] = None
    external: bool = False
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class ComposeProject:
    """A compose descriptor after loading, interpolation and path resolution."""
    name: str
    working_dir: Path
    config_files: List[Path] = field(default_factory=list)
    services: Dict[str, ServiceConfig] = field(default_factory=dict)
    networks: Dict[str, NetworkConfig] = field(default_factory=dict)
    volumes: Dict[str, VolumeConfig] = field(default_factory=dict)
    environment: Dict[str, str] = field(default_factory=dict)

    def service_names(self) -> List[str]:
        return list(self.services)

    def network_name(self, key: str) -> str:
        """Engine-level name of a project network."""
        network = self.networks.get(key)
        if network is not None and network.external:
            return network.name
        return f"{self.name}_{key}"

    def volume_name(self, key: str) -> str:
        """Engine-level name of a project volume."""
        volume = self.volumes.get(key)
        if volume is not None and volume.external:
            return volume.name
        return f"{self.name}_{key}"

    def container_name(self, service: ServiceConfig) -> str:
        return service.container_name or f"{self.name}-{service.name}-1"

    def startup_order(self) -> List[str]:
        """Service names ordered so that dependencies come first.

        Raises:
            ValueError: On unknown dependencies or dependency cycles
        """
        ordered: List[str] = []
        visiting: Dict[str, bool] = {}

        def visit(name: str, chain: List[str]):
            if visiting.get(name) is True:
                return
            if visiting.get(name) is False:
                raise ValueError(f"dependency cycle: {' -> '.join(chain + [name])}")
            if name not in self.services:
                raise ValueError(f"service '{chain[-1]}' depends on undefined service '{name}'")
            visiting[name] = False
            for dep in self.services[name].depends_on:
                visit(dep, chain + [name])
            visiting[name] = True
            ordered.append(name)

        for name in self.services:
            visit(name, [])
        return ordered

    def to_summary(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'services': self.service_names(),
            'networks': list(self.networks),
            'volumes': list(self.volumes),
        }
