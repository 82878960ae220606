"""
Docker engine client.

Thin wrapper over the Docker SDK that:
- Bounds every call with a client timeout
- Checks daemon reachability up front (ping)
- Translates SDK failures into vulntarget errors
- Converts containers into ServiceStatus records
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import docker
import requests
from docker import DockerClient as SDKClient
from docker.errors import APIError, BuildError, DockerException, ImageNotFound, NotFound

from vulntarget.core.errors import DeploymentError, RuntimeUnavailableError
from vulntarget.core.logger import get_logger
from vulntarget.models.status import ProviderStatus, ServiceStatus
from vulntarget.services.docker_compose.project import LABEL_PROJECT, LABEL_SERVICE

logger = get_logger(__name__)


def _parse_created(value: Optional[str]) -> Optional[datetime]:
    """Parse the engine's RFC 3339 timestamps (nanosecond precision) as UTC."""
    if not value:
        return None
    text = value.strip()
    offset = ''
    if text.endswith(('Z', 'z')):
        text, offset = text[:-1], '+00:00'
    elif len(text) > 6 and text[-6] in '+-' and text[-3] == ':':
        text, offset = text[:-6], text[-6:]
    if '.' in text:
        head, fraction = text.split('.', 1)
        text = f"{head}.{fraction[:6].ljust(6, '0')}"
    try:
        parsed = datetime.fromisoformat(text + offset)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_ports(port_map: Optional[Dict[str, Any]]) -> List[str]:
    """Flatten ``NetworkSettings.Ports`` into ``host:container/proto`` strings.

    Example:
        >>> format_ports({"80/tcp": [{"HostIp": "0.0.0.0", "HostPort": "3000"}]})
        ['3000:80/tcp']
    """
    ports: List[str] = []
    for container_port, bindings in (port_map or {}).items():
        if not bindings:
            continue
        for binding in bindings:
            host_port = binding.get('HostPort')
            entry = f"{host_port}:{container_port}"
            if host_port and entry not in ports:
                ports.append(entry)
    return ports


def service_status_from_container(container) -> ServiceStatus:
    """Build a ServiceStatus from an SDK container object."""
    attrs = container.attrs or {}
    state = attrs.get('State') or {}
    labels = container.labels or {}
    health = (state.get('Health') or {}).get('Status')
    return ServiceStatus(
        id=container.short_id,
        name=container.name,
        service=labels.get(LABEL_SERVICE, container.name),
        state=state.get('Status') or container.status,
        status=state.get('Status', ''),
        health=health,
        ports=format_ports((attrs.get('NetworkSettings') or {}).get('Ports')),
        created=_parse_created(attrs.get('Created')),
    )


class DockerClient:
    """Docker engine access used by the compose orchestrator.

    The underlying SDK client is created lazily on first use.
    """

    def __init__(self, timeout: int = 120, ping_timeout: int = 5, client: Optional[SDKClient] = None):
        """
        Args:
            timeout: HTTP timeout in seconds for every API call
            ping_timeout: Timeout in seconds for the reachability check
            client: Pre-built SDK client (tests)
        """
        self.timeout = timeout
        self.ping_timeout = ping_timeout
        self._docker = client

    @property
    def docker(self) -> SDKClient:
        if self._docker is None:
            self._docker = self.connect()
        return self._docker

    def connect(self) -> SDKClient:
        """Create an SDK client from the environment and ping the daemon.

        Raises:
            RuntimeUnavailableError: If the daemon cannot be reached in time
        """
        try:
            client = docker.from_env(timeout=self.ping_timeout)
            client.ping()
        except (DockerException, requests.exceptions.RequestException) as e:
            raise RuntimeUnavailableError(f"Docker daemon is not reachable: {e}") from e
        client.api.timeout = self.timeout
        logger.debug(f"Connected to Docker daemon (timeout={self.timeout}s)")
        return client

    def ping(self) -> bool:
        try:
            return bool(self.docker.ping())
        except (DockerException, requests.exceptions.RequestException) as e:
            raise RuntimeUnavailableError(f"Docker daemon is not reachable: {e}") from e

    def close(self):
        if self._docker is not None:
            self._docker.close()
            self._docker = None

    # -------------------- containers --------------------

    def list_project_containers(self, project_name: str, all: bool = True) -> List[Any]:
        """List containers carrying the compose project label."""
        try:
            return self.docker.containers.list(
                all=all,
                filters={'label': f"{LABEL_PROJECT}={project_name}"},
            )
        except requests.exceptions.RequestException as e:
            raise RuntimeUnavailableError(f"Docker daemon is not reachable: {e}") from e
        except APIError as e:
            raise DeploymentError(f"Failed to list containers of {project_name}: {e}") from e

    def project_status(self, project_name: str) -> ProviderStatus:
        """Aggregate status of every container of a project."""
        status = ProviderStatus(project_name=project_name)
        for container in self.list_project_containers(project_name):
            service = service_status_from_container(container)
            status.services[service.service] = service
        return status

    def get_container(self, name: str):
        """Return a container by name or id, None if absent."""
        try:
            return self.docker.containers.get(name)
        except NotFound:
            return None

    def create_container(self, **config) -> Any:
        try:
            return self.docker.containers.create(**config)
        except APIError as e:
            raise DeploymentError(f"Failed to create container {config.get('name')}: {e}") from e

    def start_container(self, container) -> None:
        try:
            container.start()
        except APIError as e:
            raise DeploymentError(f"Failed to start container {container.name}: {e}") from e

    def stop_container(self, container, timeout: int = 10) -> None:
        try:
            container.stop(timeout=timeout)
        except NotFound:
            raise
        except (DockerException, requests.exceptions.RequestException) as e:
            raise DeploymentError(f"Failed to stop container {container.name}: {e}") from e

    def remove_container(self, container, volumes: bool = False) -> None:
        try:
            container.remove(force=True, v=volumes)
        except NotFound:
            raise
        except (DockerException, requests.exceptions.RequestException) as e:
            raise DeploymentError(f"Failed to remove container {container.name}: {e}") from e

    # -------------------- images --------------------

    def image_exists(self, image: str) -> bool:
        try:
            self.docker.images.get(image)
            return True
        except ImageNotFound:
            return False

    def pull_image(self, image: str) -> None:
        logger.info(f"Pulling image {image}")
        try:
            self.docker.images.pull(image)
        except APIError as e:
            raise DeploymentError(f"Failed to pull image {image}: {e}") from e

    def build_image(self, tag: str, context: str, dockerfile: Optional[str] = None,
                    args: Optional[Dict[str, str]] = None) -> None:
        logger.info(f"Building image {tag} from {context}")
        try:
            self.docker.images.build(
                path=context,
                dockerfile=dockerfile,
                buildargs=args or None,
                tag=tag,
                rm=True,
            )
        except (APIError, BuildError) as e:
            raise DeploymentError(f"Failed to build image {tag}: {e}") from e

    # -------------------- networks --------------------

    def get_network(self, name: str):
        try:
            return self.docker.networks.get(name)
        except NotFound:
            return None

    def create_network(self, name: str, driver: str = "bridge", labels: Optional[Dict[str, str]] = None):
        try:
            return self.docker.networks.create(name, driver=driver, labels=labels or {})
        except APIError as e:
            raise DeploymentError(f"Failed to create network {name}: {e}") from e

    def list_project_networks(self, project_name: str) -> List[Any]:
        try:
            return self.docker.networks.list(filters={'label': f"{LABEL_PROJECT}={project_name}"})
        except requests.exceptions.RequestException as e:
            raise RuntimeUnavailableError(f"Docker daemon is not reachable: {e}") from e
        except APIError as e:
            raise DeploymentError(f"Failed to list networks of {project_name}: {e}") from e

    # -------------------- volumes --------------------

    def get_volume(self, name: str):
        try:
            return self.docker.volumes.get(name)
        except NotFound:
            return None

    def create_volume(self, name: str, driver: Optional[str] = None, labels: Optional[Dict[str, str]] = None):
        try:
            kwargs: Dict[str, Any] = {'name': name, 'labels': labels or {}}
            if driver:
                kwargs['driver'] = driver
            return self.docker.volumes.create(**kwargs)
        except APIError as e:
            raise DeploymentError(f"Failed to create volume {name}: {e}") from e

    def list_project_volumes(self, project_name: str) -> List[Any]:
        try:
            return self.docker.volumes.list(filters={'label': f"{LABEL_PROJECT}={project_name}"})
        except requests.exceptions.RequestException as e:
            raise RuntimeUnavailableError(f"Docker daemon is not reachable: {e}") from e
        except APIError as e:
            raise DeploymentError(f"Failed to list volumes of {project_name}: {e}") from e
