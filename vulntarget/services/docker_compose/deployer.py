"""
Docker Compose deployment through the Docker engine API.

Brings a loaded ComposeProject up and tears it down again:
1. Remove stale containers (and orphans) of the project
2. Create networks and named volumes
3. Pull or build images
4. Create containers in depends_on order and start them
5. Optionally wait for healthchecks

Teardown removes everything carrying the project label and records
per-resource failures instead of aborting.
"""
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from docker.errors import APIError, DockerException, NotFound
from docker.types import Mount

from vulntarget.core.errors import DeploymentError
from vulntarget.core.logger import get_logger
from vulntarget.services.docker_compose.client import DockerClient
from vulntarget.services.docker_compose.project import (
    LABEL_CONTAINER_NUMBER,
    LABEL_MANAGED,
    LABEL_NETWORK,
    LABEL_PROJECT,
    LABEL_SERVICE,
    LABEL_VOLUME,
    ComposeProject,
    ServiceConfig,
)

logger = get_logger(__name__)

HEALTH_POLL_INTERVAL = 1.0

TEARDOWN_ERRORS = (DeploymentError, DockerException, requests.exceptions.RequestException)


@dataclass
class TeardownReport:
    """What a teardown removed and what it failed to remove."""
    project_name: str
    containers: List[str] = field(default_factory=list)
    networks: List[str] = field(default_factory=list)
    volumes: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        text = (f"removed {len(self.containers)} containers, "
                f"{len(self.networks)} networks, {len(self.volumes)} volumes")
        if self.errors:
            text += f" ({len(self.errors)} errors)"
        return text


def restart_policy(restart: Optional[str]) -> Optional[Dict[str, Any]]:
    """Translate compose ``restart`` into an engine restart policy."""
    if not restart or restart == "no":
        return None
    name, _, retries = restart.partition(":")
    policy: Dict[str, Any] = {"Name": name}
    if retries:
        policy["MaximumRetryCount"] = int(retries)
    return policy


class ComposeDeployer:
    """
    Deploys compose projects to the local Docker engine.

    Example:
        deployer = ComposeDeployer(DockerClient())
        deployer.up(project)
        deployer.wait_for_healthy(project, timeout=60)
        report = deployer.down(project.name)
    """

    def __init__(self, client: DockerClient, stop_timeout: int = 10, remove_orphans: bool = True):
        """
        Args:
            client: Engine client
            stop_timeout: Grace period in seconds when stopping containers
            remove_orphans: Remove project containers not declared in the descriptor
        """
        self.client = client
        self.stop_timeout = stop_timeout
        self.remove_orphans = remove_orphans

    # -------------------- up --------------------

    def up(self, project: ComposeProject, timeout: Optional[float] = None) -> List[str]:
        """Create and start every service of the project.

        Args:
            project: Project to deploy
            timeout: Overall deadline in seconds, checked between steps

        Returns:
            Names of the started containers in startup order

        Raises:
            DeploymentError: If any step fails or the deadline passes
        """
        deadline = time.monotonic() + timeout if timeout else None

        def check_deadline(step: str):
            if deadline is not None and time.monotonic() > deadline:
                raise DeploymentError(f"[{project.name}] timed out after {timeout}s while {step}")

        logger.info(f"[{project.name}] Deploying {len(project.services)} services")
        self._remove_stale(project)

        check_deadline("preparing networks")
        self._create_networks(project)
        self._create_volumes(project)

        order = project.startup_order()
        for name in order:
            check_deadline("preparing images")
            self._ensure_image(project, project.services[name])

        started = []
        for name in order:
            check_deadline("starting containers")
            service = project.services[name]
            container = self._create_container(project, service)
            self.client.start_container(container)
            started.append(container.name)
            logger.info(f"[{project.name}] Started {container.name}")

        return started

    def _remove_stale(self, project: ComposeProject):
        for container in self.client.list_project_containers(project.name):
            service = (container.labels or {}).get(LABEL_SERVICE)
            if service in project.services:
                logger.debug(f"[{project.name}] Removing stale container {container.name}")
            elif self.remove_orphans:
                logger.info(f"[{project.name}] Removing orphan container {container.name}")
            else:
                continue
            try:
                self.client.remove_container(container)
            except NotFound:
                continue
            except APIError as e:
                raise DeploymentError(f"Failed to remove container {container.name}: {e}") from e

    def _create_networks(self, project: ComposeProject):
        for key, network in project.networks.items():
            name = project.network_name(key)
            if self.client.get_network(name) is not None:
                continue
            if network.external:
                raise DeploymentError(f"external network {name} not found")
            labels = dict(network.labels)
            labels.update({LABEL_PROJECT: project.name, LABEL_NETWORK: key, LABEL_MANAGED: "true"})
            self.client.create_network(name, driver=network.driver, labels=labels)
            logger.debug(f"[{project.name}] Created network {name}")

    def _create_volumes(self, project: ComposeProject):
        for key, volume in project.volumes.items():
            name = project.volume_name(key)
            if self.client.get_volume(name) is not None:
                continue
            if volume.external:
                raise DeploymentError(f"external volume {name} not found")
            labels = dict(volume.labels)
            labels.update({LABEL_PROJECT: project.name, LABEL_VOLUME: key, LABEL_MANAGED: "true"})
            self.client.create_volume(name, driver=volume.driver, labels=labels)
            logger.debug(f"[{project.name}] Created volume {name}")

    def image_for(self, project: ComposeProject, service: ServiceConfig) -> str:
        """Image reference a service runs; built images default to ``<project>-<service>``."""
        return service.image or f"{project.name}-{service.name}"

    def _ensure_image(self, project: ComposeProject, service: ServiceConfig):
        image = self.image_for(project, service)
        if service.build is not None:
            self.client.build_image(image, service.build.context,
                                    dockerfile=service.build.dockerfile, args=service.build.args)
            return
        if not service.image:
            raise DeploymentError(f"service '{service.name}' has neither image nor build configuration")
        if not self.client.image_exists(image):
            self.client.pull_image(image)

    def container_config(self, project: ComposeProject, service: ServiceConfig) -> Dict[str, Any]:
        """Build keyword arguments for ``containers.create()``."""
        labels = dict(service.labels)
        labels.setdefault(LABEL_PROJECT, project.name)
        labels.setdefault(LABEL_SERVICE, service.name)
        labels[LABEL_CONTAINER_NUMBER] = "1"

        config: Dict[str, Any] = {
            "image": self.image_for(project, service),
            "name": project.container_name(service),
            "labels": labels,
            "environment": dict(service.environment),
            "tty": service.tty,
            "stdin_open": service.stdin_open,
        }
        if service.command is not None:
            config["command"] = service.command
        if service.entrypoint is not None:
            config["entrypoint"] = service.entrypoint
        if service.hostname:
            config["hostname"] = service.hostname
        if service.user:
            config["user"] = service.user
        if service.working_dir:
            config["working_dir"] = service.working_dir
        if service.privileged:
            config["privileged"] = True
        if service.cap_add:
            config["cap_add"] = service.cap_add
        if service.cap_drop:
            config["cap_drop"] = service.cap_drop
        if service.extra_hosts:
            config["extra_hosts"] = service.extra_hosts

        policy = restart_policy(service.restart)
        if policy:
            config["restart_policy"] = policy

        if service.healthcheck is not None:
            if service.healthcheck.disable:
                config["healthcheck"] = {"test": ["NONE"]}
            else:
                healthcheck: Dict[str, Any] = {"test": service.healthcheck.test}
                for key in ("interval", "timeout", "retries", "start_period"):
                    value = getattr(service.healthcheck, key)
                    if value is not None:
                        healthcheck[key] = value
                config["healthcheck"] = healthcheck

        if service.ports:
            ports: Dict[str, Any] = {}
            for port in service.ports:
                if port.host_ip:
                    ports[port.container_port] = (port.host_ip, port.published)
                else:
                    ports[port.container_port] = port.published
            config["ports"] = ports

        mounts = []
        for volume in service.volumes:
            source = volume.source
            if volume.type == "volume" and source:
                source = project.volume_name(source)
            mounts.append(Mount(target=volume.target, source=source or None,
                                type=volume.type, read_only=volume.read_only))
        if mounts:
            config["mounts"] = mounts

        if service.network_mode:
            mode = service.network_mode
            if mode.startswith("service:"):
                target = project.services.get(mode.split(":", 1)[1])
                if target is None:
                    raise DeploymentError(f"service '{service.name}' uses unknown {mode}")
                mode = f"container:{project.container_name(target)}"
            config["network_mode"] = mode
        elif service.networks:
            config["network"] = project.network_name(next(iter(service.networks)))

        return config

    def _create_container(self, project: ComposeProject, service: ServiceConfig):
        config = self.container_config(project, service)
        container = self.client.create_container(**config)
        if service.network_mode:
            return container

        # Attach with aliases so services resolve each other by name
        for index, (key, aliases) in enumerate(service.networks.items()):
            network = self.client.get_network(project.network_name(key))
            if network is None:
                raise DeploymentError(f"network {project.network_name(key)} not found")
            try:
                if index == 0:
                    network.disconnect(container)
                network.connect(container, aliases=[service.name] + list(aliases))
            except APIError as e:
                raise DeploymentError(
                    f"Failed to attach {container.name} to {network.name}: {e}"
                ) from e
        return container

    # -------------------- health --------------------

    def wait_for_healthy(self, project: ComposeProject, timeout: float = 60,
                         poll_interval: float = HEALTH_POLL_INTERVAL) -> bool:
        """Poll until every running service is healthy.

        Returns:
            True if healthy before the timeout, False otherwise
        """
        deadline = time.monotonic() + timeout
        while True:
            status = self.client.project_status(project.name)
            if status.services and status.healthy:
                logger.info(f"[{project.name}] All services healthy")
                return True
            if time.monotonic() >= deadline:
                unhealthy = [s.service for s in status.services.values() if not s.healthy]
                logger.warning(
                    f"[{project.name}] Services not healthy after {timeout}s: {', '.join(unhealthy) or 'none running'}"
                )
                return False
            time.sleep(poll_interval)

    # -------------------- down --------------------

    def down(self, project_name: str, remove_volumes: bool = True) -> TeardownReport:
        """Stop and remove everything the project created.

        Per-resource failures are logged and collected; the batch continues.
        """
        report = TeardownReport(project_name=project_name)

        for container in self.client.list_project_containers(project_name):
            if container.status == "running":
                try:
                    self.client.stop_container(container, timeout=self.stop_timeout)
                except NotFound:
                    pass
                except TEARDOWN_ERRORS as e:
                    logger.warning(f"[{project_name}] Failed to stop {container.name}, forcing removal: {e}")
            try:
                self.client.remove_container(container, volumes=remove_volumes)
                report.containers.append(container.name)
            except NotFound:
                report.containers.append(container.name)
            except TEARDOWN_ERRORS as e:
                self._record(report, f"Failed to remove container {container.name}: {e}")

        try:
            networks = self.client.list_project_networks(project_name)
        except DeploymentError as e:
            self._record(report, str(e))
            networks = []
        for network in networks:
            try:
                network.remove()
                report.networks.append(network.name)
            except NotFound:
                report.networks.append(network.name)
            except TEARDOWN_ERRORS as e:
                self._record(report, f"Failed to remove network {network.name}: {e}")

        if remove_volumes:
            try:
                volumes = self.client.list_project_volumes(project_name)
            except DeploymentError as e:
                self._record(report, str(e))
                volumes = []
            for volume in volumes:
                try:
                    volume.remove(force=True)
                    report.volumes.append(volume.name)
                except NotFound:
                    report.volumes.append(volume.name)
                except TEARDOWN_ERRORS as e:
                    self._record(report, f"Failed to remove volume {volume.name}: {e}")

        logger.info(f"[{project_name}] Teardown: {report.summary()}")
        return report

    @staticmethod
    def _record(report: TeardownReport, message: str):
        logger.warning(f"[{report.project_name}] {message}")
        report.errors.append(message)
