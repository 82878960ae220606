"""docker-compose provider: runs templates as compose projects on the local engine."""
import threading
from contextlib import contextmanager
from typing import Dict, Optional

from vulntarget.core.config import VTConfig
from vulntarget.core.errors import (
    AlreadyRunningError,
    ComposeLoadError,
    DeploymentError,
    NotRunningError,
    PathResolutionError,
    VTError,
)
from vulntarget.core.lock import deployment_lock
from vulntarget.core.logger import get_logger
from vulntarget.core.state_store import DeploymentLedger
from vulntarget.models.status import ProviderStatus
from vulntarget.models.template import Template
from vulntarget.services.docker_compose.analyzer import ComposeAnalyzer
from vulntarget.services.docker_compose.client import DockerClient
from vulntarget.services.docker_compose.deployer import ComposeDeployer, TeardownReport
from vulntarget.services.docker_compose.loader import ComposeLoader, apply_template_config
from vulntarget.services.docker_compose.project import ComposeProject
from vulntarget.services.docker_compose.resolver import PROVIDER_NAME, ComposeResolver, project_name_for
from vulntarget.services.providers.base import Provider

logger = get_logger(__name__)


class ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class DockerComposeProvider(Provider):
    """Provider that deploys a template's compose descriptor.

    Start and stop of the same template are serialized across processes by a
    file lock; the ledger records which templates are deployed.
    """

    def __init__(self, config: VTConfig, ledger: DeploymentLedger,
                 client: Optional[DockerClient] = None):
        """
        Args:
            config: Runtime configuration
            ledger: Deployment ledger
            client: Engine client (created from config when omitted)
        """
        self.config = config
        self.ledger = ledger
        self.client = client or DockerClient(timeout=config.docker_timeout,
                                             ping_timeout=config.ping_timeout)
        self.resolver = ComposeResolver(config.templates_dir, provider_name=PROVIDER_NAME)
        self.loader = ComposeLoader(environment=config.environment)
        self.analyzer = ComposeAnalyzer()
        self.deployer = ComposeDeployer(self.client, stop_timeout=config.stop_timeout,
                                        remove_orphans=config.remove_orphans)
        self._projects: Dict[str, ComposeProject] = {}
        self._projects_lock = ReadWriteLock()

    @property
    def name(self) -> str:
        return PROVIDER_NAME

    def load_project(self, template: Template) -> ComposeProject:
        """Resolve, load and label the template's compose project.

        Raises:
            PathResolutionError: If the descriptor path is unsafe or missing
            ComposeLoadError: If the descriptor is invalid
        """
        compose_path = self.resolver.resolve(template)
        project = self.loader.load(compose_path, project_name_for(template.id))
        apply_template_config(project, template)
        self.analyzer.analyze_and_log(project)
        with self._projects_lock.write():
            self._projects[template.id] = project
        logger.debug(f"Loaded project {project.to_summary()}")
        return project

    def cached_project(self, template_id: str) -> Optional[ComposeProject]:
        with self._projects_lock.read():
            return self._projects.get(template_id)

    def start(self, template: Template) -> None:
        with deployment_lock(self.config.lock_dir, self.name, template.id,
                             timeout=self.config.lock_timeout):
            if self.ledger.deployment_exists(self.name, template.id):
                raise AlreadyRunningError(self.name, template.id)

            project = self.load_project(template)
            self.client.ping()

            try:
                self.deployer.up(project, timeout=self.config.compose_timeout)
                if self.config.wait_healthy:
                    self.deployer.wait_for_healthy(project, timeout=self.config.health_timeout)
                self.ledger.add_new_deployment(self.name, template.id)
            except Exception as e:
                logger.error(f"Failed to start {template.id}: {e}")
                self._teardown_after_failure(project)
                if isinstance(e, VTError):
                    raise
                raise DeploymentError(f"failed to start {template.id}: {e}") from e

        logger.info(f"Started {template.id} on {self.name}")

    def _teardown_after_failure(self, project: ComposeProject):
        try:
            self.deployer.down(project.name, remove_volumes=self.config.remove_volumes)
        except Exception as e:
            logger.warning(f"[{project.name}] Cleanup after failed start incomplete: {e}")

    def stop(self, template: Template) -> TeardownReport:
        with deployment_lock(self.config.lock_dir, self.name, template.id,
                             timeout=self.config.lock_timeout):
            if not self.ledger.deployment_exists(self.name, template.id):
                raise NotRunningError(self.name, template.id)

            project_name = project_name_for(template.id)
            try:
                project_name = self.load_project(template).name
            except (PathResolutionError, ComposeLoadError) as e:
                # Resources are found by label, the descriptor is optional here
                logger.warning(f"Could not reload descriptor of {template.id}: {e}")

            self.client.ping()
            report = self.deployer.down(project_name, remove_volumes=self.config.remove_volumes)
            self.ledger.remove_deployment(self.name, template.id)
            with self._projects_lock.write():
                self._projects.pop(template.id, None)

        logger.info(f"Stopped {template.id} on {self.name}")
        return report

    def status(self, template: Template) -> ProviderStatus:
        status = self.client.project_status(project_name_for(template.id))
        project = self.cached_project(template.id)
        if project is not None:
            running = sum(1 for s in status.services.values() if s.running)
            status.message = f"{running}/{len(project.services)} services running"
        return status
