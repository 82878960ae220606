"""Shared test fixtures for vulntarget tests."""
import time
from pathlib import Path
from typing import List, Optional

import pytest
import yaml

from vulntarget.core.config import VTConfig, set_config
from vulntarget.core.state_store import DeploymentLedger
from vulntarget.models.status import ProviderStatus, ServiceStatus
from vulntarget.models.template import Template
from vulntarget.services.providers.base import Provider

JUICE_SHOP_COMPOSE = """\
services:
  juice-shop:
    image: bkimminich/juice-shop:latest
    ports:
      - "3000:3000"
"""


def write_template(
    templates_dir: Path,
    template_id: str,
    name: str = "Demo Target",
    author: str = "tester",
    tags: Optional[List[str]] = None,
    technologies: Optional[List[str]] = None,
    providers: Optional[dict] = None,
    compose: Optional[str] = JUICE_SHOP_COMPOSE,
    descriptor_id: Optional[str] = None,
) -> Path:
    """Create ``templates_dir/<id>/index.yaml`` (and a compose file)."""
    template_dir = templates_dir / template_id
    template_dir.mkdir(parents=True, exist_ok=True)
    descriptor = {
        'id': descriptor_id if descriptor_id is not None else template_id,
        'info': {
            'name': name,
            'author': author,
            'description': f"{name} for testing",
            'technologies': technologies if technologies is not None else ['node'],
            'tags': tags if tags is not None else ['web', 'owasp'],
        },
        'providers': providers if providers is not None else {
            'docker-compose': {'path': 'docker-compose.yml'},
        },
    }
    (template_dir / "index.yaml").write_text(yaml.safe_dump(descriptor))
    if compose is not None:
        (template_dir / "docker-compose.yml").write_text(compose)
    return template_dir


def running_status(template_id: str, ports: Optional[List[str]] = None) -> ProviderStatus:
    """A one-service running project."""
    project = f"vt-{template_id}"
    service = ServiceStatus(id="c0ffee", name=f"{project}-app-1", service="app",
                            state="running", ports=ports or [])
    return ProviderStatus(project_name=project, services={"app": service})


class FakeProvider(Provider):
    """In-memory provider recording calls.

    ``statuses`` maps template IDs to the status to report; ``failures`` maps
    an operation name to the exception it raises.
    """

    def __init__(self, name="docker-compose", statuses=None, failures=None, delay=0.0):
        self._name = name
        self.statuses = statuses or {}
        self.failures = failures or {}
        self.delay = delay
        self.calls = []

    @property
    def name(self):
        return self._name

    def _call(self, operation: str, template: Template):
        self.calls.append((operation, template.id))
        if operation in self.failures:
            raise self.failures[operation]

    def start(self, template):
        self._call("start", template)
        self.statuses[template.id] = running_status(template.id, ["3000:3000/tcp"])

    def stop(self, template):
        self._call("stop", template)
        self.statuses.pop(template.id, None)

    def status(self, template):
        if self.delay:
            time.sleep(self.delay)
        self._call("status", template)
        return self.statuses.get(template.id) or ProviderStatus(project_name=f"vt-{template.id}")


@pytest.fixture(autouse=True)
def reset_config():
    """Keep the global config from leaking between tests."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def templates_dir(tmp_path):
    path = tmp_path / "templates"
    path.mkdir()
    return path


@pytest.fixture
def vt_config(tmp_path, templates_dir):
    """Config rooted in tmp_path with waits disabled."""
    return VTConfig(
        home_dir=tmp_path / "home",
        templates_dir=templates_dir,
        working_dir=tmp_path,
        wait_healthy=False,
        lock_timeout=1,
    )


@pytest.fixture
def ledger(vt_config):
    ledger = DeploymentLedger.open(vt_config.db_path, vt_config.bucket_name)
    yield ledger
    ledger.close()
