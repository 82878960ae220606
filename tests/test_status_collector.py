"""Tests for the status collector behind the monitor."""
import threading
import time

import pytest

from tests.conftest import FakeProvider, running_status
from vulntarget.core.errors import DeploymentError, RuntimeUnavailableError
from vulntarget.core.template_loader import TemplateCatalog
from vulntarget.models.template import Template
from vulntarget.services.providers import ProviderRegistry
from vulntarget.status.collector import StatusCollector, TargetStatus, short_provider_name


def make_template(template_id, providers=("docker-compose",)):
    return Template.model_validate({
        'id': template_id,
        'info': {'name': template_id.title(), 'author': 'tester', 'tags': ['web']},
        'providers': {name: {'path': 'docker-compose.yml'} for name in providers},
    })


@pytest.fixture
def catalog():
    return TemplateCatalog.from_templates([
        make_template("juice-shop"),
        make_template("dvwa", providers=("docker-compose", "aws")),
        make_template("example-template"),
    ])


def test_short_provider_name():
    assert short_provider_name("docker-compose") == "dc"
    assert short_provider_name("aws") == "aws"


def test_rows_skip_unregistered_providers_and_example(catalog):
    collector = StatusCollector(catalog, ProviderRegistry([FakeProvider()]))
    assert [row.key for row in collector.targets()] == [
        "docker-compose:dvwa",
        "docker-compose:juice-shop",
    ]


def test_collect_reports_each_row(catalog):
    provider = FakeProvider(statuses={"juice-shop": running_status("juice-shop", ["3000:3000/tcp"])})
    snapshot = StatusCollector(catalog, ProviderRegistry([provider])).collect()

    assert snapshot.runtime_available
    rows = {row.template_id: row for row in snapshot.targets}
    assert rows["juice-shop"].state == "running"
    assert rows["juice-shop"].health == "healthy"
    assert rows["juice-shop"].endpoints == ["http://127.0.0.1:3000"]
    assert rows["dvwa"].state == "stopped"
    assert rows["dvwa"].health == "unknown"
    assert rows["juice-shop"].container_count == 1
    assert all(row.checked_at is not None for row in snapshot.targets)


def test_runtime_unavailable_gives_empty_snapshot(catalog):
    provider = FakeProvider(failures={"status": RuntimeUnavailableError("Docker daemon is not reachable")})
    snapshot = StatusCollector(catalog, ProviderRegistry([provider])).collect()
    assert not snapshot.runtime_available
    assert snapshot.targets == []


def test_provider_error_marks_row_unknown(catalog):
    provider = FakeProvider(failures={"status": DeploymentError("Failed to list containers")})
    snapshot = StatusCollector(catalog, ProviderRegistry([provider])).collect()
    assert snapshot.runtime_available
    assert [row.state for row in snapshot.targets] == ["unknown", "unknown"]
    assert snapshot.targets[0].error == "Failed to list containers"


def test_slow_provider_times_out(catalog):
    provider = FakeProvider(delay=0.5)
    collector = StatusCollector(catalog, ProviderRegistry([provider]), timeout=0.05)

    start = time.monotonic()
    snapshot = collector.collect()

    assert time.monotonic() - start < 0.5 * len(snapshot.targets)
    assert all("timed out" in row.error for row in snapshot.targets)


def test_cancel_stops_early(catalog):
    cancel = threading.Event()
    cancel.set()
    snapshot = StatusCollector(catalog, ProviderRegistry([FakeProvider()])).collect(cancel=cancel)
    assert snapshot.cancelled
    assert snapshot.targets == []


def test_target_status_without_data():
    row = TargetStatus(template=make_template("juice-shop"), provider_name="docker-compose")
    assert row.state == "stopped"
    assert not row.running
    assert row.ports == []
