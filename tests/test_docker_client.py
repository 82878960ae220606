"""Tests for the Docker engine client wrapper."""
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests
from docker.errors import APIError, DockerException, ImageNotFound, NotFound

from vulntarget.core.errors import DeploymentError, RuntimeUnavailableError
from vulntarget.services.docker_compose.client import (
    DockerClient,
    _parse_created,
    format_ports,
    service_status_from_container,
)
from vulntarget.services.docker_compose.project import LABEL_PROJECT, LABEL_SERVICE


def fake_container(name="vt-lab-web-1", service="web", state="running", health=None, ports=None):
    container = MagicMock()
    container.name = name
    container.short_id = "abc123"
    container.status = state
    container.labels = {LABEL_SERVICE: service}
    attrs_state = {"Status": state}
    if health:
        attrs_state["Health"] = {"Status": health}
    container.attrs = {
        "Created": "2024-05-01T10:20:30.123456789Z",
        "State": attrs_state,
        "NetworkSettings": {"Ports": ports or {}},
    }
    return container


def test_format_ports():
    port_map = {
        "3000/tcp": [{"HostIp": "0.0.0.0", "HostPort": "3000"}, {"HostIp": "::", "HostPort": "3000"}],
        "9229/tcp": None,
        "53/udp": [{"HostIp": "127.0.0.1", "HostPort": "5353"}],
    }
    assert format_ports(port_map) == ["3000:3000/tcp", "5353:53/udp"]
    assert format_ports(None) == []


def test_service_status_from_container():
    status = service_status_from_container(fake_container(
        health="healthy",
        ports={"80/tcp": [{"HostIp": "0.0.0.0", "HostPort": "8080"}]},
    ))
    assert status.service == "web"
    assert status.state == "running"
    assert status.health == "healthy"
    assert status.ports == ["8080:80/tcp"]
    assert status.created.year == 2024
    assert status.healthy


def test_service_status_without_healthcheck():
    status = service_status_from_container(fake_container(state="exited"))
    assert status.health is None
    assert not status.running


class TestConnect:
    """Reachability of the daemon."""

    def test_unreachable_daemon(self):
        with patch("docker.from_env", side_effect=DockerException("no socket")):
            with pytest.raises(RuntimeUnavailableError) as exc_info:
                DockerClient().connect()
        assert "Docker daemon is not reachable" in str(exc_info.value)

    def test_ping_timeout(self):
        sdk = MagicMock()
        sdk.ping.side_effect = requests.exceptions.ReadTimeout("timed out")
        with patch("docker.from_env", return_value=sdk):
            with pytest.raises(RuntimeUnavailableError):
                DockerClient().connect()

    def test_connect_sets_api_timeout(self):
        sdk = MagicMock()
        with patch("docker.from_env", return_value=sdk) as from_env:
            client = DockerClient(timeout=90, ping_timeout=3)
            assert client.docker is sdk
        from_env.assert_called_once_with(timeout=3)
        assert sdk.api.timeout == 90

    def test_close_resets_client(self):
        sdk = MagicMock()
        client = DockerClient(client=sdk)
        client.close()
        sdk.close.assert_called_once()
        assert client._docker is None


class TestOperations:
    """SDK calls and error translation."""

    @pytest.fixture
    def sdk(self):
        return MagicMock()

    @pytest.fixture
    def client(self, sdk):
        return DockerClient(client=sdk)

    def test_list_project_containers_filters_by_label(self, client, sdk):
        client.list_project_containers("vt-lab")
        sdk.containers.list.assert_called_once_with(
            all=True, filters={"label": f"{LABEL_PROJECT}=vt-lab"},
        )

    def test_project_status(self, client, sdk):
        sdk.containers.list.return_value = [
            fake_container("vt-lab-web-1", "web"),
            fake_container("vt-lab-db-1", "db", health="unhealthy"),
        ]
        status = client.project_status("vt-lab")
        assert set(status.services) == {"web", "db"}
        assert status.summary() == "running (partial)"

    def test_list_failure_is_runtime_error(self, client, sdk):
        sdk.containers.list.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(RuntimeUnavailableError):
            client.list_project_containers("vt-lab")

    def test_image_exists(self, client, sdk):
        assert client.image_exists("nginx")
        sdk.images.get.side_effect = ImageNotFound("missing")
        assert not client.image_exists("nginx")

    def test_pull_failure(self, client, sdk):
        sdk.images.pull.side_effect = APIError("denied")
        with pytest.raises(DeploymentError) as exc_info:
            client.pull_image("private/image")
        assert "Failed to pull image private/image" in str(exc_info.value)

    def test_get_network_missing(self, client, sdk):
        sdk.networks.get.side_effect = NotFound("missing")
        assert client.get_network("vt-lab_default") is None

    def test_create_volume_without_driver(self, client, sdk):
        client.create_volume("vt-lab_data", labels={"a": "b"})
        sdk.volumes.create.assert_called_once_with(name="vt-lab_data", labels={"a": "b"})

    def test_stop_timeout_is_deployment_error(self, client):
        container = fake_container()
        container.stop.side_effect = requests.exceptions.ReadTimeout("timed out")
        with pytest.raises(DeploymentError) as exc_info:
            client.stop_container(container)
        assert "Failed to stop container vt-lab-web-1" in str(exc_info.value)

    def test_remove_of_missing_container_keeps_not_found(self, client):
        container = fake_container()
        container.remove.side_effect = NotFound("gone")
        with pytest.raises(NotFound):
            client.remove_container(container)

    def test_network_listing_errors_are_mapped(self, client, sdk):
        sdk.networks.list.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(RuntimeUnavailableError):
            client.list_project_networks("vt-lab")
        sdk.volumes.list.side_effect = APIError("boom")
        with pytest.raises(DeploymentError):
            client.list_project_volumes("vt-lab")


@pytest.mark.parametrize("value,expected", [
    ("2024-05-01T10:20:30.123456789Z", datetime(2024, 5, 1, 10, 20, 30, 123456, tzinfo=timezone.utc)),
    ("2024-05-01T12:20:30.5+02:00", datetime(2024, 5, 1, 10, 20, 30, 500000, tzinfo=timezone.utc)),
    ("2024-05-01T10:20:30", datetime(2024, 5, 1, 10, 20, 30, tzinfo=timezone.utc)),
    ("not a date", None),
    (None, None),
])
def test_created_timestamps_are_utc(value, expected):
    assert _parse_created(value) == expected
