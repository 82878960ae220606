"""
Tests for Docker Compose analyzer.
"""

import logging

import pytest

from vulntarget.services.docker_compose.analyzer import ComposeAnalyzer
from vulntarget.services.docker_compose.loader import ComposeLoader


@pytest.fixture
def analyzer():
    """Create analyzer instance."""
    return ComposeAnalyzer()


def load(tmp_path, text):
    compose_file = tmp_path / "docker-compose.yml"
    compose_file.write_text(text)
    return ComposeLoader().load(compose_file, "vt-lab")


def test_clean_project(analyzer, tmp_path):
    project = load(tmp_path, """
services:
  app:
    image: myapp:latest
    ports:
      - "8080:8080"
    volumes:
      - ./data:/app/data
""")
    report = analyzer.analyze(project)
    assert report.clean
    assert report.project == "vt-lab"


def test_risky_service(analyzer, tmp_path):
    project = load(tmp_path, """
services:
  escape:
    image: alpine
    privileged: true
    network_mode: host
    cap_add:
      - CAP_SYS_ADMIN
      - NET_BIND_SERVICE
    volumes:
      - /var/run/docker.sock:/var/run/docker.sock
      - /etc/:/host-etc:ro
""")
    report = analyzer.analyze(project)

    assert len(report.by_kind("privileged")) == 1
    assert len(report.by_kind("host-network")) == 1
    capabilities = report.by_kind("capability")
    assert [f.message for f in capabilities] == ["adds dangerous capability CAP_SYS_ADMIN"]
    assert len(report.by_kind("sensitive-mount")) == 2
    assert set(report.to_dict()) == {"escape"}


def test_service_without_image_or_build(analyzer, tmp_path):
    project = load(tmp_path, """
services:
  ghost:
    command: sleep infinity
  built:
    build: .
""")
    report = analyzer.analyze(project)
    assert [f.service for f in report.by_kind("no-image")] == ["ghost"]


def test_named_volumes_are_not_host_paths(analyzer, tmp_path):
    project = load(tmp_path, """
services:
  db:
    image: postgres
    volumes:
      - data:/etc
volumes:
  data: {}
""")
    assert analyzer.analyze(project).clean


def test_findings_are_logged_as_warnings(analyzer, tmp_path, caplog):
    project = load(tmp_path, "services:\n  app:\n    image: x\n    privileged: true\n")
    with caplog.at_level(logging.WARNING):
        report = analyzer.analyze_and_log(project)
    assert not report.clean
    assert "service 'app': runs in privileged mode" in caplog.text
