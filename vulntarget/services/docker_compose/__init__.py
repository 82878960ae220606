"""
Docker Compose orchestration services.

Loads compose descriptors, checks them for risky settings and drives the
Docker engine to bring template environments up and down.
"""

from .analyzer import ComposeAnalyzer, SecurityFinding, SecurityReport
from .deployer import ComposeDeployer, TeardownReport
from .loader import ComposeLoader, apply_template_config
from .project import ComposeProject
from .provider import DockerComposeProvider
from .resolver import ComposeResolver, project_name_for

__all__ = [
    "ComposeAnalyzer",
    "SecurityFinding",
    "SecurityReport",
    "ComposeDeployer",
    "TeardownReport",
    "ComposeLoader",
    "apply_template_config",
    "ComposeProject",
    "DockerComposeProvider",
    "ComposeResolver",
    "project_name_for",
]
