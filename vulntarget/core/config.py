"""vulntarget runtime configuration and settings."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

_BOOL_TRUE = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _BOOL_TRUE


def _default_home() -> Path:
    return Path.home() / ".vt"


@dataclass
class VTConfig:
    """Runtime configuration for vulntarget operations.

    Attributes:
        home_dir: Per-user application directory holding the ledger and locks
        templates_dir: Root of the template catalog (default: ./templates)
        working_dir: Directory compose descriptors are resolved under
        db_file_name: File name of the deployment ledger inside home_dir
        bucket_name: Ledger bucket holding deployment records
        compose_timeout: Upper bound in seconds for bringing a project up
        health_timeout: Seconds to wait for services to report healthy
        wait_healthy: Wait for healthchecks after start
        stop_timeout: Grace period in seconds when stopping a container
        docker_timeout: HTTP timeout in seconds for Docker API calls
        ping_timeout: Timeout in seconds for the daemon reachability check
        status_timeout: Per-template timeout in seconds for monitor queries
        watch_interval: Seconds between monitor refreshes in watch mode
        toast_duration: Seconds a monitor notification stays visible
        lock_timeout: Seconds to wait for a concurrent start/stop to finish
        remove_volumes: Remove project volumes on stop
        remove_orphans: Remove containers of the project not in the descriptor
        environment: Extra variables for compose interpolation
    """

    home_dir: Path = field(default_factory=_default_home)
    templates_dir: Optional[Path] = None
    working_dir: Optional[Path] = None
    db_file_name: str = "deployments.db"
    bucket_name: str = "deployment"

    compose_timeout: int = 300  # 5 minutes to pull, create and start
    health_timeout: int = 60
    wait_healthy: bool = True
    stop_timeout: int = 10

    docker_timeout: int = 120
    ping_timeout: int = 5
    status_timeout: int = 2

    watch_interval: float = 2.0
    toast_duration: float = 3.0

    lock_timeout: int = 300

    remove_volumes: bool = True
    remove_orphans: bool = True

    environment: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.home_dir = Path(self.home_dir)
        if self.working_dir is None:
            self.working_dir = Path.cwd()
        self.working_dir = Path(self.working_dir)
        if self.templates_dir is None:
            self.templates_dir = self.working_dir / "templates"
        self.templates_dir = Path(self.templates_dir)

    @property
    def db_path(self) -> Path:
        """Location of the deployment ledger file."""
        return self.home_dir / self.db_file_name

    @property
    def lock_dir(self) -> Path:
        """Directory holding per-deployment lock files."""
        return self.home_dir / "locks"

    @classmethod
    def from_env(cls) -> "VTConfig":
        """Create config from environment variables.

        Environment variables:
            VT_HOME: Application directory (default: ~/.vt)
            VT_TEMPLATES_DIR: Template catalog root (default: ./templates)
            VT_COMPOSE_TIMEOUT: Compose up timeout in seconds
            VT_HEALTH_TIMEOUT: Healthcheck wait in seconds
            VT_WAIT_HEALTHY: Wait for healthchecks after start (true/false)
            VT_STOP_TIMEOUT: Container stop grace period in seconds
            VT_DOCKER_TIMEOUT: Docker API timeout in seconds
            VT_PING_TIMEOUT: Docker ping timeout in seconds
            VT_STATUS_TIMEOUT: Monitor per-template query timeout in seconds
            VT_WATCH_INTERVAL: Monitor refresh interval in seconds
            VT_LOCK_TIMEOUT: Deployment lock wait in seconds
            VT_REMOVE_VOLUMES: Remove volumes on stop (true/false)
            VT_REMOVE_ORPHANS: Remove orphan containers (true/false)

        Returns:
            VTConfig instance with values from environment or defaults
        """
        home = os.getenv("VT_HOME")
        templates_dir = os.getenv("VT_TEMPLATES_DIR")
        return cls(
            home_dir=Path(home) if home else _default_home(),
            templates_dir=Path(templates_dir) if templates_dir else None,
            compose_timeout=int(os.getenv("VT_COMPOSE_TIMEOUT", cls.compose_timeout)),
            health_timeout=int(os.getenv("VT_HEALTH_TIMEOUT", cls.health_timeout)),
            wait_healthy=_env_bool("VT_WAIT_HEALTHY", cls.wait_healthy),
            stop_timeout=int(os.getenv("VT_STOP_TIMEOUT", cls.stop_timeout)),
            docker_timeout=int(os.getenv("VT_DOCKER_TIMEOUT", cls.docker_timeout)),
            ping_timeout=int(os.getenv("VT_PING_TIMEOUT", cls.ping_timeout)),
            status_timeout=int(os.getenv("VT_STATUS_TIMEOUT", cls.status_timeout)),
            watch_interval=float(os.getenv("VT_WATCH_INTERVAL", cls.watch_interval)),
            lock_timeout=int(os.getenv("VT_LOCK_TIMEOUT", cls.lock_timeout)),
            remove_volumes=_env_bool("VT_REMOVE_VOLUMES", cls.remove_volumes),
            remove_orphans=_env_bool("VT_REMOVE_ORPHANS", cls.remove_orphans),
        )


# Global config instance (can be overridden)
_config: Optional[VTConfig] = None


def get_config() -> VTConfig:
    """Get the global vulntarget configuration.

    Returns:
        VTConfig instance (creates from environment if not set)
    """
    global _config
    if _config is None:
        _config = VTConfig.from_env()
    return _config


def set_config(config: Optional[VTConfig]):
    """Set the global vulntarget configuration.

    Args:
        config: VTConfig instance to use globally, or None to reset
    """
    global _config
    _config = config
