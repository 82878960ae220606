"""
Docker Compose descriptor loading.

Turns a compose YAML file into a ComposeProject:
1. Read the YAML document
2. Interpolate ``$VAR`` / ``${VAR}`` / ``${VAR:-default}`` / ``${VAR-default}``
3. Normalize short and long syntax (ports, volumes, environment, ...)
4. Resolve relative bind mounts and build contexts against the descriptor's directory
5. Force the project name so every template lives in its own namespace
"""
import os
import re
import shlex
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from vulntarget.core.errors import ComposeLoadError
from vulntarget.core.logger import get_logger
from vulntarget.models.template import Template
from vulntarget.services.docker_compose.project import (
    DEFAULT_NETWORK,
    LABEL_AUTHOR,
    LABEL_CONFIG_FILES,
    LABEL_MANAGED,
    LABEL_ONEOFF,
    LABEL_PROJECT,
    LABEL_SERVICE,
    LABEL_TEMPLATE,
    LABEL_WORKING_DIR,
    BuildConfig,
    ComposeProject,
    HealthcheckConfig,
    NetworkConfig,
    PortBinding,
    ServiceConfig,
    ServiceVolume,
    VolumeConfig,
)

logger = get_logger(__name__)

_VAR_PATTERN = re.compile(
    r'\$(?:(?P<escaped>\$)|\{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)(?:(?P<sep>:?-)(?P<default>[^}]*))?\}'
    r'|(?P<named>[A-Za-z_][A-Za-z0-9_]*))'
)
_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ns|us|ms|s|m|h)')
_DURATION_NS = {'ns': 1, 'us': 10**3, 'ms': 10**6, 's': 10**9, 'm': 60 * 10**9, 'h': 3600 * 10**9}


def interpolate(value: Any, environment: Mapping[str, str]) -> Any:
    """Recursively substitute variables in every string of a YAML document."""
    if isinstance(value, str):
        return _interpolate_str(value, environment)
    if isinstance(value, list):
        return [interpolate(item, environment) for item in value]
    if isinstance(value, dict):
        return {key: interpolate(item, environment) for key, item in value.items()}
    return value


def _interpolate_str(text: str, environment: Mapping[str, str]) -> str:
    def replace(match: re.Match) -> str:
        if match.group('escaped'):
            return '$'
        name = match.group('braced') or match.group('named')
        value = environment.get(name)
        sep = match.group('sep')
        if sep == ':-' and not value:
            return match.group('default') or ''
        if sep == '-' and value is None:
            return match.group('default') or ''
        if value is None:
            logger.warning(f"Variable '{name}' is not set, substituting an empty string")
            return ''
        return value

    return _VAR_PATTERN.sub(replace, text)


def parse_duration(value: Any) -> Optional[int]:
    """Parse a compose duration (``30s``, ``1m30s``, ``500ms``) into nanoseconds."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value * 10**9)
    text = str(value).strip()
    parts = _DURATION_PART.findall(text)
    if not parts or ''.join(n + u for n, u in parts) != text:
        raise ComposeLoadError(f"invalid duration: {value!r}")
    return int(sum(float(n) * _DURATION_NS[u] for n, u in parts))


class ComposeLoader:
    """Loads compose descriptors into ComposeProject instances."""

    def __init__(self, environment: Optional[Mapping[str, str]] = None):
        """
        Args:
            environment: Extra variables for interpolation; they override
                the process environment
        """
        self.environment: Dict[str, str] = dict(os.environ)
        if environment:
            self.environment.update(environment)

    def load(self, compose_path: Path, project_name: str) -> ComposeProject:
        """Load a compose file.

        Args:
            compose_path: Absolute path of the descriptor
            project_name: Name forced onto the project

        Returns:
            Fully normalized ComposeProject

        Raises:
            ComposeLoadError: If the file is unreadable or not a valid descriptor
        """
        compose_path = Path(compose_path)
        try:
            raw = yaml.safe_load(compose_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            raise ComposeLoadError(f"failed to read compose file {compose_path}: {e}") from e

        working_dir = compose_path.parent
        environment = dict(self.environment)
        environment['COMPOSE_PROJECT_NAME'] = project_name
        return self.load_dict(raw, project_name, working_dir, [compose_path], environment)

    def load_dict(
        self,
        raw: Any,
        project_name: str,
        working_dir: Path,
        config_files: Optional[List[Path]] = None,
        environment: Optional[Mapping[str, str]] = None,
    ) -> ComposeProject:
        """Build a project from an already parsed compose document."""
        if not isinstance(raw, dict) or not raw.get('services'):
            raise ComposeLoadError("invalid compose file: no services section found")
        if not isinstance(raw['services'], dict):
            raise ComposeLoadError("invalid compose file: services must be a mapping")

        environment = environment if environment is not None else self.environment
        data = interpolate(raw, environment)
        working_dir = Path(working_dir)

        project = ComposeProject(
            name=project_name,
            working_dir=working_dir,
            config_files=list(config_files or []),
            environment=dict(environment),
        )

        for name, spec in (data.get('networks') or {}).items():
            project.networks[name] = self._parse_network(name, spec or {})
        for name, spec in (data.get('volumes') or {}).items():
            project.volumes[name] = self._parse_volume_def(name, spec or {})
        for name, spec in data['services'].items():
            if not isinstance(spec, dict):
                raise ComposeLoadError(f"service '{name}' must be a mapping")
            project.services[name] = self._parse_service(name, spec, working_dir, environment)

        self._check_references(project)
        return project

    # -------------------- top-level sections --------------------

    def _parse_network(self, name: str, spec: dict) -> NetworkConfig:
        external = spec.get('external', False)
        external_name = name
        if isinstance(external, dict):
            external_name = external.get('name', name)
            external = True
        return NetworkConfig(
            name=spec.get('name', external_name),
            driver=spec.get('driver') or 'bridge',
            external=bool(external),
            labels=self._parse_mapping(spec.get('labels')),
        )

    def _parse_volume_def(self, name: str, spec: dict) -> VolumeConfig:
        external = spec.get('external', False)
        if isinstance(external, dict):
            external = True
        return VolumeConfig(
            name=spec.get('name', name),
            driver=spec.get('driver'),
            external=bool(external),
            labels=self._parse_mapping(spec.get('labels')),
        )

    # -------------------- services --------------------

    def _parse_service(self, name: str, spec: dict, working_dir: Path,
                       environment: Mapping[str, str]) -> ServiceConfig:
        service = ServiceConfig(name=name)
        service.image = spec.get('image')
        service.build = self._parse_build(spec.get('build'), working_dir, environment)
        service.command = self._parse_command(spec.get('command'))
        service.entrypoint = self._parse_command(spec.get('entrypoint'))
        service.environment = self._parse_mapping(spec.get('environment'), environment)
        service.labels = self._parse_mapping(spec.get('labels'))
        service.ports = [self._parse_port(p, name) for p in spec.get('ports') or []]
        service.volumes = [self._parse_mount(v, name, working_dir) for v in spec.get('volumes') or []]
        service.networks = self._parse_service_networks(spec.get('networks'))
        service.network_mode = spec.get('network_mode')
        service.privileged = bool(spec.get('privileged', False))
        service.cap_add = [str(c) for c in spec.get('cap_add') or []]
        service.cap_drop = [str(c) for c in spec.get('cap_drop') or []]
        service.depends_on = self._parse_depends_on(spec.get('depends_on'))
        service.restart = spec.get('restart')
        service.healthcheck = self._parse_healthcheck(spec.get('healthcheck'))
        service.container_name = spec.get('container_name')
        service.hostname = spec.get('hostname')
        service.user = str(spec['user']) if spec.get('user') is not None else None
        service.working_dir = spec.get('working_dir')
        service.tty = bool(spec.get('tty', False))
        service.stdin_open = bool(spec.get('stdin_open', False))
        service.extra_hosts = self._parse_extra_hosts(spec.get('extra_hosts'))
        return service

    def _parse_build(self, build: Any, working_dir: Path,
                     environment: Mapping[str, str]) -> Optional[BuildConfig]:
        if build is None:
            return None
        if isinstance(build, str):
            return BuildConfig(context=str((working_dir / build).resolve()))
        if isinstance(build, dict):
            context = build.get('context', '.')
            return BuildConfig(
                context=str((working_dir / context).resolve()),
                dockerfile=build.get('dockerfile'),
                args=self._parse_mapping(build.get('args'), environment),
            )
        raise ComposeLoadError(f"invalid build section: {build!r}")

    @staticmethod
    def _parse_command(command: Any) -> Optional[List[str]]:
        if command is None:
            return None
        if isinstance(command, str):
            return shlex.split(command)
        if isinstance(command, list):
            return [str(part) for part in command]
        raise ComposeLoadError(f"invalid command: {command!r}")

    @staticmethod
    def _parse_mapping(value: Any, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Accept both ``{KEY: value}`` and ``["KEY=value"]`` forms.

        Bare keys take their value from ``environ`` when given.
        """
        if not value:
            return {}
        result: Dict[str, str] = {}
        if isinstance(value, dict):
            for key, item in value.items():
                if item is None:
                    item = environ.get(key, '') if environ is not None else ''
                elif isinstance(item, bool):
                    item = 'true' if item else 'false'
                result[str(key)] = str(item)
            return result
        if isinstance(value, list):
            for entry in value:
                entry = str(entry)
                if '=' in entry:
                    key, item = entry.split('=', 1)
                else:
                    key, item = entry, (environ.get(entry, '') if environ is not None else '')
                result[key] = item
            return result
        raise ComposeLoadError(f"expected a mapping or list, got {value!r}")

    @staticmethod
    def _parse_port(port: Any, service: str) -> PortBinding:
        """Parse ``"8080:80"``, ``"127.0.0.1:8080:80/udp"``, ``80`` or the long syntax."""
        if isinstance(port, dict):
            try:
                published = port.get('published')
                return PortBinding(
                    target=int(port['target']),
                    published=int(published) if published not in (None, '') else None,
                    host_ip=str(port.get('host_ip', '')),
                    protocol=str(port.get('protocol', 'tcp')),
                )
            except (KeyError, ValueError) as e:
                raise ComposeLoadError(f"service '{service}': invalid port {port!r}") from e

        text = str(port)
        protocol = 'tcp'
        if '/' in text:
            text, protocol = text.rsplit('/', 1)
        parts = text.rsplit(':', 2)
        try:
            if len(parts) == 1:
                return PortBinding(target=int(parts[0]), protocol=protocol)
            if len(parts) == 2:
                published = int(parts[0]) if parts[0] else None
                return PortBinding(target=int(parts[1]), published=published, protocol=protocol)
            host_ip = parts[0].strip('[]')
            published = int(parts[1]) if parts[1] else None
            return PortBinding(target=int(parts[2]), published=published,
                               host_ip=host_ip, protocol=protocol)
        except ValueError as e:
            raise ComposeLoadError(
                f"service '{service}': invalid port {port!r} (ranges are not supported)"
            ) from e

    @staticmethod
    def _parse_mount(volume: Any, service: str, working_dir: Path) -> ServiceVolume:
        """Parse ``"./data:/data:ro"``, ``"named:/data"``, ``"/data"`` or the long syntax."""
        if isinstance(volume, dict):
            mount_type = volume.get('type', 'volume')
            source = str(volume.get('source', '') or '')
            target = volume.get('target')
            if not target:
                raise ComposeLoadError(f"service '{service}': volume without target {volume!r}")
            if mount_type == 'bind' and source:
                source = ComposeLoader._resolve_host_path(source, working_dir)
            return ServiceVolume(type=mount_type, source=source, target=str(target),
                                 read_only=bool(volume.get('read_only', False)))

        text = str(volume)
        parts = text.split(':')
        if len(parts) == 1:
            return ServiceVolume(type='volume', target=parts[0])

        source, target = parts[0], parts[1]
        read_only = len(parts) > 2 and 'ro' in parts[2].split(',')
        if source.startswith(('/', '.', '~')):
            return ServiceVolume(type='bind',
                                 source=ComposeLoader._resolve_host_path(source, working_dir),
                                 target=target, read_only=read_only)
        return ServiceVolume(type='volume', source=source, target=target, read_only=read_only)

    @staticmethod
    def _resolve_host_path(source: str, working_dir: Path) -> str:
        if source.startswith('~'):
            return str(Path(source).expanduser())
        if source.startswith('/'):
            return os.path.normpath(source)
        return str((working_dir / source).resolve())

    @staticmethod
    def _parse_service_networks(networks: Any) -> Dict[str, List[str]]:
        if not networks:
            return {}
        if isinstance(networks, list):
            return {str(n): [] for n in networks}
        if isinstance(networks, dict):
            return {
                str(name): [str(a) for a in ((cfg or {}).get('aliases') or [])]
                for name, cfg in networks.items()
            }
        raise ComposeLoadError(f"invalid networks section: {networks!r}")

    @staticmethod
    def _parse_depends_on(depends_on: Any) -> List[str]:
        if not depends_on:
            return []
        if isinstance(depends_on, (list, dict)):
            return [str(name) for name in depends_on]
        raise ComposeLoadError(f"invalid depends_on: {depends_on!r}")

    @staticmethod
    def _parse_healthcheck(healthcheck: Any) -> Optional[HealthcheckConfig]:
        if not healthcheck:
            return None
        if healthcheck.get('disable'):
            return HealthcheckConfig(disable=True)
        test = healthcheck.get('test') or []
        if isinstance(test, str):
            test = ['CMD-SHELL', test]
        return HealthcheckConfig(
            test=[str(t) for t in test],
            interval=parse_duration(healthcheck.get('interval')),
            timeout=parse_duration(healthcheck.get('timeout')),
            retries=healthcheck.get('retries'),
            start_period=parse_duration(healthcheck.get('start_period')),
        )

    @staticmethod
    def _parse_extra_hosts(extra_hosts: Any) -> Dict[str, str]:
        if not extra_hosts:
            return {}
        if isinstance(extra_hosts, dict):
            return {str(k): str(v) for k, v in extra_hosts.items()}
        result = {}
        for entry in extra_hosts:
            host, _, ip = str(entry).partition(':')
            result[host] = ip
        return result

    @staticmethod
    def _check_references(project: ComposeProject) -> None:
        for service in project.services.values():
            for network in service.networks:
                if network != DEFAULT_NETWORK and network not in project.networks:
                    raise ComposeLoadError(
                        f"service '{service.name}' refers to undefined network '{network}'"
                    )
            for volume in service.volumes:
                if volume.type == 'volume' and volume.source and volume.source not in project.volumes:
                    raise ComposeLoadError(
                        f"service '{service.name}' refers to undefined volume '{volume.source}'"
                    )
        try:
            project.startup_order()
        except ValueError as e:
            raise ComposeLoadError(str(e)) from e


def apply_template_config(project: ComposeProject, template: Template) -> ComposeProject:
    """Tag services with management labels and ensure the default network exists.

    The labels let the orchestrator find exactly the containers, networks and
    volumes it created for a template.
    """
    config_files = ",".join(str(f) for f in project.config_files)
    for name, service in project.services.items():
        service.labels.update({
            LABEL_TEMPLATE: template.id,
            LABEL_AUTHOR: template.info.author,
            LABEL_MANAGED: "true",
            LABEL_PROJECT: project.name,
            LABEL_SERVICE: name,
            LABEL_WORKING_DIR: str(project.working_dir),
            LABEL_CONFIG_FILES: config_files,
            LABEL_ONEOFF: "False",
        })
        if not service.networks and not service.network_mode:
            service.networks = {DEFAULT_NETWORK: []}

    if DEFAULT_NETWORK not in project.networks:
        project.networks[DEFAULT_NETWORK] = NetworkConfig(name=DEFAULT_NETWORK, driver="bridge")

    return project
