"""
Compose descriptor resolution.

Maps a template to the compose file that describes it and to the engine
namespace (project name) its resources live in.
"""
from pathlib import Path

from vulntarget.core.errors import PathResolutionError
from vulntarget.core.logger import get_logger
from vulntarget.core.validator import has_traversal, is_absolute_path, normalize_id
from vulntarget.models.template import Template

logger = get_logger(__name__)

PROVIDER_NAME = "docker-compose"
PROJECT_PREFIX = "vt-"


def project_name_for(template_id: str) -> str:
    """Derive the project name of a template: ``vt-<id>``, lower-case, hyphenated.

    Example:
        >>> project_name_for("Juice_Shop")
        'vt-juice-shop'
    """
    return f"{PROJECT_PREFIX}{normalize_id(template_id)}"


class ComposeResolver:
    """Resolves the compose file of a template under the templates directory."""

    def __init__(self, templates_dir: Path, provider_name: str = PROVIDER_NAME):
        """
        Args:
            templates_dir: Root holding one directory per template
            provider_name: Key of the provider section in the template descriptor
        """
        self.templates_dir = Path(templates_dir)
        self.provider_name = provider_name

    def resolve(self, template: Template) -> Path:
        """Return the absolute path of the template's compose file.

        Args:
            template: Template whose descriptor to locate

        Returns:
            Path to an existing regular file inside the template directory

        Raises:
            PathResolutionError: If the path is missing, unsafe or not a file
        """
        relative = template.provider_path(self.provider_name)
        if not relative:
            raise PathResolutionError(
                f"template '{template.id}' has no {self.provider_name} provider path"
            )
        if is_absolute_path(relative):
            raise PathResolutionError(
                f"template '{template.id}': absolute compose paths are not allowed: {relative}"
            )
        if has_traversal(relative):
            raise PathResolutionError(
                f"template '{template.id}': compose path escapes the template directory: {relative}"
            )

        template_dir = (self.templates_dir / template.id).resolve()
        compose_path = (template_dir / relative).resolve()
        # Symlinks may still point outside
        if template_dir not in compose_path.parents:
            raise PathResolutionError(
                f"template '{template.id}': compose path escapes the template directory: {relative}"
            )
        if not compose_path.exists():
            raise PathResolutionError(f"compose file not found: {compose_path}")
        if not compose_path.is_file():
            raise PathResolutionError(f"compose path is not a regular file: {compose_path}")

        logger.debug(f"Resolved compose file for {template.id}: {compose_path}")
        return compose_path
