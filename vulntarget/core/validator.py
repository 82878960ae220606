"""Template descriptor validation."""
import posixpath
import re
from pathlib import PurePosixPath, PureWindowsPath
from typing import List

from vulntarget.core.errors import TemplateValidationError
from vulntarget.core.logger import get_logger
from vulntarget.models.template import ProviderConfig, Template

logger = get_logger(__name__)

TEMPLATE_ID_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.-]*$')
ALLOWED_PROVIDER_EXTENSIONS = ('.yml', '.yaml')


def is_absolute_path(path: str) -> bool:
    """True for POSIX absolute paths and Windows drive/UNC paths."""
    return PurePosixPath(path).is_absolute() or PureWindowsPath(path).is_absolute()


def has_traversal(path: str) -> bool:
    """True if any segment of the path is ``..``."""
    parts = re.split(r'[\\/]+', path)
    return '..' in parts


def normalize_id(template_id: str) -> str:
    """Lower-case an ID and replace every character outside ``[a-z0-9-]`` with ``-``.

    The catalog rejects IDs that normalize to the same value.
    """
    return re.sub(r'[^a-z0-9-]', '-', template_id.lower())


class TemplateValidator:
    """Validates template descriptors before they enter the catalog."""

    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate(self, template: Template) -> bool:
        """Validate template structure and values.

        Returns:
            True if no errors were found. Warnings never fail validation.
        """
        self.errors = []
        self.warnings = []

        if not template.id:
            self.errors.append("id can not be empty")
            return False

        if not TEMPLATE_ID_PATTERN.fullmatch(template.id):
            self.errors.append(f"template '{template.id}': id contains invalid characters")

        if not template.providers:
            self.errors.append(f"template '{template.id}': no providers specified in the template")

        for name, provider_config in template.providers.items():
            self._validate_provider(template.id, name, provider_config)

        self._validate_info(template)

        return len(self.errors) == 0

    def _validate_provider(self, template_id: str, name: str, config: ProviderConfig):
        """Validate a single provider entry."""
        prefix = f"template '{template_id}', provider '{name}'"
        path = config.path

        if not path:
            self.errors.append(f"{prefix}: path is empty")
            return

        if is_absolute_path(path):
            self.errors.append(f"{prefix}: absolute paths are not allowed")
            return

        if has_traversal(path):
            self.errors.append(f"{prefix}: path contains invalid '..' segments")
            return

        ext = posixpath.splitext(path)[1]
        if ext not in ALLOWED_PROVIDER_EXTENSIONS:
            self.errors.append(
                f"{prefix}: provider file must have one of the allowed extensions: "
                f"{', '.join(ALLOWED_PROVIDER_EXTENSIONS)}"
            )

    def _validate_info(self, template: Template):
        """Missing metadata only degrades listings, so it is reported as warnings."""
        info = template.info
        if not info.name:
            self.warnings.append(f"template '{template.id}': name is empty")
        if not info.author:
            self.warnings.append(f"template '{template.id}': author is empty")
        if not info.tags:
            self.warnings.append(f"template '{template.id}': no tags specified")

    def get_errors(self) -> List[str]:
        """Return list of validation errors."""
        return self.errors

    def get_warnings(self) -> List[str]:
        """Return list of validation warnings."""
        return self.warnings


def validate_template(template: Template) -> Template:
    """Validate a template and return it unchanged.

    Raises:
        TemplateValidationError: If any rule is violated
    """
    validator = TemplateValidator()
    if not validator.validate(template):
        errors = validator.get_errors()
        raise TemplateValidationError(errors[0], template_id=template.id or None, errors=errors)
    for warning in validator.get_warnings():
        logger.debug(warning)
    return template
