"""Template loading and the in-memory template catalog."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

import yaml
from pydantic import ValidationError

from vulntarget.core.errors import TemplateNotFoundError, TemplateValidationError
from vulntarget.core.logger import get_logger
from vulntarget.core.validator import TemplateValidator, normalize_id, validate_template
from vulntarget.models.template import Template

logger = get_logger(__name__)

DESCRIPTOR_FILE = "index.yaml"
EXAMPLE_TEMPLATE_ID = "example-template"


class TemplateLoader:
    """Loads template descriptors from disk."""

    def __init__(self, templates_dir: Optional[Path] = None):
        """Initialize template loader.

        Args:
            templates_dir: Path to templates directory. Defaults to ./templates
        """
        if templates_dir is None:
            templates_dir = Path.cwd() / "templates"
        self.templates_dir = Path(templates_dir)

    def load(self, template_dir: Path) -> Template:
        """Load and validate the descriptor inside a template directory.

        Args:
            template_dir: Directory containing ``index.yaml``

        Returns:
            Validated Template

        Raises:
            TemplateValidationError: If the descriptor is missing, unreadable,
                structurally wrong or violates a validation rule
        """
        template_dir = Path(template_dir)
        descriptor = template_dir / DESCRIPTOR_FILE
        if not descriptor.is_file():
            raise TemplateValidationError(
                f"template '{template_dir.name}': {DESCRIPTOR_FILE} file not found",
                template_id=template_dir.name,
            )

        try:
            with open(descriptor, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            raise TemplateValidationError(
                f"template '{template_dir.name}': failed to read {DESCRIPTOR_FILE}: {e}",
                template_id=template_dir.name,
            ) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise TemplateValidationError(
                f"template '{template_dir.name}': {DESCRIPTOR_FILE} must be a mapping",
                template_id=template_dir.name,
            )

        try:
            template = Template.model_validate(data)
        except ValidationError as e:
            raise TemplateValidationError(
                f"template '{template_dir.name}': invalid descriptor: {e}",
                template_id=template_dir.name,
            ) from e

        return validate_template(template)

    def load_by_id(self, template_id: str) -> Template:
        """Load a single template from the catalog root, enforcing the ID rule."""
        template_dir = self.templates_dir / template_id
        template = self.load(template_dir)
        check_id_matches_directory(template, template_dir)
        return template

    def list_template_dirs(self) -> List[Path]:
        """List candidate template directories, sorted by name."""
        if not self.templates_dir.is_dir():
            return []
        return sorted(p for p in self.templates_dir.iterdir() if p.is_dir() and not p.name.startswith('.'))


def check_id_matches_directory(template: Template, template_dir: Path) -> None:
    """Raise if a template's ID differs from its directory name."""
    if template.id != template_dir.name:
        raise TemplateValidationError(
            f"template '{template_dir.name}': ID '{template.id}' does not match directory name",
            template_id=template.id,
        )


def check_distinct_ids(templates: Iterable[Template]) -> None:
    """Raise if two template IDs normalize to the same value."""
    seen: Dict[str, str] = {}
    for template in templates:
        other = seen.setdefault(normalize_id(template.id), template.id)
        if other != template.id:
            raise TemplateValidationError(
                f"template '{template.id}': ID collides with '{other}' "
                f"(both normalize to '{normalize_id(template.id)}')",
                template_id=template.id,
            )


class TemplateCatalog:
    """Read-only index of templates keyed by ID.

    Constructed once at startup and passed to every component that needs
    template lookups.
    """

    def __init__(self, templates: Optional[Dict[str, Template]] = None):
        self._templates: Dict[str, Template] = dict(templates or {})
        check_distinct_ids(self._templates.values())

    @classmethod
    def load(cls, templates_dir: Path, loader: Optional[TemplateLoader] = None) -> "TemplateCatalog":
        """Load every template below ``templates_dir``.

        Fails on the first invalid template so a corrupt catalog never
        serves partial data.

        Raises:
            TemplateValidationError: If any template is invalid
            FileNotFoundError: If the templates directory is missing
        """
        templates_dir = Path(templates_dir)
        if not templates_dir.is_dir():
            raise FileNotFoundError(f"templates directory not found: {templates_dir}")

        loader = loader or TemplateLoader(templates_dir)
        templates: Dict[str, Template] = {}
        for template_dir in loader.list_template_dirs():
            template = loader.load(template_dir)
            check_id_matches_directory(template, template_dir)
            templates[template.id] = template

        logger.debug(f"Loaded {len(templates)} templates from {templates_dir}")
        return cls(templates)

    @classmethod
    def from_templates(cls, templates: List[Template]) -> "TemplateCatalog":
        return cls({t.id: t for t in templates})

    def get(self, template_id: str) -> Template:
        """Return a template by ID.

        Raises:
            TemplateNotFoundError: If the ID is unknown
        """
        template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def all(self) -> List[Template]:
        return list(self._templates.values())

    def ids(self) -> List[str]:
        return list(self._templates.keys())

    def listable(self) -> List[Template]:
        """Templates shown to users (the bundled example is hidden)."""
        return [t for t in self.all() if t.id != EXAMPLE_TEMPLATE_ID]

    def filter(self, tag: Optional[str] = None) -> List[Template]:
        """Listable templates whose tags or technologies contain ``tag``."""
        templates = self.listable()
        if not tag:
            return templates
        return [t for t in templates if t.matches(tag)]

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)

    def __iter__(self) -> Iterator[Template]:
        return iter(self._templates.values())


@dataclass
class TemplateCheck:
    """Outcome of validating one template directory."""
    name: str
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ValidationReport:
    """Outcome of validating a whole templates directory."""
    checks: List[TemplateCheck] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        return [c.error for c in self.checks if not c.ok]

    @property
    def passed(self) -> int:
        return sum(1 for c in self.checks if c.ok)

    @property
    def failed(self) -> int:
        return sum(1 for c in self.checks if not c.ok)

    @property
    def ok(self) -> bool:
        return self.failed == 0


def validate_templates_dir(templates_dir: Path) -> ValidationReport:
    """Validate every template directory, continuing past failures.

    Args:
        templates_dir: Root directory containing one folder per template

    Returns:
        ValidationReport with one check per template directory
    """
    loader = TemplateLoader(templates_dir)
    report = ValidationReport()
    seen: Dict[str, Template] = {}

    for template_dir in loader.list_template_dirs():
        check = TemplateCheck(name=template_dir.name)
        try:
            template = loader.load(template_dir)
            check_id_matches_directory(template, template_dir)
            check_distinct_ids([seen.setdefault(normalize_id(template.id), template), template])
        except TemplateValidationError as e:
            check.error = str(e)
        else:
            validator = TemplateValidator()
            validator.validate(template)
            check.warnings = validator.get_warnings()
        report.checks.append(check)

    return report
