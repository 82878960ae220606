"""Tests for template validation, loading and the catalog."""
import pytest

from vulntarget.core.errors import TemplateNotFoundError, TemplateValidationError
from vulntarget.core.template_loader import (
    TemplateCatalog,
    TemplateLoader,
    validate_templates_dir,
)
from vulntarget.core.validator import TemplateValidator, has_traversal, is_absolute_path, validate_template
from vulntarget.models.template import Template

from tests.conftest import write_template


def make_template(template_id="juice-shop", path="docker-compose.yml", **info):
    info.setdefault('name', 'Juice Shop')
    info.setdefault('author', 'owasp')
    info.setdefault('tags', ['web'])
    return Template.model_validate({
        'id': template_id,
        'info': info,
        'providers': {'docker-compose': {'path': path}} if path is not None else {},
    })


class TestTemplateValidator:
    """Rules every descriptor must satisfy."""

    def test_valid_template(self):
        validator = TemplateValidator()
        assert validator.validate(make_template()) is True
        assert validator.get_errors() == []
        assert validator.get_warnings() == []

    def test_empty_id(self):
        validator = TemplateValidator()
        assert validator.validate(make_template(template_id="")) is False
        assert validator.get_errors() == ["id can not be empty"]

    @pytest.mark.parametrize("template_id", ["-leading", "has space", "semi;colon", "_under", "trailing\n"])
    def test_invalid_id_characters(self, template_id):
        validator = TemplateValidator()
        assert validator.validate(make_template(template_id=template_id)) is False
        assert "id contains invalid characters" in validator.get_errors()[0]

    @pytest.mark.parametrize("template_id", ["a", "dvwa", "Juice_Shop.v2-1"])
    def test_valid_id_characters(self, template_id):
        assert TemplateValidator().validate(make_template(template_id=template_id))

    def test_no_providers(self):
        validator = TemplateValidator()
        assert validator.validate(make_template(path=None)) is False
        assert validator.get_errors() == ["template 'juice-shop': no providers specified in the template"]

    @pytest.mark.parametrize("path,message", [
        ("", "path is empty"),
        ("/etc/compose.yml", "absolute paths are not allowed"),
        ("C:\\compose.yml", "absolute paths are not allowed"),
        ("../other/compose.yml", "path contains invalid '..' segments"),
        ("sub/../../compose.yml", "path contains invalid '..' segments"),
        ("compose.json", "provider file must have one of the allowed extensions: .yml, .yaml"),
    ])
    def test_provider_path_rules(self, path, message):
        validator = TemplateValidator()
        assert validator.validate(make_template(path=path)) is False
        assert validator.get_errors() == [
            f"template 'juice-shop', provider 'docker-compose': {message}"
        ]

    def test_nested_yaml_path_allowed(self):
        assert TemplateValidator().validate(make_template(path="deploy/compose.yaml"))

    def test_missing_metadata_is_warning_only(self):
        validator = TemplateValidator()
        template = make_template(name="", author="", tags=[])
        assert validator.validate(template) is True
        assert len(validator.get_warnings()) == 3

    def test_validate_template_raises_with_all_errors(self):
        template = Template.model_validate({
            'id': 'bad id',
            'providers': {'docker-compose': {'path': '/abs.yml'}},
        })
        with pytest.raises(TemplateValidationError) as exc_info:
            validate_template(template)
        assert len(exc_info.value.errors) == 2

    def test_path_helpers(self):
        assert is_absolute_path("/x.yml")
        assert is_absolute_path("\\\\server\\share\\x.yml")
        assert not is_absolute_path("x/y.yml")
        assert has_traversal("a\\..\\b.yml")
        assert not has_traversal("a..b/c.yml")


class TestTemplateLoader:
    """Reading descriptors from disk."""

    def test_load_template(self, templates_dir):
        template_dir = write_template(templates_dir, "juice-shop", technologies=["node", "angular"])
        template = TemplateLoader(templates_dir).load(template_dir)
        assert template.id == "juice-shop"
        assert template.info.technologies == ["node", "angular"]
        assert template.provider_path("docker-compose") == "docker-compose.yml"

    def test_targets_alias(self, templates_dir):
        template_dir = templates_dir / "dvwa"
        template_dir.mkdir()
        (template_dir / "index.yaml").write_text(
            "id: dvwa\n"
            "info:\n  name: DVWA\n  author: x\n  targets: [php, mysql]\n  tags: [web]\n"
            "providers:\n  docker-compose:\n    path: docker-compose.yml\n"
        )
        template = TemplateLoader(templates_dir).load(template_dir)
        assert template.info.technologies == ["php", "mysql"]

    def test_missing_descriptor(self, templates_dir):
        (templates_dir / "empty").mkdir()
        with pytest.raises(TemplateValidationError) as exc_info:
            TemplateLoader(templates_dir).load(templates_dir / "empty")
        assert "index.yaml file not found" in str(exc_info.value)

    def test_malformed_yaml(self, templates_dir):
        template_dir = templates_dir / "broken"
        template_dir.mkdir()
        (template_dir / "index.yaml").write_text("id: [unclosed\n")
        with pytest.raises(TemplateValidationError):
            TemplateLoader(templates_dir).load(template_dir)

    def test_load_by_id_checks_directory_name(self, templates_dir):
        write_template(templates_dir, "juice-shop", descriptor_id="other-id")
        with pytest.raises(TemplateValidationError) as exc_info:
            TemplateLoader(templates_dir).load_by_id("juice-shop")
        assert "does not match directory name" in str(exc_info.value)


class TestTemplateCatalog:
    """In-memory template index."""

    def test_load_and_get(self, templates_dir):
        write_template(templates_dir, "juice-shop")
        write_template(templates_dir, "dvwa", tags=["php"])
        catalog = TemplateCatalog.load(templates_dir)
        assert len(catalog) == 2
        assert "dvwa" in catalog
        assert catalog.get("dvwa").id == "dvwa"

    def test_get_unknown(self):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            TemplateCatalog().get("nope")
        assert str(exc_info.value) == "template nope not found"

    def test_load_fails_fast_on_invalid_template(self, templates_dir):
        write_template(templates_dir, "good")
        write_template(templates_dir, "bad", providers={})
        with pytest.raises(TemplateValidationError):
            TemplateCatalog.load(templates_dir)

    def test_ids_colliding_after_normalization_are_rejected(self, templates_dir):
        write_template(templates_dir, "juice-shop")
        write_template(templates_dir, "juice_shop")
        with pytest.raises(TemplateValidationError) as exc_info:
            TemplateCatalog.load(templates_dir)
        assert "collides with 'juice-shop'" in str(exc_info.value)

    def test_from_templates_rejects_colliding_ids(self):
        with pytest.raises(TemplateValidationError):
            TemplateCatalog.from_templates([make_template("Lab.One"), make_template("lab-one")])

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            TemplateCatalog.load(tmp_path / "missing")

    def test_filter_and_example_hidden(self, templates_dir):
        write_template(templates_dir, "example-template")
        write_template(templates_dir, "juice-shop", tags=["OWASP"], technologies=["node"])
        write_template(templates_dir, "dvwa", tags=["php"], technologies=["MySQL"])
        catalog = TemplateCatalog.load(templates_dir)

        assert sorted(t.id for t in catalog.listable()) == ["dvwa", "juice-shop"]
        assert [t.id for t in catalog.filter("owasp")] == ["juice-shop"]
        assert [t.id for t in catalog.filter("sql")] == ["dvwa"]
        assert sorted(t.id for t in catalog.filter(None)) == ["dvwa", "juice-shop"]


class TestValidateTemplatesDir:
    """Offline validation of a whole catalog."""

    def test_error_isolation(self, templates_dir):
        write_template(templates_dir, "a-good")
        write_template(templates_dir, "b-bad", providers={'docker-compose': {'path': '../x.yml'}})
        write_template(templates_dir, "c-good")

        report = validate_templates_dir(templates_dir)

        assert [c.name for c in report.checks] == ["a-good", "b-bad", "c-good"]
        assert report.passed == 2
        assert report.failed == 1
        assert not report.ok
        assert "'..' segments" in report.errors[0]

    def test_warnings_collected(self, templates_dir):
        write_template(templates_dir, "quiet", author="")
        report = validate_templates_dir(templates_dir)
        assert report.ok
        assert report.checks[0].warnings == ["template 'quiet': author is empty"]

    def test_undecodable_descriptor_is_isolated(self, templates_dir):
        write_template(templates_dir, "a-good")
        (templates_dir / "b-bad").mkdir()
        (templates_dir / "b-bad" / "index.yaml").write_bytes(b"id: \xff\xfe\n")

        report = validate_templates_dir(templates_dir)

        assert [c.ok for c in report.checks] == [True, False]
        assert "failed to read index.yaml" in report.errors[0]

    def test_colliding_ids_fail_the_later_template(self, templates_dir):
        write_template(templates_dir, "lab-one")
        write_template(templates_dir, "lab_one")

        report = validate_templates_dir(templates_dir)

        assert [c.ok for c in report.checks] == [True, False]
        assert "normalize to 'lab-one'" in report.errors[0]
