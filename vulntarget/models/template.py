"""Template descriptor models for vulnerable lab environments."""
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class TemplateInfo(BaseModel):
    """Human-facing metadata of a template."""

    model_config = ConfigDict(frozen=True, extra='ignore', populate_by_name=True)

    name: str = ""
    author: str = ""
    description: str = ""
    type: str = ""
    references: List[str] = Field(default_factory=list)
    technologies: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices('technologies', 'targets'),
    )
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('references', 'technologies', 'tags', mode='before')
    @classmethod
    def coerce_list(cls, v):
        """Treat an empty YAML key as an empty list and scalars as one item."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @field_validator('metadata', mode='before')
    @classmethod
    def coerce_metadata(cls, v):
        return v or {}

    @field_validator('name', 'author', 'description', 'type', mode='before')
    @classmethod
    def coerce_text(cls, v):
        return "" if v is None else v


class ProviderConfig(BaseModel):
    """Per-provider settings of a template."""

    model_config = ConfigDict(frozen=True, extra='ignore')

    path: str = ""

    @field_validator('path', mode='before')
    @classmethod
    def coerce_path(cls, v):
        return "" if v is None else v


class Template(BaseModel):
    """A declarative description of a vulnerable lab environment.

    Templates are immutable once loaded. ``id`` must match the name of the
    directory the descriptor was read from.
    """

    model_config = ConfigDict(frozen=True, extra='ignore')

    id: str = ""
    info: TemplateInfo = Field(default_factory=TemplateInfo)
    providers: Dict[str, ProviderConfig] = Field(default_factory=dict)

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v):
        if v is None:
            return ""
        return str(v)

    @field_validator('info', mode='before')
    @classmethod
    def coerce_info(cls, v):
        return v or {}

    @field_validator('providers', mode='before')
    @classmethod
    def coerce_providers(cls, v):
        if v is None:
            return {}
        if isinstance(v, dict):
            return {name: (cfg or {}) for name, cfg in v.items()}
        return v

    def provider_path(self, provider_name: str) -> Optional[str]:
        """Return the descriptor path declared for a provider, if any."""
        config = self.providers.get(provider_name)
        return config.path if config else None

    def matches(self, needle: str) -> bool:
        """Case-insensitive substring match against tags and technologies."""
        needle = needle.lower()
        haystack = list(self.info.tags) + list(self.info.technologies)
        return any(needle in item.lower() for item in haystack)
