"""Data models for vulntarget."""
from vulntarget.models.deployment import Deployment
from vulntarget.models.template import ProviderConfig, Template, TemplateInfo

__all__ = [
    'Deployment',
    'ProviderConfig',
    'Template',
    'TemplateInfo',
]
