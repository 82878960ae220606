"""Environment providers.

vulntarget runs templates through pluggable providers:
- docker-compose: Docker engine driven through its native API (default)
"""
from .base import Provider
from .registry import ProviderRegistry, build_default_registry

__all__ = ['Provider', 'ProviderRegistry', 'build_default_registry']
