"""Error taxonomy for vulntarget operations."""
from typing import List, Optional


class VTError(Exception):
    """Base class for every error raised by vulntarget."""
    pass


class TemplateValidationError(VTError):
    """Raised when a template descriptor is malformed or violates a rule."""

    def __init__(self, message: str, template_id: Optional[str] = None,
                 errors: Optional[List[str]] = None):
        super().__init__(message)
        self.template_id = template_id
        self.errors = errors or [message]


class NotFoundError(VTError):
    """Raised when a named resource is unknown."""
    pass


class TemplateNotFoundError(NotFoundError):
    """Raised when a template ID is not in the catalog."""

    def __init__(self, template_id: str):
        super().__init__(f"template {template_id} not found")
        self.template_id = template_id


class ProviderNotFoundError(NotFoundError):
    """Raised when a provider name is not registered."""

    def __init__(self, provider_name: str):
        super().__init__(f"provider {provider_name} not found")
        self.provider_name = provider_name


class AlreadyRunningError(VTError):
    """Raised when starting a (provider, template) pair that is already deployed."""

    def __init__(self, provider_name: str, template_id: str):
        super().__init__(f"{template_id} is already running on {provider_name}")
        self.provider_name = provider_name
        self.template_id = template_id


class NotRunningError(VTError):
    """Raised when stopping a (provider, template) pair with no deployment."""

    def __init__(self, provider_name: str, template_id: str):
        super().__init__(f"{template_id} is not running on {provider_name}")
        self.provider_name = provider_name
        self.template_id = template_id


class RuntimeUnavailableError(VTError):
    """Raised when the container engine daemon cannot be reached."""
    pass


class PathResolutionError(VTError):
    """Raised when a compose descriptor path is unsafe or missing."""
    pass


class ComposeLoadError(VTError):
    """Raised when a compose descriptor cannot be turned into a project."""
    pass


class DeploymentError(VTError):
    """Raised when bringing a project up or down fails."""
    pass


class StoreError(VTError):
    """Raised when the embedded store cannot be read or written."""
    pass


class KeyNotFoundError(StoreError):
    """Raised when a key is missing from a store bucket."""

    def __init__(self, bucket: str, key: str):
        super().__init__(f"key {key} not found in bucket {bucket}")
        self.bucket = bucket
        self.key = key


class LockError(VTError):
    """Raised when unable to acquire a deployment lock."""
    pass
