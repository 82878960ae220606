"""Abstract base class for environment providers."""
from abc import ABC, abstractmethod

from vulntarget.models.status import ProviderStatus
from vulntarget.models.template import Template


class Provider(ABC):
    """Abstract interface for backends that run templates (compose, cloud, ...)."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name of the provider, e.g. ``docker-compose``."""
        pass

    @abstractmethod
    def start(self, template: Template) -> None:
        """Bring a template's environment up and record the deployment.

        Args:
            template: Template to start

        Raises:
            AlreadyRunningError: If the template is already deployed here
        """
        pass

    @abstractmethod
    def stop(self, template: Template) -> None:
        """Tear a template's environment down and forget the deployment.

        Args:
            template: Template to stop

        Raises:
            NotRunningError: If the template is not deployed here
        """
        pass

    @abstractmethod
    def status(self, template: Template) -> ProviderStatus:
        """Report the live runtime status of a template's environment.

        Never modifies the deployment ledger.
        """
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
