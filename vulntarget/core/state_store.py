"""Deployment ledger: durable record of which templates are running where."""
import json
from pathlib import Path
from typing import List, Optional

from vulntarget.core.errors import AlreadyRunningError, StoreError
from vulntarget.core.kv_store import DiskStore
from vulntarget.core.logger import get_logger
from vulntarget.models.deployment import Deployment, deployment_key

logger = get_logger(__name__)


class DeploymentLedger:
    """Track deployments started by vulntarget.

    The ledger records what the system *believes* is running. It is not
    reconciled against the container runtime; drift between the two is
    surfaced by the status monitor.

    Removing a deployment that does not exist is a no-op returning False.
    """

    def __init__(self, store: DiskStore):
        self.store = store

    @classmethod
    def open(cls, db_path: Path, bucket: str = "deployment") -> "DeploymentLedger":
        """Open the ledger stored in ``db_path``."""
        return cls(DiskStore(db_path, bucket=bucket))

    def add_new_deployment(self, provider_name: str, template_id: str) -> Deployment:
        """Record a running deployment.

        Raises:
            AlreadyRunningError: If a deployment for the pair already exists
        """
        deployment = Deployment(provider_name=provider_name, template_id=template_id)
        payload = json.dumps(deployment.to_dict())
        if not self.store.put_if_absent(deployment.key, payload):
            raise AlreadyRunningError(provider_name, template_id)
        logger.debug(f"Recorded deployment {deployment.key}")
        return deployment

    def remove_deployment(self, provider_name: str, template_id: str) -> bool:
        """Delete a deployment record.

        Returns:
            True if a record was removed, False if none existed
        """
        key = deployment_key(provider_name, template_id)
        removed = self.store.delete(key)
        if removed:
            logger.debug(f"Removed deployment {key}")
        else:
            logger.debug(f"No deployment {key} to remove")
        return removed

    def deployment_exists(self, provider_name: str, template_id: str) -> bool:
        return self.get_deployment(provider_name, template_id) is not None

    def get_deployment(self, provider_name: str, template_id: str) -> Optional[Deployment]:
        key = deployment_key(provider_name, template_id)
        raw = self.store.get_or_none(key)
        if raw is None:
            return None
        return self._decode(key, raw)

    def list_deployments(self) -> List[Deployment]:
        """Return every recorded deployment, ordered by key."""
        return [self._decode(key, raw) for key, raw in self.store.scan()]

    def close(self) -> None:
        self.store.close()

    @staticmethod
    def _decode(key: str, raw: str) -> Deployment:
        try:
            return Deployment.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise StoreError(f"corrupt deployment record {key}: {e}") from e
