"""Deployment ledger record."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Deployment:
    """A (provider, template) pair the system believes is running."""
    provider_name: str
    template_id: str
    status: str = "running"
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def key(self) -> str:
        return deployment_key(self.provider_name, self.template_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'provider_name': self.provider_name,
            'template_id': self.template_id,
            'status': self.status,
            'created_at': self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Deployment":
        created_at = datetime.fromisoformat(data['created_at'])
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            provider_name=data['provider_name'],
            template_id=data['template_id'],
            status=data.get('status', 'running'),
            created_at=created_at,
        )


def deployment_key(provider_name: str, template_id: str) -> str:
    """Storage key of a deployment: ``<provider>:<template_id>``."""
    return f"{provider_name}:{template_id}"
