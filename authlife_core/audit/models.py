"""
Audit Models
=============
Data models for audit log entries.
"""

from datetime import datetime
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict

from .event_types import AuditAction


@dataclass
class AuditEvent:
    """An authentication audit entry. Any field may be missing on read."""
    id: str
    action: AuditAction
    actor_ref: Optional[str] = None
    destination: Optional[str] = None
    source_ip: Optional[str] = None
    created_at: Optional[datetime] = None
    blocked: Optional[bool] = None

    @classmethod
    def from_row(cls, row) -> "AuditEvent":
        return cls(
            id=row.id,
            action=AuditAction.parse(row.action),
            actor_ref=row.actor_ref,
            destination=row.destination,
            source_ip=row.source_ip,
            created_at=row.created_at,
            blocked=row.blocked,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        d = asdict(self)
        d['action'] = self.action.value
        d['created_at'] = self.created_at.isoformat() if self.created_at else None
        return d
