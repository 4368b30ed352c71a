"""Domain models for the sample service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(moment: datetime) -> str:
    """Render a timestamp as UTC ISO-8601 with milliseconds and a ``Z`` suffix."""

    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class User:
    """Represents a user held in the in-memory store."""

    id: int
    name: str
    email: str
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"id": self.id, "name": self.name, "email": self.email}
        if self.created_at is not None:
            payload["createdAt"] = isoformat(self.created_at)
        return payload


__all__ = ["User", "isoformat", "utcnow"]
