"""
SafawiNet Server - Active Session Model

Dataclass for a login session stored in User.active_sessions.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, asdict
from typing import Optional


@dataclass
class ActiveSession:
    """Represents one logged-in device of a user"""
    session_id: str
    device: str
    ip: Optional[str]
    user_agent: Optional[str]
    created_at_utc: datetime
    last_activity_utc: datetime
    expires_at_utc: datetime

    def IsExpired(self) -> bool:
        """Check if session has expired"""
        return datetime.now(timezone.utc) >= self.expires_at_utc

    def ToDict(self) -> dict:
        """Serialize for the JSON column"""
        data = asdict(self)
        for key in ("created_at_utc", "last_activity_utc", "expires_at_utc"):
            data[key] = data[key].isoformat()
        return data

    @classmethod
    def FromDict(cls, data: dict) -> "ActiveSession":
        """Load from the JSON column"""
        return cls(
            session_id=data["session_id"],
            device=data.get("device") or "Unknown device",
            ip=data.get("ip"),
            user_agent=data.get("user_agent"),
            created_at_utc=datetime.fromisoformat(data["created_at_utc"]),
            last_activity_utc=datetime.fromisoformat(data["last_activity_utc"]),
            expires_at_utc=datetime.fromisoformat(data["expires_at_utc"])
        )
