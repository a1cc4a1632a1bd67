"""
SafawiNet Server - Login Session Management

Sessions live on the user row (User.active_sessions) so that logout and
revocation invalidate tokens across restarts. A user keeps at most
max_sessions sessions; the least recently active ones are dropped first.
"""

import secrets
import logging
from datetime import datetime, timezone, timedelta
from typing import List, Optional

from fastapi import Request

from audit import GetClientIp, GetDeviceDescription
from models.database import User
from models.infrastructure import ActiveSession

logger = logging.getLogger(__name__)

# Don't rewrite the session list on every request
ACTIVITY_UPDATE_INTERVAL = timedelta(minutes=1)


def _LoadSessions(user: User) -> List[ActiveSession]:
    return [ActiveSession.FromDict(data) for data in (user.active_sessions or [])]


def _StoreSessions(user: User, sessions: List[ActiveSession]) -> None:
    # Reassign so SQLAlchemy notices the JSON column changed
    user.active_sessions = [session.ToDict() for session in sessions]


def CreateSession(user: User, request: Optional[Request], expires_at: datetime, max_sessions: int = 5) -> ActiveSession:
    """
    Create a new login session on a user
    Caller is responsible for committing the user's database session

    Args:
        user: User logging in (attached to an open database session)
        request: Login request (for device, IP and user agent)
        expires_at: When the session's token expires
        max_sessions: Maximum number of sessions kept on the user

    Returns:
        ActiveSession: The new session
    """
    now = datetime.now(timezone.utc)
    user_agent = request.headers.get("user-agent") if request is not None else None

    session = ActiveSession(
        session_id=secrets.token_urlsafe(24),
        device=GetDeviceDescription(user_agent),
        ip=GetClientIp(request),
        user_agent=user_agent,
        created_at_utc=now,
        last_activity_utc=now,
        expires_at_utc=expires_at
    )

    sessions = [existing for existing in _LoadSessions(user) if not existing.IsExpired()]
    sessions.append(session)

    if len(sessions) > max_sessions:
        sessions.sort(key=lambda item: item.last_activity_utc, reverse=True)
        dropped = len(sessions) - max_sessions
        sessions = sessions[:max_sessions]
        logger.info(f"Dropped {dropped} oldest session(s) for user '{user.username}'")

    _StoreSessions(user, sessions)

    logger.info(f"Created session for user '{user.username}' from {session.device}")

    return session


def GetActiveSessions(user: User) -> List[ActiveSession]:
    """
    Get a user's unexpired sessions, most recently active first
    """
    sessions = [session for session in _LoadSessions(user) if not session.IsExpired()]
    sessions.sort(key=lambda item: item.last_activity_utc, reverse=True)
    return sessions


def IsSessionActive(user: User, session_id: Optional[str]) -> bool:
    """
    Check that a session still exists and has not expired

    Args:
        user: Session owner
        session_id: Session ID from the token

    Returns:
        bool: True if the session is active
    """
    if not session_id:
        return False

    return any(session.session_id == session_id for session in GetActiveSessions(user))


def TouchSession(user: User, session_id: str) -> bool:
    """
    Update a session's last activity time

    Returns:
        bool: True if the user row was changed and needs committing
    """
    now = datetime.now(timezone.utc)
    sessions = _LoadSessions(user)

    for session in sessions:
        if session.session_id == session_id:
            if now - session.last_activity_utc < ACTIVITY_UPDATE_INTERVAL:
                return False
            session.last_activity_utc = now
            _StoreSessions(user, sessions)
            return True

    return False


def DeleteSession(user: User, session_id: str) -> bool:
    """
    Delete a session (logout or revocation)

    Args:
        user: Session owner
        session_id: Session ID to delete

    Returns:
        bool: True if a session was removed
    """
    sessions = _LoadSessions(user)
    remaining = [session for session in sessions if session.session_id != session_id]

    if len(remaining) == len(sessions):
        return False

    _StoreSessions(user, remaining)
    logger.info(f"Deleted session for user '{user.username}'")
    return True


def DeleteAllSessions(user: User, keep_session_id: Optional[str] = None) -> int:
    """
    Delete every session of a user, optionally keeping the current one

    Returns:
        Number of sessions removed
    """
    sessions = _LoadSessions(user)
    remaining = [session for session in sessions if session.session_id == keep_session_id]
    _StoreSessions(user, remaining)
    return len(sessions) - len(remaining)


def FormatSession(session: ActiveSession, current_session_id: Optional[str] = None) -> dict:
    """Render a session for API responses"""
    return {
        "sessionId": session.session_id,
        "device": session.device,
        "ip": session.ip,
        "userAgent": session.user_agent,
        "createdAt": session.created_at_utc.isoformat(),
        "lastActivity": session.last_activity_utc.isoformat(),
        "expiresAt": session.expires_at_utc.isoformat(),
        "isCurrent": session.session_id == current_session_id,
    }
