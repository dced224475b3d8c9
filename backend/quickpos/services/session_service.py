# Overview: Service-layer operations for session tokens and the per-request session context.

"""
Session Token Management Service

Order operations receive the SessionContext built here: the acting user,
their role and their branch.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- 12-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (SESSION_IDLE_TIMEOUT)
- Revocable on logout
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from ..models.auth import ROLE_MANAGER, ROLE_CASHIER
from quickpos.time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=12)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class SessionContext:
    """
    Who is acting, with which role, for which branch.

    role and branch_id are copied from the user when the context is built
    so services never reach back into the request.
    """
    user: User
    session: SessionToken | None
    role: str
    branch_id: int | None

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def is_manager(self) -> bool:
        return self.role == ROLE_MANAGER

    @property
    def is_cashier(self) -> bool:
        return self.role == ROLE_CASHIER

    @classmethod
    def for_user(cls, user: User, session: SessionToken | None = None) -> "SessionContext":
        return cls(user=user, session=session, role=user.role, branch_id=user.branch_id)


def generate_token() -> str:
    """Return 64-character hex string (32 bytes of entropy)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 of the token; only the hash is stored."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _find_active(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter(SessionToken.token_hash == hash_token(token), SessionToken.is_revoked.is_(False))
        .one_or_none()
    )


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if the token is unknown, expired, idle too long or revoked,
    or if the user account was deactivated.

    Updates last_used_at on successful validation (activity tracking).
    """
    now = utcnow()
    session = _find_active(token)
    if session is None or session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext.for_user(user, session)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke session token. Returns False if it was not found."""
    session = _find_active(token)
    if session is None:
        return False

    _revoke(session, reason)
    return True
