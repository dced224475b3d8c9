# Overview: Service-layer operations for auth; password hashing and credential checks.

"""
Authentication Service

Staff accounts and password checks. Every order mutation is attributed to
the signed-in staff member.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, at least one letter and one digit
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..extensions import db
from ..models import User, Branch
from ..models.auth import VALID_ROLES
from quickpos.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Rules:
    - Minimum 8 characters
    - At least one letter
    - At least one digit
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Validate then hash password using bcrypt with cost factor 12."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(
    email: str,
    password: str,
    role: str,
    full_name: str = "",
    branch_id: int | None = None,
) -> User:
    """
    Create a staff account.

    Raises:
        ValueError: unknown role, duplicate email or missing branch
        PasswordValidationError: weak password
    """
    email = (email or "").strip().lower()
    if not email:
        raise ValueError("email is required")
    if role not in VALID_ROLES:
        raise ValueError(f"role must be one of: {', '.join(VALID_ROLES)}")

    if db.session.query(User).filter_by(email=email).first():
        raise ValueError(f"User with email '{email}' already exists")

    if branch_id is not None and db.session.get(Branch, branch_id) is None:
        raise ValueError("Branch not found")

    user = User(
        email=email,
        full_name=full_name.strip(),
        password_hash=hash_password(password),
        role=role,
        branch_id=branch_id,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate_user(email: str, password: str) -> User | None:
    """
    Check credentials and return the user, or None.

    Returns None for unknown emails, wrong passwords and deactivated
    accounts alike, so callers cannot tell them apart.
    """
    email = (email or "").strip().lower()
    if not email or not password:
        return None

    user = db.session.query(User).filter_by(email=email).first()
    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
