# Overview: Service-layer operations for user accounts and credential checks.

"""
User directory and authentication.

WHY: Every DC transition is attributed to a user; the workflow reads the
caller's identity and role from here. Passwords are hashed with bcrypt.
"""

import bcrypt
import re
from ..extensions import db
from ..models import User, USER_ROLES
from edusales.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class UserError(ValueError):
    """Raised when a user cannot be created (duplicate email, unknown role)."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one letter and one digit
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12 (validated first)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    name: str,
    email: str,
    password: str,
    role: str = "Employee",
    **profile,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        UserError: If the email is taken or the role is unknown
        PasswordValidationError: If password doesn't meet requirements
    """
    if role not in USER_ROLES:
        raise UserError(f"Unknown role '{role}'. Must be one of: {', '.join(USER_ROLES)}")

    email = email.strip().lower()
    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise UserError("Email already exists")

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        emp_code=profile.get("emp_code"),
        phone=profile.get("phone"),
        zone=profile.get("zone"),
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate by email and password.

    Returns the User and stamps last_login_at on success, None otherwise.
    """
    user = db.session.query(User).filter(
        User.email == (email or "").strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
