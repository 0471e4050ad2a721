# Overview: Staff accounts: bcrypt password hashing, strength rules, login and password changes.

"""
Authentication Service

Every invoice, loan and job-work order records the acting user, so every
write must be attributable to a staff login.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, with upper, lower, digit and special character
- Session tokens are managed separately (see session_service.py)
- password_hash is excluded from the sync payload and never leaves the device
"""

import bcrypt
import re
from ..extensions import db
from ..models import Branch, User
from ..models.auth import VALID_ROLES, ROLE_CASHIER
from ..time_utils import utcnow
from . import sync_service
from .branch_service import BranchContext
from .concurrency import run_with_retry


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class AuthError(Exception):
    """Raised when account operations fail."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, *, rounds: int = 12) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Timing-safe bcrypt check. Accounts pulled from another branch carry an
    unusable hash and never verify.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    ctx: BranchContext,
    *,
    username: str,
    email: str,
    password: str,
    role: str = ROLE_CASHIER,
    full_name: str | None = None,
    branch_id: int | None = None,
    bcrypt_rounds: int = 12,
) -> User:
    """
    Create a staff login and queue it for sync.

    Raises AuthError on duplicates or bad role, PasswordValidationError on a
    weak password.
    """
    username = (username or "").strip()
    email = (email or "").strip()
    if not username or not email:
        raise AuthError("username and email are required")
    if role not in VALID_ROLES:
        raise AuthError(f"role must be one of {', '.join(VALID_ROLES)}")

    branch_id = branch_id or ctx.branch_id
    if branch_id and db.session.get(Branch, branch_id) is None:
        raise AuthError("Branch not found")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise AuthError("Username or email already exists")

    password_hash = hash_password(password, rounds=bcrypt_rounds)

    def _op() -> User:
        user = User(
            branch_id=branch_id,
            username=username,
            email=email,
            full_name=full_name,
            role=role,
            password_hash=password_hash,
        )
        db.session.add(user)
        sync_service.queue_record(ctx, user, "insert")
        db.session.commit()
        return user

    return run_with_retry(_op)


def authenticate(username: str, password: str) -> User | None:
    """
    Username or email plus password. Returns None on any mismatch.
    Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def change_password(user_id: int, old_password: str, new_password: str, *, bcrypt_rounds: int = 12) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise AuthError("User not found")
    if not verify_password(old_password, user.password_hash):
        raise AuthError("Current password is incorrect")
    if old_password == new_password:
        raise PasswordValidationError("New password must differ from the current password")

    user.password_hash = hash_password(new_password, rounds=bcrypt_rounds)
    db.session.commit()
    return user


def set_user_active(ctx: BranchContext, user_id: int, is_active: bool) -> User:
    def _op() -> User:
        user = db.session.get(User, user_id)
        if not user:
            raise AuthError("User not found")
        user.is_active = bool(is_active)
        sync_service.queue_record(ctx, user, "update")
        db.session.commit()
        return user

    return run_with_retry(_op)
