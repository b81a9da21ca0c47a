# Overview: Service-layer operations for accounts; password hashing and signup.

"""
Account Service

Uses bcrypt for password hashing. Signup optionally carries a referral code
which is applied once the account exists; a bad code never blocks signup.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Session tokens managed separately (see session_service.py)
"""

import logging
import re

import bcrypt

from ..extensions import db
from ..errors import ConflictError, NotFoundError, StoreError, ValidationError
from ..models import User
from ..time_utils import utcnow
from . import referral_service
from .session_service import revoke_user_sessions

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 8


def validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not re.search(r"[A-Za-z]", password) or not re.search(r"\d", password):
        raise ValidationError("Password must contain at least one letter and one digit")


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12 (strength checked first)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def normalize_email(email: str | None) -> str:
    value = (email or "").strip().lower()
    if not EMAIL_RE.match(value):
        raise ValidationError("A valid email is required")
    return value


def create_user(email: str, password: str, full_name: str | None = None, is_admin: bool = False) -> User:
    """Create an account. Raises ConflictError when the email is taken."""
    email = normalize_email(email)
    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("An account with this email already exists", details={"email": email})

    user = User(
        email=email,
        full_name=(full_name or "").strip() or None,
        password_hash=hash_password(password),
        is_admin=is_admin,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def register_user(email: str, password: str, full_name: str | None = None,
                  referral_code: str | None = None) -> tuple[User, dict | None]:
    """
    Customer signup.

    Returns (user, referral) where referral is the applied referral dict or
    None when no code was given or the code could not be applied.
    """
    user = create_user(email, password, full_name=full_name)

    referral = None
    if referral_code:
        try:
            referral = referral_service.apply_referral_code(user.id, referral_code)
        except StoreError as exc:
            logger.info("Referral code %r not applied for user %s: %s", referral_code, user.id, exc.message)
    return user, referral


def authenticate(email: str, password: str) -> User | None:
    """Return the active user for valid credentials, else None."""
    try:
        email = normalize_email(email)
    except ValidationError:
        return None

    user = db.session.query(User).filter_by(email=email).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def set_admin(user_id: int, is_admin: bool = True) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found", details={"user_id": user_id})
    user.is_admin = is_admin
    db.session.commit()
    return user


def set_active(user_id: int, is_active: bool) -> User:
    """Deactivating a user also revokes their open sessions."""
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found", details={"user_id": user_id})
    user.is_active = is_active
    if not is_active:
        revoke_user_sessions(user_id, reason="User account deactivated", commit=False)
    db.session.commit()
    return user


def list_users(search: str | None = None) -> list[User]:
    query = db.session.query(User)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(User.email.ilike(pattern), User.full_name.ilike(pattern)))
    return query.order_by(User.created_at.desc(), User.id.desc()).all()
