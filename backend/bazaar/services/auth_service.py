# Overview: Service-layer operations for accounts; password hashing, registration and login.

"""
Account Service

WHY: Every actor (retailer, manufacturer, admin) logs in through a users row.
Uses bcrypt for password hashing; plaintext passwords are never stored.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters with at least one letter and one digit
- Session tokens managed separately (see session_service.py)
- Inactive accounts cannot authenticate
- Deactivating an account revokes its sessions in the same commit
"""

import re
import secrets
import string

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, Role
from ..validation import ValidationError, ConflictError, InvalidStateError, NotFoundError
from . import session_service
from .audit_service import append_audit_event
from .query_utils import paginate
from bazaar.time_utils import utcnow


TEMP_PASSWORD_LENGTH = 12


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Malformed hashes count as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def generate_temporary_password(length: int = TEMP_PASSWORD_LENGTH) -> str:
    """
    Random password handed out once by admins (account provisioning, resets).

    Always contains a letter and a digit so it passes validate_password_strength.
    """
    alphabet = string.ascii_letters + string.digits
    chars = [secrets.choice(string.ascii_letters), secrets.choice(string.digits)]
    chars += [secrets.choice(alphabet) for _ in range(length - 2)]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def split_contact_name(full_name: str | None) -> tuple[str, str]:
    """Split "First Rest Of Name" on the first space into (first, last)."""
    parts = (full_name or "").strip().split(" ", 1)
    first = parts[0]
    last = parts[1].strip() if len(parts) > 1 else ""
    return first, last


def ensure_identity_available(username: str, email: str) -> None:
    """Raise ConflictError if an account already uses the username or email."""
    if db.session.query(User.id).filter(User.username == username).first():
        raise ConflictError(f"Username {username} is already taken")
    if db.session.query(User.id).filter(User.email == email).first():
        raise ConflictError(f"User with email {email} already exists")


def generate_unique_username(seed: str) -> str:
    """
    Derive an unused username from a company or person name:
    lowercase alphanumerics, at most 10 chars, numeric suffix on collision.
    """
    base = re.sub(r"[^a-z0-9]", "", (seed or "").lower())[:10] or "user"
    username = base
    counter = 1
    while db.session.query(User.id).filter(User.username == username).first():
        username = f"{base}{counter}"
        counter += 1
    return username


def create_user(
    *,
    username: str,
    email: str,
    password: str,
    role: str = Role.RETAILER,
    first_name: str | None = None,
    last_name: str | None = None,
    is_active: bool = True,
    commit: bool = True,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Args:
        username: Globally unique username
        email: Globally unique email
        password: Password meeting strength requirements
        role: One of Role.ALL
        commit: False when the caller owns the surrounding transaction

    Raises:
        ValidationError: Missing fields, unknown role, weak password
        ConflictError: Username or email already in use
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username or not email:
        raise ValidationError("username and email are required")
    if role not in Role.ALL:
        raise ValidationError(f"Unknown role: {role}")

    ensure_identity_available(username, email)

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        first_name=first_name,
        last_name=last_name,
        is_active=is_active,
    )

    db.session.add(user)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return user


def register_user(
    *,
    username: str,
    email: str,
    password: str,
    confirm_password: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """Retailer self-registration."""
    if confirm_password is not None and password != confirm_password:
        raise ValidationError("Password and confirm password do not match")

    return create_user(
        username=username,
        email=email,
        password=password,
        role=Role.RETAILER,
        first_name=first_name,
        last_name=last_name,
    )


def authenticate(identifier: str, password: str) -> User | None:
    """
    Authenticate user with username or email and password.

    Returns User if credentials valid and the account is active, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    identifier = (identifier or "").strip()
    user = db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == identifier.lower()),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def find_by_username(username: str) -> User | None:
    return db.session.query(User).filter_by(username=username).first()


def find_by_email(email: str) -> User | None:
    return db.session.query(User).filter_by(email=(email or "").strip().lower()).first()


def set_password(user: User, password: str) -> None:
    """Replace the stored hash. Caller commits."""
    user.password_hash = hash_password(password)


# =============================================================================
# Account administration
# =============================================================================

def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User not found with id: {user_id}")
    return user


def list_users(
    *,
    role: str | None = None,
    active: bool | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(User)
    if role is not None:
        if role not in Role.ALL:
            raise ValidationError(f"Unknown role: {role}")
        query = query.filter(User.role == role)
    if active is not None:
        query = query.filter(User.is_active.is_(active))
    query = query.order_by(User.username.asc(), User.id.asc())
    return paginate(query, page=page, per_page=per_page)


def set_active(user_id: int, active: bool, *, actor_user_id: int | None = None) -> User:
    """
    Activate or suspend an account.

    Suspending revokes every open session so the user is logged out at once.
    Admins cannot suspend themselves.
    """
    user = get_user(user_id)
    if not active and user.id == actor_user_id:
        raise InvalidStateError("You cannot deactivate your own account")

    if user.is_active != active:
        user.is_active = active
        if not active:
            session_service.revoke_all_user_sessions(user.id, reason="Account deactivated", commit=False)
        append_audit_event(
            event_type="account.activated" if active else "account.deactivated",
            entity_type="user",
            entity_id=user.id,
            actor_user_id=actor_user_id,
        )
    db.session.commit()
    return user


def set_role(user_id: int, role: str, *, actor_user_id: int | None = None) -> User:
    """Change an account's role. Admins cannot change their own role."""
    if role not in Role.ALL:
        raise ValidationError(f"Unknown role: {role}")
    user = get_user(user_id)
    if user.id == actor_user_id:
        raise InvalidStateError("You cannot change your own role")

    if user.role != role:
        previous = user.role
        user.role = role
        append_audit_event(
            event_type="account.role_changed",
            entity_type="user",
            entity_id=user.id,
            actor_user_id=actor_user_id,
            note=f"{previous} -> {role}",
        )
    db.session.commit()
    return user
