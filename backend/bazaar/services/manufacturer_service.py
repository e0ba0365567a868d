# Overview: Service-layer operations for manufacturers; onboarding, verification and account provisioning.

"""
Manufacturer Service

WHY: A manufacturer is two records with one lifecycle: the Manufacturer
profile and its MANUFACTURER login account (users row). This module is the
only place that creates, verifies or deletes them, and always does so in a
single transaction.

OWNERSHIP:
- Manufacturer.user_id references the account; the account never points back.
- Self-registration creates account + profile together (PENDING, unverified).
- Verification decides whether the account may log in (see
  VERIFICATION_ACCOUNT_EFFECTS).
- Deleting the profile deletes the account.

SECURITY: Temporary passwords are returned to the caller exactly once and are
never logged or written to the audit trail.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Manufacturer, ManufacturerStatus, Order, OrderItem, Product, Role, User
from ..validation import BazaarError, ConflictError, InvalidStateError, NotFoundError, ValidationError
from . import auth_service, session_service
from .audit_service import append_audit_event
from .concurrency import lock_for_update
from .query_utils import paginate
from bazaar.time_utils import parse_iso_datetime, utcnow


PROFILE_FIELDS = (
    "company_name",
    "contact_person",
    "email",
    "phone_number",
    "address",
    "city",
    "state",
    "pincode",
    "country",
    "gst_number",
    "pan_number",
    "license_number",
    "license_validity",
)

REQUIRED_PROFILE_FIELDS = ("company_name", "contact_person", "email")


class AccountEffect:
    """What a verification decision does to the linked login account."""
    ACTIVATE = "ACTIVATE"
    DEACTIVATE = "DEACTIVATE"
    NO_CHANGE = "NO_CHANGE"


# Every status has an effect. INACTIVE and PENDING leave the account as it
# is; only REJECTED and SUSPENDED lock the login out.
VERIFICATION_ACCOUNT_EFFECTS = {
    ManufacturerStatus.APPROVED: AccountEffect.ACTIVATE,
    ManufacturerStatus.ACTIVE: AccountEffect.ACTIVATE,
    ManufacturerStatus.REJECTED: AccountEffect.DEACTIVATE,
    ManufacturerStatus.SUSPENDED: AccountEffect.DEACTIVATE,
    ManufacturerStatus.INACTIVE: AccountEffect.NO_CHANGE,
    ManufacturerStatus.PENDING: AccountEffect.NO_CHANGE,
}


def is_verified_status(status: str) -> bool:
    return status in ManufacturerStatus.VERIFIED


def _clean_profile(profile: dict, *, partial: bool) -> dict:
    if profile is None or not isinstance(profile, dict):
        raise ValidationError("Invalid manufacturer payload")

    cleaned = {}
    for field in PROFILE_FIELDS:
        if field not in profile:
            continue
        value = profile[field]
        if isinstance(value, str):
            value = value.strip() or None
        cleaned[field] = value

    if not partial:
        missing = [f for f in REQUIRED_PROFILE_FIELDS if not cleaned.get(f)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    else:
        blank = [f for f in REQUIRED_PROFILE_FIELDS if f in cleaned and not cleaned[f]]
        if blank:
            raise ValidationError(f"{blank[0]} cannot be blank")

    if cleaned.get("email"):
        cleaned["email"] = cleaned["email"].lower()

    if "license_validity" in cleaned and cleaned["license_validity"] is not None:
        try:
            cleaned["license_validity"] = parse_iso_datetime(str(cleaned["license_validity"]))
        except ValueError:
            raise ValidationError("Invalid license validity date format")

    return cleaned


def _apply_profile(manufacturer: Manufacturer, cleaned: dict) -> None:
    for field, value in cleaned.items():
        setattr(manufacturer, field, value)


def register_manufacturer(
    *,
    profile: dict,
    username: str,
    password: str,
    confirm_password: str,
) -> Manufacturer:
    """
    Manufacturer self-registration.

    Creates the MANUFACTURER account (active, bcrypt hash) and the
    Manufacturer profile (PENDING, unverified, linked to the account) in one
    transaction. Neither record exists if any step fails.

    Raises:
        ValidationError: passwords differ, required fields missing, weak password
        ConflictError: manufacturer email, account username or account email taken
    """
    if password != confirm_password:
        raise ValidationError("Password and confirm password do not match")

    cleaned = _clean_profile(profile, partial=False)
    email = cleaned["email"]

    if db.session.query(Manufacturer.id).filter(Manufacturer.email == email).first():
        raise ConflictError(f"Manufacturer with email {email} already exists")

    first_name, last_name = auth_service.split_contact_name(cleaned["contact_person"])

    try:
        user = auth_service.create_user(
            username=username,
            email=email,
            password=password,
            role=Role.MANUFACTURER,
            first_name=first_name,
            last_name=last_name,
            is_active=True,
            commit=False,
        )

        manufacturer = Manufacturer(
            status=ManufacturerStatus.PENDING,
            is_verified=False,
            user_id=user.id,
        )
        _apply_profile(manufacturer, cleaned)
        db.session.add(manufacturer)
        db.session.commit()
    except IntegrityError:
        # Lost a race against a concurrent registration with the same identity
        db.session.rollback()
        raise ConflictError("Manufacturer or account with these details already exists")
    except BazaarError:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Manufacturer %s registered with account %s (status PENDING)",
        manufacturer.id,
        user.id,
    )
    return manufacturer


def get_manufacturer(manufacturer_id: int) -> Manufacturer:
    manufacturer = db.session.get(Manufacturer, manufacturer_id)
    if not manufacturer:
        raise NotFoundError(f"Manufacturer not found with id: {manufacturer_id}")
    return manufacturer


def get_manufacturer_by_email(email: str) -> Manufacturer:
    manufacturer = db.session.query(Manufacturer).filter_by(email=(email or "").strip().lower()).first()
    if not manufacturer:
        raise NotFoundError(f"Manufacturer not found with email: {email}")
    return manufacturer


def get_manufacturer_for_user(user_id: int) -> Manufacturer:
    manufacturer = db.session.query(Manufacturer).filter_by(user_id=user_id).first()
    if not manufacturer:
        raise NotFoundError(f"Manufacturer profile not found for user id: {user_id}")
    return manufacturer


def list_manufacturers(
    *,
    status: str | None = None,
    verified: bool | None = None,
    search: str | None = None,
    city: str | None = None,
    state: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Manufacturer)
    if status is not None:
        if status not in ManufacturerStatus.ALL:
            raise ValidationError(f"Unknown manufacturer status: {status}")
        query = query.filter(Manufacturer.status == status)
    if verified is not None:
        query = query.filter(Manufacturer.is_verified.is_(verified))
    if search:
        query = query.filter(Manufacturer.company_name.ilike(f"%{search.strip()}%"))
    if city:
        query = query.filter(Manufacturer.city == city)
    if state:
        query = query.filter(Manufacturer.state == state)
    query = query.order_by(Manufacturer.company_name.asc(), Manufacturer.id.asc())
    return paginate(query, page=page, per_page=per_page)


def update_manufacturer(manufacturer_id: int, profile: dict) -> Manufacturer:
    """Update profile fields. Status and verification are not editable here."""
    manufacturer = get_manufacturer(manufacturer_id)
    cleaned = _clean_profile(profile, partial=True)

    new_email = cleaned.get("email")
    if new_email and new_email != manufacturer.email:
        clash = db.session.query(Manufacturer.id).filter(
            Manufacturer.email == new_email,
            Manufacturer.id != manufacturer.id,
        ).first()
        if clash:
            raise ConflictError(f"Manufacturer with email {new_email} already exists")

    _apply_profile(manufacturer, cleaned)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Manufacturer with email {new_email} already exists")
    return manufacturer


def _linked_account(manufacturer: Manufacturer) -> User | None:
    """Account linked via user_id; legacy rows without the link match on email."""
    if manufacturer.user is not None:
        return manufacturer.user
    return db.session.query(User).filter_by(email=manufacturer.email).first()


def verify_manufacturer(
    manufacturer_id: int,
    *,
    status: str,
    notes: str | None = None,
    admin_id: int | None = None,
) -> Manufacturer:
    """
    Admin verification decision.

    Sets status/notes/verified_by/verified_at, recomputes is_verified and
    applies VERIFICATION_ACCOUNT_EFFECTS[status] to the linked account.
    """
    if status not in VERIFICATION_ACCOUNT_EFFECTS:
        raise ValidationError(f"Unknown manufacturer status: {status}")

    manufacturer = lock_for_update(
        db.session.query(Manufacturer).filter_by(id=manufacturer_id)
    ).first()
    if not manufacturer:
        raise NotFoundError(f"Manufacturer not found with id: {manufacturer_id}")

    previous_status = manufacturer.status
    manufacturer.status = status
    manufacturer.verification_notes = notes
    manufacturer.verified_by = admin_id
    manufacturer.verified_at = utcnow()
    manufacturer.is_verified = is_verified_status(status)

    effect = VERIFICATION_ACCOUNT_EFFECTS[status]
    account = _linked_account(manufacturer)
    if account is not None:
        if effect == AccountEffect.ACTIVATE:
            account.is_active = True
        elif effect == AccountEffect.DEACTIVATE:
            account.is_active = False
            session_service.revoke_all_user_sessions(
                account.id, reason=f"Manufacturer {status.lower()}", commit=False
            )

    append_audit_event(
        event_type="manufacturer.verified",
        entity_type="manufacturer",
        entity_id=manufacturer.id,
        actor_user_id=admin_id,
        note=f"{previous_status} -> {status}; account effect {effect}",
    )

    db.session.commit()

    current_app.logger.info(
        "Manufacturer %s status %s -> %s by admin %s (account effect %s)",
        manufacturer.id,
        previous_status,
        status,
        admin_id,
        effect,
    )
    return manufacturer


def delete_manufacturer(manufacturer_id: int, actor_user_id: int | None = None) -> None:
    """
    Delete a manufacturer, its products and its linked account.

    Destructive and non-reversible. Refused while any order references the
    manufacturer's products or was placed by its account, so order history
    is never broken.
    """
    manufacturer = get_manufacturer(manufacturer_id)
    account = manufacturer.user

    referenced = (
        db.session.query(OrderItem.id)
        .join(Product, OrderItem.product_id == Product.id)
        .filter(Product.manufacturer_id == manufacturer.id)
        .first()
    )
    if referenced:
        raise InvalidStateError("Cannot delete manufacturer whose products appear in orders")

    if account is not None and db.session.query(Order.id).filter_by(user_id=account.id).first():
        raise InvalidStateError("Cannot delete manufacturer whose account has placed orders")

    company_name = manufacturer.company_name
    account_desc = account.username if account is not None else None

    db.session.delete(manufacturer)
    if account is not None:
        db.session.delete(account)

    append_audit_event(
        event_type="manufacturer.deleted",
        entity_type="manufacturer",
        entity_id=manufacturer_id,
        actor_user_id=actor_user_id,
        note=f"{company_name}; account {account_desc or 'none'} deleted",
    )

    db.session.commit()

    current_app.logger.warning(
        "Manufacturer %s (%s) deleted by user %s; linked account %s deleted",
        manufacturer_id,
        company_name,
        actor_user_id,
        account_desc or "none",
    )


def has_account(email: str) -> bool:
    return auth_service.find_by_email(email) is not None


def provision_account(manufacturer_id: int, actor_user_id: int | None = None) -> tuple[User, str]:
    """
    Create a MANUFACTURER account for a manufacturer that has none.

    Returns (user, temporary_password). The plaintext password is only in
    the return value.
    """
    manufacturer = get_manufacturer(manufacturer_id)
    if manufacturer.user_id is not None:
        raise ConflictError("Manufacturer already has a linked account")
    if has_account(manufacturer.email):
        raise ConflictError(f"User account already exists for manufacturer email: {manufacturer.email}")

    temp_password = auth_service.generate_temporary_password()
    first_name, last_name = auth_service.split_contact_name(manufacturer.contact_person)

    try:
        user = auth_service.create_user(
            username=auth_service.generate_unique_username(manufacturer.company_name),
            email=manufacturer.email,
            password=temp_password,
            role=Role.MANUFACTURER,
            first_name=first_name,
            last_name=last_name,
            is_active=is_verified_status(manufacturer.status),
            commit=False,
        )
        manufacturer.user_id = user.id

        append_audit_event(
            event_type="manufacturer.account_provisioned",
            entity_type="manufacturer",
            entity_id=manufacturer.id,
            actor_user_id=actor_user_id,
            note=f"account {user.username}",
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Account with these details already exists")
    except BazaarError:
        db.session.rollback()
        raise

    current_app.logger.info("Provisioned account %s for manufacturer %s", user.id, manufacturer.id)
    return user, temp_password


def reset_manufacturer_password(email: str, actor_user_id: int | None = None) -> tuple[User, str]:
    """
    Admin-triggered reset: new random temporary password, hash stored,
    plaintext returned once. Existing sessions are revoked.
    """
    user = auth_service.find_by_email(email)
    if not user:
        raise NotFoundError(f"User not found with email: {email}")
    if user.role != Role.MANUFACTURER:
        raise InvalidStateError("User is not a manufacturer")

    temp_password = auth_service.generate_temporary_password()
    auth_service.set_password(user, temp_password)
    session_service.revoke_all_user_sessions(user.id, reason="Password reset", commit=False)

    append_audit_event(
        event_type="account.password_reset",
        entity_type="user",
        entity_id=user.id,
        actor_user_id=actor_user_id,
    )
    db.session.commit()

    current_app.logger.info("Password reset for manufacturer account %s", user.id)
    return user, temp_password


def manufacturer_counts() -> dict:
    """Counts by status plus verified/unverified totals."""
    rows = (
        db.session.query(Manufacturer.status, db.func.count(Manufacturer.id))
        .group_by(Manufacturer.status)
        .all()
    )
    by_status = {status: 0 for status in ManufacturerStatus.ALL}
    by_status.update({status: count for status, count in rows})

    verified = db.session.query(Manufacturer).filter(Manufacturer.is_verified.is_(True)).count()
    total = sum(by_status.values())
    return {
        "total": total,
        "by_status": by_status,
        "verified": verified,
        "unverified": total - verified,
    }
