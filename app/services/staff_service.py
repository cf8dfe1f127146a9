"""Staff members, their login accounts and authentication."""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from flask import current_app
from sqlalchemy import func, or_
from werkzeug.security import check_password_hash, generate_password_hash

from ..errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import USER_ROLES, Staff, User, utc_now

MIN_PASSWORD_LENGTH = 6
STAFF_FIELDS = ("first_name", "last_name", "email", "phone", "position", "hire_date", "salary", "is_active")


def get_staff_or_404(staff_id: int) -> Staff:
    staff = db.session.get(Staff, staff_id)
    if staff is None:
        raise NotFoundError("Staff member not found")
    return staff


def authenticate(identifier: str, password: str) -> User:
    """Look up a user by username or email and verify the password."""
    user = User.query.filter(
        or_(func.lower(User.username) == identifier.lower(), func.lower(User.email) == identifier.lower())
    ).first()
    if user is None or not check_password_hash(user.password_hash, password):
        current_app.logger.info("Failed login attempt for %s", identifier)
        raise AuthenticationError("Invalid credentials", code="invalid_credentials")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated", code="account_inactive")

    user.last_login_at = utc_now()
    db.session.commit()
    return user


def profile(user_id: int) -> dict[str, object]:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    data = user.to_dict_basic()
    data["staff"] = user.staff.to_dict() if user.staff else None
    return data


def create_staff(
    *,
    username: str,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    phone: str,
    position: str,
    hire_date: date,
    role: str | None = None,
    salary: Decimal | None = None,
) -> Staff:
    """Provision a login account and its staff record together."""
    final_role = role or position
    if final_role not in USER_ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(USER_ROLES)}")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    if User.query.filter(func.lower(User.username) == username.lower()).first():
        raise ConflictError("Username already exists")
    if User.query.filter(func.lower(User.email) == email.lower()).first():
        raise ConflictError("Email already exists")
    if Staff.query.filter_by(phone=phone).first():
        raise ConflictError("Phone number already exists")

    user = User(
        username=username,
        email=email,
        password_hash=generate_password_hash(password),
        role=final_role,
        is_active=True,
    )
    staff = Staff(
        user=user,
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone=phone,
        position=position,
        hire_date=hire_date,
        salary=salary,
    )
    db.session.add_all([user, staff])
    db.session.commit()
    current_app.logger.info("Staff %s (%s) created with user %s", staff.staff_id, position, user.user_id)
    return staff


def update_staff(staff_id: int, **changes: Any) -> Staff:
    """Edit a staff record; the login role follows the position."""
    staff = get_staff_or_404(staff_id)

    unknown = set(changes) - set(STAFF_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    email = changes.get("email")
    if email and Staff.query.filter(Staff.email == email, Staff.staff_id != staff_id).first():
        raise ConflictError("Email already exists")
    phone = changes.get("phone")
    if phone and Staff.query.filter(Staff.phone == phone, Staff.staff_id != staff_id).first():
        raise ConflictError("Phone number already exists")

    position = changes.get("position")
    if position and position not in USER_ROLES:
        raise ValidationError(f"Position must be one of: {', '.join(USER_ROLES)}")

    for field, value in changes.items():
        if value is not None:
            setattr(staff, field, value)
    if position and staff.user is not None:
        staff.user.role = position
    if changes.get("is_active") is not None and staff.user is not None:
        staff.user.is_active = bool(changes["is_active"])

    db.session.commit()
    current_app.logger.info("Staff %s updated", staff_id)
    return staff


def delete_staff(staff_id: int) -> dict[str, object]:
    """Remove a staff member, their job cards (with photos) and their login."""
    staff = get_staff_or_404(staff_id)
    name = staff.full_name
    deleted_job_cards = len(staff.job_cards)
    user = staff.user

    db.session.delete(staff)
    if user is not None:
        db.session.delete(user)
    db.session.commit()

    current_app.logger.info("Staff %s deleted with %s job cards", staff_id, deleted_job_cards)
    return {"staff_id": staff_id, "name": name, "deleted_job_cards": deleted_job_cards}


def list_staff(*, position: str | None = None, search: str | None = None, active_only: bool = False) -> list[Staff]:
    query = Staff.query
    if position:
        query = query.filter(Staff.position == position)
    if active_only:
        query = query.filter(Staff.is_active.is_(True))
    if search:
        term = f"%{search}%"
        query = query.filter(
            or_(Staff.first_name.ilike(term), Staff.last_name.ilike(term), Staff.phone.ilike(term))
        )
    return query.order_by(Staff.first_name.asc(), Staff.last_name.asc()).all()
