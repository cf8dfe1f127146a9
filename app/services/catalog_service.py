"""Service catalog: categories, services and packages."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Sequence

from flask import current_app
from sqlalchemy import func, or_

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import PackageService, Service, ServiceCategory, ServicePackage
from . import to_cents

SERVICE_FIELDS = ("name", "category_id", "description", "base_price", "duration_minutes", "is_active")


def get_service_or_404(service_id: int) -> Service:
    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFoundError("Service not found")
    return service


def _ensure_category(category_id: int | None) -> None:
    if category_id is not None and db.session.get(ServiceCategory, category_id) is None:
        raise NotFoundError("Service category not found")


# =============== CATEGORIES ==================
def list_categories(include_inactive: bool = False) -> list[ServiceCategory]:
    query = ServiceCategory.query
    if not include_inactive:
        query = query.filter(ServiceCategory.is_active.is_(True))
    return query.order_by(ServiceCategory.name.asc()).all()


def create_category(*, name: str, description: str | None = None) -> ServiceCategory:
    if ServiceCategory.query.filter(func.lower(ServiceCategory.name) == name.lower()).first():
        raise ConflictError(f"Category '{name}' already exists")
    category = ServiceCategory(name=name, description=description)
    db.session.add(category)
    db.session.commit()
    return category


# =============== SERVICES ==================
def list_services(
    *, category_id: int | None = None, search: str | None = None, include_inactive: bool = False
) -> list[Service]:
    query = Service.query
    if not include_inactive:
        query = query.filter(Service.is_active.is_(True))
    if category_id:
        query = query.filter(Service.category_id == category_id)
    if search:
        term = f"%{search}%"
        query = query.filter(or_(Service.name.ilike(term), Service.description.ilike(term)))
    return query.order_by(Service.name.asc()).all()


def create_service(
    *,
    name: str,
    base_price: Decimal | int | str,
    category_id: int | None = None,
    description: str | None = None,
    duration_minutes: int = 60,
    is_active: bool = True,
) -> Service:
    _ensure_category(category_id)
    service = Service(
        name=name,
        category_id=category_id,
        description=description,
        base_price=to_cents(base_price),
        duration_minutes=duration_minutes,
        is_active=is_active,
    )
    db.session.add(service)
    db.session.commit()
    current_app.logger.info("Service %s '%s' created at %s", service.service_id, name, service.base_price)
    return service


def update_service(service_id: int, **changes: Any) -> Service:
    """Edit a catalog entry. Existing bookings keep the price they captured."""
    service = get_service_or_404(service_id)
    unknown = set(changes) - set(SERVICE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
    if "category_id" in changes:
        _ensure_category(changes["category_id"])

    for field, value in changes.items():
        if value is None:
            continue
        if field == "base_price":
            value = to_cents(value)
        setattr(service, field, value)
    db.session.commit()
    return service


def deactivate_service(service_id: int) -> Service:
    service = get_service_or_404(service_id)
    service.is_active = False
    db.session.commit()
    current_app.logger.info("Service %s deactivated", service_id)
    return service


# =============== PACKAGES ==================
def list_packages() -> list[ServicePackage]:
    return ServicePackage.query.filter(ServicePackage.is_active.is_(True)).order_by(ServicePackage.name.asc()).all()


def create_package(
    *,
    name: str,
    price: Decimal | int | str,
    services: Sequence[tuple[int, int]] = (),
    description: str | None = None,
    validity_days: int = 365,
) -> ServicePackage:
    service_ids = {service_id for service_id, _ in services}
    found = {service.service_id for service in Service.query.filter(Service.service_id.in_(service_ids))}
    missing = sorted(service_ids - found)
    if missing:
        raise ValidationError(f"Unknown services: {', '.join(str(service_id) for service_id in missing)}")

    package = ServicePackage(
        name=name,
        description=description,
        price=to_cents(price),
        validity_days=validity_days,
        items=[PackageService(service_id=service_id, quantity=quantity) for service_id, quantity in services],
    )
    db.session.add(package)
    db.session.commit()
    return package
