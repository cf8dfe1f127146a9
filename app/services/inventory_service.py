"""Inventory items and the stock ledger.

``InventoryItem.current_stock`` is a cached fold of the item's transactions.
Every stock change writes one immutable :class:`InventoryTransaction` and
updates the cache in the same commit, holding a row lock on the item.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func, or_

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryItem, InventoryTransaction
from . import page_params, pagination, to_cents

STOCK_IN_REFERENCES = ("purchase", "return", "adjustment")
STOCK_OUT_REFERENCES = ("usage", "adjustment")
RECENT_TRANSACTIONS = 10

DESCRIPTIVE_FIELDS = ("name", "description", "category", "unit", "min_stock_level", "cost_per_unit", "supplier", "is_active")


def get_item_or_404(item_id: int) -> InventoryItem:
    item = db.session.get(InventoryItem, item_id)
    if item is None:
        raise NotFoundError("Inventory item not found")
    return item


def _lock_item(item_id: int) -> InventoryItem:
    # SELECT ... FOR UPDATE; SQLite ignores the clause.
    item = db.session.execute(
        db.select(InventoryItem).where(InventoryItem.item_id == item_id).with_for_update()
    ).scalar_one_or_none()
    if item is None:
        raise NotFoundError("Inventory item not found")
    return item


def _ensure_unique_name(name: str, *, exclude_item_id: int | None = None) -> None:
    query = InventoryItem.query.filter(func.lower(InventoryItem.name) == name.lower())
    if exclude_item_id is not None:
        query = query.filter(InventoryItem.item_id != exclude_item_id)
    if query.first() is not None:
        raise ConflictError(f"Inventory item '{name}' already exists")


def create_item(
    *,
    name: str,
    description: str | None = None,
    category: str | None = None,
    unit: str = "pieces",
    current_stock: int = 0,
    min_stock_level: int = 10,
    cost_per_unit: Decimal | int | str = 0,
    supplier: str | None = None,
) -> InventoryItem:
    if current_stock < 0:
        raise ValidationError("Opening stock cannot be negative")
    _ensure_unique_name(name)

    item = InventoryItem(
        name=name,
        description=description,
        category=category,
        unit=unit,
        current_stock=current_stock,
        min_stock_level=min_stock_level,
        cost_per_unit=to_cents(cost_per_unit),
        supplier=supplier,
    )
    db.session.add(item)
    if current_stock > 0:
        db.session.add(
            InventoryTransaction(
                item=item,
                transaction_type="in",
                quantity=current_stock,
                reference_type="adjustment",
                notes="Initial stock",
            )
        )
    db.session.commit()
    current_app.logger.info("Inventory item %s created with %s %s", item.item_id, current_stock, unit)
    return item


def update_item(item_id: int, **changes: object) -> InventoryItem:
    """Edit descriptive fields. Stock only moves through add/remove."""
    if "current_stock" in changes:
        raise ValidationError("Use add-stock or remove-stock to change stock levels")
    unknown = set(changes) - set(DESCRIPTIVE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    item = get_item_or_404(item_id)
    if changes.get("name") and changes["name"] != item.name:
        _ensure_unique_name(str(changes["name"]), exclude_item_id=item_id)

    for field, value in changes.items():
        if value is None:
            continue
        if field == "cost_per_unit":
            value = to_cents(value)
        setattr(item, field, value)
    db.session.commit()
    return item


def deactivate_item(item_id: int) -> InventoryItem:
    item = get_item_or_404(item_id)
    item.is_active = False
    db.session.commit()
    current_app.logger.info("Inventory item %s deactivated", item_id)
    return item


def add_stock(
    item_id: int,
    quantity: int,
    reference_type: str | None = None,
    *,
    reference_id: int | None = None,
    notes: str | None = None,
) -> InventoryItem:
    reference_type = reference_type or "purchase"
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than zero")
    if reference_type not in STOCK_IN_REFERENCES:
        raise ValidationError(f"reference_type must be one of: {', '.join(STOCK_IN_REFERENCES)}")

    item = _lock_item(item_id)
    item.current_stock += quantity
    db.session.add(
        InventoryTransaction(
            item_id=item.item_id,
            transaction_type="in",
            quantity=quantity,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes or "Stock added",
        )
    )
    db.session.commit()
    current_app.logger.info("Stock in: item %s +%s (%s), now %s", item_id, quantity, reference_type, item.current_stock)
    return item


def remove_stock(
    item_id: int,
    quantity: int,
    reference_type: str | None = None,
    *,
    reference_id: int | None = None,
    notes: str | None = None,
) -> InventoryItem:
    reference_type = reference_type or "usage"
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than zero")
    if reference_type not in STOCK_OUT_REFERENCES:
        raise ValidationError(f"reference_type must be one of: {', '.join(STOCK_OUT_REFERENCES)}")

    item = _lock_item(item_id)
    if item.current_stock < quantity:
        current_app.logger.warning(
            "Insufficient stock for item %s: requested %s, available %s", item_id, quantity, item.current_stock
        )
        db.session.rollback()
        raise ValidationError("Insufficient stock", code="insufficient_stock")

    item.current_stock -= quantity
    db.session.add(
        InventoryTransaction(
            item_id=item.item_id,
            transaction_type="out",
            quantity=quantity,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes or "Stock removed",
        )
    )
    db.session.commit()
    current_app.logger.info("Stock out: item %s -%s (%s), now %s", item_id, quantity, reference_type, item.current_stock)
    return item


def list_low_stock() -> list[InventoryItem]:
    return (
        InventoryItem.query.filter(
            InventoryItem.is_active.is_(True), InventoryItem.current_stock <= InventoryItem.min_stock_level
        )
        .order_by((InventoryItem.min_stock_level - InventoryItem.current_stock).desc(), InventoryItem.name.asc())
        .all()
    )


def list_items(
    *, search: str | None = None, low_stock: bool = False, page: int | None = 1, limit: int | None = 10
) -> dict[str, object]:
    page, limit = page_params(page, limit)
    query = InventoryItem.query
    if search:
        term = f"%{search}%"
        query = query.filter(
            or_(
                InventoryItem.name.ilike(term),
                InventoryItem.description.ilike(term),
                InventoryItem.category.ilike(term),
            )
        )
    if low_stock:
        query = query.filter(InventoryItem.current_stock <= InventoryItem.min_stock_level)

    total = query.count()
    items = query.order_by(InventoryItem.name.asc()).offset((page - 1) * limit).limit(limit).all()
    return {"items": [item.to_dict() for item in items], "pagination": pagination(page, limit, total)}


def list_transactions(item_id: int, limit: int | None = None) -> list[InventoryTransaction]:
    item = get_item_or_404(item_id)
    query = item.transactions.order_by(None).order_by(
        InventoryTransaction.transaction_date.desc(), InventoryTransaction.transaction_id.desc()
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def get_item(item_id: int) -> dict[str, object]:
    item = get_item_or_404(item_id)
    data = item.to_dict()
    data["recent_transactions"] = [txn.to_dict() for txn in list_transactions(item_id, RECENT_TRANSACTIONS)]
    return data


def replay_stock(item_id: int) -> int:
    """Fold the item's ledger in order; equals ``current_stock`` when consistent."""
    item = get_item_or_404(item_id)
    ordered = item.transactions.order_by(None).order_by(
        InventoryTransaction.transaction_date.asc(), InventoryTransaction.transaction_id.asc()
    )
    return sum(txn.signed_quantity for txn in ordered)


def stats() -> dict[str, object]:
    active = InventoryItem.query.filter(InventoryItem.is_active.is_(True)).all()

    values = {item.item_id: Decimal(item.cost_per_unit) * item.current_stock for item in active}
    breakdown = []
    for category in sorted({item.category for item in active if item.category}):
        members = [item for item in active if item.category == category]
        breakdown.append(
            {
                "category": category,
                "item_count": len(members),
                "total_stock": sum(item.current_stock for item in members),
                "value": float(to_cents(sum((values[item.item_id] for item in members), Decimal("0")))),
            }
        )
    breakdown.sort(key=lambda row: row["value"], reverse=True)

    recent = (
        InventoryTransaction.query.order_by(
            InventoryTransaction.transaction_date.desc(), InventoryTransaction.transaction_id.desc()
        )
        .limit(RECENT_TRANSACTIONS)
        .all()
    )
    return {
        "total_items": len(active),
        "total_value": float(to_cents(sum(values.values(), Decimal("0")))),
        "low_stock_items": sum(1 for item in active if item.is_low_stock),
        "categories": len(breakdown),
        "category_breakdown": breakdown,
        "recent_transactions": [txn.to_dict() for txn in recent],
    }
