"""Domain services.

Each module exposes plain functions working on ``db.session``. They raise the
errors from :mod:`app.errors` and leave HTTP concerns to the blueprints.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_cents(value: Decimal | int | float | str) -> Decimal:
    """Round a money value half-up to two decimal places."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def page_params(page: int | None, limit: int | None, *, max_limit: int = 100) -> tuple[int, int]:
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 10), 1), max_limit)
    return page, limit


def pagination(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "current_page": page,
        "total_pages": (total + limit - 1) // limit if total else 0,
        "total_items": total,
        "items_per_page": limit,
    }


def append_note(existing: str | None, note: str | None) -> str | None:
    """Append ``note`` on a new line; notes are never overwritten."""
    if not note:
        return existing
    if existing:
        return f"{existing}\n{note}"
    return note
