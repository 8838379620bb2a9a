"""Category reference data and service operations.

The built-in categories are fixed in code; users may add their own, stored in
``cf_categories``. Names are compared case-insensitively against both sets, so
``"food"`` conflicts with the built-in ``"Food"``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from db.models.ledger import CfCategory
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .logging_setup import get_logger

DEFAULT_CATEGORIES: tuple[str, ...] = (
    "General",
    "Salary",
    "Groceries",
    "Food",
    "Shopping",
    "Bills",
    "Transport",
    "Health",
    "Entertainment",
    "Other",
)
DEFAULT_COLOR = "#888888"

_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
_MAX_NAME_LEN = 64

_logger = get_logger("cashflow.categories")


class CategoryExistsError(ValueError):
    """A category with the same name (ignoring case) already exists."""


@dataclass(frozen=True, slots=True)
class Category:
    name: str
    color: str = DEFAULT_COLOR
    is_default: bool = False


def normalize_name(name: str) -> str:
    """Trim and collapse internal whitespace to single spaces."""

    return " ".join(name.strip().split())


def validate_category_name(name: str) -> str:
    """Return the normalized name or raise ``ValueError``."""

    n = normalize_name(name or "")
    if not n:
        raise ValueError("Category name is required")
    if len(n) > _MAX_NAME_LEN:
        raise ValueError(f"Category name must be at most {_MAX_NAME_LEN} characters")
    return n


def list_categories(session: Session) -> list[Category]:
    """Return the built-in categories followed by custom ones sorted by name."""

    out = [Category(name=n, is_default=True) for n in DEFAULT_CATEGORIES]
    seen = {n.casefold() for n in DEFAULT_CATEGORIES}
    rows = session.execute(select(CfCategory).order_by(CfCategory.name)).scalars()
    for row in rows:
        key = row.name.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(Category(name=row.name, color=row.color or DEFAULT_COLOR))
    return out


def create_category(session: Session, name: str, color: str | None = None) -> Category:
    """Create a custom category.

    Raises ``ValueError`` for an empty name or malformed ``#RRGGBB`` color and
    :class:`CategoryExistsError` when the name already exists in any casing.
    """

    n = validate_category_name(name)
    c = (color or "").strip() or DEFAULT_COLOR
    if not _COLOR_RE.match(c):
        raise ValueError(f"Invalid color {c!r}; expected #RRGGBB")

    if n.casefold() in {d.casefold() for d in DEFAULT_CATEGORIES}:
        raise CategoryExistsError(f"Category {n!r} already exists")
    existing = (
        session.execute(select(CfCategory).where(func.lower(CfCategory.name) == n.lower()))
        .scalars()
        .first()
    )
    if existing is not None:
        raise CategoryExistsError(f"Category {n!r} already exists")

    row = CfCategory(name=n, color=c)
    try:
        session.add(row)
        session.flush()
    except IntegrityError as e:  # pragma: no cover - concurrent insert of the same name
        session.rollback()
        raise CategoryExistsError(f"Category {n!r} already exists") from e
    _logger.info("categories:created name=%s", n)
    return Category(name=row.name, color=row.color)


__all__ = [
    "Category",
    "CategoryExistsError",
    "DEFAULT_CATEGORIES",
    "DEFAULT_COLOR",
    "create_category",
    "list_categories",
    "normalize_name",
    "validate_category_name",
]
