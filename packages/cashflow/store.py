"""Persistence integration for ``cashflow``.

Functions here read and write users and transactions in the shared database
owned by ``libs/db``. They rely on the ORM models in ``db.models.ledger`` and
take a caller-owned SQLAlchemy session (see ``db.client.session_scope``);
nothing here commits.

Rows are mapped to :class:`~cashflow.models.Transaction` on the way out so
the aggregation and insight code never sees ORM objects.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db.models.ledger import CfTransaction, CfUser
from .logging_setup import get_logger
from .models import StoredTransaction, Transaction, TransactionLike, UserHandle

_logger = get_logger("cashflow.store")

CURRENCIES: tuple[str, ...] = ("INR", "USD", "EUR", "GBP", "CAD", "AUD")
DATE_FORMATS: tuple[str, ...] = ("DD/MM/YYYY", "MM/DD/YYYY", "YYYY-MM-DD")
THEMES: tuple[str, ...] = ("light", "dark", "auto")

DEFAULT_PREFERENCES: dict[str, Any] = {
    "currency": "INR",
    "dateFormat": "DD/MM/YYYY",
    "theme": "light",
    "notifications": {"email": True, "push": True},
}

_PREFERENCE_CHOICES: dict[str, tuple[str, ...]] = {
    "currency": CURRENCIES,
    "dateFormat": DATE_FORMATS,
    "theme": THEMES,
}

_PROFILE_FIELDS = ("email", "full_name", "image_url")


class UserNotFoundError(LookupError):
    """No user row matches the given external identity."""


class TransactionNotFoundError(LookupError):
    """No transaction with that id belongs to the user."""


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def _handle(row: CfUser) -> UserHandle:
    return UserHandle(
        id=row.id, external_id=row.external_id, email=row.email, full_name=row.full_name
    )


def _to_transaction(row: CfTransaction) -> Transaction:
    return Transaction(
        type=row.type,
        amount=Decimal(row.amount),
        category=row.category,
        payment_method=row.payment_method,
        date=row.date,
        description=row.description or "",
    )


def _to_stored(row: CfTransaction) -> StoredTransaction:
    return StoredTransaction(id=row.id, transaction=_to_transaction(row), created_at=row.created_at)


# ---------------------------
# Users
# ---------------------------


def ensure_user_record(
    session: Session,
    external_id: str,
    profile: Mapping[str, Any] | None = None,
) -> UserHandle:
    """Find or create the user for ``external_id``.

    Profile fields (``email``, ``full_name``, ``image_url``) present in
    ``profile`` overwrite the stored values; ``last_login`` is refreshed on
    every call.
    """

    key = (external_id or "").strip()
    if not key:
        raise ValueError("external_id must be a non-empty string")

    row = session.execute(select(CfUser).where(CfUser.external_id == key)).scalars().first()
    created = row is None
    if row is None:
        row = CfUser(external_id=key, preferences=dict(DEFAULT_PREFERENCES))
        session.add(row)
    for name in _PROFILE_FIELDS:
        value = (profile or {}).get(name)
        if value is not None:
            setattr(row, name, value)
    row.last_login = _utcnow()
    session.flush()
    if created:
        _logger.info("store:user_created external_id=%s", key)
    return _handle(row)


def _user_row(session: Session, external_id: str) -> CfUser:
    row = (
        session.execute(select(CfUser).where(CfUser.external_id == external_id))
        .scalars()
        .first()
    )
    if row is None:
        raise UserNotFoundError(f"user not found: {external_id!r}")
    return row


def get_user(session: Session, external_id: str) -> UserHandle:
    return _handle(_user_row(session, external_id))


def get_preferences(session: Session, external_id: str) -> dict[str, Any]:
    return dict(_user_row(session, external_id).preferences or {})


def update_preferences(
    session: Session, external_id: str, changes: Mapping[str, Any]
) -> dict[str, Any]:
    """Merge ``changes`` into the user's preferences and return the result.

    ``currency``, ``dateFormat`` and ``theme`` must be one of their allowed
    values; ``notifications`` merges key by key. Unknown keys are rejected.
    """

    row = _user_row(session, external_id)
    merged: dict[str, Any] = {**DEFAULT_PREFERENCES, **(row.preferences or {})}
    for key, value in changes.items():
        if key in _PREFERENCE_CHOICES:
            if value not in _PREFERENCE_CHOICES[key]:
                allowed = ", ".join(_PREFERENCE_CHOICES[key])
                raise ValueError(f"invalid {key} {value!r}; expected one of: {allowed}")
            merged[key] = value
        elif key == "notifications":
            if not isinstance(value, Mapping) or not all(
                isinstance(v, bool) for v in value.values()
            ):
                raise ValueError("notifications must map channel names to booleans")
            merged["notifications"] = {**merged.get("notifications", {}), **value}
        else:
            raise ValueError(f"unknown preference {key!r}")
    # Reassign so the JSON column is marked dirty.
    row.preferences = merged
    session.flush()
    return dict(merged)


def refresh_financial_summary(session: Session, external_id: str) -> dict[str, Decimal]:
    """Recompute the cached income/expense/net totals on the user row."""

    row = _user_row(session, external_id)
    totals = dict(
        session.execute(
            select(CfTransaction.type, func.coalesce(func.sum(CfTransaction.amount), 0))
            .where(CfTransaction.user_id == row.id)
            .group_by(CfTransaction.type)
        ).all()
    )
    income = Decimal(str(totals.get("income", 0)))
    expense = Decimal(str(totals.get("expense", 0)))
    row.total_income = income
    row.total_expense = expense
    row.net_balance = income - expense
    row.summary_updated_at = _utcnow()
    session.flush()
    return {"total_income": income, "total_expense": expense, "net_balance": income - expense}


# ---------------------------
# Transactions
# ---------------------------


def add_transaction(
    session: Session, external_id: str, transaction: TransactionLike
) -> StoredTransaction:
    """Validate and insert one transaction for the user."""

    tx = (
        transaction
        if isinstance(transaction, Transaction)
        else Transaction.model_validate(transaction)
    )
    user = _user_row(session, external_id)
    row = CfTransaction(
        user_id=user.id,
        type=tx.type,
        amount=tx.amount,
        category=tx.category,
        payment_method=tx.payment_method,
        date=tx.date,
        description=tx.description,
    )
    session.add(row)
    session.flush()
    _logger.debug("store:transaction_added id=%d user_id=%d", row.id, user.id)
    return _to_stored(row)


def _transaction_row(session: Session, user: CfUser, transaction_id: int) -> CfTransaction:
    row = (
        session.execute(
            select(CfTransaction).where(
                CfTransaction.id == transaction_id, CfTransaction.user_id == user.id
            )
        )
        .scalars()
        .first()
    )
    if row is None:
        raise TransactionNotFoundError(f"transaction not found: {transaction_id}")
    return row


def get_transaction(session: Session, external_id: str, transaction_id: int) -> StoredTransaction:
    user = _user_row(session, external_id)
    return _to_stored(_transaction_row(session, user, transaction_id))


def delete_transaction(session: Session, external_id: str, transaction_id: int) -> None:
    user = _user_row(session, external_id)
    session.delete(_transaction_row(session, user, transaction_id))
    session.flush()


def list_transactions(
    session: Session, external_id: str, *, limit: int | None = None
) -> list[StoredTransaction]:
    """Return the user's transactions, newest date first then newest creation."""

    user = _user_row(session, external_id)
    stmt = (
        select(CfTransaction)
        .where(CfTransaction.user_id == user.id)
        .order_by(
            CfTransaction.date.desc(), CfTransaction.created_at.desc(), CfTransaction.id.desc()
        )
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return [_to_stored(row) for row in session.execute(stmt).scalars()]


__all__ = [
    "CURRENCIES",
    "DATE_FORMATS",
    "DEFAULT_PREFERENCES",
    "THEMES",
    "TransactionNotFoundError",
    "UserNotFoundError",
    "add_transaction",
    "delete_transaction",
    "ensure_user_record",
    "get_preferences",
    "get_transaction",
    "get_user",
    "list_transactions",
    "refresh_financial_summary",
    "update_preferences",
]
