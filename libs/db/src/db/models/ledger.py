from __future__ import annotations

import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Index,
    Numeric,
    String,
    Text,
    func,
    text,
    true,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_PK_TYPE = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Identity: cf_users
# ---------------------------


class CfUser(Base):
    __tablename__ = "cf_users"

    id: Mapped[int] = mapped_column(_PK_TYPE, primary_key=True)
    # Identifier issued by the external identity provider; the only lookup key
    # request handlers hold.
    external_id: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    full_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    preferences: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    # Cached totals, recomputed on demand by the store layer.
    total_income: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, server_default=text("0")
    )
    total_expense: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, server_default=text("0")
    )
    net_balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, server_default=text("0")
    )
    summary_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=true())
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


# ---------------------------
# Core: cf_transactions
# ---------------------------


class CfTransaction(Base):
    __tablename__ = "cf_transactions"

    id: Mapped[int] = mapped_column(_PK_TYPE, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("cf_users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    payment_method: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'cash'")
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("type in ('income','expense')", name="ck_cf_tx_type"),
        CheckConstraint("amount >= 0", name="ck_cf_tx_amount_non_negative"),
        CheckConstraint("payment_method in ('cash','upi')", name="ck_cf_tx_payment_method"),
        Index("ix_cf_tx_user_date", "user_id", "date"),
    )


# ---------------------------
# Reference: cf_categories
# ---------------------------


class CfCategory(Base):
    __tablename__ = "cf_categories"

    id: Mapped[int] = mapped_column(_PK_TYPE, primary_key=True)
    # Case-insensitive uniqueness is enforced in the service layer; the column
    # constraint only guards exact duplicates.
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    color: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'#888888'"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


__all__ = [
    "Base",
    "CfCategory",
    "CfTransaction",
    "CfUser",
]
