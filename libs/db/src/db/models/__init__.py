"""Shared SQLAlchemy models registry for the ledger database.

Holds the user, transaction, and custom-category tables used by ``cashflow``.
"""

from .ledger import Base, CfCategory, CfTransaction, CfUser

__all__ = [
    "Base",
    "CfCategory",
    "CfTransaction",
    "CfUser",
]
