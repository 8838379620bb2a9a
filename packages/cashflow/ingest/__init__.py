"""Importers that turn external files into validated transactions."""

from .csv_import import load_transactions_from_csv

__all__ = ["load_transactions_from_csv"]
