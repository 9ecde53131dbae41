"""
Durable order storage.
"""

from .postgres import OrderStore, PostgresOrderStore

__all__ = ["OrderStore", "PostgresOrderStore"]
