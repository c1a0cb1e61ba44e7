"""Persistence layer backing the quiz core."""

from .document_store import (
    SERVER_TIMESTAMP,
    CollectionSnapshot,
    DocumentSnapshot,
    DocumentStore,
    Transaction,
)

__all__ = [
    "SERVER_TIMESTAMP",
    "CollectionSnapshot",
    "DocumentSnapshot",
    "DocumentStore",
    "Transaction",
]
