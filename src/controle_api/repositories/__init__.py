"""Repository layer for data access."""

from controle_api.repositories.table_repository import (
    FailurePolicy,
    TableRepository,
    TableWriteReport,
)

__all__ = [
    "FailurePolicy",
    "TableRepository",
    "TableWriteReport",
]
