"""Whole-table read and batched write operations over the data store.

Reads page through a table sequentially; writes chunk rows and upsert them
one chunk at a time. Nothing here runs concurrently.
"""

import logging
from dataclasses import dataclass, field
from enum import StrEnum

from controle_api.clients.base import DataStoreClient, Row
from controle_api.constants.tables import NIL_UUID
from controle_api.exceptions import BackupReadError, BackupWriteError, DataStoreError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000
DEFAULT_BATCH_SIZE = 500
CONFLICT_KEY = "id"


class FailurePolicy(StrEnum):
    """What a write does when the store rejects it."""

    ABORT = "abort"  # raise BackupWriteError, skip remaining chunks
    CONTINUE = "continue"  # log, record in the report, keep going


@dataclass
class TableWriteReport:
    """Outcome of a write or delete on one table."""

    table: str
    rows_written: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class TableRepository:
    """Paginated reader and batched writer for arbitrary tables."""

    def __init__(
        self,
        store: DataStoreClient,
        page_size: int = DEFAULT_PAGE_SIZE,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        """Initialize repository with a data store client."""
        self.store = store
        self.page_size = page_size
        self.batch_size = batch_size

    async def fetch_all(self, table: str) -> list[Row]:
        """Read every row of a table, one page at a time.

        Args:
            table: Table name

        Returns:
            All rows in store order

        Raises:
            BackupReadError: If any page read fails (no retry)
        """
        rows: list[Row] = []
        start = 0
        while True:
            try:
                page = await self.store.select_range(table, start, start + self.page_size - 1)
            except DataStoreError as e:
                raise BackupReadError(table, e.message) from e
            if not page:
                break
            rows.extend(page)
            if len(page) < self.page_size:
                break
            start += self.page_size
        return rows

    def _chunks(self, rows: list[Row]) -> list[list[Row]]:
        return [rows[i : i + self.batch_size] for i in range(0, len(rows), self.batch_size)]

    async def write_rows(
        self,
        table: str,
        rows: list[Row],
        policy: FailurePolicy = FailurePolicy.ABORT,
    ) -> TableWriteReport:
        """Upsert rows in fixed-size chunks, keyed on the row id.

        With ABORT, the first failing chunk raises. With CONTINUE, a failing
        upsert is retried as a plain insert (callers that may insert but not
        upsert), and a chunk failing both ways is logged and skipped.

        Args:
            table: Table name
            rows: Rows to write
            policy: Failure policy

        Returns:
            Report with rows written and per-chunk errors

        Raises:
            BackupWriteError: On a chunk failure under ABORT
        """
        report = TableWriteReport(table=table)
        for index, chunk in enumerate(self._chunks(rows), start=1):
            try:
                await self.store.upsert(table, chunk, on_conflict=CONFLICT_KEY)
                report.rows_written += len(chunk)
                continue
            except DataStoreError as e:
                if policy == FailurePolicy.ABORT:
                    raise BackupWriteError(table, e.message, chunk=index) from e

            try:
                await self.store.insert(table, chunk)
                report.rows_written += len(chunk)
            except DataStoreError as e:
                logger.warning(f'Ignoring error in "{table}" (batch {index}): {e.message}')
                report.errors.append(f"batch {index}: {e.message}")
        return report

    async def delete_all(
        self,
        table: str,
        policy: FailurePolicy = FailurePolicy.ABORT,
    ) -> TableWriteReport:
        """Delete every row of a table.

        The store refuses unfiltered bulk deletes, so this filters on
        ``id <> NIL_UUID``, which matches every row.

        Raises:
            BackupWriteError: On failure under ABORT
        """
        report = TableWriteReport(table=table)
        try:
            await self.store.delete_where_not_equal(table, CONFLICT_KEY, NIL_UUID)
        except DataStoreError as e:
            if policy == FailurePolicy.ABORT:
                raise BackupWriteError(table, e.message) from e
            logger.warning(f'Could not clear "{table}" (access rules): {e.message}')
            report.errors.append(e.message)
        return report

    async def insert_batch(self, table: str, rows: list[Row]) -> TableWriteReport:
        """Fail-fast chunked upsert."""
        return await self.write_rows(table, rows, FailurePolicy.ABORT)

    async def insert_batch_safe(self, table: str, rows: list[Row]) -> TableWriteReport:
        """Best-effort chunked upsert with insert fallback. Never raises."""
        return await self.write_rows(table, rows, FailurePolicy.CONTINUE)

    async def delete_all_safe(self, table: str) -> TableWriteReport:
        """Best-effort delete-all. Never raises."""
        return await self.delete_all(table, FailurePolicy.CONTINUE)
