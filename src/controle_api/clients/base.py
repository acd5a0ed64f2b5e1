"""Base interfaces for the hosted backend collaborators."""

from abc import ABC, abstractmethod
from typing import Any

from controle_api.models.domain.identity import IdentityUser

Row = dict[str, Any]


class DataStoreClient(ABC):
    """Narrow table-CRUD interface over the hosted data store.

    Every method raises DataStoreError with the store's message on failure.
    """

    @abstractmethod
    async def select_range(self, table: str, start: int, end: int) -> list[Row]:
        """Select rows of a table by inclusive offset range.

        Args:
            table: Table name
            start: First row offset (0-based)
            end: Last row offset, inclusive

        Returns:
            Rows in the range, possibly fewer than requested
        """
        pass

    @abstractmethod
    async def select_one(self, table: str, column: str, value: str) -> Row | None:
        """Select the first row whose column equals value, or None."""
        pass

    @abstractmethod
    async def upsert(self, table: str, rows: list[Row], on_conflict: str = "id") -> None:
        """Insert rows, updating existing ones matched on the conflict column."""
        pass

    @abstractmethod
    async def insert(self, table: str, rows: list[Row]) -> None:
        """Insert rows."""
        pass

    @abstractmethod
    async def delete_where_not_equal(self, table: str, column: str, value: str) -> None:
        """Delete every row whose column differs from value."""
        pass


class IdentityProviderClient(ABC):
    """Identity-admin interface, independent of the data store.

    Every method raises IdentityProviderError with the provider's message on failure.
    """

    @abstractmethod
    async def create_user(self, email: str, password: str, email_confirmed: bool = True) -> IdentityUser:
        """Create an account.

        Args:
            email: Account email
            password: Initial password
            email_confirmed: Whether the email is marked as confirmed

        Returns:
            The created account
        """
        pass

    @abstractmethod
    async def list_users(self, page: int, per_page: int) -> list[IdentityUser]:
        """List accounts, one page at a time (pages start at 1)."""
        pass

    @abstractmethod
    async def delete_user(self, user_id: str) -> None:
        """Delete an account."""
        pass

    @abstractmethod
    async def get_user(self, access_token: str) -> IdentityUser:
        """Resolve the account that owns an access token."""
        pass
