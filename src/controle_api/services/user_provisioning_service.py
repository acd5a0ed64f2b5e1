"""User provisioning service (identity account plus profile row).

Batch creation runs strictly sequentially with a fixed delay between
requests, to stay under the identity provider's rate limit. Each request
gets up to ``max_attempts`` creation attempts with linear backoff; every
attempt ends in exactly one AttemptOutcome.

Known inconsistency: in a batch, when the profile upsert fails after the
identity account was created, the account is left orphaned (logged, not
deleted). The single-user path deletes the fresh account instead.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

from controle_api.clients.base import DataStoreClient, IdentityProviderClient
from controle_api.constants.tables import AUDIT_LOG_TABLE, USERS_TABLE
from controle_api.exceptions import (
    DataStoreError,
    IdentityProviderError,
    ProvisioningError,
    UserAlreadyExistsError,
    ValidationError,
)
from controle_api.models.dto.users import (
    BatchSummary,
    BatchUserResponse,
    BatchUserResult,
    ProvisioningStatus,
    UserCreateRequest,
    UserProfileResponse,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

MIN_PASSWORD_LENGTH = 8

DUPLICATE_MARKERS = ("already been registered", "already registered", "already exists")
RETRYABLE_MARKERS = ("rate", "429", "timeout", "503")

REQUIRED_FIELDS_ERROR = "nome, email and senha are required"
DUPLICATE_NOT_FOUND_ERROR = "Email already exists in the identity provider, but the account could not be located"


class CreateErrorKind(StrEnum):
    """Classification of an identity provider creation error."""

    DUPLICATE = "duplicate"
    RETRYABLE = "retryable"
    OTHER = "other"


class AttemptOutcome(StrEnum):
    """Result of a single creation attempt."""

    SUCCEEDED = "succeeded"
    RESOLVED_VIA_LOOKUP = "resolved_via_lookup"
    TERMINAL_FAILURE = "terminal_failure"
    RETRY = "retry"


@dataclass
class AttemptResult:
    """One creation attempt: outcome plus the account id or error."""

    outcome: AttemptOutcome
    user_id: str | None = None
    error: str | None = None


def classify_create_error(message: str) -> CreateErrorKind:
    """Classify a creation error message (case-insensitive)."""
    text = message.lower()
    if any(marker in text for marker in DUPLICATE_MARKERS):
        return CreateErrorKind.DUPLICATE
    if any(marker in text for marker in RETRYABLE_MARKERS):
        return CreateErrorKind.RETRYABLE
    return CreateErrorKind.OTHER


class UserProvisioningService:
    """Service for creating users in the identity provider and profile table."""

    def __init__(
        self,
        identity: IdentityProviderClient,
        store: DataStoreClient,
        request_delay: float = 0.3,
        backoff: float = 0.5,
        max_attempts: int = 3,
        list_page_size: int = 1000,
        list_max_pages: int = 10,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize provisioning service.

        Args:
            identity: Identity provider client
            store: Data store client (profile table)
            request_delay: Seconds to wait before each batch request after the first
            backoff: Base backoff in seconds; attempt n waits backoff * n
            max_attempts: Creation attempts per request
            list_page_size: Page size when searching accounts by email
            list_max_pages: Maximum pages scanned when searching by email
            sleep: Awaitable sleep (tests inject a recorder)
        """
        self.identity = identity
        self.store = store
        self.request_delay = request_delay
        self.backoff = backoff
        self.max_attempts = max_attempts
        self.list_page_size = list_page_size
        self.list_max_pages = list_max_pages
        self._sleep = sleep

    async def find_user_id_by_email(self, email: str) -> str | None:
        """Search the identity provider's account list for an email.

        Stops at the first match or at a short page. A list error counts as
        not found.
        """
        for page in range(1, self.list_max_pages + 1):
            try:
                users = await self.identity.list_users(page=page, per_page=self.list_page_size)
            except IdentityProviderError as e:
                logger.warning(f"Account lookup stopped at page {page}: {e.message}")
                return None
            for user in users:
                if user.matches_email(email):
                    return user.id
            if len(users) < self.list_page_size:
                break
        return None

    async def _attempt_create(self, email: str, password: str, attempt: int) -> AttemptResult:
        """Run one creation attempt and decide what happens next.

        Duplicates are resolved by lookup and never retried. Rate-limit and
        timeout errors are retried until attempts run out. Any other error
        gets one free retry, then becomes terminal.
        """
        try:
            user = await self.identity.create_user(email, password, email_confirmed=True)
            return AttemptResult(AttemptOutcome.SUCCEEDED, user_id=user.id)
        except IdentityProviderError as e:
            message = e.message

        kind = classify_create_error(message)
        if kind == CreateErrorKind.DUPLICATE:
            existing_id = await self.find_user_id_by_email(email)
            if existing_id:
                return AttemptResult(AttemptOutcome.RESOLVED_VIA_LOOKUP, user_id=existing_id)
            return AttemptResult(AttemptOutcome.TERMINAL_FAILURE, error=DUPLICATE_NOT_FOUND_ERROR)

        if kind == CreateErrorKind.RETRYABLE or attempt == 0:
            return AttemptResult(AttemptOutcome.RETRY, error=message)
        return AttemptResult(AttemptOutcome.TERMINAL_FAILURE, error=message or "Unknown failure")

    async def _resolve_account(
        self, request: UserCreateRequest
    ) -> tuple[str | None, ProvisioningStatus, str | None]:
        """Create (or adopt) the identity account for a request, with retries."""
        email = (request.email or "").strip()
        password = request.senha or ""

        for attempt in range(self.max_attempts):
            if attempt > 0:
                await self._sleep(self.backoff * attempt)

            result = await self._attempt_create(email, password, attempt)
            if result.outcome == AttemptOutcome.SUCCEEDED:
                return result.user_id, ProvisioningStatus.CREATED, None
            if result.outcome == AttemptOutcome.RESOLVED_VIA_LOOKUP:
                return result.user_id, ProvisioningStatus.EXISTING, None
            if result.outcome == AttemptOutcome.TERMINAL_FAILURE:
                return None, ProvisioningStatus.FAILED, result.error

        return None, ProvisioningStatus.FAILED, f"Failed to create user after {self.max_attempts} attempts"

    async def provision_one(self, request: UserCreateRequest) -> BatchUserResult:
        """Provision one valid request: identity account, then profile row."""
        user_id, status, error = await self._resolve_account(request)

        if user_id:
            try:
                await self.store.upsert(USERS_TABLE, [request.profile_row(user_id)], on_conflict="id")
            except DataStoreError as e:
                logger.warning(
                    f"Profile upsert failed for {request.email}; "
                    f"identity account {user_id} left orphaned: {e.message}"
                )
                user_id = None
                status = ProvisioningStatus.FAILED
                error = f"Identity account OK, but profile failed: {e.message}"

        return BatchUserResult(
            nome=(request.nome or "").strip(),
            email=(request.email or "").strip(),
            id=user_id,
            error=error,
            status=status,
        )

    async def provision_batch(self, requests: list[UserCreateRequest]) -> BatchUserResponse:
        """Provision many users, one after another.

        The caller must already be verified as a manager.

        Args:
            requests: Non-empty list of creation requests

        Returns:
            Per-request results and a summary tally

        Raises:
            ValidationError: If the list is empty
        """
        if not requests:
            raise ValidationError("users[] is required and cannot be empty")

        results: list[BatchUserResult] = []
        for index, request in enumerate(requests):
            if index > 0:
                await self._sleep(self.request_delay)

            if request.missing_required():
                results.append(
                    BatchUserResult(
                        nome=request.nome or "",
                        email=request.email or "",
                        error=REQUIRED_FIELDS_ERROR,
                        status=ProvisioningStatus.FAILED,
                    )
                )
                continue

            results.append(await self.provision_one(request))

        summary = BatchSummary(
            total=len(results),
            created=sum(1 for r in results if r.status == ProvisioningStatus.CREATED),
            existing=sum(1 for r in results if r.status == ProvisioningStatus.EXISTING),
            failed=sum(1 for r in results if r.status == ProvisioningStatus.FAILED),
        )
        logger.info(
            f"Batch provisioning finished: {summary.created} created, "
            f"{summary.existing} existing, {summary.failed} failed"
        )
        return BatchUserResponse(results=results, summary=summary)

    async def create_user(self, request: UserCreateRequest, actor_id: str | None = None) -> UserProfileResponse:
        """Create a single user, rolling back a fresh account if its profile fails.

        Args:
            request: Creation request
            actor_id: Manager performing the creation (for the audit row)

        Returns:
            The stored profile

        Raises:
            ValidationError: If required fields are blank or the password is short
            UserAlreadyExistsError: If the email exists but cannot be located
            ProvisioningError: If the account or profile cannot be created
        """
        if request.missing_required():
            raise ValidationError(REQUIRED_FIELDS_ERROR)
        if len((request.senha or "").strip()) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

        email = (request.email or "").strip()
        created = True
        try:
            user = await self.identity.create_user(email, request.senha or "", email_confirmed=True)
            user_id = user.id
        except IdentityProviderError as e:
            if classify_create_error(e.message) != CreateErrorKind.DUPLICATE:
                raise ProvisioningError("Could not create the user.", {"reason": e.message}) from e
            existing_id = await self.find_user_id_by_email(email)
            if not existing_id:
                raise UserAlreadyExistsError(email) from e
            user_id = existing_id
            created = False

        row = request.profile_row(user_id)
        try:
            await self.store.upsert(USERS_TABLE, [row], on_conflict="id")
        except DataStoreError as e:
            if created:
                try:
                    await self.identity.delete_user(user_id)
                except IdentityProviderError as rollback_error:
                    logger.warning(f"Rollback of identity account {user_id} failed: {rollback_error.message}")
            raise ProvisioningError("Error creating the user profile.", {"reason": e.message}) from e

        await self._audit_creation(actor_id, row)

        return UserProfileResponse(
            id=user_id,
            nome=row["nome"],
            email=row["email"],
            role=row["role"],
            departamento_id=row["departamento_id"],
            ativo=row["ativo"],
            status=ProvisioningStatus.CREATED if created else ProvisioningStatus.EXISTING,
        )

    async def _audit_creation(self, actor_id: str | None, row: dict[str, object]) -> None:
        """Write the creation to the audit table, best-effort."""
        try:
            await self.store.insert(
                AUDIT_LOG_TABLE,
                [
                    {
                        "user_id": actor_id,
                        "action": "create",
                        "entity": "usuario",
                        "entity_id": row["id"],
                        "message": f"Criou usuário: {row['nome']} ({row['email']})",
                    }
                ],
            )
        except DataStoreError as e:
            logger.warning(f"Audit log for user {row['id']} not written: {e.message}")
