"""Manager authorization for privileged endpoints."""

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from controle_api.clients.base import DataStoreClient, IdentityProviderClient
from controle_api.constants.tables import USERS_TABLE
from controle_api.dependencies import get_data_store, get_identity_provider
from controle_api.exceptions import (
    AuthenticationError,
    AuthorizationError,
    IdentityProviderError,
)
from controle_api.models.domain.identity import Manager

MANAGER_ROLES = frozenset({"gerente", "admin"})


async def get_current_account(
    identity: Annotated[IdentityProviderClient, Depends(get_identity_provider)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(HTTPBearer(auto_error=False))] = None,
) -> str:
    """Resolve the bearer token to an identity account id.

    Raises:
        AuthenticationError: If the token is missing or rejected
    """
    if credentials is None:
        raise AuthenticationError("Authentication required")

    try:
        user = await identity.get_user(credentials.credentials)
    except IdentityProviderError as e:
        if e.status_code is not None and e.status_code < 500:
            raise AuthenticationError("Invalid or expired token") from e
        raise
    return user.id


async def require_manager(
    account_id: Annotated[str, Depends(get_current_account)],
    store: Annotated[DataStoreClient, Depends(get_data_store)],
) -> Manager:
    """Require an active profile with a manager role.

    Returns:
        The calling manager

    Raises:
        AuthorizationError: If the profile is missing, inactive or not a manager
    """
    profile = await store.select_one(USERS_TABLE, "id", account_id)

    if not profile or not profile.get("ativo") or profile.get("role") not in MANAGER_ROLES:
        raise AuthorizationError("Manager access required")

    return Manager(id=account_id, email=profile.get("email"), role=profile["role"])
