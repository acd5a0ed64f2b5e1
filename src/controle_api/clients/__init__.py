"""Hosted backend clients package."""

from controle_api.clients.base import DataStoreClient, IdentityProviderClient
from controle_api.clients.supabase import SupabaseDataStore, SupabaseIdentityProvider

__all__ = [
    "DataStoreClient",
    "IdentityProviderClient",
    "SupabaseDataStore",
    "SupabaseIdentityProvider",
]
