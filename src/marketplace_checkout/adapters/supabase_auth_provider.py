"""Supabase auth adapter for resolving callers."""

import logging
from dataclasses import dataclass
from typing import Protocol

from supabase import AuthError, Client

logger = logging.getLogger(__name__)


class AuthProvider(Protocol):
    """Interface for resolving a bearer token to a user id."""

    def get_user_id(self, access_token: str) -> str | None:
        """Return the user id for a valid token, otherwise None."""


@dataclass
class SupabaseAuthProvider(AuthProvider):
    """Resolves Supabase access tokens."""

    client: Client

    def get_user_id(self, access_token: str) -> str | None:
        """Validate the token with Supabase auth."""
        try:
            response = self.client.auth.get_user(access_token)
        except AuthError:
            logger.info("Rejected access token")
            return None
        if response is None or response.user is None:
            return None
        return str(response.user.id)
