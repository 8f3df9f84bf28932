"""Identity provider interface."""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class VerifiedIdentity(BaseModel):
    """Identity established by the authentication provider."""

    user_id: str
    display_name: str
    email: str


class IdentityProvider(ABC):
    """Abstract authentication provider."""

    @abstractmethod
    def verify(self, token: str) -> VerifiedIdentity:
        """Verify a token and return the identity behind it.

        Raises:
            AuthorizationDenied: If the token is invalid
        """
