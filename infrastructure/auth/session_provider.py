"""Session provider.

Supplies the caller identity and the organization (tenant) that every
data-store operation is scoped to.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from domain.exceptions import NotAuthenticatedError, OrganizationNotFoundError


@dataclass(frozen=True)
class SessionIdentity:
    user_id: str
    organization_id: str


class SessionProvider(ABC):
    """Abstract session interface."""

    @abstractmethod
    def current_identity(self) -> SessionIdentity:
        """Get the signed-in identity.

        Raises:
            NotAuthenticatedError: If nobody is signed in
            OrganizationNotFoundError: If the user has no organization
        """

    def organization_id(self) -> str:
        """Convenience accessor for the current tenant."""
        return self.current_identity().organization_id


def _build_identity(user_id: Optional[str], organization_id: Optional[str]) -> SessionIdentity:
    user = (user_id or "").strip()
    organization = (organization_id or "").strip()
    if not user:
        raise NotAuthenticatedError("Utilisateur non authentifié")
    if not organization:
        raise OrganizationNotFoundError("Organisation introuvable")
    return SessionIdentity(user_id=user, organization_id=organization)


class StaticSessionProvider(SessionProvider):
    """Fixed identity, for tests and single-user installs."""

    def __init__(self, user_id: Optional[str], organization_id: Optional[str]) -> None:
        self._user_id = user_id
        self._organization_id = organization_id

    def current_identity(self) -> SessionIdentity:
        return _build_identity(self._user_id, self._organization_id)

    def sign_in(self, user_id: str, organization_id: str) -> None:
        self._user_id = user_id
        self._organization_id = organization_id

    def sign_out(self) -> None:
        self._user_id = None
        self._organization_id = None


class EnvSessionProvider(SessionProvider):
    """Identity taken from application settings (environment / .env)."""

    def __init__(self, settings) -> None:
        self._settings = settings

    def current_identity(self) -> SessionIdentity:
        return _build_identity(self._settings.user_id, self._settings.organization_id)
