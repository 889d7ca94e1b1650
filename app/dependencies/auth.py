import hmac
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Protocol

from fastapi import Depends, HTTPException, Request


class Role(str, Enum):
    """Supported roles."""

    ADMIN = "admin"
    USER = "user"


class CredentialVerifier(Protocol):
    """Maps submitted credentials to a role label."""

    def verify(self, email: str | None, password: str | None) -> Role:
        ...


@dataclass(slots=True)
class StaticAdminVerifier:
    """Grant the admin role to a single configured account.

    Every other combination, including any attempt while no admin password is
    configured, resolves to the plain user role. The role is a display label
    only and does not gate any route.
    """

    admin_email: str
    admin_password: str | None = None

    def verify(self, email: str | None, password: str | None) -> Role:
        if not self.admin_password or email is None or password is None:
            return Role.USER
        email_matches = hmac.compare_digest(email.encode("utf-8"), self.admin_email.encode("utf-8"))
        password_matches = hmac.compare_digest(password.encode("utf-8"), self.admin_password.encode("utf-8"))
        if email_matches and password_matches:
            return Role.ADMIN
        return Role.USER


async def get_credential_verifier(request: Request) -> CredentialVerifier:
    verifier = getattr(request.app.state, "credential_verifier", None)
    if verifier is None:
        raise HTTPException(status_code=503, detail="Login is not configured")
    return verifier


CredentialVerifierDep = Annotated[CredentialVerifier, Depends(get_credential_verifier)]
