from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from app.dependencies.auth import CredentialVerifierDep, Role

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


class LoginResponse(BaseModel):
    role: Role


@router.post("/login", response_model=LoginResponse)
async def login(verifier: CredentialVerifierDep, payload: LoginRequest | None = None) -> LoginResponse:
    credentials = payload or LoginRequest()
    role = verifier.verify(credentials.email, credentials.password)
    return LoginResponse(role=role)
