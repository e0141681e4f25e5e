from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    CUSTOMER = "customer"
    RETAILER = "retailer"
    WHOLESALER = "wholesaler"

    @classmethod
    def parse(cls, value: object) -> "Role | None":
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class AuthStatus(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    PROFILE_INCOMPLETE = "profile_incomplete"
    AUTHENTICATED = "authenticated"


@dataclass
class PendingAuth:
    code_verifier: str
    created_at: float


@dataclass
class SessionUser:
    id: str
    email: str | None
    name: str | None
    picture: str | None
    email_verified: bool
    role: Role | None = None

    def to_public(self) -> dict:
        payload = {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "picture": self.picture,
            "email_verified": self.email_verified,
        }
        if self.role is not None:
            payload["role"] = self.role.value
        return payload


@dataclass
class SessionTokens:
    access_token: str
    refresh_token: str | None
    # Epoch milliseconds.
    expiry_date: int | None


@dataclass
class Session:
    user: SessionUser
    tokens: SessionTokens
    created_at: float = field(default_factory=time.time)

    @property
    def status(self) -> AuthStatus:
        if self.user.role is None:
            return AuthStatus.PROFILE_INCOMPLETE
        return AuthStatus.AUTHENTICATED


def auth_status(session: Session | None) -> AuthStatus:
    if session is None:
        return AuthStatus.UNAUTHENTICATED
    return session.status
