"""Resolve the calling account from request credentials.

Phone verification and token issuance live outside this service; here we
only trust what the configured provider vouches for. The provider is chosen
once at startup.
"""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

import jwt

from ..clock import Clock
from ..repositories.accounts import AccountRepository

LOGGER = logging.getLogger("uvicorn.error")

DEV_ACCOUNT_HEADER = "x-dev-account"


def _placeholder_phone_hash(account_id: str) -> str:
    return hashlib.sha256(f"account:{account_id}".encode("utf-8")).hexdigest()


def extract_bearer(authorization: str) -> Optional[str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


class AuthProvider(ABC):
    def __init__(self, accounts: AccountRepository, *, clock: Clock) -> None:
        self._accounts = accounts
        self._clock = clock

    @abstractmethod
    async def authenticate(self, headers: Mapping[str, str]) -> Optional[str]:
        """Return the account id for the request, or ``None`` if unauthenticated."""

    async def _ensure(self, account_id: str, phone_number_hash: Optional[str] = None) -> str:
        account = await self._accounts.get_by_account_id(account_id)
        if account is None:
            account = await self._accounts.ensure_account(
                account_id=account_id,
                phone_number_hash=phone_number_hash or _placeholder_phone_hash(account_id),
                created_at=self._clock(),
            )
            LOGGER.info("Account %s registered on first request", account_id)
        return account.account_id


class JwtAuthProvider(AuthProvider):
    """HS256 bearer tokens whose ``sub`` claim is the account id."""

    def __init__(
        self,
        accounts: AccountRepository,
        *,
        clock: Clock,
        secret: str,
        algorithm: str = "HS256",
    ) -> None:
        super().__init__(accounts, clock=clock)
        if not secret:
            raise ValueError("JWT_SECRET is required when AUTH_PROVIDER=jwt")
        self._secret = secret
        self._algorithm = algorithm

    def issue_token(self, account_id: str, ttl_seconds: int = 3600, **claims: Any) -> str:
        now = self._clock() // 1000
        payload: Dict[str, Any] = {"sub": account_id, "iat": now, "exp": now + ttl_seconds, **claims}
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode_token(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            return jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.PyJWTError as exc:
            LOGGER.debug("Rejected bearer token: %s", exc)
            return None

    async def authenticate(self, headers: Mapping[str, str]) -> Optional[str]:
        token = extract_bearer(headers.get("authorization", ""))
        if not token:
            return None
        payload = self.decode_token(token)
        if not payload:
            return None
        account_id = str(payload.get("sub") or "").strip()
        if not account_id:
            return None
        return await self._ensure(account_id, payload.get("phoneHash"))


class DevAuthProvider(AuthProvider):
    """Trusts an ``X-Dev-Account`` header. Local development and tests only."""

    async def authenticate(self, headers: Mapping[str, str]) -> Optional[str]:
        account_id = (headers.get(DEV_ACCOUNT_HEADER) or "").strip()
        if not account_id:
            return None
        return await self._ensure(account_id)


def build_auth_provider(name: str, accounts: AccountRepository, *, clock: Clock, secret: str = "", algorithm: str = "HS256") -> AuthProvider:
    name = (name or "jwt").strip().lower()
    if name == "dev":
        LOGGER.warning("Dev auth provider enabled: X-Dev-Account is trusted without verification")
        return DevAuthProvider(accounts, clock=clock)
    if name == "jwt":
        return JwtAuthProvider(accounts, clock=clock, secret=secret, algorithm=algorithm)
    raise ValueError(f"unknown AUTH_PROVIDER: {name}")


__all__ = [
    "AuthProvider",
    "DEV_ACCOUNT_HEADER",
    "DevAuthProvider",
    "JwtAuthProvider",
    "build_auth_provider",
    "extract_bearer",
]
