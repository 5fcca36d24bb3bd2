from __future__ import annotations

import pytest

from glimpse.clock import system_clock
from glimpse.services.auth import AuthProvider, DevAuthProvider, JwtAuthProvider, build_auth_provider, extract_bearer

SECRET = "unit-test-signing-secret-0123456789abcdef"


def test_extract_bearer() -> None:
    assert extract_bearer("Bearer abc") == "abc"
    assert extract_bearer("bearer   abc ") == "abc"
    assert extract_bearer("Basic abc") is None
    assert extract_bearer("") is None


def test_build_auth_provider(container) -> None:
    assert isinstance(build_auth_provider("dev", container.accounts, clock=container.clock), DevAuthProvider)
    with pytest.raises(ValueError):
        build_auth_provider("jwt", container.accounts, clock=container.clock, secret="")
    with pytest.raises(ValueError):
        build_auth_provider("saml", container.accounts, clock=container.clock)
    with pytest.raises(TypeError):
        AuthProvider(container.accounts, clock=container.clock)


@pytest.mark.asyncio
async def test_jwt_subject_becomes_account(container) -> None:
    provider = JwtAuthProvider(container.accounts, clock=system_clock, secret=SECRET)
    token = provider.issue_token("acc-jwt")

    account_id = await provider.authenticate({"authorization": f"Bearer {token}"})
    assert account_id == "acc-jwt"
    assert await container.accounts.get_by_account_id("acc-jwt") is not None


@pytest.mark.asyncio
async def test_jwt_rejects_bad_or_expired_tokens(container) -> None:
    provider = JwtAuthProvider(container.accounts, clock=system_clock, secret=SECRET)
    other = JwtAuthProvider(container.accounts, clock=system_clock, secret=SECRET[::-1])

    assert await provider.authenticate({}) is None
    assert await provider.authenticate({"authorization": f"Bearer {other.issue_token('acc-x')}"}) is None
    expired = provider.issue_token("acc-x", ttl_seconds=-120)
    assert await provider.authenticate({"authorization": f"Bearer {expired}"}) is None


@pytest.mark.asyncio
async def test_jwt_auth_through_api(container, api_client) -> None:
    provider = JwtAuthProvider(container.accounts, clock=system_clock, secret=SECRET)
    container.auth = provider

    response = await api_client.get("/quota", headers={"Authorization": f"Bearer {provider.issue_token('acc-api')}"})
    assert response.status_code == 200
    assert response.json()["tier"] == "BASIC"
    assert (await api_client.get("/quota", headers={"X-Dev-Account": "acc-api"})).status_code == 401
