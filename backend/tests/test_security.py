"""Token verification and current-user resolution tests."""
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import HTTPException
from jose import JWTError, jwt

from procurement.core.config import settings
from procurement.core.deps import get_current_user, require_role
from procurement.core.security import decode_token


# ─── Helpers ──────────────────────────────────────────────────────────────────

class FakeUser:
    def __init__(self, role: str = "USER", is_active: bool = True):
        self.id = uuid.uuid4()
        self.name = "Dana Buyer"
        self.role = role
        self.is_active = is_active
        self.deleted_at = None


def _token(sub=None, token_type="access", secret=None, expires_in=timedelta(minutes=5)):
    payload = {
        "sub": sub if sub is not None else str(uuid.uuid4()),
        "type": token_type,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, secret or settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def make_mock_session(user=None):
    """AsyncMock session whose single lookup returns ``user``."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = user
    session = AsyncMock()
    session.execute = AsyncMock(return_value=result)
    return session


# ─── Tests: decode_token ──────────────────────────────────────────────────────

def test_decode_roundtrip():
    sub = str(uuid.uuid4())
    assert decode_token(_token(sub=sub))["sub"] == sub


def test_decode_rejects_foreign_signature():
    with pytest.raises(JWTError):
        decode_token(_token(secret="some-other-secret"))


def test_decode_rejects_expired():
    with pytest.raises(JWTError):
        decode_token(_token(expires_in=timedelta(minutes=-1)))


# ─── Tests: get_current_user ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_current_user_resolved_from_access_token():
    user = FakeUser()
    session = make_mock_session(user)
    assert await get_current_user(_token(sub=str(user.id)), session) is user
    session.execute.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [
    "not-a-jwt",
    _token(token_type="refresh"),
    _token(sub="not-a-uuid"),
    _token(sub=""),
])
async def test_bad_tokens_are_401(token):
    session = make_mock_session(FakeUser())
    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(token, session)
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_unknown_user_is_401():
    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(_token(), make_mock_session(None))
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_inactive_user_is_401():
    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(_token(), make_mock_session(FakeUser(is_active=False)))
    assert exc_info.value.status_code == 401


# ─── Tests: require_role ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_require_role_allows_listed_role():
    user = FakeUser(role="ADMIN")
    assert await require_role("ADMIN")(user=user) is user


@pytest.mark.asyncio
async def test_require_role_denies_other_roles():
    with pytest.raises(HTTPException) as exc_info:
        await require_role("ADMIN")(user=FakeUser(role="MANAGER"))
    assert exc_info.value.status_code == 403
