"""Signed actor sessions and request helpers."""

from typing import Optional

from fastapi import Header, Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from bookedsolid.common.exceptions import AuthenticationError
from bookedsolid.users.models import UserModel

SESSION_HEADER = "X-BookedSolid-Session"


def _get_serializer() -> URLSafeTimedSerializer:
    from bookedsolid.common.config import get_settings
    return URLSafeTimedSerializer(get_settings().secret_key, salt="actor-session")


def create_session_token(user_id: str) -> str:
    """Sign a session payload for ``user_id``."""
    return _get_serializer().dumps({"uid": user_id})


def verify_session_token(token: str) -> dict | None:
    """Verify and decode a session token. Returns payload or None."""
    from bookedsolid.common.config import get_settings
    try:
        return _get_serializer().loads(token, max_age=get_settings().session_max_age)
    except (BadSignature, SignatureExpired):
        return None


async def _load_actor(token: Optional[str]) -> Optional[UserModel]:
    if not token:
        return None
    payload = verify_session_token(token)
    if not payload or "uid" not in payload:
        return None

    from bookedsolid.deps import get_db
    async with get_db().get_session() as session:
        user = await session.get(UserModel, payload["uid"])
    if user is None or user.is_locked:
        return None
    return user


async def current_actor(
    x_bookedsolid_session: str = Header(None, alias=SESSION_HEADER),
) -> UserModel:
    """FastAPI dependency: the signed-in user; 401 without a valid session."""
    user = await _load_actor(x_bookedsolid_session)
    if user is None:
        raise AuthenticationError()
    return user


async def current_tenant_user(
    x_bookedsolid_session: str = Header(None, alias=SESSION_HEADER),
) -> UserModel:
    """FastAPI dependency: a signed-in user that belongs to a tenant."""
    user = await _load_actor(x_bookedsolid_session)
    if user is None or not user.client_id:
        raise AuthenticationError()
    return user


def source_address(request: Request) -> str:
    """Best guess at the caller's address, honouring proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
