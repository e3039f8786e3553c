from datetime import datetime, timezone
from typing import Any, Dict, Optional

import jwt

from bizchat.config import get_settings
from bizchat.errors import InvalidCredential, MissingCredential
from bizchat.schemas.auth import Identity


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify signature and expiry of a bearer token and return its claims."""
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp"]},
        )
    except jwt.PyJWTError as exc:
        raise InvalidCredential() from exc


def authenticate(token: Optional[str]) -> Identity:
    if not token:
        raise MissingCredential()
    payload = decode_access_token(token)
    # older clients sign the user id under "id" instead of "sub"
    user_id = payload.get("sub") or payload.get("id")
    if not user_id:
        raise InvalidCredential("Token has no subject")
    issued_at = None
    if payload.get("iat") is not None:
        issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
    return Identity(user_id=str(user_id), issued_at=issued_at)


def bearer_token_from_header(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    scheme, _, token = value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
