from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException

from .utils import normalize_email


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, passed explicitly into every board operation."""

    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> Identity:
    """Very small auth helper.

    Token issuance lives outside this service; the bearer token is treated as
    the user identifier and the gateway forwards email and display name as
    headers.
    """
    prefix = "Bearer "
    if not authorization or not authorization.startswith(prefix):
        raise HTTPException(status_code=401, detail="invalid_token")
    user_id = authorization[len(prefix) :].strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="invalid_token")
    email = normalize_email(x_user_email) if x_user_email and x_user_email.strip() else None
    name = x_user_name.strip() if x_user_name and x_user_name.strip() else None
    return Identity(user_id=user_id, email=email, name=name)
