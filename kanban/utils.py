import hashlib
import math
import secrets
import uuid
from datetime import datetime


def new_uuid() -> str:
    return str(uuid.uuid4())


def new_column_id() -> str:
    return f"column-{uuid.uuid4().hex[:12]}"


def new_token() -> str:
    """Return an opaque, URL-safe invitation token carrying 256 bits of entropy."""
    return secrets.token_urlsafe(32)


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from ``start`` until ``end``, rounded up."""
    return math.ceil((end - start).total_seconds() / 86400)
