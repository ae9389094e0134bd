from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class AuthUser:
    email: str
    uid: str | None = None


def normalize_allowlist(values: Iterable[str] | None) -> tuple[str, ...]:
    return tuple(value.strip() for value in (values or ()) if value and value.strip())


def is_authorized_user(user: AuthUser | None, allowlist: Iterable[str] | None) -> bool:
    """Signed-in users pass when no allow-list is configured, otherwise only listed emails do."""
    if user is None or not (user.email or "").strip():
        return False
    allowed = normalize_allowlist(allowlist)
    if not allowed:
        return True
    return user.email.strip() in allowed
