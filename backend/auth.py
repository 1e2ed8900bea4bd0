"""Admin guard for privileged catalog endpoints.

Account management and password checks live in a separate auth service;
this module only verifies the bearer token that service hands to admins.
With no ``ADMIN_TOKEN`` configured the guard is open, which is meant for
local development.
"""

import secrets
from backend.config import Settings, get_settings
from backend.errors import Unauthorized
from fastapi import Depends, Header


def require_admin(
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Dependency that rejects callers without the admin bearer token."""
    if not settings.ADMIN_TOKEN:
        return

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), settings.ADMIN_TOKEN):
        raise Unauthorized("Not authorized as an admin")
