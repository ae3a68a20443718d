"""
auth/models.py -- Domain dataclass for authenticated users.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in inventory/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/ or inventory/.
"""

from __future__ import annotations

from dataclasses import dataclass

ROLES: tuple[str, ...] = ("admin", "user")


@dataclass
class User:
    """An account that may sign in to VulnTrack.

    username and email are both unique. hashed_password is a bcrypt hash and
    is never returned by the API.
    """

    username: str
    email: str
    role: str = "user"  # one of ROLES
    id: int | None = None
    hashed_password: str | None = None
    created_at: str | None = None
    last_login: str | None = None
    is_active: bool = True
