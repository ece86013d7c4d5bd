"""Database models for users.

Users live in a single Cassandra table keyed by id, with a secondary index on
email for login lookups. Email uniqueness is enforced by the service with a
lookup before insert.
"""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from blogapi.auth.permissions import UserRole
from blogapi.utils.dates import ensure_utc_aware, utcnow


USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users (
    id UUID PRIMARY KEY,
    email TEXT,
    name TEXT,
    password_hash TEXT,
    role TEXT,
    avatar TEXT,
    bio TEXT,
    is_active BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

USER_EMAIL_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS users_email_idx ON {keyspace}.users (email)
"""

AUTH_TABLES_CQL = [
    USER_TABLE_CQL,
    USER_EMAIL_INDEX_CQL,
]


class User:
    """User account.

    Attributes:
        id: Unique identifier
        email: Unique email address, stored lower-cased
        name: Display name
        password_hash: Argon2id hash, never serialized
        role: user, editor or admin
        avatar: Avatar URL, empty when unset
        bio: Short biography
        is_active: Deactivated accounts cannot log in
        created_at: Account creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        id: UUID | None = None,
        email: str = "",
        name: str = "",
        password_hash: str = "",
        role: str = UserRole.USER.value,
        avatar: str = "",
        bio: str | None = None,
        is_active: bool = True,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.email = email.lower().strip()
        self.name = name
        self.password_hash = password_hash
        self.role = role
        self.avatar = avatar or ""
        self.bio = bio
        self.is_active = is_active
        self.created_at = ensure_utc_aware(created_at) or utcnow()
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "User":
        """Create User instance from Cassandra row."""
        return cls(
            id=row.id,
            email=row.email,
            name=row.name,
            password_hash=row.password_hash,
            role=row.role,
            avatar=row.avatar,
            bio=row.bio,
            is_active=bool(row.is_active),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
