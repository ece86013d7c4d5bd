"""Authentication and user administration service.

Business logic for:
- Registration, login and token issuing
- Profile and password management
- Admin user CRUD and activation toggling
- Author lookups for embedding in posts and comments
"""

from collections.abc import Iterable
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from blogapi.auth.models import User
from blogapi.auth.permissions import UserRole
from blogapi.auth.schemas import (
    AdminCreateUserRequest,
    AdminUpdateUserRequest,
    AuthorSummary,
    RegisterRequest,
    UpdateProfileRequest,
    UserResponse,
)
from blogapi.auth.security import create_access_token, hash_password, verify_password
from blogapi.core.exceptions import AuthenticationError, ConflictError, NotFoundError
from blogapi.utils.dates import utcnow


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class InvalidCredentialsError(AuthenticationError):
    """Invalid email or password."""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class UserInactiveError(AuthenticationError):
    """User account is deactivated."""

    def __init__(self, message: str = "Account is deactivated"):
        super().__init__(message)


class UserExistsError(ConflictError):
    """Email already registered."""

    def __init__(self, message: str = "User already exists with this email"):
        super().__init__(message)


class UserNotFoundError(NotFoundError):
    """User not found."""

    def __init__(self, user_id: UUID | str | None = None):
        message = (
            f"User not found with id of {user_id}" if user_id else "User not found"
        )
        super().__init__(message)


# ==============================================================================
# Auth Service
# ==============================================================================


class AuthService:
    """User accounts, credentials and tokens."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session.

        Args:
            session: Cassandra session with aexecute() support
            keyspace: Keyspace name for queries
        """
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for better performance."""
        self._get_user_by_email = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE email = ?"
        )
        self._get_user_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE id = ?"
        )
        self._get_users_by_ids = self.session.prepare(
            f"SELECT id, name, avatar FROM {self.keyspace}.users WHERE id IN ?"
        )
        self._list_users = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users"
        )
        self._insert_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.users
            (id, email, name, password_hash, role, avatar, bio, is_active,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._update_user = self.session.prepare(f"""
            UPDATE {self.keyspace}.users
            SET name = ?, email = ?, role = ?, avatar = ?, bio = ?,
                is_active = ?, updated_at = ?
            WHERE id = ?
        """)
        self._update_user_password = self.session.prepare(f"""
            UPDATE {self.keyspace}.users
            SET password_hash = ?, updated_at = ?
            WHERE id = ?
        """)
        self._delete_user = self.session.prepare(
            f"DELETE FROM {self.keyspace}.users WHERE id = ?"
        )

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def get_user_by_email(self, email: str) -> User | None:
        """Find user by email address."""
        rows = await self.session.aexecute(self._get_user_by_email, [email.lower()])
        row = rows.one()
        return User.from_row(row) if row else None

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        """Find user by ID."""
        rows = await self.session.aexecute(self._get_user_by_id, [user_id])
        row = rows.one()
        return User.from_row(row) if row else None

    async def require_user(self, user_id: UUID) -> User:
        """Find user by ID or raise UserNotFoundError."""
        user = await self.get_user_by_id(user_id)
        if not user:
            raise UserNotFoundError(user_id)
        return user

    async def get_author_summaries(
        self, user_ids: Iterable[UUID]
    ) -> dict[UUID, AuthorSummary]:
        """Resolve author ids to embeddable summaries.

        Ids without a matching user are absent from the result.
        """
        ids = list({uid for uid in user_ids if uid is not None})
        if not ids:
            return {}
        rows = await self.session.aexecute(self._get_users_by_ids, [ids])
        return {
            row.id: AuthorSummary(id=row.id, name=row.name, avatar=row.avatar or "")
            for row in rows
        }

    # ==========================================================================
    # Registration & Login
    # ==========================================================================

    async def register_user(self, data: RegisterRequest) -> User:
        """Register a new account with role ``user``.

        Raises:
            UserExistsError: If the email is already registered
        """
        return await self._create(data, UserRole.USER)

    async def create_user(self, data: AdminCreateUserRequest) -> User:
        """Create an account with any role (admin only).

        Raises:
            UserExistsError: If the email is already registered
        """
        return await self._create(data, data.role)

    async def _create(self, data: RegisterRequest, role: UserRole) -> User:
        if await self.get_user_by_email(data.email):
            raise UserExistsError

        user = User(
            email=data.email,
            name=data.name,
            password_hash=hash_password(data.password),
            role=role.value,
            is_active=True,
        )
        await self.session.aexecute(
            self._insert_user,
            [
                user.id,
                user.email,
                user.name,
                user.password_hash,
                user.role,
                user.avatar,
                user.bio,
                user.is_active,
                user.created_at,
                user.updated_at,
            ],
        )
        logger.info("user_created", user_id=str(user.id), role=user.role)
        return user

    async def authenticate_user(self, email: str, password: str) -> User:
        """Authenticate user with email and password.

        Raises:
            InvalidCredentialsError: If email or password is wrong
            UserInactiveError: If the account is deactivated
        """
        user = await self.get_user_by_email(email)
        if not user:
            raise InvalidCredentialsError

        if not user.is_active:
            raise UserInactiveError

        is_valid, new_hash = verify_password(password, user.password_hash)
        if not is_valid:
            raise InvalidCredentialsError

        if new_hash:
            await self.session.aexecute(
                self._update_user_password,
                [new_hash, utcnow(), user.id],
            )
            user.password_hash = new_hash

        return user

    def issue_token(self, user: User) -> str:
        """Create an access token carrying id, email and role."""
        return create_access_token(
            {"sub": str(user.id), "email": user.email, "role": user.role}
        )

    # ==========================================================================
    # Self-service
    # ==========================================================================

    async def update_profile(self, user_id: UUID, data: UpdateProfileRequest) -> User:
        """Update name, avatar and bio of the caller's own account."""
        user = await self.require_user(user_id)

        if data.name is not None:
            user.name = data.name
        if data.avatar is not None:
            user.avatar = data.avatar
        if data.bio is not None:
            user.bio = data.bio

        await self._save(user)
        return user

    async def change_password(
        self,
        user_id: UUID,
        current_password: str,
        new_password: str,
    ) -> None:
        """Change password after verifying the current one.

        Raises:
            UserNotFoundError: If user doesn't exist
            InvalidCredentialsError: If current password is wrong
        """
        user = await self.require_user(user_id)

        is_valid, _ = verify_password(current_password, user.password_hash)
        if not is_valid:
            raise InvalidCredentialsError("Current password is incorrect")

        await self.session.aexecute(
            self._update_user_password,
            [hash_password(new_password), utcnow(), user.id],
        )
        logger.info("password_changed", user_id=str(user.id))

    # ==========================================================================
    # Administration
    # ==========================================================================

    async def list_users(
        self,
        role: UserRole | None = None,
        is_active: bool | None = None,
        search: str | None = None,
    ) -> list[User]:
        """Filter users in memory, newest first.

        ``search`` matches name or email, case-insensitive.
        """
        rows = await self.session.aexecute(self._list_users)
        users = [User.from_row(row) for row in rows]

        if role is not None:
            users = [u for u in users if u.role == role.value]
        if is_active is not None:
            users = [u for u in users if u.is_active == is_active]
        if search:
            term = search.lower()
            users = [
                u for u in users if term in u.name.lower() or term in u.email.lower()
            ]

        users.sort(key=lambda u: u.created_at, reverse=True)
        return users

    async def update_user(self, user_id: UUID, data: AdminUpdateUserRequest) -> User:
        """Update any account field except the password.

        Raises:
            UserNotFoundError: If user doesn't exist
            UserExistsError: If the new email belongs to another account
        """
        user = await self.require_user(user_id)

        if data.email is not None and data.email.lower() != user.email:
            existing = await self.get_user_by_email(data.email)
            if existing and existing.id != user.id:
                raise UserExistsError
            user.email = data.email.lower()

        if data.name is not None:
            user.name = data.name
        if data.role is not None:
            user.role = data.role.value
        if data.is_active is not None:
            user.is_active = data.is_active
        if data.avatar is not None:
            user.avatar = data.avatar
        if data.bio is not None:
            user.bio = data.bio

        await self._save(user)
        logger.info("user_updated", user_id=str(user.id))
        return user

    async def delete_user(self, user_id: UUID) -> None:
        """Hard-delete an account."""
        await self.require_user(user_id)
        await self.session.aexecute(self._delete_user, [user_id])
        logger.info("user_deleted", user_id=str(user_id))

    async def toggle_user_status(self, user_id: UUID) -> User:
        """Flip the active flag of an account."""
        user = await self.require_user(user_id)
        user.is_active = not user.is_active
        await self._save(user)
        logger.info(
            "user_status_toggled", user_id=str(user.id), is_active=user.is_active
        )
        return user

    async def _save(self, user: User) -> None:
        user.updated_at = utcnow()
        await self.session.aexecute(
            self._update_user,
            [
                user.name,
                user.email,
                user.role,
                user.avatar,
                user.bio,
                user.is_active,
                user.updated_at,
                user.id,
            ],
        )

    def to_response(self, user: User) -> UserResponse:
        """Convert User entity to response schema."""
        return UserResponse.model_validate(user)
