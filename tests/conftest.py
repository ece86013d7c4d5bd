"""Shared fixtures: app client, role tokens and service getter overrides."""

from collections.abc import Iterator
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from blogapi import main
from blogapi.auth.dependencies import set_auth_service_getter
from blogapi.auth.models import User
from blogapi.auth.permissions import UserRole
from blogapi.auth.schemas import UserResponse
from blogapi.auth.security import create_access_token
from blogapi.comments.dependencies import set_comment_service_getter
from blogapi.posts.dependencies import set_post_service_getter
from blogapi.taxonomy.dependencies import (
    set_category_service_getter,
    set_tag_service_getter,
)


@pytest.fixture
def client() -> TestClient:
    """Test client without lifespan, so no database connection is attempted."""
    return TestClient(main.app)


@pytest.fixture
def known_users() -> dict[UUID, User]:
    """Stored accounts that bearer tokens resolve to."""
    return {}


def attach_user_lookup(service: MagicMock, known_users: dict[UUID, User]) -> MagicMock:
    """Make ``service`` resolve token subjects from ``known_users``."""
    service.get_user_by_id = AsyncMock(side_effect=known_users.get)
    service.to_response = UserResponse.model_validate
    return service


@pytest.fixture(autouse=True)
def token_auth_service(known_users: dict[UUID, User]) -> MagicMock:
    """AuthService stand-in used by the bearer-token dependencies."""
    service = attach_user_lookup(MagicMock(), known_users)
    set_auth_service_getter(lambda: service)
    return service


@pytest.fixture(autouse=True)
def restore_service_getters() -> Iterator[None]:
    """Undo per-test ``set_*_service_getter`` overrides."""
    yield
    set_auth_service_getter(main.get_auth_service)
    set_category_service_getter(main.get_category_service)
    set_tag_service_getter(main.get_tag_service)
    set_post_service_getter(main.get_post_service)
    set_comment_service_getter(main.get_comment_service)


@pytest.fixture
def make_identity():
    """Factory for caller stand-ins carrying only an id and a role."""

    def _make(role: UserRole = UserRole.USER, user_id: UUID | None = None):
        return SimpleNamespace(id=user_id or uuid4(), role=role.value)

    return _make


def auth_header(user_id: UUID, role: UserRole, email: str | None = None) -> dict:
    token = create_access_token(
        {
            "sub": str(user_id),
            "email": email or f"{role.value}@example.com",
            "role": role.value,
        }
    )
    return {"Authorization": f"Bearer {token}"}


def register_user(
    known_users: dict[UUID, User],
    user_id: UUID,
    role: UserRole,
    is_active: bool = True,
) -> User:
    user = User(
        id=user_id,
        email=f"{role.value}-{user_id.hex[:8]}@example.com",
        name=f"{role.value.title()} Account",
        role=role.value,
        is_active=is_active,
    )
    known_users[user_id] = user
    return user


@pytest.fixture
def admin_id() -> UUID:
    return uuid4()


@pytest.fixture
def editor_id() -> UUID:
    return uuid4()


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def admin_headers(admin_id: UUID, known_users: dict[UUID, User]) -> dict:
    register_user(known_users, admin_id, UserRole.ADMIN)
    return auth_header(admin_id, UserRole.ADMIN)


@pytest.fixture
def editor_headers(editor_id: UUID, known_users: dict[UUID, User]) -> dict:
    register_user(known_users, editor_id, UserRole.EDITOR)
    return auth_header(editor_id, UserRole.EDITOR)


@pytest.fixture
def user_headers(user_id: UUID, known_users: dict[UUID, User]) -> dict:
    register_user(known_users, user_id, UserRole.USER)
    return auth_header(user_id, UserRole.USER)
