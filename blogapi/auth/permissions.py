"""Role-based access control and the access policy table.

Roles are hierarchical:
- ADMIN (level 2): everything, including user management and deletes
- EDITOR (level 1): create/update content, moderate comments, view stats
- USER (level 0): read published content, comment, like

Every authorization decision goes through ``evaluate`` which consults
``POLICY_TABLE``, keyed by ``(Resource, Action)``. A rule lists the roles that
may always act, whether the resource owner may act regardless of role, and
whether acting on one's own account is forbidden.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from blogapi.core.exceptions import AuthenticationError, AuthorizationError


class UserRole(str, Enum):
    """User roles with hierarchical levels."""

    USER = "user"
    EDITOR = "editor"
    ADMIN = "admin"


ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.USER: 0,
    UserRole.EDITOR: 1,
    UserRole.ADMIN: 2,
}


class Resource(str, Enum):
    POST = "post"
    COMMENT = "comment"
    CATEGORY = "category"
    TAG = "tag"
    USER = "user"


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    DEACTIVATE = "deactivate"
    LIKE = "like"
    MODERATE = "moderate"
    LIST_ALL = "list_all"
    VIEW_HIDDEN = "view_hidden"
    VIEW_STATS = "view_stats"


@dataclass(frozen=True)
class Rule:
    """Policy entry for one (resource, action) pair."""

    roles: frozenset[UserRole]
    owner_allowed: bool = False
    self_forbidden: str | None = None


EVERYONE = frozenset(UserRole)
STAFF = frozenset({UserRole.EDITOR, UserRole.ADMIN})
ADMIN_ONLY = frozenset({UserRole.ADMIN})


POLICY_TABLE: dict[tuple[Resource, Action], Rule] = {
    # Posts
    (Resource.POST, Action.CREATE): Rule(STAFF),
    (Resource.POST, Action.UPDATE): Rule(STAFF, owner_allowed=True),
    (Resource.POST, Action.DELETE): Rule(ADMIN_ONLY, owner_allowed=True),
    (Resource.POST, Action.LIKE): Rule(EVERYONE),
    (Resource.POST, Action.VIEW_HIDDEN): Rule(STAFF),
    (Resource.POST, Action.VIEW_STATS): Rule(STAFF),
    # Comments
    (Resource.COMMENT, Action.CREATE): Rule(EVERYONE),
    (Resource.COMMENT, Action.UPDATE): Rule(STAFF, owner_allowed=True),
    (Resource.COMMENT, Action.DELETE): Rule(ADMIN_ONLY, owner_allowed=True),
    (Resource.COMMENT, Action.LIKE): Rule(EVERYONE),
    (Resource.COMMENT, Action.MODERATE): Rule(STAFF),
    (Resource.COMMENT, Action.LIST_ALL): Rule(STAFF),
    (Resource.COMMENT, Action.VIEW_HIDDEN): Rule(STAFF),
    # Categories
    (Resource.CATEGORY, Action.CREATE): Rule(STAFF),
    (Resource.CATEGORY, Action.UPDATE): Rule(STAFF),
    (Resource.CATEGORY, Action.DELETE): Rule(ADMIN_ONLY),
    (Resource.CATEGORY, Action.VIEW_STATS): Rule(STAFF),
    # Tags
    (Resource.TAG, Action.CREATE): Rule(STAFF),
    (Resource.TAG, Action.UPDATE): Rule(STAFF),
    (Resource.TAG, Action.DELETE): Rule(ADMIN_ONLY),
    (Resource.TAG, Action.VIEW_STATS): Rule(STAFF),
    # User administration
    (Resource.USER, Action.READ): Rule(ADMIN_ONLY),
    (Resource.USER, Action.CREATE): Rule(ADMIN_ONLY),
    (Resource.USER, Action.UPDATE): Rule(ADMIN_ONLY),
    (Resource.USER, Action.DELETE): Rule(
        ADMIN_ONLY, self_forbidden="Admin cannot delete their own account"
    ),
    (Resource.USER, Action.DEACTIVATE): Rule(
        ADMIN_ONLY, self_forbidden="Admin cannot deactivate their own account"
    ),
}


class Identity(Protocol):
    """Anything carrying an id and a role (token claims, user records)."""

    id: Any
    role: Any


@dataclass(frozen=True)
class Decision:
    """Outcome of a policy evaluation."""

    allowed: bool
    code: str = "allowed"
    reason: str | None = None


ALLOW = Decision(allowed=True)


def get_role_level(role: UserRole | str) -> int:
    """Permission level for a role, 0 for unknown roles."""
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return 0
    return ROLE_HIERARCHY.get(role, 0)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check hierarchical permission: ADMIN >= EDITOR >= USER.

    >>> has_permission(UserRole.ADMIN, UserRole.EDITOR)
    True
    >>> has_permission("user", "editor")
    False
    """
    return get_role_level(user_role) >= get_role_level(required_role)


def is_admin(role: UserRole | str) -> bool:
    """Check if role is ADMIN."""
    return _coerce_role(role) == UserRole.ADMIN


def is_staff(role: UserRole | str) -> bool:
    """Check if role is EDITOR or ADMIN."""
    return has_permission(role, UserRole.EDITOR)


def _coerce_role(role: UserRole | str) -> UserRole | None:
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return None


def _same_id(left: Any, right: Any) -> bool:
    return left is not None and right is not None and str(left) == str(right)


def evaluate(
    caller: Identity | None,
    action: Action,
    resource: Resource,
    owner_id: Any = None,
    target_id: Any = None,
) -> Decision:
    """Decide whether ``caller`` may perform ``action`` on ``resource``.

    Precedence:
    1. anonymous callers are denied (``unauthenticated``)
    2. self-protected actions on the caller's own account are denied
       (``self_action``) regardless of role
    3. callers whose role is listed in the rule are allowed
    4. the owner is allowed when the rule permits owner override
    5. everything else is denied (``forbidden``)

    Args:
        caller: Authenticated identity, or None for anonymous requests
        action: Action being attempted
        resource: Resource type
        owner_id: Author of the target resource, when ownership applies
        target_id: Id of the target account, for user administration

    Raises:
        KeyError: If no rule exists for the pair
    """
    rule = POLICY_TABLE[(resource, action)]

    if caller is None:
        return Decision(False, "unauthenticated", "Not authorized to access this route")

    if rule.self_forbidden and _same_id(caller.id, target_id):
        return Decision(False, "self_action", rule.self_forbidden)

    role = _coerce_role(caller.role)
    if role in rule.roles:
        return ALLOW

    if rule.owner_allowed:
        if _same_id(caller.id, owner_id):
            return ALLOW
        return Decision(
            False,
            "forbidden",
            f"Not authorized to {action.value} this {resource.value}",
        )

    role_name = role.value if role else str(caller.role)
    return Decision(
        False,
        "forbidden",
        f"User role {role_name} is not authorized to access this route",
    )


def authorize(
    caller: Identity | None,
    action: Action,
    resource: Resource,
    owner_id: Any = None,
    target_id: Any = None,
) -> None:
    """Evaluate the policy and raise on deny.

    Raises:
        AuthenticationError: Anonymous caller
        AuthorizationError: Any other deny, including self-protection
    """
    decision = evaluate(caller, action, resource, owner_id, target_id)
    if decision.allowed:
        return
    if decision.code == "unauthenticated":
        raise AuthenticationError(decision.reason or "Not authorized")
    raise AuthorizationError(decision.reason or "Not authorized")


def can_view_hidden(caller: Identity | None, resource: Resource) -> bool:
    """Whether the caller sees drafts, inactive posts and unapproved comments."""
    return evaluate(caller, Action.VIEW_HIDDEN, resource).allowed
