"""Role-based access policy.

A single table maps (action, resource kind) to the roles that may perform it.
Rules that depend on ownership or class membership ("own classes only") are
expressed with ``Scope.OWN``: the caller computes whether the principal owns
the resource and passes ``owns``. Every endpoint consults :func:`authorize`
before touching the store, so an operation is refused before any mutation.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from portal.core.errors import Forbidden, Unauthorized
from portal.core.logging import get_logger
from portal.domain.user import Role

logger = get_logger(__name__)


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SUBMIT = "submit"
    VIEW_SUBMISSIONS = "view_submissions"
    GRADE = "grade"
    MANAGE_MEMBERS = "manage_members"


class ResourceKind(str, Enum):
    ANNOUNCEMENT = "announcement"
    CLASS = "class"
    ASSIGNMENT = "assignment"
    EVENT = "event"
    MEDIA = "media"
    USER = "user"
    STUDENT_DIRECTORY = "student_directory"
    UPLOAD = "upload"


class Scope(str, Enum):
    DENY = "deny"
    OWN = "own"
    ALL = "all"


class Decision(str, Enum):
    PERMIT = "permit"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class Principal:
    """Who is asking. ``role`` is None for anonymous callers."""
    user_id: Optional[str] = None
    role: Optional[Role] = None

    @property
    def authenticated(self) -> bool:
        return self.role is not None


ANONYMOUS = Principal()

_D, _O, _A = Scope.DENY, Scope.OWN, Scope.ALL

# (action, kind) -> scope per role, in (student, teacher, admin) order
RULES: Dict[Tuple[Action, ResourceKind], Tuple[Scope, Scope, Scope]] = {
    # Public reads; class-bound announcements are narrowed by membership
    (Action.READ, ResourceKind.ANNOUNCEMENT): (_A, _A, _A),
    (Action.READ, ResourceKind.EVENT): (_A, _A, _A),
    (Action.READ, ResourceKind.MEDIA): (_A, _A, _A),

    (Action.READ, ResourceKind.CLASS): (_O, _O, _A),
    (Action.READ, ResourceKind.ASSIGNMENT): (_O, _O, _A),

    (Action.CREATE, ResourceKind.ANNOUNCEMENT): (_D, _A, _A),
    (Action.UPDATE, ResourceKind.ANNOUNCEMENT): (_D, _A, _A),
    (Action.DELETE, ResourceKind.ANNOUNCEMENT): (_D, _A, _A),
    (Action.CREATE, ResourceKind.ASSIGNMENT): (_D, _A, _A),
    (Action.UPDATE, ResourceKind.ASSIGNMENT): (_D, _A, _A),
    (Action.DELETE, ResourceKind.ASSIGNMENT): (_D, _A, _A),
    (Action.CREATE, ResourceKind.EVENT): (_D, _A, _A),
    (Action.UPDATE, ResourceKind.EVENT): (_D, _A, _A),
    (Action.DELETE, ResourceKind.EVENT): (_D, _A, _A),

    (Action.CREATE, ResourceKind.CLASS): (_D, _A, _A),
    (Action.UPDATE, ResourceKind.CLASS): (_D, _A, _A),
    (Action.DELETE, ResourceKind.CLASS): (_D, _A, _A),
    (Action.MANAGE_MEMBERS, ResourceKind.CLASS): (_D, _A, _A),
    (Action.READ, ResourceKind.STUDENT_DIRECTORY): (_D, _A, _A),

    (Action.READ, ResourceKind.USER): (_D, _D, _A),
    (Action.CREATE, ResourceKind.USER): (_D, _D, _A),
    (Action.UPDATE, ResourceKind.USER): (_D, _D, _A),
    (Action.DELETE, ResourceKind.USER): (_D, _D, _A),

    (Action.CREATE, ResourceKind.MEDIA): (_D, _A, _A),
    (Action.CREATE, ResourceKind.UPLOAD): (_D, _A, _A),
    (Action.DELETE, ResourceKind.MEDIA): (_D, _D, _A),

    (Action.SUBMIT, ResourceKind.ASSIGNMENT): (_O, _D, _D),
    (Action.VIEW_SUBMISSIONS, ResourceKind.ASSIGNMENT): (_D, _O, _A),
    (Action.GRADE, ResourceKind.ASSIGNMENT): (_D, _O, _A),
}

# Readable without a token
PUBLIC = frozenset({
    (Action.READ, ResourceKind.ANNOUNCEMENT),
    (Action.READ, ResourceKind.EVENT),
    (Action.READ, ResourceKind.MEDIA),
})

_ROLE_COLUMN = {Role.STUDENT: 0, Role.TEACHER: 1, Role.ADMIN: 2}


def scope_for(role: Role, action: Action, kind: ResourceKind) -> Scope:
    """Return the scope a role has for an action; unknown pairs are denied."""
    scopes = RULES.get((action, kind))
    if scopes is None:
        return Scope.DENY
    return scopes[_ROLE_COLUMN[Role(role)]]


def check(
    principal: Principal,
    action: Action,
    kind: ResourceKind,
    owns: bool = False,
) -> Decision:
    """Decide whether ``principal`` may perform ``action`` on ``kind``.

    Args:
        principal: Caller identity (anonymous when role is None)
        action: Requested action
        kind: Resource kind
        owns: Whether the caller owns the target or belongs to its class;
            only consulted for rules scoped to the caller's own resources

    Returns:
        Decision.PERMIT, Decision.UNAUTHORIZED or Decision.FORBIDDEN
    """
    if not principal.authenticated:
        return Decision.PERMIT if (action, kind) in PUBLIC else Decision.UNAUTHORIZED

    scope = scope_for(principal.role, action, kind)
    if scope is Scope.ALL or (scope is Scope.OWN and owns):
        return Decision.PERMIT
    return Decision.FORBIDDEN


def authorize(
    principal: Principal,
    action: Action,
    kind: ResourceKind,
    owns: bool = False,
) -> None:
    """Raise Unauthorized/Forbidden unless :func:`check` permits the request."""
    decision = check(principal, action, kind, owns)
    if decision is Decision.PERMIT:
        return

    if decision is Decision.UNAUTHORIZED:
        raise Unauthorized()

    logger.warning(
        f"Denied {action.value} on {kind.value}",
        extra={"user_id": principal.user_id, "role": getattr(principal.role, "value", principal.role)},
    )
    raise Forbidden(f"Access denied: cannot {action.value.replace('_', ' ')} {kind.value.replace('_', ' ')}")


def has_scope(principal: Principal, action: Action, kind: ResourceKind, scope: Scope) -> bool:
    """True when the principal holds exactly ``scope`` for the pair (e.g. admin read-all)."""
    return principal.authenticated and scope_for(principal.role, action, kind) is scope
