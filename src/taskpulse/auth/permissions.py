"""
Role- and relationship-based access control for TaskPulse.

This module provides:
- The role hierarchy (three tiers)
- Actions and resource kinds
- ResourceFacts: the ownership/team/department attributes of a resource
- A declarative rule table mapping (resource kind, action) to allow rules
- PermissionChecker, a pure evaluator over that table

Evaluation is deny-by-default: a request is allowed only when no guard
denies it and at least one allow rule for its (kind, action) matches.
Guards (system resources, self-modification) always win.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, NamedTuple, Optional, Tuple

from ..errors import Forbidden
from .models import Principal


class Role(str, Enum):
    """
    Predefined roles.
    """
    ADMIN = "admin"             # Full access
    EMPLOYER = "employer"       # Organization owner, same tier as admin
    MANAGER = "manager"         # Manages one team
    TEAM_LEAD = "team_lead"     # Same tier as manager
    EMPLOYEE = "employee"       # Regular team member
    VIEWER = "viewer"           # Same tier as employee


ADMIN_TIER = 3
MANAGER_TIER = 2
MEMBER_TIER = 1

ROLE_TIERS: Dict[Role, int] = {
    Role.ADMIN: ADMIN_TIER,
    Role.EMPLOYER: ADMIN_TIER,
    Role.MANAGER: MANAGER_TIER,
    Role.TEAM_LEAD: MANAGER_TIER,
    Role.EMPLOYEE: MEMBER_TIER,
    Role.VIEWER: MEMBER_TIER,
}


def role_tier(role: Optional[str]) -> int:
    """Tier of a role name; unknown roles get 0 and match nothing."""
    try:
        return ROLE_TIERS[Role(role)]
    except ValueError:
        return 0


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    ASSIGN = "assign"
    APPROVE = "approve"


class ResourceKind(str, Enum):
    TASK = "task"
    KPI = "kpi"
    NOTIFICATION = "notification"
    FILE = "file"
    TEAM_MEMBERSHIP = "team_membership"
    DEPARTMENT = "department"
    ROLE = "role"
    CONVERSATION = "conversation"
    MESSAGE = "message"
    USER = "user"
    ANALYTICS = "analytics"


@dataclass(frozen=True)
class ResourceFacts:
    """
    Attributes of a target resource that access decisions read.

    Attributes:
        owner_id: Creator/uploader/sender of the resource
        assignee_id: User the resource is assigned to
        team: Team the resource belongs to
        department: Department the resource belongs to
        is_public: Resource is readable by everyone
        is_system: Built-in resource that can never be modified
        participants: Conversation participants
        admins: Conversation admins
        shared_with: Users a file was explicitly shared with
        target_user_id: User an assign/membership action targets
        target_team: Team of that target user
        target_role: Role a membership action would give the target
    """
    owner_id: Optional[str] = None
    assignee_id: Optional[str] = None
    team: Optional[str] = None
    department: Optional[str] = None
    is_public: bool = False
    is_system: bool = False
    participants: FrozenSet[str] = frozenset()
    admins: FrozenSet[str] = frozenset()
    shared_with: FrozenSet[str] = frozenset()
    target_user_id: Optional[str] = None
    target_team: Optional[str] = None
    target_role: Optional[str] = None


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str


Predicate = Callable[[Principal, ResourceFacts], bool]


class Rule(NamedTuple):
    reason: str
    check: Predicate


# ============================================================================
# Predicates
# ============================================================================

def is_owner(principal: Principal, facts: ResourceFacts) -> bool:
    return principal.id is not None and principal.id in (facts.owner_id, facts.assignee_id)


def same_team(principal: Principal, facts: ResourceFacts) -> bool:
    return principal.team is not None and principal.team == facts.team


def same_department(principal: Principal, facts: ResourceFacts) -> bool:
    return principal.department is not None and principal.department == facts.department


def _at_least(tier: int) -> Predicate:
    return lambda principal, facts: role_tier(principal.role) >= tier


def _manages(team_of: Callable[[ResourceFacts], Optional[str]]) -> Predicate:
    # Managers act within their own team, the admin tier acts anywhere
    def check(principal: Principal, facts: ResourceFacts) -> bool:
        tier = role_tier(principal.role)
        if tier >= ADMIN_TIER:
            return True
        team = team_of(facts)
        return tier >= MANAGER_TIER and principal.team is not None and principal.team == team
    return check


AUTHENTICATED = Rule("authenticated", _at_least(MEMBER_TIER))
MANAGER = Rule("manager_role", _at_least(MANAGER_TIER))
ADMIN = Rule("admin_role", _at_least(ADMIN_TIER))
OWNER = Rule("owner", is_owner)
TEAM = Rule("team_member", same_team)
DEPARTMENT = Rule("department_member", same_department)
PUBLIC = Rule("public", lambda p, f: f.is_public)
SHARED = Rule("shared", lambda p, f: p.id in f.shared_with)
PARTICIPANT = Rule("participant", lambda p, f: p.id in f.participants)
CONVERSATION_ADMIN = Rule("conversation_admin", lambda p, f: p.id in f.admins)
MANAGES_TARGET = Rule("manages_target", _manages(lambda f: f.target_team))
MANAGES_TEAM = Rule("manages_team", _manages(lambda f: f.team))


# Map each (resource kind, action) to the rules that allow it
RULES: Dict[Tuple[ResourceKind, Action], Tuple[Rule, ...]] = {
    # Tasks
    (ResourceKind.TASK, Action.CREATE): (MANAGER,),
    (ResourceKind.TASK, Action.READ): (MANAGER, OWNER, TEAM, PUBLIC),
    (ResourceKind.TASK, Action.UPDATE): (MANAGER, OWNER),
    (ResourceKind.TASK, Action.DELETE): (MANAGER, OWNER),
    (ResourceKind.TASK, Action.ASSIGN): (MANAGES_TARGET,),
    (ResourceKind.TASK, Action.APPROVE): (MANAGER,),

    # KPIs
    (ResourceKind.KPI, Action.CREATE): (MANAGER,),
    (ResourceKind.KPI, Action.READ): (MANAGER, OWNER),
    (ResourceKind.KPI, Action.UPDATE): (MANAGER, OWNER),
    (ResourceKind.KPI, Action.DELETE): (MANAGER, OWNER),
    (ResourceKind.KPI, Action.ASSIGN): (MANAGES_TARGET,),

    # Files
    (ResourceKind.FILE, Action.CREATE): (AUTHENTICATED,),
    (ResourceKind.FILE, Action.READ): (MANAGER, OWNER, PUBLIC, SHARED),
    (ResourceKind.FILE, Action.UPDATE): (MANAGER, OWNER),
    (ResourceKind.FILE, Action.DELETE): (MANAGER, OWNER),

    # Notifications are private to their recipient
    (ResourceKind.NOTIFICATION, Action.CREATE): (MANAGER, OWNER),
    (ResourceKind.NOTIFICATION, Action.READ): (OWNER,),
    (ResourceKind.NOTIFICATION, Action.UPDATE): (OWNER,),
    (ResourceKind.NOTIFICATION, Action.DELETE): (OWNER,),

    # Team membership
    (ResourceKind.TEAM_MEMBERSHIP, Action.CREATE): (MANAGES_TEAM,),
    (ResourceKind.TEAM_MEMBERSHIP, Action.READ): (MANAGER, TEAM),
    (ResourceKind.TEAM_MEMBERSHIP, Action.UPDATE): (MANAGES_TEAM,),
    (ResourceKind.TEAM_MEMBERSHIP, Action.DELETE): (MANAGES_TEAM,),

    # Departments
    (ResourceKind.DEPARTMENT, Action.CREATE): (ADMIN,),
    (ResourceKind.DEPARTMENT, Action.READ): (MANAGER, DEPARTMENT),
    (ResourceKind.DEPARTMENT, Action.UPDATE): (ADMIN,),
    (ResourceKind.DEPARTMENT, Action.DELETE): (ADMIN,),

    # Roles
    (ResourceKind.ROLE, Action.CREATE): (ADMIN,),
    (ResourceKind.ROLE, Action.READ): (AUTHENTICATED,),
    (ResourceKind.ROLE, Action.UPDATE): (ADMIN,),
    (ResourceKind.ROLE, Action.DELETE): (ADMIN,),

    # Conversations and messages
    (ResourceKind.CONVERSATION, Action.CREATE): (AUTHENTICATED,),
    (ResourceKind.CONVERSATION, Action.READ): (PARTICIPANT,),
    (ResourceKind.CONVERSATION, Action.UPDATE): (CONVERSATION_ADMIN, OWNER),
    (ResourceKind.CONVERSATION, Action.DELETE): (CONVERSATION_ADMIN, OWNER),
    (ResourceKind.MESSAGE, Action.CREATE): (PARTICIPANT,),
    (ResourceKind.MESSAGE, Action.READ): (PARTICIPANT,),
    (ResourceKind.MESSAGE, Action.UPDATE): (OWNER,),
    (ResourceKind.MESSAGE, Action.DELETE): (OWNER, CONVERSATION_ADMIN),

    # User profiles
    (ResourceKind.USER, Action.CREATE): (ADMIN,),
    (ResourceKind.USER, Action.READ): (MANAGER, OWNER, TEAM),
    (ResourceKind.USER, Action.UPDATE): (MANAGER, OWNER),
    (ResourceKind.USER, Action.DELETE): (ADMIN,),
    # Changing a user's role, team, department or active flag
    (ResourceKind.USER, Action.ASSIGN): (ADMIN,),

    # Analytics
    (ResourceKind.ANALYTICS, Action.CREATE): (MANAGER,),
    (ResourceKind.ANALYTICS, Action.READ): (MANAGER, OWNER),
}


def _guard(principal: Principal, action: Action, kind: ResourceKind, facts: ResourceFacts) -> Optional[str]:
    """Return a denial reason if a guard applies, None otherwise."""
    if facts.is_system and action in (Action.UPDATE, Action.DELETE):
        return "system_resource"

    if kind in (ResourceKind.TEAM_MEMBERSHIP, ResourceKind.USER) and facts.target_user_id == principal.id:
        if action == Action.DELETE:
            return "self_removal"
        if (
            action in (Action.CREATE, Action.UPDATE)
            and facts.target_role is not None
            and facts.target_role != principal.role
            and role_tier(facts.target_role) >= ADMIN_TIER
        ):
            return "self_elevation"

    return None


class PermissionChecker:
    """
    Decides whether a principal may perform an action on a resource.

    Stateless apart from the rule table it is built with; every method is a
    pure function of its arguments.
    """

    def __init__(self, rules: Optional[Dict[Tuple[ResourceKind, Action], Tuple[Rule, ...]]] = None):
        """Initialize permission checker."""
        self.rules = RULES if rules is None else rules

    def evaluate(
        self,
        principal: Principal,
        action: Action,
        kind: ResourceKind,
        facts: Optional[ResourceFacts] = None,
    ) -> AccessDecision:
        """
        Evaluate an access request.

        Args:
            principal: Acting principal
            action: Requested action
            kind: Kind of the target resource
            facts: Ownership/team/department attributes of the target

        Returns:
            AccessDecision with allowed status and the deciding reason
        """
        facts = facts or ResourceFacts()

        denied = _guard(principal, action, kind, facts)
        if denied:
            return AccessDecision(allowed=False, reason=denied)

        for rule in self.rules.get((kind, action), ()):
            if rule.check(principal, facts):
                return AccessDecision(allowed=True, reason=rule.reason)

        return AccessDecision(allowed=False, reason="insufficient_permission")

    def is_allowed(
        self,
        principal: Principal,
        action: Action,
        kind: ResourceKind,
        facts: Optional[ResourceFacts] = None,
    ) -> bool:
        return self.evaluate(principal, action, kind, facts).allowed

    def authorize(
        self,
        principal: Principal,
        action: Action,
        kind: ResourceKind,
        facts: Optional[ResourceFacts] = None,
    ) -> None:
        """
        Require an action, raising Forbidden if it is not allowed.

        Raises:
            Forbidden: If the evaluator denies the request
        """
        decision = self.evaluate(principal, action, kind, facts)
        if not decision.allowed:
            raise Forbidden(
                user_id=principal.id,
                action=action.value,
                resource=kind.value,
                reason=decision.reason,
            )


# Global permission checker instance
_permission_checker = PermissionChecker()


def evaluate(
    principal: Principal,
    action: Action,
    kind: ResourceKind,
    facts: Optional[ResourceFacts] = None,
) -> AccessDecision:
    """Global helper to evaluate an access request."""
    return _permission_checker.evaluate(principal, action, kind, facts)


def authorize(
    principal: Principal,
    action: Action,
    kind: ResourceKind,
    facts: Optional[ResourceFacts] = None,
) -> None:
    """
    Global helper to require an action.

    Raises:
        Forbidden: If the principal is not allowed
    """
    _permission_checker.authorize(principal, action, kind, facts)
