import enum

from app.models.role import RoleName


class Action(str, enum.Enum):
    REQUEST_CREATE      = "request:create"
    REQUEST_VIEW        = "request:view"
    REQUEST_UPDATE      = "request:update"
    REQUEST_DELETE      = "request:delete"
    REQUEST_DELETE_ANY  = "request:delete-any"     # delete regardless of stage
    REQUEST_TRANSITION  = "request:transition"
    REQUEST_ASSIGN_ANY  = "request:assign-any"     # put any technician on a request
    REQUEST_SELF_ASSIGN = "request:self-assign"
    REQUEST_VIEW_ALL    = "request:view-all"       # not limited to own / team requests
    EQUIPMENT_VIEW      = "equipment:view"
    EQUIPMENT_MANAGE    = "equipment:manage"
    EQUIPMENT_SCRAP     = "equipment:scrap"
    TEAM_VIEW           = "team:view"
    TEAM_MANAGE         = "team:manage"
    DASHBOARD_VIEW      = "dashboard:view"


_EVERYONE = frozenset(RoleName)
_MANAGERS = frozenset({RoleName.ADMIN, RoleName.MAINTENANCE_MANAGER})
_MAINTAINERS = _MANAGERS | {RoleName.TECHNICIAN}

# Single source of truth for (role, action) -> allowed. Both the HTTP
# dependencies and the services consult this table.
POLICY: dict[Action, frozenset[RoleName]] = {
    Action.REQUEST_CREATE:      _EVERYONE,
    Action.REQUEST_VIEW:        _EVERYONE,
    Action.REQUEST_UPDATE:      _MAINTAINERS,
    Action.REQUEST_DELETE:      _EVERYONE,
    Action.REQUEST_DELETE_ANY:  frozenset({RoleName.ADMIN}),
    Action.REQUEST_TRANSITION:  _MAINTAINERS,
    Action.REQUEST_ASSIGN_ANY:  _MANAGERS,
    Action.REQUEST_SELF_ASSIGN: _MAINTAINERS,
    Action.REQUEST_VIEW_ALL:    _MANAGERS,
    Action.EQUIPMENT_VIEW:      _EVERYONE,
    Action.EQUIPMENT_MANAGE:    _MANAGERS,
    Action.EQUIPMENT_SCRAP:     _MANAGERS,
    Action.TEAM_VIEW:           _EVERYONE,
    Action.TEAM_MANAGE:         _MANAGERS,
    Action.DASHBOARD_VIEW:      _EVERYONE,
}


def is_allowed(role: RoleName, action: Action) -> bool:
    return role in POLICY.get(action, frozenset())


def allowed_actions(role: RoleName) -> list[str]:
    """Actions a role may perform, for clients that hide controls by role."""
    return [a.value for a in Action if is_allowed(role, a)]
