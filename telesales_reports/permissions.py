"""Which reports each role may run, and how far its data scope reaches."""

from dataclasses import dataclass

from .constants import Role
from .definitions import ALERT_HISTORY_REPORT, REPORTS
from .exceptions import InvalidFilterError
from .models import ReportFilter, is_blank

MANAGEMENT_ROLES = frozenset(
    {Role.SUPERVISOR, Role.OPERATIONS_HEAD, Role.ADMIN, Role.SUPER_ADMIN}
)
SENIOR_ROLES = frozenset({Role.OPERATIONS_HEAD, Role.ADMIN, Role.SUPER_ADMIN})


@dataclass(frozen=True)
class ReportCapabilities:
    """What a role can do on the reports pages.

    Attributes:
        reports: Names of the reports the role may open.
        can_export: Whether CSV/PDF exports are offered.
        can_schedule: Whether automated report schedules can be managed.
        view_all_agents: Whether the agent filter may be changed freely.
        view_all_teams: Whether the team filter may be changed freely.
    """

    reports: frozenset[str]
    can_export: bool = False
    can_schedule: bool = False
    view_all_agents: bool = False
    view_all_teams: bool = False

    def can_view(self, report_name: str) -> bool:
        return report_name in self.reports


NO_CAPABILITIES = ReportCapabilities(reports=frozenset())


def _capabilities(role: Role) -> ReportCapabilities:
    reports: set[str] = set()
    if role in MANAGEMENT_ROLES:
        reports.update(REPORTS)
    if role == Role.SALES_CONTROLLER:
        reports.add(ALERT_HISTORY_REPORT.name)

    return ReportCapabilities(
        reports=frozenset(reports),
        can_export=role in MANAGEMENT_ROLES,
        can_schedule=role in SENIOR_ROLES,
        view_all_agents=role in MANAGEMENT_ROLES,
        view_all_teams=role in SENIOR_ROLES,
    )


ROLE_CAPABILITIES: dict[Role, ReportCapabilities] = {role: _capabilities(role) for role in Role}


def capabilities_for(role: str | None) -> ReportCapabilities:
    """Look up a role's capabilities; unknown or missing roles get none."""
    if role is None:
        return NO_CAPABILITIES
    try:
        return ROLE_CAPABILITIES[Role(role)]
    except ValueError:
        return NO_CAPABILITIES


def scope_filter(
    report_filter: ReportFilter,
    *,
    role: str | None,
    user_id: str | None = None,
    team_id: str | None = None,
) -> ReportFilter:
    """Narrow a filter to the data the role is allowed to see.

    Roles that cannot view all agents are pinned to their own agent id, and
    roles that cannot view all teams are pinned to their own team.

    Raises:
        InvalidFilterError: If the role needs pinning but the id to pin to is missing.
    """
    capabilities = capabilities_for(role)
    changes: dict[str, str] = {}
    if not capabilities.view_all_agents:
        if is_blank(user_id):
            raise InvalidFilterError(f"Role '{role}' needs a user id to scope the report")
        changes["agent"] = user_id
    if not capabilities.view_all_teams:
        if is_blank(team_id):
            raise InvalidFilterError(f"Role '{role}' needs a team id to scope the report")
        changes["team"] = team_id
    return report_filter.with_changes(**changes) if changes else report_filter
