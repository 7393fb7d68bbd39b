"""
KPI service.

Managers define KPIs for users; assignees report progress against them.
Every change is pushed to the assignee as ``kpi-updated``.
"""

from typing import Any, Dict, List, Optional

from ..auth import Action, Principal, ResourceFacts, ResourceKind, role_tier
from ..auth.permissions import MANAGER_TIER
from ..errors import NotFound, ValidationFailed
from ..realtime.events import EventName
from .base import LIVE, Document, ResourceService, require

KPIS = "kpis"
USERS = "users"

PERIODS = ("weekly", "monthly", "quarterly", "yearly")
EDITABLE = ("name", "description", "targetValue", "currentValue", "period", "team")


def _check_number(value: Any, field: str) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
        raise ValidationFailed(f"{field} must be a non-negative number", field=field)


def _check_period(period: str) -> None:
    if period not in PERIODS:
        raise ValidationFailed(f"Invalid period: {period}", field="period")


def progress_of(kpi: Document) -> Dict[str, Any]:
    """Progress percentage and status of a KPI."""
    target = kpi.get("targetValue") or 0
    current = kpi.get("currentValue") or 0
    progress = (current / target) * 100 if target else 0.0
    return {
        "kpiId": kpi["_id"],
        "currentValue": current,
        "targetValue": target,
        "progress": round(progress, 2),
        "status": "achieved" if target and current >= target else "in_progress",
    }


class KpiService(ResourceService):
    collection = KPIS
    kind = ResourceKind.KPI
    resource_name = "kpi"

    def facts(self, doc: Document) -> ResourceFacts:
        return ResourceFacts(
            owner_id=doc.get("createdBy"),
            assignee_id=doc.get("assignedTo"),
            team=doc.get("team"),
        )

    def _announce(self, kpi: Document) -> None:
        self.publish([self.user_room(kpi.get("assignedTo"))], EventName.KPI_UPDATED, kpi)

    def list_kpis(self, principal: Principal, assigned_to: Optional[str] = None) -> List[Document]:
        """List KPIs; below the manager tier only the principal's own."""
        query: Document = dict(LIVE)
        if role_tier(principal.role) < MANAGER_TIER:
            query["assignedTo"] = principal.id
        elif assigned_to:
            query["assignedTo"] = assigned_to
        return self.store.find(KPIS, query, sort=[("createdAt", -1)])

    def get_kpi(self, principal: Principal, kpi_id: str) -> Document:
        kpi = self.load(kpi_id)
        self.authorize(principal, Action.READ, kpi)
        return kpi

    def create_kpi(self, principal: Principal, data: Dict[str, Any]) -> Document:
        name = require(data.get("name"), "name")
        assignee = require(data.get("assignedTo"), "assignedTo")
        user = self.store.find_one(USERS, {"_id": assignee})
        if user is None:
            raise NotFound("user", assignee)

        self.authorize(principal, Action.CREATE, facts=ResourceFacts(
            team=data.get("team"), target_user_id=assignee, target_team=user.get("team"),
        ))
        self.authorize(principal, Action.ASSIGN, facts=ResourceFacts(
            target_user_id=assignee, target_team=user.get("team"),
        ))

        target = data.get("targetValue", 0)
        current = data.get("currentValue", 0)
        _check_number(target, "targetValue")
        _check_number(current, "currentValue")
        period = data.get("period") or "monthly"
        _check_period(period)

        kpi = self.store.insert(KPIS, {
            "name": name,
            "description": data.get("description", ""),
            "targetValue": target,
            "currentValue": current,
            "assignedTo": assignee,
            "createdBy": principal.id,
            "team": data.get("team") or user.get("team"),
            "period": period,
            "isDeleted": False,
        })
        self._announce(kpi)
        return kpi

    def update_kpi(self, principal: Principal, kpi_id: str, changes: Dict[str, Any]) -> Document:
        kpi = self.load(kpi_id)
        self.authorize(principal, Action.UPDATE, kpi)

        updates = {key: value for key, value in changes.items() if key in EDITABLE}
        if not updates:
            raise ValidationFailed("No updatable fields supplied")
        for field in ("targetValue", "currentValue"):
            if field in updates:
                _check_number(updates[field], field)
        if "period" in updates:
            _check_period(updates["period"])

        updated = self.save(kpi_id, updates)
        self._announce(updated)
        return updated

    def update_progress(self, principal: Principal, kpi_id: str, current_value: float) -> Document:
        """Report a new current value."""
        kpi = self.load(kpi_id)
        self.authorize(principal, Action.UPDATE, kpi)
        _check_number(current_value, "currentValue")

        updated = self.save(kpi_id, {"currentValue": current_value})
        self._announce(updated)
        return updated

    def delete_kpi(self, principal: Principal, kpi_id: str) -> None:
        kpi = self.load(kpi_id)
        self.authorize(principal, Action.DELETE, kpi)

        deleted = self.soft_delete(kpi_id, principal)
        self._announce(deleted)

    def calculate(self, principal: Principal, kpi_id: str) -> Dict[str, Any]:
        kpi = self.load(kpi_id)
        self.authorize(principal, Action.READ, kpi)
        return progress_of(kpi)
