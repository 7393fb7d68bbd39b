"""
Analytics service.

Scores come from a pluggable Estimator. The default, TaskStatsEstimator,
derives them from the task collection; swap in another estimator to use a
different model.
"""

from typing import Any, Dict, Optional, Protocol

from loguru import logger

from ..auth import Action, Principal, ResourceFacts, ResourceKind
from ..errors import ValidationFailed
from ..realtime.events import EventName
from ..realtime.rooms import RoomKind, room_key
from ..store import DocumentStore, utcnow_iso
from ..store.database import new_id
from .base import LIVE, Document, ResourceService, require

TASKS = "tasks"
USERS = "users"

METRICS = ("productivity", "efficiency", "quality")
REPORT_TYPES = ("performance", "productivity", "workload", "skills", "comprehensive")

_METRIC_EVENTS = {
    "productivity": EventName.PRODUCTIVITY_UPDATED,
    "efficiency": EventName.EFFICIENCY_UPDATED,
    "quality": EventName.QUALITY_UPDATED,
}


class Estimator(Protocol):
    def estimate(self, metric: str, subject_id: str) -> float:
        """Return a 0-100 score of ``metric`` for a user."""
        ...


class TaskStatsEstimator:
    """
    Scores computed from a user's assigned tasks.

    productivity: share of tasks completed
    efficiency:   share of completed tasks finished by their deadline
    quality:      share of completed tasks that were approved
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def estimate(self, metric: str, subject_id: str) -> float:
        tasks = self.store.find(TASKS, {"assignedTo": subject_id, **LIVE})
        completed = [t for t in tasks if t.get("status") == "completed"]

        if metric == "productivity":
            return _percent(len(completed), len(tasks))

        if metric == "efficiency":
            on_time = [
                t for t in completed
                if not t.get("deadline") or (t.get("completedAt") or "") <= t["deadline"]
            ]
            return _percent(len(on_time), len(completed))

        if metric == "quality":
            approved = [t for t in completed if t.get("approvedBy")]
            return _percent(len(approved), len(completed))

        raise ValueError(f"Unknown metric: {metric}")


def _percent(part: int, whole: int) -> float:
    return round(part * 100.0 / whole, 2) if whole else 0.0


def analytics_room(user_id: str) -> str:
    return room_key(RoomKind.ANALYTICS, user_id)


class AnalyticsService(ResourceService):
    collection = TASKS
    kind = ResourceKind.ANALYTICS
    resource_name = "analytics"

    def __init__(self, store, dispatcher, checker=None, estimator: Optional[Estimator] = None):
        super().__init__(store, dispatcher, checker)
        self.estimator = estimator or TaskStatsEstimator(store)

    def facts(self, doc: Document) -> ResourceFacts:
        return ResourceFacts(owner_id=doc.get("userId"), team=doc.get("team"))

    def metric(self, principal: Principal, metric: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Score one metric for a user (the principal by default).

        The result is also pushed to the principal's analytics room.
        """
        if metric not in METRICS:
            raise ValidationFailed(f"Unknown metric: {metric}", field="metric")

        subject = user_id or principal.id
        self.authorize(principal, Action.READ, facts=ResourceFacts(owner_id=subject))

        data = {
            "userId": subject,
            "metric": metric,
            "score": self.estimator.estimate(metric, subject),
            "calculatedAt": utcnow_iso(),
        }
        self.publish([analytics_room(principal.id)], _METRIC_EVENTS[metric], data)
        return data

    def productivity(self, principal: Principal, user_id: Optional[str] = None) -> Dict[str, Any]:
        return self.metric(principal, "productivity", user_id)

    def efficiency(self, principal: Principal, user_id: Optional[str] = None) -> Dict[str, Any]:
        return self.metric(principal, "efficiency", user_id)

    def quality(self, principal: Principal, user_id: Optional[str] = None) -> Dict[str, Any]:
        return self.metric(principal, "quality", user_id)

    def generate_team_report(
        self,
        principal: Principal,
        team_id: str,
        report_type: str,
        timeframe: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Summarize a team and announce the report to the team room."""
        require(team_id, "teamId")
        if report_type not in REPORT_TYPES:
            raise ValidationFailed("Invalid report type", field="reportType")
        self.authorize(principal, Action.CREATE, facts=ResourceFacts(team=team_id))

        members = self.store.find(USERS, {"team": team_id})
        tasks = self.store.find(TASKS, {"team": team_id, **LIVE})
        completed = sum(1 for t in tasks if t.get("status") == "completed")
        scores = [self.estimator.estimate("productivity", m["_id"]) for m in members]

        report = {
            "id": new_id(),
            "type": report_type,
            "timeframe": timeframe or "month",
            "teamId": team_id,
            "generatedAt": utcnow_iso(),
            "generatedBy": principal.id,
            "summary": {
                "totalMembers": len(members),
                "totalTasks": len(tasks),
                "completionRate": _percent(completed, len(tasks)),
                "averageProductivity": round(sum(scores) / len(scores), 2) if scores else 0.0,
            },
        }

        logger.info(f"Report {report['id']} ({report_type}) generated for team {team_id}")
        self.publish(
            [room_key(RoomKind.TEAM, team_id)],
            EventName.REPORT_GENERATED,
            {"reportId": report["id"], "reportType": report_type},
        )
        return report
