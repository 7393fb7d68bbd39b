"""
Resource services.

Each service loads, authorizes, mutates and then publishes room events.
"""

from .analytics import AnalyticsService, Estimator, TaskStatsEstimator
from .base import ResourceService
from .chat import ChatService
from .departments import DepartmentService
from .files import FileService
from .kpis import KpiService
from .notifications import NotificationService
from .roles import RoleService
from .tasks import TaskService
from .team import TeamService
from .users import UserService

__all__ = [
    "AnalyticsService",
    "ChatService",
    "DepartmentService",
    "Estimator",
    "FileService",
    "KpiService",
    "NotificationService",
    "ResourceService",
    "RoleService",
    "TaskService",
    "TaskStatsEstimator",
    "TeamService",
    "UserService",
]
