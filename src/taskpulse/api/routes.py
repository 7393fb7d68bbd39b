"""
HTTP API.

Thin aiohttp handlers: parse and validate the request, call the matching
service in a worker thread, return JSON. Authorization, persistence and
event publishing all happen inside the services.
"""

import asyncio
from typing import Any, Optional, Type

from aiohttp import web
from loguru import logger

from ..errors import NotFound, ValidationFailed
from . import schemas
from .middleware import CONTAINER, auth_middleware, bearer_token, cors_middleware, error_middleware


def _container(request: web.Request):
    return request.app[CONTAINER]


def _principal(request: web.Request):
    return request["principal"]


async def _body(request: web.Request, model: Type[schemas.M]) -> schemas.M:
    try:
        data = await request.json()
    except ValueError:
        raise ValidationFailed("Invalid JSON body")
    return schemas.parse(model, data)


def _query_int(request: web.Request, name: str, default: int) -> int:
    raw = request.query.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationFailed(f"{name} must be an integer", field=name)


def _query_bool(request: web.Request, name: str) -> Optional[bool]:
    raw = request.query.get(name)
    if raw is None or raw == "":
        return None
    return raw.lower() in ("1", "true", "yes")


async def _run(func, *args, **kwargs) -> Any:
    return await asyncio.to_thread(func, *args, **kwargs)


# ============================================================================
# Health
# ============================================================================

async def health_check(request: web.Request) -> web.Response:
    """Health check endpoint."""
    container = _container(request)
    return web.json_response({
        "status": "healthy",
        "service": "taskpulse",
        "rooms": container.registry.stats(),
        "roomKinds": container.registry.rooms_by_kind(),
        "events": container.dispatcher.stats(),
    })


async def ready_check(request: web.Request) -> web.Response:
    """Readiness check endpoint."""
    container = _container(request)
    try:
        await _run(container.store.count, "users")
    except Exception as e:
        logger.warning(f"Readiness check failed: {e}")
        return web.json_response({"status": "not_ready", "store": "unavailable"}, status=503)
    return web.json_response({"status": "ready", "store": "connected"})


# ============================================================================
# Auth
# ============================================================================

async def handle_login(request: web.Request) -> web.Response:
    """
    POST /api/auth/login
    Body: {"email": "...", "password": "..."}
    Returns: {"token": "...", "refresh_token": "...", "user": {...}}
    """
    body = await _body(request, schemas.LoginRequest)
    container = _container(request)

    access, refresh = await _run(container.user_manager.login, body.email, body.password, request.remote)
    principal = await _run(container.user_manager.authenticate, access)
    return web.json_response({
        "token": access,
        "refresh_token": refresh,
        "user": {
            "id": principal.id,
            "name": principal.name,
            "email": principal.email,
            "role": principal.role,
            "team": principal.team,
            "department": principal.department,
        },
    })


async def handle_refresh(request: web.Request) -> web.Response:
    body = await _body(request, schemas.RefreshRequest)
    token = await _run(_container(request).user_manager.refresh_access_token, body.refresh_token)
    return web.json_response({"token": token})


async def handle_logout(request: web.Request) -> web.Response:
    revoked = await _run(_container(request).user_manager.logout, bearer_token(request))
    logger.info(f"User logged out: {_principal(request).email}")
    return web.json_response({"success": revoked})


async def handle_me(request: web.Request) -> web.Response:
    user = await _run(_container(request).users.get_user_by_id, _principal(request).id)
    if user is None:
        raise NotFound("user", _principal(request).id)
    return web.json_response({
        "id": user.user_id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "team": user.team,
        "department": user.department,
        "position": user.position,
    })


# ============================================================================
# Tasks
# ============================================================================

async def list_tasks(request: web.Request) -> web.Response:
    q = request.query
    result = await _run(
        _container(request).tasks.list_tasks,
        _principal(request),
        status=q.get("status"),
        priority=q.get("priority"),
        assigned_to=q.get("assignedTo"),
        search=q.get("search"),
        page=_query_int(request, "page", 1),
        limit=_query_int(request, "limit", 20),
        sort_by=q.get("sortBy", "createdAt"),
        sort_order=q.get("sortOrder", "desc"),
    )
    return web.json_response(result)


async def create_task(request: web.Request) -> web.Response:
    body = await _body(request, schemas.TaskCreate)
    task = await _run(_container(request).tasks.create_task, _principal(request), body.model_dump())
    return web.json_response(task, status=201)


async def get_task(request: web.Request) -> web.Response:
    task = await _run(_container(request).tasks.get_task, _principal(request), request.match_info["id"])
    return web.json_response(task)


async def update_task(request: web.Request) -> web.Response:
    body = await _body(request, schemas.TaskUpdate)
    task = await _run(
        _container(request).tasks.update_task,
        _principal(request), request.match_info["id"], schemas.changes(body),
    )
    return web.json_response(task)


async def delete_task(request: web.Request) -> web.Response:
    await _run(_container(request).tasks.delete_task, _principal(request), request.match_info["id"])
    return web.json_response({"message": "Task deleted successfully"})


async def update_task_status(request: web.Request) -> web.Response:
    body = await _body(request, schemas.StatusUpdate)
    task = await _run(
        _container(request).tasks.update_status,
        _principal(request), request.match_info["id"], body.status, body.notes,
    )
    return web.json_response(task)


async def update_task_progress(request: web.Request) -> web.Response:
    body = await _body(request, schemas.ProgressUpdate)
    task = await _run(
        _container(request).tasks.update_progress,
        _principal(request), request.match_info["id"], body.progress, body.notes,
    )
    return web.json_response(task)


async def add_task_note(request: web.Request) -> web.Response:
    body = await _body(request, schemas.NoteCreate)
    task = await _run(
        _container(request).tasks.add_note,
        _principal(request), request.match_info["id"], body.text, body.type,
    )
    return web.json_response({"message": "Note added successfully", "comments": task["comments"]})


async def add_task_blocker(request: web.Request) -> web.Response:
    body = await _body(request, schemas.BlockerCreate)
    task = await _run(
        _container(request).tasks.add_blocker,
        _principal(request), request.match_info["id"], body.description, body.type, body.estimatedResolution,
    )
    return web.json_response({"message": "Blocker added successfully", "blockers": task["blockers"]})


async def resolve_task_blocker(request: web.Request) -> web.Response:
    body = await _body(request, schemas.BlockerResolve)
    task = await _run(
        _container(request).tasks.resolve_blocker,
        _principal(request), request.match_info["id"], body.blockerId, body.resolved,
    )
    return web.json_response(task)


async def assign_task(request: web.Request) -> web.Response:
    body = await _body(request, schemas.AssignRequest)
    task = await _run(
        _container(request).tasks.assign_task,
        _principal(request), request.match_info["id"], body.userId,
        priority=body.priority, deadline=body.deadline, notes=body.notes,
    )
    return web.json_response(task)


async def reassign_task(request: web.Request) -> web.Response:
    body = await _body(request, schemas.ReassignRequest)
    task = await _run(
        _container(request).tasks.reassign_task,
        _principal(request), request.match_info["id"], body.newUserId, body.reason,
    )
    return web.json_response(task)


async def approve_task(request: web.Request) -> web.Response:
    task = await _run(_container(request).tasks.approve_task, _principal(request), request.match_info["id"])
    return web.json_response(task)


# ============================================================================
# Notifications
# ============================================================================

async def list_notifications(request: web.Request) -> web.Response:
    unread_only = request.query.get("unread", "").lower() in ("1", "true", "yes")
    notifications = _container(request).notifications
    items = await _run(notifications.list_notifications, _principal(request), unread_only)
    unread = await _run(notifications.unread_count, _principal(request))
    return web.json_response({"notifications": items, "unreadCount": unread})


async def create_notification(request: web.Request) -> web.Response:
    body = await _body(request, schemas.NotificationCreate)
    notification = await _run(
        _container(request).notifications.create_notification,
        _principal(request), body.user, body.type, body.title, body.message,
        priority=body.priority, related_entity=body.relatedEntity,
    )
    return web.json_response(notification, status=201)


async def mark_notification_read(request: web.Request) -> web.Response:
    await _run(_container(request).notifications.mark_read, _principal(request), request.match_info["id"])
    return web.json_response({"message": "Notification marked as read"})


async def mark_all_notifications_read(request: web.Request) -> web.Response:
    count = await _run(_container(request).notifications.mark_all_read, _principal(request))
    return web.json_response({"message": "All notifications marked as read", "count": count})


async def delete_notification(request: web.Request) -> web.Response:
    await _run(_container(request).notifications.delete_notification, _principal(request), request.match_info["id"])
    return web.json_response({"message": "Notification deleted"})


# ============================================================================
# Chat
# ============================================================================

async def list_conversations(request: web.Request) -> web.Response:
    items = await _run(_container(request).chat.list_conversations, _principal(request))
    return web.json_response({"conversations": items})


async def create_conversation(request: web.Request) -> web.Response:
    body = await _body(request, schemas.ConversationCreate)
    conversation = await _run(
        _container(request).chat.create_conversation,
        _principal(request), body.type, body.participants,
        name=body.name, team=body.teamId,
        settings=body.settings.model_dump() if body.settings else None,
    )
    return web.json_response({"conversation": conversation}, status=201)


async def get_conversation(request: web.Request) -> web.Response:
    conversation = await _run(_container(request).chat.get_conversation, _principal(request), request.match_info["id"])
    return web.json_response({"conversation": conversation})


async def delete_conversation(request: web.Request) -> web.Response:
    conversation_id = request.match_info["id"]
    await _run(_container(request).chat.delete_conversation, _principal(request), conversation_id)
    return web.json_response({"message": "Conversation deleted successfully", "conversationId": conversation_id})


async def list_messages(request: web.Request) -> web.Response:
    result = await _run(
        _container(request).chat.list_messages,
        _principal(request), request.match_info["id"],
        page=_query_int(request, "page", 1),
        limit=_query_int(request, "limit", 50),
    )
    return web.json_response(result)


async def send_message(request: web.Request) -> web.Response:
    body = await _body(request, schemas.MessageCreate)
    message = await _run(
        _container(request).chat.send_message,
        _principal(request), request.match_info["id"], body.content, body.type, body.replyTo,
    )
    return web.json_response({"message": message}, status=201)


async def update_message(request: web.Request) -> web.Response:
    body = await _body(request, schemas.MessageUpdate)
    message = await _run(
        _container(request).chat.update_message, _principal(request), request.match_info["id"], body.content,
    )
    return web.json_response({"message": message})


async def delete_message(request: web.Request) -> web.Response:
    await _run(_container(request).chat.delete_message, _principal(request), request.match_info["id"])
    return web.json_response({"message": "Message deleted successfully"})


async def react_to_message(request: web.Request) -> web.Response:
    body = await _body(request, schemas.ReactionCreate)
    reactions = await _run(
        _container(request).chat.react, _principal(request), request.match_info["id"], body.emoji,
    )
    return web.json_response({"reactions": reactions})


# ============================================================================
# Team
# ============================================================================

async def list_members(request: web.Request) -> web.Response:
    principal = _principal(request)
    team_id = request.query.get("teamId") or principal.team
    if not team_id:
        raise ValidationFailed("teamId is required", field="teamId")
    members = await _run(_container(request).team.list_members, principal, team_id)
    return web.json_response({"members": members})


async def get_member(request: web.Request) -> web.Response:
    member = await _run(_container(request).team.get_member, _principal(request), request.match_info["id"])
    return web.json_response({"member": member})


async def add_member(request: web.Request) -> web.Response:
    body = await _body(request, schemas.MemberAdd)
    member = await _run(
        _container(request).team.add_member,
        _principal(request), body.email, body.teamId,
        department_id=body.departmentId, role=body.role, position=body.position,
    )
    return web.json_response({"message": "Team member added successfully", "member": member}, status=201)


async def update_member(request: web.Request) -> web.Response:
    body = await _body(request, schemas.MemberUpdate)
    member = await _run(
        _container(request).team.update_member,
        _principal(request), request.match_info["id"], schemas.changes(body),
    )
    return web.json_response({"message": "Team member updated successfully", "member": member})


async def remove_member(request: web.Request) -> web.Response:
    member_id = request.match_info["id"]
    await _run(_container(request).team.remove_member, _principal(request), member_id)
    return web.json_response({"message": "Team member removed successfully", "memberId": member_id})


async def generate_report(request: web.Request) -> web.Response:
    body = await _body(request, schemas.ReportRequest)
    report = await _run(
        _container(request).analytics.generate_team_report,
        _principal(request), body.teamId, body.reportType, body.timeframe,
    )
    return web.json_response({"message": "Team report generated successfully", "report": report})


# ============================================================================
# Files
# ============================================================================

async def list_files(request: web.Request) -> web.Response:
    q = request.query
    files = await _run(
        _container(request).files.list_files,
        _principal(request), task=q.get("task"), team=q.get("team"), conversation=q.get("conversation"),
    )
    return web.json_response({"files": files})


async def register_file(request: web.Request) -> web.Response:
    body = await _body(request, schemas.FileRegister)
    doc = await _run(_container(request).files.register_file, _principal(request), body.model_dump())
    return web.json_response(doc, status=201)


async def get_file(request: web.Request) -> web.Response:
    doc = await _run(_container(request).files.get_file, _principal(request), request.match_info["id"])
    return web.json_response(doc)


async def share_file(request: web.Request) -> web.Response:
    body = await _body(request, schemas.FileShare)
    doc = await _run(
        _container(request).files.share_file,
        _principal(request), request.match_info["id"], body.userId, body.permission,
    )
    return web.json_response(doc)


async def delete_file(request: web.Request) -> web.Response:
    await _run(_container(request).files.delete_file, _principal(request), request.match_info["id"])
    return web.json_response({"message": "File deleted successfully"})


# ============================================================================
# KPIs
# ============================================================================

async def list_kpis(request: web.Request) -> web.Response:
    kpis = await _run(_container(request).kpis.list_kpis, _principal(request), request.query.get("assignedTo"))
    return web.json_response(kpis)


async def create_kpi(request: web.Request) -> web.Response:
    body = await _body(request, schemas.KpiCreate)
    kpi = await _run(_container(request).kpis.create_kpi, _principal(request), body.model_dump())
    return web.json_response(kpi, status=201)


async def get_kpi(request: web.Request) -> web.Response:
    kpi = await _run(_container(request).kpis.get_kpi, _principal(request), request.match_info["id"])
    return web.json_response(kpi)


async def update_kpi(request: web.Request) -> web.Response:
    body = await _body(request, schemas.KpiUpdate)
    kpi = await _run(
        _container(request).kpis.update_kpi, _principal(request), request.match_info["id"], schemas.changes(body),
    )
    return web.json_response(kpi)


async def update_kpi_progress(request: web.Request) -> web.Response:
    body = await _body(request, schemas.KpiProgress)
    kpi = await _run(
        _container(request).kpis.update_progress, _principal(request), request.match_info["id"], body.currentValue,
    )
    return web.json_response({"message": "KPI progress updated", "kpi": kpi})


async def calculate_kpi(request: web.Request) -> web.Response:
    result = await _run(_container(request).kpis.calculate, _principal(request), request.match_info["id"])
    return web.json_response(result)


async def delete_kpi(request: web.Request) -> web.Response:
    await _run(_container(request).kpis.delete_kpi, _principal(request), request.match_info["id"])
    return web.json_response({"message": "KPI deleted"})


# ============================================================================
# Roles
# ============================================================================

async def list_roles(request: web.Request) -> web.Response:
    include_inactive = request.query.get("includeInactive", "").lower() in ("1", "true", "yes")
    roles = await _run(_container(request).roles.list_roles, _principal(request), include_inactive)
    return web.json_response({"roles": roles})


async def create_role(request: web.Request) -> web.Response:
    body = await _body(request, schemas.RoleCreate)
    role = await _run(_container(request).roles.create_role, _principal(request), body.model_dump())
    return web.json_response({"message": "Role created successfully", "role": role}, status=201)


async def get_role(request: web.Request) -> web.Response:
    role = await _run(_container(request).roles.get_role, _principal(request), request.match_info["id"])
    return web.json_response({"role": role})


async def update_role(request: web.Request) -> web.Response:
    body = await _body(request, schemas.RoleUpdate)
    role = await _run(
        _container(request).roles.update_role, _principal(request), request.match_info["id"], schemas.changes(body),
    )
    return web.json_response({"message": "Role updated successfully", "role": role})


async def delete_role(request: web.Request) -> web.Response:
    role_id = request.match_info["id"]
    await _run(_container(request).roles.delete_role, _principal(request), role_id)
    return web.json_response({"message": "Role deleted successfully", "roleId": role_id})


# ============================================================================
# Departments
# ============================================================================

async def list_departments(request: web.Request) -> web.Response:
    result = await _run(
        _container(request).departments.list_departments,
        _principal(request),
        search=request.query.get("search"),
        is_active=_query_bool(request, "isActive"),
        page=_query_int(request, "page", 1),
        limit=_query_int(request, "limit", 10),
    )
    return web.json_response(result)


async def create_department(request: web.Request) -> web.Response:
    body = await _body(request, schemas.DepartmentCreate)
    department = await _run(
        _container(request).departments.create_department, _principal(request), body.model_dump(),
    )
    return web.json_response({"message": "Department created successfully", "department": department}, status=201)


async def get_department(request: web.Request) -> web.Response:
    department = await _run(
        _container(request).departments.get_department, _principal(request), request.match_info["id"],
    )
    return web.json_response({"department": department})


async def update_department(request: web.Request) -> web.Response:
    body = await _body(request, schemas.DepartmentUpdate)
    department = await _run(
        _container(request).departments.update_department,
        _principal(request), request.match_info["id"], schemas.changes(body),
    )
    return web.json_response({"message": "Department updated successfully", "department": department})


async def delete_department(request: web.Request) -> web.Response:
    department_id = request.match_info["id"]
    await _run(_container(request).departments.delete_department, _principal(request), department_id)
    return web.json_response({"message": "Department deleted successfully", "departmentId": department_id})


async def list_department_members(request: web.Request) -> web.Response:
    members = await _run(
        _container(request).departments.list_members,
        _principal(request),
        request.match_info["id"],
        role=request.query.get("role"),
        search=request.query.get("search"),
    )
    return web.json_response({"members": members})


# ============================================================================
# Users
# ============================================================================

async def get_profile(request: web.Request) -> web.Response:
    profile = await _run(_container(request).profiles.get_profile, _principal(request))
    return web.json_response({"user": profile})


async def update_profile(request: web.Request) -> web.Response:
    body = await _body(request, schemas.ProfileUpdate)
    profile = await _run(_container(request).profiles.update_profile, _principal(request), schemas.changes(body))
    return web.json_response({"message": "Profile updated successfully", "user": profile})


async def list_users(request: web.Request) -> web.Response:
    q = request.query
    result = await _run(
        _container(request).profiles.list_users,
        _principal(request),
        team=q.get("team"),
        department=q.get("department"),
        role=q.get("role"),
        search=q.get("search"),
        page=_query_int(request, "page", 1),
        limit=_query_int(request, "limit", 20),
    )
    return web.json_response(result)


async def get_user(request: web.Request) -> web.Response:
    user = await _run(_container(request).profiles.get_user, _principal(request), request.match_info["id"])
    return web.json_response({"user": user})


async def update_user(request: web.Request) -> web.Response:
    body = await _body(request, schemas.UserUpdate)
    user = await _run(
        _container(request).profiles.update_user,
        _principal(request), request.match_info["id"], schemas.changes(body),
    )
    return web.json_response({"message": "User updated successfully", "user": user})


async def delete_user(request: web.Request) -> web.Response:
    user_id = request.match_info["id"]
    await _run(_container(request).profiles.delete_user, _principal(request), user_id)
    return web.json_response({"message": "User deleted successfully", "userId": user_id})


# ============================================================================
# Analytics
# ============================================================================

async def get_metric(request: web.Request) -> web.Response:
    metric = request.match_info["metric"]
    data = await _run(
        _container(request).analytics.metric, _principal(request), metric, request.query.get("userId"),
    )
    return web.json_response({"message": f"{metric.capitalize()} analytics retrieved successfully", "data": data})


# ============================================================================
# Application
# ============================================================================

def setup_routes(app: web.Application) -> None:
    app.router.add_get("/health", health_check)
    app.router.add_get("/ready", ready_check)

    app.router.add_post("/api/auth/login", handle_login)
    app.router.add_post("/api/auth/refresh", handle_refresh)
    app.router.add_post("/api/auth/logout", handle_logout)
    app.router.add_get("/api/auth/me", handle_me)

    app.router.add_get("/api/tasks", list_tasks)
    app.router.add_post("/api/tasks", create_task)
    app.router.add_get("/api/tasks/{id}", get_task)
    app.router.add_put("/api/tasks/{id}", update_task)
    app.router.add_delete("/api/tasks/{id}", delete_task)
    app.router.add_patch("/api/tasks/{id}/status", update_task_status)
    app.router.add_patch("/api/tasks/{id}/progress", update_task_progress)
    app.router.add_post("/api/tasks/{id}/notes", add_task_note)
    app.router.add_post("/api/tasks/{id}/blockers", add_task_blocker)
    app.router.add_patch("/api/tasks/{id}/blockers", resolve_task_blocker)
    app.router.add_post("/api/tasks/{id}/assign", assign_task)
    app.router.add_post("/api/tasks/{id}/reassign", reassign_task)
    app.router.add_post("/api/tasks/{id}/approve", approve_task)

    app.router.add_get("/api/notifications", list_notifications)
    app.router.add_post("/api/notifications", create_notification)
    app.router.add_patch("/api/notifications/read-all", mark_all_notifications_read)
    app.router.add_patch("/api/notifications/{id}/read", mark_notification_read)
    app.router.add_delete("/api/notifications/{id}", delete_notification)

    app.router.add_get("/api/chat/conversations", list_conversations)
    app.router.add_post("/api/chat/conversations", create_conversation)
    app.router.add_get("/api/chat/conversations/{id}", get_conversation)
    app.router.add_delete("/api/chat/conversations/{id}", delete_conversation)
    app.router.add_get("/api/chat/conversations/{id}/messages", list_messages)
    app.router.add_post("/api/chat/conversations/{id}/messages", send_message)
    app.router.add_put("/api/chat/messages/{id}", update_message)
    app.router.add_delete("/api/chat/messages/{id}", delete_message)
    app.router.add_post("/api/chat/messages/{id}/reactions", react_to_message)

    app.router.add_get("/api/team/members", list_members)
    app.router.add_post("/api/team/members", add_member)
    app.router.add_get("/api/team/members/{id}", get_member)
    app.router.add_put("/api/team/members/{id}", update_member)
    app.router.add_delete("/api/team/members/{id}", remove_member)
    app.router.add_post("/api/team/reports", generate_report)

    app.router.add_get("/api/files", list_files)
    app.router.add_post("/api/files", register_file)
    app.router.add_get("/api/files/{id}", get_file)
    app.router.add_post("/api/files/{id}/share", share_file)
    app.router.add_delete("/api/files/{id}", delete_file)

    app.router.add_get("/api/kpis", list_kpis)
    app.router.add_post("/api/kpis", create_kpi)
    app.router.add_get("/api/kpis/{id}", get_kpi)
    app.router.add_put("/api/kpis/{id}", update_kpi)
    app.router.add_delete("/api/kpis/{id}", delete_kpi)
    app.router.add_patch("/api/kpis/{id}/progress", update_kpi_progress)
    app.router.add_get("/api/kpis/{id}/calculate", calculate_kpi)

    app.router.add_get("/api/organization/roles", list_roles)
    app.router.add_post("/api/organization/roles", create_role)
    app.router.add_get("/api/organization/roles/{id}", get_role)
    app.router.add_put("/api/organization/roles/{id}", update_role)
    app.router.add_delete("/api/organization/roles/{id}", delete_role)

    app.router.add_get("/api/organization/departments", list_departments)
    app.router.add_post("/api/organization/departments", create_department)
    app.router.add_get("/api/organization/departments/{id}", get_department)
    app.router.add_put("/api/organization/departments/{id}", update_department)
    app.router.add_delete("/api/organization/departments/{id}", delete_department)
    app.router.add_get("/api/organization/departments/{id}/members", list_department_members)

    app.router.add_get("/api/users/profile", get_profile)
    app.router.add_put("/api/users/profile", update_profile)
    app.router.add_get("/api/users", list_users)
    app.router.add_get("/api/users/{id}", get_user)
    app.router.add_put("/api/users/{id}", update_user)
    app.router.add_delete("/api/users/{id}", delete_user)

    app.router.add_get("/api/analytics/{metric}", get_metric)


def create_app(container) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        container: Component container (a ``taskpulse.app.TaskPulse``)
    """
    app = web.Application(middlewares=[cors_middleware, error_middleware, auth_middleware])
    app[CONTAINER] = container
    setup_routes(app)
    return app
