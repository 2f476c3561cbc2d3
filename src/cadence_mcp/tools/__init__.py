"""Tool registration for Cadence MCP."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from fastmcp import Context, FastMCP
from pydantic.alias_generators import to_camel

from ..config import CadenceSettings
from ..reporting import TaskInstruction
from ..resources import Resource, ResourceCatalog, ResourcePool, is_rate_limit_failure
from ..runner import ControlResult, SessionRunner
from ..session import (
    Session,
    SessionConfig,
    count_completed,
    count_deferred,
    count_failed,
    count_remaining,
)

logger = logging.getLogger(__name__)

# accepted session_start config keys: field names and their camelCase aliases
_CONFIG_KEYS: frozenset[str] = frozenset(
    key for name in SessionConfig.model_fields for key in (name, to_camel(name))
)


@dataclass(slots=True)
class ToolHandles:
    session_start: Any
    next_task: Any
    cadence_control: Any
    session_status: Any
    session_pause: Any
    session_resume: Any
    session_stop: Any
    resource_status: Any
    mark_resource_unavailable: Any
    report_resource_failure: Any
    select_resource: Any
    session_ids: dict[str, str]


def _session_summary(session: Session) -> dict[str, Any]:
    return {
        "prd_path": session.prd_path,
        "status": session.status,
        "current_task_index": session.current_task_index,
        "total": len(session.tasks),
        "remaining": count_remaining(session),
        "completed": count_completed(session),
        "failed": count_failed(session),
        "deferred": count_deferred(session),
        "tasks": [
            {
                "id": task.id,
                "title": task.title,
                "status": task.status,
                "attempts": task.attempts,
                "error": task.error,
            }
            for task in session.tasks
        ],
    }


def _result_payload(result: ControlResult) -> dict[str, Any]:
    return {"title": result.title, "output": result.output, "metadata": result.metadata}


def _instruction_payload(instruction: TaskInstruction | None) -> dict[str, Any]:
    if instruction is None:
        return {"kind": "none", "text": "Nothing to do: no active session, session paused, or no current task."}
    return instruction.model_dump(mode="json", exclude_none=True)


def _resource_payload(resource: Resource, pool: ResourcePool) -> dict[str, Any]:
    record = pool.record_for(resource.id)
    return {
        "id": resource.id,
        "kind": resource.kind,
        "title": resource.title,
        "model": resource.model,
        "capabilities": sorted(resource.capabilities),
        "enabled": resource.enabled,
        "available": record is None,
        "reset_at": record.reset_at if record else None,
        "reason": record.reason if record else None,
    }


def register_tools(
    server: FastMCP,
    *,
    runner: SessionRunner,
    pool: ResourcePool,
    catalog: ResourceCatalog,
    settings: CadenceSettings,
) -> ToolHandles:
    """Register Cadence's MCP tools on the server."""

    session_ids: dict[str, str] = {}

    def _resolve_session_id(session_id: str | None) -> str:
        if session_id:
            return session_id
        return session_ids.get("current", "cadence")

    def _session_config(overrides: dict[str, Any] | None) -> SessionConfig:
        overrides = overrides or {}
        unknown = sorted(key for key in overrides if key not in _CONFIG_KEYS)
        if unknown:
            raise ValueError(f"Unknown session config key(s): {', '.join(unknown)}")

        provided = SessionConfig.model_validate(overrides)
        defaults: dict[str, Any] = {
            "max_retries": settings.max_retries,
            "stop_on_error": settings.stop_on_error,
            "test_command": settings.test_command,
            "lint_command": settings.lint_command,
        }
        # explicit overrides (camelCase or snake_case) win over settings
        return provided.model_copy(
            update={
                name: value
                for name, value in defaults.items()
                if name not in provided.model_fields_set and value is not None
            }
        )

    def _pool_for(kind: str) -> list[Resource]:
        if kind not in {"provider", "account"}:
            raise ValueError(f"Unknown resource kind '{kind}'. Use 'provider' or 'account'.")
        return catalog.of_kind(kind)  # type: ignore[arg-type]

    def _session_start(
        prd_path: str,
        tasks: list[dict[str, Any]],
        *,
        session_id: str | None = None,
        config: dict[str, Any] | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Start (or resume) the worktree session from externally extracted tasks."""

        if session_id is None:
            stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
            session_id = f"cadence-{stamp}-{uuid4().hex[:6]}"
        session = runner.start(prd_path, session_id, tasks=tasks, config=_session_config(config))
        session_ids["current"] = session_id

        _emit_log(
            context,
            "info",
            "Session started",
            extra={"session_id": session_id, "tasks": len(session.tasks), "status": session.status},
        )
        return {"session_id": session_id, **_session_summary(session)}

    def _next_task(context: Context | None = None) -> dict[str, Any]:
        """Return the instruction for the current task, or the completion summary."""

        instruction = runner.next_instruction()
        payload = _instruction_payload(instruction)
        _emit_log(context, "debug", "Next task instruction", extra={"kind": payload["kind"]})
        return payload

    def _cadence_control(
        action: Literal["task_complete", "task_failed", "run_tests"],
        summary: str | None = None,
        error: str | None = None,
        *,
        session_id: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Report the outcome of the current task or ask for the test command."""

        result = runner.control(action, _resolve_session_id(session_id), summary=summary, error=error)
        level = "warning" if action == "task_failed" else "info"
        _emit_log(context, level, result.title, extra={"action": action, **result.metadata})
        return _result_payload(result)

    def _session_status(context: Context | None = None) -> dict[str, Any]:
        status = runner.status()
        payload: dict[str, Any] = {
            "active": status.active,
            "status_line": status.status_line,
            "session_id": session_ids.get("current"),
            "persisted": runner.persist_error is None,
        }
        if status.session is not None:
            payload["session"] = _session_summary(status.session)
        _emit_log(context, "debug", "Session status", extra={"active": status.active})
        return payload

    def _session_pause(context: Context | None = None) -> dict[str, Any]:
        session = runner.pause()
        _emit_log(context, "info", "Pause requested", extra={"found": session is not None})
        return {"status": session.status if session else None}

    def _session_resume(context: Context | None = None) -> dict[str, Any]:
        session = runner.resume()
        _emit_log(context, "info", "Resume requested", extra={"found": session is not None})
        return {"status": session.status if session else None}

    def _session_stop(context: Context | None = None) -> dict[str, Any]:
        removed = runner.stop()
        session_ids.pop("current", None)
        _emit_log(context, "warning", "Session stopped", extra={"removed": removed})
        return {"removed": removed}

    tool_start = server.tool(
        name="session_start",
        description=(
            "Start an autonomous session for this worktree from an ordered list of task records "
            "({id, title, body?}). Resumes the unfinished session if one exists."
        ),
    )(_session_start)

    tool_next = server.tool(
        name="next_task",
        description="Get the instruction for the current task (marks it in progress) or the completion summary.",
    )(_next_task)

    tool_control = server.tool(
        name="cadence_control",
        description=(
            "Report on the current task: action task_complete (optional summary), task_failed "
            "(optional error), or run_tests to get the configured test command."
        ),
    )(_cadence_control)

    tool_status = server.tool(
        name="session_status",
        description="Show progress of the worktree session.",
    )(_session_status)

    tool_pause = server.tool(name="session_pause", description="Pause the running session.")(_session_pause)
    tool_resume = server.tool(name="session_resume", description="Resume a paused session.")(_session_resume)
    tool_stop = server.tool(
        name="session_stop",
        description="Stop the session and delete its persisted state.",
    )(_session_stop)

    def _resource_status(kind: str | None = None, context: Context | None = None) -> dict[str, Any]:
        resources = catalog.all() if kind is None else _pool_for(kind)
        payload = [_resource_payload(resource, pool) for resource in resources]
        earliest = pool.earliest_recovery(resources)
        _emit_log(context, "debug", "Resource status", extra={"count": len(payload)})
        return {
            "resources": payload,
            "all_unavailable": pool.all_unavailable(resources),
            "earliest_recovery": earliest,
        }

    def _mark_resource_unavailable(
        resource_id: str,
        reason: str,
        *,
        headers: dict[str, str] | None = None,
        retry_after_seconds: float | None = None,
        until_ms: int | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Put a resource on cooldown until ``until_ms`` or the reset the headers announce."""

        effective = {str(key).lower(): str(value) for key, value in (headers or {}).items()}
        if retry_after_seconds is not None:
            effective.setdefault("retry-after", str(retry_after_seconds))
        record = pool.mark_unavailable(resource_id, reason, until=until_ms, headers=effective or None)
        _emit_log(
            context,
            "warning",
            "Resource marked unavailable",
            extra={"resource_id": resource_id, "reset_at": record.reset_at},
        )
        return {"resource_id": record.resource_id, "reset_at": record.reset_at, "reason": record.reason}

    def _report_resource_failure(
        resource_id: str,
        *,
        status_code: int | None = None,
        message: str | None = None,
        headers: dict[str, str] | None = None,
        capabilities: list[str] | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Classify an upstream failure and, if it is a rate limit, route around it."""

        if not is_rate_limit_failure(status_code, message):
            _emit_log(context, "debug", "Failure is not a rate limit", extra={"resource_id": resource_id})
            return {"rate_limited": False, "resource_id": resource_id, "next": None}

        resource = catalog.get(resource_id)
        kind = resource.kind if resource else "provider"
        reason = message or f"HTTP {status_code}"
        record = pool.mark_unavailable(resource_id, reason, headers=headers)
        alternative = pool.select_next(resource_id, catalog.of_kind(kind), capabilities)

        _emit_log(
            context,
            "warning",
            "Resource rate limited",
            extra={
                "resource_id": resource_id,
                "next": alternative.id if alternative else None,
                "reset_at": record.reset_at,
            },
        )
        return {
            "rate_limited": True,
            "resource_id": resource_id,
            "reset_at": record.reset_at,
            "next": _resource_payload(alternative, pool) if alternative else None,
        }

    async def _select_resource(
        kind: str = "provider",
        *,
        exclude: str | None = None,
        capabilities: list[str] | None = None,
        wait: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Pick a usable resource; with wait=True fall back to the bounded wait."""

        resources = _pool_for(kind)
        if wait:
            selected = await pool.acquire(resources, exclude=exclude, capabilities=capabilities)
        else:
            selected = pool.select_next(exclude, resources, capabilities)

        _emit_log(
            context,
            "info",
            "Resource selection",
            extra={"kind": kind, "selected": selected.id if selected else None},
        )
        return {
            "selected": _resource_payload(selected, pool) if selected else None,
            "all_unavailable": pool.all_unavailable(resources),
            "earliest_recovery": pool.earliest_recovery(resources),
        }

    tool_resource_status = server.tool(
        name="resource_status",
        description="List provider/account resources with their current availability.",
    )(_resource_status)

    tool_mark = server.tool(
        name="mark_resource_unavailable",
        description="Record that a provider or account is temporarily unavailable (rate limited).",
    )(_mark_resource_unavailable)

    tool_report = server.tool(
        name="report_resource_failure",
        description=(
            "Report a failed upstream call. Rate-limit failures put the resource on cooldown "
            "and return the next usable alternative."
        ),
    )(_report_resource_failure)

    tool_select = server.tool(
        name="select_resource",
        description=(
            "Select the next available provider or account matching the required capabilities. "
            "Set wait=true to wait (up to the configured ceiling) when all are unavailable."
        ),
    )(_select_resource)

    return ToolHandles(
        session_start=tool_start,
        next_task=tool_next,
        cadence_control=tool_control,
        session_status=tool_status,
        session_pause=tool_pause,
        session_resume=tool_resume,
        session_stop=tool_stop,
        resource_status=tool_resource_status,
        mark_resource_unavailable=tool_mark,
        report_resource_failure=tool_report,
        select_resource=tool_select,
        session_ids=session_ids,
    )


__all__ = ["register_tools", "ToolHandles"]


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
