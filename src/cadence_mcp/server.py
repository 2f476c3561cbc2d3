"""FastMCP server bootstrap for Cadence."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastmcp import FastMCP

from . import __version__
from .config import CadenceSettings, env_flag, get_settings
from .events import EventBus, LifecycleEvent
from .resources import ResourceCatalog, ResourceLoadError, ResourceLoader, ResourcePool
from .runner import SessionRunner
from .session import count_remaining, get_current_task, is_complete
from .storage import SessionStore
from .tools import register_tools

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging for the Cadence server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _log_event(event: LifecycleEvent) -> None:
    logging.getLogger("cadence_mcp.events").info(
        event.event_type, extra={"event": event.model_dump()}
    )


def build_pool(settings: CadenceSettings) -> ResourcePool:
    return ResourcePool(
        default_cooldown_ms=int(settings.default_cooldown_seconds * 1000),
        max_wait_ms=int(settings.max_wait_seconds * 1000),
        wait_enabled=lambda: not env_flag("CADENCE_DISABLE_RESOURCE_WAIT"),
    )


def create_server(
    settings: Optional[CadenceSettings] = None,
    runner: SessionRunner | None = None,
    pool: ResourcePool | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server, wiring store, pool and runner together."""

    settings = settings or get_settings()

    pool = pool or (runner.pool if runner is not None else build_pool(settings))
    if runner is None:
        bus = EventBus()
        bus.subscribe(_log_event)
        runner = SessionRunner(
            settings.worktree,
            store=SessionStore(settings.state_file),
            bus=bus,
            pool=pool,
        )

    resource_metadata: dict[str, Any] = {
        "paths": [str(path) for path in settings.resource_paths],
        "count": 0,
        "error": None,
    }
    try:
        catalog = ResourceLoader(settings.resource_paths).load_all()
        resource_metadata["count"] = len(catalog)
    except ResourceLoadError as exc:
        resource_metadata["error"] = str(exc)
        catalog = ResourceCatalog()
        logger.warning("Failed to load resource definitions", extra={"error": str(exc)})

    resume_notice: dict[str, Any] | None = None
    existing = runner.load()
    if existing is not None and not is_complete(existing):
        current = get_current_task(existing)
        resume_notice = {
            "detected_at": datetime.now(timezone.utc).isoformat(),
            "status": existing.status,
            "current_task": current.id if current else None,
            "remaining": count_remaining(existing),
        }
        logger.info("Found unfinished session on startup", extra=resume_notice)

    server = FastMCP(
        name="Cadence MCP",
        version=__version__,
        instructions=(
            "Cadence drives an autonomous session through an ordered list of tasks. Call "
            "next_task for the current instruction, then report the outcome with "
            "cadence_control. Resource tools route around rate-limited providers and accounts."
        ),
    )

    handles = register_tools(
        server,
        runner=runner,
        pool=pool,
        catalog=catalog,
        settings=settings,
    )

    def status_resource() -> str:
        """Return a JSON string summarizing basic runtime state."""

        status = runner.status()
        session_payload = None
        if status.session is not None:
            session_payload = {
                "status": status.session.status,
                "current_task_index": status.session.current_task_index,
                "total": len(status.session.tasks),
                "remaining": count_remaining(status.session),
            }

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "worktree": str(runner.worktree),
            "session": {
                "active": status.active,
                "status_line": status.status_line,
                "details": session_payload,
                "persisted": runner.persist_error is None,
                "resume_notice": resume_notice,
            },
            "resources": {
                **resource_metadata,
                "unavailable": [
                    {"resource_id": record.resource_id, "reset_at": record.reset_at, "reason": record.reason}
                    for record in pool.unavailable()
                ],
            },
        }
        return json.dumps(payload)

    server.resource(
        "resource://cadence/status",
        name="cadence_status",
        description="Provides the current runtime status for the Cadence MCP server.",
        mime_type="application/json",
    )(status_resource)

    setattr(server, "runner", runner)
    setattr(server, "resource_pool", pool)
    setattr(server, "resource_catalog", catalog)
    setattr(server, "resource_metadata", resource_metadata)
    setattr(server, "resume_notice", resume_notice)
    setattr(server, "tool_handles", handles)
    setattr(server, "status_resource", status_resource)
    return server


def main() -> None:
    """Entry point for running the Cadence MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching Cadence MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "worktree": str(settings.worktree),
            "resources": getattr(server, "resource_metadata", {}).get("count"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
