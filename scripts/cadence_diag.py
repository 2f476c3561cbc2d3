"""Cadence MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import json

from cadence_mcp.config import CadenceSettings
from cadence_mcp.reporting import build_completion_summary, build_status_line
from cadence_mcp.resources import ResourceCatalog, ResourceLoadError, ResourceLoader
from cadence_mcp.session import (
    count_completed,
    count_deferred,
    count_failed,
    count_remaining,
    is_complete,
)
from cadence_mcp.storage import SessionStore


def load_store(settings: CadenceSettings) -> SessionStore:
    return SessionStore(settings.state_file)


def load_catalog(settings: CadenceSettings) -> ResourceCatalog:
    try:
        return ResourceLoader(settings.resource_paths).load_all()
    except ResourceLoadError as exc:
        print(f"Resource definitions invalid: {exc}")
        raise SystemExit(1)


def cmd_session(args: argparse.Namespace) -> None:
    settings = CadenceSettings()
    store = load_store(settings)
    session = store.load(settings.worktree)
    if session is None:
        print(f"No active session in {store.path_for(settings.worktree)}")
        raise SystemExit(1)
    if args.json:
        print(json.dumps(session.to_document(), indent=2))
    else:
        for index, task in enumerate(session.tasks):
            marker = ">" if index == session.current_task_index else " "
            print(f"{marker} {task.id} [{task.status}] attempts={task.attempts} {task.title}")


def cmd_progress(args: argparse.Namespace) -> None:
    settings = CadenceSettings()
    store = load_store(settings)
    session = store.load(settings.worktree)
    if session is None:
        print(json.dumps({"active": False}, indent=2))
        return

    payload = {
        "active": not is_complete(session),
        "status": session.status,
        "status_line": build_status_line(session),
        "total": len(session.tasks),
        "remaining": count_remaining(session),
        "completed": count_completed(session),
        "failed": count_failed(session),
        "deferred": count_deferred(session),
    }
    if is_complete(session):
        payload["summary"] = build_completion_summary(session)
    print(json.dumps(payload, indent=2))


def cmd_resources(args: argparse.Namespace) -> None:
    settings = CadenceSettings()
    catalog = load_catalog(settings)
    resources = catalog.all() if args.kind is None else catalog.of_kind(args.kind)
    payload = [
        {
            "id": resource.id,
            "kind": resource.kind,
            "model": resource.model,
            "capabilities": sorted(resource.capabilities),
            "enabled": resource.enabled,
        }
        for resource in resources
    ]
    print(json.dumps(payload, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Cadence MCP diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_session = sub.add_parser("session", help="Show the persisted session tasks")
    p_session.add_argument("--json", action="store_true", help="Output the raw session document")
    p_session.set_defaults(func=cmd_session)

    p_progress = sub.add_parser("progress", help="Show session progress counts")
    p_progress.set_defaults(func=cmd_progress)

    p_resources = sub.add_parser("resources", help="List configured providers and accounts")
    p_resources.add_argument("--kind", choices=["provider", "account"], default=None)
    p_resources.set_defaults(func=cmd_resources)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
