"""Ralph Commander diagnostics CLI."""

from __future__ import annotations

import argparse
import json

from ralph_commander.config import RalphSettings
from ralph_commander.documents import FormatError, load_status, load_tasks
from ralph_commander.runtime import is_zombie, read_pid
from ralph_commander.storage import StatsTracker


def load_settings() -> RalphSettings:
    return RalphSettings()


def cmd_status(args: argparse.Namespace) -> None:
    settings = load_settings()
    try:
        status = load_status(settings.status_path)
    except FormatError as exc:
        print(f"Status file malformed: {exc}")
        raise SystemExit(1)
    payload = status.model_dump(mode="json", exclude={"stats"})
    payload["is_zombie"] = is_zombie(status, settings.pid_path)
    payload["pid"] = read_pid(settings.pid_path)
    print(json.dumps(payload, indent=2))


def cmd_tasks(args: argparse.Namespace) -> None:
    settings = load_settings()
    tasks = load_tasks(settings.plan_path)
    if args.json:
        print(json.dumps([task.model_dump() for task in tasks], indent=2))
        return
    for task in tasks:
        mark = "x" if task.completed else " "
        print(f"[{mark}] {task.phase}: {task.description}")


def cmd_stats(args: argparse.Namespace) -> None:
    settings = load_settings()
    document = StatsTracker(settings.stats_path).load()
    history = document.get("iteration_history") or []
    summary = {
        "iterations_recorded": len(history),
        "avg_iteration_ms": document.get("avg_iteration_ms", 0.0),
        "total_duration_ms": document.get("total_duration_ms", 0),
        "models": sorted((document.get("models") or {}).keys()),
    }
    if args.history:
        summary["iteration_history"] = history
    print(json.dumps(summary, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ralph Commander diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_status = sub.add_parser("status", help="Show the parsed loop status and liveness")
    p_status.set_defaults(func=cmd_status)

    p_tasks = sub.add_parser("tasks", help="List checklist tasks from the plan")
    p_tasks.add_argument("--json", action="store_true", help="Output JSON")
    p_tasks.set_defaults(func=cmd_tasks)

    p_stats = sub.add_parser("stats", help="Summarize the persisted session statistics")
    p_stats.add_argument("--history", action="store_true", help="Include per-iteration history")
    p_stats.set_defaults(func=cmd_stats)

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
