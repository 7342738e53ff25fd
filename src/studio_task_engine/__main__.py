"""Entry point for `python -m studio_task_engine` and the `task-engine` CLI script."""

from __future__ import annotations

import argparse
import json
import logging
from datetime import date
from pathlib import Path

from dotenv import load_dotenv

from studio_task_engine.identity import DirectoryRoleProvider
from studio_task_engine.engine import TaskEngine
from studio_task_engine.settings import EngineSettings
from studio_task_engine.store import JsonFileTaskStore, TaskService


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect and maintain project task files")
    parser.add_argument(
        "--store-root",
        type=Path,
        default=None,
        help="Task store directory (default: TASK_ENGINE_STORE_ROOT relative to cwd)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    layout_cmd = sub.add_parser("layout", help="Print the Gantt layout of a project as JSON")
    layout_cmd.add_argument("project_id")

    blocked_cmd = sub.add_parser("blocked", help="List blocked tasks and what blocks them")
    blocked_cmd.add_argument("project_id")

    sweep_cmd = sub.add_parser("sweep", help="Mark past-due tasks OVERDUE and save them")
    sweep_cmd.add_argument("project_id")
    sweep_cmd.add_argument(
        "--today",
        type=date.fromisoformat,
        default=None,
        help="Sweep date as YYYY-MM-DD (default: today)",
    )
    return parser.parse_args(argv)


def _layout_payload(service: TaskService, project_id: str) -> dict[str, object]:
    layout = service.gantt(project_id)
    return {
        "axisStart": layout.axis_start.isoformat() if layout.axis_start else None,
        "axisEnd": layout.axis_end.isoformat() if layout.axis_end else None,
        "rows": [
            {
                "id": row.task.id,
                "title": row.task.title,
                "category": row.task.category,
                "left": round(row.left, 6),
                "width": round(row.width, 6),
                "conflict": row.conflict,
            }
            for row in layout.rows
        ],
        "conflicts": [
            {"parentId": c.parent_id, "childId": c.child_id, "overlap": round(c.overlap, 6)} for c in layout.conflicts
        ],
    }


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    env_path = Path.cwd() / ".env"
    if env_path.is_file():
        load_dotenv(env_path)

    try:
        settings = EngineSettings.from_env()
        store_root = args.store_root if args.store_root is not None else settings.store_path(Path.cwd())
        store = JsonFileTaskStore(store_root)
        if not store.path_for(args.project_id).is_file():
            raise FileNotFoundError(f"No task file for project {args.project_id!r} under {store_root}")
    except (OSError, ValueError) as exc:
        logging.error("Unable to open task store: %s", exc)
        return 1

    service = TaskService(store, DirectoryRoleProvider(users=()), engine=TaskEngine(settings))
    try:
        if args.command == "layout":
            payload: object = _layout_payload(service, args.project_id)
        elif args.command == "blocked":
            payload = {
                task_id: [dep.id for dep in blocking]
                for task_id, blocking in service.blocked_report(args.project_id).items()
            }
        else:
            swept = service.run_overdue_sweep(args.project_id, args.today or date.today())
            payload = {"overdue": [task.id for task in swept]}
    except ValueError as exc:
        logging.error("Unable to read project %s: %s", args.project_id, exc)
        return 1

    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
