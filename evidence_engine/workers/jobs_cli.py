#!/usr/bin/env python3
"""
Operator CLI for the job queue.

Usage:
    evidence-jobs create periodic-insight --config '{"month": "2024-05"}'
    evidence-jobs list --status failed
    evidence-jobs show <job-id>
    evidence-jobs run <job-id>      # dispatch one pending job now
    evidence-jobs poll              # one poll cycle, like the worker
    evidence-jobs cancel <job-id>
    evidence-jobs delete <job-id>
    evidence-jobs clear-failed
    evidence-jobs cleanup --days 7
    evidence-jobs health
"""

import argparse
import asyncio
import json
import sys
from typing import NoReturn

from evidence_engine.core.models.jobs import JobType
from evidence_engine.core.services.exceptions import InvalidTransitionError
from evidence_engine.core.storage.exceptions import NotFoundError
from evidence_engine.core.storage.postgres import close_db, get_db
from evidence_engine.workers.triggers import JobTriggers, build_triggers

COMMANDS = [
    "create",
    "list",
    "show",
    "run",
    "poll",
    "cancel",
    "delete",
    "clear-failed",
    "cleanup",
    "health",
]

# Commands whose positional argument is a job id
_ID_COMMANDS = {"show", "run", "cancel", "delete"}


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, default=str))


async def cmd_create(triggers: JobTriggers, job_type: str, raw_config: str | None) -> int:
    try:
        config = json.loads(raw_config) if raw_config else {}
    except json.JSONDecodeError as e:
        print(f"Invalid --config JSON: {e}")
        return 1
    if not isinstance(config, dict):
        print("--config must be a JSON object")
        return 1

    job, created = await triggers.create_job(job_type, config)
    verb = "Created" if created else "Reusing active"
    print(f"{verb} job {job.id} ({job.type}, {job.status})")
    return 0


async def cmd_list(
    triggers: JobTriggers,
    job_type: str | None,
    status: str | None,
    limit: int,
) -> int:
    jobs = await triggers.store.list_jobs(job_type=job_type, status=status, limit=limit)
    if not jobs:
        print("No jobs found.")
        return 0

    for job in jobs:
        message = f"  {job.status_message}" if job.status_message else ""
        print(
            f"{job.id}  {job.type:<18} {job.status:<10} {job.progress:>3}%  "
            f"{job.created_at:%Y-%m-%d %H:%M:%S}{message}"
        )
    return 0


async def cmd_show(triggers: JobTriggers, job_id: str) -> int:
    job = await triggers.store.get(job_id)
    _print_json(job.to_dict())
    return 0


async def cmd_run(triggers: JobTriggers, job_id: str) -> int:
    outcome = await triggers.run_by_id(job_id)
    print(f"Job {job_id}: {outcome.value}")
    return 0 if outcome.value != "failed" else 1


async def cmd_poll(triggers: JobTriggers) -> int:
    stats = await triggers.poll_once()
    _print_json(stats)
    return 0


async def cmd_cancel(triggers: JobTriggers, job_id: str) -> int:
    if await triggers.store.cancel(job_id):
        print(f"Cancelled job {job_id}")
    else:
        print(f"Job {job_id} already finished; nothing to cancel")
    return 0


async def cmd_delete(triggers: JobTriggers, job_id: str) -> int:
    await triggers.store.delete(job_id)
    print(f"Deleted job {job_id}")
    return 0


async def cmd_clear_failed(triggers: JobTriggers) -> int:
    deleted = await triggers.store.clear_failed()
    print(f"Deleted {deleted} failed/cancelled jobs")
    return 0


async def cmd_cleanup(triggers: JobTriggers, days: int) -> int:
    deleted = await triggers.store.cleanup_completed(older_than_days=days)
    print(f"Deleted {deleted} finished jobs older than {days} days")
    return 0


async def cmd_health(triggers: JobTriggers) -> int:
    health = await triggers.heartbeat.check(
        interval_seconds=triggers.config.interval_seconds,
        multiple=triggers.config.stale_multiple,
    )
    _print_json(health)
    return 0 if health["healthy"] else 1


async def execute(args: argparse.Namespace, triggers: JobTriggers) -> int:
    """Run one parsed command against a wired trigger layer."""
    try:
        if args.command == "create":
            return await cmd_create(triggers, args.target, args.config)
        if args.command == "list":
            return await cmd_list(triggers, args.type, args.status, args.limit)
        if args.command == "show":
            return await cmd_show(triggers, args.target)
        if args.command == "run":
            return await cmd_run(triggers, args.target)
        if args.command == "poll":
            return await cmd_poll(triggers)
        if args.command == "cancel":
            return await cmd_cancel(triggers, args.target)
        if args.command == "delete":
            return await cmd_delete(triggers, args.target)
        if args.command == "clear-failed":
            return await cmd_clear_failed(triggers)
        if args.command == "cleanup":
            return await cmd_cleanup(triggers, args.days)
        if args.command == "health":
            return await cmd_health(triggers)
    except NotFoundError as e:
        print(f"Not found: {e}")
        return 1
    except InvalidTransitionError as e:
        print(f"Not allowed: {e}")
        return 1
    except ValueError as e:
        print(f"Invalid argument: {e}")
        return 1

    print(f"Unknown command: {args.command}")
    return 1


async def run_command(args: argparse.Namespace) -> int:
    db = await get_db()
    try:
        return await execute(args, build_triggers(db))
    finally:
        await close_db()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="evidence-jobs",
        description="Inspect and operate the job queue",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  evidence-jobs list                      Newest 50 jobs
  evidence-jobs create agent-sync --config '{{"agentType": "github"}}'
  evidence-jobs run <job-id>              Dispatch one pending job now
  evidence-jobs health                    Exit code 1 when the worker is stale

Job types: {", ".join(t.value for t in JobType)}
        """,
    )
    parser.add_argument("command", choices=COMMANDS, help="Command to execute")
    parser.add_argument(
        "target",
        nargs="?",
        help="Job type (for 'create') or job id (for show, run, cancel, delete)",
    )
    parser.add_argument("--config", help="Job config as a JSON object (for 'create')")
    parser.add_argument("--type", help="Filter by job type (for 'list')")
    parser.add_argument("--status", help="Filter by status (for 'list')")
    parser.add_argument("--limit", type=int, default=50, help="Max jobs to list (default: 50)")
    parser.add_argument(
        "--days",
        type=int,
        default=7,
        help="Age in days for 'cleanup' (default: 7)",
    )
    return parser


def main(argv: list[str] | None = None) -> NoReturn:
    """Entry point for evidence-jobs."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "create":
        valid_types = [t.value for t in JobType]
        if args.target not in valid_types:
            parser.error(f"'create' needs a job type: {', '.join(valid_types)}")
    elif args.command in _ID_COMMANDS and not args.target:
        parser.error(f"'{args.command}' needs a job id")

    exit_code = asyncio.run(run_command(args))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
