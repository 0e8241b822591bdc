"""
Run one task through the supervisor and print the outcome as JSON.

    python -m arena_supervisor "Compare Python and Go for CLI tools"
    python -m arena_supervisor --collaborative --type research "..."
"""

import argparse
import asyncio
import json
import sys

from arena_core import (
    ArenaError,
    ExecutionMode,
    TaskPriority,
    configure_logging,
    get_logger,
    get_settings,
)

from .bootstrap import create_supervisor
from .models import TaskRequest

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="arena_supervisor", description=__doc__.splitlines()[1])
    parser.add_argument("content", help="Task content")
    parser.add_argument("--type", dest="task_type", default=None, help="Declared task type")
    parser.add_argument(
        "--priority",
        choices=[p.value for p in TaskPriority],
        default=TaskPriority.NORMAL.value,
    )
    parser.add_argument(
        "--collaborative",
        action="store_true",
        help="Run the collaboration pipeline instead of a single executor",
    )
    parser.add_argument("--timeout", type=float, default=300.0, help="Seconds to wait for the result")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point for the supervisor CLI."""
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(
        log_level=settings.logging.level,
        log_format=settings.logging.format,
        service_name=settings.service_name,
    )

    try:
        supervisor = create_supervisor(settings)
    except ArenaError as e:
        logger.error("Supervisor could not start", error_code=e.error_code, error=e.message)
        print(json.dumps(e.to_dict(), indent=2))
        return 1

    await supervisor.start()
    try:
        admission = await supervisor.submit(TaskRequest(
            content=args.content,
            type=args.task_type,
            priority=TaskPriority(args.priority),
            mode=ExecutionMode.COLLABORATIVE if args.collaborative else ExecutionMode.SINGLE,
        ))
        try:
            await supervisor.wait_for_task(admission.id, timeout=args.timeout)
        except asyncio.TimeoutError:
            logger.warning("Timed out waiting for task", task_id=admission.id, timeout=args.timeout)
            await supervisor.cancel_task(admission.id)
        view = await supervisor.get_task_result(admission.id)
    finally:
        await supervisor.shutdown()

    print(view.model_dump_json(indent=2))
    return 0 if view.status.value == "completed" else 1


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
