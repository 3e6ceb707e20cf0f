#!/usr/bin/env python3
"""Script to run a call/extract/transform pipeline from a JSON file."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add src to path for local development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from api_glue import Engine, RunStatus
from api_glue.utils import model_to_dict


def load_json_arg(value: str):
    """Parse a JSON argument, reading it from a file when prefixed with @."""
    if value.startswith("@"):
        return json.loads(Path(value[1:]).read_text())
    return json.loads(value)


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run a self-healing API pipeline."
    )
    parser.add_argument(
        "pipeline",
        nargs="?",
        type=Path,
        help="JSON file with a list of steps ({\"kind\": ..., \"config\": {...}} or {\"kind\": ..., \"config_id\": ...})",
    )
    parser.add_argument(
        "--payload",
        type=str,
        default="null",
        help="Input payload as JSON, or @path to a JSON file",
    )
    parser.add_argument(
        "--credentials",
        type=str,
        help="Credentials for call templates as JSON, or @path to a JSON file",
    )
    parser.add_argument(
        "--list-runs",
        type=int,
        metavar="N",
        help="List the N most recent runs instead of running a pipeline",
    )
    parser.add_argument(
        "--list-configs",
        action="store_true",
        help="List stored configs instead of running a pipeline",
    )

    args = parser.parse_args()

    credentials = load_json_arg(args.credentials) if args.credentials else None

    async with Engine.from_env(credentials=credentials) as engine:
        if args.list_runs:
            for run in await engine.list_runs(args.list_runs):
                print(f"  {run.id}: {run.status.value} ({len(run.steps)} steps, {run.started_at:%Y-%m-%d %H:%M:%S})")
            return

        if args.list_configs:
            for config in await engine.list_configs():
                print(f"  {config.id}: {config.kind} rev {config.revision} - {config.instruction[:60]}")
            return

        if args.pipeline is None:
            parser.error("a pipeline file is required unless --list-runs or --list-configs is given")

        steps = json.loads(args.pipeline.read_text())
        run = await engine.run_pipeline(steps, load_json_arg(args.payload))

    print(json.dumps(model_to_dict(run), indent=2))
    if run.status != RunStatus.SUCCESS:
        print(f"\nRun {run.id} finished with status {run.status.value}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
