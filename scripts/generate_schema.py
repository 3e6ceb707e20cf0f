#!/usr/bin/env python3
"""Script to generate a JSON schema from an instruction and optional sample data."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add src to path for local development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from api_glue import Engine, GenerationExhausted


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Generate a JSON schema for the data described by an instruction."
    )
    parser.add_argument(
        "instruction",
        type=str,
        help="Description of the data you want",
    )
    parser.add_argument(
        "--sample",
        type=Path,
        help="File with sample response data (JSON or text)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Write the schema to this file instead of stdout",
    )

    args = parser.parse_args()

    sample = args.sample.read_text() if args.sample else None

    async with Engine.from_env() as engine:
        try:
            schema = await engine.generate_schema(args.instruction, sample)
        except GenerationExhausted as e:
            print(f"Failed: {e}", file=sys.stderr)
            sys.exit(1)

    text = json.dumps(schema, indent=2)
    if args.output:
        args.output.write_text(text + "\n")
        print(f"Schema written to {args.output}")
    else:
        print(text)


if __name__ == "__main__":
    asyncio.run(main())
